"""Direct caplet stripping: one free volatility per expiry x strike grid cell.

The caplet volatilities are found by minimising

    Σ_i ((model_i(σ) - quote_i) / e_i)² + σᵗ P σ,   σ >= 0

where the model is either the cap prices or the cap (flat implied)
volatilities, and P is a curvature penalty across strikes and expiries:

    P = λ_K (I_T ⊗ D_KᵗD_K) + λ_T (D_TᵗD_T ⊗ I_K)

on the row-major (expiry, strike) grid. Without the penalty the problem is
ill-posed: there are usually more caplets than caps, and phantom cells (grid
points with no caplet behind them) are otherwise undetermined.

The penalty strengths are applied as given; they are not rescaled by the
size of the quote errors.
"""
from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Optional

import jax.numpy as jnp
import numpy as np
from jax import Array

from volstrip.calibration.least_squares import NonLinearLeastSquareWithPenalty
from volstrip.calibration.regularization import SmoothnessRegularizer
from volstrip.core.config import AppConfig, StripperSettings
from volstrip.models.black import VolatilityType

from .core import CapletStrippingCore
from .pricer import MultiCapFloorPricerGrid
from .result import CapletStrippingResult

logger = logging.getLogger(__name__)


class MarketDataType(Enum):
    """What the market quotes passed to :meth:`CapletStripperDirect.solve` are."""

    PRICE = "price"
    VOL = "vol"


class StrippingConvergenceError(RuntimeError):
    """The solver stopped before meeting its tolerances.

    The best point found is available as ``result`` (with ``converged=False``).
    """

    def __init__(self, result: CapletStrippingResult, message: str = ""):
        detail = f": {message}" if message else ""
        super().__init__(
            f"Caplet stripping did not converge after {result.n_evaluations} "
            f"evaluations{detail}"
        )
        self.result = result


def _check_lambda(value: float, name: str) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0.0:
        raise ValueError(f"{name} must be finite and non-negative, got {value}")
    return value


class CapletStripperDirect:
    """Fits every caplet volatility on the pricer's grid directly.

    Args:
        pricer: Grid pricer holding the caps to fit
        lambda_strike: Penalty strength across strikes
        lambda_expiry: Penalty strength across expiries; defaults to
            ``lambda_strike``
        settings: Difference order, default errors/guess and solver controls

    Example:
        >>> stripper = CapletStripperDirect(pricer, lambda_strike=0.03)
        >>> result = stripper.solve(cap_vols, MarketDataType.VOL)
        >>> result.chi_sqr
    """

    def __init__(
        self,
        pricer: MultiCapFloorPricerGrid,
        lambda_strike: float,
        lambda_expiry: Optional[float] = None,
        settings: Optional[StripperSettings] = None,
    ):
        if not isinstance(pricer, MultiCapFloorPricerGrid):
            raise ValueError("CapletStripperDirect needs a MultiCapFloorPricerGrid")
        lambda_strike = _check_lambda(lambda_strike, "lambda_strike")
        lambda_expiry = (
            lambda_strike
            if lambda_expiry is None
            else _check_lambda(lambda_expiry, "lambda_expiry")
        )

        self.pricer = pricer
        self.settings = settings or StripperSettings()
        self.core = CapletStrippingCore(pricer)
        self.lambda_strike = lambda_strike
        self.lambda_expiry = lambda_expiry

        n_expiries, n_strikes = pricer.grid_shape
        order = self.settings.difference_order
        # a direction with a single node has nothing to smooth
        self.regularizer = SmoothnessRegularizer(
            shape=(n_expiries, n_strikes),
            orders=(min(order, n_expiries - 1), min(order, n_strikes - 1)),
            lambdas=(
                lambda_expiry if n_expiries > 1 else 0.0,
                lambda_strike if n_strikes > 1 else 0.0,
            ),
        )
        self._penalty_operator = self.regularizer.square_root_operator()
        self._solver = NonLinearLeastSquareWithPenalty(self.settings.solver)

    @classmethod
    def from_config(
        cls, pricer: MultiCapFloorPricerGrid, config: AppConfig
    ) -> "CapletStripperDirect":
        """Build a stripper from a loaded :class:`AppConfig`.

        Raises:
            ValueError: If the pricer's volatility type differs from
                ``config.stripper.volatility_type``
        """
        configured = VolatilityType.from_name(config.stripper.volatility_type)
        if pricer.volatility_type is not configured:
            raise ValueError(
                f"Pricer uses {pricer.volatility_type.value} volatilities but the "
                f"configuration asks for {configured.value}"
            )
        return cls(
            pricer,
            lambda_strike=config.lambda_strike,
            lambda_expiry=config.lambda_expiry,
            settings=config.stripper,
        )

    @property
    def penalty_matrix(self) -> Array:
        return self.regularizer.penalty_matrix()

    def _check_market(self, market_values, market_type: MarketDataType) -> Array:
        if not isinstance(market_type, MarketDataType):
            raise ValueError(f"market_type must be a MarketDataType, got {market_type!r}")
        values = jnp.asarray(market_values, dtype=jnp.float64)
        if values.ndim != 1 or values.shape[0] == 0:
            raise ValueError("market_values must be a non-empty 1D sequence")
        if values.shape[0] != self.pricer.num_caps:
            raise ValueError(
                f"Got {values.shape[0]} market values for {self.pricer.num_caps} caps"
            )
        if not bool(jnp.all(jnp.isfinite(values))):
            raise ValueError("market_values must be finite")
        if market_type is MarketDataType.VOL and bool(jnp.any(values <= 0.0)):
            raise ValueError("Market cap volatilities must be positive")
        if market_type is MarketDataType.PRICE and bool(jnp.any(values < 0.0)):
            raise ValueError("Market cap prices must be non-negative")
        return values

    def _check_errors(self, errors) -> Array:
        if errors is None:
            return jnp.full(self.pricer.num_caps, self.settings.default_error)
        errors = jnp.asarray(errors, dtype=jnp.float64)
        if errors.shape != (self.pricer.num_caps,):
            raise ValueError(
                f"errors must have length {self.pricer.num_caps}, got shape {errors.shape}"
            )
        if not bool(jnp.all(jnp.isfinite(errors))) or bool(jnp.any(errors <= 0.0)):
            raise ValueError("errors must be finite and strictly positive")
        return errors

    def _check_guess(self, guess, values: Array, market_type: MarketDataType) -> Array:
        size = self.core.num_parameters
        if guess is None:
            if self.settings.default_guess is not None:
                level = self.settings.default_guess
            elif market_type is MarketDataType.VOL:
                level = float(jnp.mean(values))
            else:
                level = float(jnp.mean(self.pricer.implied_vols(values)))
            if not math.isfinite(level) or level <= 0.0:
                raise ValueError(f"Default starting volatility must be positive, got {level}")
            guess = jnp.full(size, level)
        else:
            guess = jnp.asarray(guess, dtype=jnp.float64)
            if guess.shape != (size,):
                raise ValueError(f"guess must have length {size}, got shape {guess.shape}")
            if not bool(jnp.all(jnp.isfinite(guess))) or bool(jnp.any(guess <= 0.0)):
                raise ValueError("guess must be finite and strictly positive")

        # every cap must respond to the starting volatilities
        insensitive = jnp.all(self.core.cap_price_jacobian(guess) == 0.0, axis=1)
        if bool(jnp.any(insensitive)):
            raise ValueError(
                "Starting volatilities give zero vega for caps "
                f"{np.flatnonzero(np.asarray(insensitive)).tolist()}"
            )
        return guess

    def solve(
        self,
        market_values,
        market_type: MarketDataType = MarketDataType.VOL,
        errors=None,
        guess=None,
    ) -> CapletStrippingResult:
        """Fit the caplet volatility grid to market cap prices or vols.

        Args:
            market_values: One quote per cap, in the pricer's cap order
            market_type: Whether the quotes are prices or flat cap vols
            errors: Quote standard errors (default ``settings.default_error``)
            guess: Starting caplet volatilities (default: flat, see
                ``settings.default_guess``)

        Returns:
            CapletStrippingResult. Grid cells with no caplet and no active
            penalty keep their starting value.

        Raises:
            ValueError: On invalid inputs, before any fitting
            StrippingConvergenceError: If the solver does not converge
        """
        values = self._check_market(market_values, market_type)
        errors = self._check_errors(errors)
        guess = self._check_guess(guess, values, market_type)

        if market_type is MarketDataType.VOL:
            func, jac = self.core.cap_vol, self.core.cap_vol_jacobian
        else:
            func, jac = self.core.cap_price, self.core.cap_price_jacobian

        fit = self._solver.solve(
            values,
            errors,
            func,
            jac,
            guess,
            self._penalty_operator,
            lower_bounds=np.zeros(guess.shape[0]),
        )
        result = CapletStrippingResult(
            fit_parameters=fit.parameters,
            chi_sqr=fit.chi_sqr,
            penalty=fit.penalty,
            converged=fit.converged,
            n_evaluations=fit.n_evaluations,
            pricer=self.pricer,
            vol_provider=self.core.vol_provider,
        )
        if not fit.converged:
            logger.warning(
                "Caplet stripping stopped without converging: %s (chi2=%.6g)",
                fit.message,
                fit.chi_sqr,
            )
            raise StrippingConvergenceError(result, fit.message)

        logger.info(
            "Stripped %d caplet vols from %d %s quotes: chi2=%.6g penalty=%.6g evaluations=%d",
            result.fit_parameters.shape[0],
            self.pricer.num_caps,
            market_type.value,
            result.chi_sqr,
            result.penalty,
            result.n_evaluations,
        )
        return result


__all__ = ["CapletStripperDirect", "MarketDataType", "StrippingConvergenceError"]

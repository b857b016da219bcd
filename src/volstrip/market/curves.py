"""Interest-rate curves and the multi-curve bundle used for caplet pricing."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Union

import jax.numpy as jnp
from jax import Array

from .base import DiscountCurve

ArrayLike = Union[float, Array]


class MissingCurveError(ValueError):
    """Raised when no curve is available for a currency or index."""


@dataclass
class FlatCurve:
    """
    Simple continuously-compounded flat discount curve.

    Implements the DiscountCurve protocol with a constant rate.

    Attributes:
        r: Continuously-compounded rate (default 0.01 = 1%)
    """

    r: float = 0.01

    def df(self, t: ArrayLike) -> ArrayLike:
        """Compute discount factor: DF(t) = exp(-r*t)."""
        t_arr = jnp.asarray(t)
        return jnp.exp(-self.r * t_arr)

    def __call__(self, t: ArrayLike) -> ArrayLike:
        """Alias for df(t) for convenient syntax: curve(t)."""
        return self.df(t)

    def zero_rate(self, t: ArrayLike) -> ArrayLike:
        """Return the constant zero rate."""
        t_arr = jnp.asarray(t)
        return jnp.full_like(t_arr, self.r, dtype=float)


class InterpolatedDiscountCurve:
    """
    Piecewise log-linear discount curve built from zero-rate pillars.

    Implements the DiscountCurve protocol. The curve is anchored at DF(0) = 1
    and log discount factors are interpolated linearly between pillars, which
    gives piecewise-flat instantaneous forwards. Beyond the last pillar the
    last forward rate is extended.
    """

    def __init__(self, times: Sequence[float], zero_rates: Sequence[float]):
        times_arr = jnp.asarray(times, dtype=jnp.float64)
        rates_arr = jnp.asarray(zero_rates, dtype=jnp.float64)
        if times_arr.ndim != 1 or times_arr.shape != rates_arr.shape:
            raise ValueError("times and zero_rates must be 1D and of the same length")
        if times_arr.shape[0] == 0:
            raise ValueError("Curve must have at least one pillar")
        if bool(jnp.any(times_arr <= 0.0)):
            raise ValueError("Pillar times must be positive")
        if bool(jnp.any(jnp.diff(times_arr) <= 0.0)):
            raise ValueError("Pillar times must be strictly increasing")

        self._times = jnp.concatenate([jnp.zeros(1), times_arr])
        self._log_dfs = jnp.concatenate([jnp.zeros(1), -rates_arr * times_arr])

    def df(self, t: ArrayLike) -> ArrayLike:
        """Compute discount factor with log-linear interpolation."""
        t_arr = jnp.asarray(t, dtype=jnp.float64)
        log_df = jnp.interp(t_arr, self._times, self._log_dfs)
        if self._times.shape[0] > 1:
            last_forward = -(self._log_dfs[-1] - self._log_dfs[-2]) / (
                self._times[-1] - self._times[-2]
            )
            beyond = self._log_dfs[-1] - last_forward * (t_arr - self._times[-1])
            log_df = jnp.where(t_arr > self._times[-1], beyond, log_df)
        return jnp.exp(log_df)

    def __call__(self, t: ArrayLike) -> ArrayLike:
        """Alias for df(t) for convenient syntax: curve(t)."""
        return self.df(t)

    def zero_rate(self, t: ArrayLike) -> ArrayLike:
        """Compute continuously-compounded zero rate: r(t) = -ln(DF(t))/t."""
        t_arr = jnp.asarray(t, dtype=jnp.float64)
        safe_t = jnp.where(t_arr == 0.0, 1.0, t_arr)
        return jnp.where(t_arr == 0.0, 0.0, -jnp.log(self.df(safe_t)) / safe_t)


class MulticurveProvider:
    """
    Discounting curves keyed by currency and projection curves keyed by index.

    Implements the CurveProvider protocol. Forward rates are the
    simply-compounded rates implied by the projection curve:
    ``F = (P(start) / P(end) - 1) / accrual``.

    Example:
        >>> provider = MulticurveProvider(
        ...     discount_curves={"USD": FlatCurve(0.02)},
        ...     forward_curves={"USD-LIBOR-3M": FlatCurve(0.025)},
        ... )
        >>> provider.get_forward_rate("USD-LIBOR-3M", 1.0, 1.25, 0.25)
    """

    def __init__(
        self,
        discount_curves: Mapping[str, DiscountCurve],
        forward_curves: Mapping[str, DiscountCurve],
    ):
        self._discount_curves = dict(discount_curves)
        self._forward_curves = dict(forward_curves)

    def has_currency(self, currency: str) -> bool:
        return currency in self._discount_curves

    def has_index(self, index: str) -> bool:
        return index in self._forward_curves

    def get_discount_factor(self, currency: str, time: ArrayLike) -> ArrayLike:
        try:
            curve = self._discount_curves[currency]
        except KeyError:
            raise MissingCurveError(f"No discount curve for currency {currency!r}") from None
        return curve.df(time)

    def get_forward_rate(
        self,
        index: str,
        start: ArrayLike,
        end: ArrayLike,
        accrual: ArrayLike,
    ) -> ArrayLike:
        try:
            curve = self._forward_curves[index]
        except KeyError:
            raise MissingCurveError(f"No forward curve for index {index!r}") from None
        return (curve.df(start) / curve.df(end) - 1.0) / jnp.asarray(accrual)


__all__ = [
    "FlatCurve",
    "InterpolatedDiscountCurve",
    "MissingCurveError",
    "MulticurveProvider",
]

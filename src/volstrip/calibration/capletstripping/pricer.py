"""Simultaneous pricing of a set of caps/floors from caplet volatilities.

Every cap is decomposed into its caplets once, at construction. Caplets
shared between caps (same expiry and strike) are mapped to the same
volatility node, so a single vector of caplet volatilities prices the whole
set:

    price_c = Σ_{j ∈ c} DF_j · τ_j · N_j · Black(F_j, K_j, T_j, σ_{node(j)})

Internally this is two sparse-in-spirit matrices held densely:

* ``C`` (caps x caplet entries) sums caplet values into cap values;
* ``V`` (caplet entries x nodes) picks the node volatility for each entry.

so that the price Jacobian is simply ``C · diag(DF τ N vega) · V``.
"""
from __future__ import annotations

import logging
from typing import Sequence

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from volstrip.market.base import CurveProvider
from volstrip.market.curves import MissingCurveError
from volstrip.models.black import VolatilityType, option_price, option_vega
from volstrip.products.caps_floors import CapFloor

logger = logging.getLogger(__name__)

_KEY_DECIMALS = 10
_BISECTION_STEPS = 100
_VOL_CAP = {VolatilityType.LOGNORMAL: 10.0, VolatilityType.NORMAL: 1.0}


def _node_key(expiry: float, strike: float) -> tuple[float, float]:
    return round(float(expiry), _KEY_DECIMALS), round(float(strike), _KEY_DECIMALS)


class MultiCapFloorPricer:
    """Prices a list of caps/floors from one vector of caplet volatilities.

    Parameters are the distinct (expiry, strike) caplet nodes, ordered by
    ascending expiry and then ascending strike.

    Args:
        caps: Caps and/or floors to price (at least one)
        curves: Curve provider for discounting and forward projection
        volatility_type: Black (lognormal, default) or Bachelier (normal)
    """

    def __init__(
        self,
        caps: Sequence[CapFloor],
        curves: CurveProvider,
        volatility_type: VolatilityType | str = VolatilityType.LOGNORMAL,
    ):
        caps = tuple(caps)
        if not caps:
            raise ValueError("At least one cap/floor is required")
        for cap in caps:
            if not isinstance(cap, CapFloor):
                raise ValueError(f"Expected CapFloor instances, got {type(cap).__name__}")
            if not curves.has_currency(cap.currency):
                raise MissingCurveError(f"No discount curve for currency {cap.currency!r}")
            if not curves.has_index(cap.index):
                raise MissingCurveError(f"No forward curve for index {cap.index!r}")

        self._caps = caps
        self._curves = curves
        self._volatility_type = VolatilityType.from_name(volatility_type)

        self._resolve_caplets()
        self._node_index, nodes = self._build_nodes(self._keys)
        self._nodes = jnp.asarray(nodes, dtype=jnp.float64).reshape(-1, 2)

        n_entries = len(self._keys)
        aggregation = np.zeros((len(caps), n_entries))
        aggregation[self._cap_index, np.arange(n_entries)] = 1.0
        vol_map = np.zeros((n_entries, self._nodes.shape[0]))
        vol_map[np.arange(n_entries), self._node_index] = 1.0
        self._aggregation = jnp.asarray(aggregation)
        self._vol_map = jnp.asarray(vol_map)

        logger.debug(
            "Built %s: %d caps, %d caplet entries, %d volatility parameters",
            type(self).__name__,
            self.num_caps,
            n_entries,
            self.caplet_vol_size,
        )

    def _resolve_caplets(self) -> None:
        forwards, strikes, expiries, weights, is_call, cap_index, keys = [], [], [], [], [], [], []
        for c, cap in enumerate(self._caps):
            starts = jnp.asarray([p.start_time for p in cap.periods])
            ends = jnp.asarray([p.end_time for p in cap.periods])
            accruals = jnp.asarray([p.accrual_factor for p in cap.periods])
            payments = jnp.asarray([p.payment_time for p in cap.periods])
            notionals = jnp.asarray([p.notional for p in cap.periods])

            fwd = self._curves.get_forward_rate(cap.index, starts, ends, accruals)
            dfs = self._curves.get_discount_factor(cap.currency, payments)
            forwards.extend(np.asarray(fwd, dtype=float).tolist())
            weights.extend(np.asarray(dfs * accruals * notionals, dtype=float).tolist())

            for period in cap.periods:
                if period.fixing_time <= 0.0:
                    raise ValueError(
                        f"Caplet fixing times must be positive, got {period.fixing_time}"
                    )
                strikes.append(cap.strike)
                expiries.append(period.fixing_time)
                is_call.append(cap.is_cap)
                cap_index.append(c)
                keys.append(_node_key(period.fixing_time, cap.strike))

        self._forwards = jnp.asarray(forwards)
        self._strikes = jnp.asarray(strikes)
        self._expiries = jnp.asarray(expiries)
        self._weights = jnp.asarray(weights)
        self._is_call = jnp.asarray(is_call)
        self._cap_index = np.asarray(cap_index)
        self._keys = keys

        if not bool(jnp.all(jnp.isfinite(self._forwards))):
            raise ValueError("Curve provider returned non-finite forward rates")
        if self._volatility_type is VolatilityType.LOGNORMAL and (
            bool(jnp.any(self._forwards <= 0.0)) or bool(jnp.any(self._strikes <= 0.0))
        ):
            raise ValueError("Lognormal caplets need positive forwards and strikes")

    def _build_nodes(self, keys):
        """Map each caplet entry to a parameter; one parameter per distinct node."""
        nodes = sorted(set(keys))
        position = {key: i for i, key in enumerate(nodes)}
        return np.asarray([position[key] for key in keys]), nodes

    # ------------------------------------------------------------------ #
    # Structure
    # ------------------------------------------------------------------ #
    @property
    def caps(self) -> tuple[CapFloor, ...]:
        return self._caps

    @property
    def volatility_type(self) -> VolatilityType:
        return self._volatility_type

    @property
    def num_caps(self) -> int:
        return len(self._caps)

    @property
    def num_caplets(self) -> int:
        """Number of distinct caplets (expiry, strike) across all caps."""
        return len(set(self._keys))

    @property
    def caplet_vol_size(self) -> int:
        """Length of the caplet volatility vector accepted by :meth:`price`."""
        return int(self._nodes.shape[0])

    @property
    def caplet_nodes(self) -> Array:
        """(expiry, strike) of each volatility parameter, shape (caplet_vol_size, 2)."""
        return self._nodes

    @property
    def caplet_expiries(self) -> Array:
        """Distinct caplet expiries, ascending."""
        return jnp.asarray(sorted({key[0] for key in self._keys}))

    @property
    def strikes(self) -> Array:
        """Distinct strikes, ascending."""
        return jnp.asarray(sorted({key[1] for key in self._keys}))

    @property
    def phantom_mask(self) -> Array:
        """True for parameters not backed by any caplet (only possible on a grid)."""
        supported = np.zeros(self.caplet_vol_size, dtype=bool)
        supported[self._node_index] = True
        return jnp.asarray(~supported)

    def index_of(self, cap: CapFloor) -> int:
        """Position of ``cap`` in the priced set."""
        return self._caps.index(cap)

    # ------------------------------------------------------------------ #
    # Pricing
    # ------------------------------------------------------------------ #
    def _check_caplet_vols(self, caplet_vols) -> Array:
        vols = jnp.asarray(caplet_vols, dtype=jnp.float64)
        if vols.shape != (self.caplet_vol_size,):
            raise ValueError(
                f"Expected {self.caplet_vol_size} caplet volatilities, got shape {vols.shape}"
            )
        return vols

    def _check_cap_vols(self, cap_vols) -> Array:
        vols = jnp.asarray(cap_vols, dtype=jnp.float64)
        if vols.shape != (self.num_caps,):
            raise ValueError(f"Expected {self.num_caps} cap volatilities, got shape {vols.shape}")
        return vols

    def _caplet_prices(self, entry_vols: Array) -> Array:
        return self._weights * option_price(
            self._volatility_type,
            self._forwards,
            self._strikes,
            self._expiries,
            entry_vols,
            self._is_call,
        )

    def _caplet_vegas(self, entry_vols: Array) -> Array:
        return self._weights * option_vega(
            self._volatility_type, self._forwards, self._strikes, self._expiries, entry_vols
        )

    def price(self, caplet_vols) -> Array:
        """Cap prices given one volatility per caplet node."""
        vols = self._check_caplet_vols(caplet_vols)
        return self._aggregation @ self._caplet_prices(self._vol_map @ vols)

    def vega(self, caplet_vols) -> Array:
        """Per-cap vega: the sum of the cap's caplet vegas."""
        vols = self._check_caplet_vols(caplet_vols)
        return self._aggregation @ self._caplet_vegas(self._vol_map @ vols)

    def price_jacobian(self, caplet_vols) -> Array:
        """∂(cap price)/∂(caplet vol), shape (num_caps, caplet_vol_size)."""
        vols = self._check_caplet_vols(caplet_vols)
        vegas = self._caplet_vegas(self._vol_map @ vols)
        return (self._aggregation * vegas[None, :]) @ self._vol_map

    def price_from_cap_vols(self, cap_vols) -> Array:
        """Cap prices with every caplet of a cap at that cap's flat volatility."""
        vols = self._check_cap_vols(cap_vols)
        return self._aggregation @ self._caplet_prices(vols[self._cap_index])

    def vega_from_cap_vols(self, cap_vols) -> Array:
        """Cap vegas with respect to each cap's flat volatility."""
        vols = self._check_cap_vols(cap_vols)
        return self._aggregation @ self._caplet_vegas(vols[self._cap_index])

    def implied_vols(self, cap_prices) -> Array:
        """Flat cap implied volatilities, by vectorised bisection.

        Raises:
            ValueError: If a price is outside the range attainable between a
                vanishing volatility and the bracket's upper end.
        """
        target = self._check_cap_vols(cap_prices)
        lo = jnp.zeros(self.num_caps)
        hi = jnp.full(self.num_caps, _VOL_CAP[self._volatility_type])

        price_lo = self.price_from_cap_vols(lo)
        price_hi = self.price_from_cap_vols(hi)
        tol = 1e-14 * jnp.maximum(1.0, jnp.abs(target))
        if bool(jnp.any(target < price_lo - tol)) or bool(jnp.any(target > price_hi + tol)):
            raise ValueError("Cap price outside the attainable range; no implied volatility")

        def step(_, bounds):
            lower, upper = bounds
            mid = 0.5 * (lower + upper)
            below = self.price_from_cap_vols(mid) < target
            return jnp.where(below, mid, lower), jnp.where(below, upper, mid)

        lo, hi = jax.lax.fori_loop(0, _BISECTION_STEPS, step, (lo, hi))
        return 0.5 * (lo + hi)


class MultiCapFloorPricerGrid(MultiCapFloorPricer):
    """Pricer whose parameters cover the full expiry x strike grid.

    The grid is spanned by every distinct caplet expiry and every distinct
    strike. Cells with no caplet behind them (phantoms) are still
    parameters; only a smoothness penalty can pin them down. Parameters are
    flattened row-major, ``index = expiry_index * n_strikes + strike_index``.
    """

    def _build_nodes(self, keys):
        expiries = sorted({key[0] for key in keys})
        strikes = sorted({key[1] for key in keys})
        t_pos = {t: i for i, t in enumerate(expiries)}
        k_pos = {k: i for i, k in enumerate(strikes)}
        n_strikes = len(strikes)
        index = np.asarray([t_pos[t] * n_strikes + k_pos[k] for t, k in keys])
        nodes = [(t, k) for t in expiries for k in strikes]
        self._grid_shape = (len(expiries), n_strikes)
        return index, nodes

    @property
    def grid_shape(self) -> tuple[int, int]:
        """(number of expiries, number of strikes)."""
        return self._grid_shape

    @property
    def grid_size(self) -> int:
        return self._grid_shape[0] * self._grid_shape[1]


__all__ = ["MultiCapFloorPricer", "MultiCapFloorPricerGrid"]

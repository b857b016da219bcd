"""Black (lognormal) and Bachelier (normal) forward option formulas.

All functions return undiscounted prices on unit notional; callers multiply
by discount factor, accrual and notional. Inputs broadcast, so a whole strip
of caplets is priced in one call.
"""
from __future__ import annotations

from enum import Enum

import jax
import jax.numpy as jnp
from jax.scipy.stats import norm

_TINY = 1e-12


class VolatilityType(Enum):
    """Volatility convention of the caplet model."""

    LOGNORMAL = "lognormal"
    NORMAL = "normal"

    @classmethod
    def from_name(cls, name: "str | VolatilityType") -> "VolatilityType":
        if isinstance(name, VolatilityType):
            return name
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(f"Unknown volatility type {name!r}") from None


@jax.jit
def _black_d1d2(forward, strike, expiry, vol):
    vol_safe = jnp.maximum(vol, _TINY)
    sqrt_t = jnp.sqrt(jnp.maximum(expiry, _TINY))
    d1 = (jnp.log(forward / strike) + 0.5 * vol_safe**2 * expiry) / (vol_safe * sqrt_t)
    d2 = d1 - vol_safe * sqrt_t
    return d1, d2


@jax.jit
def black_price(forward, strike, expiry, vol, is_call):
    """Black price of a call (``is_call``) or put on a forward."""
    d1, d2 = _black_d1d2(forward, strike, expiry, vol)
    call = forward * norm.cdf(d1) - strike * norm.cdf(d2)
    put = strike * norm.cdf(-d2) - forward * norm.cdf(-d1)
    value = jnp.where(is_call, call, put)

    intrinsic = jnp.where(
        is_call, jnp.maximum(forward - strike, 0.0), jnp.maximum(strike - forward, 0.0)
    )
    use_intrinsic = (vol * jnp.sqrt(jnp.maximum(expiry, 0.0))) < _TINY
    return jnp.where(use_intrinsic, intrinsic, value)


@jax.jit
def black_vega(forward, strike, expiry, vol):
    """dPrice/dvol of the Black formula (same for calls and puts)."""
    d1, _ = _black_d1d2(forward, strike, expiry, vol)
    vega = forward * norm.pdf(d1) * jnp.sqrt(jnp.maximum(expiry, 0.0))
    return jnp.where(vol * jnp.sqrt(jnp.maximum(expiry, 0.0)) < _TINY, 0.0, vega)


@jax.jit
def bachelier_price(forward, strike, expiry, vol, is_call):
    """Bachelier (normal model) price of a call or put on a forward."""
    std = jnp.maximum(vol * jnp.sqrt(jnp.maximum(expiry, 0.0)), _TINY)
    d = (forward - strike) / std
    call = (forward - strike) * norm.cdf(d) + std * norm.pdf(d)
    put = (strike - forward) * norm.cdf(-d) + std * norm.pdf(d)
    value = jnp.where(is_call, call, put)

    intrinsic = jnp.where(
        is_call, jnp.maximum(forward - strike, 0.0), jnp.maximum(strike - forward, 0.0)
    )
    use_intrinsic = (vol * jnp.sqrt(jnp.maximum(expiry, 0.0))) < _TINY
    return jnp.where(use_intrinsic, intrinsic, value)


@jax.jit
def bachelier_vega(forward, strike, expiry, vol):
    """dPrice/dvol of the Bachelier formula."""
    sqrt_t = jnp.sqrt(jnp.maximum(expiry, 0.0))
    std = jnp.maximum(vol * sqrt_t, _TINY)
    d = (forward - strike) / std
    vega = sqrt_t * norm.pdf(d)
    return jnp.where(vol * sqrt_t < _TINY, 0.0, vega)


def option_price(volatility_type: VolatilityType, forward, strike, expiry, vol, is_call):
    if volatility_type is VolatilityType.LOGNORMAL:
        return black_price(forward, strike, expiry, vol, is_call)
    return bachelier_price(forward, strike, expiry, vol, is_call)


def option_vega(volatility_type: VolatilityType, forward, strike, expiry, vol):
    if volatility_type is VolatilityType.LOGNORMAL:
        return black_vega(forward, strike, expiry, vol)
    return bachelier_vega(forward, strike, expiry, vol)


__all__ = [
    "VolatilityType",
    "bachelier_price",
    "bachelier_vega",
    "black_price",
    "black_vega",
    "option_price",
    "option_vega",
]

"""Model functions for caplet stripping: parameters -> cap prices/vols and Jacobians."""
from __future__ import annotations

from typing import Callable, Optional

import jax.numpy as jnp
from jax import Array

from .pricer import MultiCapFloorPricer
from .volatility_provider import (
    DirectVolatilityFunctionProvider,
    DiscreteVolatilityFunctionProvider,
)


class CapletStrippingCore:
    """Composes a volatility provider with a cap pricer.

    ``cap_price(θ) = pricer.price(provider(θ))``; the price Jacobian is the
    cap x caplet vega matrix times the provider Jacobian. Cap volatilities are
    the flat implied vols of those prices, and their Jacobian divides each
    price-Jacobian row by the cap's vega at its implied volatility.

    Args:
        pricer: Cap/floor pricer
        vol_provider: Parameter-to-volatility map. Defaults to one parameter
            per caplet volatility.
    """

    def __init__(
        self,
        pricer: MultiCapFloorPricer,
        vol_provider: Optional[DiscreteVolatilityFunctionProvider] = None,
    ):
        if vol_provider is None:
            vol_provider = DirectVolatilityFunctionProvider(pricer.caplet_vol_size)
        if vol_provider.size != pricer.caplet_vol_size:
            raise ValueError(
                f"Volatility provider produces {vol_provider.size} values but the pricer "
                f"needs {pricer.caplet_vol_size}"
            )
        self.pricer = pricer
        self.vol_provider = vol_provider

    @property
    def num_parameters(self) -> int:
        return self.vol_provider.num_parameters

    def cap_price(self, params) -> Array:
        return self.pricer.price(self.vol_provider.evaluate(params))

    def cap_vol(self, params) -> Array:
        return self.pricer.implied_vols(self.cap_price(params))

    def cap_price_jacobian(self, params) -> Array:
        vols = self.vol_provider.evaluate(params)
        return self.pricer.price_jacobian(vols) @ self.vol_provider.jacobian(params)

    def cap_vol_jacobian(self, params) -> Array:
        vols = self.vol_provider.evaluate(params)
        price_jac = self.pricer.price_jacobian(vols) @ self.vol_provider.jacobian(params)
        cap_vols = self.pricer.implied_vols(self.pricer.price(vols))
        cap_vegas = self.pricer.vega_from_cap_vols(cap_vols)
        # a cap with no vega has an all-zero price row
        live = cap_vegas > 0.0
        safe = jnp.where(live, cap_vegas, 1.0)
        return jnp.where(live[:, None], price_jac / safe[:, None], 0.0)

    def get_cap_price_function(self) -> Callable[[Array], Array]:
        return self.cap_price

    def get_cap_vol_function(self) -> Callable[[Array], Array]:
        return self.cap_vol

    def get_cap_price_jacobian_function(self) -> Callable[[Array], Array]:
        return self.cap_price_jacobian

    def get_cap_vol_jacobian_function(self) -> Callable[[Array], Array]:
        return self.cap_vol_jacobian

    def caplet_vols(self, params) -> Array:
        return jnp.asarray(self.vol_provider.evaluate(params))


__all__ = ["CapletStrippingCore"]

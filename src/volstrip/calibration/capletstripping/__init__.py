"""Stripping caplet volatilities from cap/floor market quotes."""

from .core import CapletStrippingCore
from .pricer import MultiCapFloorPricer, MultiCapFloorPricerGrid
from .result import CapletStrippingResult, CombinedCapletStrippingResults
from .stripper import CapletStripperDirect, MarketDataType, StrippingConvergenceError
from .volatility_provider import (
    DirectVolatilityFunctionProvider,
    DiscreteVolatilityFunctionProvider,
)

__all__ = [
    "CapletStripperDirect",
    "CapletStrippingCore",
    "CapletStrippingResult",
    "CombinedCapletStrippingResults",
    "DirectVolatilityFunctionProvider",
    "DiscreteVolatilityFunctionProvider",
    "MarketDataType",
    "MultiCapFloorPricer",
    "MultiCapFloorPricerGrid",
    "StrippingConvergenceError",
]

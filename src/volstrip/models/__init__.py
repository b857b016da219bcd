"""Option pricing models used by the caplet pricers."""
from .black import (
    VolatilityType,
    bachelier_price,
    bachelier_vega,
    black_price,
    black_vega,
    option_price,
    option_vega,
)

__all__ = [
    "VolatilityType",
    "bachelier_price",
    "bachelier_vega",
    "black_price",
    "black_vega",
    "option_price",
    "option_vega",
]

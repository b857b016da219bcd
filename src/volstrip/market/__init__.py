"""Market data utilities."""

from .base import CurveProvider, DiscountCurve
from .curves import (
    FlatCurve,
    InterpolatedDiscountCurve,
    MissingCurveError,
    MulticurveProvider,
)
from .interpolation import (
    GridInterpolator2D,
    ScatteredInterpolator2D,
    linear_interpolation,
)

__all__ = [
    "CurveProvider",
    "DiscountCurve",
    "FlatCurve",
    "GridInterpolator2D",
    "InterpolatedDiscountCurve",
    "MissingCurveError",
    "MulticurveProvider",
    "ScatteredInterpolator2D",
    "linear_interpolation",
]

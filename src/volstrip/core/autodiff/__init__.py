"""Numerical differentiation helpers."""
from .finite_difference import (
    VectorFieldFirstOrderDifferentiator,
    finite_difference_jacobian,
    jacobian_relative_error,
)

__all__ = [
    "VectorFieldFirstOrderDifferentiator",
    "finite_difference_jacobian",
    "jacobian_relative_error",
]

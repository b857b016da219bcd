"""Calibration utilities: penalties, penalized least squares and caplet stripping."""

from .least_squares import (
    GeneralizedLeastSquareResults,
    LeastSquareWithPenaltyResults,
    NonLinearLeastSquareWithPenalty,
    generalized_least_squares,
)
from .regularization import (
    SmoothnessRegularizer,
    create_difference_matrix,
    difference_penalty_matrix,
    directional_difference_operator,
    directional_penalty_matrix,
)

__all__ = [
    "GeneralizedLeastSquareResults",
    "LeastSquareWithPenaltyResults",
    "NonLinearLeastSquareWithPenalty",
    "SmoothnessRegularizer",
    "create_difference_matrix",
    "difference_penalty_matrix",
    "directional_difference_operator",
    "directional_penalty_matrix",
    "generalized_least_squares",
]

"""Penalized least-squares solvers.

Both solvers minimise

    χ²(θ) + θᵗ P θ,   χ²(θ) = Σ_i ((f_i(θ) - y_i) / σ_i)²

where P = RᵗR is a positive semi-definite penalty (typically a weighted
difference penalty from :mod:`volstrip.calibration.regularization`).

The nonlinear solver hands the augmented residual vector
``[(f(θ) - y) / σ ; R θ]`` and its Jacobian ``[J / σ ; R]`` to
``scipy.optimize.least_squares``, so the penalty enters the trust-region
Gauss-Newton steps exactly. The linear solver is the closed form

    θ* = (AᵗWA + P)⁻¹ AᵗW y,   W = diag(1/σ²).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import jax.numpy as jnp
import numpy as np
from jax import Array
from scipy.optimize import least_squares

from volstrip.core.config import SolverSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeastSquareWithPenaltyResults:
    """Outcome of a penalized least-squares fit.

    Attributes:
        parameters: Fitted parameter vector
        chi_sqr: Unpenalized weighted residual sum of squares at the fit
        penalty: Penalty θᵗPθ at the fit
        converged: Whether the solver met one of its tolerances
        n_evaluations: Number of residual evaluations used
        message: Solver termination message
    """

    parameters: Array
    chi_sqr: float
    penalty: float
    converged: bool
    n_evaluations: int
    message: str = ""

    def get_fit_parameters(self) -> Array:
        return self.parameters

    def get_chi_sqr(self) -> float:
        return self.chi_sqr

    def get_penalty(self) -> float:
        return self.penalty


def _as_vector(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim != 1 or arr.shape[0] == 0:
        raise ValueError(f"{name} must be a non-empty 1D array")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite")
    return arr


class NonLinearLeastSquareWithPenalty:
    """Trust-region solver for ``min χ²(θ) + ||R θ||²`` with optional lower bounds.

    Example:
        >>> solver = NonLinearLeastSquareWithPenalty()
        >>> result = solver.solve(y, sigma, model, model_jacobian, start, R)
    """

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()

    def solve(
        self,
        observed,
        sigma,
        func: Callable[[Array], Array],
        jacobian: Callable[[Array], Array],
        start,
        penalty_operator,
        lower_bounds=None,
    ) -> LeastSquareWithPenaltyResults:
        """Fit ``func`` to ``observed``.

        Args:
            observed: Observed values y, length m
            sigma: Standard errors σ, length m (positive)
            func: Model θ -> f(θ), length n -> length m
            jacobian: Model Jacobian θ -> ∂f/∂θ, shape (m, n)
            start: Initial parameters, length n
            penalty_operator: R with shape (k, n); the penalty is ||R θ||². A
                (0, n) operator means no penalty.
            lower_bounds: Optional lower bounds on θ (scalar or length n)

        Returns:
            LeastSquareWithPenaltyResults. Non-convergence is reported through
            ``converged``; it is not raised here.
        """
        y = _as_vector(observed, "observed")
        sigma = _as_vector(sigma, "sigma")
        x0 = _as_vector(start, "start")
        R = np.asarray(penalty_operator, dtype=float)

        if sigma.shape != y.shape:
            raise ValueError(f"sigma length {sigma.shape[0]} != observed length {y.shape[0]}")
        if np.any(sigma <= 0.0):
            raise ValueError("sigma must be strictly positive")
        if R.ndim != 2 or R.shape[1] != x0.shape[0]:
            raise ValueError(
                f"penalty operator shape {R.shape} incompatible with {x0.shape[0]} parameters"
            )

        if lower_bounds is None:
            lower = np.full_like(x0, -np.inf)
        else:
            lower = np.broadcast_to(np.asarray(lower_bounds, dtype=float), x0.shape).copy()
            if np.any(x0 < lower):
                raise ValueError("start violates the lower bounds")
        upper = np.full_like(x0, np.inf)

        inv_sigma = 1.0 / sigma

        def residuals(theta: np.ndarray) -> np.ndarray:
            model = np.asarray(func(jnp.asarray(theta)), dtype=float)
            if model.shape != y.shape:
                raise ValueError(f"model output shape {model.shape} != observed {y.shape}")
            return np.concatenate([(model - y) * inv_sigma, R @ theta])

        def residual_jacobian(theta: np.ndarray) -> np.ndarray:
            jac = np.asarray(jacobian(jnp.asarray(theta)), dtype=float)
            return np.vstack([jac * inv_sigma[:, None], R])

        settings = self.settings
        fit = least_squares(
            residuals,
            x0=x0,
            jac=residual_jacobian,
            bounds=(lower, upper),
            method=settings.method,
            ftol=settings.ftol,
            xtol=settings.xtol,
            gtol=settings.gtol,
            max_nfev=settings.max_nfev,
        )

        n_obs = y.shape[0]
        chi_sqr = float(np.sum(fit.fun[:n_obs] ** 2))
        penalty = float(np.sum(fit.fun[n_obs:] ** 2))
        converged = bool(fit.status > 0)
        logger.debug(
            "least_squares finished: status=%d nfev=%d chi2=%.6g penalty=%.6g",
            fit.status,
            fit.nfev,
            chi_sqr,
            penalty,
        )
        return LeastSquareWithPenaltyResults(
            parameters=jnp.asarray(fit.x),
            chi_sqr=chi_sqr,
            penalty=penalty,
            converged=converged,
            n_evaluations=int(fit.nfev),
            message=str(fit.message),
        )


@dataclass(frozen=True)
class GeneralizedLeastSquareResults:
    """Closed-form penalized linear least-squares fit.

    Attributes:
        weights: Fitted coefficients
        chi_sqr: Unpenalized weighted residual sum of squares
        penalty: Penalty wᵗPw at the fit
        covariance: (AᵗWA + P)⁻¹
    """

    weights: Array
    chi_sqr: float
    penalty: float
    covariance: Array


def generalized_least_squares(
    design, observed, sigma, penalty_matrix
) -> GeneralizedLeastSquareResults:
    """Solve the linear problem ``min Σ ((A w - y)/σ)² + wᵗ P w``.

    Args:
        design: Design matrix A, shape (m, n)
        observed: Observations y, length m
        sigma: Standard errors, length m
        penalty_matrix: P, shape (n, n)
    """
    A = jnp.asarray(design, dtype=jnp.float64)
    y = jnp.asarray(observed, dtype=jnp.float64)
    sigma = jnp.asarray(sigma, dtype=jnp.float64)
    P = jnp.asarray(penalty_matrix, dtype=jnp.float64)

    if A.ndim != 2:
        raise ValueError("design must be a 2D matrix")
    m, n = A.shape
    if y.shape != (m,) or sigma.shape != (m,):
        raise ValueError(f"observed and sigma must have length {m}")
    if P.shape != (n, n):
        raise ValueError(f"penalty matrix must have shape ({n}, {n}), got {P.shape}")
    if bool(jnp.any(sigma <= 0.0)):
        raise ValueError("sigma must be strictly positive")

    w = 1.0 / sigma**2
    normal = A.T @ (w[:, None] * A) + P
    rhs = A.T @ (w * y)
    weights = jnp.linalg.solve(normal, rhs)
    residual = (A @ weights - y) / sigma
    return GeneralizedLeastSquareResults(
        weights=weights,
        chi_sqr=float(residual @ residual),
        penalty=float(weights @ P @ weights),
        covariance=jnp.linalg.inv(normal),
    )


__all__ = [
    "GeneralizedLeastSquareResults",
    "LeastSquareWithPenaltyResults",
    "NonLinearLeastSquareWithPenalty",
    "generalized_least_squares",
]

"""Finite-difference Jacobians for vector-valued functions.

Analytic Jacobians in the calibration code are validated against the
routines below.  The perturbation loop is sequential: each column costs one
(forward/backward), two (central) or four (five-point) evaluations of the
underlying function, so the whole Jacobian costs O(n) function calls.
"""
from __future__ import annotations

from typing import Any, Callable

import jax.numpy as jnp

from volstrip.core.config import FiniteDifferenceSettings

ArrayLike = Any

_SCHEMES = ("forward", "backward", "central", "five_point")


def _validate(eps: float, scheme: str) -> str:
    if eps <= 0.0:
        raise ValueError(f"eps must be positive, got {eps}")
    canonical = scheme.lower()
    if canonical not in _SCHEMES:
        raise ValueError(f"scheme must be one of {_SCHEMES}, got {scheme!r}")
    return canonical


def finite_difference_jacobian(
    func: Callable[[ArrayLike], ArrayLike],
    x: ArrayLike,
    eps: float = 1e-5,
    scheme: str = "central",
) -> jnp.ndarray:
    """Jacobian of ``func`` at ``x`` by bumping one coordinate at a time.

    Args:
        func: Maps a vector of length n to a vector of length m.
        x: Point at which to differentiate.
        eps: Absolute bump size.
        scheme: ``forward``, ``backward``, ``central`` or ``five_point``
            (fourth-order central stencil).

    Returns:
        Array of shape (m, n).
    """
    scheme = _validate(eps, scheme)
    x = jnp.asarray(x, dtype=jnp.float64)
    n = x.shape[0]

    base = None
    if scheme in ("forward", "backward"):
        base = jnp.asarray(func(x))

    columns = []
    for i in range(n):
        if scheme == "forward":
            up = jnp.asarray(func(x.at[i].add(eps)))
            columns.append((up - base) / eps)
        elif scheme == "backward":
            down = jnp.asarray(func(x.at[i].add(-eps)))
            columns.append((base - down) / eps)
        elif scheme == "central":
            up = jnp.asarray(func(x.at[i].add(eps)))
            down = jnp.asarray(func(x.at[i].add(-eps)))
            columns.append((up - down) / (2.0 * eps))
        else:
            up2 = jnp.asarray(func(x.at[i].add(2.0 * eps)))
            up = jnp.asarray(func(x.at[i].add(eps)))
            down = jnp.asarray(func(x.at[i].add(-eps)))
            down2 = jnp.asarray(func(x.at[i].add(-2.0 * eps)))
            columns.append((-up2 + 8.0 * up - 8.0 * down + down2) / (12.0 * eps))
    return jnp.stack(columns, axis=1)


class VectorFieldFirstOrderDifferentiator:
    """Turns a vector field into a function returning its finite-difference Jacobian."""

    def __init__(self, eps: float = 1e-5, scheme: str = "central") -> None:
        self.scheme = _validate(eps, scheme)
        self.eps = float(eps)

    @classmethod
    def from_settings(
        cls, settings: FiniteDifferenceSettings
    ) -> "VectorFieldFirstOrderDifferentiator":
        return cls(eps=settings.eps, scheme=settings.scheme)

    def differentiate(
        self, func: Callable[[ArrayLike], ArrayLike]
    ) -> Callable[[ArrayLike], jnp.ndarray]:
        def jacobian(x: ArrayLike) -> jnp.ndarray:
            return finite_difference_jacobian(func, x, eps=self.eps, scheme=self.scheme)

        return jacobian


def jacobian_relative_error(analytic: ArrayLike, reference: ArrayLike) -> float:
    """Frobenius norm of the difference relative to the reference norm."""
    analytic = jnp.asarray(analytic)
    reference = jnp.asarray(reference)
    if analytic.shape != reference.shape:
        raise ValueError(
            f"Jacobian shapes differ: {analytic.shape} vs {reference.shape}"
        )
    scale = jnp.linalg.norm(reference)
    diff = jnp.linalg.norm(analytic - reference)
    if float(scale) == 0.0:
        return float(diff)
    return float(diff / scale)

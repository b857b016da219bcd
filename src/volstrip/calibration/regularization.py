"""Finite-difference smoothness penalties for calibrated parameter grids.

Stripping caplet volatilities from cap quotes is an ill-posed inverse
problem: there are more caplets than caps, and some grid cells are not
touched by any quote at all. The penalties here resolve this by adding

    λ ||D θ||²₂ = λ θᵗ (DᵗD) θ

to the least-squares objective, where D is a k-th order finite-difference
operator acting on the parameter vector θ.

For parameters living on a tensor (e.g. expiry x strike) that has been
flattened row-major (last index fastest), the penalty in direction d is

    I_pre ⊗ (D_dᵗ D_d) ⊗ I_post

where I_pre and I_post are identities sized by the product of the dimensions
before and after d. The total penalty is the λ-weighted sum over directions.

References
----------
Eilers, P. H. C., & Marx, B. D. (1996). "Flexible smoothing with B-splines
and penalties." Statistical Science, 11(2), 89-121.

Tikhonov, A. N., & Arsenin, V. Y. (1977). "Solutions of Ill-posed Problems."
Winston & Sons.
"""

from __future__ import annotations

from math import comb, prod
from typing import Sequence

import jax.numpy as jnp


def create_difference_matrix(n: int, order: int = 1) -> jnp.ndarray:
    """Create the square finite-difference operator of a given order.

    Row i (for i >= order) holds the binomial stencil
    ``(-1)^(order-j) C(order, j)`` on columns ``i - order + j``; the first
    ``order`` rows are zero, so there is no wraparound or boundary reflection.
    Order 0 gives the identity.

    Parameters
    ----------
    n : int
        Dimension of parameter vector
    order : int, optional
        Difference order (0 <= order < n)

    Returns
    -------
    Array
        Matrix of shape (n, n)

    Examples
    --------
    >>> D1 = create_difference_matrix(4, order=1)
    >>> # D1 @ x = [0, x1 - x0, x2 - x1, x3 - x2]
    """
    if n < 1:
        raise ValueError(f"n must be positive, got {n}")
    if order < 0:
        raise ValueError(f"order must be non-negative, got {order}")
    if order >= n:
        raise ValueError(f"difference order {order} too high for size {n}")
    if order == 0:
        return jnp.eye(n)

    stencil = jnp.array(
        [(-1) ** (order - j) * comb(order, j) for j in range(order + 1)], dtype=jnp.float64
    )
    D = jnp.zeros((n, n))
    for i in range(order, n):
        D = D.at[i, i - order : i + 1].set(stencil)
    return D


def difference_penalty_matrix(n: int, order: int) -> jnp.ndarray:
    """Penalty matrix DᵗD for a k-th order difference over ``n`` parameters.

    The result is symmetric and positive semi-definite; its null space is
    spanned by polynomials of degree < order.
    """
    if order < 1:
        raise ValueError(f"order must be at least 1, got {order}")
    D = create_difference_matrix(n, order)
    return D.T @ D


def _kron_embed(matrix: jnp.ndarray, shape: Sequence[int], axis: int) -> jnp.ndarray:
    pre = prod(shape[:axis])
    post = prod(shape[axis + 1 :])
    result = matrix
    if pre != 1:
        result = jnp.kron(jnp.eye(pre), result)
    if post != 1:
        result = jnp.kron(result, jnp.eye(post))
    return result


def _check_axis(shape: Sequence[int], axis: int) -> None:
    if not shape:
        raise ValueError("shape must have at least one dimension")
    if any(size < 1 for size in shape):
        raise ValueError(f"all dimensions must be positive, got {tuple(shape)}")
    if not 0 <= axis < len(shape):
        raise ValueError(f"axis {axis} out of range for shape {tuple(shape)}")


def directional_difference_operator(
    shape: Sequence[int], order: int, axis: int
) -> jnp.ndarray:
    """Difference operator acting along ``axis`` of a row-major flattened tensor."""
    _check_axis(shape, axis)
    return _kron_embed(create_difference_matrix(shape[axis], order), shape, axis)


def directional_penalty_matrix(shape: Sequence[int], order: int, axis: int) -> jnp.ndarray:
    """Penalty I_pre ⊗ (DᵗD) ⊗ I_post along ``axis`` of a row-major flattened tensor.

    For a one-dimensional shape this is exactly :func:`difference_penalty_matrix`.
    """
    _check_axis(shape, axis)
    return _kron_embed(difference_penalty_matrix(shape[axis], order), shape, axis)


class SmoothnessRegularizer:
    """Curvature penalty on a tensor of parameters, one strength per direction.

    Penalizes roughness of a flattened parameter tensor (for caplet stripping,
    the expiry x strike volatility grid) by adding
    Σ_d λ_d ||D_d θ||² to the objective. A direction with λ_d = 0 is not
    smoothed at all.
    """

    def __init__(
        self,
        shape: Sequence[int],
        orders: Sequence[int],
        lambdas: Sequence[float],
    ):
        """Initialize smoothness regularizer.

        Parameters
        ----------
        shape : sequence of int
            Size of the parameter tensor in each direction
        orders : sequence of int
            Difference order per direction
        lambdas : sequence of float
            Penalty strength per direction (non-negative)
        """
        shape = tuple(int(s) for s in shape)
        orders = tuple(int(k) for k in orders)
        lambdas = tuple(float(lam) for lam in lambdas)
        if not (len(shape) == len(orders) == len(lambdas)):
            raise ValueError(
                f"shape, orders and lambdas must have the same length, got "
                f"{len(shape)}, {len(orders)}, {len(lambdas)}"
            )
        if any(size < 1 for size in shape):
            raise ValueError(f"all dimensions must be positive, got {shape}")
        for axis, (size, order, lam) in enumerate(zip(shape, orders, lambdas)):
            if lam < 0.0:
                raise ValueError(f"lambda must be non-negative, got {lam} for axis {axis}")
            if lam > 0.0 and not 1 <= order < size:
                raise ValueError(
                    f"difference order {order} invalid for axis {axis} of size {size}"
                )

        self.shape = shape
        self.orders = orders
        self.lambdas = lambdas
        self.size = prod(shape)

    @property
    def active_axes(self) -> tuple[int, ...]:
        return tuple(axis for axis, lam in enumerate(self.lambdas) if lam > 0.0)

    def penalty_matrix(self) -> jnp.ndarray:
        """Total penalty matrix P = Σ_d λ_d (I_pre ⊗ D_dᵗD_d ⊗ I_post)."""
        P = jnp.zeros((self.size, self.size))
        for axis in self.active_axes:
            P = P + self.lambdas[axis] * directional_penalty_matrix(
                self.shape, self.orders[axis], axis
            )
        return P

    def square_root_operator(self) -> jnp.ndarray:
        """Stacked operator R with RᵗR equal to :meth:`penalty_matrix`.

        Each active direction contributes the rows sqrt(λ_d) (I ⊗ D_d ⊗ I),
        so ||R θ||² can be appended to a residual vector.
        """
        blocks = [
            jnp.sqrt(self.lambdas[axis])
            * directional_difference_operator(self.shape, self.orders[axis], axis)
            for axis in self.active_axes
        ]
        if not blocks:
            return jnp.zeros((0, self.size))
        return jnp.concatenate(blocks, axis=0)

    def penalty(self, params: jnp.ndarray) -> float:
        """Compute θᵗ P θ for a flattened parameter vector."""
        params = jnp.asarray(params)
        if params.shape != (self.size,):
            raise ValueError(f"params must have shape ({self.size},), got {params.shape}")
        return float(params @ self.penalty_matrix() @ params)


__all__ = [
    "SmoothnessRegularizer",
    "create_difference_matrix",
    "difference_penalty_matrix",
    "directional_difference_operator",
    "directional_penalty_matrix",
]

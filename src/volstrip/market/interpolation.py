"""Interpolation of volatility nodes.

Provides the interpolators used to re-sample a fitted caplet volatility
surface on a regular grid:
- Linear interpolation in one dimension with flat extrapolation
- Bilinear interpolation on a rectangular (x, y) grid
- Linear interpolation on scattered (x, y) nodes, nearest-node outside the hull
"""
from __future__ import annotations

from typing import Sequence

import jax
import jax.numpy as jnp
import numpy as np
from jax import jit
from scipy.interpolate import LinearNDInterpolator, NearestNDInterpolator
from scipy.spatial import QhullError


@jit
def linear_interpolation(x: jnp.ndarray, y: jnp.ndarray, x_new: float) -> float:
    """Linear interpolation.

    Parameters
    ----------
    x : Array
        Known x-coordinates (must be sorted, at least two points)
    y : Array
        Known y-coordinates
    x_new : float
        Point at which to interpolate

    Returns
    -------
    float
        Interpolated value at x_new

    Notes
    -----
    For points outside the range, uses flat extrapolation (returns boundary value).

    Examples
    --------
    >>> x = jnp.array([0.0, 1.0, 2.0])
    >>> y = jnp.array([0.0, 1.0, 4.0])
    >>> linear_interpolation(x, y, 1.5)
    2.5
    """
    x_new = jnp.clip(x_new, x[0], x[-1])

    i = jnp.searchsorted(x, x_new) - 1
    i = jnp.clip(i, 0, len(x) - 2)

    x0, x1 = x[i], x[i + 1]
    y0, y1 = y[i], y[i + 1]

    dx = x1 - x0
    slope = jnp.where(dx > 1e-10, (y1 - y0) / dx, 0.0)

    return y0 + slope * (x_new - x0)


class GridInterpolator2D:
    """Bilinear interpolation on a rectangular grid with flat extrapolation.

    ``values[i, j]`` is the value at ``(x_nodes[i], y_nodes[j])``. An axis with
    a single node is treated as constant in that direction.
    """

    def __init__(
        self,
        x_nodes: Sequence[float],
        y_nodes: Sequence[float],
        values: Sequence[Sequence[float]],
    ):
        self.x_nodes = jnp.asarray(x_nodes, dtype=jnp.float64)
        self.y_nodes = jnp.asarray(y_nodes, dtype=jnp.float64)
        self.values = jnp.asarray(values, dtype=jnp.float64)
        expected = (self.x_nodes.shape[0], self.y_nodes.shape[0])
        if self.values.shape != expected:
            raise ValueError(f"values shape {self.values.shape} != node shape {expected}")
        if expected[0] == 0 or expected[1] == 0:
            raise ValueError("Grid must have at least one node in each direction")
        if bool(jnp.any(jnp.diff(self.x_nodes) <= 0.0)) or bool(
            jnp.any(jnp.diff(self.y_nodes) <= 0.0)
        ):
            raise ValueError("Grid nodes must be strictly increasing")

    def _along_y(self, row: jnp.ndarray, y: float) -> jnp.ndarray:
        if self.y_nodes.shape[0] == 1:
            return row[0]
        return linear_interpolation(self.y_nodes, row, y)

    def interpolate(self, x: float, y: float) -> float:
        column = jnp.stack([self._along_y(row, y) for row in self.values])
        if self.x_nodes.shape[0] == 1:
            return float(column[0])
        return float(linear_interpolation(self.x_nodes, column, x))

    def sample(self, x_samples: Sequence[float], y_samples: Sequence[float]) -> jnp.ndarray:
        """Evaluate on the tensor grid ``x_samples x y_samples``."""
        x_samples = jnp.asarray(x_samples, dtype=jnp.float64)
        y_samples = jnp.asarray(y_samples, dtype=jnp.float64)

        if self.y_nodes.shape[0] == 1:
            by_row = jnp.repeat(self.values[:, :1], y_samples.shape[0], axis=1)
        else:
            interp_y = jax.vmap(linear_interpolation, in_axes=(None, None, 0))
            by_row = jnp.stack([interp_y(self.y_nodes, row, y_samples) for row in self.values])

        if self.x_nodes.shape[0] == 1:
            return jnp.repeat(by_row[:1, :], x_samples.shape[0], axis=0)
        interp_x = jax.vmap(linear_interpolation, in_axes=(None, None, 0))
        return jnp.stack(
            [interp_x(self.x_nodes, by_row[:, j], x_samples) for j in range(by_row.shape[1])],
            axis=1,
        )

    def __call__(self, x: float, y: float) -> float:
        return self.interpolate(x, y)


class ScatteredInterpolator2D:
    """Linear interpolation over scattered nodes.

    Inside the convex hull of the nodes a Delaunay-based linear interpolant is
    used; outside it (or when the nodes are collinear) the nearest node value
    is returned.
    """

    def __init__(
        self,
        x: Sequence[float],
        y: Sequence[float],
        values: Sequence[float],
    ):
        points = np.column_stack([np.asarray(x, dtype=float), np.asarray(y, dtype=float)])
        values_arr = np.asarray(values, dtype=float)
        if points.shape[0] != values_arr.shape[0]:
            raise ValueError("x, y and values must have the same length")
        if points.shape[0] == 0:
            raise ValueError("At least one node is required")

        # x and y live on different scales (years vs rates)
        self._offset = points.min(axis=0)
        span = points.max(axis=0) - self._offset
        self._scale = np.where(span > 0.0, span, 1.0)
        scaled = (points - self._offset) / self._scale

        self._nearest = NearestNDInterpolator(scaled, values_arr)
        try:
            self._linear = LinearNDInterpolator(scaled, values_arr)
        except (QhullError, ValueError):
            self._linear = None

    def _evaluate(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        scaled = (np.column_stack([x, y]) - self._offset) / self._scale
        nearest = self._nearest(scaled)
        if self._linear is None:
            return nearest
        linear = self._linear(scaled)
        return np.where(np.isnan(linear), nearest, linear)

    def interpolate(self, x: float, y: float) -> float:
        return float(self._evaluate(np.array([x]), np.array([y]))[0])

    def sample(self, x_samples: Sequence[float], y_samples: Sequence[float]) -> jnp.ndarray:
        """Evaluate on the tensor grid ``x_samples x y_samples``."""
        xx, yy = np.meshgrid(
            np.asarray(x_samples, dtype=float), np.asarray(y_samples, dtype=float), indexing="ij"
        )
        flat = self._evaluate(xx.ravel(), yy.ravel())
        return jnp.asarray(flat.reshape(xx.shape))

    def __call__(self, x: float, y: float) -> float:
        return self.interpolate(x, y)


__all__ = [
    "GridInterpolator2D",
    "ScatteredInterpolator2D",
    "linear_interpolation",
]

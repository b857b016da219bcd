"""Maps from model parameters to caplet volatilities."""
from __future__ import annotations

from abc import ABC, abstractmethod

import jax.numpy as jnp
from jax import Array


class DiscreteVolatilityFunctionProvider(ABC):
    """Turns a parameter vector into one volatility per caplet node.

    Subclasses define how many parameters they take (``num_parameters``), how
    many volatilities they produce (``size``), the mapping itself and its
    Jacobian ``∂vol/∂param`` of shape (size, num_parameters).
    """

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of caplet volatilities produced."""

    @property
    @abstractmethod
    def num_parameters(self) -> int:
        """Length of the parameter vector."""

    @abstractmethod
    def evaluate(self, params: Array) -> Array:
        """Caplet volatilities for ``params``."""

    @abstractmethod
    def jacobian(self, params: Array) -> Array:
        """Jacobian of :meth:`evaluate` with respect to ``params``."""

    def _check(self, params: Array) -> Array:
        params = jnp.asarray(params, dtype=jnp.float64)
        if params.shape != (self.num_parameters,):
            raise ValueError(
                f"expected {self.num_parameters} parameters, got shape {params.shape}"
            )
        return params

    def __call__(self, params: Array) -> Array:
        return self.evaluate(params)


class DirectVolatilityFunctionProvider(DiscreteVolatilityFunctionProvider):
    """One parameter per caplet node: the parameters are the volatilities."""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"size must be positive, got {size}")
        self._size = int(size)

    @property
    def size(self) -> int:
        return self._size

    @property
    def num_parameters(self) -> int:
        return self._size

    def evaluate(self, params: Array) -> Array:
        return self._check(params)

    def jacobian(self, params: Array) -> Array:
        self._check(params)
        return jnp.eye(self._size)


__all__ = ["DirectVolatilityFunctionProvider", "DiscreteVolatilityFunctionProvider"]

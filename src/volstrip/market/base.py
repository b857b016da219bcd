"""
Base protocols for the market data consumed by the caplet stripping code.

- DiscountCurve: discount factors and continuously-compounded rates
- CurveProvider: curve bundle keyed by currency (discounting) and index
  (projection), read-only
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from jax import Array


@runtime_checkable
class DiscountCurve(Protocol):
    """
    Protocol for discount factor curves.
    """

    def df(self, t: float | Array) -> float | Array:
        """
        Compute discount factor to time t.

        Args:
            t: Time(s) in years from reference date

        Returns:
            Discount factor(s) DF(0, t)
        """
        ...

    def __call__(self, t: float | Array) -> float | Array:
        """Convenience method: curve(t) is equivalent to curve.df(t)."""
        ...


@runtime_checkable
class CurveProvider(Protocol):
    """
    Protocol for the curve bundle used to price caplets.

    Discounting is looked up by currency, forward projection by index name.
    """

    def has_currency(self, currency: str) -> bool:
        ...

    def has_index(self, index: str) -> bool:
        ...

    def get_discount_factor(self, currency: str, time: float | Array) -> float | Array:
        """
        Discount factor in ``currency`` from the reference date to ``time``.
        """
        ...

    def get_forward_rate(
        self,
        index: str,
        start: float | Array,
        end: float | Array,
        accrual: float | Array,
    ) -> float | Array:
        """
        Simply-compounded forward rate of ``index`` over [start, end].

        Args:
            index: Index name (e.g. "USD-LIBOR-3M")
            start: Accrual start time in years
            end: Accrual end time in years
            accrual: Accrual factor of the period

        Returns:
            Forward rate such that 1 + accrual * F = P(start) / P(end)
        """
        ...

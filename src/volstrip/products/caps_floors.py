"""Interest rate caps and floors.

Caps and floors are portfolios of options on interest rates:
- Cap: Portfolio of caplets (call options on a forward rate)
- Floor: Portfolio of floorlets (put options on a forward rate)

Each caplet/floorlet pays notional x max(rate - strike, 0) x accrual (or the
put equivalent) at the end of its accrual period, with the rate fixed at the
fixing time. The instruments here are plain schedules; forward rates and
discount factors come from a curve provider at pricing time.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum


class CapFloorType(Enum):
    """Type of cap/floor instrument."""

    CAP = "cap"
    FLOOR = "floor"


@dataclass(frozen=True)
class CapletPeriod:
    """A single accrual period of a cap or floor.

    Attributes:
        fixing_time: Time (years) at which the rate is fixed; the option expiry
        start_time: Accrual start time
        end_time: Accrual end time
        payment_time: Payment time
        accrual_factor: Year fraction of the accrual period
        notional: Notional principal amount
    """

    fixing_time: float
    start_time: float
    end_time: float
    payment_time: float
    accrual_factor: float
    notional: float = 1.0

    def __post_init__(self):
        if self.fixing_time < 0.0:
            raise ValueError(f"fixing_time must be non-negative, got {self.fixing_time}")
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time {self.end_time} must be after start_time {self.start_time}"
            )
        if self.accrual_factor <= 0.0:
            raise ValueError(f"accrual_factor must be positive, got {self.accrual_factor}")
        if self.payment_time < self.start_time:
            raise ValueError("payment_time must not precede start_time")


@dataclass(frozen=True)
class CapFloor:
    """Interest rate cap or floor: a strip of caplets/floorlets sharing a strike.

    Attributes:
        strike: Strike rate
        periods: Caplet periods, ordered by fixing time
        cap_floor_type: CAP or FLOOR
        currency: Currency used to look up the discount curve
        index: Rate index used to look up the forward curve
    """

    strike: float
    periods: tuple[CapletPeriod, ...]
    cap_floor_type: CapFloorType = CapFloorType.CAP
    currency: str = "USD"
    index: str = "USD-LIBOR-3M"

    def __post_init__(self):
        object.__setattr__(self, "periods", tuple(self.periods))
        if not self.periods:
            raise ValueError("A cap/floor must contain at least one period")
        if not math.isfinite(self.strike):
            raise ValueError(f"strike must be finite, got {self.strike}")
        fixings = [p.fixing_time for p in self.periods]
        if any(b < a for a, b in zip(fixings, fixings[1:])):
            raise ValueError("periods must be ordered by fixing time")

    @property
    def is_cap(self) -> bool:
        return self.cap_floor_type is CapFloorType.CAP

    @property
    def num_caplets(self) -> int:
        return len(self.periods)

    @property
    def start_time(self) -> float:
        return self.periods[0].start_time

    @property
    def end_time(self) -> float:
        return self.periods[-1].end_time

    @property
    def fixing_times(self) -> tuple[float, ...]:
        return tuple(p.fixing_time for p in self.periods)

    @classmethod
    def from_schedule(
        cls,
        strike: float,
        start: float,
        maturity: float,
        payment_frequency: int = 4,
        notional: float = 1.0,
        cap_floor_type: CapFloorType = CapFloorType.CAP,
        currency: str = "USD",
        index: str = "USD-LIBOR-3M",
    ) -> "CapFloor":
        """Build a regular cap/floor from ``start`` to ``maturity``.

        Periods are 1/payment_frequency years long, fixed in advance (at the
        period start) and paid in arrears.
        """
        if payment_frequency <= 0:
            raise ValueError(f"payment_frequency must be positive, got {payment_frequency}")
        tau = 1.0 / payment_frequency
        n_periods = int(round((maturity - start) * payment_frequency))
        if n_periods <= 0:
            raise ValueError(f"maturity {maturity} must be after start {start}")

        periods = []
        for i in range(n_periods):
            period_start = start + i * tau
            period_end = start + (i + 1) * tau
            periods.append(
                CapletPeriod(
                    fixing_time=period_start,
                    start_time=period_start,
                    end_time=period_end,
                    payment_time=period_end,
                    accrual_factor=tau,
                    notional=notional,
                )
            )
        return cls(
            strike=strike,
            periods=tuple(periods),
            cap_floor_type=cap_floor_type,
            currency=currency,
            index=index,
        )


__all__ = ["CapFloor", "CapFloorType", "CapletPeriod"]

"""Annual-leave balance ledger.

The stored balance is a JSON object keyed by calendar year, e.g.
``{"2024": 12, "2023": 4}``. For a request starting in year *Y* three
buckets are usable, consumed in this order:

  1. ``Y-2`` (two years ago), capped at ``CARRY_OVER_CAP``
  2. ``Y-1`` (carry-over), capped at ``CARRY_OVER_CAP``
  3. ``Y``   (current-year allotment), uncapped

The cap is applied when the buckets are read, not when they are stored, so
a raw previous-year value may exceed the cap until the corrective job runs.

Everything here is pure: functions take a balance mapping and return a new
``dict``. Persisting the result is the caller's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from leavedesk.common.constants import (
    ANNUAL_ALLOTMENT,
    CARRY_OVER_CAP,
    FIRST_RUN_PREVIOUS_YEAR,
)
from leavedesk.common.exceptions import (
    InconsistentUsageException,
    InsufficientBalanceException,
)


# ── Reading ─────────────────────────────────────────────────────────

def _as_days(value: Any) -> Optional[int]:
    """Coerce a stored balance value to a day count; ``None`` if unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def read_year(balance: Optional[Mapping[str, Any]], year: int) -> int:
    """Raw days stored for *year*; missing or non-numeric reads as 0."""
    days = _as_days((balance or {}).get(str(year)))
    return max(days or 0, 0)


def remaining_balance(balance: Optional[Mapping[str, Any]], year: int) -> int:
    return read_year(balance, year)


@dataclass(frozen=True)
class BalanceBuckets:
    """Days usable by a request starting in ``year``, already capped."""

    year: int
    two_years_ago: int
    carry_over: int
    current: int

    @property
    def total(self) -> int:
        return self.two_years_ago + self.carry_over + self.current

    @classmethod
    def resolve(cls, balance: Optional[Mapping[str, Any]], year: int) -> BalanceBuckets:
        return cls(
            year=year,
            two_years_ago=min(CARRY_OVER_CAP, read_year(balance, year - 2)),
            carry_over=min(CARRY_OVER_CAP, read_year(balance, year - 1)),
            current=read_year(balance, year),
        )


# ── Consumption ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Consumption:
    """How many days a request draws from each bucket."""

    used_n2: int = 0
    used_carry: int = 0
    used_current: int = 0

    @property
    def total(self) -> int:
        return self.used_n2 + self.used_carry + self.used_current

    def by_year(self, year: int) -> list[tuple[int, int]]:
        return [
            (year - 2, self.used_n2),
            (year - 1, self.used_carry),
            (year, self.used_current),
        ]


def compute_consumption(buckets: BalanceBuckets, working_days: int) -> Consumption:
    """Split *working_days* across the buckets, oldest first.

    Raises ``InsufficientBalanceException`` when the buckets together hold
    fewer days than requested.
    """
    available = buckets.total
    if available < working_days:
        raise InsufficientBalanceException(requested=working_days, available=available)

    used_n2 = min(buckets.two_years_ago, working_days)
    used_carry = min(buckets.carry_over, working_days - used_n2)
    used_current = working_days - used_n2 - used_carry

    consumption = Consumption(used_n2, used_carry, used_current)
    check_consumption(consumption, working_days)
    return consumption


def check_consumption(consumption: Consumption, working_days: int) -> None:
    """The split must be non-negative and account for every working day."""
    parts = (consumption.used_n2, consumption.used_carry, consumption.used_current)
    if any(p < 0 for p in parts) or consumption.total != working_days:
        raise InconsistentUsageException(
            working_days=working_days, used_total=consumption.total
        )


def apply_consumption(
    balance: Optional[Mapping[str, Any]],
    year: int,
    consumption: Consumption,
) -> dict[str, Any]:
    """Subtract each bucket's usage from its year key (never below 0)."""
    result = dict(balance or {})
    for key_year, used in consumption.by_year(year):
        if used > 0:
            result[str(key_year)] = max(0, read_year(result, key_year) - used)
    return result


def restore_consumption(
    balance: Optional[Mapping[str, Any]],
    year: int,
    consumption: Consumption,
) -> dict[str, Any]:
    """Add each bucket's usage back onto its year key."""
    result = dict(balance or {})
    for key_year, used in consumption.by_year(year):
        if used > 0:
            result[str(key_year)] = read_year(result, key_year) + used
    return result


# ── Maintenance ─────────────────────────────────────────────────────

def cap_and_fill_balance(
    balance: Optional[Mapping[str, Any]],
    current_year: int,
) -> tuple[dict[str, Any], bool]:
    """Corrective pass for one employee.

    Returns ``(new_balance, capped)``. The result keeps only the current and
    previous year keys: a missing current year becomes the annual allotment,
    a missing previous year becomes the first-run default, and a previous
    year above the carry-over cap is cut down to it.
    """
    balance = balance or {}
    current = _as_days(balance.get(str(current_year)))
    previous = _as_days(balance.get(str(current_year - 1)))

    if current is None:
        current = ANNUAL_ALLOTMENT

    capped = False
    if previous is None:
        previous = FIRST_RUN_PREVIOUS_YEAR
    elif previous > CARRY_OVER_CAP:
        previous = CARRY_OVER_CAP
        capped = True

    return {str(current_year): current, str(current_year - 1): previous}, capped


def rollover_balance(
    balance: Optional[Mapping[str, Any]],
    new_year: int,
    used_in_previous_year: int,
) -> dict[str, Any]:
    """Open *new_year*: carry what is left of the previous year, reset the
    current year to the allotment, drop the two-years-ago key."""
    result = dict(balance or {})
    prev_key, old_key = str(new_year - 1), str(new_year - 2)

    previous = _as_days(result.get(prev_key))
    if previous is None:
        previous = ANNUAL_ALLOTMENT

    result[prev_key] = min(CARRY_OVER_CAP, max(0, previous - used_in_previous_year))
    result[str(new_year)] = ANNUAL_ALLOTMENT
    result.pop(old_key, None)
    return result


def set_year_balance(
    balance: Optional[Mapping[str, Any]],
    year: int,
    days: int,
) -> dict[str, Any]:
    result = dict(balance or {})
    result[str(year)] = days
    return result

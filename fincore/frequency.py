"""Conversion of recurring amounts to a common monthly basis.

Every monthly figure in the project goes through ``monthly_equivalent``;
nothing else keeps its own table of periods per month.
"""

import calendar
from datetime import date, timedelta
from types import MappingProxyType

# periods per month
MONTHLY_MULTIPLIERS = MappingProxyType({
    "daily": 30.0,
    "weekly": 4.33,
    "bi-weekly": 2.17,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "semi-annually": 1 / 6,
    "annually": 1 / 12,
    "yearly": 1 / 12,
    "one-time": 0.0,
})

_DAY_STEPS = {"daily": 1, "weekly": 7, "bi-weekly": 14}
_MONTH_STEPS = {"monthly": 1, "quarterly": 3, "semi-annually": 6, "annually": 12, "yearly": 12}


def multiplier(frequency: str) -> float:
    try:
        return MONTHLY_MULTIPLIERS[frequency]
    except KeyError:
        raise ValueError(f"unknown frequency: {frequency!r}") from None


def monthly_equivalent(amount: float, frequency: str) -> float:
    return amount * multiplier(frequency)


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping to the last day of a shorter month."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_due_date(today: date, frequency: str) -> date:
    """One period of ``frequency`` after ``today``; one-time entries stay on ``today``."""
    if frequency in _DAY_STEPS:
        return today + timedelta(days=_DAY_STEPS[frequency])
    if frequency in _MONTH_STEPS:
        return add_months(today, _MONTH_STEPS[frequency])
    if frequency == "one-time":
        return today
    raise ValueError(f"unknown frequency: {frequency!r}")

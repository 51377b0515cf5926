from collections import defaultdict
from functools import lru_cache
from typing import Callable, Generic, Iterable, Tuple, TypeVar

from fincore.domain import Transaction
from fincore.events import ChangeEvent, EventBus

T = TypeVar("T")


# Snapshots are tuples of frozen dataclasses, so they hash and can key the cache.
@lru_cache(maxsize=64)
def monthly_cash_flow(trans: Tuple[Transaction, ...]) -> Tuple[Tuple[str, float, float, float], ...]:
    """(yyyy-MM, income, expenses, net) per month present in ``trans``, oldest first."""
    income = defaultdict(float)
    spent = defaultdict(float)
    for t in trans:
        month = t.date[:7]
        if t.kind == "income":
            income[month] += t.amount
        else:
            spent[month] += t.amount
    months = sorted(set(income) | set(spent))
    return tuple((m, income[m], spent[m], income[m] - spent[m]) for m in months)


@lru_cache(maxsize=256)
def average_monthly_spend(category: str, trans: Tuple[Transaction, ...], period: int) -> float:
    """Mean monthly spending in a category over the last ``period`` months that had any."""
    monthly = defaultdict(float)

    for t in trans:
        if t.category == category and t.kind == "expense":
            monthly[t.date[:7]] += t.amount

    if not monthly or period <= 0:
        return 0.0

    recent = sorted(monthly)[-period:]
    return sum(monthly[m] for m in recent) / len(recent)


class DerivedView(Generic[T]):
    """A value computed from the store and recomputed after relevant changes.

    The view subscribes to the given change events and only marks itself
    stale when one arrives; the computation runs on the next ``value`` read.
    A view that is never read never recomputes.
    """

    def __init__(self, bus: EventBus, depends_on: Iterable[str], compute: Callable[[], T]):
        self._compute = compute
        self._stale = True
        self._value = None
        self.recomputes = 0
        self._unsubscribers = [bus.subscribe(name, self._invalidate) for name in depends_on]

    def _invalidate(self, event: ChangeEvent, payload: dict) -> None:
        self._stale = True

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def value(self) -> T:
        if self._stale:
            self._value = self._compute()
            self._stale = False
            self.recomputes += 1
        return self._value

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

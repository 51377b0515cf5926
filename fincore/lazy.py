from collections import defaultdict
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

from fincore.domain import Transaction


def iter_transactions(
    trans: Iterable[Transaction], pred: Callable[[Transaction], bool]
) -> Iterator[Transaction]:
    for t in trans:
        if pred(t):
            yield t


def lazy_top_categories(trans: Iterable[Transaction], k: Optional[int] = None, kind: str = "expense") -> Iterator[Tuple[str, float]]:
    """Largest categories of one kind, biggest first; all of them when k is None."""
    totals_by_category: Dict[str, float] = defaultdict(float)

    for t in iter_transactions(trans, lambda t: t.kind == kind):
        totals_by_category[t.category] += t.amount

    ordered = sorted(totals_by_category.items(), key=lambda item: (-item[1], item[0]))

    if k is not None:
        ordered = ordered[: max(0, k)]

    for name, total in ordered:
        yield name, total


def category_shares(trans: Iterable[Transaction], kind: str = "expense") -> Iterator[Tuple[str, float, float]]:
    """(category, total, percent of the kind's total) for every category."""
    rows = list(lazy_top_categories(trans, kind=kind))
    grand = sum(total for _, total in rows)
    for name, total in rows:
        yield name, total, (total / grand * 100 if grand else 0.0)

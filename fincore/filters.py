"""Filter engine for the transaction list.

Each predicate factory returns a closure over one filter field. A field
at its neutral value (``"all"``, ``None``, empty set, empty string)
contributes no predicate at all, and the surviving predicates are
AND-combined. Input order is preserved.
"""

import dataclasses
from typing import Callable, Iterable, List, Optional, Tuple

from fincore.domain import FILTER_TYPES, DateRange, FilterState, Transaction

Predicate = Callable[[Transaction], bool]

DEFAULT_FILTERS = FilterState()


def by_kind(kind: str) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.kind == kind

    return _filter


def by_date_range(start: str, end: str) -> Predicate:
    # yyyy-MM-dd strings order the same way as the dates they name
    def _filter(t: Transaction) -> bool:
        return start <= t.date <= end

    return _filter


def by_categories(categories: Iterable[str]) -> Predicate:
    allowed = frozenset(categories)

    def _filter(t: Transaction) -> bool:
        return t.category in allowed

    return _filter


def by_search(term: str) -> Predicate:
    needle = term.lower()

    def _filter(t: Transaction) -> bool:
        return needle in t.description.lower() or needle in t.category.lower()

    return _filter


def predicates_for(filters: FilterState) -> List[Predicate]:
    preds = []
    if filters.type != "all":
        preds.append(by_kind(filters.type))
    if filters.date_range is not None:
        preds.append(by_date_range(filters.date_range.start, filters.date_range.end))
    if filters.categories:
        preds.append(by_categories(filters.categories))
    if filters.search_term:
        preds.append(by_search(filters.search_term))
    return preds


def apply_filters(trans: Iterable[Transaction], filters: FilterState) -> Tuple[Transaction, ...]:
    preds = predicates_for(filters)
    return tuple(t for t in trans if all(p(t) for p in preds))


def merge_filters(current: FilterState, **changes) -> FilterState:
    """Partial update of a filter state, normalising loose inputs."""
    unknown = set(changes) - {f.name for f in dataclasses.fields(FilterState)}
    if unknown:
        raise ValueError(f"unknown filter fields: {sorted(unknown)}")
    if "type" in changes and changes["type"] not in FILTER_TYPES:
        raise ValueError(f"filter type must be one of {FILTER_TYPES}")
    if "categories" in changes:
        changes["categories"] = frozenset(changes["categories"] or ())
    if "search_term" in changes:
        changes["search_term"] = changes["search_term"] or ""
    if "date_range" in changes:
        changes["date_range"] = _as_date_range(changes["date_range"])
    return dataclasses.replace(current, **changes)


def _as_date_range(value) -> Optional[DateRange]:
    if value is None or isinstance(value, DateRange):
        return value
    start, end = value
    return DateRange(start=str(start), end=str(end))

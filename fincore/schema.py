"""Record shapes at the persistence boundary.

Backends hand back plain dicts. ``from_record`` checks them structurally
against the entity dataclass before anything reaches the aggregation
code, and ``to_record`` produces the JSON-friendly dict that gets stored.
"""

import dataclasses
import typing
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, NamedTuple, Tuple

from fincore import events
from fincore.domain import BudgetLine, CreditCard, Expense, FinancialGoal, Income, Investment, Loan, Transaction
from fincore.frequency import next_due_date
from fincore.functional import Either, Left, Right, sequence
from fincore import validation

# columns the remote service adds to every row
SERVICE_COLUMNS = frozenset({"user_id"})


def _stamp_updated(entity, now: datetime):
    return dataclasses.replace(entity, updated_at=now.isoformat())


def _stamp_expense(entity: Expense, now: datetime) -> Expense:
    due = next_due_date(now.date(), entity.frequency)
    return dataclasses.replace(entity, updated_at=now.isoformat(), next_due_date=due.isoformat())


def _stamp_budget_line(entity: BudgetLine, now: datetime) -> BudgetLine:
    values = entity.monthly_values
    if isinstance(values, list):
        values = tuple(values)
    return dataclasses.replace(entity, monthly_values=values, updated_at=now.isoformat())


def _keep(entity, now: datetime):
    return entity


class EntityType(NamedTuple):
    name: str
    cls: type
    storage_key: str
    event: str
    validate: Callable[..., Either]
    stamp: Callable[[Any, datetime], Any]


ENTITY_TYPES: Dict[str, EntityType] = {
    et.name: et
    for et in (
        EntityType("transactions", Transaction, "finance_transactions", events.TRANSACTIONS_CHANGED,
                   validation.validate_transaction, _keep),
        EntityType("expenses", Expense, "finance_expenses", events.EXPENSES_CHANGED,
                   validation.validate_expense, _stamp_expense),
        EntityType("incomes", Income, "finance_incomes", events.INCOMES_CHANGED,
                   validation.validate_income, _stamp_updated),
        EntityType("credit_cards", CreditCard, "finance_credit_cards", events.CREDIT_CARDS_CHANGED,
                   validation.validate_credit_card, _stamp_updated),
        EntityType("loans", Loan, "finance_loans", events.LOANS_CHANGED,
                   validation.validate_loan, _stamp_updated),
        EntityType("goals", FinancialGoal, "finance_goals", events.GOALS_CHANGED,
                   validation.validate_goal, _stamp_updated),
        EntityType("investments", Investment, "investments", events.INVESTMENTS_CHANGED,
                   validation.validate_investment, _stamp_updated),
        EntityType("budget_lines", BudgetLine, "budget-planner-data", events.BUDGET_LINES_CHANGED,
                   validation.validate_budget_line, _stamp_budget_line),
    )
}


def entity_type(name: str) -> EntityType:
    try:
        return ENTITY_TYPES[name]
    except KeyError:
        raise KeyError(f"unknown entity type: {name!r}") from None


def _coerce(value: Any, hint: Any) -> Tuple[bool, Any]:
    """Return (ok, value) for one field; numbers from JSON may need widening."""
    origin = typing.get_origin(hint)
    if origin is typing.Union:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if value is None:
            return True, None
        return _coerce(value, args[0])
    if origin in (tuple, Tuple):
        if not isinstance(value, (list, tuple)):
            return False, value
        items = [_coerce(v, typing.get_args(hint)[0]) for v in value]
        if not all(ok for ok, _ in items):
            return False, value
        return True, tuple(v for _, v in items)
    if hint is bool:
        return isinstance(value, bool), value
    if hint is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False, value
        return True, float(value)
    if hint is int:
        if isinstance(value, bool):
            return False, value
        if isinstance(value, float) and value.is_integer():
            return True, int(value)
        return isinstance(value, int), value
    if hint is str:
        return isinstance(value, str), value
    return True, value


def from_record(cls: type, record: Mapping[str, Any]) -> Either[dict, Any]:
    if not isinstance(record, Mapping):
        return Left({"error": "not_a_record", "field": None, "message": f"expected a mapping, got {type(record).__name__}"})
    hints = typing.get_type_hints(cls)
    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name not in record:
            if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                return Left({"error": "missing_field", "field": f.name, "message": f"{cls.__name__} needs {f.name}"})
            continue
        ok, value = _coerce(record[f.name], hints[f.name])
        if not ok:
            return Left({
                "error": "wrong_type",
                "field": f.name,
                "message": f"{cls.__name__}.{f.name} has unexpected value {record[f.name]!r}",
            })
        kwargs[f.name] = value
    unknown = set(record) - set(kwargs) - {f.name for f in dataclasses.fields(cls)} - SERVICE_COLUMNS
    if unknown:
        return Left({"error": "unknown_field", "field": sorted(unknown)[0], "message": f"unexpected fields {sorted(unknown)}"})
    return Right(cls(**kwargs))


def from_records(cls: type, records: Iterable[Mapping[str, Any]]) -> Either[dict, tuple]:
    """All-or-nothing: one bad record rejects the whole batch."""
    return sequence(from_record(cls, r) for r in records)


def to_record(entity) -> dict:
    record = dataclasses.asdict(entity)
    for key, value in record.items():
        if isinstance(value, tuple):
            record[key] = list(value)
    return record


def changed_fields(old, new) -> dict:
    before, after = to_record(old), to_record(new)
    return {k: v for k, v in after.items() if before.get(k) != v}

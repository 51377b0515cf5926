"""Entity validators.

Each validator takes an entity and returns ``Right(entity)`` or a
``Left`` holding an error dict with ``error``, ``field`` and ``message``.
Validators are pure; the record store decides what to do with a Left.
"""

import re
from datetime import date
from typing import Callable, Optional

from fincore.domain import (
    BUDGET_KINDS,
    CARD_TYPES,
    EXPENSE_CATEGORIES,
    EXPENSE_FREQUENCIES,
    EXPENSE_TYPES,
    GOAL_TYPES,
    INCOME_FREQUENCIES,
    INVESTMENT_CATEGORIES,
    LOAN_TYPES,
    MONTHS_PER_YEAR,
    PRIORITIES,
    TRANSACTION_KINDS,
    BudgetLine,
    CreditCard,
    Expense,
    FinancialGoal,
    Income,
    Investment,
    Loan,
    Transaction,
)
from fincore.functional import Either, Left, Right

ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MAX_NAME_LENGTH = 100
MAX_CARD_NAME_LENGTH = 50
MAX_SYMBOL_LENGTH = 10
MAX_PLATFORM_LENGTH = 50


def _error(code: str, field: str, message: str) -> dict:
    return {"error": code, "field": field, "message": message}


def _text(value: str, field: str, label: str, max_length: int = MAX_NAME_LENGTH) -> Optional[dict]:
    if not isinstance(value, str) or not value.strip():
        return _error("required", field, f"{label} is required")
    if len(value) > max_length:
        return _error("too_long", field, f"{label} must be less than {max_length} characters")
    return None


def _number(value, field: str, label: str) -> Optional[dict]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return _error("invalid_type", field, f"{label} must be a number")
    return None


def _positive(value, field: str, label: str) -> Optional[dict]:
    return _number(value, field, label) or (
        None if value > 0 else _error("out_of_range", field, f"{label} must be greater than 0"))


def _between(value: float, field: str, label: str, low: float, high: Optional[float] = None) -> Optional[dict]:
    problem = _number(value, field, label)
    if problem:
        return problem
    if value < low:
        return _error("out_of_range", field, f"{label} must be at least {low:g}")
    if high is not None and value > high:
        return _error("out_of_range", field, f"{label} must be at most {high:,.0f}")
    return None


def _choice(value: str, field: str, options: tuple) -> Optional[dict]:
    if value not in options:
        return _error("invalid_choice", field, f"{field} must be one of {', '.join(options)}")
    return None


def _iso_date(value: Optional[str], field: str) -> Optional[dict]:
    if not isinstance(value, str) or not ISO_DATE.match(value):
        return _error("invalid_date", field, f"{field} must be a yyyy-MM-dd date")
    try:
        date.fromisoformat(value)
    except ValueError:
        return _error("invalid_date", field, f"{field} is not a calendar date")
    return None


def _first(*checks: Optional[dict]) -> Optional[dict]:
    return next((c for c in checks if c is not None), None)


def _result(entity, problem: Optional[dict]) -> Either[dict, object]:
    return Left(problem) if problem else Right(entity)


def _rule(broken: Callable[[object], bool], code: str, field: str, message: str) -> Callable[[object], Either]:
    """A cross-field check for ``Either.bind``; runs only once the field checks passed."""
    return lambda entity: Left(_error(code, field, message)) if broken(entity) else Right(entity)


def validate_transaction(t: Transaction, today: Optional[date] = None, creating: bool = False) -> Either[dict, Transaction]:
    problem = _first(
        _choice(t.kind, "kind", TRANSACTION_KINDS),
        _positive(t.amount, "amount", "Amount"),
        _iso_date(t.date, "date"),
        None if isinstance(t.category, str) else _error("invalid_type", "category", "Category must be text"),
    )
    return _result(t, problem)


def validate_expense(e: Expense, today: Optional[date] = None, creating: bool = False) -> Either[dict, Expense]:
    problem = _first(
        _text(e.name, "name", "Expense name"),
        _between(e.amount, "amount", "Amount", 0.01, 1_000_000),
        _choice(e.category, "category", EXPENSE_CATEGORIES),
        _choice(e.type, "type", EXPENSE_TYPES),
        _choice(e.frequency, "frequency", EXPENSE_FREQUENCIES),
    )
    return _result(e, problem).bind(_rule(
        lambda x: x.frequency == "one-time" and x.is_recurring,
        "one_time_recurring", "is_recurring", "One-time expenses cannot be recurring"))


def validate_income(i: Income, today: Optional[date] = None, creating: bool = False) -> Either[dict, Income]:
    problem = _first(
        _text(i.source, "source", "Income source"),
        _between(i.amount, "amount", "Amount", 0.01, 10_000_000),
        _choice(i.frequency, "frequency", INCOME_FREQUENCIES),
    )
    return _result(i, problem)


def validate_credit_card(c: CreditCard, today: Optional[date] = None, creating: bool = False) -> Either[dict, CreditCard]:
    problem = _first(
        _text(c.name, "name", "Card name", MAX_CARD_NAME_LENGTH),
        _text(c.bank, "bank", "Bank name", MAX_CARD_NAME_LENGTH),
        _between(c.current_balance, "current_balance", "Balance", 0, 1_000_000),
        _between(c.credit_limit, "credit_limit", "Credit limit", 1, 1_000_000),
        _between(c.interest_rate, "interest_rate", "Interest rate", 0, 100),
        _between(c.minimum_payment, "minimum_payment", "Minimum payment", 0),
        _choice(c.card_type, "card_type", CARD_TYPES),
    )
    return _result(c, problem).bind(_rule(
        lambda x: x.current_balance > x.credit_limit,
        "balance_exceeds_limit", "current_balance", "Current balance cannot exceed credit limit"))


def validate_loan(loan: Loan, today: Optional[date] = None, creating: bool = False) -> Either[dict, Loan]:
    problem = _first(
        _text(loan.name, "name", "Loan name"),
        _text(loan.lender, "lender", "Lender name"),
        _choice(loan.loan_type, "loan_type", LOAN_TYPES),
        _between(loan.original_amount, "original_amount", "Original amount", 1, 10_000_000),
        _between(loan.current_balance, "current_balance", "Current balance", 0),
        _between(loan.interest_rate, "interest_rate", "Interest rate", 0, 100),
        _between(loan.monthly_payment, "monthly_payment", "Monthly payment", 1),
        _between(loan.term, "term", "Term", 1, 600),
        _between(loan.remaining_term, "remaining_term", "Remaining term", 0),
    )
    return (
        _result(loan, problem)
        .bind(_rule(lambda x: x.current_balance > x.original_amount,
                    "balance_exceeds_original", "current_balance", "Current balance cannot exceed original amount"))
        .bind(_rule(lambda x: x.remaining_term > x.term,
                    "remaining_exceeds_term", "remaining_term", "Remaining term cannot exceed total term"))
    )


def validate_goal(g: FinancialGoal, today: Optional[date] = None, creating: bool = False) -> Either[dict, FinancialGoal]:
    problem = _first(
        _text(g.name, "name", "Goal name"),
        _choice(g.type, "type", GOAL_TYPES),
        _between(g.target_amount, "target_amount", "Target amount", 1, 10_000_000),
        _between(g.current_amount, "current_amount", "Current amount", 0),
        _between(g.monthly_contribution, "monthly_contribution", "Monthly contribution", 0, 1_000_000),
        _choice(g.priority, "priority", PRIORITIES),
        _iso_date(g.target_date, "target_date"),
    )
    def in_past(goal):
        # only new goals need a future date; existing ones may run past it
        return creating and today is not None and date.fromisoformat(goal.target_date) <= today

    return (
        _result(g, problem)
        .bind(_rule(lambda x: x.current_amount > x.target_amount,
                    "current_exceeds_target", "current_amount", "Current amount cannot exceed target amount"))
        .bind(_rule(in_past, "date_in_past", "target_date", "Target date must be in the future"))
    )


def validate_investment(inv: Investment, today: Optional[date] = None, creating: bool = False) -> Either[dict, Investment]:
    problem = _first(
        _text(inv.symbol, "symbol", "Symbol", MAX_SYMBOL_LENGTH),
        _text(inv.name, "name", "Company name"),
        _positive(inv.shares, "shares", "Shares"),
        _positive(inv.purchase_price, "purchase_price", "Purchase price"),
        _positive(inv.current_price, "current_price", "Current price"),
        _choice(inv.category, "category", INVESTMENT_CATEGORIES),
        _text(inv.platform, "platform", "Platform", MAX_PLATFORM_LENGTH),
        None if inv.purchase_date is None else _iso_date(inv.purchase_date, "purchase_date"),
    )
    return _result(inv, problem)


def _months(values, field: str) -> Optional[dict]:
    if not isinstance(values, tuple) or len(values) != MONTHS_PER_YEAR:
        return _error("invalid_length", field, f"{field} needs one value per month")
    return _first(*(_between(v, field, "Monthly value", 0) for v in values))


def validate_budget_line(line: BudgetLine, today: Optional[date] = None, creating: bool = False) -> Either[dict, BudgetLine]:
    problem = _first(
        _between(line.year, "year", "Year", 1900, 2200),
        _choice(line.kind, "kind", BUDGET_KINDS),
        _text(line.name, "name", "Category name"),
        _months(line.monthly_values, "monthly_values"),
    )
    return _result(line, problem)

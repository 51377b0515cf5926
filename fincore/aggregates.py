"""Derived figures over the record collections.

Two families live here and never feed each other:

* realized totals over ``Transaction`` records (what happened), and
* plan totals over active ``Income``/``Expense`` entries, normalised to a
  monthly figure (what is expected).

Every function accepts any iterable, including an empty one, and returns
zero or an empty result rather than raising.
"""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from functools import reduce
from typing import Dict, Iterable, List, Optional, Tuple

from fincore.domain import MONTHS_PER_YEAR, BudgetLine, CreditCard, Expense, FinancialGoal, Income, Investment, Loan, Transaction
from fincore.frequency import monthly_equivalent


# --- realized (transactions)

def _sum_kind(trans: Iterable[Transaction], kind: str) -> float:
    return reduce(lambda acc, t: acc + t.amount if t.kind == kind else acc, trans, 0.0)


def total_income(trans: Iterable[Transaction]) -> float:
    return _sum_kind(trans, "income")


def total_expenses(trans: Iterable[Transaction]) -> float:
    return _sum_kind(trans, "expense")


def net_cash_flow(trans: Iterable[Transaction]) -> float:
    trans = tuple(trans)
    return total_income(trans) - total_expenses(trans)


def categories_in_use(trans: Iterable[Transaction]) -> Tuple[str, ...]:
    return tuple(sorted({t.category for t in trans}))


def transactions_on_date(trans: Iterable[Transaction], day: str) -> Tuple[Transaction, ...]:
    return tuple(t for t in trans if t.date == day)


def recent_transactions(trans: Iterable[Transaction], limit: int = 5) -> Tuple[Transaction, ...]:
    return tuple(sorted(trans, key=lambda t: t.created_at, reverse=True)[:max(0, limit)])


@dataclass(frozen=True)
class DayCashFlow:
    date: str
    income: float
    expenses: float
    net_flow: float
    lines: Tuple[Tuple[str, float, str], ...]  # (description, signed amount, kind)


def day_cash_flow(trans: Iterable[Transaction], day: str) -> Optional[DayCashFlow]:
    """Calendar cell for one day, or None when nothing happened that day."""
    todays = transactions_on_date(trans, day)
    if not todays:
        return None
    income, expenses = total_income(todays), total_expenses(todays)
    return DayCashFlow(
        date=day,
        income=income,
        expenses=expenses,
        net_flow=income - expenses,
        lines=tuple((t.description, t.signed_amount, t.kind) for t in todays),
    )


# --- plan (recurring entries)

def monthly_income_from_plan(incomes: Iterable[Income]) -> float:
    return sum(monthly_equivalent(i.amount, i.frequency) for i in incomes if i.is_active)


def monthly_expenses_from_plan(expenses: Iterable[Expense]) -> float:
    return sum(monthly_equivalent(e.amount, e.frequency) for e in expenses if e.is_active)


def plan_expenses_by_category(expenses: Iterable[Expense]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for e in expenses:
        if e.is_active:
            totals[e.category] += monthly_equivalent(e.amount, e.frequency)
    return dict(totals)


def plan_expenses_by_type(expenses: Iterable[Expense]) -> Dict[str, float]:
    totals = {"need": 0.0, "want": 0.0}
    for e in expenses:
        if e.is_active:
            totals[e.type] = totals.get(e.type, 0.0) + monthly_equivalent(e.amount, e.frequency)
    return totals


# --- debt and credit

def total_debt(loans: Iterable[Loan]) -> float:
    return sum(loan.current_balance for loan in loans if loan.is_active)


def total_monthly_debt_payments(loans: Iterable[Loan]) -> float:
    return sum(loan.monthly_payment for loan in loans if loan.is_active)


def loan_payoff_progress(loan: Loan) -> float:
    if loan.original_amount <= 0:
        return 0.0
    return (loan.original_amount - loan.current_balance) / loan.original_amount * 100


def total_credit_limit(cards: Iterable[CreditCard]) -> float:
    return sum(c.credit_limit for c in cards if c.is_active)


def total_credit_balance(cards: Iterable[CreditCard]) -> float:
    return sum(c.current_balance for c in cards if c.is_active)


def credit_utilization(cards: Iterable[CreditCard]) -> float:
    cards = tuple(cards)
    limit = total_credit_limit(cards)
    return total_credit_balance(cards) / limit * 100 if limit > 0 else 0.0


# --- goals

def goal_progress(goal: FinancialGoal) -> float:
    if goal.target_amount <= 0:
        return 0.0
    return min(goal.current_amount / goal.target_amount * 100, 100.0)


def months_to_goal(goal: FinancialGoal) -> Optional[int]:
    """Whole months of contributions still needed; None when nothing is contributed."""
    remaining = max(0.0, goal.target_amount - goal.current_amount)
    if remaining == 0:
        return 0
    if goal.monthly_contribution <= 0:
        return None
    return math.ceil(remaining / goal.monthly_contribution)


def emergency_fund(goals: Iterable[FinancialGoal]) -> float:
    return sum(g.current_amount for g in goals if g.type == "emergency-fund")


# --- investments

def gain_loss_percentage(inv: Investment) -> float:
    if inv.purchase_price <= 0:
        return 0.0
    return (inv.current_price - inv.purchase_price) / inv.purchase_price * 100


@dataclass(frozen=True)
class Portfolio:
    total_value: float
    total_cost: float
    gain_loss: float
    gain_loss_percentage: float
    best_performer: Optional[Investment]


def portfolio(investments: Iterable[Investment]) -> Portfolio:
    """Value and cost over active holdings; the best performer has the highest percentage gain."""
    held = tuple(inv for inv in investments if inv.is_active)
    value = sum(inv.value for inv in held)
    cost = sum(inv.cost for inv in held)
    return Portfolio(
        total_value=value,
        total_cost=cost,
        gain_loss=value - cost,
        gain_loss_percentage=(value - cost) / cost * 100 if cost > 0 else 0.0,
        best_performer=max(held, key=gain_loss_percentage, default=None),
    )


def asset_allocation(investments: Iterable[Investment]) -> List[Tuple[str, float, float]]:
    """(category, value, percent of portfolio) in first-seen order."""
    totals: Dict[str, float] = {}
    for inv in investments:
        if inv.is_active:
            totals[inv.category] = totals.get(inv.category, 0.0) + inv.value
    whole = sum(totals.values())
    return [(cat, v, v / whole * 100 if whole > 0 else 0.0) for cat, v in totals.items()]


# --- yearly budget grid

@dataclass(frozen=True)
class BudgetTotals:
    year: int
    monthly_income: Tuple[float, ...]
    monthly_expenses: Tuple[float, ...]
    monthly_net: Tuple[float, ...]
    annual_income: float
    annual_expenses: float
    net_savings: float


def _month_sums(lines: Tuple[BudgetLine, ...], kind: str) -> Tuple[float, ...]:
    rows = [line.monthly_values for line in lines if line.kind == kind]
    return tuple(sum(row[m] for row in rows if m < len(row)) for m in range(MONTHS_PER_YEAR))


def budget_totals(lines: Iterable[BudgetLine], year: int) -> BudgetTotals:
    """Column totals of the grid for one year; other years are ignored."""
    lines = tuple(line for line in lines if line.year == year)
    income = _month_sums(lines, "income")
    spending = _month_sums(lines, "expense")
    return BudgetTotals(
        year=year,
        monthly_income=income,
        monthly_expenses=spending,
        monthly_net=tuple(i - s for i, s in zip(income, spending)),
        annual_income=sum(income),
        annual_expenses=sum(spending),
        net_savings=sum(income) - sum(spending),
    )


def budget_years(lines: Iterable[BudgetLine]) -> Tuple[int, ...]:
    return tuple(sorted({line.year for line in lines}))


# --- summary

@dataclass(frozen=True)
class FinancialSummary:
    total_monthly_income: float
    total_monthly_expenses: float
    total_credit_card_debt: float
    total_loan_debt: float
    total_debt: float
    monthly_debt_payments: float
    available_credit_limit: float
    net_worth: float
    monthly_savings: float
    savings_rate: float          # percent
    debt_to_income_ratio: float  # percent
    credit_utilization: float    # percent
    emergency_fund: float
    last_updated: str


def financial_summary(
    incomes: Iterable[Income],
    expenses: Iterable[Expense],
    loans: Iterable[Loan],
    cards: Iterable[CreditCard],
    goals: Iterable[FinancialGoal],
    now: datetime,
) -> FinancialSummary:
    """Dashboard figures built from the plan family only."""
    cards = tuple(cards)
    loans = tuple(loans)
    income = monthly_income_from_plan(incomes)
    spending = monthly_expenses_from_plan(expenses)
    card_debt = total_credit_balance(cards)
    loan_debt = total_debt(loans)
    payments = total_monthly_debt_payments(loans)
    savings = income - spending
    return FinancialSummary(
        total_monthly_income=income,
        total_monthly_expenses=spending,
        total_credit_card_debt=card_debt,
        total_loan_debt=loan_debt,
        total_debt=card_debt + loan_debt,
        monthly_debt_payments=payments,
        available_credit_limit=total_credit_limit(cards) - card_debt,
        net_worth=income - spending - (card_debt + loan_debt),
        monthly_savings=savings,
        savings_rate=savings / income * 100 if income > 0 else 0.0,
        debt_to_income_ratio=payments / income * 100 if income > 0 else 0.0,
        credit_utilization=credit_utilization(cards),
        emergency_fund=emergency_fund(goals),
        last_updated=now.isoformat(),
    )


def summary_rows(summary: FinancialSummary) -> List[Tuple[str, float]]:
    return [
        ("Monthly income", summary.total_monthly_income),
        ("Monthly expenses", summary.total_monthly_expenses),
        ("Monthly savings", summary.monthly_savings),
        ("Total debt", summary.total_debt),
        ("Monthly debt payments", summary.monthly_debt_payments),
        ("Credit utilization %", summary.credit_utilization),
    ]

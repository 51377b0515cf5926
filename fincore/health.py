"""Financial health score, smart alerts and a simple forward projection.

All thresholds live in ``ScoreTable`` so that a different rule set can be
passed in without touching the scoring code.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from fincore.aggregates import FinancialSummary

Tiers = Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class ScoreTable:
    # (minimum value, score), checked top-down
    savings_tiers: Tiers = ((20, 100), (15, 85), (10, 70), (5, 55), (0, 40))
    savings_floor: float = 20
    emergency_tiers: Tiers = ((6, 100), (3, 75), (1, 50), (0.5, 30))
    emergency_floor: float = 10
    cashflow_tiers: Tiers = ((20, 100), (15, 85), (10, 70), (5, 55))
    cashflow_floor: float = 40
    cashflow_negative: float = 20
    # (value above which, points deducted)
    debt_to_income_penalties: Tiers = ((40, 40), (30, 25), (20, 15))
    utilization_penalties: Tiers = ((50, 30), (30, 20), (10, 10))

    weights: Tuple[Tuple[str, float], ...] = (
        ("budget", 0.25), ("emergency", 0.25), ("debt", 0.30), ("cashflow", 0.20),
    )
    status_tiers: Tuple[Tuple[float, str], ...] = ((85, "excellent"), (70, "good"), (50, "fair"))

    # alerts
    low_savings_ratio: float = 0.10
    good_savings_ratio: float = 0.20
    high_utilization: float = 30
    excellent_utilization: float = 10
    high_debt_income_multiple: float = 3
    emergency_goal_months: float = 6

    # forecast
    forecast_horizons: Tuple[int, ...] = (0, 1, 2, 3, 6, 12, 24)
    emergency_saving_share: float = 0.3
    medium_risk_buffer: float = 0.2


DEFAULT_TABLE = ScoreTable()


@dataclass(frozen=True)
class HealthInputs:
    monthly_income: float
    monthly_expenses: float
    total_debt: float
    emergency_fund: float
    credit_utilization: float
    debt_payments: float

    @property
    def monthly_balance(self) -> float:
        return self.monthly_income - self.monthly_expenses

    @classmethod
    def from_summary(cls, summary: FinancialSummary) -> "HealthInputs":
        return cls(
            monthly_income=summary.total_monthly_income,
            monthly_expenses=summary.total_monthly_expenses,
            total_debt=summary.total_debt,
            emergency_fund=summary.emergency_fund,
            credit_utilization=summary.credit_utilization,
            debt_payments=summary.monthly_debt_payments,
        )


@dataclass(frozen=True)
class HealthMetric:
    key: str
    name: str
    score: float
    weight: float
    status: str
    description: str


@dataclass(frozen=True)
class HealthReport:
    score: int
    status: str
    metrics: Tuple[HealthMetric, ...]


def tier_score(value: float, tiers: Tiers, floor: float) -> float:
    return next((score for threshold, score in tiers if value >= threshold), floor)


def penalty(value: float, penalties: Tiers) -> float:
    return next((points for threshold, points in penalties if value > threshold), 0)


def score_status(score: float, table: ScoreTable = DEFAULT_TABLE) -> str:
    return next((status for threshold, status in table.status_tiers if score >= threshold), "poor")


def health_score(inputs: HealthInputs, table: ScoreTable = DEFAULT_TABLE) -> HealthReport:
    income, expenses = inputs.monthly_income, inputs.monthly_expenses
    balance = inputs.monthly_balance
    savings_rate = balance / income * 100 if income > 0 else 0.0
    emergency_months = inputs.emergency_fund / expenses if expenses > 0 else 0.0
    debt_to_income = inputs.total_debt / (income * 12) * 100 if income > 0 else 0.0

    budget = tier_score(savings_rate, table.savings_tiers, table.savings_floor)
    emergency = tier_score(emergency_months, table.emergency_tiers, table.emergency_floor)
    debt = max(0, 100 - penalty(debt_to_income, table.debt_to_income_penalties)
               - penalty(inputs.credit_utilization, table.utilization_penalties))
    if balance <= 0:
        cashflow = table.cashflow_negative
    else:
        cashflow = tier_score(balance / income * 100, table.cashflow_tiers, table.cashflow_floor)

    weights = dict(table.weights)
    metrics = (
        HealthMetric("budget", "Budget Management", budget, weights["budget"], score_status(budget, table),
                     f"{savings_rate:.1f}% savings rate"),
        HealthMetric("emergency", "Emergency Preparedness", emergency, weights["emergency"],
                     score_status(emergency, table), f"{emergency_months:.1f} months covered"),
        HealthMetric("debt", "Debt Management", debt, weights["debt"], score_status(debt, table),
                     f"{debt_to_income:.1f}% debt-to-income"),
        HealthMetric("cashflow", "Cash Flow", cashflow, weights["cashflow"], score_status(cashflow, table),
                     "Positive cash flow" if balance >= 0 else "Negative cash flow"),
    )
    overall = round(sum(m.score * m.weight for m in metrics))
    return HealthReport(score=overall, status=score_status(overall, table), metrics=metrics)


@dataclass(frozen=True)
class Alert:
    id: str
    type: str       # critical | warning | info | success
    title: str
    message: str
    action: str
    priority: str   # high | medium | low
    category: str   # budget | debt | savings | bills


def smart_alerts(inputs: HealthInputs, table: ScoreTable = DEFAULT_TABLE) -> Tuple[Alert, ...]:
    alerts: List[Alert] = []
    income, expenses = inputs.monthly_income, inputs.monthly_expenses
    balance = inputs.monthly_balance
    utilization = inputs.credit_utilization
    emergency_goal = expenses * table.emergency_goal_months

    if balance < 0:
        alerts.append(Alert(
            "negative-balance", "critical", "Budget Alert",
            f"You're spending ${abs(balance):,.0f} more than you earn each month",
            "Review expenses and create a budget plan", "high", "budget"))

    if 0 < balance < income * table.low_savings_ratio:
        alerts.append(Alert(
            "low-savings", "warning", "Low Savings Rate",
            f"You're only saving {balance / income * 100:.1f}% of income",
            f"Aim for at least {table.good_savings_ratio * 100:.0f}% savings rate", "medium", "savings"))

    if utilization > table.high_utilization:
        alerts.append(Alert(
            "high-credit-util", "warning", "Credit Utilization Alert",
            f"Your credit utilization is {utilization:.1f}% (recommended: under {table.high_utilization:.0f}%)",
            "Pay down credit cards to improve credit score", "medium", "debt"))

    if inputs.total_debt > income * table.high_debt_income_multiple:
        alerts.append(Alert(
            "high-debt", "critical", "High Debt Alert",
            f"Your total debt exceeds {table.high_debt_income_multiple:g}x your monthly income",
            "Consider debt consolidation or aggressive payoff strategy", "high", "debt"))

    if inputs.emergency_fund < expenses:
        alerts.append(Alert(
            "no-emergency-fund", "critical", "Emergency Fund Alert",
            "You have less than 1 month of expenses saved",
            "Start building emergency fund immediately", "high", "savings"))
    elif inputs.emergency_fund < emergency_goal:
        alerts.append(Alert(
            "low-emergency-fund", "info", "Emergency Fund Progress",
            f"You have {inputs.emergency_fund / expenses:.1f} months of expenses saved",
            f"Goal: {table.emergency_goal_months:.0f} months "
            f"({inputs.emergency_fund / emergency_goal * 100:.0f}% complete)", "low", "savings"))

    if balance > income * table.good_savings_ratio:
        alerts.append(Alert(
            "good-savings", "success", "Excellent Savings Rate",
            f"You're saving {balance / income * 100:.1f}% of your income!",
            "Consider investing the surplus for long-term growth", "low", "savings"))

    if utilization < table.excellent_utilization:
        alerts.append(Alert(
            "good-credit", "success", "Excellent Credit Management",
            f"Your credit utilization is only {utilization:.1f}%",
            "Keep up the great work with credit management", "low", "debt"))

    return tuple(alerts)


@dataclass(frozen=True)
class ForecastPoint:
    months_ahead: int
    balance: float
    debt_remaining: float
    emergency_fund: float


@dataclass(frozen=True)
class Forecast:
    points: Tuple[ForecastPoint, ...]
    months_to_debt_free: Optional[int]       # None: payments never clear the debt
    months_to_emergency_goal: Optional[int]  # None: no surplus to save from
    risk_level: str
    stability: str


def forecast(inputs: HealthInputs, table: ScoreTable = DEFAULT_TABLE) -> Forecast:
    balance = inputs.monthly_balance
    emergency_goal = inputs.monthly_expenses * table.emergency_goal_months
    monthly_saving = balance * table.emergency_saving_share

    points = tuple(
        ForecastPoint(
            months_ahead=m,
            balance=inputs.emergency_fund + balance * m,
            debt_remaining=max(0.0, inputs.total_debt - inputs.debt_payments * m),
            emergency_fund=min(inputs.emergency_fund + monthly_saving * m, emergency_goal),
        )
        for m in table.forecast_horizons
    )

    if inputs.total_debt <= 0:
        debt_free = 0
    elif inputs.debt_payments > 0:
        debt_free = math.ceil(inputs.total_debt / inputs.debt_payments)
    else:
        debt_free = None

    if emergency_goal <= inputs.emergency_fund:
        emergency_months = 0
    elif monthly_saving > 0:
        emergency_months = math.ceil((emergency_goal - inputs.emergency_fund) / monthly_saving)
    else:
        emergency_months = None

    if balance < 0:
        risk = "high"
    elif balance < inputs.monthly_expenses * table.medium_risk_buffer:
        risk = "medium"
    else:
        risk = "low"
    stability = {"low": "Excellent", "medium": "Good", "high": "Needs attention"}[risk]

    return Forecast(points, debt_free, emergency_months, risk, stability)

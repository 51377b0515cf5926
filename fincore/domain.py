from dataclasses import dataclass, field
from typing import Optional, Tuple

TRANSACTION_KINDS = ("income", "expense")

EXPENSE_CATEGORIES = (
    "housing",
    "transportation",
    "food",
    "utilities",
    "healthcare",
    "entertainment",
    "shopping",
    "education",
    "insurance",
    "savings",
    "debt",
    "other",
)

EXPENSE_TYPES = ("need", "want")

EXPENSE_FREQUENCIES = (
    "daily",
    "weekly",
    "bi-weekly",
    "monthly",
    "quarterly",
    "semi-annually",
    "annually",
    "one-time",
)

INCOME_FREQUENCIES = ("weekly", "bi-weekly", "monthly", "quarterly", "yearly", "one-time")

CARD_TYPES = ("visa", "mastercard", "amex", "discover", "other")

LOAN_TYPES = ("mortgage", "auto", "personal", "student", "home-equity", "business", "other")

GOAL_TYPES = (
    "emergency-fund",
    "debt-payoff",
    "home-purchase",
    "vacation",
    "retirement",
    "education",
    "investment",
    "other",
)

PRIORITIES = ("low", "medium", "high")

INVESTMENT_CATEGORIES = ("stocks", "etf", "bonds", "crypto", "mutual-fund", "real-estate", "other")

BUDGET_KINDS = ("income", "expense")

MONTHS_PER_YEAR = 12

FILTER_TYPES = ("all",) + TRANSACTION_KINDS


# A realized money movement. Sign comes from kind, amount is always positive.
@dataclass(frozen=True)
class Transaction:
    id: str
    kind: str          # "income" or "expense"
    amount: float
    category: str
    description: str
    date: str          # yyyy-MM-dd
    created_at: str    # ISO timestamp

    @property
    def signed_amount(self) -> float:
        return self.amount if self.kind == "income" else -self.amount


# A planned spending entry, recurring or one-time
@dataclass(frozen=True)
class Expense:
    id: str
    name: str
    amount: float
    category: str
    type: str                  # "need" or "want"
    frequency: str
    is_recurring: bool = True
    is_active: bool = True
    tags: Tuple[str, ...] = ()
    description: str = ""
    next_due_date: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Income:
    id: str
    source: str
    amount: float
    frequency: str
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class CreditCard:
    id: str
    name: str
    bank: str
    current_balance: float
    credit_limit: float
    interest_rate: float       # APR, percent
    minimum_payment: float
    due_date: str
    card_type: str = "other"
    is_active: bool = True
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def utilization(self) -> float:
        return self.current_balance / self.credit_limit * 100 if self.credit_limit > 0 else 0.0


@dataclass(frozen=True)
class Loan:
    id: str
    name: str
    lender: str
    loan_type: str
    original_amount: float
    current_balance: float
    interest_rate: float       # APR, percent
    monthly_payment: float
    term: int                  # months
    remaining_term: int        # months
    is_active: bool = True
    due_date: Optional[str] = None
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class FinancialGoal:
    id: str
    name: str
    type: str
    target_amount: float
    current_amount: float
    target_date: str
    monthly_contribution: float = 0.0
    priority: str = "medium"
    is_completed: bool = False
    description: str = ""
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class Investment:
    id: str
    symbol: str
    name: str
    shares: float
    purchase_price: float      # per share
    current_price: float       # per share
    category: str
    platform: str
    purchase_date: Optional[str] = None
    notes: str = ""
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""

    @property
    def value(self) -> float:
        return self.shares * self.current_price

    @property
    def cost(self) -> float:
        return self.shares * self.purchase_price


# One row of the yearly budget grid: twelve planned amounts, January first
@dataclass(frozen=True)
class BudgetLine:
    id: str
    year: int
    kind: str                  # "income" or "expense"
    name: str
    monthly_values: Tuple[float, ...] = (0.0,) * MONTHS_PER_YEAR
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str


@dataclass(frozen=True)
class FilterState:
    date_range: Optional[DateRange] = None
    categories: frozenset = field(default_factory=frozenset)
    search_term: str = ""
    type: str = "all"

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fincore import aggregates, events, health
from fincore.aggregates import BudgetTotals, DayCashFlow, FinancialSummary, Portfolio
from fincore.memo import average_monthly_spend
from fincore.domain import FilterState, Transaction
from fincore.filters import DEFAULT_FILTERS, apply_filters, merge_filters
from fincore.store import FinanceStore

logger = logging.getLogger(__name__)


class FinanceService:
    """Read and write API used by the views.

    Holds the active filter state next to the store; every read goes to
    the store's current snapshot, so a mutation is visible to the very
    next read even while its backend write is still queued.
    """

    def __init__(self, store: FinanceStore, score_table: health.ScoreTable = health.DEFAULT_TABLE):
        self.store = store
        self.score_table = score_table
        self._filters = DEFAULT_FILTERS

    # --- filters

    @property
    def filters(self) -> FilterState:
        return self._filters

    def set_filters(self, **changes) -> FilterState:
        self._filters = merge_filters(self._filters, **changes)
        self.store.bus.publish(events.FILTERS_CHANGED, {"filters": self._filters})
        return self._filters

    def reset_filters(self) -> FilterState:
        self._filters = DEFAULT_FILTERS
        self.store.bus.publish(events.FILTERS_CHANGED, {"filters": self._filters})
        return self._filters

    # --- transactions

    def add_transaction(self, kind: str, amount: float, category: str, description: str, date: str) -> Transaction:
        return self.store.transactions.add(
            kind=kind, amount=amount, category=category, description=description, date=date)

    def update_transaction(self, transaction: Transaction) -> bool:
        return self.store.transactions.update(transaction)

    def delete_transaction(self, transaction_id: str) -> bool:
        return self.store.transactions.remove(transaction_id)

    def get_filtered_transactions(self) -> Tuple[Transaction, ...]:
        return apply_filters(self.store.transactions.list(), self._filters)

    def _transactions(self, filtered: bool) -> Tuple[Transaction, ...]:
        return self.get_filtered_transactions() if filtered else self.store.transactions.list()

    def get_total_income(self, filtered: bool = False) -> float:
        return aggregates.total_income(self._transactions(filtered))

    def get_total_expenses(self, filtered: bool = False) -> float:
        return aggregates.total_expenses(self._transactions(filtered))

    def get_net_cash_flow(self, filtered: bool = False) -> float:
        return aggregates.net_cash_flow(self._transactions(filtered))

    def get_transactions_by_date(self, date: str) -> Tuple[Transaction, ...]:
        return aggregates.transactions_on_date(self.store.transactions.list(), date)

    def get_day_cash_flow(self, date: str) -> Optional[DayCashFlow]:
        return aggregates.day_cash_flow(self.store.transactions.list(), date)

    def get_categories(self) -> Tuple[str, ...]:
        return aggregates.categories_in_use(self.store.transactions.list())

    def get_average_monthly_spend(self, category: str, months: int = 3) -> float:
        return average_monthly_spend(category, self.store.transactions.list(), months)

    # --- plan

    def get_monthly_income_from_plan(self) -> float:
        return aggregates.monthly_income_from_plan(self.store.incomes.list())

    def get_monthly_expenses_from_plan(self) -> float:
        return aggregates.monthly_expenses_from_plan(self.store.expenses.list())

    # --- debt and credit

    def get_total_debt(self) -> float:
        return aggregates.total_debt(self.store.loans.list())

    def get_total_monthly_payments(self) -> float:
        return aggregates.total_monthly_debt_payments(self.store.loans.list())

    def get_total_credit_limit(self) -> float:
        return aggregates.total_credit_limit(self.store.credit_cards.list())

    def get_total_credit_balance(self) -> float:
        return aggregates.total_credit_balance(self.store.credit_cards.list())

    def get_credit_utilization(self) -> float:
        return aggregates.credit_utilization(self.store.credit_cards.list())

    # --- investments and budget grid

    def get_portfolio(self) -> Portfolio:
        return aggregates.portfolio(self.store.investments.list())

    def get_asset_allocation(self) -> List[Tuple[str, float, float]]:
        return aggregates.asset_allocation(self.store.investments.list())

    def get_budget_totals(self, year: int) -> BudgetTotals:
        return aggregates.budget_totals(self.store.budget_lines.list(), year)

    # --- dashboard

    def get_summary(self) -> FinancialSummary:
        s = self.store
        return aggregates.financial_summary(
            s.incomes.list(), s.expenses.list(), s.loans.list(), s.credit_cards.list(), s.goals.list(), s.clock())

    def get_health_inputs(self) -> health.HealthInputs:
        return health.HealthInputs.from_summary(self.get_summary())

    def get_health_score(self) -> health.HealthReport:
        return health.health_score(self.get_health_inputs(), self.score_table)

    def get_alerts(self) -> Tuple[health.Alert, ...]:
        return health.smart_alerts(self.get_health_inputs(), self.score_table)

    def get_forecast(self) -> health.Forecast:
        return health.forecast(self.get_health_inputs(), self.score_table)


Calculator = Callable[[FinanceService, Dict[str, Any]], Dict[str, Any]]


def summary_step(service: FinanceService, acc: Dict[str, Any]) -> Dict[str, Any]:
    summary = service.get_summary()
    return {"summary": summary, "inputs": health.HealthInputs.from_summary(summary)}


def health_step(service: FinanceService, acc: Dict[str, Any]) -> Dict[str, Any]:
    return {"health": health.health_score(acc["inputs"], service.score_table)}


def alerts_step(service: FinanceService, acc: Dict[str, Any]) -> Dict[str, Any]:
    return {"alerts": health.smart_alerts(acc["inputs"], service.score_table)}


def forecast_step(service: FinanceService, acc: Dict[str, Any]) -> Dict[str, Any]:
    return {"forecast": health.forecast(acc["inputs"], service.score_table)}


DEFAULT_CALCULATORS: Tuple[Calculator, ...] = (summary_step, health_step, alerts_step, forecast_step)


class ReportService:
    """Runs calculators in order, each seeing what the earlier ones produced.

    A failing calculator is logged and recorded as an error step; later
    calculators still run against whatever the accumulator holds.
    """

    def __init__(self, calculators: Sequence[Calculator] = DEFAULT_CALCULATORS):
        self.calculators = calculators

    def dashboard_report(self, service: FinanceService) -> Dict[str, Any]:
        report = {"generated_at": service.store.clock().isoformat(), "steps": [], "result": {}}
        acc: Dict[str, Any] = {}
        for calc in self.calculators:
            name = getattr(calc, "__name__", str(calc))
            try:
                out = calc(service, acc)
            except Exception as exc:
                logger.exception("Calculator %s failed", name)
                report["steps"].append({"calculator": name, "error": str(exc)})
                continue
            report["steps"].append({"calculator": name, "output": out})
            if isinstance(out, dict):
                acc.update(out)
        report["result"] = acc
        return report

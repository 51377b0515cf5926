from datetime import datetime

import pytest

from fincore.aggregates import (
    asset_allocation,
    budget_totals,
    budget_years,
    categories_in_use,
    credit_utilization,
    day_cash_flow,
    financial_summary,
    gain_loss_percentage,
    goal_progress,
    loan_payoff_progress,
    monthly_expenses_from_plan,
    monthly_income_from_plan,
    months_to_goal,
    net_cash_flow,
    plan_expenses_by_category,
    plan_expenses_by_type,
    portfolio,
    recent_transactions,
    summary_rows,
    total_expenses,
    total_income,
)
from fincore.domain import BudgetLine, CreditCard, Expense, FinancialGoal, Income, Investment, Loan, Transaction


def make_transactions():
    return (
        Transaction("t1", "income", 3000, "Salary", "Salary", "2026-09-01", "2026-09-01T09:00:00"),
        Transaction("t2", "expense", 1200, "Rent", "Apartment rent", "2026-09-02", "2026-09-02T10:00:00"),
    )


def make_plan():
    incomes = (
        Income("i1", "Salary", 3000, "monthly"),
        Income("i2", "Freelance", 150, "weekly"),
        Income("i3", "Old job", 9999, "monthly", is_active=False),
    )
    expenses = (
        Expense("e1", "Rent", 1200, "housing", "need", "monthly"),
        Expense("e2", "Groceries", 100, "food", "need", "weekly"),
        Expense("e3", "Streaming", 15, "entertainment", "want", "monthly"),
        Expense("e4", "Car insurance", 540, "insurance", "need", "semi-annually"),
        Expense("e5", "Laptop", 1500, "shopping", "want", "one-time", is_recurring=False),
    )
    return incomes, expenses


def make_cards():
    return (
        CreditCard("c1", "Everyday", "First Bank", 4000, 5000, 21.9, 120, "2026-10-25"),
        CreditCard("c2", "Travel", "Harbor Credit", 100, 1000, 18.5, 25, "2026-10-28"),
        CreditCard("c3", "Closed", "Harbor Credit", 900, 1000, 18.5, 25, "2026-10-28", is_active=False),
    )


def make_loan():
    return Loan("l1", "Car loan", "Auto Finance Co", "auto", 20000, 15000, 6.4, 390, 60, 42)


def make_goal(current=2500, contribution=300):
    return FinancialGoal("g1", "Emergency fund", "emergency-fund", 10000, current, "2028-06-30",
                         monthly_contribution=contribution)


def test_realized_totals():
    trans = make_transactions()
    assert total_income(trans) == 3000
    assert total_expenses(trans) == 1200
    assert net_cash_flow(trans) == 1800


def test_empty_inputs_give_zero():
    assert total_income(()) == 0
    assert net_cash_flow(()) == 0
    assert categories_in_use(()) == ()
    assert day_cash_flow((), "2026-09-01") is None
    assert monthly_income_from_plan(()) == 0
    assert credit_utilization(()) == 0


def test_categories_sorted_and_unique():
    trans = make_transactions() + (
        Transaction("t3", "expense", 10, "Rent", "Fee", "2026-09-03", "2026-09-03T10:00:00"),
    )
    assert categories_in_use(trans) == ("Rent", "Salary")


def test_day_cash_flow():
    cell = day_cash_flow(make_transactions(), "2026-09-02")
    assert cell.income == 0
    assert cell.expenses == 1200
    assert cell.net_flow == -1200
    assert cell.lines == (("Apartment rent", -1200, "expense"),)


def test_recent_transactions_newest_first():
    trans = make_transactions()
    assert [t.id for t in recent_transactions(trans, limit=1)] == ["t2"]


def test_plan_totals_use_active_entries_only():
    incomes, expenses = make_plan()
    assert monthly_income_from_plan(incomes) == pytest.approx(3000 + 649.5)
    # 1200 + 433 + 15 + 90; the one-time laptop adds nothing
    assert monthly_expenses_from_plan(expenses) == pytest.approx(1738)


def test_plan_breakdowns():
    _, expenses = make_plan()
    by_cat = plan_expenses_by_category(expenses)
    assert by_cat["housing"] == pytest.approx(1200)
    assert by_cat["food"] == pytest.approx(433)
    by_type = plan_expenses_by_type(expenses)
    assert by_type["want"] == pytest.approx(15)
    assert by_type["need"] == pytest.approx(1723)


def test_credit_utilization_skips_inactive_cards():
    assert credit_utilization(make_cards()) == pytest.approx(68.33, abs=0.01)


def test_loan_payoff_progress():
    assert loan_payoff_progress(make_loan()) == pytest.approx(25.0)


def test_goal_progress_and_months_left():
    assert goal_progress(make_goal()) == pytest.approx(25.0)
    assert goal_progress(make_goal(current=12000)) == 100.0
    assert months_to_goal(make_goal()) == 25
    assert months_to_goal(make_goal(contribution=0)) is None
    assert months_to_goal(make_goal(current=10000, contribution=0)) == 0


def test_summary_uses_plan_not_transactions():
    incomes, expenses = make_plan()
    s = financial_summary(incomes, expenses, (make_loan(),), make_cards(), (make_goal(),),
                          datetime(2026, 10, 18, 12, 0))
    assert s.total_monthly_income == pytest.approx(3649.5)
    assert s.total_monthly_expenses == pytest.approx(1738)
    assert s.total_credit_card_debt == 4100
    assert s.total_loan_debt == 15000
    assert s.total_debt == 19100
    assert s.available_credit_limit == 1900
    assert s.monthly_savings == pytest.approx(1911.5)
    assert s.debt_to_income_ratio == pytest.approx(390 / 3649.5 * 100)
    assert s.emergency_fund == 2500
    assert s.last_updated == "2026-10-18T12:00:00"
    assert ("Total debt", 19100) in summary_rows(s)


def make_holdings():
    return (
        Investment("v1", "VTI", "Total Market", 10, 200, 250, "etf", "Brokerage"),
        Investment("v2", "BND", "Total Bond", 20, 75, 72, "bonds", "Brokerage"),
        Investment("v3", "OLD", "Sold shares", 100, 10, 1, "stocks", "Brokerage", is_active=False),
    )


def test_portfolio_value_cost_and_gain():
    p = portfolio(make_holdings())
    assert p.total_value == 3940
    assert p.total_cost == 3500
    assert p.gain_loss == 440
    assert p.gain_loss_percentage == pytest.approx(12.571, abs=0.001)
    assert p.best_performer.symbol == "VTI"
    assert gain_loss_percentage(make_holdings()[1]) == pytest.approx(-4)


def test_empty_portfolio():
    p = portfolio(())
    assert (p.total_value, p.total_cost, p.gain_loss_percentage) == (0, 0, 0.0)
    assert p.best_performer is None
    assert asset_allocation(()) == []


def test_asset_allocation_shares():
    allocation = asset_allocation(make_holdings())
    assert [(cat, value) for cat, value, _ in allocation] == [("etf", 2500), ("bonds", 1440)]
    assert sum(pct for _, _, pct in allocation) == pytest.approx(100)


def test_budget_totals_for_one_year():
    lines = (
        BudgetLine("b1", 2026, "income", "Salary", (3000.0,) * 12),
        BudgetLine("b2", 2026, "expense", "Rent", (1200.0,) * 12),
        BudgetLine("b3", 2026, "expense", "Holidays", (0.0,) * 6 + (1500.0,) + (0.0,) * 4 + (600.0,)),
        BudgetLine("b4", 2027, "expense", "Rent", (1300.0,) * 12),
    )
    totals = budget_totals(lines, 2026)
    assert totals.monthly_income == (3000,) * 12
    assert totals.monthly_expenses[6] == 2700
    assert totals.monthly_net[6] == 300
    assert totals.annual_income == 36000
    assert totals.annual_expenses == 16500
    assert totals.net_savings == 19500
    assert budget_years(lines) == (2026, 2027)


def test_budget_totals_for_empty_year():
    totals = budget_totals((), 2030)
    assert totals.monthly_net == (0,) * 12
    assert totals.net_savings == 0

from datetime import date

from fincore.domain import BudgetLine, CreditCard, Expense, FinancialGoal, Income, Investment, Loan, Transaction
from fincore.validation import (
    validate_budget_line,
    validate_credit_card,
    validate_expense,
    validate_goal,
    validate_income,
    validate_investment,
    validate_loan,
    validate_transaction,
)

TODAY = date(2026, 10, 18)


def error_of(result):
    assert result.is_left()
    return result.get_error()


def test_transaction_needs_positive_amount_and_real_date():
    ok = Transaction("t1", "expense", 12.5, "Food", "Lunch", "2026-10-01", "")
    assert validate_transaction(ok).is_right()

    err = error_of(validate_transaction(Transaction("t1", "expense", 0, "Food", "Lunch", "2026-10-01", "")))
    assert err["field"] == "amount"

    err = error_of(validate_transaction(Transaction("t1", "expense", 5, "Food", "Lunch", "2026-02-30", "")))
    assert err["error"] == "invalid_date"

    err = error_of(validate_transaction(Transaction("t1", "transfer", 5, "Food", "Lunch", "2026-02-01", "")))
    assert err["field"] == "kind"



def test_non_numeric_amounts_are_rejected():
    err = error_of(validate_transaction(Transaction("t1", "expense", "12", "Food", "Lunch", "2026-10-01", "")))
    assert err == {"error": "invalid_type", "field": "amount", "message": "Amount must be a number"}

    err = error_of(validate_income(Income("i1", "Salary", True, "monthly")))
    assert err["error"] == "invalid_type"

    err = error_of(validate_loan(Loan("l1", "Car", "Bank", "auto", 20000, 15000, 5, 400, "60", 40)))
    assert err["field"] == "term"


def test_expense_limits():
    assert validate_expense(Expense("e1", "Rent", 1200, "housing", "need", "monthly")).is_right()

    err = error_of(validate_expense(Expense("e1", "x" * 101, 10, "housing", "need", "monthly")))
    assert err["error"] == "too_long"

    err = error_of(validate_expense(Expense("e1", "Rent", 10, "pets", "need", "monthly")))
    assert err == {"error": "invalid_choice", "field": "category", "message": err["message"]}

    err = error_of(validate_expense(Expense("e1", "Rent", 2_000_000, "housing", "need", "monthly")))
    assert err["field"] == "amount"


def test_one_time_expense_cannot_recur():
    err = error_of(validate_expense(Expense("e1", "Laptop", 900, "shopping", "want", "one-time", is_recurring=True)))
    assert err["error"] == "one_time_recurring"
    assert validate_expense(Expense("e1", "Laptop", 900, "shopping", "want", "one-time", is_recurring=False)).is_right()


def test_income_frequency_must_be_known():
    assert validate_income(Income("i1", "Salary", 3000, "yearly")).is_right()
    err = error_of(validate_income(Income("i1", "Salary", 3000, "daily")))
    assert err["field"] == "frequency"


def test_card_balance_over_limit_rejected():
    card = CreditCard("c1", "Everyday", "First Bank", 5200, 5000, 21.9, 120, "2026-10-25")
    assert error_of(validate_credit_card(card))["error"] == "balance_exceeds_limit"


def test_loan_cross_field_rules():
    loan = Loan("l1", "Car", "Bank", "auto", 20000, 21000, 6.4, 390, 60, 42)
    assert error_of(validate_loan(loan))["error"] == "balance_exceeds_original"

    loan = Loan("l1", "Car", "Bank", "auto", 20000, 15000, 6.4, 390, 60, 61)
    assert error_of(validate_loan(loan))["error"] == "remaining_exceeds_term"


def test_goal_date_in_past_only_checked_on_create():
    goal = FinancialGoal("g1", "Trip", "vacation", 2000, 100, "2026-01-01")
    assert error_of(validate_goal(goal, TODAY, creating=True))["error"] == "date_in_past"
    assert validate_goal(goal, TODAY, creating=False).is_right()


def test_goal_current_over_target_rejected():
    goal = FinancialGoal("g1", "Trip", "vacation", 2000, 2500, "2027-01-01")
    assert error_of(validate_goal(goal, TODAY, creating=True))["error"] == "current_exceeds_target"


def test_investment_limits():
    ok = Investment("v1", "VTI", "Total Market", 10, 200, 250, "etf", "Brokerage")
    assert validate_investment(ok).is_right()

    err = error_of(validate_investment(Investment("v1", "TOOLONGSYMBOL", "X", 10, 200, 250, "etf", "Brokerage")))
    assert err["field"] == "symbol"

    err = error_of(validate_investment(Investment("v1", "VTI", "X", 0, 200, 250, "etf", "Brokerage")))
    assert err == {"error": "out_of_range", "field": "shares", "message": "Shares must be greater than 0"}

    err = error_of(validate_investment(Investment("v1", "VTI", "X", 1, 200, 250, "art", "Brokerage")))
    assert err["field"] == "category"

    err = error_of(validate_investment(Investment("v1", "VTI", "X", 1, 200, 250, "etf", "")))
    assert err["field"] == "platform"


def test_budget_line_needs_twelve_non_negative_months():
    ok = BudgetLine("b1", 2026, "expense", "Rent", (1200.0,) * 12)
    assert validate_budget_line(ok).is_right()

    err = error_of(validate_budget_line(BudgetLine("b1", 2026, "expense", "Rent", (1200.0,) * 11)))
    assert err["error"] == "invalid_length"

    err = error_of(validate_budget_line(BudgetLine("b1", 2026, "expense", "Rent", (-1.0,) + (0.0,) * 11)))
    assert err["field"] == "monthly_values"

    err = error_of(validate_budget_line(BudgetLine("b1", 2026, "savings", "Rent", (0.0,) * 12)))
    assert err["field"] == "kind"


def test_cross_field_rules_run_after_field_checks():
    card = CreditCard("c1", "", "First Bank", 5200, 5000, 21.9, 120, "2026-10-25")
    assert error_of(validate_credit_card(card))["field"] == "name"

    loan = Loan("l1", "Car", "Bank", "auto", 20000, 21000, 6.4, 390, 60, 61)
    assert error_of(validate_loan(loan))["error"] == "balance_exceeds_original"

import pytest

from fincore.health import (
    DEFAULT_TABLE,
    HealthInputs,
    ScoreTable,
    forecast,
    health_score,
    penalty,
    score_status,
    smart_alerts,
    tier_score,
)


def make_inputs(income=5000, expenses=3000, debt=0, emergency=18000, utilization=5, payments=0):
    return HealthInputs(
        monthly_income=income,
        monthly_expenses=expenses,
        total_debt=debt,
        emergency_fund=emergency,
        credit_utilization=utilization,
        debt_payments=payments,
    )


def test_tier_helpers():
    assert tier_score(25, DEFAULT_TABLE.savings_tiers, DEFAULT_TABLE.savings_floor) == 100
    assert tier_score(12, DEFAULT_TABLE.savings_tiers, DEFAULT_TABLE.savings_floor) == 70
    assert tier_score(-5, DEFAULT_TABLE.savings_tiers, DEFAULT_TABLE.savings_floor) == 20
    assert penalty(45, DEFAULT_TABLE.debt_to_income_penalties) == 40
    assert penalty(20, DEFAULT_TABLE.debt_to_income_penalties) == 0


def test_score_status_bands():
    assert score_status(85) == "excellent"
    assert score_status(84.9) == "good"
    assert score_status(50) == "fair"
    assert score_status(49) == "poor"


def test_healthy_household_scores_top():
    report = health_score(make_inputs())
    assert report.score == 100
    assert report.status == "excellent"
    assert [m.key for m in report.metrics] == ["budget", "emergency", "debt", "cashflow"]


def test_overspending_household():
    report = health_score(make_inputs(income=2000, expenses=2500, emergency=7500, utilization=0))
    scores = {m.key: m.score for m in report.metrics}
    assert scores == {"budget": 20, "emergency": 75, "debt": 100, "cashflow": 20}
    assert report.score == 58
    assert report.status == "fair"
    assert report.metrics[3].description == "Negative cash flow"


def test_debt_metric_combines_penalties():
    report = health_score(make_inputs(debt=30000, utilization=60))
    debt = next(m for m in report.metrics if m.key == "debt")
    assert debt.score == 30


def test_custom_table_changes_scoring():
    strict = ScoreTable(status_tiers=((95, "excellent"), (80, "good"), (60, "fair")))
    assert health_score(make_inputs(), strict).status == "excellent"
    assert score_status(90, strict) == "good"


def test_alerts_for_overspending():
    alerts = smart_alerts(make_inputs(income=2000, expenses=2500, emergency=7500, utilization=0))
    assert [a.id for a in alerts] == ["negative-balance", "low-emergency-fund", "good-credit"]
    assert alerts[0].type == "critical"


def test_alerts_for_healthy_household():
    assert [a.id for a in smart_alerts(make_inputs())] == ["good-savings", "good-credit"]


def test_alerts_for_thin_margins_and_debt():
    alerts = smart_alerts(make_inputs(expenses=4700, debt=20000, emergency=1000, utilization=45))
    assert [a.id for a in alerts] == ["low-savings", "high-credit-util", "high-debt", "no-emergency-fund"]


def test_forecast_projection():
    fc = forecast(make_inputs(debt=12000, emergency=6000, payments=500))
    assert [p.months_ahead for p in fc.points] == [0, 1, 2, 3, 6, 12, 24]
    three = fc.points[3]
    assert three.balance == pytest.approx(12000)
    assert three.debt_remaining == pytest.approx(10500)
    assert three.emergency_fund == pytest.approx(7800)
    assert fc.points[-1].debt_remaining == 0
    assert fc.months_to_debt_free == 24
    assert fc.months_to_emergency_goal == 20
    assert fc.risk_level == "low"
    assert fc.stability == "Excellent"


def test_forecast_when_progress_is_impossible():
    fc = forecast(make_inputs(income=2000, expenses=2500, debt=5000, emergency=0, payments=0))
    assert fc.months_to_debt_free is None
    assert fc.months_to_emergency_goal is None
    assert fc.risk_level == "high"


def test_forecast_already_there():
    fc = forecast(make_inputs())
    assert fc.months_to_debt_free == 0
    assert fc.months_to_emergency_goal == 0

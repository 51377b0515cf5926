import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
import dataclasses
import logging

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from fincore import events
from fincore.aggregates import (
    budget_years,
    gain_loss_percentage,
    goal_progress,
    loan_payoff_progress,
    months_to_goal,
    plan_expenses_by_category,
    recent_transactions,
    summary_rows,
)
from fincore.config import get_settings
from fincore.domain import (
    BUDGET_KINDS,
    EXPENSE_CATEGORIES,
    EXPENSE_FREQUENCIES,
    EXPENSE_TYPES,
    INCOME_FREQUENCIES,
    INVESTMENT_CATEGORIES,
    MONTHS_PER_YEAR,
)
from fincore.errors import ValidationError
from fincore.lazy import category_shares
from fincore.memo import DerivedView, monthly_cash_flow
from fincore.persistence import InMemoryBackend, LocalCache, LocalCacheBackend, StorageSyncBridge
from fincore.remote import RestBackend
from fincore.services import FinanceService, ReportService
from fincore.store import FinanceStore
from fincore.transforms import load_seed

settings = get_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Personal Finance", layout="wide")


def run(coro_factory):
    """Run one store coroutine; a remote backend gets a client for the duration."""
    backend = st.session_state.store.backend

    async def _go():
        if isinstance(backend, RestBackend):
            async with backend:
                return await coro_factory()
        return await coro_factory()

    return asyncio.run(_go())


def build_session():
    cache = None
    if settings.backend == "remote":
        backend = RestBackend(settings.remote_url, settings.remote_api_key, settings.remote_timeout)
    elif settings.backend == "memory":
        backend = InMemoryBackend()
    else:
        cache = LocalCache(settings.storage_dir)
        backend = LocalCacheBackend(cache)

    store = FinanceStore(backend, settings.owner_id)
    st.session_state.store = store
    st.session_state.service = FinanceService(store)
    st.session_state.bridge = StorageSyncBridge(cache, store, settings.owner_id) if cache else None
    st.session_state.persistence_errors = []
    store.bus.subscribe(events.PERSISTENCE_FAILED,
                        lambda event, payload: st.session_state.persistence_errors.append(payload))

    errors = run(store.load_all)
    for err in errors:
        st.session_state.persistence_errors.append({"error": str(err)})
    if not any(len(store.collection(name)) for name in ("transactions", "incomes", "expenses")) \
            and settings.seed_path.exists():
        logger.info("Empty store, seeding from %s", settings.seed_path)
        store.seed(load_seed(str(settings.seed_path)))
        run(store.flush)

    st.session_state.summary_view = DerivedView(
        store.bus,
        [events.INCOMES_CHANGED, events.EXPENSES_CHANGED, events.LOANS_CHANGED,
         events.CREDIT_CARDS_CHANGED, events.GOALS_CHANGED],
        lambda: ReportService().dashboard_report(st.session_state.service),
    )


if "store" not in st.session_state:
    build_session()

store: FinanceStore = st.session_state.store
service: FinanceService = st.session_state.service
if st.session_state.bridge is not None:
    st.session_state.bridge.poll()


@st.fragment(run_every=settings.sync_poll_interval)
def watch_other_sessions():
    """Pick up writes made by other tabs or processes sharing the cache directory."""
    bridge = st.session_state.bridge
    if bridge is not None and bridge.poll():
        st.rerun()


def save():
    """Push queued writes; failures are shown but the change stays on screen."""
    for err in run(store.flush):
        st.session_state.persistence_errors.append({"error": str(err)})


def money(value: float) -> str:
    return f"${value:,.2f}"


def tx_to_df(tx_list):
    df = pd.DataFrame([t.__dict__ for t in tx_list],
                      columns=["id", "kind", "amount", "category", "description", "date", "created_at"])
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    df["signed"] = np.where(df["kind"] == "income", df["amount"], -df["amount"])
    return df


watch_other_sessions()

st.sidebar.markdown("### 👤 Profile")
st.sidebar.caption(f"Signed in as **{settings.owner_id}** ({settings.backend} storage)")
if st.session_state.persistence_errors:
    st.sidebar.error(f"{len(st.session_state.persistence_errors)} change(s) could not be saved")
    if st.sidebar.button("Dismiss", key="btn_dismiss_errors"):
        st.session_state.persistence_errors = []
        st.rerun()

menu = st.sidebar.radio(
    "Menu",
    ["🏠 Overview", "🧾 Transactions", "📅 Calendar", "📋 Plan", "🗓 Budget Planner", "💳 Debts & Cards",
     "📈 Investments", "🎯 Goals"]
)

if menu == "🏠 Overview":
    report = st.session_state.summary_view.value
    summary = report["result"]["summary"]
    health = report["result"]["health"]

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.metric("Monthly Income", money(summary.total_monthly_income))
    with k2:
        st.metric("Monthly Expenses", money(summary.total_monthly_expenses))
    with k3:
        st.metric("Total Debt", money(summary.total_debt))
    with k4:
        st.metric("Credit Utilization", f"{summary.credit_utilization:.1f}%")

    st.subheader(f"❤️ Financial Health: {health.score}/100 ({health.status})")
    for metric in health.metrics:
        st.progress(min(metric.score, 100) / 100, text=f"{metric.name}: {metric.score:.0f} ({metric.description})")

    st.subheader("🔔 Alerts")
    for alert in report["result"]["alerts"]:
        box = {"critical": st.error, "warning": st.warning, "success": st.success}.get(alert.type, st.info)
        box(f"**{alert.title}**: {alert.message}. {alert.action}")

    st.subheader("📊 Summary")
    rows = pd.DataFrame(summary_rows(summary), columns=["Figure", "Value"])
    rows["Value"] = rows["Value"].map(lambda v: f"{v:,.2f}")
    st.table(rows.set_index("Figure"))

    fc = report["result"]["forecast"]
    st.subheader("🔮 Forecast")
    c1, c2, c3 = st.columns(3)
    c1.metric("Debt-free in", f"{fc.months_to_debt_free} months" if fc.months_to_debt_free else
              ("Already debt-free" if fc.months_to_debt_free == 0 else "Never at current payments"))
    c2.metric("Emergency goal in", f"{fc.months_to_emergency_goal} months" if fc.months_to_emergency_goal else
              ("Goal achieved" if fc.months_to_emergency_goal == 0 else "No surplus"))
    c3.metric("Stability", fc.stability, delta=f"{fc.risk_level} risk", delta_color="off")

    fig_fc = go.Figure()
    x = [f"Month {p.months_ahead}" if p.months_ahead else "Current" for p in fc.points]
    fig_fc.add_trace(go.Scatter(x=x, y=[p.balance for p in fc.points], mode="lines+markers", name="Balance"))
    fig_fc.add_trace(go.Scatter(x=x, y=[p.debt_remaining for p in fc.points], mode="lines+markers", name="Debt"))
    fig_fc.add_trace(go.Scatter(x=x, y=[p.emergency_fund for p in fc.points], mode="lines+markers", name="Emergency fund"))
    fig_fc.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
    st.plotly_chart(fig_fc, use_container_width=True)

    st.subheader("🕒 Recent Transactions")
    recent = recent_transactions(store.transactions.list())
    if recent:
        disp = tx_to_df(recent)[["date", "description", "category", "signed"]].copy()
        disp["date"] = disp["date"].dt.strftime("%Y-%m-%d")
        disp["signed"] = disp["signed"].map(lambda v: f"{v:+,.2f}")
        st.table(disp.rename(columns={"signed": "amount"}).reset_index(drop=True))
    else:
        st.info("No transactions to display.")

elif menu == "🧾 Transactions":
    st.title("🧾 Transactions")

    with st.form("input_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            kind = st.selectbox("Type", ["expense", "income"])
            amount = st.number_input("Amount (USD)", min_value=0.0, step=10.0, format="%.2f")
        with col2:
            date = st.date_input("Date")
            category = st.text_input("Category")
        description = st.text_input("Description")
        submitted = st.form_submit_button("Add Transaction")

        if submitted:
            try:
                service.add_transaction(kind, amount, category.strip() or "Other", description, date.isoformat())
            except ValidationError as e:
                st.error(str(e))
            else:
                save()
                st.rerun()

    st.subheader("🔎 Filters")
    f1, f2, f3, f4 = st.columns(4)
    with f1:
        ftype = st.selectbox("Show", ["all", "income", "expense"],
                             index=["all", "income", "expense"].index(service.filters.type))
    with f2:
        fcats = st.multiselect("Categories", options=list(service.get_categories()),
                               default=sorted(service.filters.categories))
    with f3:
        fsearch = st.text_input("Search", value=service.filters.search_term)
    with f4:
        use_range = st.checkbox("Limit dates", value=service.filters.date_range is not None)
        frange = st.date_input("Date range", value=(pd.Timestamp.today() - pd.Timedelta(days=30),
                                                    pd.Timestamp.today()), disabled=not use_range)
    service.set_filters(
        type=ftype,
        categories=fcats,
        search_term=fsearch,
        date_range=(frange[0].isoformat(), frange[1].isoformat()) if use_range and len(frange) == 2 else None,
    )
    if st.button("Reset filters", key="btn_reset_filters"):
        service.reset_filters()
        st.rerun()

    m1, m2, m3 = st.columns(3)
    m1.metric("Income", money(service.get_total_income(filtered=True)))
    m2.metric("Expenses", money(service.get_total_expenses(filtered=True)))
    m3.metric("Net Cash Flow", money(service.get_net_cash_flow(filtered=True)))

    filtered = service.get_filtered_transactions()
    if filtered:
        df = tx_to_df(filtered)
        st.dataframe(df[["date", "kind", "amount", "category", "description"]], use_container_width=True)
        st.download_button("⬇️ Download Filtered Data", df.to_csv(index=False),
                           file_name="transactions_filtered.csv", mime="text/csv")

        shares = pd.DataFrame(list(category_shares(filtered)), columns=["Category", "Total", "Share"])
        if not shares.empty:
            st.plotly_chart(px.pie(shares, values="Total", names="Category", title="Spending by Category"),
                            use_container_width=True)

        spent_in = sorted({t.category for t in filtered if t.kind == "expense"})
        if spent_in:
            st.caption("Average monthly spend over the last 3 months with spending")
            st.table(pd.DataFrame([(c, money(service.get_average_monthly_spend(c))) for c in spent_in],
                                  columns=["Category", "Average"]))

        flow = pd.DataFrame(list(monthly_cash_flow(filtered)), columns=["Month", "Income", "Expenses", "Net"])
        fig_ts = go.Figure()
        fig_ts.add_trace(go.Bar(x=flow["Month"], y=flow["Income"], name="Income"))
        fig_ts.add_trace(go.Bar(x=flow["Month"], y=flow["Expenses"], name="Expenses"))
        fig_ts.add_trace(go.Scatter(x=flow["Month"], y=flow["Net"], mode="lines+markers", name="Net"))
        fig_ts.update_layout(template="plotly_dark", barmode="group")
        st.plotly_chart(fig_ts, use_container_width=True)

        to_delete = st.selectbox("Delete transaction", options=[""] + [t.id for t in filtered],
                                 format_func=lambda i: next((f"{t.date} {t.description} {t.amount:,.2f}"
                                                             for t in filtered if t.id == i), "—"))
        if to_delete and st.button("🗑 Delete", key="btn_delete_tx"):
            service.delete_transaction(to_delete)
            save()
            st.rerun()
    else:
        st.info("No transactions match the selected filters")

elif menu == "📅 Calendar":
    st.title("📅 Cash Flow Calendar")
    day = st.date_input("Day")
    cell = service.get_day_cash_flow(day.isoformat())
    if cell is None:
        st.info("No transactions on this day.")
    else:
        c1, c2, c3 = st.columns(3)
        c1.metric("Income", money(cell.income))
        c2.metric("Expenses", money(cell.expenses))
        c3.metric("Net", money(cell.net_flow))
        st.table(pd.DataFrame(list(cell.lines), columns=["Description", "Amount", "Type"]))

elif menu == "📋 Plan":
    st.title("📋 Recurring Income & Expenses")
    p1, p2 = st.columns(2)
    p1.metric("Planned monthly income", money(service.get_monthly_income_from_plan()))
    p2.metric("Planned monthly expenses", money(service.get_monthly_expenses_from_plan()))

    by_cat = plan_expenses_by_category(store.expenses.list())
    if by_cat:
        st.plotly_chart(px.bar(x=list(by_cat), y=list(by_cat.values()),
                               labels={"x": "Category", "y": "Monthly (USD)"}, template="plotly_dark"),
                        use_container_width=True)

    with st.form("income_form", clear_on_submit=True):
        st.markdown("**Add income**")
        source = st.text_input("Source")
        inc_amount = st.number_input("Amount", min_value=0.0, step=50.0)
        inc_freq = st.selectbox("Frequency", INCOME_FREQUENCIES, index=2)
        if st.form_submit_button("Add income"):
            try:
                store.incomes.add(source=source, amount=inc_amount, frequency=inc_freq, is_active=True)
            except ValidationError as e:
                st.error(str(e))
            else:
                save()
                st.rerun()

    with st.form("expense_form", clear_on_submit=True):
        st.markdown("**Add expense**")
        name = st.text_input("Name")
        exp_amount = st.number_input("Amount ", min_value=0.0, step=10.0)
        exp_cat = st.selectbox("Category", EXPENSE_CATEGORIES)
        exp_type = st.selectbox("Need or want", EXPENSE_TYPES)
        exp_freq = st.selectbox("Frequency ", EXPENSE_FREQUENCIES, index=3)
        recurring = st.checkbox("Recurring", value=True)
        if st.form_submit_button("Add expense"):
            try:
                store.expenses.add(name=name, amount=exp_amount, category=exp_cat, type=exp_type,
                                   frequency=exp_freq, is_recurring=recurring)
            except ValidationError as e:
                st.error(str(e))
            else:
                save()
                st.rerun()

    for e in store.expenses.list():
        cols = st.columns([3, 2, 2, 1])
        cols[0].write(f"**{e.name}** ({e.category}, {e.type})")
        cols[1].write(f"{money(e.amount)} {e.frequency}")
        cols[2].write(f"next due {e.next_due_date or '—'}")
        if cols[3].button("Remove", key=f"rm_exp_{e.id}"):
            store.expenses.remove(e.id)
            save()
            st.rerun()

elif menu == "🗓 Budget Planner":
    st.title("🗓 Budget Planner")
    this_year = store.clock().year
    years = sorted(set(budget_years(store.budget_lines.list())) | set(range(this_year - 5, this_year + 6)))
    year = st.selectbox("Budget year", years, index=years.index(this_year))
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    totals = service.get_budget_totals(year)
    b1, b2, b3 = st.columns(3)
    b1.metric("Annual income", money(totals.annual_income))
    b2.metric("Annual expenses", money(totals.annual_expenses))
    b3.metric("Net savings", money(totals.net_savings))

    for kind in BUDGET_KINDS:
        st.header(kind.capitalize())
        for line in [b for b in store.budget_lines.list() if b.year == year and b.kind == kind]:
            with st.expander(f"{line.name} · {money(sum(line.monthly_values))} a year"):
                grid = st.data_editor(pd.DataFrame([line.monthly_values], columns=months),
                                      key=f"grid_{line.id}", hide_index=True)
                c1, c2 = st.columns(2)
                if c1.button("Save", key=f"save_{line.id}"):
                    try:
                        values = tuple(float(v) for v in grid.iloc[0].fillna(0))
                        store.budget_lines.update(dataclasses.replace(line, monthly_values=values))
                    except ValidationError as e:
                        st.error(str(e))
                    else:
                        save()
                        st.rerun()
                if c2.button("Delete", key=f"del_{line.id}"):
                    store.budget_lines.remove(line.id)
                    save()
                    st.rerun()

    with st.form("budget_line_form", clear_on_submit=True):
        st.markdown("**Add category**")
        line_name = st.text_input("Name")
        line_kind = st.selectbox("Kind", BUDGET_KINDS, index=1)
        line_value = st.number_input("Amount per month", min_value=0.0, step=50.0)
        if st.form_submit_button("Add category"):
            try:
                store.budget_lines.add(year=year, kind=line_kind, name=line_name,
                                       monthly_values=(line_value,) * MONTHS_PER_YEAR)
            except ValidationError as e:
                st.error(str(e))
            else:
                save()
                st.rerun()

    by_month = pd.DataFrame({"Income": totals.monthly_income, "Expenses": totals.monthly_expenses,
                             "Net": totals.monthly_net}, index=months)
    fig_b = go.Figure()
    fig_b.add_trace(go.Bar(x=by_month.index, y=by_month["Income"], name="Income"))
    fig_b.add_trace(go.Bar(x=by_month.index, y=by_month["Expenses"], name="Expenses"))
    fig_b.add_trace(go.Scatter(x=by_month.index, y=by_month["Net"], mode="lines+markers", name="Net"))
    fig_b.update_layout(template="plotly_dark", barmode="group")
    st.plotly_chart(fig_b, use_container_width=True)

elif menu == "💳 Debts & Cards":
    st.title("💳 Debts & Credit Cards")
    d1, d2, d3, d4 = st.columns(4)
    d1.metric("Loan balance", money(service.get_total_debt()))
    d2.metric("Monthly payments", money(service.get_total_monthly_payments()))
    d3.metric("Card balance", money(service.get_total_credit_balance()))
    d4.metric("Utilization", f"{service.get_credit_utilization():.1f}%")

    st.header("Loans")
    for loan in store.loans.list():
        st.markdown(f"**{loan.name}** · {loan.lender} · {money(loan.current_balance)} of "
                    f"{money(loan.original_amount)} · {loan.remaining_term}/{loan.term} months left")
        st.progress(max(0.0, min(loan_payoff_progress(loan), 100)) / 100)

    st.header("Cards")
    for card in store.credit_cards.list():
        with st.expander(f"{card.name} ({card.bank}) · {card.utilization:.0f}% used"):
            new_balance = st.number_input("Current balance", value=float(card.current_balance),
                                          step=50.0, key=f"bal_{card.id}")
            if st.button("Update balance", key=f"upd_{card.id}"):
                try:
                    store.credit_cards.update(dataclasses.replace(card, current_balance=new_balance))
                except ValidationError as e:
                    st.error(str(e))
                else:
                    save()
                    st.rerun()

elif menu == "📈 Investments":
    st.title("📈 Investments")
    p = service.get_portfolio()
    i1, i2, i3, i4 = st.columns(4)
    i1.metric("Portfolio value", money(p.total_value))
    i2.metric("Total cost", money(p.total_cost))
    i3.metric("Gain / loss", money(p.gain_loss), delta=f"{p.gain_loss_percentage:+.2f}%")
    if p.best_performer is not None:
        i4.metric("Best performer", p.best_performer.symbol,
                  delta=f"{gain_loss_percentage(p.best_performer):+.2f}%")
    else:
        i4.metric("Best performer", "-")

    allocation = pd.DataFrame(service.get_asset_allocation(), columns=["Category", "Value", "Share"])
    if not allocation.empty:
        st.plotly_chart(px.pie(allocation, values="Value", names="Category", title="Asset Allocation",
                               template="plotly_dark"), use_container_width=True)

    for inv in store.investments.list():
        cols = st.columns([3, 2, 2, 1])
        cols[0].write(f"**{inv.symbol}** {inv.name} ({inv.category}, {inv.platform})")
        cols[1].write(f"{inv.shares:g} × {money(inv.current_price)} = {money(inv.value)}")
        cols[2].write(f"{gain_loss_percentage(inv):+.2f}% since purchase")
        if cols[3].button("Remove", key=f"rm_inv_{inv.id}"):
            store.investments.remove(inv.id)
            save()
            st.rerun()

    with st.form("investment_form", clear_on_submit=True):
        st.markdown("**Add holding**")
        f1, f2 = st.columns(2)
        with f1:
            symbol = st.text_input("Symbol")
            inv_name = st.text_input("Company name")
            inv_cat = st.selectbox("Category", INVESTMENT_CATEGORIES)
            platform = st.text_input("Platform")
        with f2:
            shares = st.number_input("Shares", min_value=0.0, step=1.0)
            bought = st.number_input("Purchase price", min_value=0.0, step=1.0)
            price = st.number_input("Current price", min_value=0.0, step=1.0)
        if st.form_submit_button("Add holding"):
            try:
                store.investments.add(symbol=symbol.strip().upper(), name=inv_name, shares=shares,
                                      purchase_price=bought, current_price=price, category=inv_cat,
                                      platform=platform, purchase_date=store.clock().date().isoformat())
            except ValidationError as e:
                st.error(str(e))
            else:
                save()
                st.rerun()

elif menu == "🎯 Goals":
    st.title("🎯 Goals")
    goals = store.goals.list()
    if not goals:
        st.info("No goals yet.")
    for goal in goals:
        remaining = months_to_goal(goal)
        st.markdown(f"**{goal.name}** ({goal.priority} priority) · {money(goal.current_amount)} of "
                    f"{money(goal.target_amount)} by {goal.target_date} · "
                    f"{'∞' if remaining is None else remaining} months to go")
        st.progress(goal_progress(goal) / 100)

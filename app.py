import streamlit as st
import pandas as pd
from pathlib import Path
import sys
import time
from datetime import date

# Add current directory to path
sys.path.append(str(Path(__file__).parent))

import crud
import depreciation
import storage
from ai_assistant import format_ai_response, request_followup, request_summary
from ai_client import get_client
from auth import (
    LoginThrottle,
    authenticate,
    issue_api_token,
    revoke_api_token,
    sign_up,
    update_password,
    update_profile,
)
from config import CURRENCIES, configure_logging
from dashboard import (
    cat_spend,
    daily_flow_chart,
    depreciation_history_chart,
    health_breakdown_chart,
    income_vs_expense_monthly,
    render_kpis,
)
from database import SessionLocal, User, init_db
from errors import FinoraError
from financial_health import FinancialHealthOptions, calculate_financial_health
from formatting import format_money, format_percent
from insights import (
    budget_status,
    budget_watch,
    build_ai_context,
    compare_months,
    comparison_window_start,
    goal_progress,
    last_month_deltas,
    month_label,
    month_totals,
    monthly_finance,
    search_transactions,
    subscription_total,
    summarize_budget_watch,
    transactions_to_df,
)
from rate_limit import DailyRateLimiter, limiter_key
from reports import report_filename, transactions_csv, transactions_html
from smart_alerts import compute_smart_alerts

# --- Configuration ---
st.set_page_config(page_title="Finora", layout="wide", page_icon="💰")
configure_logging()

# --- Database Session ---
init_db()

if "db" not in st.session_state:
    st.session_state.db = SessionLocal()

def get_db():
    return st.session_state.db

# --- Authentication ---
def check_login():
    """Sign in / create account screen."""
    if "authenticated" not in st.session_state:
        st.session_state["authenticated"] = False
        st.session_state["user_id"] = None
        st.session_state["throttle"] = LoginThrottle()

    if st.session_state.get("authenticated", False):
        return True

    st.markdown("<h2 style='text-align:center'>💰 Finora</h2>", unsafe_allow_html=True)
    sign_in_tab, sign_up_tab = st.tabs(["Sign In", "Create Account"])

    with sign_in_tab:
        email = st.text_input("Email", placeholder="Enter your email", key="login_email")
        password = st.text_input("Password", type="password", placeholder="Enter your password", key="login_pass")
        if st.button("Sign In", key="login_btn", type="primary", use_container_width=True):
            try:
                user = authenticate(get_db(), email, password, st.session_state["throttle"])
            except FinoraError as e:
                st.error(e.message)
            else:
                st.session_state["authenticated"] = True
                st.session_state["user_id"] = user.id
                st.success("✅ Login successful!")
                time.sleep(0.5)
                st.rerun()

    with sign_up_tab:
        with st.form("signup"):
            new_email = st.text_input("Email")
            username = st.text_input("Name (optional)")
            new_password = st.text_input("Password", type="password", help="At least 6 characters.")
            if st.form_submit_button("Create Account", type="primary"):
                try:
                    user = sign_up(get_db(), new_email, new_password, username)
                    crud.seed_default_categories(get_db(), user.id)
                except FinoraError as e:
                    st.error(e.message)
                else:
                    st.success("Account created. You can sign in now.")

    return st.session_state.get("authenticated", False)

if not check_login():
    st.stop()

db = get_db()
user_id = st.session_state["user_id"]
user = db.query(User).filter(User.id == user_id).first()
if user is None:
    st.session_state["authenticated"] = False
    st.rerun()

currency = user.currency or "TZS"
today = date.today()
this_month = month_label(today)

# Sidebar
with st.sidebar:
    if user.avatar_url and not user.avatar_url.startswith("s3://") and Path(user.avatar_url).exists():
        st.image(user.avatar_url, width=72)
    st.header(f"Hi, {user.username or user.email}")
    st.caption(user.email)

    st.divider()
    selected_month = st.date_input("Alerts month", value=today, help="Smart alerts look at this calendar month.")

    st.divider()
    if st.button("🚪 Logout", use_container_width=True):
        st.session_state["authenticated"] = False
        st.session_state["user_id"] = None
        st.rerun()

# Load Data
categories = crud.list_categories(db, user_id)
window_txns = crud.list_transactions_since(db, user_id, comparison_window_start(today))
window_records = crud.transaction_records(window_txns)
df = transactions_to_df(window_records)

tab1, tab2, tab3, tab4, tab5, tab6 = st.tabs(
    ["📊 Dashboard", "💳 Transactions", "🔔 Alerts", "🏗️ Depreciation", "🗂️ Categories & Budgets", "⚙️ Settings"]
)

with tab1:
    st.header(f"📊 {today:%B %Y}")

    totals = month_totals(df, this_month)
    render_kpis(totals, currency, last_month_deltas(df, today))

    col1, col2 = st.columns(2)
    flow_fig = daily_flow_chart(df, this_month)
    if flow_fig:
        col1.plotly_chart(flow_fig, use_container_width=True)
    else:
        col1.info("No transactions this month yet.")
    donut = cat_spend(df, this_month)
    if donut:
        col2.plotly_chart(donut, use_container_width=True)

    months = monthly_finance(df, months=6)
    trend = income_vs_expense_monthly(months)
    if trend:
        st.plotly_chart(trend, use_container_width=True)

    # Financial health
    st.subheader("🩺 Financial Health")
    emergency_fund = st.number_input(f"Emergency fund ({currency})", min_value=0.0, step=1000.0, key="emergency_fund")
    health = calculate_financial_health(months, FinancialHealthOptions(emergency_fund_amount=emergency_fund or None))
    if health is None:
        st.info("Add a few transactions to see your score.")
    else:
        h1, h2 = st.columns([1, 2])
        delta = health.delta_from_previous_month
        h1.metric("Score", f"{health.score}/100", delta=delta)
        h1.markdown(f"**{health.insight.headline}**")
        h1.caption(health.insight.summary)
        h2.plotly_chart(health_breakdown_chart(health), use_container_width=True)
        s_col, i_col = st.columns(2)
        for item in health.insight.strengths:
            s_col.success(item)
        for item in health.insight.improvements:
            i_col.warning(item)

    # Comparison
    st.subheader("📅 This Month vs Last Month")
    comparison = compare_months(df, today)
    c_totals, c_deltas = comparison["totals"], comparison["deltas"]
    m1, m2, m3 = st.columns(3)
    m1.metric("Expenses vs last month", format_money(c_totals["this"]["expenses"], currency),
              delta=format_percent(c_deltas["expenses_vs_last_pct"]), delta_color="inverse")
    m2.metric("Income vs last month", format_money(c_totals["this"]["income"], currency),
              delta=format_percent(c_deltas["income_vs_last_pct"]))
    m3.metric("Expenses vs 3-month avg", format_money(c_totals["avg3"]["expenses"], currency),
              delta=format_percent(c_deltas["expenses_vs_avg3_pct"]), delta_color="inverse")
    for driver in c_deltas["top_drivers_vs_last"]:
        st.caption(f"{driver['category']}: {format_money(driver['delta'], currency)} vs last month")

    # Budgets
    st.subheader("🎯 Budget Watch")
    budget_alerts = summarize_budget_watch(budget_watch(categories, df, this_month), currency)
    if budget_alerts:
        for alert in budget_alerts:
            st.warning(alert)
    else:
        st.success("No budgets are at risk right now.")

    # Add transaction
    st.subheader("➕ Add Transaction")
    tx_type = st.radio("Type", ["expense", "income"], horizontal=True, key="new_tx_type")
    type_categories = [c for c in categories if c.type == tx_type]
    with st.form("add_transaction"):
        a1, a2 = st.columns(2)
        amount = a1.number_input(f"Amount ({currency})", min_value=0.0, step=100.0)
        category = a2.selectbox("Category", type_categories, format_func=lambda c: c.name)
        a3, a4 = st.columns(2)
        tx_date = a3.date_input("Date", value=today)
        note = a4.text_input("Note")
        if category is not None:
            status = budget_status(category, df, pending_amount=amount, month=month_label(tx_date))
            if status and status["is_over"]:
                st.warning(
                    f"This puts {status['category']} over budget by {format_money(status['over_by'], currency)}."
                )
        if st.form_submit_button("Save"):
            try:
                crud.add_transaction(db, user_id, tx_type, amount, category.id if category else None, tx_date, note)
            except FinoraError as e:
                st.error(e.message)
            else:
                st.success("Saved!")
                st.rerun()

    # Subscriptions
    st.subheader("🔁 Subscriptions")
    subs = crud.list_subscriptions(db, user_id)
    st.metric("Monthly total", format_money(subscription_total(subs), currency))
    for sub in subs:
        s1, s2 = st.columns([4, 1])
        s1.write(f"{sub.name}: {format_money(sub.amount, currency)}")
        if s2.button("Delete", key=f"del_sub_{sub.id}"):
            crud.delete_subscription(db, user_id, sub.id)
            st.rerun()
    with st.expander("➕ Add Subscription"):
        with st.form("add_subscription"):
            sub_name = st.text_input("Name (e.g., Netflix)")
            sub_amount = st.number_input(f"Amount ({currency})", min_value=0.0, step=100.0, key="sub_amount")
            expense_cats = [None] + [c for c in categories if c.type == "expense"]
            sub_cat = st.selectbox("Category", expense_cats, format_func=lambda c: c.name if c else "(default)")
            if st.form_submit_button("Add"):
                try:
                    crud.add_subscription(db, user_id, sub_name, sub_amount, sub_cat.id if sub_cat else None)
                except FinoraError as e:
                    st.error(e.message)
                else:
                    st.rerun()
    if subs and st.button("Log all subscriptions for today"):
        try:
            count = crud.log_subscriptions(db, user_id, today)
        except FinoraError as e:
            st.error(e.message)
        else:
            st.success(f"Logged {count} subscription payments.")
            st.rerun()

    # Savings goals
    st.subheader("🏁 Savings Goals")
    for goal in crud.list_goals(db, user_id):
        progress = goal_progress(goal)
        st.write(f"**{goal.name}**: {format_money(progress['current'], currency)} of {format_money(progress['target'], currency)}")
        st.progress(progress["pct"])
        g1, g2, g3 = st.columns([2, 1, 1])
        contribution = g1.number_input("Amount", step=100.0, key=f"goal_amt_{goal.id}", label_visibility="collapsed")
        if g2.button("Contribute", key=f"goal_add_{goal.id}"):
            try:
                crud.contribute_to_goal(db, user_id, goal.id, contribution)
            except FinoraError as e:
                st.error(e.message)
            else:
                st.rerun()
        if g3.button("Delete", key=f"goal_del_{goal.id}"):
            crud.delete_goal(db, user_id, goal.id)
            st.rerun()
    with st.expander("➕ New Goal"):
        with st.form("add_goal"):
            goal_name = st.text_input("Goal")
            goal_target = st.number_input(f"Target ({currency})", min_value=0.0, step=1000.0)
            if st.form_submit_button("Create"):
                try:
                    crud.add_goal(db, user_id, goal_name, goal_target)
                except FinoraError as e:
                    st.error(e.message)
                else:
                    st.rerun()

    # AI assistant
    st.subheader("🤖 AI Summary")
    ai_context = build_ai_context(df, currency, today)
    if st.button("Generate AI summary"):
        try:
            DailyRateLimiter(db).hit(limiter_key(str(user_id), None))
            with st.spinner("Thinking..."):
                st.session_state["ai_summary"] = request_summary(get_client(), ai_context)["text"]
            st.session_state["ai_chat"] = []
        except FinoraError as e:
            st.error(e.message)
    if st.session_state.get("ai_summary"):
        for block in format_ai_response(st.session_state["ai_summary"]):
            if block["is_heading"]:
                st.markdown(f"**{block['text']}**")
            else:
                st.write(block["text"])

        mode = st.radio("Mode", ["advice", "risk", "what-if"], horizontal=True, key="ai_mode")
        for turn in st.session_state.get("ai_chat", []):
            with st.chat_message(turn["role"]):
                st.write(turn["content"])
        question = st.chat_input("Ask a follow-up question")
        if question:
            history = st.session_state.setdefault("ai_chat", [])
            try:
                DailyRateLimiter(db).hit(limiter_key(str(user_id), None))
                answer = request_followup(
                    get_client(),
                    {"question": question, "context": ai_context, "history": history, "mode": mode},
                )["text"]
            except FinoraError as e:
                st.error(e.message)
            else:
                history.append({"role": "user", "content": question})
                history.append({"role": "assistant", "content": answer})
                st.rerun()

    # Export
    st.subheader("📤 Export Report")
    e1, e2 = st.columns(2)
    report_start = e1.date_input("From", value=today.replace(day=1), key="report_start")
    report_end = e2.date_input("To", value=today, key="report_end")
    if st.button("Prepare report"):
        records = crud.transaction_records(crud.list_transactions_between(db, user_id, report_start, report_end))
        try:
            st.session_state["report_csv"] = transactions_csv(records)
            st.session_state["report_html"] = transactions_html(
                records, user.username, user.email, report_start, report_end, currency
            )
        except FinoraError as e:
            st.session_state.pop("report_csv", None)
            st.error(e.message)
    if st.session_state.get("report_csv"):
        d1, d2 = st.columns(2)
        d1.download_button(
            "Download Excel (CSV)",
            st.session_state["report_csv"],
            file_name=report_filename(report_start, report_end),
            mime="text/csv",
        )
        d2.download_button(
            "Print / PDF",
            st.session_state["report_html"],
            file_name=report_filename(report_start, report_end, "html"),
            mime="text/html",
        )

with tab2:
    st.header("💳 Transactions")
    recent = crud.transaction_records(crud.list_recent_transactions(db, user_id, limit=50))
    search_term = st.text_input("Search", placeholder="Amount, category, note, date or type")
    matches = search_transactions(recent, search_term)
    if not matches:
        st.info("No transactions.")
    else:
        table = pd.DataFrame(matches)[["date", "type", "category_name", "amount", "note", "id"]]
        table.columns = ["Date", "Type", "Category", "Amount", "Note", "ID"]
        st.dataframe(table.drop(columns=["ID"]), use_container_width=True, hide_index=True)

        to_delete = st.selectbox(
            "Select to Delete",
            matches,
            format_func=lambda r: f"{r['date']} {r['type']} {format_money(r['amount'], currency)} {r['note']}",
        )
        if st.button("Delete Selected"):
            crud.delete_transaction(db, user_id, to_delete["id"])
            st.rerun()

with tab3:
    st.header("🔔 Smart Alerts")
    month_records = crud.transaction_records(
        crud.list_transactions_between(
            db, user_id, selected_month.replace(day=1), pd.Period(selected_month, freq="M").end_time.date()
        )
    )
    for alert in compute_smart_alerts(month_records, selected_month, f"{currency} "):
        box = st.info if alert.severity == "info" else st.warning
        box(f"{alert.emoji} **{alert.title}**  \n{alert.message}  \n{alert.detail}")

with tab4:
    st.header("🏗️ Asset Depreciation")

    assets = crud.list_assets(db, user_id)
    lines = crud.list_dep_lines(db, user_id)
    summary = depreciation.asset_summary(assets, lines, today.year)
    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Assets", summary["count"])
    k2.metric("Total NBV", format_money(summary["total_nbv"], currency))
    k3.metric(f"Depreciation {today.year}", format_money(summary["this_year"], currency))
    k4.metric("Last run", summary["last_run_year"] or "Never")

    with st.expander("➕ Add Asset"):
        asset_class = st.selectbox("Asset class", list(depreciation.ASSET_CLASSES))
        default_rate = depreciation.ASSET_CLASSES[asset_class]
        with st.form("add_asset"):
            asset_name = st.text_input("Asset name")
            purchase_date = st.date_input("Purchase date", value=None)
            cost = st.number_input(f"Cost ({currency})", min_value=0.0, step=1000.0)
            rate = st.number_input(
                "Annual rate (decimal)",
                min_value=0.0,
                max_value=1.0,
                value=float(default_rate if default_rate is not None else 0.1),
                step=0.005,
                format="%.3f",
                disabled=default_rate is not None,
            )
            if st.form_submit_button("Save Asset"):
                try:
                    depreciation.register_asset(db, user_id, asset_name, asset_class, purchase_date, cost, rate)
                except FinoraError as e:
                    st.error(e.message)
                else:
                    st.success("Asset saved.")
                    st.rerun()

    run_year = st.number_input("Run year", min_value=1990, max_value=2100, value=today.year, step=1)
    if st.button("Run annual depreciation"):
        try:
            run = depreciation.run_annual_depreciation(db, user_id, int(run_year))
        except FinoraError as e:
            st.error(e.message)
        else:
            st.success(f"Charged {format_money(run['total'], currency)} across {run['assets']} assets for {run['year']}.")
            st.rerun()

    history_fig = depreciation_history_chart(depreciation.yearly_history(lines))
    if history_fig:
        st.plotly_chart(history_fig, use_container_width=True)

    if assets:
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "Name": a.name,
                        "Class": a.category,
                        "Purchased": a.purchase_date,
                        "Cost": a.cost,
                        "Rate": a.rate,
                        "Accumulated": a.accumulated_depreciation,
                        "NBV": a.nbv,
                    }
                    for a in assets
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )
        asset_to_delete = st.selectbox("Select asset to delete", assets, format_func=lambda a: a.name)
        if st.button("Delete Asset"):
            crud.delete_asset(db, user_id, asset_to_delete.id)
            st.rerun()
    else:
        st.info("No assets yet.")

with tab5:
    st.header("🗂️ Categories & Budgets")

    if st.button("Add default categories"):
        added = crud.seed_default_categories(db, user_id)
        st.success(f"Added {added} categories.")
        st.rerun()

    with st.form("add_category"):
        n1, n2, n3 = st.columns(3)
        cat_name = n1.text_input("Name")
        cat_type = n2.selectbox("Type", ["expense", "income"])
        cat_limit = n3.number_input(f"Monthly budget ({currency})", min_value=0.0, step=1000.0)
        if st.form_submit_button("Add Category"):
            try:
                crud.create_category(db, user_id, cat_name, cat_type, cat_limit)
            except FinoraError as e:
                st.error(e.message)
            else:
                st.rerun()

    for cat in categories:
        r1, r2, r3, r4 = st.columns([3, 1, 2, 1])
        r1.write(f"**{cat.name}**")
        r2.caption(cat.type)
        if cat.type == "expense":
            new_limit = r3.number_input(
                "Budget", min_value=0.0, value=float(cat.budget_limit or 0), step=1000.0,
                key=f"limit_{cat.id}", label_visibility="collapsed",
            )
            if new_limit != float(cat.budget_limit or 0):
                crud.update_budget_limit(db, user_id, cat.id, new_limit)
        if r4.button("Delete", key=f"del_cat_{cat.id}"):
            try:
                crud.delete_category(db, user_id, cat.id)
            except FinoraError as e:
                st.error(e.message)
            else:
                st.rerun()

with tab6:
    st.header("⚙️ Settings")

    with st.form("profile"):
        name = st.text_input("Name", value=user.username or "")
        new_currency = st.selectbox("Currency", CURRENCIES, index=CURRENCIES.index(currency) if currency in CURRENCIES else 0)
        if st.form_submit_button("Save Profile"):
            update_profile(db, user_id, username=name, currency=new_currency)
            st.success("Profile updated.")
            st.rerun()

    avatar = st.file_uploader("Avatar", type=["png", "jpg", "jpeg", "webp"])
    if avatar is not None and st.button("Upload Avatar"):
        try:
            location = storage.upload_avatar(user_id, avatar.name, avatar.getvalue())
        except FinoraError as e:
            st.error(e.message)
        else:
            if location:
                update_profile(db, user_id, avatar_url=location)
                st.success("Avatar updated.")
                st.rerun()
            else:
                st.error("Upload failed. Please try again.")

    st.subheader("🔑 Update Password")
    with st.form("update_password"):
        pw = st.text_input("New password", type="password")
        pw_confirm = st.text_input("Confirm password", type="password")
        if st.form_submit_button("Update Password"):
            try:
                update_password(db, user_id, pw, pw_confirm)
            except FinoraError as e:
                st.error(e.message)
            else:
                st.success("Password updated.")

    st.subheader("🔌 API Access")
    st.caption("Send as `Authorization: Bearer <token>` to the Finora API. Generating a new token replaces the old one.")
    col_issue, col_revoke = st.columns(2)
    if col_issue.button("Generate API Token"):
        st.code(issue_api_token(db, user), language=None)
        st.warning("Copy this token now. It will not be shown again.")
    if user.api_token_hash and col_revoke.button("Revoke API Token"):
        revoke_api_token(db, user)
        st.success("API token revoked.")

"""
app.py
Streamlit Gym Management Dashboard (staff: admin / employee) over the gym REST API.
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date

import streamlit as st

import auth
import ledger
import utils
from api_client import GymApiClient
from config import get_settings
from errors import GymError, user_message
from models import LifecycleStatus, PaymentStatus, Role

st.set_page_config(page_title="Gym Management Dashboard", layout="wide")

logger = logging.getLogger(__name__)
settings = get_settings()


def init_once():
    if "api" in st.session_state:
        return
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    session = auth.Session()
    session.on_clear(forget_loaded_data)
    api = GymApiClient(session)
    catalog = ledger.PlanCatalog(api)
    st.session_state.session = session
    st.session_state.api = api
    st.session_state.catalog = catalog
    st.session_state.manager = ledger.SubscriptionManager(api, catalog)
    st.session_state.loaded = False


def notify_error(exc: Exception):
    title, description = user_message(exc)
    st.error(f"**{title}**: {description}")


def run_action(action, success: str | None = None) -> bool:
    """Run one API operation; failures become a notification, never an exception."""
    try:
        action()
    except GymError as exc:
        notify_error(exc)
        return False
    if success:
        st.session_state.flash = success
    return True


def show_flash():
    msg = st.session_state.pop("flash", None)
    if msg:
        st.success(msg)


def load_data(force: bool = False):
    if st.session_state.loaded and not force:
        return
    catalog = st.session_state.catalog
    manager = st.session_state.manager
    if run_action(lambda: (catalog.list_plans(), manager.refresh())):
        st.session_state.loaded = True


def forget_loaded_data():
    # Lists fetched under the previous credential are reloaded after the next login
    st.session_state.loaded = False
    st.session_state.pop("invoice_bytes", None)


def logout():
    auth.logout(st.session_state.session)


def login_screen():
    st.title("🔐 Staff Login")

    col1, _ = st.columns([1, 1])
    with col1:
        with st.form("login"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Login", type="primary")
        if submitted and run_action(lambda: auth.login(st.session_state.api, email, password)):
            st.rerun()


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")
    records = st.session_state.manager.subscriptions

    in_progress = [r for r in records if r.lifecycle_status == LifecycleStatus.IN_PROGRESS]
    unpaid = [r for r in records if ledger.remaining_balance(r) > 0]
    soon = utils.expiring_soon(records, settings.EXPIRING_SOON_DAYS)
    outstanding = sum(ledger.remaining_balance(r) for r in records)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Subscriptions in progress", len(in_progress))
    c2.metric("Awaiting payment", len(unpaid))
    c3.metric(f"Expiring in next {settings.EXPIRING_SOON_DAYS} days", len(soon))
    c4.metric("Outstanding balance", utils.format_amount(outstanding, settings.CURRENCY))

    st.divider()
    st.subheader("Expiring soon")
    if soon:
        st.dataframe(utils.subscriptions_frame(soon), use_container_width=True, hide_index=True)
    else:
        st.caption(f"No subscriptions expiring in the next {settings.EXPIRING_SOON_DAYS} days.")


def subscription_form(existing=None):
    catalog = st.session_state.catalog
    manager = st.session_state.manager
    plans = catalog.active_plans()
    if existing and existing.plan_id not in [p.id for p in plans]:
        plans = catalog.plans

    if not plans:
        st.info("No active subscription plan. Create one on the Plans page first.")
        return

    if existing:
        st.subheader(f"✏️ Edit subscription (ID: {existing.id})")
    else:
        st.subheader("➕ New client subscription")

    labels = {f"{p.name} - {utils.format_amount(p.price, settings.CURRENCY)} / {p.duration_days} days": p.id for p in plans}
    label_list = list(labels.keys())
    index = 0
    if existing:
        index = next((i for i, pid in enumerate(labels.values()) if pid == existing.plan_id), 0)

    col1, col2, col3 = st.columns(3)
    with col1:
        first_name = st.text_input("First name", value=existing.client_first_name if existing else "")
        last_name = st.text_input("Last name", value=existing.client_last_name if existing else "")
    with col2:
        plan_label = st.selectbox("Plan", label_list, index=index)
        start_date = st.date_input("Start date", value=existing.start_date if existing else date.today())

    plan_id = labels[plan_label]
    with col3:
        plan = catalog.get(plan_id)
        end_date = ledger.calc_end_date(start_date, plan.duration_days)
        st.info(f"End date: **{end_date.isoformat()}**\n\nTotal: **{utils.format_amount(plan.price, settings.CURRENCY)}**")

    if st.button("Save", type="primary"):
        if existing:
            ok = run_action(
                lambda: manager.edit(
                    existing.id,
                    client_first_name=first_name,
                    client_last_name=last_name,
                    plan_id=plan_id,
                    start_date=start_date,
                ),
                "Subscription updated.",
            )
            if ok:
                st.session_state.edit_subscription_id = None
        else:
            ok = run_action(
                lambda: manager.create(first_name, last_name, plan_id, start_date),
                "Subscription recorded.",
            )
        if ok:
            st.rerun()


def subscription_actions(record):
    manager = st.session_state.manager
    remaining = ledger.remaining_balance(record)

    p_label, _ = utils.payment_badge(record)
    l_label, _ = utils.lifecycle_badge(record)
    st.write(
        f"**{record.client_name}** | {record.plan_name} | "
        f"{record.start_date} → {record.end_date} | {p_label} | {l_label}"
    )
    st.progress(ledger.progress(record), text=(
        f"Paid {utils.format_amount(record.amount_paid, settings.CURRENCY)} of "
        f"{utils.format_amount(record.amount_total, settings.CURRENCY)} "
        f"(remaining {utils.format_amount(remaining, settings.CURRENCY)})"
    ))

    c1, c2, c3 = st.columns([2, 1, 1])
    with c1:
        with st.form(f"payment_{record.id}"):
            amount = st.number_input(
                "Payment amount",
                min_value=0,
                max_value=max(remaining, 0),
                value=0,
                step=1000,
                disabled=not ledger.can_add_payment(record),
            )
            pay = st.form_submit_button("Record payment", disabled=not ledger.can_add_payment(record))
        if pay and run_action(
            lambda: manager.record_payment_increment(record.id, int(amount)),
            "Payment recorded.",
        ):
            st.rerun()

    with c2:
        if st.button("Edit", disabled=not ledger.can_edit(record)):
            st.session_state.edit_subscription_id = record.id
            st.rerun()
        delete_confirm = st.checkbox("Confirm delete", value=False, key=f"del_confirm_{record.id}")
        if st.button("Delete", disabled=not (delete_confirm and ledger.can_delete(record))):
            if run_action(lambda: manager.delete(record.id), "Subscription deleted."):
                st.rerun()

    with c3:
        can_invoice = ledger.can_generate_invoice(record)
        if st.button("Generate invoice", disabled=not can_invoice):
            result = {}
            if run_action(lambda: result.update(invoice=manager.generate_invoice(record.id))):
                st.session_state.flash = result["invoice"].message
                st.rerun()
        if st.button("Prepare invoice download", disabled=not record.invoice_pdf_url):
            data = {}
            if run_action(lambda: data.update(pdf=manager.download_invoice(record.id))):
                st.session_state.invoice_bytes = (record.id, data["pdf"])
        prepared = st.session_state.get("invoice_bytes")
        if prepared and prepared[0] == record.id:
            st.download_button(
                "Download invoice",
                data=prepared[1],
                file_name=ledger.invoice_filename(record.id),
                mime="application/pdf",
            )

    problems = ledger.verify_history(record)
    if problems:
        st.warning("Payment history is inconsistent:\n\n" + "\n".join(f"- {p}" for p in problems))

    if record.payment_history:
        st.caption("Payment history")
        st.dataframe(utils.payments_frame([record]), use_container_width=True, hide_index=True)


def subscriptions_page():
    st.header("👥 Client subscriptions")
    manager = st.session_state.manager

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (client/plan)")
        pay_filter = st.selectbox("Payment", ["All", "Incomplete", "Complete"])
        life_filter = st.selectbox("Status", ["All"] + [s.name for s in LifecycleStatus])

    payment_status = {
        "Incomplete": PaymentStatus.PAYMENT_INCOMPLETE,
        "Complete": PaymentStatus.PAYMENT_COMPLETE,
    }.get(pay_filter)
    lifecycle_status = LifecycleStatus[life_filter] if life_filter != "All" else None

    rows = utils.filter_subscriptions(manager.subscriptions, search, payment_status, lifecycle_status)
    st.dataframe(utils.subscriptions_frame(rows), use_container_width=True, hide_index=True)

    st.divider()

    ids = [str(r.id) for r in rows]
    selected_id = st.selectbox("Subscription ID", options=["(none)"] + ids)
    if selected_id != "(none)":
        subscription_actions(manager.get(int(selected_id)))

    st.divider()

    edit_id = st.session_state.get("edit_subscription_id")
    if edit_id:
        existing = next((r for r in manager.subscriptions if r.id == edit_id), None)
        if existing:
            subscription_form(existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_subscription_id = None
            st.rerun()
    else:
        subscription_form(existing=None)


def plans_page():
    st.header("🏷️ Subscription plans")
    catalog = st.session_state.catalog
    manager = st.session_state.manager
    user = st.session_state.session.user

    st.dataframe(
        [
            {"id": p.id, "name": p.name, "price": p.price, "duration_days": p.duration_days, "active": p.active}
            for p in catalog.plans
        ],
        use_container_width=True,
        hide_index=True,
    )

    if user is None or user.role != Role.ADMIN:
        st.caption("Only administrators can change the catalog.")
        return

    st.divider()
    st.subheader("➕ New plan")
    with st.form("new_plan"):
        c1, c2, c3 = st.columns(3)
        name = c1.text_input("Name")
        price = c2.number_input("Price", min_value=0, value=0, step=1000)
        duration = c3.number_input("Duration (days)", min_value=1, value=30, step=1)
        description = st.text_area("Description")
        created = st.form_submit_button("Create plan", type="primary")
    if created and run_action(lambda: catalog.create(name, price, duration, description), "Plan created."):
        st.rerun()

    if not catalog.plans:
        return

    st.divider()
    st.subheader("Manage plan")
    options = {f"{p.name} (ID {p.id})": p for p in catalog.plans}
    plan = options[st.selectbox("Plan", list(options.keys()))]
    c1, c2, c3 = st.columns(3)
    with c1:
        new_price = st.number_input("New price", min_value=0, value=plan.price, step=1000, key=f"price_{plan.id}")
        if st.button("Update price"):
            if run_action(lambda: catalog.update(plan.id, price=int(new_price)), "Plan updated."):
                st.rerun()
    with c2:
        label = "Deactivate" if plan.active else "Activate"
        if st.button(label):
            if run_action(lambda: catalog.set_active(plan.id, not plan.active), "Plan updated."):
                st.rerun()
        if st.button("Show subscribers"):
            data = {}
            if run_action(lambda: data.update(rows=catalog.subscribers(plan.id))):
                st.dataframe(data["rows"], use_container_width=True)
    with c3:
        confirm = st.checkbox("Confirm delete", value=False, key=f"plan_del_{plan.id}")
        if st.button("Delete plan", disabled=not confirm):
            if run_action(lambda: catalog.delete(plan.id, manager.subscriptions), "Plan deleted."):
                st.rerun()


def reports_page():
    st.header("🧾 Reports")
    records = st.session_state.manager.subscriptions

    st.subheader("Export subscriptions to CSV")
    if records:
        st.download_button(
            "Download subscriptions.csv",
            data=utils.subscriptions_to_csv_bytes(records),
            file_name="subscriptions.csv",
            mime="text/csv",
        )
        st.download_button(
            "Download payments.csv",
            data=utils.payments_to_csv_bytes(records),
            file_name="payments.csv",
            mime="text/csv",
        )
    else:
        st.caption("No subscriptions to export.")

    st.divider()
    st.subheader("Revenue summary by month")
    st.dataframe(utils.revenue_summary_by_month(records), use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("Outstanding balances")
    st.dataframe(utils.outstanding_balances(records), use_container_width=True, hide_index=True)


def main_app():
    user = st.session_state.session.user
    st.sidebar.title("🏋️ Gym Dashboard")
    st.sidebar.caption(f"Logged in as: {user.first_name} {user.last_name} ({user.role.value})")

    pages = ["Dashboard", "Subscriptions", "Plans", "Reports"]
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Refresh"):
        load_data(force=True)
    if st.sidebar.button("Renew session"):
        run_action(lambda: auth.refresh(st.session_state.api), "Session renewed.")
    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    load_data()
    if not st.session_state.session.is_authenticated:
        if st.button("Back to login"):
            st.rerun()
        return
    show_flash()

    if st.session_state.page == "Dashboard":
        dashboard_page()
    elif st.session_state.page == "Subscriptions":
        subscriptions_page()
    elif st.session_state.page == "Plans":
        plans_page()
    elif st.session_state.page == "Reports":
        reports_page()


# --------- App entry ---------

def run():
    init_once()

    if not st.session_state.session.is_authenticated or st.session_state.session.user is None:
        login_screen()
        return

    main_app()


if __name__ == "__main__":
    run()

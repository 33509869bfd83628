"""
utils.py
Dates, display formatting, search filters, exports and summaries.
"""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd

import ledger
from models import ClientSubscription, LifecycleStatus, PaymentState, PaymentStatus

SUBSCRIPTION_COLUMNS = [
    "id", "client", "plan", "start_date", "end_date",
    "amount_total", "amount_paid", "remaining", "payment_status", "status",
]
PAYMENT_COLUMNS = ["subscription_id", "client", "increment_id", "amount_added", "amount_total_after", "date"]

# label, badge color
PAYMENT_BADGES = {
    PaymentState.NO_PAYMENT: ("No payment", "red"),
    PaymentState.PARTIAL_PAYMENT: ("Partial payment", "orange"),
    PaymentState.FULLY_PAID: ("Fully paid", "green"),
}
LIFECYCLE_BADGES = {
    LifecycleStatus.IN_PROGRESS: ("In progress", "blue"),
    LifecycleStatus.COMPLETED: ("Completed", "gray"),
    LifecycleStatus.EXPIRED: ("Expired", "red"),
}


def format_amount(amount: int, currency: str = "FCFA") -> str:
    # 150000 -> "150 000 FCFA"
    return f"{int(amount):,}".replace(",", " ") + f" {currency}"


def payment_badge(record: ClientSubscription) -> tuple[str, str]:
    return PAYMENT_BADGES[ledger.payment_state(record)]


def lifecycle_badge(record: ClientSubscription) -> tuple[str, str]:
    return LIFECYCLE_BADGES[record.lifecycle_status]


def filter_subscriptions(
    records: list[ClientSubscription],
    search: str = "",
    payment_status: PaymentStatus | None = None,
    lifecycle_status: LifecycleStatus | None = None,
) -> list[ClientSubscription]:
    needle = search.strip().lower()
    out = []
    for r in records:
        if needle and needle not in r.client_name.lower() and needle not in r.plan_name.lower():
            continue
        if payment_status is not None and r.payment_status != payment_status:
            continue
        if lifecycle_status is not None and r.lifecycle_status != lifecycle_status:
            continue
        out.append(r)
    return out


def expiring_soon(records: list[ClientSubscription], days: int = 7, today: date | None = None) -> list[ClientSubscription]:
    """
    In-progress subscriptions whose end date falls within the next `days` days.
    Display filter only: lifecycle status stays whatever the server says.
    """
    today = today or date.today()
    limit = today + timedelta(days=days)
    rows = [
        r for r in records
        if r.lifecycle_status == LifecycleStatus.IN_PROGRESS and r.end_date and today <= r.end_date <= limit
    ]
    return sorted(rows, key=lambda r: r.end_date)


def subscriptions_frame(records: list[ClientSubscription]) -> pd.DataFrame:
    rows = [
        {
            "id": r.id,
            "client": r.client_name,
            "plan": r.plan_name,
            "start_date": r.start_date.isoformat() if r.start_date else "",
            "end_date": r.end_date.isoformat() if r.end_date else "",
            "amount_total": r.amount_total,
            "amount_paid": r.amount_paid,
            "remaining": ledger.remaining_balance(r),
            "payment_status": payment_badge(r)[0],
            "status": lifecycle_badge(r)[0],
        }
        for r in records
    ]
    if not rows:
        return pd.DataFrame(columns=SUBSCRIPTION_COLUMNS)
    return pd.DataFrame(rows, columns=SUBSCRIPTION_COLUMNS)


def payments_frame(records: list[ClientSubscription]) -> pd.DataFrame:
    rows = [
        {
            "subscription_id": r.id,
            "client": r.client_name,
            "increment_id": inc.id,
            "amount_added": inc.amount_added,
            "amount_total_after": inc.amount_total_after,
            "date": inc.modification_date.isoformat(timespec="seconds") if inc.modification_date else "",
        }
        for r in records
        for inc in r.payment_history
    ]
    if not rows:
        return pd.DataFrame(columns=PAYMENT_COLUMNS)
    return pd.DataFrame(rows, columns=PAYMENT_COLUMNS)


def subscriptions_to_csv_bytes(records: list[ClientSubscription]) -> bytes:
    return subscriptions_frame(records).to_csv(index=False).encode("utf-8")


def payments_to_csv_bytes(records: list[ClientSubscription]) -> bytes:
    return payments_frame(records).to_csv(index=False).encode("utf-8")


def revenue_summary_by_month(records: list[ClientSubscription]) -> pd.DataFrame:
    df = payments_frame(records)
    df = df[df["date"] != ""]
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    df = df.assign(month=df["date"].str[:7])
    summary = df.groupby("month", as_index=False)["amount_added"].sum()
    summary = summary.rename(columns={"amount_added": "revenue"})
    return summary.sort_values("month", ascending=False).reset_index(drop=True)


def outstanding_balances(records: list[ClientSubscription]) -> pd.DataFrame:
    df = subscriptions_frame([r for r in records if ledger.remaining_balance(r) > 0])
    if df.empty:
        return df[["id", "client", "plan", "amount_total", "amount_paid", "remaining"]]
    df = df.sort_values("remaining", ascending=False).reset_index(drop=True)
    return df[["id", "client", "plan", "amount_total", "amount_paid", "remaining"]]

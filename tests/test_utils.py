from datetime import date, datetime

import utils
from models import ClientSubscription, LifecycleStatus, PaymentIncrement, PaymentStatus


def make(id, first="Moussa", plan="Mensuel", paid=0, total=100000, end=date(2024, 1, 31),
         status=LifecycleStatus.IN_PROGRESS, history=()):
    return ClientSubscription(
        id=id, client_first_name=first, client_last_name="Traore", plan_id=1, plan_name=plan,
        start_date=date(2024, 1, 1), end_date=end, amount_paid=paid, amount_total=total,
        payment_status=PaymentStatus.PAYMENT_COMPLETE if paid == total else PaymentStatus.PAYMENT_INCOMPLETE,
        lifecycle_status=status, payment_history=tuple(history),
    )


def test_format_amount():
    assert utils.format_amount(150000) == "150 000 FCFA"
    assert utils.format_amount(500, "XOF") == "500 XOF"


def test_badges():
    assert utils.payment_badge(make(1, paid=0))[0] == "No payment"
    assert utils.payment_badge(make(1, paid=10))[0] == "Partial payment"
    assert utils.payment_badge(make(1, paid=100000)) == ("Fully paid", "green")
    assert utils.lifecycle_badge(make(1, status=LifecycleStatus.EXPIRED))[0] == "Expired"


def test_filter_subscriptions():
    rows = [make(1, first="Awa"), make(2, plan="Annuel", paid=100000), make(3, status=LifecycleStatus.EXPIRED)]

    assert [r.id for r in utils.filter_subscriptions(rows, search="awa")] == [1]
    assert [r.id for r in utils.filter_subscriptions(rows, search="ANNUEL")] == [2]
    assert [r.id for r in utils.filter_subscriptions(rows, payment_status=PaymentStatus.PAYMENT_COMPLETE)] == [2]
    assert [r.id for r in utils.filter_subscriptions(rows, lifecycle_status=LifecycleStatus.EXPIRED)] == [3]


def test_expiring_soon_only_in_progress_within_window():
    today = date(2024, 1, 28)
    rows = [
        make(1, end=date(2024, 2, 3)),
        make(2, end=date(2024, 1, 29)),
        make(3, end=date(2024, 2, 20)),
        make(4, end=date(2024, 1, 30), status=LifecycleStatus.EXPIRED),
        make(5, end=date(2024, 1, 27)),
    ]
    assert [r.id for r in utils.expiring_soon(rows, days=7, today=today)] == [2, 1]


def test_revenue_by_month():
    history = [
        PaymentIncrement(1, 10000, 10000, datetime(2024, 1, 5)),
        PaymentIncrement(2, 20000, 30000, datetime(2024, 1, 20)),
        PaymentIncrement(3, 5000, 35000, datetime(2024, 2, 2)),
    ]
    df = utils.revenue_summary_by_month([make(1, paid=35000, history=history)])

    assert df["month"].tolist() == ["2024-02", "2024-01"]
    assert df["revenue"].tolist() == [5000, 30000]


def test_revenue_without_payments():
    df = utils.revenue_summary_by_month([make(1)])
    assert df.empty
    assert list(df.columns) == ["month", "revenue"]


def test_outstanding_balances_sorted():
    df = utils.outstanding_balances([make(1, paid=90000), make(2, paid=0), make(3, paid=100000)])
    assert df["id"].tolist() == [2, 1]
    assert df["remaining"].tolist() == [100000, 10000]


def test_csv_exports():
    history = [PaymentIncrement(1, 10000, 10000, datetime(2024, 1, 5, 9, 0))]
    rows = [make(1, paid=10000, history=history)]

    subs = utils.subscriptions_to_csv_bytes(rows).decode("utf-8").splitlines()
    assert subs[0] == ",".join(utils.SUBSCRIPTION_COLUMNS)
    assert "Moussa Traore" in subs[1]

    pays = utils.payments_to_csv_bytes(rows).decode("utf-8").splitlines()
    assert pays[1].endswith("2024-01-05T09:00:00")

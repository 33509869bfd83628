"""
ledger.py
Subscription catalog + client subscription record manager.

All local gates (edit/delete/payment/invoice) are checked here before any
request is sent. After every successful mutation the full list is re-fetched
from the API: local state only changes after a confirmed round trip.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import date, timedelta
from numbers import Integral

from api_client import GymApiClient
from errors import NotFoundError, ValidationError
from models import (
    ClientSubscription,
    InvoiceResult,
    PaymentIncrement,
    PaymentState,
    PaymentStatus,
    SubscriptionPlan,
    to_date,
)

logger = logging.getLogger(__name__)

EDIT_REFUSED = "Modification not allowed: a payment has already been recorded."
DELETE_REFUSED = "Deletion not allowed: a payment has already been recorded."
ALREADY_PAID = "This subscription is already fully paid."
INVOICE_NOT_READY = "The invoice is available once the subscription is fully paid."
NO_INVOICE = "No invoice has been generated for this subscription yet."

EDITABLE_FIELDS = ("client_first_name", "client_last_name", "plan_id", "start_date")


# ---------- Derivations ----------

def calc_end_date(start_date: date | str, duration_days: int) -> date:
    start = to_date(start_date)
    if start is None:
        raise ValidationError("Start date is required.")
    return start + timedelta(days=int(duration_days))


def remaining_balance(record: ClientSubscription) -> int:
    return max(record.amount_total - record.amount_paid, 0)


def is_complete(record: ClientSubscription) -> bool:
    return record.payment_status == PaymentStatus.PAYMENT_COMPLETE or (
        record.amount_total > 0 and record.amount_paid >= record.amount_total
    )


def payment_state(record: ClientSubscription) -> PaymentState:
    if is_complete(record):
        return PaymentState.FULLY_PAID
    if record.amount_paid > 0:
        return PaymentState.PARTIAL_PAYMENT
    return PaymentState.NO_PAYMENT


def progress(record: ClientSubscription) -> float:
    """Paid fraction in [0, 1]."""
    if record.amount_total <= 0:
        return 1.0 if is_complete(record) else 0.0
    return min(record.amount_paid / record.amount_total, 1.0)


def can_edit(record: ClientSubscription) -> bool:
    return payment_state(record) == PaymentState.NO_PAYMENT


def can_delete(record: ClientSubscription) -> bool:
    return not is_complete(record) and record.amount_paid == 0


def can_add_payment(record: ClientSubscription) -> bool:
    return not is_complete(record)


def can_generate_invoice(record: ClientSubscription) -> bool:
    return is_complete(record)


def validate_increment(record: ClientSubscription, amount) -> int:
    """Return the amount as int, or raise ValidationError."""
    if not can_add_payment(record):
        raise ValidationError(ALREADY_PAID)
    if isinstance(amount, bool) or not isinstance(amount, (Integral, float)):
        raise ValidationError("The amount must be a number.")
    if not math.isfinite(amount):
        raise ValidationError("The amount must be a finite number.")
    if amount != int(amount):
        raise ValidationError("The amount must be a whole number.")
    amount = int(amount)
    if amount <= 0:
        raise ValidationError("The amount must be greater than 0.")
    remaining = remaining_balance(record)
    if amount > remaining:
        raise ValidationError(f"The amount exceeds the remaining balance ({remaining}).")
    return amount


def expected_increment(record: ClientSubscription, amount: int) -> PaymentIncrement:
    return PaymentIncrement(
        id=None,
        amount_added=amount,
        amount_total_after=record.amount_paid + amount,
        modification_date=None,
    )


def verify_history(record: ClientSubscription) -> list[str]:
    """
    Check the running-total chain of the payment history.
    Returns a list of discrepancies (empty when the ledger is consistent).
    """
    problems: list[str] = []
    running = 0
    for inc in record.payment_history:
        if inc.amount_added <= 0:
            problems.append(f"Increment {inc.id}: non-positive amount {inc.amount_added}.")
        if inc.amount_total_after != running + inc.amount_added:
            problems.append(
                f"Increment {inc.id}: total after is {inc.amount_total_after}, "
                f"expected {running + inc.amount_added}."
            )
        running = inc.amount_total_after
    if record.payment_history and running != record.amount_paid:
        problems.append(f"History total {running} does not match amount paid {record.amount_paid}.")
    if record.amount_paid > record.amount_total:
        problems.append(f"Amount paid {record.amount_paid} exceeds total {record.amount_total}.")
    return problems


# ---------- Catalog ----------

def validate_plan_inputs(name: str, price, duration_days) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Plan name is required.")
    try:
        if int(price) <= 0:
            errors.append("Price must be greater than 0.")
    except (TypeError, ValueError):
        errors.append("Price must be numeric.")
    try:
        if int(duration_days) <= 0:
            errors.append("Duration must be at least 1 day.")
    except (TypeError, ValueError):
        errors.append("Duration must be a whole number of days.")
    return errors


class PlanCatalog:
    def __init__(self, api: GymApiClient):
        self.api = api
        self.plans: list[SubscriptionPlan] = []

    def list_plans(self) -> list[SubscriptionPlan]:
        self.plans = self.api.list_subscription_plans()
        return self.plans

    def active_plans(self) -> list[SubscriptionPlan]:
        return [p for p in self.plans if p.active]

    def get(self, plan_id: int) -> SubscriptionPlan:
        for plan in self.plans:
            if plan.id == plan_id:
                return plan
        raise ValidationError(f"Unknown subscription plan ({plan_id}).")

    def create(self, name: str, price, duration_days, description: str = "", active: bool = True) -> SubscriptionPlan:
        errors = validate_plan_inputs(name, price, duration_days)
        if errors:
            raise ValidationError(" ".join(errors))
        plan = SubscriptionPlan(
            id=None,
            name=name.strip(),
            price=int(price),
            duration_days=int(duration_days),
            active=active,
            description=description.strip(),
        )
        created = self.api.create_subscription_plan(plan.to_api())
        self.list_plans()
        return created

    def update(self, plan_id: int, **fields) -> SubscriptionPlan:
        current = self.get(plan_id)
        updated = replace(current, **fields)
        errors = validate_plan_inputs(updated.name, updated.price, updated.duration_days)
        if errors:
            raise ValidationError(" ".join(errors))
        result = self.api.update_subscription_plan(plan_id, updated.to_api())
        self.list_plans()
        return result

    def set_active(self, plan_id: int, active: bool) -> SubscriptionPlan:
        self.get(plan_id)
        result = self.api.update_subscription_plan(plan_id, {"actif": active})
        self.list_plans()
        return result

    def delete(self, plan_id: int, subscriptions: list[ClientSubscription]) -> None:
        self.get(plan_id)
        if any(s.plan_id == plan_id for s in subscriptions):
            raise ValidationError("Deletion not allowed: clients are enrolled on this plan. Deactivate it instead.")
        self.api.delete_subscription_plan(plan_id)
        self.list_plans()

    def subscribers(self, plan_id: int) -> list[dict]:
        return self.api.list_plan_subscribers(plan_id)


# ---------- Client subscriptions ----------

class SubscriptionManager:
    def __init__(self, api: GymApiClient, catalog: PlanCatalog):
        self.api = api
        self.catalog = catalog
        self.subscriptions: list[ClientSubscription] = []

    def refresh(self) -> list[ClientSubscription]:
        self.subscriptions = self.api.list_client_subscriptions()
        return self.subscriptions

    def get(self, subscription_id: int) -> ClientSubscription:
        for record in self.subscriptions:
            if record.id == subscription_id:
                return record
        raise NotFoundError(f"Subscription {subscription_id} not found.")

    def draft(self, first_name: str, last_name: str, plan_id: int | None, start_date: date | str | None) -> ClientSubscription:
        """
        Local preview of a new enrollment (end date derived from the plan).
        The backend's answer to create() is authoritative.
        """
        errors: list[str] = []
        if not (first_name or "").strip():
            errors.append("Client first name is required.")
        if not (last_name or "").strip():
            errors.append("Client last name is required.")
        if plan_id in (None, ""):
            errors.append("A subscription plan is required.")
        if not start_date:
            errors.append("Start date is required.")
        if errors:
            raise ValidationError(" ".join(errors))

        plan = self.catalog.get(int(plan_id))
        start = to_date(start_date)
        return ClientSubscription(
            id=None,
            client_first_name=first_name.strip(),
            client_last_name=last_name.strip(),
            plan_id=plan.id,
            plan_name=plan.name,
            start_date=start,
            end_date=calc_end_date(start, plan.duration_days),
            amount_paid=0,
            amount_total=plan.price,
            payment_status=PaymentStatus.PAYMENT_INCOMPLETE,
        )

    def create(self, first_name: str, last_name: str, plan_id: int, start_date: date | str) -> ClientSubscription:
        draft = self.draft(first_name, last_name, plan_id, start_date)
        created = self.api.create_client_subscription(draft.to_api())
        logger.info("Created subscription %s for %s", created.id, created.client_name)
        self.refresh()
        return created

    def edit(self, subscription_id: int, **fields) -> ClientSubscription:
        record = self.get(subscription_id)
        if not can_edit(record):
            logger.info("Edit refused for subscription %s (paid %s)", subscription_id, record.amount_paid)
            raise ValidationError(EDIT_REFUSED)

        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}.")
        if "start_date" in fields:
            fields["start_date"] = to_date(fields["start_date"])
        if "plan_id" in fields and fields["plan_id"] is not None:
            fields["plan_id"] = int(fields["plan_id"])

        updated = replace(record, **fields)
        if not updated.client_first_name.strip() or not updated.client_last_name.strip():
            raise ValidationError("Client first and last name are required.")
        if updated.plan_id is None or updated.start_date is None:
            raise ValidationError("A subscription plan and a start date are required.")

        if updated.start_date != record.start_date or updated.plan_id != record.plan_id:
            plan = self.catalog.get(updated.plan_id)
            updated = replace(
                updated,
                plan_name=plan.name,
                amount_total=plan.price,
                end_date=calc_end_date(updated.start_date, plan.duration_days),
            )

        result = self.api.update_client_subscription(subscription_id, updated.to_api())
        self.refresh()
        return result

    def delete(self, subscription_id: int) -> None:
        record = self.get(subscription_id)
        if not can_delete(record):
            logger.info("Delete refused for subscription %s (paid %s)", subscription_id, record.amount_paid)
            raise ValidationError(ALREADY_PAID if is_complete(record) else DELETE_REFUSED)
        self.api.delete_client_subscription(subscription_id)
        self.refresh()

    def record_payment_increment(self, subscription_id: int, amount) -> ClientSubscription:
        record = self.get(subscription_id)
        amount = validate_increment(record, amount)
        expected = expected_increment(record, amount)

        self.api.add_payment_increment(subscription_id, amount)
        self.refresh()

        updated = self.get(subscription_id)
        if updated.amount_paid != expected.amount_total_after:
            logger.warning(
                "Subscription %s: expected %s paid after increment, server reports %s",
                subscription_id,
                expected.amount_total_after,
                updated.amount_paid,
            )
        return updated

    def generate_invoice(self, subscription_id: int, regenerate: bool = False) -> InvoiceResult:
        record = self.get(subscription_id)
        if not can_generate_invoice(record):
            raise ValidationError(INVOICE_NOT_READY)
        if record.invoice_pdf_url and not regenerate:
            return InvoiceResult(message="Invoice already generated.", invoice_url=record.invoice_pdf_url)

        result = self.api.generate_subscription_invoice(subscription_id)
        self.refresh()
        if result.invoice_url is None:
            result = replace(result, invoice_url=self.get(subscription_id).invoice_pdf_url)
        return result

    def download_invoice(self, subscription_id: int) -> bytes:
        record = self.get(subscription_id)
        if not record.invoice_pdf_url:
            raise NotFoundError(NO_INVOICE)
        return self.api.download_subscription_invoice(subscription_id)


def invoice_filename(subscription_id: int) -> str:
    return f"facture_abonnement_{subscription_id}.pdf"

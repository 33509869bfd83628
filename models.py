"""
models.py
Domain dataclasses (plans, client subscriptions, payment increments) and
their mapping to/from the backend's JSON records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class Role(str, Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYE"
    CLIENT = "CLIENT"

    @classmethod
    def _missing_(cls, value):
        # Unknown roles never get staff access
        return cls.CLIENT


class PaymentStatus(str, Enum):
    PAYMENT_INCOMPLETE = "PAIEMENT_INACHEVE"
    PAYMENT_COMPLETE = "PAIEMENT_TERMINE"

    @classmethod
    def _missing_(cls, value):
        # Legacy pending values (EN_ATTENTE, PARTIEL); completeness comes from the amounts
        return cls.PAYMENT_INCOMPLETE


class LifecycleStatus(str, Enum):
    IN_PROGRESS = "EN_COURS"
    COMPLETED = "TERMINE"
    EXPIRED = "EXPIRE"


class PaymentState(str, Enum):
    """Client-side view of how far a subscription has been paid."""

    NO_PAYMENT = "no_payment"
    PARTIAL_PAYMENT = "partial_payment"
    FULLY_PAID = "fully_paid"


def to_amount(value: Any) -> int:
    """Money travels as plain numbers (sometimes strings like "15000.00")."""
    if value is None or value == "":
        return 0
    return int(round(float(value)))


def to_date(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    # Accept full timestamps too, keep only the calendar part
    return date.fromisoformat(str(value)[:10])


def to_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class SubscriptionPlan:
    id: int | None
    name: str
    price: int
    duration_days: int
    active: bool = True
    description: str = ""

    @classmethod
    def from_api(cls, data: dict) -> "SubscriptionPlan":
        return cls(
            id=data.get("id"),
            name=data.get("nom", ""),
            price=to_amount(data.get("prix")),
            duration_days=int(data.get("duree_jours") or 0),
            active=bool(data.get("actif", True)),
            description=data.get("description") or "",
        )

    def to_api(self) -> dict:
        return {
            "nom": self.name,
            "description": self.description,
            "prix": self.price,
            "duree_jours": self.duration_days,
            "actif": self.active,
        }


@dataclass(frozen=True)
class PaymentIncrement:
    id: int | None
    amount_added: int
    amount_total_after: int
    modification_date: datetime | None

    @classmethod
    def from_api(cls, data: dict) -> "PaymentIncrement":
        return cls(
            id=data.get("id"),
            amount_added=to_amount(data.get("montant_ajoute")),
            amount_total_after=to_amount(data.get("montant_total_apres")),
            modification_date=to_datetime(data.get("date_modification")),
        )


@dataclass(frozen=True)
class ClientSubscription:
    id: int | None
    client_first_name: str
    client_last_name: str
    plan_id: int | None
    plan_name: str
    start_date: date | None
    end_date: date | None
    amount_paid: int
    amount_total: int
    payment_status: PaymentStatus = PaymentStatus.PAYMENT_INCOMPLETE
    lifecycle_status: LifecycleStatus = LifecycleStatus.IN_PROGRESS
    invoice_pdf_url: str | None = None
    payment_history: tuple[PaymentIncrement, ...] = field(default_factory=tuple)

    @property
    def client_name(self) -> str:
        return f"{self.client_first_name} {self.client_last_name}".strip()

    @classmethod
    def from_api(cls, data: dict) -> "ClientSubscription":
        plan = data.get("abonnement")
        # Older endpoints nest the plan instead of sending its id
        if isinstance(plan, dict):
            plan_id = plan.get("id")
            plan_name = data.get("abonnement_nom") or plan.get("nom", "")
            total_default = plan.get("prix")
        else:
            plan_id = plan
            plan_name = data.get("abonnement_nom", "")
            total_default = data.get("abonnement_prix")

        # Append-only ledger: ids grow with each increment
        history = sorted(
            (PaymentIncrement.from_api(h) for h in data.get("historique_paiements") or []),
            key=lambda h: h.id or 0,
        )
        return cls(
            id=data.get("id"),
            client_first_name=data.get("client_prenom", ""),
            client_last_name=data.get("client_nom", ""),
            plan_id=plan_id,
            plan_name=plan_name,
            start_date=to_date(data.get("date_debut")),
            end_date=to_date(data.get("date_fin")),
            amount_paid=to_amount(data.get("montant_paye")),
            amount_total=to_amount(data.get("montant_total", total_default)),
            payment_status=PaymentStatus(data.get("statut_paiement") or PaymentStatus.PAYMENT_INCOMPLETE.value),
            lifecycle_status=LifecycleStatus(data.get("statut") or LifecycleStatus.IN_PROGRESS.value),
            invoice_pdf_url=data.get("facture_pdf_url") or None,
            payment_history=tuple(history),
        )

    def to_api(self) -> dict:
        """Payload for create/update; server-owned fields are left out."""
        payload = {
            "client_prenom": self.client_first_name,
            "client_nom": self.client_last_name,
            "abonnement": self.plan_id,
            "date_debut": self.start_date.isoformat() if self.start_date else None,
        }
        if self.end_date:
            payload["date_fin"] = self.end_date.isoformat()
        return payload


@dataclass(frozen=True)
class InvoiceResult:
    message: str
    invoice_url: str | None = None

    @classmethod
    def from_api(cls, data: dict | None) -> "InvoiceResult":
        data = data or {}
        return cls(
            message=data.get("message") or "Invoice generated.",
            invoice_url=data.get("facture_url") or data.get("facture_pdf_url"),
        )


@dataclass(frozen=True)
class UserProfile:
    id: int | None
    email: str
    first_name: str
    last_name: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.ADMIN, Role.EMPLOYEE)

    @classmethod
    def from_api(cls, data: dict) -> "UserProfile":
        return cls(
            id=data.get("id"),
            email=data.get("email", ""),
            first_name=data.get("prenom", ""),
            last_name=data.get("nom", ""),
            role=Role(data.get("role") or Role.CLIENT.value),
        )

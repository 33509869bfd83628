"""Shared fixtures: an in-memory fake of the gym REST backend behind httpx.MockTransport."""

from __future__ import annotations

import json
import re

import httpx
import pytest

import auth
import ledger
from api_client import GymApiClient

BASE_URL = "http://testserver/api"


class FakeBackend:
    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.users = {
            "admin@gym.test": {"id": 1, "email": "admin@gym.test", "nom": "Doe", "prenom": "Ada", "role": "ADMIN"},
            "staff@gym.test": {"id": 2, "email": "staff@gym.test", "nom": "Kone", "prenom": "Ali", "role": "EMPLOYE"},
            "client@gym.test": {"id": 3, "email": "client@gym.test", "nom": "Diallo", "prenom": "Awa", "role": "CLIENT"},
        }
        self.current_user = None
        self.plans = {
            1: {"id": 1, "nom": "Mensuel", "description": "", "prix": 100000, "duree_jours": 30, "actif": True},
            2: {"id": 2, "nom": "Trimestriel", "description": "", "prix": 250000, "duree_jours": 90, "actif": True},
        }
        self.subscriptions: dict[int, dict] = {}
        self.page_size = None
        self._next_id = 100

    # ---------- seeding ----------

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_subscription(self, amount_total=100000, amount_paid=0, plan_id=1, **extra) -> dict:
        sid = self.new_id()
        history = []
        if amount_paid:
            history.append({
                "id": self.new_id(),
                "montant_ajoute": amount_paid,
                "montant_total_apres": amount_paid,
                "date_modification": "2024-01-05T10:00:00Z",
            })
        record = {
            "id": sid,
            "client_nom": "Traore",
            "client_prenom": "Moussa",
            "abonnement": plan_id,
            "abonnement_nom": self.plans[plan_id]["nom"],
            "date_debut": "2024-01-01",
            "date_fin": "2024-01-31",
            "montant_total": amount_total,
            "montant_paye": amount_paid,
            "statut_paiement": "PAIEMENT_TERMINE" if amount_paid == amount_total else "PAIEMENT_INACHEVE",
            "statut": "EN_COURS",
            "facture_pdf_url": None,
            "historique_paiements": history,
        }
        record.update(extra)
        self.subscriptions[sid] = record
        return record

    # ---------- request handling ----------

    def requests_for(self, method: str, fragment: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and fragment in r.url.path]

    def mutations(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method != "GET"]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        method = request.method

        if path == "/login/" and method == "POST":
            user = self.users.get(body.get("email"))
            if user is None or body.get("password") != "secret":
                return httpx.Response(401, json={"detail": "No active account found with the given credentials"})
            self.current_user = user
            return httpx.Response(200, json={"access": f"access-{user['id']}", "refresh": f"refresh-{user['id']}"})
        if path == "/refresh/" and method == "POST":
            return httpx.Response(200, json={"access": "access-refreshed"})
        if path == "/me/":
            return httpx.Response(200, json=self.current_user)

        if path == "/abonnements/":
            if method == "GET":
                return self._list(request, list(self.plans.values()))
            plan = dict(body, id=self.new_id())
            self.plans[plan["id"]] = plan
            return httpx.Response(201, json=plan)

        m = re.fullmatch(r"/abonnements/(\d+)/clients/", path)
        if m:
            pid = int(m.group(1))
            rows = [
                {"client_nom": s["client_nom"], "client_prenom": s["client_prenom"]}
                for s in self.subscriptions.values() if s["abonnement"] == pid
            ]
            return httpx.Response(200, json=rows)

        m = re.fullmatch(r"/abonnements/(\d+)/", path)
        if m:
            pid = int(m.group(1))
            if method == "DELETE":
                self.plans.pop(pid)
                return httpx.Response(204)
            self.plans[pid].update(body)
            return httpx.Response(200, json=self.plans[pid])

        if path == "/abonnements-clients-presentiels/":
            if method == "GET":
                return self._list(request, list(self.subscriptions.values()))
            return self._create_subscription(body)

        m = re.fullmatch(r"/abonnements-clients-presentiels/(\d+)/(\w+/)?", path)
        if m:
            sid = int(m.group(1))
            action = (m.group(2) or "").rstrip("/")
            record = self.subscriptions.get(sid)
            if record is None:
                return httpx.Response(404, json={"detail": "Not found."})
            if action == "modifier_montant_paye":
                return self._add_increment(record, body["montant_ajoute"])
            if action == "generer_facture":
                record["facture_pdf_url"] = f"https://files.test/factures/{sid}.pdf"
                return httpx.Response(200, json={"message": "Facture générée", "facture_url": record["facture_pdf_url"]})
            if action == "telecharger_facture":
                if not record["facture_pdf_url"]:
                    return httpx.Response(404, json={"message": "Aucune facture"})
                return httpx.Response(200, content=b"%PDF-1.4 fake", headers={"Content-Type": "application/pdf"})
            if method == "DELETE":
                del self.subscriptions[sid]
                return httpx.Response(204)
            if method == "PATCH":
                record.update(body)
                return httpx.Response(200, json=record)

        return httpx.Response(404, json={"detail": "Not found."})

    def _list(self, request: httpx.Request, rows: list[dict]) -> httpx.Response:
        if not self.page_size:
            return httpx.Response(200, json=rows)
        page = int(request.url.params.get("page", 1))
        start = (page - 1) * self.page_size
        chunk = rows[start:start + self.page_size]
        nxt = None
        if start + self.page_size < len(rows):
            nxt = str(request.url.copy_set_param("page", page + 1))
        return httpx.Response(200, json={"count": len(rows), "next": nxt, "previous": None, "results": chunk})

    def _create_subscription(self, body: dict) -> httpx.Response:
        plan = self.plans[body["abonnement"]]
        record = self.add_subscription(amount_total=plan["prix"], plan_id=plan["id"])
        record.update(
            client_nom=body["client_nom"],
            client_prenom=body["client_prenom"],
            date_debut=body["date_debut"],
            date_fin=body.get("date_fin"),
        )
        return httpx.Response(201, json=record)

    def _add_increment(self, record: dict, amount: int) -> httpx.Response:
        remaining = record["montant_total"] - record["montant_paye"]
        if amount > remaining:
            return httpx.Response(400, json={"montant_ajoute": [f"Le montant dépasse le reste à payer ({remaining})."]})
        record["montant_paye"] += amount
        record["historique_paiements"].append({
            "id": self.new_id(),
            "montant_ajoute": amount,
            "montant_total_apres": record["montant_paye"],
            "date_modification": "2024-02-10T09:30:00Z",
        })
        if record["montant_paye"] == record["montant_total"]:
            record["statut_paiement"] = "PAIEMENT_TERMINE"
        return httpx.Response(200, json={"message": "Paiement ajouté"})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def session():
    s = auth.Session()
    s.start("token-abc", "refresh-abc")
    return s


@pytest.fixture
def api(backend, session):
    client = GymApiClient(session, base_url=BASE_URL, transport=httpx.MockTransport(backend.handle))
    yield client
    client.close()


@pytest.fixture
def catalog(api):
    c = ledger.PlanCatalog(api)
    c.list_plans()
    return c


@pytest.fixture
def manager(api, catalog):
    return ledger.SubscriptionManager(api, catalog)

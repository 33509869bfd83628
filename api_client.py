"""
api_client.py
Typed REST client for the gym backend (replaces direct DB access).

Every call goes through GymApiClient._request, which attaches the session's
bearer token and turns failures into errors.py exceptions. List endpoints are
unwrapped by ListEnvelope so callers always get a plain list of records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

import httpx

from auth import Session
from config import get_settings
from errors import AuthenticationError, NetworkFailure, NotFoundError, RemoteRejection
from models import ClientSubscription, InvoiceResult, SubscriptionPlan, UserProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLANS = "/abonnements/"
CLIENT_SUBSCRIPTIONS = "/abonnements-clients-presentiels/"


@dataclass(frozen=True)
class ListEnvelope:
    """
    One page of a list response.

    The backend answers list requests either with a bare JSON array or with a
    paginated object {count, next, previous, results}; both end up here.
    """

    results: list[dict] = field(default_factory=list)
    next: str | None = None
    count: int | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ListEnvelope":
        if data is None:
            return cls()
        if isinstance(data, list):
            return cls(results=data, count=len(data))
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            return cls(results=data["results"], next=data.get("next") or None, count=data.get("count"))
        raise RemoteRejection("Unexpected list response from the server.", payload=data)


def extract_error_message(response: httpx.Response) -> str:
    """
    Best human-readable message from an error response.
    Order: detail, message, error, first field error, raw text, generic fallback.
    """
    fallback = f"Request failed with status {response.status_code}"
    text = response.text or ""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        for key in ("detail", "message", "error"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        # DRF field errors: {"montant_ajoute": ["..."]}
        for key, value in data.items():
            if isinstance(value, list) and value:
                return f"{key}: {value[0]}"
            if isinstance(value, str) and value:
                return f"{key}: {value}"
    elif isinstance(data, list) and data and isinstance(data[0], str):
        return data[0]

    if text and "<html" not in text.lower():
        return text.strip()[:200]
    return fallback


class GymApiClient:
    """
    HTTP client for the gym REST API.

    Example:
        session = Session()
        with GymApiClient(session) as api:
            plans = api.list_subscription_plans()
    """

    def __init__(
        self,
        session: Session,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        settings = get_settings()
        self.session = session
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._transport = transport
        self._http: httpx.Client | None = None

    @property
    def http(self) -> httpx.Client:
        if self._http is None or self._http.is_closed:
            self._http = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._http

    def close(self) -> None:
        if self._http is not None and not self._http.is_closed:
            self._http.close()

    def __enter__(self) -> "GymApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ---------- Low-level helpers ----------

    def _headers(self) -> dict[str, str]:
        token = self.session.access_token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    def _request(self, method: str, path: str, json: Any = None) -> httpx.Response:
        try:
            response = self.http.request(method, path, json=json, headers=self._headers())
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", method, path, exc)
            raise NetworkFailure("The server did not answer in time.") from exc
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkFailure("Could not reach the server.") from exc

        logger.debug("%s %s -> %s", method, path, response.status_code)
        if response.is_success:
            return response

        message = extract_error_message(response)
        logger.warning("%s %s rejected (%s): %s", method, path, response.status_code, message)
        payload = _safe_json(response)
        if response.status_code in (401, 403):
            # Expired or revoked credential: force a fresh login
            self.session.clear()
            raise AuthenticationError(message, response.status_code, payload)
        if response.status_code == 404:
            raise NotFoundError(message, response.status_code, payload)
        raise RemoteRejection(message, response.status_code, payload)

    def _send(self, method: str, path: str, json: Any = None) -> Any:
        response = self._request(method, path, json=json)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteRejection("The server returned an invalid response.", response.status_code) from exc

    def _get_list(self, path: str, parse: Callable[[dict], T]) -> list[T]:
        items: list[T] = []
        url: str | None = path
        while url:
            page = ListEnvelope.from_json(self._send("GET", url))
            items.extend(_parse(parse, row) for row in page.results)
            url = page.next
        return items

    def _get_record(self, method: str, path: str, parse: Callable[[dict], T], json: Any = None) -> T:
        data = self._send(method, path, json=json)
        if not isinstance(data, dict):
            raise RemoteRejection("The server returned an empty response.", payload=data)
        return _parse(parse, data)

    # ---------- Auth ----------

    def obtain_tokens(self, email: str, password: str) -> dict:
        data = self._send("POST", "/login/", json={"email": email, "password": password})
        if not isinstance(data, dict) or not data.get("access"):
            raise AuthenticationError("Login response is missing the access token.", payload=data)
        return data

    def refresh_access_token(self, refresh_token: str) -> str:
        data = self._send("POST", "/refresh/", json={"refresh": refresh_token})
        if not isinstance(data, dict) or not data.get("access"):
            raise AuthenticationError("Refresh response is missing the access token.", payload=data)
        return data["access"]

    def get_current_user(self) -> UserProfile:
        return self._get_record("GET", "/me/", UserProfile.from_api)

    # ---------- Subscription catalog ----------

    def list_subscription_plans(self) -> list[SubscriptionPlan]:
        return self._get_list(PLANS, SubscriptionPlan.from_api)

    def create_subscription_plan(self, payload: dict) -> SubscriptionPlan:
        return self._get_record("POST", PLANS, SubscriptionPlan.from_api, json=payload)

    def update_subscription_plan(self, plan_id: int, payload: dict) -> SubscriptionPlan:
        return self._get_record("PATCH", f"{PLANS}{plan_id}/", SubscriptionPlan.from_api, json=payload)

    def delete_subscription_plan(self, plan_id: int) -> None:
        self._send("DELETE", f"{PLANS}{plan_id}/")

    def list_plan_subscribers(self, plan_id: int) -> list[dict]:
        return self._get_list(f"{PLANS}{plan_id}/clients/", dict)

    # ---------- Client subscriptions ----------

    def list_client_subscriptions(self) -> list[ClientSubscription]:
        return self._get_list(CLIENT_SUBSCRIPTIONS, ClientSubscription.from_api)

    def create_client_subscription(self, payload: dict) -> ClientSubscription:
        return self._get_record("POST", CLIENT_SUBSCRIPTIONS, ClientSubscription.from_api, json=payload)

    def update_client_subscription(self, subscription_id: int, payload: dict) -> ClientSubscription:
        return self._get_record(
            "PATCH", f"{CLIENT_SUBSCRIPTIONS}{subscription_id}/", ClientSubscription.from_api, json=payload
        )

    def delete_client_subscription(self, subscription_id: int) -> None:
        self._send("DELETE", f"{CLIENT_SUBSCRIPTIONS}{subscription_id}/")

    def add_payment_increment(self, subscription_id: int, amount: int) -> None:
        self._send(
            "POST",
            f"{CLIENT_SUBSCRIPTIONS}{subscription_id}/modifier_montant_paye/",
            json={"montant_ajoute": amount},
        )

    def generate_subscription_invoice(self, subscription_id: int) -> InvoiceResult:
        data = self._send("POST", f"{CLIENT_SUBSCRIPTIONS}{subscription_id}/generer_facture/")
        return InvoiceResult.from_api(data if isinstance(data, dict) else None)

    def download_subscription_invoice(self, subscription_id: int) -> bytes:
        response = self._request("GET", f"{CLIENT_SUBSCRIPTIONS}{subscription_id}/telecharger_facture/")
        return response.content


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text[:200]}


def _parse(parse: Callable[[dict], T], row: Any) -> T:
    try:
        return parse(row)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Unreadable record from the server: %s", exc)
        raise RemoteRejection("The server returned a record that could not be read.", payload=row) from exc

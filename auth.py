"""
auth.py
Session credential holder + login / logout / token refresh against the API.

The Session object is created once per dashboard session and handed to the
API client; it is filled on login and emptied on logout (or when the backend
answers 401/403).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from errors import AuthenticationError, ValidationError
from models import UserProfile

if TYPE_CHECKING:
    from api_client import GymApiClient

logger = logging.getLogger(__name__)


class Session:
    def __init__(self):
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.user: UserProfile | None = None
        self._on_clear: list[Callable[[], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def start(self, access_token: str, refresh_token: str | None = None) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user = None

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.user = None
        for callback in self._on_clear:
            callback()

    def on_clear(self, callback: Callable[[], None]) -> None:
        """Run `callback` whenever the credential is dropped (logout or 401/403)."""
        self._on_clear.append(callback)


def login(client: "GymApiClient", email: str, password: str) -> UserProfile:
    """
    Obtain tokens, load the profile and keep the session only for staff.
    Clients use the public site, not this dashboard.
    """
    if not email.strip() or not password:
        raise ValidationError("Email and password are required.")

    tokens = client.obtain_tokens(email.strip(), password)
    client.session.start(tokens["access"], tokens.get("refresh"))

    user = client.get_current_user()
    if not user.is_staff:
        client.session.clear()
        logger.info("Dashboard login refused for role %s", user.role.value)
        raise AuthenticationError("Access denied: this dashboard is reserved for staff accounts.")

    client.session.user = user
    logger.info("Logged in as %s (%s)", user.email, user.role.value)
    return user


def logout(session: Session) -> None:
    session.clear()


def refresh(client: "GymApiClient") -> str:
    """Exchange the refresh token for a new access token."""
    session = client.session
    if not session.refresh_token:
        session.clear()
        raise AuthenticationError("Session expired. Please log in again.")
    access = client.refresh_access_token(session.refresh_token)
    session.access_token = access
    return access

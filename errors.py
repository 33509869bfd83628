"""
errors.py
Error taxonomy shared by the API client, the ledger and the UI.

Local gates raise ValidationError before any request is built. Anything the
backend refuses becomes a RemoteRejection (or one of its subclasses), and a
request that never completed becomes a NetworkFailure.
"""

from __future__ import annotations

from typing import Any


class GymError(Exception):
    """Base class for every error surfaced to the dashboard user."""

    title = "Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GymError):
    title = "Invalid request"


class RemoteRejection(GymError):
    title = "Request rejected"

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class NotFoundError(RemoteRejection):
    title = "Not found"


class AuthenticationError(RemoteRejection):
    title = "Authentication required"


class NetworkFailure(GymError):
    title = "Network error"


GENERIC_FAILURE = "The operation failed. Please try again."


def user_message(exc: Exception) -> tuple[str, str]:
    """
    Map an exception to a (title, description) notification pair.
    Unknown exceptions get a generic description.
    """
    if isinstance(exc, GymError):
        return exc.title, exc.message or GENERIC_FAILURE
    return GymError.title, GENERIC_FAILURE

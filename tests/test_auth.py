import pytest

import auth
from errors import AuthenticationError, ValidationError
from models import Role


@pytest.fixture
def fresh(api):
    api.session.clear()
    return api


def test_staff_login_starts_session(fresh):
    user = auth.login(fresh, "staff@gym.test", "secret")

    assert user.role == Role.EMPLOYEE
    assert fresh.session.access_token == "access-2"
    assert fresh.session.refresh_token == "refresh-2"
    assert fresh.session.user == user


def test_client_role_refused(fresh):
    with pytest.raises(AuthenticationError, match="staff"):
        auth.login(fresh, "client@gym.test", "secret")
    assert not fresh.session.is_authenticated


def test_bad_credentials(fresh):
    with pytest.raises(AuthenticationError, match="credentials"):
        auth.login(fresh, "admin@gym.test", "wrong")
    assert not fresh.session.is_authenticated


def test_empty_credentials_never_sent(backend, fresh):
    with pytest.raises(ValidationError):
        auth.login(fresh, " ", "")
    assert backend.requests == []


def test_logout_clears_everything(fresh):
    auth.login(fresh, "admin@gym.test", "secret")
    auth.logout(fresh.session)
    assert fresh.session.access_token is None
    assert fresh.session.user is None


def test_refresh(api):
    assert auth.refresh(api) == "access-refreshed"
    assert api.session.access_token == "access-refreshed"


def test_refresh_without_token(fresh):
    with pytest.raises(AuthenticationError):
        auth.refresh(fresh)


def test_logout_runs_clear_callbacks(fresh):
    dropped = []
    fresh.session.on_clear(lambda: dropped.append("cleared"))
    auth.login(fresh, "admin@gym.test", "secret")
    auth.logout(fresh.session)
    assert dropped == ["cleared"]

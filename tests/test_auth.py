from unittest.mock import MagicMock

import pytest
import requests

from directory.auth import AdminAuth, AuthError


def _response(status=200, body=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body or {}
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def auth(session):
    return AdminAuth("https://proj.supabase.co", "anon-key", session=session)


def test_sign_in_returns_session(session, auth):
    session.post.return_value = _response(
        body={"access_token": "tok", "refresh_token": "ref", "expires_in": 3600, "user": {"email": "admin@example.com"}}
    )
    result = auth.sign_in("admin@example.com", "secret")
    assert result.access_token == "tok"
    assert result.email == "admin@example.com"
    url = session.post.call_args[0][0]
    assert url == "https://proj.supabase.co/auth/v1/token"
    assert session.post.call_args[1]["params"] == {"grant_type": "password"}


def test_sign_in_rejected(session, auth):
    session.post.return_value = _response(status=400, body={"error_description": "Invalid login credentials"})
    with pytest.raises(AuthError, match="Invalid login credentials"):
        auth.sign_in("admin@example.com", "wrong")


def test_sign_in_requires_credentials(session, auth):
    with pytest.raises(AuthError):
        auth.sign_in("", "secret")
    session.post.assert_not_called()


def test_get_user(session, auth):
    session.get.return_value = _response(body={"email": "admin@example.com"})
    assert auth.get_user("tok") == {"email": "admin@example.com"}
    assert session.get.call_args[1]["headers"]["Authorization"] == "Bearer tok"

    session.get.return_value = _response(status=401)
    assert auth.get_user("expired") is None
    assert auth.get_user(None) is None


def test_transport_failure_raises_auth_error(session, auth):
    session.get.side_effect = requests.ConnectionError("down")
    with pytest.raises(AuthError):
        auth.get_user("tok")


def test_sign_out_tolerates_expired_session(session, auth):
    session.post.return_value = _response(status=401)
    auth.sign_out("tok")
    session.post.return_value = _response(status=500)
    with pytest.raises(AuthError):
        auth.sign_out("tok")

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from services import auth


@pytest.fixture
def auth_env(monkeypatch):
    monkeypatch.setenv("DASHBOARD_USERNAME", "perfo")
    monkeypatch.setenv("DASHBOARD_PASSWORD", "s3cret")
    monkeypatch.setenv("SESSION_SECRET", "test-secret")
    monkeypatch.setenv("SESSION_TTL_HOURS", "168")


class TestCredentials:
    def test_valid(self, auth_env):
        assert auth.check_credentials("perfo", "s3cret") is True

    @pytest.mark.parametrize("username,password", [
        ("perfo", "wrong"),
        ("other", "s3cret"),
        ("", ""),
        (None, None),
    ])
    def test_invalid(self, auth_env, username, password):
        assert auth.check_credentials(username, password) is False

    def test_login_disabled_without_configuration(self, monkeypatch):
        monkeypatch.delenv("DASHBOARD_USERNAME", raising=False)
        monkeypatch.delenv("DASHBOARD_PASSWORD", raising=False)
        assert auth.check_credentials("", "") is False


class TestSessionToken:
    def test_round_trip(self, auth_env):
        token = auth.create_session_token("perfo")
        assert auth.verify_session_token(token) == "perfo"

    def test_expired(self, auth_env):
        issued = datetime.now(timezone.utc) - timedelta(hours=200)
        token = auth.create_session_token("perfo", now=issued)
        assert auth.verify_session_token(token) is None

    def test_forged(self, auth_env):
        payload = {"sub": "perfo", "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
        token = jwt.encode(payload, "another-secret", algorithm="HS256")
        assert auth.verify_session_token(token) is None

    def test_garbage_and_empty(self, auth_env):
        assert auth.verify_session_token("not-a-token") is None
        assert auth.verify_session_token("") is None

    def test_missing_secret(self, monkeypatch):
        monkeypatch.delenv("SESSION_SECRET", raising=False)
        with pytest.raises(ValueError):
            auth.create_session_token("perfo")

    def test_tokens_rejected_once_secret_is_removed(self, auth_env, monkeypatch):
        token = auth.create_session_token("perfo")
        monkeypatch.delenv("SESSION_SECRET")
        assert auth.verify_session_token(token) is None


@pytest.mark.parametrize("path,expected", [
    (None, "/clients"),
    ("", "/clients"),
    ("/client/5", "/client/5"),
    ("/monitor?account=act_1", "/monitor?account=act_1"),
    ("//evil.com", "/clients"),
    ("https://evil.com", "/clients"),
    ("/\\evil.com", "/clients"),
    ("clients", "/clients"),
])
def test_safe_redirect(path, expected):
    assert auth.safe_redirect(path) == expected

import pytest
from fastapi.testclient import TestClient

from gatehouse.core.rate_limit import limiter
from gatehouse.core.settings import FeatureToggles, LockoutPolicy, get_settings, reload_settings
from gatehouse.main import app
from gatehouse.routers.auth import get_gate
from gatehouse.security.credentials import DEMO_PASSWORD, DEMO_USERNAME
from gatehouse.security.filters import GENERIC_LOGIN_ERROR
from gatehouse.security.gate import LockoutGate
from gatehouse.security.ledger import InMemoryLedger

POLICY = LockoutPolicy(max_attempts=3, lockout_seconds=1800, failure_ttl_seconds=3600)
LOCKED_MESSAGE = "Too many failed login attempts. Please try again in {} minutes."


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _reset_limits() -> None:
    limiter.reset()


def _install_gate(*features):
    clock = FakeClock()
    ledger = InMemoryLedger(POLICY, clock=clock)
    gate = LockoutGate(ledger, FeatureToggles(features), POLICY, clock=clock)
    app.dependency_overrides[get_gate] = lambda: gate
    return gate, ledger, clock


@pytest.fixture(autouse=True)
def _clean_overrides():
    yield
    app.dependency_overrides.pop(get_gate, None)
    _reset_limits()


def _login(client: TestClient, username: str, password: str):
    response = client.post("/auth/login", json={"username": username, "password": password})
    _reset_limits()
    return response


def test_successful_login_returns_token():
    _install_gate("limit_login_attempts")
    client = TestClient(app)
    response = _login(client, DEMO_USERNAME, DEMO_PASSWORD)
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert isinstance(body["access_token"], str) and body["access_token"]


def test_three_failures_lock_out_for_30_minutes():
    _, _, clock = _install_gate("limit_login_attempts")
    client = TestClient(app)

    for _ in range(2):
        response = _login(client, DEMO_USERNAME, "wrong-password")
        assert response.status_code == 401
        assert response.json()["detail"]["error"] == "incorrect_password"

    locked = _login(client, DEMO_USERNAME, "wrong-password")
    assert locked.status_code == 429
    body = locked.json()
    assert body == {
        "error": "too_many_attempts",
        "detail": LOCKED_MESSAGE.format(30),
        "retry_after": 1800,
    }
    assert locked.headers.get("Retry-After") == "1800"
    assert get_settings().notice_cookie_name in locked.cookies

    # Correct password is still refused while the window is open.
    clock.advance(120)
    still = _login(client, DEMO_USERNAME, DEMO_PASSWORD)
    assert still.status_code == 429
    assert still.json()["detail"] == LOCKED_MESSAGE.format(28)

    clock.advance(1800 - 120 + 1)
    ok = _login(client, DEMO_USERNAME, DEMO_PASSWORD)
    assert ok.status_code == 200


def test_unknown_username_gets_same_lockout():
    _install_gate("limit_login_attempts", "custom_login_error_message")
    client = TestClient(app)

    first = _login(client, "nobody-here", "whatever")
    second = _login(client, DEMO_USERNAME, "wrong-password")
    assert first.status_code == second.status_code == 401
    assert first.json() == second.json() == {
        "detail": {"error": "invalid_credentials", "message": GENERIC_LOGIN_ERROR}
    }

    _login(client, "nobody-here", "whatever")
    assert _login(client, "nobody-here", "whatever").status_code == 429


def test_error_details_without_generic_message_toggle():
    _install_gate("limit_login_attempts")
    client = TestClient(app)
    response = _login(client, "nobody-here", "whatever")
    assert response.json()["detail"]["error"] == "invalid_username"


def test_empty_username_is_never_locked_out():
    _, ledger, _ = _install_gate("limit_login_attempts", "custom_login_error_message")
    client = TestClient(app)
    for _ in range(5):
        response = _login(client, "", "whatever")
        assert response.status_code == 401
    assert ledger.get_failure_count("") == 0
    assert ledger.get_lockout_expiry("") is None


def test_guard_disabled_never_locks():
    _install_gate()
    client = TestClient(app)
    for _ in range(4):
        assert _login(client, DEMO_USERNAME, "wrong-password").status_code == 401
    assert _login(client, DEMO_USERNAME, DEMO_PASSWORD).status_code == 200


def test_lockout_notice_suppresses_form_once():
    _, _, clock = _install_gate("limit_login_attempts")
    client = TestClient(app)

    assert client.get(f"/auth/lockout/status?username={DEMO_USERNAME}").json() == {
        "show_form": True,
        "message": None,
    }

    for _ in range(3):
        _login(client, DEMO_USERNAME, "wrong-password")

    # A notice for someone else does not hide this user's form.
    assert client.get("/auth/lockout/status?username=someone-else").json()["show_form"] is True

    clock.advance(60)
    status = client.get(f"/auth/lockout/status?username={DEMO_USERNAME}")
    assert status.json() == {"show_form": False, "message": LOCKED_MESSAGE.format(29)}

    # Consumed: the next render shows the default form again.
    again = client.get(f"/auth/lockout/status?username={DEMO_USERNAME}")
    assert again.json()["show_form"] is True


def test_notice_is_not_trusted_by_the_gate():
    _install_gate("limit_login_attempts")
    client = TestClient(app)
    for _ in range(3):
        _login(client, DEMO_USERNAME, "wrong-password")

    # A fresh gate has no lockout; a leftover notice cookie must not deny the login.
    _install_gate("limit_login_attempts")
    ok = _login(client, DEMO_USERNAME, DEMO_PASSWORD)
    assert ok.status_code == 200


def test_malformed_notice_shows_default_form():
    _install_gate("limit_login_attempts")
    client = TestClient(app)
    client.cookies.set(get_settings().notice_cookie_name, "garbage")
    response = client.get(f"/auth/lockout/status?username={DEMO_USERNAME}")
    assert response.status_code == 200
    assert response.json()["show_form"] is True


def test_login_follows_reloaded_settings(monkeypatch):
    monkeypatch.setenv("SECURITY_FEATURES", "")
    reload_settings()
    try:
        assert get_gate().enabled is False
        client = TestClient(app)
        for _ in range(4):
            assert _login(client, DEMO_USERNAME, "wrong-password").status_code == 401

        monkeypatch.setenv("SECURITY_FEATURES", "limit_login_attempts")
        reload_settings()
        gate = get_gate()
        assert gate.enabled is True
        assert get_gate() is gate
        for _ in range(2):
            assert _login(client, DEMO_USERNAME, "wrong-password").status_code == 401
        assert _login(client, DEMO_USERNAME, "wrong-password").status_code == 429
    finally:
        monkeypatch.delenv("SECURITY_FEATURES", raising=False)
        reload_settings()

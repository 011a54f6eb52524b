from jose import jwt

from gatehouse.security import create_access_token, user_from_request
from gatehouse.security.notice import issue_notice, read_notice

SECRET = "notice-test-secret"
NOW = 1_000_000.0


def test_notice_round_trip_for_matching_username():
    token = issue_notice("alice", NOW + 1800, SECRET)
    notice = read_notice(token, "alice", SECRET, now=NOW + 120)
    assert notice is not None
    assert notice.username == "alice"
    assert notice.minutes_remaining(NOW + 120) == 28
    assert notice.message(NOW + 120) == "Too many failed login attempts. Please try again in 28 minutes."


def test_notice_for_other_username_is_ignored():
    token = issue_notice("alice", NOW + 1800, SECRET)
    assert read_notice(token, "bob", SECRET, now=NOW) is None


def test_expired_notice_is_ignored():
    token = issue_notice("alice", NOW + 1800, SECRET)
    assert read_notice(token, "alice", SECRET, now=NOW + 1800) is None


def test_missing_or_malformed_notice_is_ignored():
    assert read_notice(None, "alice", SECRET, now=NOW) is None
    assert read_notice("", "alice", SECRET, now=NOW) is None
    assert read_notice("not-a-token", "alice", SECRET, now=NOW) is None
    assert read_notice(issue_notice("alice", NOW + 60, SECRET), None, SECRET, now=NOW) is None


def test_forged_notice_is_ignored():
    forged = issue_notice("alice", NOW + 1800, "attacker-secret")
    assert read_notice(forged, "alice", SECRET, now=NOW) is None


def test_notice_requires_its_own_type():
    token = jwt.encode({"sub": "alice", "exp": int(NOW + 1800)}, SECRET, algorithm="HS256")
    assert read_notice(token, "alice", SECRET, now=NOW) is None


class _Req:
    def __init__(self, token):
        self.headers = {"authorization": f"Bearer {token}"}


def test_notice_is_not_an_access_token(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", SECRET)
    from gatehouse.core.settings import reload_settings

    reload_settings()
    try:
        notice = issue_notice("alice", 4_000_000_000, SECRET)
        assert user_from_request(_Req(notice)) is None
        assert user_from_request(_Req(create_access_token("alice"))).username == "alice"
    finally:
        monkeypatch.delenv("JWT_SECRET")
        reload_settings()


def test_notice_lasts_as_long_as_a_fractional_lockout():
    token = issue_notice("alice", NOW + 0.9, SECRET)
    assert read_notice(token, "alice", SECRET, now=NOW + 0.5) is not None

import pytest

from security.csrf import CsrfGuard
from services.results import ErrorKind

GOOD = "a" * 24
OTHER = "b" * 24


@pytest.fixture
def guard():
    return CsrfGuard()


class TestGuard:
    def test_issue_keeps_well_formed_token(self, guard):
        assert guard.issue_or_refresh(GOOD) == GOOD

    @pytest.mark.parametrize("existing", [None, "", "short", "a" * 64])
    def test_issue_replaces_malformed_token(self, guard, existing):
        token = guard.issue_or_refresh(existing)
        assert token != existing
        assert guard.is_well_formed(token)
        assert len(token) == 24

    def test_matching_pair_passes(self, guard):
        assert guard.validate(GOOD, GOOD) is None

    @pytest.mark.parametrize("cookie,header,kind,message", [
        (GOOD, None, ErrorKind.CSRF_MISSING, "Missing CSRF header"),
        (GOOD, "short", ErrorKind.CSRF_MISSING, "Missing CSRF header"),
        (None, GOOD, ErrorKind.CSRF_MISSING, "Missing CSRF cookie"),
        (None, None, ErrorKind.CSRF_MISSING, "Missing CSRF header"),
        (GOOD, OTHER, ErrorKind.CSRF_MISMATCH, "CSRF mismatch"),
    ])
    def test_failures(self, guard, cookie, header, kind, message):
        failure = guard.validate(cookie, header)
        assert failure.kind is kind
        assert failure.message == message
        assert failure.http_status == 403


class TestRequestGuard:
    def test_csrf_endpoint_sets_matching_cookie(self, client):
        token = client.get("/auth/csrf").get_json()["csrf_token"]

        assert client.get_cookie("csrf_token").value == token
        # Stable across calls while the cookie is well-formed
        assert client.get("/auth/csrf").get_json()["csrf_token"] == token

    def test_post_without_header_is_rejected(self, client):
        client.get("/auth/csrf")
        resp = client.post("/auth/magic-link", json={"email": "a@test.com", "correlation_id": "c"})

        assert resp.status_code == 403
        assert resp.get_json() == {"error": "csrf_missing", "message": "Missing CSRF header"}

    def test_post_without_cookie_is_rejected_and_cookie_minted(self, client):
        resp = client.post("/auth/otp/request", json={}, headers={"X-CSRF-Token": GOOD})

        assert resp.status_code == 403
        assert resp.get_json()["message"] == "Missing CSRF cookie"
        assert client.get_cookie("csrf_token") is not None

    def test_mismatch_is_rejected(self, client, csrf_headers):
        resp = client.post("/auth/otp/verify", json={}, headers={"X-CSRF-Token": OTHER})

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "csrf_mismatch"

    def test_reads_are_not_guarded(self, client):
        assert client.get("/auth/status").status_code == 200
        assert client.get("/health").status_code == 200

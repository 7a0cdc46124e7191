import logging
from typing import Optional

from flask import current_app, g, jsonify, request

from security.tokens import constant_time_equals, generate_csrf_token
from services.results import AuthError, ErrorKind

logger = logging.getLogger(__name__)

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
TOKEN_BYTES = 12


class CsrfGuard:
    """
    Double-submit token: the same value lives in a JS-readable cookie and
    is echoed in a header on state-changing calls. Nothing is stored
    server-side; a token is valid iff it has the right shape and both
    copies match.
    """

    def __init__(self, token_bytes: int = TOKEN_BYTES):
        self.token_length = token_bytes * 2  # hex
        self.token_bytes = token_bytes

    def is_well_formed(self, value: Optional[str]) -> bool:
        return isinstance(value, str) and len(value) == self.token_length

    def issue_or_refresh(self, existing: Optional[str] = None) -> str:
        if self.is_well_formed(existing):
            return existing
        return generate_csrf_token(self.token_bytes)

    def validate(self, cookie_value: Optional[str], header_value: Optional[str]) -> Optional[AuthError]:
        if not self.is_well_formed(header_value):
            return AuthError(ErrorKind.CSRF_MISSING, "Missing CSRF header")
        if not self.is_well_formed(cookie_value):
            return AuthError(ErrorKind.CSRF_MISSING, "Missing CSRF cookie")
        if not constant_time_equals(cookie_value, header_value):
            return AuthError(ErrorKind.CSRF_MISMATCH, "CSRF mismatch")
        return None


def _cookie_name() -> str:
    return current_app.config.get("CSRF_COOKIE_NAME", CSRF_COOKIE)


def _header_name() -> str:
    return current_app.config.get("CSRF_HEADER_NAME", CSRF_HEADER)


def csrf_cookie_value() -> Optional[str]:
    return request.cookies.get(_cookie_name())


def set_csrf_cookie(resp, token: str):
    resp.set_cookie(
        _cookie_name(),
        token,
        httponly=False,  # must be readable by client JS
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def refresh_csrf_cookie(resp, guard: CsrfGuard):
    """
    Re-set the cookie on every guarded response (or mint one), so a client
    that just failed validation can retry without an extra round trip.
    """
    token = g.get("csrf_token") or guard.issue_or_refresh(csrf_cookie_value())
    return set_csrf_cookie(resp, token)


def require_csrf(guard: CsrfGuard):
    failure = guard.validate(
        csrf_cookie_value(),
        request.headers.get(_header_name()),
    )
    if failure:
        logger.info("CSRF rejected on %s: %s", request.path, failure.message)
        return jsonify(failure.to_dict()), failure.http_status
    return None

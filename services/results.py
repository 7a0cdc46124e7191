"""
Outcomes returned by the lifecycle services.

Nothing in the engine raises for a caller-visible failure; every call
returns either a result value or an `AuthError`, and callers branch on
`isinstance(outcome, AuthError)`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    RATE_LIMITED = "rate_limited"
    CSRF_MISSING = "csrf_missing"
    CSRF_MISMATCH = "csrf_mismatch"


# HTTP status the adapter answers with for each kind
HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 400,
    ErrorKind.ALREADY_USED: 400,
    ErrorKind.EXPIRED: 400,
    ErrorKind.INVALID_CODE: 400,
    ErrorKind.TOO_MANY_ATTEMPTS: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.CSRF_MISSING: 403,
    ErrorKind.CSRF_MISMATCH: 403,
}


@dataclass(frozen=True)
class AuthError:
    kind: ErrorKind
    message: str
    retry_after: Optional[int] = None  # seconds, rate limits only

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> dict:
        body = {"error": self.kind.value, "message": self.message}
        if self.retry_after is not None:
            body["retry_after_seconds"] = self.retry_after
        return body


class LinkStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    EXPIRED = "expired"


@dataclass(frozen=True)
class IssuedLink:
    secret: str
    csrf_token: str
    expires_at: int


@dataclass(frozen=True)
class LinkVerification:
    email: str
    correlation_id: str
    client_id: Optional[str]
    same_device: bool


@dataclass(frozen=True)
class IssuedOtp:
    code: str
    email: str
    expires_at: int


@dataclass(frozen=True)
class OtpVerification:
    email: str
    client_id: str
    device_id: str

"""
Typed records handed out by the store.

Rows never leave the store as ORM objects: services get frozen
snapshots so a decision is always made against what was read, and
re-reading is explicit.
"""
from dataclasses import dataclass
from typing import Optional


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def _require(name: str, value) -> None:
    if value is None or (isinstance(value, str) and not value):
        raise ValueError(f"{name} is required")


def _require_normalized(email: str) -> None:
    _require("email", email)
    if email != normalize_email(email):
        raise ValueError("email must be normalized (trimmed, lowercase)")


@dataclass(frozen=True)
class CredentialRecord:
    token_hash: str
    email: str
    created_at: int
    expires_at: int
    correlation_id: str
    csrf_token: str
    client_id: Optional[str] = None
    device_info: Optional[str] = None
    used: bool = False
    attempts: int = 0

    def __post_init__(self):
        _require("token_hash", self.token_hash)
        _require_normalized(self.email)
        _require("correlation_id", self.correlation_id)
        _require("csrf_token", self.csrf_token)
        if self.expires_at < self.created_at:
            raise ValueError("expires_at must not precede created_at")
        if self.attempts < 0:
            raise ValueError("attempts must be >= 0")

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class OtpRecord:
    device_id: str
    client_id: str
    email: str
    code_hash: str
    salt: str
    created_at: int
    expires_at: int
    max_attempts: int
    attempts: int = 0
    ip_hash: Optional[str] = None
    ua_hash: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        _require("device_id", self.device_id)
        _require("client_id", self.client_id)
        _require_normalized(self.email)
        _require("code_hash", self.code_hash)
        _require("salt", self.salt)
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.attempts < 0:
            raise ValueError("attempts must be >= 0")

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

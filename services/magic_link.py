import logging
from typing import Callable, Optional, Union
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from security.rate_limit import RateLimiter
from security.tokens import (
    constant_time_equals,
    generate_csrf_token,
    generate_secret_token,
    hash_token,
)
from services.results import (
    AuthError,
    ErrorKind,
    IssuedLink,
    LinkStatus,
    LinkVerification,
)
from store.base import Store
from store.records import CredentialRecord, normalize_email
from utils.clock import now_ms
from utils.masking import mask_email

logger = logging.getLogger(__name__)


class MagicLinkService:
    """
    Issues and verifies single-use magic-link tokens.

    Stateless: every decision re-reads the record from the store, and
    every state transition is a single atomic store call.
    """

    def __init__(
        self,
        store: Store,
        limiter: RateLimiter,
        base_url: str,
        ttl_seconds: int = 600,
        max_attempts: int = 3,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.limiter = limiter
        self.base_url = base_url
        self.ttl_ms = ttl_seconds * 1000
        self.max_attempts = max_attempts
        self.clock = clock

    def create(
        self,
        email: str,
        correlation_id: str,
        client_id: Optional[str] = None,
        device_info: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Union[IssuedLink, AuthError]:
        """
        Stores the hash of a fresh secret and returns the raw secret plus the
        CSRF token the requesting browser should keep. Nothing is written
        when the request is rate limited.
        """
        email = normalize_email(email)

        limited = self.limiter.admit(email, ip)
        if limited:
            return limited

        secret, secret_hash = generate_secret_token()
        csrf_token = generate_csrf_token()
        now = self.clock()

        record = CredentialRecord(
            token_hash=secret_hash,
            email=email,
            created_at=now,
            expires_at=now + self.ttl_ms,
            correlation_id=correlation_id,
            csrf_token=csrf_token,
            client_id=client_id,
            device_info=device_info[:255] if device_info else None,
        )
        self.store.insert_credential(record)

        logger.info("Magic link issued for %s", mask_email(email))
        return IssuedLink(secret=secret, csrf_token=csrf_token, expires_at=record.expires_at)

    def build_url(self, secret: str, csrf_token: str) -> str:
        parts = urlparse(self.base_url)
        query = dict(parse_qsl(parts.query))
        query.update({"token": secret, "csrf": csrf_token})
        return urlunparse(parts._replace(query=urlencode(query)))

    def verify(
        self,
        secret: str,
        session_csrf: Optional[str] = None,
    ) -> Union[LinkVerification, AuthError]:
        token_hash = hash_token(secret or "")
        record = self.store.get_credential(token_hash)

        if record is None:
            return AuthError(ErrorKind.NOT_FOUND, "Invalid or expired link.")
        if record.used:
            return AuthError(ErrorKind.ALREADY_USED, "This link has already been used.")
        if record.is_expired(self.clock()):
            return AuthError(ErrorKind.EXPIRED, "This link has expired. Please request a new one.")

        attempts = self.store.increment_credential_attempts(token_hash)
        if attempts > self.max_attempts:
            # Burn the token so neither a further guess nor a late real click works
            self.store.mark_credential_used(token_hash)
            logger.warning("Magic link for %s locked after %d attempts", mask_email(record.email), attempts)
            return AuthError(
                ErrorKind.TOO_MANY_ATTEMPTS,
                "Too many verification attempts. Please request a new link.",
            )

        if not self.store.mark_credential_used(token_hash):
            # A concurrent verify consumed it between our read and our claim
            return AuthError(ErrorKind.ALREADY_USED, "This link has already been used.")

        same_device = session_csrf is not None and constant_time_equals(record.csrf_token, session_csrf)
        logger.info("Magic link verified for %s (same_device=%s)", mask_email(record.email), same_device)
        return LinkVerification(
            email=record.email,
            correlation_id=record.correlation_id,
            client_id=record.client_id,
            same_device=same_device,
        )

    def check_status(self, csrf_token: str) -> LinkStatus:
        """Read-only polling for a tab waiting on a link opened elsewhere."""
        record = self.store.get_credential_by_csrf(csrf_token)
        if record is None or record.is_expired(self.clock()):
            return LinkStatus.EXPIRED
        if record.used:
            return LinkStatus.VERIFIED
        return LinkStatus.PENDING

    def get_verified_by_csrf(self, csrf_token: str) -> Optional[CredentialRecord]:
        """The consumed, unexpired record behind a `verified` poll, if any."""
        record = self.store.get_credential_by_csrf(csrf_token)
        if record is None or not record.used or record.is_expired(self.clock()):
            return None
        return record

    def cleanup(self) -> int:
        count = self.store.delete_expired_credentials(self.clock())
        if count:
            logger.info("Swept %d expired magic-link tokens", count)
        return count

import logging
from typing import Callable, Optional, Union

from security.rate_limit import RateLimiter
from security.tokens import generate_otp, hash_ip, hash_user_agent, verify_code
from services.results import AuthError, ErrorKind, IssuedOtp, OtpVerification
from store.base import Store
from store.records import OtpRecord, normalize_email
from utils.clock import now_ms
from utils.masking import mask_email

logger = logging.getLogger(__name__)

_TOO_MANY = "Too many attempts. Please request a new code."


class OtpService:
    """
    Numeric one-time codes scoped to a (device, email) pair.

    A new request for the same pair replaces the previous code. Each
    record allows `max_attempts` wrong guesses; the next attempt deletes
    it, so at most `max_attempts` guesses are ever evaluated per code.
    """

    def __init__(
        self,
        store: Store,
        limiter: RateLimiter,
        ttl_seconds: int = 300,
        max_attempts: int = 5,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.limiter = limiter
        self.ttl_ms = ttl_seconds * 1000
        self.max_attempts = max_attempts
        self.clock = clock

    def request(
        self,
        device_id: str,
        client_id: str,
        email: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Union[IssuedOtp, AuthError]:
        """
        Issues a code whether or not an account exists for `email`.
        The returned code is for the delivery layer, which alone decides
        whether to actually send it.
        """
        email = normalize_email(email)

        limited = self.limiter.admit(email, ip)
        if limited:
            return limited

        code, salt, code_hash = generate_otp()
        now = self.clock()

        self.store.replace_otp(OtpRecord(
            device_id=device_id,
            client_id=client_id,
            email=email,
            code_hash=code_hash,
            salt=salt,
            created_at=now,
            expires_at=now + self.ttl_ms,
            max_attempts=self.max_attempts,
            ip_hash=hash_ip(ip),
            ua_hash=hash_user_agent(user_agent),
        ))

        logger.info("OTP issued for %s", mask_email(email))
        return IssuedOtp(code=code, email=email, expires_at=now + self.ttl_ms)

    def verify(self, device_id: str, email: str, code: str) -> Union[OtpVerification, AuthError]:
        email = normalize_email(email)
        record = self.store.get_otp(device_id, email)

        if record is None:
            return AuthError(ErrorKind.NOT_FOUND, "No active code. Please request a new one.")
        if record.is_expired(self.clock()):
            return AuthError(ErrorKind.EXPIRED, "This code has expired. Please request a new one.")

        # Ceiling is checked before this attempt is charged
        if record.exhausted:
            self.store.delete_otp(record)
            logger.warning("OTP for %s deleted after %d attempts", mask_email(email), record.attempts)
            return AuthError(ErrorKind.TOO_MANY_ATTEMPTS, _TOO_MANY)

        attempts = self.store.charge_otp_attempt(record)
        if attempts is None:
            # Lost a race: a concurrent guess used the last attempt, or the
            # code was consumed or replaced since we read it.
            current = self.store.get_otp(device_id, email)
            if current is None or current.code_hash != record.code_hash:
                return AuthError(ErrorKind.NOT_FOUND, "No active code. Please request a new one.")
            self.store.delete_otp(current)
            return AuthError(ErrorKind.TOO_MANY_ATTEMPTS, _TOO_MANY)

        if not verify_code((code or "").strip(), record.salt, record.code_hash):
            logger.info("Wrong OTP for %s (attempt %d/%d)", mask_email(email), attempts, record.max_attempts)
            return AuthError(ErrorKind.INVALID_CODE, "Invalid code.")

        if not self.store.delete_otp(record):
            return AuthError(ErrorKind.NOT_FOUND, "No active code. Please request a new one.")

        logger.info("OTP verified for %s", mask_email(email))
        return OtpVerification(email=email, client_id=record.client_id, device_id=device_id)

    def cleanup(self) -> int:
        count = self.store.delete_expired_otps(self.clock())
        if count:
            logger.info("Swept %d expired OTP codes", count)
        return count

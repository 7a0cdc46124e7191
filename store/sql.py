import logging
from typing import Optional

from sqlalchemy import delete, func, insert, select, text, update
from sqlalchemy.dialects import postgresql, sqlite

from models.magic_link_token import MagicLinkToken
from models.otp_code import OtpCode
from models.rate_limit_hit import RateLimitHit
from store.base import Store
from store.records import CredentialRecord, OtpRecord

logger = logging.getLogger(__name__)

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

_NO_SYNC = {"synchronize_session": False}


def _credential(row: MagicLinkToken) -> CredentialRecord:
    return CredentialRecord(
        token_hash=row.token_hash,
        email=row.email,
        created_at=row.created_at,
        expires_at=row.expires_at,
        correlation_id=row.correlation_id,
        csrf_token=row.csrf_token,
        client_id=row.client_id,
        device_info=row.device_info,
        used=bool(row.used),
        attempts=row.attempts,
    )


def _otp(row: OtpCode) -> OtpRecord:
    return OtpRecord(
        id=row.id,
        device_id=row.device_id,
        client_id=row.client_id,
        email=row.email_norm,
        code_hash=row.code_hash,
        salt=row.salt,
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        created_at=row.created_at,
        expires_at=row.expires_at,
        ip_hash=row.ip_hash,
        ua_hash=row.ua_hash,
    )


class SqlStore(Store):
    """
    Store backed by the Flask-SQLAlchemy session.

    Each mutation is one conditional SQL statement committed on its own,
    so atomicity comes from the database rather than from locks here.
    Must be used inside an app context.
    """

    def __init__(self, db):
        self.db = db

    @property
    def session(self):
        return self.db.session

    def _select_one(self, stmt):
        return self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().first()

    # -- credential records --

    def insert_credential(self, record: CredentialRecord) -> None:
        self.session.add(MagicLinkToken(
            token_hash=record.token_hash,
            email=record.email,
            created_at=record.created_at,
            expires_at=record.expires_at,
            used=record.used,
            correlation_id=record.correlation_id,
            client_id=record.client_id,
            device_info=record.device_info,
            csrf_token=record.csrf_token,
            attempts=record.attempts,
        ))
        self.session.commit()

    def get_credential(self, token_hash: str) -> Optional[CredentialRecord]:
        row = self._select_one(
            select(MagicLinkToken).where(MagicLinkToken.token_hash == token_hash)
        )
        return _credential(row) if row else None

    def get_credential_by_csrf(self, csrf_token: str) -> Optional[CredentialRecord]:
        row = self._select_one(
            select(MagicLinkToken)
            .where(MagicLinkToken.csrf_token == csrf_token)
            .order_by(MagicLinkToken.created_at.desc())
            .limit(1)
        )
        return _credential(row) if row else None

    def increment_credential_attempts(self, token_hash: str) -> int:
        self.session.execute(
            update(MagicLinkToken)
            .where(MagicLinkToken.token_hash == token_hash)
            .values(attempts=MagicLinkToken.attempts + 1)
            .execution_options(**_NO_SYNC)
        )
        # Read back inside the same transaction: the row lock taken by the
        # UPDATE is still held, so this is our own increment.
        attempts = self.session.execute(
            select(MagicLinkToken.attempts).where(MagicLinkToken.token_hash == token_hash)
        ).scalar_one_or_none()
        self.session.commit()
        return attempts or 0

    def mark_credential_used(self, token_hash: str) -> bool:
        result = self.session.execute(
            update(MagicLinkToken)
            .where(
                MagicLinkToken.token_hash == token_hash,
                MagicLinkToken.used.is_(False),
            )
            .values(used=True)
            .execution_options(**_NO_SYNC)
        )
        self.session.commit()
        return result.rowcount == 1

    def delete_expired_credentials(self, now: int) -> int:
        result = self.session.execute(
            delete(MagicLinkToken)
            .where(MagicLinkToken.expires_at < now)
            .execution_options(**_NO_SYNC)
        )
        self.session.commit()
        return result.rowcount

    # -- OTP records --

    def replace_otp(self, record: OtpRecord) -> None:
        values = {
            "device_id": record.device_id,
            "email_norm": record.email,
            "client_id": record.client_id,
            "code_hash": record.code_hash,
            "salt": record.salt,
            "attempts": record.attempts,
            "max_attempts": record.max_attempts,
            "created_at": record.created_at,
            "expires_at": record.expires_at,
            "ip_hash": record.ip_hash,
            "ua_hash": record.ua_hash,
        }

        dialect_insert = _UPSERT_INSERTS.get(self.db.engine.dialect.name)
        if dialect_insert is not None:
            stmt = dialect_insert(OtpCode).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["device_id", "email_norm"],
                set_={k: stmt.excluded[k] for k in values if k not in ("device_id", "email_norm")},
            )
            self.session.execute(stmt)
        else:
            # Same transaction; the unique constraint rejects a concurrent twin.
            self.session.execute(
                delete(OtpCode)
                .where(OtpCode.device_id == record.device_id, OtpCode.email_norm == record.email)
                .execution_options(**_NO_SYNC)
            )
            self.session.execute(insert(OtpCode).values(**values))
        self.session.commit()

    def get_otp(self, device_id: str, email: str) -> Optional[OtpRecord]:
        row = self._select_one(
            select(OtpCode).where(OtpCode.device_id == device_id, OtpCode.email_norm == email)
        )
        return _otp(row) if row else None

    def _issuance(self, record: OtpRecord):
        # code_hash is salted per issuance, so it pins this exact code
        return (
            OtpCode.device_id == record.device_id,
            OtpCode.email_norm == record.email,
            OtpCode.code_hash == record.code_hash,
        )

    def charge_otp_attempt(self, record: OtpRecord) -> Optional[int]:
        result = self.session.execute(
            update(OtpCode)
            .where(*self._issuance(record), OtpCode.attempts < OtpCode.max_attempts)
            .values(attempts=OtpCode.attempts + 1)
            .execution_options(**_NO_SYNC)
        )
        if result.rowcount != 1:
            self.session.commit()
            return None
        attempts = self.session.execute(
            select(OtpCode.attempts).where(*self._issuance(record))
        ).scalar_one()
        self.session.commit()
        return attempts

    def delete_otp(self, record: OtpRecord) -> bool:
        result = self.session.execute(
            delete(OtpCode)
            .where(*self._issuance(record))
            .execution_options(**_NO_SYNC)
        )
        self.session.commit()
        return result.rowcount == 1

    def delete_expired_otps(self, now: int) -> int:
        result = self.session.execute(
            delete(OtpCode)
            .where(OtpCode.expires_at < now)
            .execution_options(**_NO_SYNC)
        )
        self.session.commit()
        return result.rowcount

    # -- rate-limit hits --

    def record_hit(self, subject: str, at: int) -> None:
        self.session.add(RateLimitHit(subject=subject, created_at=at))
        self.session.commit()

    def count_hits(self, subject: str, since: int) -> int:
        return self.session.execute(
            select(func.count(RateLimitHit.id))
            .where(RateLimitHit.subject == subject, RateLimitHit.created_at > since)
        ).scalar_one()

    def oldest_hit_since(self, subject: str, since: int) -> Optional[int]:
        return self.session.execute(
            select(func.min(RateLimitHit.created_at))
            .where(RateLimitHit.subject == subject, RateLimitHit.created_at > since)
        ).scalar_one_or_none()

    def _lock_subjects(self, subjects) -> None:
        dialect = self.db.engine.dialect.name
        if dialect == "sqlite":
            # Takes the database write lock now instead of at the first INSERT
            self.session.execute(text("BEGIN IMMEDIATE"))
        elif dialect == "postgresql":
            # Sorted so two callers never wait on each other in opposite order
            for subject in sorted(set(subjects)):
                self.session.execute(select(func.pg_advisory_xact_lock(func.hashtext(subject))))
        else:
            # Other dialects lock only the hit rows that already exist
            self.session.execute(
                select(RateLimitHit.id)
                .where(RateLimitHit.subject.in_(sorted(set(subjects))))
                .with_for_update()
            )

    def admit_hits(self, windows, subjects, now):
        # Start from a clean transaction so the lock is the first statement
        self.session.commit()
        self._lock_subjects([subject for subject, _, _ in windows] + list(subjects))

        for index, (subject, window_ms, limit) in enumerate(windows):
            since = now - window_ms
            if self.count_hits(subject, since) >= limit:
                oldest = self.oldest_hit_since(subject, since)
                self.session.commit()
                return index, oldest

        for subject in subjects:
            self.session.add(RateLimitHit(subject=subject, created_at=now))
        self.session.commit()
        return None

    def delete_hits_before(self, cutoff: int) -> int:
        result = self.session.execute(
            delete(RateLimitHit)
            .where(RateLimitHit.created_at < cutoff)
            .execution_options(**_NO_SYNC)
        )
        self.session.commit()
        if result.rowcount:
            logger.debug("Swept %d rate-limit hits older than %d", result.rowcount, cutoff)
        return result.rowcount

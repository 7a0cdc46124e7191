from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

from store.records import CredentialRecord, OtpRecord


class Store(ABC):
    """
    Durable keyed storage for credentials, OTP codes and rate-limit hits.

    Every mutating method is atomic with respect to concurrent callers on
    the same key. Implementations must not cache rows between calls.
    """

    # -- credential records (magic links) --

    @abstractmethod
    def insert_credential(self, record: CredentialRecord) -> None: ...

    @abstractmethod
    def get_credential(self, token_hash: str) -> Optional[CredentialRecord]: ...

    @abstractmethod
    def get_credential_by_csrf(self, csrf_token: str) -> Optional[CredentialRecord]:
        """Most recently created record bound to this CSRF token."""

    @abstractmethod
    def increment_credential_attempts(self, token_hash: str) -> int:
        """Adds one attempt and returns the new count (0 if the row is gone)."""

    @abstractmethod
    def mark_credential_used(self, token_hash: str) -> bool:
        """Flips used false -> true. Returns True only for the caller that flipped it."""

    @abstractmethod
    def delete_expired_credentials(self, now: int) -> int: ...

    # -- OTP records --

    @abstractmethod
    def replace_otp(self, record: OtpRecord) -> None:
        """Inserts the record, superseding any existing one for (device, email)."""

    @abstractmethod
    def get_otp(self, device_id: str, email: str) -> Optional[OtpRecord]: ...

    @abstractmethod
    def charge_otp_attempt(self, record: OtpRecord) -> Optional[int]:
        """
        Adds one attempt if the record is still live and below its ceiling.
        Returns the new count, or None if nothing was charged.
        """

    @abstractmethod
    def delete_otp(self, record: OtpRecord) -> bool:
        """Deletes exactly this issuance. False if it was already gone or superseded."""

    @abstractmethod
    def delete_expired_otps(self, now: int) -> int: ...

    # -- rate-limit hits --

    @abstractmethod
    def record_hit(self, subject: str, at: int) -> None: ...

    @abstractmethod
    def count_hits(self, subject: str, since: int) -> int:
        """Hits for subject with timestamp strictly after `since`."""

    @abstractmethod
    def oldest_hit_since(self, subject: str, since: int) -> Optional[int]: ...

    @abstractmethod
    def delete_hits_before(self, cutoff: int) -> int: ...

    @abstractmethod
    def admit_hits(
        self,
        windows: Sequence[Tuple[str, int, int]],
        subjects: Sequence[str],
        now: int,
    ) -> Optional[Tuple[int, Optional[int]]]:
        """
        Counts and records in one serialized transaction.

        `windows` are (subject, window_ms, limit) checked in order. If one
        is full, nothing is written and (its index, its oldest hit) is
        returned. Otherwise a hit at `now` is recorded for each of
        `subjects` and None is returned. Concurrent callers on the same
        subjects never both see a stale count.
        """

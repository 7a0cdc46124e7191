import logging
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from services.results import AuthError, ErrorKind
from store.base import Store
from store.records import normalize_email
from utils.clock import minutes_ms, now_ms

logger = logging.getLogger(__name__)

FIFTEEN_MINUTES_MS = minutes_ms(15)
ONE_HOUR_MS = minutes_ms(60)


@dataclass(frozen=True)
class RateLimits:
    email_per_15_min: int = 3
    email_per_hour: int = 5
    ip_per_15_min: int = 10

    @classmethod
    def from_config(cls, config) -> "RateLimits":
        return cls(
            email_per_15_min=int(config.get("RATE_LIMIT_EMAIL_PER_15_MIN", 3)),
            email_per_hour=int(config.get("RATE_LIMIT_EMAIL_PER_HOUR", 5)),
            ip_per_15_min=int(config.get("RATE_LIMIT_IP_PER_15_MIN", 10)),
        )


@dataclass(frozen=True)
class _Rule:
    subject: str
    window_ms: int
    limit: int
    message: str


class RateLimiter:
    """
    Sliding-window issuance limits, counted in the store at call time.

    No in-memory counters: limits hold across restarts and across every
    process sharing the store. `scope` namespaces subjects so separate
    flows (magic link, OTP) keep separate budgets.
    """

    def __init__(
        self,
        store: Store,
        limits: Optional[RateLimits] = None,
        scope: str = "magic_link",
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.limits = limits or RateLimits()
        self.scope = scope
        self.clock = clock

    def _subject(self, kind: str, value: str) -> str:
        return f"{self.scope}:{kind}:{value}"

    def _rules(self, email: str, ip: Optional[str]) -> Iterator[_Rule]:
        # Evaluated in order; the first violated rule wins.
        email_subject = self._subject("email", email)
        yield _Rule(
            email_subject,
            FIFTEEN_MINUTES_MS,
            self.limits.email_per_15_min,
            "Too many requests. Please wait before requesting another code.",
        )
        yield _Rule(
            email_subject,
            ONE_HOUR_MS,
            self.limits.email_per_hour,
            "Too many requests. Please try again later.",
        )
        if ip:
            yield _Rule(
                self._subject("ip", ip),
                FIFTEEN_MINUTES_MS,
                self.limits.ip_per_15_min,
                "Too many requests from this address. Please wait.",
            )

    def _subjects(self, email: str, ip: Optional[str]) -> list:
        subjects = [self._subject("email", email)]
        if ip:
            subjects.append(self._subject("ip", ip))
        return subjects

    def _limited(self, rule: _Rule, oldest: Optional[int], now: int) -> AuthError:
        retry_ms = (oldest + rule.window_ms - now) if oldest is not None else rule.window_ms
        retry_after = max(-(-retry_ms // 1000), 1)
        logger.info("Rate limit hit for %s (retry in %ss)", rule.subject.split(":", 2)[1], retry_after)
        return AuthError(ErrorKind.RATE_LIMITED, rule.message, retry_after=retry_after)

    def admit(self, email: str, ip: Optional[str] = None) -> Optional[AuthError]:
        """
        Checks every window and records the hit in one store transaction.
        Returns None if admitted, else a RATE_LIMITED error. Issuance paths
        use this so concurrent requests cannot both slip under a limit.
        """
        email = normalize_email(email)
        now = self.clock()
        rules = list(self._rules(email, ip))

        rejected = self.store.admit_hits(
            [(rule.subject, rule.window_ms, rule.limit) for rule in rules],
            self._subjects(email, ip),
            now,
        )
        if rejected is None:
            return None
        index, oldest = rejected
        return self._limited(rules[index], oldest, now)

    def check(self, email: str, ip: Optional[str] = None) -> Optional[AuthError]:
        """
        Read-only: None if a request would be allowed, else a RATE_LIMITED
        error with retry_after seconds.
        """
        email = normalize_email(email)
        now = self.clock()

        for rule in self._rules(email, ip):
            since = now - rule.window_ms
            if self.store.count_hits(rule.subject, since) < rule.limit:
                continue
            return self._limited(rule, self.store.oldest_hit_since(rule.subject, since), now)

        return None

    def record(self, email: str, ip: Optional[str] = None) -> None:
        now = self.clock()
        for subject in self._subjects(normalize_email(email), ip):
            self.store.record_hit(subject, now)

    @property
    def longest_window_ms(self) -> int:
        return ONE_HOUR_MS

    def cleanup(self) -> int:
        """
        Deletes hits older than the longest window. Safe to run concurrently
        with check/record: anything removed is already outside every window.
        """
        return self.store.delete_hits_before(self.clock() - self.longest_window_ms)

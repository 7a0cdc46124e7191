from dataclasses import dataclass
from typing import Callable, Optional

from flask import current_app

from security.csrf import CsrfGuard
from security.rate_limit import RateLimiter, RateLimits
from services.magic_link import MagicLinkService
from services.otp import OtpService
from store.base import Store
from store.sql import SqlStore
from utils.clock import now_ms

EXTENSION_KEY = "passwordless"


def _always_exists(email: str) -> bool:
    return True


@dataclass
class AuthEngine:
    store: Store
    magic_links: MagicLinkService
    otp: OtpService
    csrf: CsrfGuard
    # Delivery gate for OTP codes; the engine never answers this itself
    account_exists: Callable[[str], bool] = _always_exists

    def sweep(self) -> dict:
        """One idempotent pass over every record family."""
        return {
            "magic_link_tokens": self.magic_links.cleanup(),
            "otp_codes": self.otp.cleanup(),
            # One hits table serves every scope
            "rate_limit_hits": self.magic_links.limiter.cleanup(),
        }


def build_engine(
    store: Store,
    config,
    clock: Callable[[], int] = now_ms,
    account_exists: Optional[Callable[[str], bool]] = None,
) -> AuthEngine:
    limits = RateLimits.from_config(config)
    magic_links = MagicLinkService(
        store,
        RateLimiter(store, limits, scope="magic_link", clock=clock),
        base_url=config["MAGIC_LINK_BASE_URL"],
        ttl_seconds=int(config.get("MAGIC_LINK_TTL_SECONDS", 600)),
        max_attempts=int(config.get("MAGIC_LINK_MAX_ATTEMPTS", 3)),
        clock=clock,
    )
    otp = OtpService(
        store,
        RateLimiter(store, limits, scope="otp", clock=clock),
        ttl_seconds=int(config.get("OTP_TTL_SECONDS", 300)),
        max_attempts=int(config.get("OTP_MAX_ATTEMPTS", 5)),
        clock=clock,
    )
    return AuthEngine(
        store=store,
        magic_links=magic_links,
        otp=otp,
        csrf=CsrfGuard(int(config.get("CSRF_TOKEN_BYTES", 12))),
        account_exists=account_exists or _always_exists,
    )


def init_engine(app, db, clock: Callable[[], int] = now_ms, account_exists=None) -> AuthEngine:
    engine = build_engine(SqlStore(db), app.config, clock=clock, account_exists=account_exists)
    app.extensions[EXTENSION_KEY] = engine
    return engine


def get_engine() -> AuthEngine:
    return current_app.extensions[EXTENSION_KEY]

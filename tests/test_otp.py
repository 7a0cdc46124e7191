import pytest

from models import db
from security.rate_limit import RateLimiter
from security.tokens import hash_ip, hash_token
from services.otp import OtpService
from services.results import AuthError, ErrorKind, IssuedOtp, OtpVerification
from store.sql import SqlStore

WRONG = "000000"  # codes are always >= 100000


@pytest.fixture
def otp(engine):
    return engine.otp


def _request(otp, device="dev-1", email="user@test.com", **kwargs):
    issued = otp.request(device, "client-1", email, **kwargs)
    assert isinstance(issued, IssuedOtp)
    return issued


def test_request_stores_salted_hash(otp, store, clock):
    issued = _request(otp, email=" User@Test.com ", ip="203.0.113.7", user_agent="Mozilla/5.0")

    record = store.get_otp("dev-1", "user@test.com")
    assert issued.email == "user@test.com"
    assert len(issued.code) == 6 and issued.code.isdigit()
    assert record.code_hash == hash_token(record.salt + issued.code)
    assert record.code_hash != hash_token(issued.code)
    assert record.ip_hash == hash_ip("203.0.113.7")
    assert record.attempts == 0 and record.max_attempts == 5
    assert record.expires_at == clock() + 300_000 == issued.expires_at


def test_correct_code_verifies_once(otp, store):
    issued = _request(otp)

    result = otp.verify("dev-1", "User@Test.com", issued.code)
    assert result == OtpVerification(email="user@test.com", client_id="client-1", device_id="dev-1")
    assert store.get_otp("dev-1", "user@test.com") is None
    assert otp.verify("dev-1", "user@test.com", issued.code).kind is ErrorKind.NOT_FOUND


def test_wrong_code_counts_an_attempt(otp, store):
    _request(otp)

    failure = otp.verify("dev-1", "user@test.com", WRONG)
    assert failure.kind is ErrorKind.INVALID_CODE
    assert store.get_otp("dev-1", "user@test.com").attempts == 1


def test_five_wrong_then_locked_out(otp, store):
    issued = _request(otp)

    for _ in range(5):
        assert otp.verify("dev-1", "user@test.com", WRONG).kind is ErrorKind.INVALID_CODE

    # Even the right code is refused once the budget is spent
    assert otp.verify("dev-1", "user@test.com", issued.code).kind is ErrorKind.TOO_MANY_ATTEMPTS
    assert store.get_otp("dev-1", "user@test.com") is None


def test_resend_invalidates_previous_code(otp):
    first = _request(otp)
    second = _request(otp)
    if second.code == first.code:
        second = _request(otp)

    assert otp.verify("dev-1", "user@test.com", first.code).kind is ErrorKind.INVALID_CODE
    assert isinstance(otp.verify("dev-1", "user@test.com", second.code), OtpVerification)


def test_resend_resets_attempts(otp, store):
    _request(otp)
    otp.verify("dev-1", "user@test.com", WRONG)
    _request(otp)

    assert store.get_otp("dev-1", "user@test.com").attempts == 0


def test_expired(otp, store, clock):
    issued = _request(otp)
    clock.advance(seconds=301)

    assert otp.verify("dev-1", "user@test.com", issued.code).kind is ErrorKind.EXPIRED
    # Left for the sweep
    assert store.get_otp("dev-1", "user@test.com") is not None


def test_scoped_to_device(otp):
    issued = _request(otp, device="dev-1")

    assert otp.verify("dev-2", "user@test.com", issued.code).kind is ErrorKind.NOT_FOUND
    assert otp.verify("dev-1", "other@test.com", issued.code).kind is ErrorKind.NOT_FOUND
    assert isinstance(otp.verify("dev-1", "user@test.com", issued.code), OtpVerification)


def test_rate_limited(otp, store):
    for device in ("dev-1", "dev-2", "dev-3"):
        _request(otp, device=device)

    failure = otp.request("dev-4", "client-1", "user@test.com")
    assert isinstance(failure, AuthError)
    assert failure.kind is ErrorKind.RATE_LIMITED
    assert store.count_hits("otp:email:user@test.com", 0) == 3


def test_verify_after_resend_race_reports_not_found(app, clock):
    """A guess against a code replaced mid-verify never touches the new code."""

    class ResendingStore(SqlStore):
        resend_on_read = False
        resent = None

        def get_otp(self, device_id, email):
            record = super().get_otp(device_id, email)
            if record is not None and self.resend_on_read:
                self.resend_on_read = False
                self.resent = self.service.request(device_id, "client-1", email)
            return record

    store = ResendingStore(db)
    store.service = OtpService(store, RateLimiter(store, scope="otp", clock=clock), clock=clock)
    stale = store.service.request("dev-1", "client-1", "user@test.com")

    store.resend_on_read = True
    assert store.service.verify("dev-1", "user@test.com", stale.code).kind is ErrorKind.NOT_FOUND
    assert store.get_otp("dev-1", "user@test.com").attempts == 0
    assert isinstance(store.service.verify("dev-1", "user@test.com", store.resent.code), OtpVerification)


def test_cleanup(otp, store, clock):
    _request(otp, device="dev-1")
    clock.advance(seconds=200)
    _request(otp, device="dev-2")
    clock.advance(seconds=101)

    assert otp.cleanup() == 1
    assert store.get_otp("dev-1", "user@test.com") is None
    assert store.get_otp("dev-2", "user@test.com") is not None

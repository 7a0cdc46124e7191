import threading

import pytest

from app import create_app
from config import TestConfig
from models import db
from security.rate_limit import RateLimiter, RateLimits
from services.results import ErrorKind
from store.sql import SqlStore


@pytest.fixture
def limiter(store, clock):
    return RateLimiter(store, scope="magic_link", clock=clock)


def _hit(limiter, email="user@test.com", ip=None):
    failure = limiter.check(email, ip)
    if failure is None:
        limiter.record(email, ip)
    return failure


def test_fourth_request_in_fifteen_minutes_is_limited(limiter, clock):
    for _ in range(3):
        assert _hit(limiter) is None
        clock.advance(seconds=10)

    failure = _hit(limiter)
    assert failure.kind is ErrorKind.RATE_LIMITED
    assert failure.http_status == 429
    assert failure.message == "Too many requests. Please wait before requesting another code."
    # Oldest hit was 30s ago, so it leaves the 15 minute window in 14m30s
    assert failure.retry_after == 15 * 60 - 30


def test_limit_lifts_when_window_moves(limiter, clock):
    for _ in range(3):
        assert _hit(limiter) is None
    assert _hit(limiter) is not None

    clock.advance(minutes=15, ms=1)
    assert _hit(limiter) is None


def test_hourly_email_limit(limiter, clock):
    for _ in range(3):
        assert _hit(limiter) is None
    clock.advance(minutes=16)
    for _ in range(2):
        assert _hit(limiter) is None

    failure = _hit(limiter)
    assert failure.message == "Too many requests. Please try again later."
    assert failure.retry_after == 44 * 60


def test_email_normalized_before_counting(limiter):
    for email in ("User@Test.com", " user@test.com", "USER@TEST.COM"):
        assert _hit(limiter, email) is None
    assert _hit(limiter, "user@test.com") is not None


def test_ip_limit_across_emails(store, clock):
    limiter = RateLimiter(store, RateLimits(ip_per_15_min=2), clock=clock)

    assert _hit(limiter, "a@test.com", ip="203.0.113.7") is None
    assert _hit(limiter, "b@test.com", ip="203.0.113.7") is None

    failure = _hit(limiter, "c@test.com", ip="203.0.113.7")
    assert failure.message == "Too many requests from this address. Please wait."
    assert _hit(limiter, "c@test.com", ip="198.51.100.1") is None
    assert _hit(limiter, "d@test.com") is None


def test_scopes_have_separate_budgets(store, clock):
    magic = RateLimiter(store, scope="magic_link", clock=clock)
    otp = RateLimiter(store, scope="otp", clock=clock)

    for _ in range(3):
        assert _hit(magic) is None
    assert _hit(magic) is not None
    assert _hit(otp) is None


def test_from_config():
    limits = RateLimits.from_config({"RATE_LIMIT_EMAIL_PER_15_MIN": "7"})
    assert limits == RateLimits(email_per_15_min=7, email_per_hour=5, ip_per_15_min=10)


def test_cleanup_only_removes_hits_outside_every_window(limiter, store, clock):
    _hit(limiter, ip="203.0.113.7")
    clock.advance(minutes=30)
    _hit(limiter, ip="203.0.113.7")
    clock.advance(minutes=31)

    assert limiter.cleanup() == 2
    assert store.count_hits("magic_link:email:user@test.com", 0) == 1
    assert store.count_hits("magic_link:ip:203.0.113.7", 0) == 1


def test_admit_records_on_success_only(limiter, store):
    for _ in range(3):
        assert limiter.admit("user@test.com", ip="203.0.113.7") is None

    failure = limiter.admit("user@test.com", ip="203.0.113.7")
    assert failure.kind is ErrorKind.RATE_LIMITED
    assert failure.message == "Too many requests. Please wait before requesting another code."
    assert store.count_hits("magic_link:email:user@test.com", 0) == 3
    assert store.count_hits("magic_link:ip:203.0.113.7", 0) == 3


def test_admit_matches_check(limiter, clock):
    for _ in range(3):
        assert limiter.admit("user@test.com") is None
        clock.advance(seconds=10)

    assert limiter.admit("user@test.com") == limiter.check("user@test.com")


def test_concurrent_admits_respect_the_limit(tmp_path, clock):
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'limits.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30, "check_same_thread": False}}

    app = create_app(FileConfig, clock=clock)
    with app.app_context():
        db.create_all()

    workers = 8
    barrier = threading.Barrier(workers)
    results = []

    def request_code():
        with app.app_context():
            limiter = RateLimiter(SqlStore(db), scope="otp", clock=clock)
            barrier.wait()
            results.append(limiter.admit("user@test.com"))
            db.session.remove()

    threads = [threading.Thread(target=request_code) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    with app.app_context():
        admitted = [result for result in results if result is None]
        assert len(results) == workers
        assert len(admitted) == 3
        assert SqlStore(db).count_hits("otp:email:user@test.com", 0) == 3
        db.drop_all()

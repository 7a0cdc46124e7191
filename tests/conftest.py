import pytest

from app import create_app
from config import TestConfig
from models import db
from services.engine import get_engine
from store.sql import SqlStore

T0 = 1_700_000_000_000


class FakeClock:
    """Epoch-ms clock that only moves when a test says so."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 0, seconds: int = 0, minutes: int = 0) -> None:
        self.now += ms + seconds * 1000 + minutes * 60 * 1000


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(clock):
    app = create_app(TestConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def store(app):
    return SqlStore(db)


@pytest.fixture
def engine(app):
    return get_engine()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def csrf_headers(client):
    token = client.get("/auth/csrf").get_json()["csrf_token"]
    return {"X-CSRF-Token": token}


@pytest.fixture
def outbox(monkeypatch):
    """Captures outgoing magic links and OTP codes instead of using SMTP."""
    sent = []

    def fake_magic_link(to_email, url, branding, ttl_minutes):
        sent.append({"to": to_email, "url": url, "brand": branding.brand_name})
        return True, None

    def fake_otp(to_email, code, branding, ttl_minutes):
        sent.append({"to": to_email, "code": code, "brand": branding.brand_name})
        return True, None

    monkeypatch.setattr("routes.auth.send_magic_link_email", fake_magic_link)
    monkeypatch.setattr("routes.auth.send_otp_email", fake_otp)
    return sent

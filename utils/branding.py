from dataclasses import dataclass
from typing import Optional

from flask import current_app

from models import db
from models.trusted_client import TrustedClient
from utils.clock import now_ms


@dataclass(frozen=True)
class Branding:
    brand_name: str
    brand_color: str
    logo_url: Optional[str] = None
    support_email: Optional[str] = None


def default_branding() -> Branding:
    return Branding(
        brand_name=current_app.config.get("DEFAULT_BRAND_NAME", "Passwordless"),
        brand_color=current_app.config.get("DEFAULT_BRAND_COLOR", "#1A1A2E"),
    )


def resolve_branding(client_id: Optional[str]) -> Branding:
    """Branding for a registered client, falling back to the configured defaults."""
    fallback = default_branding()
    if not client_id:
        return fallback

    client = db.session.get(TrustedClient, client_id)
    if not client:
        return fallback

    return Branding(
        brand_name=client.brand_name,
        brand_color=client.brand_color or fallback.brand_color,
        logo_url=client.logo_url,
        support_email=client.support_email,
    )


def register_client(client_id: str, brand_name: str, brand_color=None, logo_url=None, support_email=None) -> TrustedClient:
    client = db.session.get(TrustedClient, client_id)
    if not client:
        client = TrustedClient(client_id=client_id, created_at=now_ms())
        db.session.add(client)

    client.brand_name = brand_name
    client.brand_color = brand_color
    client.logo_url = logo_url
    client.support_email = support_email
    db.session.commit()
    return client

from models.db import db


class MagicLinkToken(db.Model):
    __tablename__ = "magic_link_tokens"

    # store only the SHA-256 of the emailed secret (never the raw secret)
    token_hash = db.Column(db.String(64), primary_key=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    created_at = db.Column(db.BigInteger, nullable=False)
    expires_at = db.Column(db.BigInteger, nullable=False, index=True)
    used = db.Column(db.Boolean, default=False, nullable=False)

    correlation_id = db.Column(db.String(512), nullable=False)
    client_id = db.Column(db.String(512), nullable=True)
    device_info = db.Column(db.String(255), nullable=True)

    # CSRF bound to the requesting browser, used for same-device detection + polling
    csrf_token = db.Column(db.String(128), nullable=False, index=True)
    attempts = db.Column(db.Integer, default=0, nullable=False)

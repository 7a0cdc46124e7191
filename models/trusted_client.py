from models.db import db


class TrustedClient(db.Model):
    __tablename__ = "trusted_clients"

    client_id = db.Column(db.String(512), primary_key=True)
    brand_name = db.Column(db.String(120), nullable=False)
    brand_color = db.Column(db.String(16), nullable=True)
    logo_url = db.Column(db.String(512), nullable=True)
    support_email = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.BigInteger, nullable=False)

from models.db import db


class OtpCode(db.Model):
    __tablename__ = "otp_codes"

    id = db.Column(db.Integer, primary_key=True)

    device_id = db.Column(db.String(128), nullable=False, index=True)
    client_id = db.Column(db.String(512), nullable=False)
    email_norm = db.Column(db.String(255), nullable=False, index=True)

    code_hash = db.Column(db.String(64), nullable=False)
    salt = db.Column(db.String(64), nullable=False)

    attempts = db.Column(db.Integer, default=0, nullable=False)
    max_attempts = db.Column(db.Integer, default=5, nullable=False)

    created_at = db.Column(db.BigInteger, nullable=False)
    expires_at = db.Column(db.BigInteger, nullable=False, index=True)

    ip_hash = db.Column(db.String(64), nullable=True)
    ua_hash = db.Column(db.String(64), nullable=True)

    __table_args__ = (
        # One live code per (device, email): a resend replaces the row
        db.UniqueConstraint("device_id", "email_norm", name="uq_otp_device_email"),
    )

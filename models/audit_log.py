from models.db import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(80), nullable=False)  # e.g. MAGIC_LINK_SENT, OTP_VERIFY_FAIL
    subject = db.Column(db.String(255), nullable=True)  # normalized email, nullable for guard events
    entity = db.Column(db.String(80), nullable=True)   # e.g. magic_link, otp
    entity_id = db.Column(db.String(512), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.BigInteger, nullable=False, index=True)

from models.db import db


class RateLimitHit(db.Model):
    __tablename__ = "rate_limit_hits"

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "magic_link:email:a@b.com" or "otp:ip:203.0.113.7"
    subject = db.Column(db.String(320), nullable=False)
    created_at = db.Column(db.BigInteger, nullable=False)

    __table_args__ = (
        db.Index("ix_rate_limit_hits_subject_created", "subject", "created_at"),
    )

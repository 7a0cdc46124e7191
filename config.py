import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this file as passwordless.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "passwordless.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # CSRF double-submit guard
    CSRF_COOKIE_NAME = "csrf_token"
    CSRF_HEADER_NAME = "X-CSRF-Token"
    CSRF_TOKEN_BYTES = 12

    # Same-device cookie: holds the CSRF bound to the last magic link this browser asked for
    MAGIC_SESSION_COOKIE_NAME = "magic_session"
    MAGIC_SESSION_MAX_AGE_SECONDS = 30 * 60

    # Device cookie scoping OTP codes
    DEVICE_COOKIE_NAME = "device_id"
    DEVICE_COOKIE_MAX_AGE_SECONDS = 365 * 24 * 60 * 60

    # Magic link
    MAGIC_LINK_BASE_URL = os.getenv("MAGIC_LINK_BASE_URL", "http://127.0.0.1:5002/auth/verify")
    MAGIC_LINK_TTL_SECONDS = int(os.getenv("MAGIC_LINK_TTL_SECONDS", "600"))  # 10 minutes
    MAGIC_LINK_MAX_ATTEMPTS = int(os.getenv("MAGIC_LINK_MAX_ATTEMPTS", "3"))

    # Email OTP
    OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "300"))  # 5 minutes
    OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "5"))

    # Issuance rate limits (per flow)
    RATE_LIMIT_EMAIL_PER_15_MIN = int(os.getenv("RATE_LIMIT_EMAIL_PER_15_MIN", "3"))
    RATE_LIMIT_EMAIL_PER_HOUR = int(os.getenv("RATE_LIMIT_EMAIL_PER_HOUR", "5"))
    RATE_LIMIT_IP_PER_15_MIN = int(os.getenv("RATE_LIMIT_IP_PER_15_MIN", "10"))

    # Expiry sweep (flask sweep --interval)
    SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))

    # Branding fallback for clients not in trusted_clients
    DEFAULT_BRAND_NAME = os.getenv("DEFAULT_BRAND_NAME", "Passwordless")
    DEFAULT_BRAND_COLOR = os.getenv("DEFAULT_BRAND_COLOR", "#1A1A2E")

    # Domain for auto-provisioned handles
    HANDLE_DOMAIN = os.getenv("HANDLE_DOMAIN", "example.com")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SMTP_HOST = None
    MAGIC_LINK_BASE_URL = "https://auth.example.com/auth/verify"

from .db import db
from .audit_log import AuditLog
from .magic_link_token import MagicLinkToken
from .otp_code import OtpCode
from .rate_limit_hit import RateLimitHit
from .trusted_client import TrustedClient

from .records import CredentialRecord, OtpRecord, normalize_email
from .base import Store
from .sql import SqlStore

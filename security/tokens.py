"""
Secret and token primitives.

Everything here draws from the `secrets` CSPRNG. A broken entropy source
surfaces as an exception from the standard library and is not handled:
it is a process-level failure, not a per-request one.
"""
import hashlib
import hmac
import secrets
import string

SECRET_TOKEN_BYTES = 32  # 256 bits
CSRF_TOKEN_BYTES = 32
SALT_BYTES = 16

_BASE36 = string.digits + string.ascii_lowercase


def hash_token(value: str) -> str:
    # Inputs are high-entropy random values, so a fast unsalted digest suffices
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_secret_token() -> tuple[str, str]:
    """
    Returns (secret, secret_hash).
    The URL-safe secret goes out by email, only the hash is persisted.
    """
    secret = secrets.token_urlsafe(SECRET_TOKEN_BYTES)
    return secret, hash_token(secret)


def generate_csrf_token(nbytes: int = CSRF_TOKEN_BYTES) -> str:
    return secrets.token_hex(nbytes)


def constant_time_equals(a: str, b: str) -> bool:
    a_bytes = a.encode("utf-8")
    b_bytes = b.encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        # Burn a comparison of the same cost so a length mismatch
        # doesn't return measurably faster.
        hmac.compare_digest(a_bytes, a_bytes)
        return False
    return hmac.compare_digest(a_bytes, b_bytes)


def generate_numeric_code() -> str:
    """Uniform 6-digit code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def hash_code(salt: str, code: str) -> str:
    return hash_token(salt + code)


def generate_otp() -> tuple[str, str, str]:
    """
    Returns (code, salt, code_hash).
    """
    code = generate_numeric_code()
    salt = generate_salt()
    return code, salt, hash_code(salt, code)


def verify_code(code: str, salt: str, code_hash: str) -> bool:
    return constant_time_equals(hash_code(salt, code), code_hash)


def _to_base36(num: int) -> str:
    if num == 0:
        return "0"
    digits = []
    while num:
        num, rem = divmod(num, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_opaque_id(domain: str) -> str:
    """
    Random 6-char base36 label under `domain`, e.g. "k3x9a0.example.com".
    Callers are responsible for collision checks.
    """
    label = _to_base36(secrets.randbits(32)).rjust(6, "0")[:6]
    return f"{label}.{domain}"


def hash_user_agent(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    return hash_token(user_agent)


def hash_ip(ip: str | None) -> str | None:
    if not ip:
        return None
    return hash_token(ip)

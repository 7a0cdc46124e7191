from flask import request


def client_ip() -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # left-most hop is the original client
        return forwarded.split(",")[0].strip() or None
    return request.remote_addr


def user_agent() -> str | None:
    ua = request.headers.get("User-Agent")
    return ua[:255] if ua else None

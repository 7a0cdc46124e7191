def mask_email(email: str) -> str:
    """'alice@example.com' -> 'ali***@example.com' for log lines."""
    local, _, domain = (email or "").partition("@")
    return f"{local[:3]}***@{domain}"

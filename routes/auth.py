import secrets

from flask import Blueprint, request, jsonify, current_app, g, url_for

from services.engine import get_engine
from services.results import AuthError, ErrorKind, LinkStatus
from security.csrf import csrf_cookie_value
from store.records import normalize_email
from utils.audit import log_event
from utils.branding import resolve_branding
from utils.emailer import send_magic_link_email, send_otp_email
from utils.request_meta import client_ip, user_agent


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _json_fields(*names):
    """
    Named fields from a JSON object body. Each is a str or None.
    Returns None when the body is not an object or a field has another type.
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return None
    fields = {name: data.get(name) for name in names}
    if any(value is not None and not isinstance(value, str) for value in fields.values()):
        return None
    return fields


def _error(failure: AuthError):
    resp = jsonify(failure.to_dict())
    if failure.retry_after is not None:
        resp.headers["Retry-After"] = str(failure.retry_after)
    return resp, failure.http_status


def _cookie_kwargs(max_age: int, httponly: bool = True) -> dict:
    return dict(
        httponly=httponly,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=max_age,
        path="/",
    )


def _ttl_minutes(key: str, default: int) -> int:
    return max(current_app.config.get(key, default) // 60, 1)


@auth_bp.get("/csrf")
def csrf_token():
    # after_request sets the cookie to this same value
    g.csrf_token = get_engine().csrf.issue_or_refresh(csrf_cookie_value())
    return jsonify(csrf_token=g.csrf_token), 200


@auth_bp.post("/magic-link")
def send_magic_link():
    data = _json_fields("email", "correlation_id", "client_id")
    if data is None:
        return jsonify(error="Invalid request body"), 400
    email = normalize_email(data["email"])
    correlation_id = (data["correlation_id"] or "").strip()
    client_id = (data["client_id"] or "").strip() or None

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not correlation_id:
        return jsonify(error="correlation_id is required"), 400

    engine = get_engine()
    issued = engine.magic_links.create(
        email,
        correlation_id,
        client_id=client_id,
        device_info=user_agent(),
        ip=client_ip(),
    )
    if isinstance(issued, AuthError):
        log_event("MAGIC_LINK_RATE_LIMIT", subject=email, metadata={"retry_after": issued.retry_after})
        return _error(issued)

    url = engine.magic_links.build_url(issued.secret, issued.csrf_token)
    sent, _ = send_magic_link_email(
        email,
        url,
        resolve_branding(client_id),
        _ttl_minutes("MAGIC_LINK_TTL_SECONDS", 600),
    )
    log_event(
        "MAGIC_LINK_SENT",
        subject=email,
        entity="magic_link",
        entity_id=correlation_id,
        metadata={"delivered": sent, "client_id": client_id},
    )

    resp = jsonify(
        message="Check your email for a sign-in link.",
        poll_url=url_for("auth.link_status", csrf=issued.csrf_token),
    )
    resp.set_cookie(
        current_app.config.get("MAGIC_SESSION_COOKIE_NAME", "magic_session"),
        issued.csrf_token,
        **_cookie_kwargs(current_app.config.get("MAGIC_SESSION_MAX_AGE_SECONDS", 1800)),
    )
    return resp, 200


@auth_bp.get("/verify")
def verify_magic_link():
    token = request.args.get("token") or ""
    session_csrf = request.cookies.get(current_app.config.get("MAGIC_SESSION_COOKIE_NAME", "magic_session"))

    result = get_engine().magic_links.verify(token, session_csrf)
    if isinstance(result, AuthError):
        log_event("MAGIC_LINK_VERIFY_FAIL", entity="magic_link", metadata={"reason": result.kind.value})
        return _error(result)

    log_event(
        "MAGIC_LINK_VERIFIED",
        subject=result.email,
        entity="magic_link",
        entity_id=result.correlation_id,
        metadata={"same_device": result.same_device},
    )
    return jsonify(
        email=result.email,
        correlation_id=result.correlation_id,
        client_id=result.client_id,
        same_device=result.same_device,
    ), 200


@auth_bp.get("/status")
def link_status():
    csrf = request.args.get("csrf")
    if not csrf:
        return jsonify(status=LinkStatus.EXPIRED.value), 200

    magic_links = get_engine().magic_links
    status = magic_links.check_status(csrf)
    body = {"status": status.value}

    if status is LinkStatus.VERIFIED:
        record = magic_links.get_verified_by_csrf(csrf)
        if record:
            body.update(
                email=record.email,
                correlation_id=record.correlation_id,
                client_id=record.client_id,
            )
    return jsonify(body), 200


def _device_id():
    """Returns (device_id, is_new)."""
    existing = request.cookies.get(current_app.config.get("DEVICE_COOKIE_NAME", "device_id"))
    if existing and len(existing) <= 128:
        return existing, False
    return secrets.token_urlsafe(24), True


@auth_bp.post("/otp/request")
def request_otp():
    data = _json_fields("email", "client_id")
    if data is None:
        return jsonify(error="Invalid request body"), 400
    email = normalize_email(data["email"])
    client_id = (data["client_id"] or "").strip()

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not client_id:
        return jsonify(error="client_id is required"), 400

    engine = get_engine()
    device_id, is_new = _device_id()

    issued = engine.otp.request(device_id, client_id, email, ip=client_ip(), user_agent=user_agent())
    if isinstance(issued, AuthError):
        log_event("OTP_RATE_LIMIT", subject=email, metadata={"retry_after": issued.retry_after})
        return _error(issued)

    # Same answer either way; only delivery depends on the account existing
    delivered = False
    if engine.account_exists(email):
        delivered, _ = send_otp_email(
            email,
            issued.code,
            resolve_branding(client_id),
            _ttl_minutes("OTP_TTL_SECONDS", 300),
        )
    log_event("OTP_REQUESTED", subject=email, entity="otp", entity_id=client_id, metadata={"delivered": delivered})

    resp = jsonify(message="If this address can sign in, a code is on its way.")
    if is_new:
        resp.set_cookie(
            current_app.config.get("DEVICE_COOKIE_NAME", "device_id"),
            device_id,
            **_cookie_kwargs(current_app.config.get("DEVICE_COOKIE_MAX_AGE_SECONDS", 365 * 24 * 60 * 60)),
        )
    return resp, 200


@auth_bp.post("/otp/verify")
def verify_otp():
    data = _json_fields("email", "code")
    if data is None:
        return jsonify(error="Invalid request body"), 400
    email = normalize_email(data["email"])
    code = data["code"] or ""

    device_id = request.cookies.get(current_app.config.get("DEVICE_COOKIE_NAME", "device_id"))
    if not device_id:
        return _error(AuthError(ErrorKind.NOT_FOUND, "No active code. Please request a new one."))

    result = get_engine().otp.verify(device_id, email, code)
    if isinstance(result, AuthError):
        log_event("OTP_VERIFY_FAIL", subject=email, entity="otp", metadata={"reason": result.kind.value})
        return _error(result)

    log_event("OTP_VERIFIED", subject=result.email, entity="otp", entity_id=result.client_id)
    return jsonify(email=result.email, client_id=result.client_id, verified=True), 200

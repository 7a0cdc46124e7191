import logging
import smtplib
from email.message import EmailMessage

from flask import current_app
from markupsafe import escape

from utils.branding import Branding
from utils.masking import mask_email

logger = logging.getLogger(__name__)


def send_email(to_email: str, subject: str, body: str, html: str | None = None):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        logger.warning("Email not configured; dropping message to %s", mask_email(to_email))
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("SMTP delivery to %s failed: %s", mask_email(to_email), exc)
        return False, str(exc)


def send_magic_link_email(to_email: str, url: str, branding: Branding, ttl_minutes: int):
    subject = f"Sign in to {branding.brand_name}"
    name, color, href = escape(branding.brand_name), escape(branding.brand_color), escape(url)
    body = (
        f"Click the link below to sign in to {branding.brand_name}:\n\n"
        f"{url}\n\n"
        f"This link expires in {ttl_minutes} minutes and can only be used once.\n"
        "If you didn't request this, you can ignore this email."
    )
    html = (
        f'<p>Sign in to <strong style="color:{color}">{name}</strong></p>'
        f'<p><a href="{href}" style="background:{color};color:#fff;padding:10px 16px;'
        f'border-radius:6px;text-decoration:none">Sign in</a></p>'
        f"<p>This link expires in {ttl_minutes} minutes.</p>"
    )
    return send_email(to_email, subject, body, html)


def send_otp_email(to_email: str, code: str, branding: Branding, ttl_minutes: int):
    subject = f"{code} is your {branding.brand_name} login code"
    name, color = escape(branding.brand_name), escape(branding.brand_color)
    body = (
        f"Your {branding.brand_name} login code is: {code}\n\n"
        f"It expires in {ttl_minutes} minutes. Never share this code with anyone."
    )
    if branding.support_email:
        body += f"\n\nQuestions? Contact {branding.support_email}"
    html = (
        f"<p>Your {name} login code is:</p>"
        f'<p style="font-size:28px;letter-spacing:6px;color:{color}"><strong>{code}</strong></p>'
        f"<p>It expires in {ttl_minutes} minutes.</p>"
    )
    return send_email(to_email, subject, body, html)

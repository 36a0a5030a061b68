"""
auth/verification.py -- Email-verification tokens and the SendGrid delivery.

Tokens are 32 random bytes (secrets.token_bytes), urlsafe base64 with
padding. They carry no expiry: callers that want one store the issue time
next to the token and enforce it themselves.

send_verification_email() builds a single HTML message linking to
{FRONTEND_URL}/verify-email?token=... and sends it through the SendGrid API.
Sender, frontend URL and API key come from EnvSettings (SENDER_EMAIL,
FRONTEND_URL, SENDGRID_API_KEY). Any delivery failure raises
EmailDeliveryError; there are no retries.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import base64
import logging
import secrets
from urllib.error import URLError
from urllib.parse import urlencode

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import From, Mail

from core.config import EnvSettings

logger = logging.getLogger("sharedlibs.auth.email")

SENDER_NAME = "Your App Name"
VERIFY_SUBJECT = "Verify Your Email"

_VERIFY_TEMPLATE = """
        <h1>Verify Your Email</h1>
        <p>Click the link below to verify your email address:</p>
        <a href="{link}">Verify Email</a>
        <p>If you did not create an account, please ignore this email.</p>
    """


class EmailDeliveryError(Exception):
    """The email could not be handed to the delivery provider."""


def generate_email_verification_token() -> str:
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("ascii")


def build_verification_link(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/verify-email?{urlencode({'token': token})}"


def build_verification_message(sender_email: str, recipient: str, link: str) -> Mail:
    return Mail(
        from_email=From(sender_email, SENDER_NAME),
        to_emails=recipient,
        subject=VERIFY_SUBJECT,
        html_content=_VERIFY_TEMPLATE.format(link=link),
    )


def send_verification_email(email: str, verification_token: str, settings: EnvSettings | None = None) -> None:
    """Send the verification link to email.

    Raises EmailDeliveryError if SendGrid is not configured or rejects the
    request.
    """
    settings = settings or EnvSettings()
    if not settings.sendgrid_api_key:
        raise EmailDeliveryError("SENDGRID_API_KEY is not configured")
    if not settings.sender_email:
        raise EmailDeliveryError("SENDER_EMAIL is not configured")

    link = build_verification_link(settings.frontend_url, verification_token)
    message = build_verification_message(settings.sender_email, email, link)

    client = SendGridAPIClient(settings.sendgrid_api_key)
    try:
        response = client.send(message)
    except (HTTPError, URLError) as exc:
        logger.error("Verification email to %s failed: %s", email, exc)
        raise EmailDeliveryError(f"failed to send verification email: {exc}") from exc
    logger.info("Verification email sent to %s (status %s)", email, response.status_code)

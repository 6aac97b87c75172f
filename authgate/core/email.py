"""Email sending via Resend API.

Simple HTTP POST to Resend for verification-link emails. Delivery is
best-effort: failures are logged and never surface to the caller.
"""

import logging

import httpx

from authgate.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


def email_delivery_enabled() -> bool:
    """Whether an email provider is configured."""
    return bool(settings.resend_api_key.get_secret_value())


async def send_verification_email(*, to_email: str, url: str) -> None:
    """Send an email-verification link via Resend.

    Args:
        to_email: Recipient email address.
        url: Signed verification URL.
    """
    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
                },
                json={
                    "from": settings.email_from,
                    "to": to_email,
                    "subject": "Verify your email address",
                    "text": (
                        f"Click this link to verify your email:\n\n{url}\n\n"
                        f"This link expires in {settings.verification_link_ttl_minutes} "
                        "minutes. If you didn't create an account, you can safely "
                        "ignore this email."
                    ),
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except httpx.HTTPError:
        logger.warning("Failed to send verification email", exc_info=True)

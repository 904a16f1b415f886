import html
import logging
from dataclasses import dataclass
from typing import Optional

import resend
from resend.exceptions import ResendError

from app.config import settings
from app.errors import (
    KIND_AUTHENTICATION,
    KIND_NETWORK,
    KIND_PROVIDER,
    KIND_RATE_LIMITED,
    KIND_VALIDATION,
    EmailTransportError,
    TransportConfigurationError,
)

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    message_id: Optional[str]


def _kind_for_status(code) -> str:
    try:
        code = int(code)
    except (TypeError, ValueError):
        return KIND_PROVIDER
    if code in (401, 403):
        return KIND_AUTHENTICATION
    if code in (400, 422):
        return KIND_VALIDATION
    if code == 429:
        return KIND_RATE_LIMITED
    return KIND_PROVIDER


def render_html(body: str) -> str:
    content = html.escape(body).replace("\n", "<br>")
    return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
            <div style="background-color: #f9f9f9; border-radius: 8px; padding: 30px; border: 1px solid #e0e0e0;">
                <h2 style="margin: 0 0 20px 0;">Reminder Notification</h2>
                <div style="background-color: white; padding: 25px; border-radius: 8px;">
                    {content}
                </div>
                <p style="color: #666; font-size: 12px; margin-top: 30px; text-align: center;">
                    This is an automated reminder from your Reminder System. Please do not reply to this email.
                </p>
            </div>
        </body>
        </html>
        """


class EmailService:
    """Email transport using the Resend API."""

    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        self._api_key = api_key if api_key is not None else settings.resend_api_key
        self._from_address = from_address if from_address is not None else settings.email_from_address
        if self._api_key:
            resend.api_key = self._api_key
            logger.info("Resend email service initialized")
        else:
            logger.warning("RESEND_API_KEY not configured, email notifications will fail")

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._from_address)

    def send_email(self, to: str, subject: str, body: str) -> EmailResult:
        """
        Send one email. `body` is plain text; an HTML version is derived from it.

        Raises TransportConfigurationError when credentials are missing and
        EmailTransportError for any delivery failure.
        """
        if not self._api_key:
            raise TransportConfigurationError("RESEND_API_KEY is not configured", channel="email")
        if not self._from_address:
            raise TransportConfigurationError("EMAIL_FROM_ADDRESS is not configured", channel="email")

        params = {
            "from": self._from_address,
            "to": [to],
            "subject": subject,
            "html": render_html(body),
            "text": body,
        }
        logger.info(f"Sending email to {to}: {subject}")
        try:
            response = resend.Emails.send(params)
        except ResendError as e:
            code = getattr(e, "code", None)
            kind = _kind_for_status(code)
            logger.error(f"Resend API error sending to {to} ({code}): {e}")
            raise EmailTransportError(
                f"Resend API error: {getattr(e, 'message', None) or e}",
                kind=kind,
                status_code=code if isinstance(code, int) else None,
                provider_code=getattr(e, "error_type", None),
            ) from e
        except OSError as e:
            logger.error(f"Network error sending email to {to}: {e}")
            raise EmailTransportError(f"Network error: unable to reach Resend API ({e})", kind=KIND_NETWORK) from e

        email_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        logger.info(f"Email sent to {to}, id: {email_id}")
        return EmailResult(message_id=email_id)

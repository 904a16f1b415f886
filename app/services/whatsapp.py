import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from app.config import settings
from app.errors import (
    KIND_AUTHENTICATION,
    KIND_INVALID_NUMBER,
    KIND_NETWORK,
    KIND_PROVIDER,
    KIND_RATE_LIMITED,
    KIND_UNREGISTERED_RECIPIENT,
    TransportConfigurationError,
    WhatsAppTransportError,
)

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"

# Twilio error code -> failure kind
TWILIO_ERROR_KINDS = {
    20003: KIND_AUTHENTICATION,  # Authentication failed
    20404: KIND_AUTHENTICATION,  # Account/resource not found for these credentials
    20429: KIND_RATE_LIMITED,  # Too many requests
    21211: KIND_INVALID_NUMBER,  # Invalid 'To' phone number
    21614: KIND_INVALID_NUMBER,  # 'To' number is not a valid mobile number
    63003: KIND_UNREGISTERED_RECIPIENT,  # Channel could not find To address
    63015: KIND_UNREGISTERED_RECIPIENT,  # Recipient has not joined the sandbox
    63018: KIND_RATE_LIMITED,  # Rate limit exceeded for channel
}


@dataclass
class WhatsAppResult:
    message_id: Optional[str]
    status: Optional[str]


def as_whatsapp_address(number: str) -> str:
    number = number.strip()
    if number.startswith(WHATSAPP_PREFIX):
        return number
    return f"{WHATSAPP_PREFIX}{number.replace(' ', '')}"


def classify_twilio_error(status_code: int, body: dict[str, Any]) -> str:
    code = body.get("code")
    if code in TWILIO_ERROR_KINDS:
        return TWILIO_ERROR_KINDS[code]
    if status_code == 401:
        return KIND_AUTHENTICATION
    if status_code == 429:
        return KIND_RATE_LIMITED
    return KIND_PROVIDER


class WhatsAppService:
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        *,
        api_base: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._account_sid = account_sid if account_sid is not None else settings.twilio_account_sid
        self._auth_token = auth_token if auth_token is not None else settings.twilio_auth_token
        self._from_number = from_number if from_number is not None else settings.twilio_whatsapp_from
        self._api_base = (api_base or settings.twilio_api_base).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._account_sid and self._auth_token and self._from_number)

    def _messages_url(self) -> str:
        return f"{self._api_base}/Accounts/{self._account_sid}/Messages.json"

    def send_whatsapp(self, to: str, body: str) -> WhatsAppResult:
        """Send one WhatsApp message. Raises WhatsAppTransportError on failure."""
        if not self.is_configured:
            raise TransportConfigurationError(
                "Twilio WhatsApp is not configured (TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_WHATSAPP_FROM)",
                channel="whatsapp",
            )

        data = {
            "From": as_whatsapp_address(self._from_number),
            "To": as_whatsapp_address(to),
            "Body": body,
        }
        logger.info(f"Sending WhatsApp message to {to}")
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.post(
                    self._messages_url(),
                    data=data,
                    auth=(self._account_sid, self._auth_token),
                )
        except httpx.HTTPError as e:
            logger.error(f"Network error sending WhatsApp to {to}: {e}")
            raise WhatsAppTransportError(f"Network error: unable to reach Twilio API ({e})", kind=KIND_NETWORK) from e

        try:
            payload = resp.json() if resp.content else {}
        except ValueError:
            payload = {}

        if not resp.is_success:
            kind = classify_twilio_error(resp.status_code, payload)
            message = payload.get("message") or resp.text[:500] or f"HTTP {resp.status_code}"
            logger.error(f"Twilio returned {resp.status_code} for {to} ({kind}): {message}")
            raise WhatsAppTransportError(
                f"Twilio API error: {message}",
                kind=kind,
                status_code=resp.status_code,
                provider_code=str(payload["code"]) if payload.get("code") is not None else None,
            )

        message_id = payload.get("sid")
        status = payload.get("status")
        logger.info(f"WhatsApp message queued for {to}, sid: {message_id}, status: {status}")
        return WhatsAppResult(message_id=message_id, status=status)

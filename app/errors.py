from typing import Optional

# Transport failure kinds
KIND_CONFIGURATION = "configuration"
KIND_AUTHENTICATION = "authentication"
KIND_VALIDATION = "validation"
KIND_INVALID_NUMBER = "invalid_number"
KIND_UNREGISTERED_RECIPIENT = "unregistered_recipient"
KIND_RATE_LIMITED = "rate_limited"
KIND_NETWORK = "network"
KIND_PROVIDER = "provider"


class TransportError(Exception):
    """A notification could not be delivered by its transport."""

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        kind: str = KIND_PROVIDER,
        status_code: Optional[int] = None,
        provider_code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.channel = channel
        self.kind = kind
        self.status_code = status_code
        self.provider_code = provider_code

    def __str__(self) -> str:
        return f"[{self.channel}:{self.kind}] {self.message}"


class TransportConfigurationError(TransportError):
    """Credentials or sender settings for a channel are missing."""

    def __init__(self, message: str, *, channel: str):
        super().__init__(message, channel=channel, kind=KIND_CONFIGURATION)


class EmailTransportError(TransportError):
    def __init__(self, message: str, **kwargs):
        super().__init__(message, channel="email", **kwargs)


class WhatsAppTransportError(TransportError):
    def __init__(self, message: str, **kwargs):
        super().__init__(message, channel="whatsapp", **kwargs)


class JobPayloadError(ValueError):
    """A job payload failed validation at enqueue time."""


class JobNotFoundError(LookupError):
    pass


class JobNotRetriableError(Exception):
    """Only failed jobs can be sent back to the queue."""

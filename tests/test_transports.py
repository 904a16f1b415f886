"""Tests for the email (Resend) and WhatsApp (Twilio) transports."""

from unittest.mock import patch

import httpx
import pytest
from resend.exceptions import ResendError

from app.errors import (
    KIND_AUTHENTICATION,
    KIND_INVALID_NUMBER,
    KIND_NETWORK,
    KIND_PROVIDER,
    KIND_RATE_LIMITED,
    KIND_UNREGISTERED_RECIPIENT,
    KIND_VALIDATION,
    EmailTransportError,
    TransportConfigurationError,
    WhatsAppTransportError,
)
from app.services.email import EmailService, render_html
from app.services.whatsapp import WhatsAppService, as_whatsapp_address, classify_twilio_error

SID = "AC" + "0" * 32


def _whatsapp(handler):
    return WhatsAppService(
        SID,
        "secret-token",
        "+14155238886",
        api_base="https://api.twilio.test/2010-04-01",
        transport=httpx.MockTransport(handler),
    )


class TestEmailService:
    def test_send_email(self):
        service = EmailService(api_key="re_test", from_address="Reminders <reminders@example.com>")

        with patch("app.services.email.resend.Emails.send") as mock_send:
            mock_send.return_value = {"id": "email-123"}
            result = service.send_email("jane@example.com", "Subject", "Line one\nLine <two>")

        assert result.message_id == "email-123"
        params = mock_send.call_args[0][0]
        assert params["from"] == "Reminders <reminders@example.com>"
        assert params["to"] == ["jane@example.com"]
        assert params["subject"] == "Subject"
        assert params["text"] == "Line one\nLine <two>"
        assert "Line one<br>Line &lt;two&gt;" in params["html"]

    def test_missing_api_key(self):
        service = EmailService(api_key="", from_address="reminders@example.com")
        assert service.is_configured is False

        with patch("app.services.email.resend.Emails.send") as mock_send:
            with pytest.raises(TransportConfigurationError) as exc_info:
                service.send_email("jane@example.com", "Subject", "Body")

        mock_send.assert_not_called()
        assert exc_info.value.channel == "email"
        assert exc_info.value.kind == "configuration"

    @pytest.mark.parametrize(
        "code,kind",
        [(401, KIND_AUTHENTICATION), (422, KIND_VALIDATION), (429, KIND_RATE_LIMITED), (500, KIND_PROVIDER)],
    )
    def test_resend_errors_are_classified(self, code, kind):
        service = EmailService(api_key="re_test", from_address="reminders@example.com")
        error = ResendError(code=code, error_type="api_error", message="rejected", suggested_action="")

        with patch("app.services.email.resend.Emails.send", side_effect=error):
            with pytest.raises(EmailTransportError) as exc_info:
                service.send_email("jane@example.com", "Subject", "Body")

        assert exc_info.value.kind == kind
        assert exc_info.value.channel == "email"

    def test_network_error(self):
        service = EmailService(api_key="re_test", from_address="reminders@example.com")

        with patch("app.services.email.resend.Emails.send", side_effect=ConnectionError("refused")):
            with pytest.raises(EmailTransportError) as exc_info:
                service.send_email("jane@example.com", "Subject", "Body")

        assert exc_info.value.kind == KIND_NETWORK

    def test_unexpected_errors_are_not_network_failures(self):
        service = EmailService(api_key="re_test", from_address="reminders@example.com")

        with patch("app.services.email.resend.Emails.send", side_effect=TypeError("bad params")):
            with pytest.raises(TypeError):
                service.send_email("jane@example.com", "Subject", "Body")

    def test_render_html_escapes_body(self):
        assert "&lt;script&gt;" in render_html("<script>")


class TestWhatsAppService:
    def test_send_whatsapp(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM123", "status": "queued"})

        result = _whatsapp(handler).send_whatsapp("+1 415 555 0100", "Hello")

        assert result.message_id == "SM123"
        assert result.status == "queued"
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"https://api.twilio.test/2010-04-01/Accounts/{SID}/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        form = dict(httpx.QueryParams(request.content.decode()))
        assert form["From"] == "whatsapp:+14155238886"
        assert form["To"] == "whatsapp:+14155550100"
        assert form["Body"] == "Hello"

    def test_not_configured(self):
        service = WhatsAppService("", "", "", transport=httpx.MockTransport(lambda r: httpx.Response(201)))
        with pytest.raises(TransportConfigurationError) as exc_info:
            service.send_whatsapp("+14155550100", "Hello")
        assert exc_info.value.channel == "whatsapp"

    @pytest.mark.parametrize(
        "status_code,code,kind",
        [
            (400, 21211, KIND_INVALID_NUMBER),
            (400, 63015, KIND_UNREGISTERED_RECIPIENT),
            (401, 20003, KIND_AUTHENTICATION),
            (429, 20429, KIND_RATE_LIMITED),
            (500, 99999, KIND_PROVIDER),
        ],
    )
    def test_twilio_errors_are_classified(self, status_code, code, kind):
        def handler(request):
            return httpx.Response(status_code, json={"code": code, "message": "rejected", "status": status_code})

        with pytest.raises(WhatsAppTransportError) as exc_info:
            _whatsapp(handler).send_whatsapp("+14155550100", "Hello")

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status_code
        assert exc_info.value.provider_code == str(code)
        assert str(exc_info.value) == f"[whatsapp:{kind}] Twilio API error: rejected"

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(WhatsAppTransportError) as exc_info:
            _whatsapp(handler).send_whatsapp("+14155550100", "Hello")

        assert exc_info.value.kind == KIND_NETWORK

    def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(WhatsAppTransportError) as exc_info:
            _whatsapp(handler).send_whatsapp("+14155550100", "Hello")

        assert exc_info.value.kind == KIND_PROVIDER
        assert "Bad Gateway" in exc_info.value.message

    def test_address_helpers(self):
        assert as_whatsapp_address("+14155550100") == "whatsapp:+14155550100"
        assert as_whatsapp_address("whatsapp:+14155550100") == "whatsapp:+14155550100"
        assert classify_twilio_error(401, {}) == KIND_AUTHENTICATION
        assert classify_twilio_error(429, {}) == KIND_RATE_LIMITED

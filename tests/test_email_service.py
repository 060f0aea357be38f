"""EmailService tests.

A recording transport stands in for the SMTP relay. Covers input validation
(the transport must never be touched for bad input), message composition,
retry behaviour on transient SMTP failures and connection verification.
"""

from __future__ import annotations

import aiosmtplib
import pytest

from src.summarizer.core.errors import ClassifiedError, ErrorKind, ServiceUnavailableError
from src.summarizer.schemas.mail import EmailOptions, SummaryEmail
from src.summarizer.services.mail import EmailService, SmtpTransport

SUMMARY = "# Weekly sync\n\n- Ship v2 on Friday"


def _email(**overrides) -> SummaryEmail:
    defaults = {
        "recipients": ["alice@example.com", "bob@example.com"],
        "summary": SUMMARY,
    }
    defaults.update(overrides)
    return SummaryEmail(**defaults)


def _sent_message(transport):
    return transport.send.await_args.args[0]


# ── Validation ───────────────────────────────────────────────────────────────


class TestValidation:
    async def test_invalid_address_never_reaches_transport(self, email_service, transport):
        with pytest.raises(ClassifiedError) as exc_info:
            await email_service.send_summary_email(_email(recipients=["not-an-email"]))

        assert exc_info.value.kind == ErrorKind.VALIDATION_FAULT
        assert "not-an-email" in exc_info.value.original_message
        transport.send.assert_not_awaited()

    async def test_empty_recipients_rejected(self, email_service, transport):
        with pytest.raises(ClassifiedError) as exc_info:
            await email_service.send_summary_email(_email(recipients=[]))

        assert exc_info.value.retryable is False
        transport.send.assert_not_awaited()

    async def test_too_many_recipients_rejected(self, email_service, transport):
        recipients = [f"user{i}@example.com" for i in range(21)]

        with pytest.raises(ClassifiedError, match="Too many recipients"):
            await email_service.send_summary_email(_email(recipients=recipients))

        transport.send.assert_not_awaited()

    async def test_invalid_cc_rejected(self, email_service, transport):
        with pytest.raises(ClassifiedError):
            await email_service.send_summary_email(_email(), EmailOptions(cc=["carol@"]))

        transport.send.assert_not_awaited()

    async def test_blank_summary_rejected(self, email_service, transport):
        with pytest.raises(ClassifiedError, match="Summary content is required"):
            await email_service.send_summary_email(_email(summary="   "))

        transport.send.assert_not_awaited()

    async def test_oversized_summary_rejected(self, email_service):
        with pytest.raises(ClassifiedError, match="Summary is too long"):
            await email_service.send_summary_email(_email(summary="x" * 100_001))

    async def test_unconfigured_relay_checked_after_validation(self, settings_factory):
        service = EmailService(settings_factory(EMAIL_HOST=""))

        assert service.configured is False
        with pytest.raises(ClassifiedError):
            await service.send_summary_email(_email(recipients=["not-an-email"]))
        with pytest.raises(ServiceUnavailableError):
            await service.send_summary_email(_email())


# ── Composition ──────────────────────────────────────────────────────────────


class TestCompose:
    def test_headers(self, email_service):
        options = EmailOptions(cc=["carol@example.com"], reply_to="pm@example.com")

        message = email_service.compose(_email(subject="Sprint review"), options)

        assert message["From"] == "Meeting Summarizer <summaries@example.com>"
        assert message["To"] == "alice@example.com, bob@example.com"
        assert message["Subject"] == "Sprint review"
        assert message["Cc"] == "carol@example.com"
        assert message["Reply-To"] == "pm@example.com"
        assert message["X-Mailer"] == "AI-Meeting-Summarizer"
        assert message["Message-ID"].endswith("@example.com>")
        assert message["Date"]

    def test_subject_and_sender_name_are_truncated(self, email_service):
        message = email_service.compose(_email(subject="S" * 150, sender_name="N" * 60))

        assert message["Subject"] == "S" * 100
        assert message["From"] == "N" * 50 + " <summaries@example.com>"

    def test_blank_subject_uses_default(self, email_service):
        message = email_service.compose(_email(subject="  "))

        assert message["Subject"] == "Meeting Summary"

    def test_text_and_html_parts(self, email_service):
        message = email_service.compose(_email(summary="Decision: use <b>Postgres</b> & Redis\nNext"))

        text = message.get_body(preferencelist=("plain",)).get_content()
        body = message.get_body(preferencelist=("html",)).get_content()

        assert "Decision: use <b>Postgres</b> & Redis" in text
        assert "&lt;b&gt;Postgres&lt;/b&gt; &amp; Redis<br>Next" in body
        assert "<b>Postgres</b>" not in body


# ── Delivery ─────────────────────────────────────────────────────────────────


class TestSend:
    async def test_successful_send_returns_receipt(self, email_service, transport, metrics):
        receipt = await email_service.send_summary_email(_email())

        message = _sent_message(transport)
        assert receipt.message_id == message["Message-ID"]
        assert receipt.recipients == 2
        assert metrics.get("email").success_count == 1
        assert metrics.get("email").units_total == len(message.as_bytes())

    async def test_transient_smtp_failures_retried_with_backoff(self, email_service, transport, sleep, metrics):
        transport.send.side_effect = [
            aiosmtplib.SMTPResponseException(421, "Service not available"),
            aiosmtplib.SMTPServerDisconnected("Connection lost"),
            None,
        ]

        receipt = await email_service.send_summary_email(_email())

        assert transport.send.await_count == 3
        assert sleep.delays == [2.0, 4.0]
        assert metrics.get("email").retry_count == 2
        assert receipt.recipients == 2

    async def test_same_message_sent_on_every_attempt(self, email_service, transport):
        transport.send.side_effect = [aiosmtplib.SMTPResponseException(451, "Try later"), None]

        await email_service.send_summary_email(_email())

        first, second = (call.args[0] for call in transport.send.await_args_list)
        assert first["Message-ID"] == second["Message-ID"]

    async def test_permanent_rejection_not_retried(self, email_service, transport, sleep, metrics):
        transport.send.side_effect = aiosmtplib.SMTPResponseException(550, "Mailbox unavailable")

        with pytest.raises(ClassifiedError) as exc_info:
            await email_service.send_summary_email(_email())

        assert exc_info.value.retryable is False
        assert transport.send.await_count == 1
        assert sleep.delays == []
        assert metrics.get("email").failure_count == 1

    async def test_exhausted_retries_raise_classified_error(self, email_service, transport):
        transport.send.side_effect = ConnectionRefusedError("Connection refused")

        with pytest.raises(ClassifiedError) as exc_info:
            await email_service.send_summary_email(_email())

        assert exc_info.value.kind == ErrorKind.NETWORK
        assert transport.send.await_count == 3


# ── Verification ─────────────────────────────────────────────────────────────


class TestVerifyConnection:
    async def test_reachable_relay(self, email_service, transport):
        assert await email_service.verify_connection() is True
        transport.verify.assert_awaited_once()

    async def test_unreachable_relay_returns_false(self, email_service, transport):
        transport.verify.side_effect = ConnectionRefusedError("Connection refused")

        assert await email_service.verify_connection() is False

    async def test_no_transport_returns_false(self, settings_factory):
        assert await EmailService(settings_factory(EMAIL_HOST="")).verify_connection() is False


class TestSmtpTransport:
    def test_implicit_tls_on_port_465(self, settings_factory):
        settings = settings_factory(EMAIL_PORT=465)

        assert settings.email_use_tls is True
        assert SmtpTransport.from_settings(settings)._use_tls is True

    def test_starttls_on_submission_port(self, settings):
        assert SmtpTransport.from_settings(settings)._use_tls is False

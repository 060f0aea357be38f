"""SMTP adapter for delivering meeting summaries.

EmailService validates and composes the message, then hands the send to
the transport under a per-attempt deadline (Timeout Guard) inside bounded
retries (Retry Engine). Delivery is at-least-once: a deadline that fires
just as the relay accepts the message can lead to a duplicate on retry.

Exports:
    EmailService: Main delivery service.
    EmailTransport: Protocol for the SMTP collaborator.
    SmtpTransport: aiosmtplib-backed transport.
"""

from __future__ import annotations

import asyncio
import html
import ssl
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Protocol

import aiosmtplib
import structlog
from email_validator import EmailNotValidError, validate_email

from src.summarizer.config import Settings, get_settings
from src.summarizer.core.errors import ClassifiedError, ServiceUnavailableError
from src.summarizer.core.retry import RetryEngine, RetryPolicy
from src.summarizer.core.timeout import with_timeout
from src.summarizer.observability.metrics import MetricsAggregator
from src.summarizer.schemas.mail import (
    DEFAULT_SENDER_NAME,
    DEFAULT_SUBJECT,
    MAX_SENDER_NAME_CHARS,
    MAX_SUBJECT_CHARS,
    MAX_SUMMARY_CHARS,
    EmailOptions,
    EmailReceipt,
    SummaryEmail,
)

logger = structlog.get_logger(__name__)

COMPONENT = "email"

MAILER_HEADERS = {
    "X-Priority": "1",
    "X-MSMail-Priority": "High",
    "X-Mailer": "AI-Meeting-Summarizer",
}


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> None: ...

    async def verify(self) -> None: ...


class SmtpTransport:
    """Sends messages through an SMTP relay with aiosmtplib.

    Implicit TLS when use_tls is set, otherwise STARTTLS is negotiated when
    the server offers it. TLS 1.2 is the minimum accepted version.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool,
        timeout: float,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        self._tls_context = ssl.create_default_context()
        self._tls_context.minimum_version = ssl.TLSVersion.TLSv1_2

    @classmethod
    def from_settings(cls, settings: Settings) -> SmtpTransport:
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASS,
            use_tls=settings.email_use_tls,
            timeout=settings.EMAIL_TIMEOUT,
        )

    async def send(self, message: EmailMessage) -> None:
        await aiosmtplib.send(
            message,
            hostname=self._host,
            port=self._port,
            username=self._username or None,
            password=self._password or None,
            use_tls=self._use_tls,
            start_tls=False if self._use_tls else None,
            tls_context=self._tls_context,
            timeout=self._timeout,
        )

    async def verify(self) -> None:
        client = aiosmtplib.SMTP(
            hostname=self._host,
            port=self._port,
            username=self._username or None,
            password=self._password or None,
            use_tls=self._use_tls,
            start_tls=False if self._use_tls else None,
            tls_context=self._tls_context,
            timeout=self._timeout,
        )
        await client.connect()
        await client.quit()


def _invalid_addresses(addresses: list[str]) -> list[str]:
    invalid = []
    for address in addresses:
        try:
            validate_email(address, check_deliverability=False)
        except EmailNotValidError:
            invalid.append(address)
    return invalid


def _clip(value: str | None, default: str, limit: int) -> str:
    value = (value or "").strip() or default
    return value[:limit]


class EmailService:
    """Delivers meeting summaries by email.

    Args:
        settings: Application settings. Uses get_settings() if None.
        metrics: Aggregator receiving call, attempt and retry events.
        transport: SMTP collaborator; built from settings when omitted and
            the relay is configured.
        sleep: Retry delay coroutine; injectable for tests.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        metrics: MetricsAggregator | None = None,
        transport: EmailTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self._settings = settings
        self._metrics = metrics or MetricsAggregator(settings.METRICS_LATENCY_WINDOW)
        if transport is None and settings.email_configured:
            transport = SmtpTransport.from_settings(settings)
        self._transport = transport
        self.policy = RetryPolicy(
            max_attempts=settings.EMAIL_MAX_RETRIES,
            base_delay_seconds=settings.EMAIL_RETRY_BASE_DELAY,
            jitter_seconds=settings.RETRY_JITTER,
        )
        self._engine = RetryEngine(self.policy, COMPONENT, metrics=self._metrics, sleep=sleep)
        self.timeout_seconds = settings.EMAIL_TIMEOUT

    @property
    def configured(self) -> bool:
        return self._transport is not None

    def validate(self, email: SummaryEmail, options: EmailOptions) -> None:
        """Reject malformed requests before any transport use.

        Raises:
            ClassifiedError: VALIDATION_FAULT, never retried.
        """
        if not email.recipients:
            raise ClassifiedError.validation("Recipients must be a non-empty list")
        if len(email.recipients) > self._settings.EMAIL_MAX_RECIPIENTS:
            raise ClassifiedError.validation(
                f"Too many recipients. Please limit to "
                f"{self._settings.EMAIL_MAX_RECIPIENTS} email addresses."
            )

        addresses = [*email.recipients, *options.cc, *options.bcc]
        if options.reply_to:
            addresses.append(options.reply_to)
        invalid = _invalid_addresses(addresses)
        if invalid:
            raise ClassifiedError.validation(
                f"Invalid email address format detected: {', '.join(invalid)}"
            )

        if not email.summary or not email.summary.strip():
            raise ClassifiedError.validation("Summary content is required")
        if len(email.summary) > MAX_SUMMARY_CHARS:
            raise ClassifiedError.validation(
                f"Summary is too long. Please limit to {MAX_SUMMARY_CHARS:,} characters."
            )

    def compose(self, email: SummaryEmail, options: EmailOptions | None = None) -> EmailMessage:
        """Build the multipart text + HTML message."""
        options = options or EmailOptions()
        subject = _clip(email.subject, DEFAULT_SUBJECT, MAX_SUBJECT_CHARS)
        sender_name = _clip(email.sender_name, DEFAULT_SENDER_NAME, MAX_SENDER_NAME_CHARS)
        sender_address = self._settings.EMAIL_USER
        domain = sender_address.rpartition("@")[2] or None

        message = EmailMessage()
        message["From"] = formataddr((sender_name, sender_address))
        message["To"] = ", ".join(email.recipients)
        message["Subject"] = subject
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid(domain=domain)
        if options.cc:
            message["Cc"] = ", ".join(options.cc)
        if options.bcc:
            message["Bcc"] = ", ".join(options.bcc)
        if options.reply_to:
            message["Reply-To"] = options.reply_to
        for name, value in MAILER_HEADERS.items():
            message[name] = value

        generated_on = datetime.now(timezone.utc).strftime("%B %d, %Y")
        message.set_content(_build_text_body(email.summary, subject, generated_on))
        message.add_alternative(
            _build_html_body(email.summary, subject, sender_name, generated_on),
            subtype="html",
        )
        return message

    async def send_summary_email(
        self,
        email: SummaryEmail,
        options: EmailOptions | None = None,
    ) -> EmailReceipt:
        """Validate, compose and send a summary email.

        Raises:
            ClassifiedError: VALIDATION_FAULT for bad input (the transport is
                never called), or the terminal classified send failure.
            ServiceUnavailableError: If no SMTP relay is configured.
        """
        options = options or EmailOptions()
        self.validate(email, options)
        if self._transport is None:
            raise ServiceUnavailableError("Email service is not configured")

        message = self.compose(email, options)
        message_id = str(message["Message-ID"])
        transport = self._transport
        size = len(message.as_bytes())

        async def _attempt() -> None:
            await with_timeout(
                lambda: transport.send(message),
                self.timeout_seconds,
                label="Email sending operation",
            )

        self._metrics.begin_call(COMPONENT)
        start = time.perf_counter()
        try:
            await self._engine.execute(_attempt)
        except ClassifiedError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.record_failure(COMPONENT, latency_ms)
            logger.error(
                "email_send_failed",
                recipients=len(email.recipients),
                kind=exc.kind.value,
                error=exc.original_message,
            )
            raise

        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_success(COMPONENT, latency_ms, units=size)
        logger.info(
            "email_sent",
            recipients=len(email.recipients),
            message_id=message_id,
            latency_ms=round(latency_ms, 2),
        )
        return EmailReceipt(
            message_id=message_id,
            recipients=len(email.recipients),
            sent_at=datetime.now(timezone.utc),
        )

    async def verify_connection(self) -> bool:
        """Check relay connectivity. Never raises."""
        if self._transport is None:
            return False
        try:
            await with_timeout(
                self._transport.verify, self.timeout_seconds, label="SMTP verification"
            )
        except (ClassifiedError, aiosmtplib.SMTPException, OSError) as exc:
            logger.error("email_connection_verification_failed", error=str(exc))
            return False
        logger.info("email_connection_verified")
        return True


# ── Message Builders ─────────────────────────────────────────────────────────


def _build_text_body(summary: str, subject: str, generated_on: str) -> str:
    return (
        f"{subject}\n"
        f"{'-' * len(subject)}\n\n"
        f"Meeting Summary (Generated on {generated_on})\n\n"
        f"{summary}\n\n"
        "---\n"
        "This summary was generated with AI Meeting Summarizer"
    )


def _build_html_body(summary: str, subject: str, sender_name: str, generated_on: str) -> str:
    """HTML alternative. All caller-supplied text is escaped."""
    body = html.escape(summary).replace("\n", "<br>")
    title = html.escape(subject)
    return f"""<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
<h1>{title}</h1>
<p>Generated by {html.escape(sender_name)} on {generated_on}</p>
<h2>Meeting Summary</h2>
<div style="white-space: pre-wrap; line-height: 1.6;">{body}</div>
<hr>
<p><em>This summary was generated with AI Meeting Summarizer</em></p>
</body>
</html>"""

"""Pydantic schemas for summary email delivery."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

DEFAULT_SUBJECT = "Meeting Summary"
DEFAULT_SENDER_NAME = "Meeting Summarizer"
MAX_SUBJECT_CHARS = 100
MAX_SENDER_NAME_CHARS = 50
MAX_SUMMARY_CHARS = 100_000


class SummaryEmail(BaseModel):
    """Content of a summary email. Addresses are validated by EmailService."""

    recipients: list[str] = Field(default_factory=list)
    subject: str = DEFAULT_SUBJECT
    summary: str = ""
    sender_name: str = DEFAULT_SENDER_NAME


class EmailOptions(BaseModel):
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = None


class EmailReceipt(BaseModel):
    """Result of a successful send."""

    message_id: str
    recipients: int
    sent_at: datetime


class SendEmailRequest(BaseModel):
    """Request schema for the send-email endpoint."""

    recipients: list[str] = Field(..., description="Recipient email addresses")
    summary: str = Field(..., description="Summary content (Markdown)")
    subject: str = Field(default=DEFAULT_SUBJECT)
    sender_name: str = Field(default=DEFAULT_SENDER_NAME)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = None

    def email(self) -> SummaryEmail:
        return SummaryEmail(
            recipients=self.recipients,
            subject=self.subject,
            summary=self.summary,
            sender_name=self.sender_name,
        )

    def options(self) -> EmailOptions:
        return EmailOptions(cc=self.cc, bcc=self.bcc, reply_to=self.reply_to)


class SendEmailResponse(BaseModel):
    success: bool = True
    message_id: str
    recipients: int
    timestamp: datetime

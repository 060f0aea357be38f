"""Summary email endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.summarizer.api.deps import get_email_service, rate_limit
from src.summarizer.schemas.mail import SendEmailRequest, SendEmailResponse
from src.summarizer.services.mail import EmailService

router = APIRouter(tags=["email"])


@router.post(
    "/send-email",
    response_model=SendEmailResponse,
    dependencies=[Depends(rate_limit("email"))],
)
async def send_email(
    body: SendEmailRequest,
    service: EmailService = Depends(get_email_service),
):
    """Email a summary to the given recipients.

    Invalid input is rejected with 400 before any SMTP connection is made.
    """
    receipt = await service.send_summary_email(body.email(), body.options())
    return SendEmailResponse(
        message_id=receipt.message_id,
        recipients=receipt.recipients,
        timestamp=receipt.sent_at,
    )

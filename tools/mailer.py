from dataclasses import dataclass
from typing import Optional

import httpx
from loguru import logger

SENDGRID_API = "https://api.sendgrid.com/v3/mail/send"


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    status_code: int = 0
    error: Optional[str] = None


class SendGridMailer:
    """Plain-text email through the SendGrid v3 HTTP API."""

    def __init__(self, api_key: Optional[str], from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

        if not self.api_key:
            logger.warning("No SendGrid API key provided, outbound email disabled")

    def send(self, to: str, subject: str, body: str) -> SendResult:
        """
        Send a single email.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain-text body

        Returns:
            SendResult; success only when SendGrid accepted the message (202)
        """
        if not self.api_key:
            return SendResult(success=False, error="SENDGRID_API_KEY not configured")

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }

        try:
            response = httpx.post(
                SENDGRID_API,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=20,
            )
        except httpx.HTTPError as e:
            logger.error(f"SendGrid request failed for {to}: {e}")
            return SendResult(success=False, error=str(e))

        message_id = response.headers.get("x-message-id")

        if response.status_code == 202:
            logger.info(f"Email sent to {to}: {message_id}")
            return SendResult(success=True, message_id=message_id, status_code=202)

        logger.error(f"SendGrid rejected email to {to} ({response.status_code}): {response.text}")
        return SendResult(success=False, status_code=response.status_code, error=response.text or "Unknown error")

    def send_best_effort(self, to: str, subject: str, body: str) -> None:
        """Send and only log a failure; used for confirmations nobody waits on."""
        result = self.send(to, subject, body)
        if not result.success:
            logger.error(f"Best-effort email to {to} failed: {result.error}")

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from loguru import logger
from slack_sdk.webhook import WebhookClient


class SlackNotifier:
    """Slack incoming-webhook notifications for the operator channel."""

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url
        self.client = WebhookClient(webhook_url) if webhook_url else None

        if not self.client:
            logger.warning("No Slack webhook URL provided, chat notifications disabled")

    def send_contact_notification(
        self,
        lead_id: int,
        name: str,
        email: str,
        category: str,
        message: str,
        deduped: bool,
    ) -> bool:
        """
        Announce an inbound contact submission.

        Args:
            lead_id: Lead the contact was attached to
            name: Submitter name
            email: Submitter email
            category: Requested tier
            message: Submitted message (truncated in the post)
            deduped: True if an existing recent lead was updated

        Returns:
            True if Slack accepted the message
        """
        emoji = "🔄" if deduped else "📨"
        title = "Contact (Updated)" if deduped else "New Contact"
        fields = {
            "Name": name,
            "Email": email,
            "Category": category,
            "Message": message[:200] or "(none)",
        }
        footer = f"Lead #{lead_id} {'(deduped)' if deduped else '(new)'}"
        return self._post(self._build_message(f"{emoji} {title}", fields, footer))

    def send_proposal_notification(self, lead_id: int, business_name: str, tier: str, email: str) -> bool:
        """Announce a sent proposal."""
        fields = {"Lead": business_name, "Tier": tier, "Email": email}
        return self._post(self._build_message("📧 Proposal Sent", fields, f"Lead #{lead_id}"))

    def send_payment_notification(self, payment: Dict[str, Any]) -> bool:
        """
        Announce an applied payment.

        Args:
            payment: Dict with lead_id, business_name, tier, link_type,
                amount_cents, payment_status, stage and event_id

        Returns:
            True if Slack accepted the message
        """
        fields = {
            "Lead": payment.get("business_name", "Unknown"),
            "Tier": payment.get("tier", "Unknown"),
            "Amount": format_dollars(payment.get("amount_cents", 0)),
            "Type": payment.get("link_type", "Unknown"),
            "Status": payment.get("payment_status", "Unknown"),
            "Stage": payment.get("stage", "Unknown"),
        }
        footer = f"Lead #{payment.get('lead_id')} • {payment.get('event_id')}"
        return self._post(self._build_message("💰 Payment Received", fields, footer))

    def _build_message(self, title: str, fields: Dict[str, str], footer: str) -> Dict[str, Any]:
        """Build a Slack block message with a header, a field grid and a context footer."""
        field_blocks: List[Dict[str, str]] = [
            {"type": "mrkdwn", "text": f"*{name}:*\n{value}"}
            for name, value in fields.items()
        ]

        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": title},
            },
            {
                "type": "section",
                # Slack caps a section at 10 fields
                "fields": field_blocks[:10],
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"{footer} • {datetime.now(timezone.utc).isoformat(timespec='seconds')}",
                    }
                ],
            },
        ]

        return {"text": title, "blocks": blocks}

    def _post(self, message: Dict[str, Any]) -> bool:
        if not self.client:
            logger.info(f"Chat webhook not configured, skipping: {message['text']}")
            return False

        try:
            response = self.client.send(text=message["text"], blocks=message["blocks"])
        except Exception as e:
            logger.error(f"Slack notification failed: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"Slack webhook failed ({response.status_code}): {response.body}")
            return False

        logger.info(f"Slack notification sent: {message['text']}")
        return True


def format_dollars(cents: int) -> str:
    return f"${cents / 100:,.0f}"

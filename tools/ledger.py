from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from loguru import logger

from models import WebhookEvent, utcnow


class EventLedger:
    """Storage-backed dedup gate for webhook deliveries.

    The unique constraint on `webhook_events.stripe_event_id` makes the
    insert the dedup decision, so concurrent deliveries across processes
    agree without any in-process lock.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_if_new(self, event_id: str, event_type: str) -> bool:
        """
        Insert the event row if this id has never been seen.

        Args:
            event_id: Provider event identifier
            event_type: Provider event type, stored for diagnostics

        Returns:
            True if the row was inserted (new event), False if it already existed
        """
        self.db.add(WebhookEvent(stripe_event_id=event_id, event_type=event_type, processed=False))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            if self._get(event_id) is None:
                # Some other constraint failed; nothing was recorded
                logger.error(f"Failed to record webhook event {event_id}")
                raise
            logger.info(f"Webhook event already recorded: {event_id}")
            return False

        logger.info(f"Recorded webhook event {event_id} ({event_type})")
        return True

    def is_processed(self, event_id: str) -> bool:
        event = self._get(event_id)
        return bool(event and event.processed)

    def mark_processed(self, event_id: str, commit: bool = True) -> None:
        """Flag the event as processed; with commit=False the caller owns the transaction."""
        event = self._get(event_id)
        if event is None:
            logger.warning(f"Cannot mark unknown webhook event {event_id} as processed")
            return

        event.processed = True
        event.processed_at = utcnow()
        if commit:
            self.db.commit()

    def _get(self, event_id: str):
        return self.db.query(WebhookEvent).filter(WebhookEvent.stripe_event_id == event_id).first()

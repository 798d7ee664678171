# models.py
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the only flavour stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ReviewStatus:
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    EDIT_NEEDED = "edit_needed"

    ALL = (APPROVED, REJECTED, EDIT_NEEDED, PENDING_REVIEW)


class Stage:
    NEW = "new"
    CONTACTED = "contacted"
    CONTRACTED = "contracted"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"

    CLOSED = (CLOSED_WON, CLOSED_LOST)


class PaymentStatus:
    NONE = "none"
    PENDING = "pending"
    DEPOSIT_PAID = "deposit_paid"
    FULLY_PAID = "fully_paid"


class LinkType:
    FULL = "full"
    DEPOSIT = "deposit"
    FINAL = "final"

    COMPLETE = (FULL, FINAL)


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    message = Column(Text, nullable=False, default="")
    source = Column(String, nullable=False, default="website")
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    business_name = Column(String, nullable=False)
    email = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False, default="pro")
    message = Column(Text, nullable=False, default="")
    score = Column(Integer, nullable=False, default=0)
    stage = Column(String, nullable=False, default=Stage.NEW, index=True)
    review_status = Column(String, nullable=False, default=ReviewStatus.PENDING_REVIEW, index=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    proposal_sent_at = Column(DateTime, nullable=True)
    proposal_message_id = Column(String, nullable=True)
    payment_status = Column(String, nullable=False, default=PaymentStatus.NONE)
    payment_amount_cents = Column(Integer, nullable=False, default=0)
    follow_up_sent_at = Column(DateTime, nullable=True)
    follow_up_message_id = Column(String, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    send_error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "email": self.email,
            "category": self.category,
            "message": self.message,
            "score": self.score,
            "stage": self.stage,
            "review_status": self.review_status,
            "review_notes": self.review_notes,
            "reviewed_at": _iso(self.reviewed_at),
            "proposal_sent_at": _iso(self.proposal_sent_at),
            "proposal_message_id": self.proposal_message_id,
            "payment_status": self.payment_status,
            "payment_amount_cents": self.payment_amount_cents,
            "follow_up_sent_at": _iso(self.follow_up_sent_at),
            "follow_up_message_id": self.follow_up_message_id,
            "closed_at": _iso(self.closed_at),
            "send_error": self.send_error,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class PaymentLink(Base):
    """Provisioned externally; this service only reads it."""

    __tablename__ = "payment_links"

    id = Column(Integer, primary_key=True, index=True)
    tier = Column(String, nullable=False)
    link_type = Column(String, nullable=False)
    stripe_product_id = Column(String, nullable=True)
    stripe_price_id = Column(String, nullable=True)
    stripe_link_id = Column(String, nullable=False, unique=True)
    stripe_url = Column(String, nullable=False)
    price_cents = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# At most one active link per (tier, link_type)
Index(
    "uq_payment_links_active_tier_type",
    PaymentLink.tier,
    PaymentLink.link_type,
    unique=True,
    sqlite_where=PaymentLink.active.is_(True),
    postgresql_where=PaymentLink.active.is_(True),
)


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    tier = Column(String, nullable=False)
    payment_url = Column(String, nullable=False)
    email_message_id = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow)


class Payment(Base):
    """One applied payment event. Append-only."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    stripe_event_id = Column(String, nullable=False, unique=True)
    stripe_link_id = Column(String, nullable=False)
    tier = Column(String, nullable=False)
    link_type = Column(String, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    customer_email = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    stripe_event_id = Column(String, nullable=False, unique=True)
    event_type = Column(String, nullable=False)
    processed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=True)


class FollowUp(Base):
    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    email_message_id = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=False, default=utcnow)


class ActivityLog(Base):
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False, index=True)
    details = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    @property
    def meta(self) -> Dict[str, Any]:
        return json.loads(self.metadata_json) if self.metadata_json else {}

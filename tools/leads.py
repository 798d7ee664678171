import re
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
from loguru import logger

from config import (
    CONTACT_DEDUPE_DAYS,
    DEFAULT_TIER,
    INBOUND_LEAD_SCORE,
    LEADS_PAGE_LIMIT,
    MAX_FIELD_LENGTH,
    RATE_LIMITS,
)
from models import Contact, Lead, ReviewStatus, Stage, utcnow
from tools.activity import log_activity
from tools.background import Detached
from tools.deps import Services
from tools.errors import NotFound, RateLimited, ValidationError
from tools.templates import contact_ack_email

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UNSAFE_CHARS = re.compile(r"[<>\"'&]")


def sanitize(value: Any) -> str:
    """Strip markup-ish characters, trim and cap the length of a form field."""
    text = "" if value is None else str(value)
    return UNSAFE_CHARS.sub("", text).strip()[:MAX_FIELD_LENGTH]


def submit_contact(db: Session, services: Services, detached: Detached, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Store an inbound contact and create or refresh the matching lead.

    A lead with the same email created within the dedupe window is updated
    in place (message replaced); otherwise a new lead is created.

    Returns:
        {"lead_id": int, "deduped": bool}
    """
    name = sanitize(payload.get("name"))
    email = str(payload.get("email") or "").strip().lower()
    message = sanitize(payload.get("message"))
    category = sanitize(payload.get("category") or DEFAULT_TIER) or DEFAULT_TIER

    if len(name) < 2:
        raise ValidationError("Name is required (min 2 chars)")
    if not EMAIL_REGEX.match(email):
        raise ValidationError("Valid email is required")

    limit = RATE_LIMITS["contact_form"]
    if not services.limiter.check(f"contact:{email}", limit["max"], limit["window_ms"]):
        logger.warning(f"Contact form rate limited for {email}")
        raise RateLimited("Too many submissions. Please try again later.")

    db.add(Contact(name=name, email=email, message=message, source="website"))

    cutoff = utcnow() - timedelta(days=CONTACT_DEDUPE_DAYS)
    existing = (
        db.query(Lead)
        .filter(Lead.email == email, Lead.created_at > cutoff)
        .order_by(Lead.id.desc())
        .first()
    )

    if existing:
        existing.message = message
        existing.updated_at = utcnow()
        lead = existing
        deduped = True
    else:
        lead = Lead(
            business_name=name,
            email=email,
            category=category,
            message=message,
            score=INBOUND_LEAD_SCORE,
            stage=Stage.NEW,
            review_status=ReviewStatus.PENDING_REVIEW,
        )
        db.add(lead)
        deduped = False

    db.commit()
    logger.info(f"Inbound contact from {email} -> lead {lead.id} (deduped={deduped})")

    log_activity(db, "inbound_contact", f"Contact from {name} ({email})", {
        "lead_id": lead.id,
        "deduped": deduped,
        "category": category,
    })

    detached.submit(
        services.chat.send_contact_notification,
        lead.id, name, email, category, message, deduped,
    )

    if not deduped:
        subject, body = contact_ack_email(name)
        detached.submit(services.mailer.send_best_effort, email, subject, body)

    return {"lead_id": lead.id, "deduped": deduped}


def list_leads(db: Session, stage: Optional[str] = None, review_status: Optional[str] = None) -> Dict[str, Any]:
    """Most recent leads, optionally filtered by stage and review status."""
    query = db.query(Lead)
    if stage:
        query = query.filter(Lead.stage == stage)
    if review_status:
        query = query.filter(Lead.review_status == review_status)

    leads = query.order_by(Lead.created_at.desc(), Lead.id.desc()).limit(LEADS_PAGE_LIMIT).all()
    return {"leads": [lead.to_dict() for lead in leads], "count": len(leads)}


def review_lead(db: Session, lead_id: str, payload: Dict[str, Any]) -> Lead:
    """
    Apply an operator review decision to a lead.

    Args:
        db: Database session
        lead_id: Raw id from the request path
        payload: {"review_status": str, "review_notes": str}

    Returns:
        The updated Lead. Scheduling the proposal on approval is the caller's job.
    """
    try:
        lead_pk = int(lead_id)
    except (TypeError, ValueError):
        raise ValidationError("Invalid lead ID")

    new_status = str(payload.get("review_status") or "")
    notes = str(payload.get("review_notes") or "")

    if new_status not in ReviewStatus.ALL:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ReviewStatus.ALL)}")

    lead = db.get(Lead, lead_pk)
    if lead is None:
        raise NotFound("Lead not found")

    old_status = lead.review_status
    now = utcnow()
    lead.review_status = new_status
    lead.review_notes = notes
    lead.reviewed_at = now
    lead.updated_at = now
    db.commit()

    logger.info(f"Lead #{lead.id} reviewed: {old_status} -> {new_status}")
    log_activity(db, "lead_reviewed", f"Lead #{lead.id} -> {new_status}", {
        "lead_id": lead.id,
        "old_status": old_status,
        "new_status": new_status,
    })

    return lead

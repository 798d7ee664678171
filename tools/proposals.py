from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session
from loguru import logger

from config import DEFAULT_TIER, RATE_LIMITS
from models import FollowUp, Lead, LinkType, PaymentLink, PaymentStatus, Proposal, ReviewStatus, Stage, utcnow
from tools.activity import log_activity
from tools.background import Detached
from tools.deps import Services
from tools.errors import NotFound, PreconditionFailed, RateLimited, UpstreamError, ValidationError
from tools.templates import follow_up_email, proposal_email


def proposal_terms(lead: Lead) -> Tuple[str, str]:
    """Tier and link type offered to a lead: starters pay in full, everyone else a deposit."""
    tier = lead.category or DEFAULT_TIER
    link_type = LinkType.FULL if tier == "starter" else LinkType.DEPOSIT
    return tier, link_type


def get_payment_link_url(db: Session, tier: str, link_type: str) -> Optional[str]:
    row = (
        db.query(PaymentLink)
        .filter(
            PaymentLink.tier == tier,
            PaymentLink.link_type == link_type,
            PaymentLink.active.is_(True),
        )
        .first()
    )
    return row.stripe_url if row else None


def send_proposal(db: Session, services: Services, detached: Detached, lead_id: Any) -> Dict[str, Any]:
    """
    Email the proposal for an approved lead and move it to `contacted`.

    Raises:
        ValidationError: bad lead id or no payment link provisioned for the tier
        NotFound: lead does not exist
        PreconditionFailed: lead not approved, or proposal already sent
        UpstreamError: the email provider refused the message
    """
    try:
        lead_pk = int(lead_id)
    except (TypeError, ValueError):
        raise ValidationError("lead_id is required")
    if lead_pk <= 0:
        raise ValidationError("lead_id is required")

    lead = db.get(Lead, lead_pk)
    if lead is None:
        raise NotFound("Lead not found")
    if lead.review_status != ReviewStatus.APPROVED:
        raise PreconditionFailed("Lead must be approved first")
    if lead.proposal_sent_at:
        raise PreconditionFailed("Proposal already sent")

    tier, link_type = proposal_terms(lead)
    payment_url = get_payment_link_url(db, tier, link_type)
    if not payment_url:
        raise ValidationError(f"No payment link found for {tier}/{link_type}. Run setup first.")

    subject, body = proposal_email(lead.business_name, tier, payment_url)
    result = services.mailer.send(lead.email, subject, body)

    if not result.success:
        lead.send_error = result.error or "Unknown error"
        lead.updated_at = utcnow()
        db.commit()
        raise UpstreamError(f"Email send failed: {result.error}")

    now = utcnow()
    lead.proposal_sent_at = now
    lead.proposal_message_id = result.message_id
    lead.payment_status = PaymentStatus.PENDING
    lead.stage = Stage.CONTACTED
    lead.send_error = None
    lead.updated_at = now
    db.add(Proposal(
        lead_id=lead.id,
        tier=tier,
        payment_url=payment_url,
        email_message_id=result.message_id,
        sent_at=now,
    ))
    db.commit()

    logger.info(f"Proposal sent to lead #{lead.id} ({tier}): {result.message_id}")
    log_activity(db, "proposal_sent", f"Proposal sent to {lead.business_name} ({tier})", {
        "lead_id": lead.id,
        "tier": tier,
        "payment_url": payment_url,
    })

    detached.submit(services.chat.send_proposal_notification, lead.id, lead.business_name, tier, lead.email)

    return {"sent": True, "lead_id": lead.id, "tier": tier, "message_id": result.message_id}


def send_proposal_checked(db: Session, services: Services, detached: Detached, lead_id: Any) -> Dict[str, Any]:
    """Operator-facing send, counted against the proposal rate limit."""
    limit = RATE_LIMITS["proposal_send"]
    if not services.limiter.check("proposal_send", limit["max"], limit["window_ms"]):
        raise RateLimited("Too many proposals sent. Please try again later.")
    return send_proposal(db, services, detached, lead_id)


def send_proposal_in_background(services: Services, lead_id: int) -> None:
    """Approval hook: runs after the review response, in its own session."""
    db = services.session_factory()
    try:
        send_proposal(db, services, Detached(), lead_id)
    finally:
        db.close()


def run_follow_ups(db: Session, services: Services) -> Dict[str, Any]:
    """
    Nudge leads whose proposal has gone unpaid past the follow-up threshold.

    Each lead gets at most one follow-up; the sweep is capped per run.
    """
    settings = services.settings
    cutoff = utcnow() - timedelta(hours=settings.follow_up_after_hours)

    leads = (
        db.query(Lead)
        .filter(
            Lead.proposal_sent_at.isnot(None),
            Lead.proposal_sent_at < cutoff,
            Lead.payment_status == PaymentStatus.PENDING,
            Lead.follow_up_sent_at.is_(None),
            Lead.stage.notin_(Stage.CLOSED),
        )
        .order_by(Lead.proposal_sent_at.asc())
        .limit(settings.follow_up_cap)
        .all()
    )

    if not leads:
        return {"sent": 0, "message": "No follow-ups needed"}

    sent_count = 0
    failed_count = 0

    for lead in leads:
        tier, link_type = proposal_terms(lead)
        payment_url = get_payment_link_url(db, tier, link_type)
        if not payment_url:
            logger.warning(f"No payment link for {tier}/{link_type}, skipping lead #{lead.id}")
            continue

        subject, body = follow_up_email(lead.business_name, tier, payment_url)
        result = services.mailer.send(lead.email, subject, body)

        if not result.success:
            logger.error(f"Follow-up email failed for lead #{lead.id}: {result.error}")
            failed_count += 1
            continue

        now = utcnow()
        lead.follow_up_sent_at = now
        lead.follow_up_message_id = result.message_id
        lead.updated_at = now
        db.add(FollowUp(lead_id=lead.id, email_message_id=result.message_id, sent_at=now))
        db.commit()
        sent_count += 1

    logger.info(f"Follow-up run: {sent_count} sent, {failed_count} failed of {len(leads)} eligible")
    log_activity(db, "follow_up_run", f"Follow-up: {sent_count} sent, {failed_count} failed", {
        "eligible": len(leads),
        "sent": sent_count,
        "failed": failed_count,
    })

    return {"eligible": len(leads), "sent": sent_count, "failed": failed_count}

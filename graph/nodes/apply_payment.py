from langchain_core.runnables import RunnableConfig
from sqlalchemy.exc import SQLAlchemyError
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from models import Lead, LinkType, Payment, PaymentStatus, Stage, utcnow
from tools.activity import log_activity
from tools.ledger import EventLedger
from tools.slack import format_dollars

def transition(link_type: str):
    """Payment status and stage reached by a payment of this link type."""
    if link_type in LinkType.COMPLETE:
        return PaymentStatus.FULLY_PAID, Stage.CLOSED_WON
    return PaymentStatus.DEPOSIT_PAID, Stage.CONTRACTED

def apply_payment(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """
    Apply the payment to the lead.

    Lead update, Payment row and the processed flag commit together; any
    failure rolls all three back and propagates so the delivery is retried.
    """
    db, _, _ = runtime(config)
    event_id = state["event_id"]
    link = state["link"]
    lead_id = state["lead"]["id"]

    payment_status, stage = transition(link["link_type"])

    try:
        lead = db.query(Lead).filter(Lead.id == lead_id).with_for_update().one()

        now = utcnow()
        total_cents = (lead.payment_amount_cents or 0) + link["price_cents"]
        lead.payment_amount_cents = total_cents
        lead.payment_status = payment_status
        lead.stage = stage
        if stage == Stage.CLOSED_WON:
            lead.closed_at = now
        lead.updated_at = now

        db.add(Payment(
            lead_id=lead.id,
            stripe_event_id=event_id,
            stripe_link_id=state["payment_link_id"],
            tier=link["tier"],
            link_type=link["link_type"],
            amount_cents=link["price_cents"],
            customer_email=state["customer_email"],
        ))
        EventLedger(db).mark_processed(event_id, commit=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to apply payment for {event_id}: {e}")
        raise

    state["handled"] = True
    state["payment"] = {
        "event_id": event_id,
        "lead_id": lead.id,
        "business_name": lead.business_name,
        "tier": link["tier"],
        "link_type": link["link_type"],
        "amount_cents": link["price_cents"],
        "total_paid_cents": total_cents,
        "payment_status": payment_status,
        "stage": stage,
    }

    logger.info(f"Payment applied to lead #{lead.id}: {payment_status}/{stage}, total {total_cents} cents")
    log_activity(
        db,
        "payment_received",
        f"{lead.business_name}: {format_dollars(link['price_cents'])} ({link['tier']}/{link['link_type']})",
        {
            "lead_id": lead.id,
            "tier": link["tier"],
            "link_type": link["link_type"],
            "amount_cents": link["price_cents"],
            "total_paid_cents": total_cents,
            "payment_status": payment_status,
        },
    )
    return state

from langchain_core.runnables import RunnableConfig
from sqlalchemy import func
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from models import Lead

def match_lead(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """Find the most recently created lead for the payer's email."""
    db, _, _ = runtime(config)
    email = state["customer_email"]

    # Correlation is by email + recency: payment links carry no lead reference
    lead = (
        db.query(Lead)
        .filter(func.lower(Lead.email) == email)
        .order_by(Lead.id.desc())
        .first()
    )

    if lead is None:
        logger.warning(f"Payment from {email} but no matching lead ({state['event_id']})")
        state["skip_reason"] = "lead_not_found"
        return state

    state["lead"] = {
        "id": lead.id,
        "business_name": lead.business_name,
        "email": lead.email,
        "category": lead.category,
    }
    logger.info(f"Checkout {state['event_id']} matched lead #{lead.id}")
    return state

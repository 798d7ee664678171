from typing import Any, Dict

from langchain_core.runnables import RunnableConfig
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from models import PaymentLink

CHECKOUT_COMPLETED = "checkout.session.completed"

def extract_checkout(event: Dict[str, Any]):
    """Pull the payment link id and lower-cased payer email out of a checkout session."""
    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        return None, None

    payment_link_id = session.get("payment_link")
    if not isinstance(payment_link_id, str):
        payment_link_id = None

    customer_details = session.get("customer_details")
    email = customer_details.get("email") if isinstance(customer_details, dict) else None
    if not isinstance(email, str):
        email = None

    return payment_link_id or None, email.strip().lower() if email else None

def match_link(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """Resolve the event to one of our active payment links."""
    db, _, _ = runtime(config)
    event_id = state["event_id"]

    if state.get("event_type") != CHECKOUT_COMPLETED:
        logger.info(f"Ignoring webhook event type {state.get('event_type')}: {event_id}")
        state["skip_reason"] = "ignored_event_type"
        return state

    payment_link_id, customer_email = extract_checkout(state.get("event", {}))
    state["payment_link_id"] = payment_link_id
    state["customer_email"] = customer_email

    if not payment_link_id or not customer_email:
        logger.warning(f"Checkout {event_id} missing payment_link or email")
        state["skip_reason"] = "missing_data"
        return state

    link = (
        db.query(PaymentLink)
        .filter(PaymentLink.stripe_link_id == payment_link_id, PaymentLink.active.is_(True))
        .first()
    )
    if link is None:
        # Not one of our links (or deactivated); accept quietly so the provider stops retrying
        logger.info(f"Checkout {event_id} for unknown payment link {payment_link_id}")
        state["skip_reason"] = "unknown_link"
        return state

    state["link"] = {
        "tier": link.tier,
        "link_type": link.link_type,
        "price_cents": link.price_cents,
    }
    logger.info(f"Checkout {event_id} matched link {link.tier}/{link.link_type}")
    return state

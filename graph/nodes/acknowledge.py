from langchain_core.runnables import RunnableConfig
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from tools.activity import log_activity
from tools.ledger import EventLedger

def acknowledge(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """Close out an event that needs no state change: mark it processed, leave an audit trail."""
    db, _, _ = runtime(config)
    event_id = state["event_id"]
    reason = state.get("skip_reason", "not_handled")

    EventLedger(db).mark_processed(event_id)
    state["handled"] = False

    if reason == "missing_data":
        log_activity(db, "webhook_no_match", "Missing payment_link or email", {
            "event_id": event_id,
            "payment_link": state.get("payment_link_id"),
            "email": state.get("customer_email"),
        })
    elif reason == "lead_not_found":
        link = state.get("link", {})
        log_activity(db, "webhook_lead_not_found", f"Payment from {state.get('customer_email')} but no matching lead", {
            "event_id": event_id,
            "tier": link.get("tier"),
            "link_type": link.get("link_type"),
        })

    logger.info(f"Webhook event {event_id} acknowledged without changes ({reason})")
    return state

from typing import Any, Dict

from langgraph.graph import StateGraph, START, END
from loguru import logger
from sqlalchemy.orm import Session

from graph.state import PaymentState
from graph.nodes.record import record
from graph.nodes.match_link import match_link
from graph.nodes.match_lead import match_lead
from graph.nodes.apply_payment import apply_payment
from graph.nodes.notify import notify
from graph.nodes.acknowledge import acknowledge
from tools.background import Detached
from tools.deps import Services

def build_payment_workflow():
    """Build the payment webhook reconciliation workflow."""
    workflow = StateGraph(PaymentState)

    # Add nodes
    workflow.add_node("record", record)
    workflow.add_node("match_link", match_link)
    workflow.add_node("match_lead", match_lead)
    workflow.add_node("apply_payment", apply_payment)
    workflow.add_node("notify", notify)
    workflow.add_node("acknowledge", acknowledge)

    workflow.add_edge(START, "record")

    def after_record(state: PaymentState) -> str:
        if state.get("duplicate"):
            return "end"
        return "match_link"

    def after_match(next_node: str):
        def decide(state: PaymentState) -> str:
            if state.get("skip_reason"):
                logger.info(f"Event {state['event_id']} not handled: {state['skip_reason']}")
                return "acknowledge"
            return next_node
        return decide

    workflow.add_conditional_edges(
        "record",
        after_record,
        {"match_link": "match_link", "end": END}
    )
    workflow.add_conditional_edges(
        "match_link",
        after_match("match_lead"),
        {"match_lead": "match_lead", "acknowledge": "acknowledge"}
    )
    workflow.add_conditional_edges(
        "match_lead",
        after_match("apply_payment"),
        {"apply_payment": "apply_payment", "acknowledge": "acknowledge"}
    )

    workflow.add_edge("apply_payment", "notify")
    workflow.add_edge("notify", END)
    workflow.add_edge("acknowledge", END)

    return workflow.compile()

payment_graph = build_payment_workflow()

def process_payment_event(
    event: Dict[str, Any],
    db: Session,
    services: Services,
    detached: Detached,
) -> PaymentState:
    """
    Run a verified provider event through the reconciliation workflow.

    Returns:
        Final state; `duplicate` and `handled` describe the outcome.
    Raises:
        Whatever a node raised after the ledger insert, so the delivery is retried.
    """
    initial_state: PaymentState = {
        "event": event,
        "event_id": event["id"],
        "event_type": event.get("type") or "",
        "handled": False,
        "notifications": [],
    }
    return payment_graph.invoke(
        initial_state,
        config={"configurable": {"db": db, "services": services, "detached": detached}},
    )

from langchain_core.runnables import RunnableConfig
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from tools.ledger import EventLedger

def record(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """Dedup gate: record the event id, or recognise a redelivery."""
    db, _, _ = runtime(config)
    ledger = EventLedger(db)
    event_id = state["event_id"]

    state["duplicate"] = False
    state["resumed"] = False

    if ledger.record_if_new(event_id, state.get("event_type", "")):
        return state

    if ledger.is_processed(event_id):
        logger.info(f"Duplicate webhook delivery ignored: {event_id}")
        state["duplicate"] = True
    else:
        # An earlier delivery stopped before committing; pick the work back up
        logger.warning(f"Resuming unfinished webhook event: {event_id}")
        state["resumed"] = True

    return state

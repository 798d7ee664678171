from langchain_core.runnables import RunnableConfig
from loguru import logger

from graph.context import runtime
from graph.state import PaymentState
from models import LinkType
from tools.templates import payment_confirm_email

def notify(state: PaymentState, config: RunnableConfig) -> PaymentState:
    """Queue the payer confirmation email and the operator chat message."""
    _, services, detached = runtime(config)
    payment = state["payment"]
    lead = state["lead"]

    subject, body = payment_confirm_email(
        lead["business_name"],
        is_deposit=payment["link_type"] == LinkType.DEPOSIT,
    )
    detached.submit(services.mailer.send_best_effort, lead["email"], subject, body)
    state.setdefault("notifications", []).append("payment_confirm_email")

    detached.submit(services.chat.send_payment_notification, payment)
    state["notifications"].append("payment_chat")

    logger.info(f"Payment notifications queued for lead #{lead['id']}")
    return state

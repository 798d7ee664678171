from typing import TypedDict, Optional, List, Dict, Any

class PaymentState(TypedDict, total=False):
    """State shape for the payment webhook workflow."""
    event: Dict[str, Any]            # verified provider event envelope
    event_id: str
    event_type: str
    duplicate: bool                  # event already fully processed
    resumed: bool                    # event seen before but never finished
    handled: bool                    # a payment was applied
    skip_reason: str                 # why the event was acknowledged without changes
    payment_link_id: Optional[str]
    customer_email: Optional[str]
    link: Dict[str, Any]             # tier, link_type, price_cents
    lead: Dict[str, Any]             # id, business_name, email, category
    payment: Dict[str, Any]          # applied transition, for notifications
    notifications: List[str]         # detached jobs submitted

"""Proposal, follow-up and confirmation email templates."""
from typing import Any, Dict, Tuple

from config import BRAND_NAME, DEFAULT_TIER, TIER_DETAILS


def _tier_details(category: str) -> Dict[str, Any]:
    return TIER_DETAILS.get(category or DEFAULT_TIER, TIER_DETAILS[DEFAULT_TIER])


def contact_ack_email(name: str) -> Tuple[str, str]:
    subject = f"We got your message - {BRAND_NAME}"
    body = (
        f"Hi {name},\n\n"
        f"Thanks for reaching out to {BRAND_NAME}! We've received your inquiry and will follow up "
        "within 24 hours with a personalized proposal.\n\n"
        "In the meantime, if you have any questions, just reply to this email.\n\n"
        f"- {BRAND_NAME}"
    )
    return subject, body


def proposal_email(business_name: str, category: str, payment_url: str) -> Tuple[str, str]:
    details = _tier_details(category)
    outcomes = "\n".join(f"  - {outcome}" for outcome in details["outcomes"])

    subject = f"Your {details['name']} Package - {BRAND_NAME}"
    body = f"""Hi {business_name},

Thanks for reaching out to {BRAND_NAME}. Based on what you shared, here's what we can deliver:

{details['name']} Package - ${details['price']}
{'-' * 40}

What's included:
{outcomes}

Timeline: {details['timeline']}
Revisions: {details['revisions']}
Investment: ${details['price']} ({details['upfront']})

Ready to get started? Lock in your spot here:
{payment_url}

Once payment is confirmed, we'll send you an onboarding form within 24 hours to kick things off.

Questions? Just reply to this email.

- {BRAND_NAME}"""
    return subject, body


def follow_up_email(business_name: str, category: str, payment_url: str) -> Tuple[str, str]:
    details = _tier_details(category)

    subject = f"Quick follow-up - {details['name']} Package"
    body = f"""Hi {business_name},

Just following up on the {details['name']} Package proposal we sent yesterday.

We're currently taking on a limited number of projects this month, and I wanted to make sure your spot is still available.

Here's the link to get started:
{payment_url}

If you have any questions or want to adjust the scope, just reply here. Happy to chat.

- {BRAND_NAME}"""
    return subject, body


def payment_confirm_email(business_name: str, is_deposit: bool) -> Tuple[str, str]:
    if is_deposit:
        subject = "Deposit received - you're locked in!"
        next_steps = """Your deposit has been received. Here's what happens next:

  1. You'll receive an onboarding form within 24 hours
  2. We'll schedule a kickoff call
  3. Work begins immediately after onboarding

The remaining balance will be due upon project completion."""
    else:
        subject = "Payment confirmed - let's get started!"
        next_steps = """Your payment has been confirmed. Here's what happens next:

  1. You'll receive an onboarding form within 24 hours
  2. We'll schedule a kickoff call
  3. Work begins immediately after onboarding"""

    body = f"""Hi {business_name},

{next_steps}

We're excited to work with you. If you have any questions in the meantime, just reply to this email.

- {BRAND_NAME}"""
    return subject, body

"""
Central configuration for the lead & payment service.
Environment-driven settings plus the fixed business rules.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

BRAND_NAME = "TechHive Labs"

# --- Service tiers ---
TIER_DETAILS = {
    "starter": {
        "name": "Starter",
        "price": 500,
        "price_cents": 50000,
        "upfront": "100% upfront",
        "timeline": "3-5 business days",
        "revisions": "1 revision round",
        "outcomes": [
            "Professional website audit & redesign recommendations",
            "Core SEO setup (meta tags, schema, sitemap)",
            "Mobile-responsive optimization",
            "Performance baseline report",
        ],
    },
    "pro": {
        "name": "Pro",
        "price": 1500,
        "price_cents": 150000,
        "upfront": "50% deposit ($750)",
        "timeline": "7-14 business days",
        "revisions": "2 revision rounds",
        "outcomes": [
            "Full website redesign or build",
            "Advanced SEO + local search optimization",
            "Contact form + lead capture setup",
            "Analytics dashboard integration",
            "Social media profile optimization",
        ],
    },
    "business": {
        "name": "Business",
        "price": 3000,
        "price_cents": 300000,
        "upfront": "50% deposit ($1,500)",
        "timeline": "14-21 business days",
        "revisions": "3 revision rounds + priority support",
        "outcomes": [
            "Complete digital presence overhaul",
            "Custom website build with CMS",
            "Full SEO campaign (on-page + technical + local)",
            "Email marketing setup + automation",
            "Social media strategy + content calendar",
            "Monthly performance reporting (3 months)",
        ],
    },
}

DEFAULT_TIER = "pro"

# --- Rate limits (sliding window) ---
RATE_LIMITS = {
    "contact_form": {"max": 5, "window_ms": 60 * 60 * 1000},
    "proposal_send": {"max": 20, "window_ms": 60 * 60 * 1000},
}

# --- Lead intake ---
CONTACT_DEDUPE_DAYS = 7
INBOUND_LEAD_SCORE = 85
MAX_FIELD_LENGTH = 1000

# --- Webhook signature ---
SIGNATURE_TOLERANCE_SECONDS = 300
SIGNATURE_MAX_FUTURE_SECONDS = 60

# --- Leads listing ---
LEADS_PAGE_LIMIT = 100


@dataclass
class Settings:
    """Runtime settings, built once and handed to every component."""

    database_url: str = "sqlite:///./leads.db"
    api_secret: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    sendgrid_api_key: Optional[str] = None
    mail_from_email: str = "techhiveuptime@gmail.com"
    mail_from_name: str = BRAND_NAME
    slack_webhook_url: Optional[str] = None
    redis_url: Optional[str] = None
    log_file: Optional[str] = "logs/app.log"
    follow_up_after_hours: int = 24
    follow_up_cap: int = 20

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            api_secret=os.getenv("API_SECRET"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
            mail_from_email=os.getenv("MAIL_FROM_EMAIL", cls.mail_from_email),
            mail_from_name=os.getenv("MAIL_FROM_NAME", cls.mail_from_name),
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL"),
            redis_url=os.getenv("REDIS_URL"),
            log_file=os.getenv("LOG_FILE", cls.log_file) or None,
            follow_up_after_hours=int(os.getenv("FOLLOW_UP_AFTER_HOURS", "24")),
            follow_up_cap=int(os.getenv("FOLLOW_UP_CAP", "20")),
        )

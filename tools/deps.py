from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config import Settings
from database import make_engine, make_session_factory
from tools.mailer import SendGridMailer
from tools.rate_limit import RateLimiter
from tools.slack import SlackNotifier


@dataclass
class Services:
    """Everything a request handler needs, constructed once from Settings."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    mailer: SendGridMailer
    chat: SlackNotifier
    limiter: RateLimiter


def build_services(settings: Settings) -> Services:
    engine = make_engine(settings.database_url)
    return Services(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        mailer=SendGridMailer(settings.sendgrid_api_key, settings.mail_from_email, settings.mail_from_name),
        chat=SlackNotifier(settings.slack_webhook_url),
        limiter=RateLimiter(settings.redis_url),
    )

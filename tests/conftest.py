import hashlib
import hmac
import os
import sys
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# No file sink while testing
os.environ["LOG_FILE"] = ""

from app import app, get_services
from config import Settings
from database import make_session_factory
from models import Base, Lead, PaymentLink, ReviewStatus, Stage, utcnow
from tools.deps import Services
from tools.mailer import SendResult
from tools.rate_limit import RateLimiter

API_SECRET = "test-operator-secret"
WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def services(engine):
    mailer = MagicMock()
    mailer.send.return_value = SendResult(success=True, message_id="msg_123", status_code=202)
    return Services(
        settings=Settings(
            database_url="sqlite://",
            api_secret=API_SECRET,
            stripe_webhook_secret=WEBHOOK_SECRET,
            log_file=None,
        ),
        engine=engine,
        session_factory=make_session_factory(engine),
        mailer=mailer,
        chat=MagicMock(),
        limiter=RateLimiter(None),
    )


@pytest.fixture
def db(services):
    session = services.session_factory()
    yield session
    session.close()


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_SECRET}"}


@pytest.fixture
def sign():
    def _sign(body: bytes, timestamp=None, secret: str = WEBHOOK_SECRET) -> str:
        ts = str(int(time.time()) if timestamp is None else timestamp)
        digest = hmac.new(secret.encode(), f"{ts}.".encode() + body, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    return _sign


@pytest.fixture
def make_lead(db):
    def _make(email="a@b.com", age_days=0, **fields):
        created = utcnow() - timedelta(days=age_days)
        values = {
            "business_name": "Acme Bakery",
            "email": email,
            "category": "pro",
            "message": "Need a website",
            "score": 85,
            "stage": Stage.NEW,
            "review_status": ReviewStatus.PENDING_REVIEW,
            "created_at": created,
            "updated_at": created,
        }
        values.update(fields)
        lead = Lead(**values)
        db.add(lead)
        db.commit()
        return lead

    return _make


@pytest.fixture
def make_link(db):
    def _make(stripe_link_id="plink_pro_deposit", tier="pro", link_type="deposit", price_cents=75000, active=True):
        link = PaymentLink(
            tier=tier,
            link_type=link_type,
            stripe_link_id=stripe_link_id,
            stripe_url=f"https://buy.stripe.com/{stripe_link_id}",
            price_cents=price_cents,
            active=active,
        )
        db.add(link)
        db.commit()
        return link

    return _make

import json
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from config import Settings
from database import init_db
from graph.workflow import process_payment_event
from models import Lead, ReviewStatus
from tools.auth import is_authorized
from tools.background import Detached
from tools.deps import Services, build_services
from tools.errors import ApiError, Unauthorized, ValidationError
from tools.leads import list_leads, review_lead, submit_contact
from tools.proposals import run_follow_ups, send_proposal_checked, send_proposal_in_background
from tools.responses import err, ok
from tools.signature import verify_signature

settings = Settings.from_env()

# Configure logging
if settings.log_file:
    logger.add(settings.log_file, rotation="1 day", retention="7 days", level="INFO")

services = build_services(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(services.engine)
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Lead & Payment Automation",
    description="Contact intake, proposal workflow and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)


# --- Dependencies ---
def get_services() -> Services:
    return services


def get_db(services: Services = Depends(get_services)):
    db = services.session_factory()
    try:
        yield db
    finally:
        db.close()


def require_operator(
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> None:
    if not is_authorized(authorization, services.settings.api_secret):
        raise Unauthorized()


async def read_json(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    return payload


# --- Public endpoints ---
@app.post("/contact")
async def contact(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """
    Inbound contact form.

    Expected payload:
    {
        "name": "Jane's Bakery",
        "email": "jane@bakery.com",
        "message": "We need a new website",
        "category": "pro"
    }
    """
    payload = await read_json(request)
    logger.info(f"Received contact submission: {payload.get('email', 'unknown')}")
    return ok(await run_in_threadpool(submit_contact, db, services, Detached(background_tasks), payload))


@app.post("/payment-webhook")
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """Payment provider webhook: verify, dedup, reconcile."""
    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        return JSONResponse(status_code=400, content={"error": "Missing stripe-signature header"})

    secret = services.settings.stripe_webhook_secret
    if not secret:
        # Server misconfiguration: a 5xx keeps the provider retrying until it is fixed
        logger.error("STRIPE_WEBHOOK_SECRET not configured, cannot verify webhook")
        return JSONResponse(status_code=500, content={"error": "Webhook secret not configured"})

    verification = await run_in_threadpool(verify_signature, raw_body, signature, secret)
    if not verification.valid:
        logger.error(f"Webhook signature verification failed: {verification.error}")
        return JSONResponse(status_code=401, content={"error": verification.error})

    try:
        event = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON payload"})
    if not isinstance(event, dict) or not event.get("id"):
        return JSONResponse(status_code=400, content={"error": "Missing event id"})

    try:
        result = await run_in_threadpool(process_payment_event, event, db, services, Detached(background_tasks))
    except Exception as e:
        logger.error(f"Webhook processing failed for {event.get('id')}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    if result.get("duplicate"):
        return JSONResponse(status_code=200, content={"received": True, "duplicate": True})

    return JSONResponse(status_code=200, content={"received": True, "handled": bool(result.get("handled"))})


@app.get("/health")
def health(db: Session = Depends(get_db)):
    """Health check endpoint."""
    try:
        lead_count = db.query(func.count(Lead.id)).scalar() or 0
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return err(f"Unhealthy: {e}", 503)

    return ok({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
        "db": {"connected": True, "lead_count": lead_count},
    })


# --- Operator endpoints ---
@app.get("/leads", dependencies=[Depends(require_operator)])
def get_leads(
    stage: Optional[str] = None,
    review_status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List the most recent leads."""
    return ok(list_leads(db, stage=stage, review_status=review_status))


@app.patch("/leads/{lead_id}", dependencies=[Depends(require_operator)])
async def patch_lead(
    lead_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """Record a review decision; approval sends the proposal in the background."""
    payload = await read_json(request)
    lead = await run_in_threadpool(review_lead, db, lead_id, payload)

    if lead.review_status == ReviewStatus.APPROVED:
        Detached(background_tasks).submit(send_proposal_in_background, services, lead.id)

    return ok({"lead": lead.to_dict()})


@app.post("/proposals/send", dependencies=[Depends(require_operator)])
async def proposals_send(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """Send the proposal email for an approved lead."""
    payload = await read_json(request)
    lead_id = payload.get("lead_id")
    return ok(await run_in_threadpool(send_proposal_checked, db, services, Detached(background_tasks), lead_id))


@app.post("/follow-up", dependencies=[Depends(require_operator)])
def follow_up(
    services: Services = Depends(get_services),
    db: Session = Depends(get_db),
):
    """Scheduled sweep: one nudge email per unpaid proposal past the threshold."""
    return ok(run_follow_ups(db, services))


# Error handlers
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return err(exc.message, exc.status_code)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
    return err(str(exc) or "Internal server error", 500)


if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Lead & Payment Automation")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )

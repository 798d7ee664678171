import json
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from loguru import logger

from models import ActivityLog


def log_activity(db: Session, action: str, details: str, metadata: Optional[Dict[str, Any]] = None) -> None:
    """
    Append a row to the activity audit trail. Never raises.

    Call it with no pending writes on the session: it commits on its own.
    """
    try:
        db.add(ActivityLog(
            action=action,
            details=details,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to log activity '{action}': {e}")

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError
from pymongo.errors import PyMongoError
import structlog

from auth import require_admin
from database import create_document, get_documents
from errors import AppError, ok
from schemas import ActivityLog

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def log_activity(action_type: str, entity_type: str, message: str, actor: Dict[str, Any],
                 entity_id: Optional[str] = None, metadata: Optional[dict] = None) -> Optional[str]:
    """Append an audit entry. A failed write is logged and never undoes the change being audited."""
    try:
        entry = ActivityLog(
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            message=message,
            metadata=metadata,
            **actor,
        )
        return create_document("activitylog", entry)
    except (ValidationError, PyMongoError, AppError):
        logger.exception("activity_log_failed", action_type=action_type, entity_type=entity_type, entity_id=entity_id)
        return None


def list_recent_activity(limit: int = 30) -> list:
    safe_limit = min(max(limit, 1), 100)
    return get_documents("activitylog", limit=safe_limit, sort=[("created_at", -1)])


@router.get("/activity-logs")
def activity_logs(limit: int = Query(30), _: dict = Depends(require_admin)):
    logs = list_recent_activity(limit)
    return ok(logs, count=len(logs))

"""Audit trail of business events stored in ``activity_logs``."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db import get_session
from ..models import ActivityLog

logger = logging.getLogger(__name__)


def add_activity(
    db,
    action: str,
    entity_type: str,
    entity_name: Optional[str] = None,
    details: Optional[str] = None,
    user: Optional[str] = None,
) -> ActivityLog:
    """Queue an activity row in an existing session."""
    entry = ActivityLog(
        action=action,
        entity_type=entity_type,
        entity_name=entity_name,
        details=details,
        user=user or "System",
        timestamp=datetime.now(),
    )
    db.add(entry)
    return entry


def log_activity(
    action: str,
    entity_type: str,
    entity_name: Optional[str] = None,
    details: Optional[str] = None,
    user: Optional[str] = None,
) -> bool:
    """Record an activity in its own session.

    Failures are logged and swallowed so auditing never breaks the
    operation being audited.
    """
    try:
        with get_session() as db:
            add_activity(db, action, entity_type, entity_name, details, user)
    except SQLAlchemyError as exc:
        logger.error("Failed to record activity %s: %s", action, exc)
        return False
    logger.info("%s %s %s", action, entity_type, entity_name or "")
    return True


def recent_activities(limit: int = 5) -> List[ActivityLog]:
    with get_session() as db:
        return (
            db.query(ActivityLog)
            .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .limit(limit)
            .all()
        )


__all__ = ["add_activity", "log_activity", "recent_activities"]

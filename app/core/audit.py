import uuid
from typing import Any, Dict, Optional
from loguru import logger
from sqlmodel import Session

from app.db.core import engine
from app.db.schema import Activity, ActivityAction


def record_activity(
    user_id: uuid.UUID,
    action: ActivityAction,
    description: str,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> Optional[Activity]:
    """
    Background worker.
    Opens its OWN session on the global engine, so the request session may
    already be closed. Any failure is logged and swallowed; the write that
    scheduled this never sees it.
    """
    try:
        with Session(engine) as session:
            entry = Activity(
                user_id=user_id,
                action=action,
                description=description,
                details=details or {},
                ip_address=ip_address,
                user_agent=user_agent
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)
            return entry

    except Exception as e:
        logger.error(
            f"Activity recording failed ({getattr(action, 'value', action)}): {e}")
        return None

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy import text
from sqlmodel import Session

from app.core.config import settings
from app.db.core import get_session

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK)
def index():
    return {
        "status": "API is running",
        "service": settings.app_name,
        "defect_rate_threshold": settings.defect_rate_threshold
    }


@router.get("/readiness", status_code=status.HTTP_200_OK)
def readiness_check(session: Session = Depends(get_session)):
    """Fails with 503 when the database cannot answer a trivial query."""
    try:
        session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database readiness check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready"
        )

    return {"status": "ready", "database": "online"}

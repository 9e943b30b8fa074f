from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from app.core.dependencies import get_current_user, get_alert_service
from app.db.schema import User, AlertType
from app.models.alert import AlertRead
from app.services.alert import AlertService

router = APIRouter()


@router.get("/", response_model=List[AlertRead], summary="List Alerts")
def list_alerts(
    type: Optional[AlertType] = None,
    limit: int = Query(default=50, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service)
):
    """Quality alerts raised by critical defects and defect-rate breaches, newest first."""
    return service.list_alerts(alert_type=type, limit=limit)

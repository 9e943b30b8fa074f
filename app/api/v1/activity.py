from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status

from app.core.dependencies import get_current_user, get_activity_service
from app.db.schema import User
from app.models.activity import ActivityCreate, ActivityListResponse
from app.services.activity import ActivityService

router = APIRouter()


@router.get(
    "/",
    response_model=ActivityListResponse,
    summary="Recent Activity",
    description="Paginated audit trail, newest first."
)
def list_activities(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ActivityService = Depends(get_activity_service)
):
    return service.list_recent(page=page, limit=limit)


@router.post("/", status_code=status.HTTP_202_ACCEPTED, summary="Log Activity")
def log_activity(
    data: ActivityCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: ActivityService = Depends(get_activity_service)
):
    return service.log_activity(
        current_user,
        data,
        background_tasks,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )

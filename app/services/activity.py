import math
from typing import Optional
from fastapi import BackgroundTasks
from sqlmodel import Session, select, func

from app.core.audit import record_activity
from app.db.schema import Activity, User
from app.models.activity import (
    ActivityCreate, ActivityListResponse, ActivityPagination, ActivityRead
)


class ActivityService:
    def __init__(self, session: Session):
        self.session = session

    def list_recent(self, page: int = 1, limit: int = 10) -> ActivityListResponse:
        """Newest first."""
        total = self.session.exec(
            select(func.count()).select_from(Activity)).one()

        activities = self.session.exec(
            select(Activity)
            .order_by(Activity.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return ActivityListResponse(
            data=[ActivityRead.model_validate(a) for a in activities],
            pagination=ActivityPagination(
                total=total,
                page=page,
                pages=math.ceil(total / limit) if limit else 0,
                limit=limit
            )
        )

    def log_activity(
        self,
        user: User,
        data: ActivityCreate,
        background_tasks: BackgroundTasks,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> dict:
        """
        Client-reported activity (e.g. report exports). Recorded
        best-effort like every other activity.
        """
        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=data.action,
            description=data.description,
            details=data.details,
            ip_address=ip_address,
            user_agent=user_agent
        )
        return {"message": "Activity accepted."}

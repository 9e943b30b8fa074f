from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from app.db.schema import ActivityAction
from app.models.references import UserRef


class ActivityCreate(SQLModel):
    action: ActivityAction
    description: str = Field(min_length=1, max_length=500)
    details: Dict[str, Any] = {}


class ActivityRead(SQLModel):
    id: UUID
    user_id: UUID
    action: ActivityAction
    description: str
    details: Dict[str, Any] = {}
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    user: Optional[UserRef] = None


class ActivityPagination(SQLModel):
    total: int
    page: int
    pages: int
    limit: int


class ActivityListResponse(SQLModel):
    data: List[ActivityRead]
    pagination: ActivityPagination

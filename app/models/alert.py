from typing import Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel

from app.db.schema import AlertType


class AlertRead(SQLModel):
    id: UUID
    type: AlertType
    message: str
    inspection_id: Optional[UUID] = None
    defect_id: Optional[UUID] = None
    batch_number: Optional[str] = None
    defect_rate: Optional[float] = None
    threshold: Optional[float] = None
    created_at: datetime

from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlmodel import SQLModel

from app.db.schema import InspectionStatus, UserRole


class UserRef(SQLModel):
    """Display subset of a user, embedded in other read models."""
    id: UUID
    name: str
    role: UserRole
    department: Optional[str] = None


class ProductRef(SQLModel):
    id: UUID
    name: str
    category: Optional[str] = None


class InspectionRef(SQLModel):
    id: UUID
    batch_number: str
    date: datetime
    status: InspectionStatus
    total_inspected: int


class PageRef(SQLModel):
    page: int
    limit: int


class Pagination(SQLModel):
    next: Optional[PageRef] = None
    prev: Optional[PageRef] = None

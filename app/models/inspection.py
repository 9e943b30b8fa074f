from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

from app.db.schema import InspectionStatus
from app.models.defect import DefectRead
from app.models.references import ProductRef, UserRef


class InspectionCreate(SQLModel):
    product_id: UUID
    batch_number: str = Field(min_length=1, max_length=100,
                              description="Production lot. Example: 'B-2024-0042'")
    total_inspected: int = Field(ge=1, description="Units checked in the batch.")
    notes: Optional[str] = Field(default=None, max_length=2000)
    date: Optional[datetime] = Field(
        default=None, description="Defaults to now.")


class InspectionUpdate(SQLModel):
    """
    Editable descriptive fields only. Status and the defect count belong to
    the lifecycle (complete_inspection) and are rejected here.
    """
    model_config = ConfigDict(extra="forbid")

    batch_number: Optional[str] = Field(
        default=None, min_length=1, max_length=100)
    total_inspected: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = Field(default=None, max_length=2000)
    date: Optional[datetime] = None


class InspectionImage(SQLModel):
    url: str
    public_id: str
    defects_detected: bool = False
    ai_confidence: float = 0.0


class InspectionRead(SQLModel):
    id: UUID
    product_id: UUID
    inspector_id: UUID
    batch_number: str
    date: datetime
    notes: Optional[str] = None
    total_inspected: int
    defects_found: int
    status: InspectionStatus
    images: List[InspectionImage] = []
    created_at: datetime
    updated_at: datetime

    product: Optional[ProductRef] = None
    inspector: Optional[UserRef] = None


class InspectionCompletionRead(InspectionRead):
    defect_rate: float = Field(description="Defects per hundred units, 2dp.")
    rate_alert_triggered: bool


class InspectionDetailRead(SQLModel):
    inspection: InspectionRead
    defects: List[DefectRead]


class InspectionPagination(SQLModel):
    total: int
    page: int
    pages: int


class InspectionListResponse(SQLModel):
    count: int
    pagination: InspectionPagination
    data: List[InspectionRead]

from typing import Any, Dict, List, Optional, Union
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from app.db.schema import DefectSeverity, DefectStatus, DetectionMethod
from app.models.references import (
    InspectionRef, ProductRef, UserRef, Pagination
)


class DefectCreate(SQLModel):
    """
    Payload for logging a defect against an inspection.
    `measurements` may arrive as an object or as a JSON-encoded string
    (multipart clients); a string that does not decode is dropped.
    """
    inspection_id: UUID
    product_id: UUID
    type: str = Field(min_length=1, max_length=100,
                      description="Defect category. Example: 'scratch'")
    severity: DefectSeverity
    description: str = Field(default="", max_length=2000)
    location: Optional[str] = Field(default=None, max_length=255)
    root_cause: Optional[str] = Field(
        default=None, max_length=255,
        description="Defaults to 'unknown' when omitted.")
    measurements: Optional[Union[Dict[str, Any], str]] = None
    status: DefectStatus = DefectStatus.OPEN
    detected_by: DetectionMethod = DetectionMethod.MANUAL
    ai_confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class DefectUpdate(SQLModel):
    type: Optional[str] = Field(default=None, min_length=1, max_length=100)
    severity: Optional[DefectSeverity] = None
    description: Optional[str] = Field(default=None, max_length=2000)
    location: Optional[str] = Field(default=None, max_length=255)
    root_cause: Optional[str] = Field(default=None, max_length=255)
    measurements: Optional[Union[Dict[str, Any], str]] = None
    status: Optional[DefectStatus] = None
    detected_by: Optional[DetectionMethod] = None
    ai_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    resolution_notes: Optional[str] = Field(default=None, max_length=2000)


class DefectResolve(SQLModel):
    resolution_notes: Optional[str] = Field(default=None, max_length=2000)


class DefectRead(SQLModel):
    id: UUID
    inspection_id: UUID
    product_id: UUID
    type: str
    severity: DefectSeverity
    description: str
    location: Optional[str] = None
    root_cause: str
    measurements: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    status: DefectStatus
    detected_by: DetectionMethod
    ai_confidence: float
    reported_by_id: UUID
    resolved_by_id: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    # Resolved references
    inspection: Optional[InspectionRef] = None
    product: Optional[ProductRef] = None
    reporter: Optional[UserRef] = None
    resolver: Optional[UserRef] = None


class DefectListResponse(SQLModel):
    count: int
    total: int
    pagination: Pagination
    data: List[DefectRead]


class BulkDefectCreate(SQLModel):
    """
    Items are validated one by one inside the service, so a malformed item
    becomes a per-index error instead of rejecting the whole batch.
    """
    defects: List[Any] = Field(min_length=1)


class BulkItemError(SQLModel):
    index: int
    error: str


class BulkDefectResult(SQLModel):
    created_count: int
    error_count: int
    errors: List[BulkItemError] = []
    data: List[DefectRead] = []

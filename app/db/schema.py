from typing import Optional, List, Dict, Any
from datetime import datetime
import uuid
from sqlmodel import SQLModel, Field, Relationship, JSON
from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    INSPECTOR = "inspector"


class InspectionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"  # Closed with zero defects
    FAILED = "failed"        # Closed with at least one defect


class DefectSeverity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class DefectStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class DetectionMethod(str, Enum):
    MANUAL = "manual"
    AUTOMATED = "automated"


class ActivityAction(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    INSPECTION_CREATED = "inspection_created"
    INSPECTION_UPDATED = "inspection_updated"
    INSPECTION_COMPLETED = "inspection_completed"
    INSPECTION_DELETED = "inspection_deleted"
    PRODUCT_CREATED = "product_created"
    PRODUCT_UPDATED = "product_updated"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    REPORT_GENERATED = "report_generated"
    DEFECT_LOGGED = "defect_logged"
    DEFECT_UPDATED = "defect_updated"
    DEFECT_RESOLVED = "defect_resolved"
    DEFECT_DELETED = "defect_deleted"
    BATCH_PROCESSED = "batch_processed"
    PROFILE_UPDATED = "profile_updated"


class AlertType(str, Enum):
    CRITICAL_DEFECT = "critical_defect"
    DEFECT_RATE = "defect_rate"


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps shared by every table.
    All values are naive UTC.
    """
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        index=True,
        description="UTC timestamp when this record was first persisted. Example: '2024-03-02 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
        description="UTC timestamp of the last modification. Updates automatically."
    )


class User(TimestampMixin, SQLModel, table=True):
    """
    A person acting in the QC workflow.
    Identity and credentials are owned by the external auth service; this
    table only mirrors what the core needs for authorization and display.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the user."
    )
    email: str = Field(
        unique=True,
        index=True,
        description="Login email address. Example: 'jane.doe@plant.example'"
    )
    name: str = Field(
        description="Display name. Example: 'Jane Doe'"
    )
    role: UserRole = Field(
        default=UserRole.INSPECTOR,
        description="Coarse role used by the capability checks. Example: 'manager'"
    )
    department: Optional[str] = Field(
        default=None,
        description="Organisational unit. Example: 'Assembly Line 2'"
    )
    is_active: bool = Field(
        default=True,
        description="If False, the user is rejected at the API boundary."
    )


class Product(TimestampMixin, SQLModel, table=True):
    """
    A manufactured item that batches are produced for.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the product."
    )
    name: str = Field(
        index=True,
        description="Product name. Example: 'Aluminium Housing A12'"
    )
    category: Optional[str] = Field(
        default=None,
        description="Product family. Example: 'enclosures'"
    )
    description: Optional[str] = Field(default=None)
    image_url: Optional[str] = Field(default=None)


class Inspection(TimestampMixin, SQLModel, table=True):
    """
    A quality check performed against one production batch of a product.

    `defects_found` is always the live number of Defect rows that reference
    this inspection; every write path re-counts it under a row lock.
    `status` only leaves PENDING through InspectionService.complete_inspection.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the inspection."
    )
    product_id: uuid.UUID = Field(
        foreign_key="product.id",
        index=True,
        description="The product whose batch is being inspected."
    )
    inspector_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The user who opened the inspection."
    )
    batch_number: str = Field(
        index=True,
        description="Production lot identifier. Example: 'B-2024-0042'"
    )
    date: datetime = Field(
        default_factory=datetime.utcnow,
        index=True,
        description="When the inspection took place (UTC)."
    )
    notes: Optional[str] = Field(default=None)
    total_inspected: int = Field(
        ge=1,
        description="Units checked in this batch. Example: 100"
    )
    defects_found: int = Field(
        default=0,
        ge=0,
        description="Live count of defects referencing this inspection."
    )
    status: InspectionStatus = Field(
        default=InspectionStatus.PENDING,
        index=True,
        description="Lifecycle state. Example: 'failed'"
    )
    images: List[Dict[str, Any]] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Ordered attachments: [{'url', 'public_id', 'defects_detected', 'ai_confidence'}]"
    )

    product: Optional[Product] = Relationship()
    inspector: Optional[User] = Relationship()
    defects: List["Defect"] = Relationship(back_populates="inspection")


class Defect(TimestampMixin, SQLModel, table=True):
    """
    A single quality issue found during an inspection.
    Independently addressable so it can be filtered and aggregated on its own.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the defect."
    )
    inspection_id: uuid.UUID = Field(
        foreign_key="inspection.id",
        index=True,
        description="The inspection during which this defect was found."
    )
    product_id: uuid.UUID = Field(
        foreign_key="product.id",
        index=True,
        description="The affected product."
    )

    type: str = Field(
        index=True,
        description="Defect category. Example: 'scratch'"
    )
    severity: DefectSeverity = Field(
        index=True,
        description="Urgency tier. 'critical' raises an alert immediately."
    )
    description: str = Field(default="")
    location: Optional[str] = Field(
        default=None,
        description="Where on the unit the defect sits. Example: 'top-left corner'"
    )
    root_cause: str = Field(
        default="unknown",
        index=True,
        description="Attributed cause. Example: 'tooling wear'"
    )
    measurements: Optional[Dict[str, Any]] = Field(
        default=None,
        sa_type=JSON,
        description="Structured measurement data. Example: {'depth_mm': 0.4}"
    )
    image_url: Optional[str] = Field(default=None)
    image_public_id: Optional[str] = Field(
        default=None,
        description="Image store key used to delete the image with the defect."
    )
    status: DefectStatus = Field(
        default=DefectStatus.OPEN,
        index=True
    )
    detected_by: DetectionMethod = Field(default=DetectionMethod.MANUAL)
    ai_confidence: float = Field(
        default=0.0,
        description="Detector confidence in [0, 1]; 0 for manual findings."
    )

    reported_by_id: uuid.UUID = Field(
        foreign_key="user.id",
        description="The user who logged the defect."
    )
    resolved_by_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="user.id",
        description="Set exactly once, when the defect is resolved."
    )
    resolved_at: Optional[datetime] = Field(default=None)
    resolution_notes: Optional[str] = Field(default=None)

    inspection: Optional[Inspection] = Relationship(back_populates="defects")
    product: Optional[Product] = Relationship()
    reporter: Optional[User] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Defect.reported_by_id]"}
    )
    resolver: Optional[User] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Defect.resolved_by_id]"}
    )


class Activity(SQLModel, table=True):
    """
    Append-only audit trail entry. Never updated or deleted by the core.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    user_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The acting user."
    )
    action: ActivityAction = Field(index=True)
    description: str = Field(
        description="Human readable summary. Example: 'Created inspection for batch B-42'"
    )
    details: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON,
        description="Free-form context, e.g. {'inspection_id': '...', 'batch_number': 'B-42'}"
    )
    ip_address: Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        index=True
    )

    user: Optional[User] = Relationship()


class Alert(SQLModel, table=True):
    """
    A quality alert raised by the default alert sink.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True
    )
    type: AlertType = Field(index=True)
    message: str
    inspection_id: Optional[uuid.UUID] = Field(
        default=None,
        index=True,
        description="Plain reference; alerts outlive deleted inspections."
    )
    defect_id: Optional[uuid.UUID] = Field(default=None)
    batch_number: Optional[str] = Field(default=None)
    defect_rate: Optional[float] = Field(default=None)
    threshold: Optional[float] = Field(default=None)
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        index=True
    )

from typing import Any, Dict, List, Optional, Tuple
import json
import uuid
from datetime import datetime

from fastapi import BackgroundTasks, HTTPException, UploadFile, status
from loguru import logger
from pydantic import ValidationError
from sqlmodel import Session, select, func

from app.core.alerts import (
    AlertSink, PersistentAlertSink, is_critical, dispatch_critical_defect
)
from app.core.audit import record_activity
from app.core.permissions import can_delete
from app.db.schema import (
    User, Product, Defect, DefectStatus, DefectSeverity, ActivityAction
)
from app.models.defect import (
    DefectCreate, DefectUpdate, DefectRead, DefectListResponse,
    BulkDefectCreate, BulkDefectResult, BulkItemError
)
from app.models.inspection import InspectionRead
from app.models.references import Pagination, PageRef
from app.services.inspection import lock_inspection, sync_defect_count
from app.utils.dates import parse_date_range
from app.utils.file_storage import ImageStore, LocalImageStore, DEFECT_FOLDER


# Marker for a measurements string that did not decode
_MALFORMED = object()

SORTABLE_FIELDS = {
    "created_at": Defect.created_at,
    "severity": Defect.severity,
    "type": Defect.type,
    "status": Defect.status,
}


def parse_measurements(value: Any):
    """
    Accepts an object or a JSON-encoded object string.
    Returns _MALFORMED for strings that do not decode to an object.
    """
    if not isinstance(value, str):
        return value
    if not value:
        return None
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        return _MALFORMED
    return decoded if isinstance(decoded, dict) else _MALFORMED


class DefectService:
    def __init__(
        self,
        session: Session,
        alert_sink: Optional[AlertSink] = None,
        image_store: Optional[ImageStore] = None
    ):
        self.session = session
        self.alert_sink = alert_sink or PersistentAlertSink()
        self.image_store = image_store or LocalImageStore()

    def _get_or_404(self, defect_id: uuid.UUID) -> Defect:
        defect = self.session.get(Defect, defect_id)
        if not defect:
            raise HTTPException(status_code=404, detail="Defect not found.")
        return defect

    def _delete_stored_image(self, public_id: Optional[str]) -> None:
        if not public_id:
            return
        try:
            self.image_store.delete(public_id)
        except Exception as e:
            logger.warning(f"Could not delete stored image {public_id}: {e}")

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def get_defect(self, defect_id: uuid.UUID) -> DefectRead:
        return DefectRead.model_validate(self._get_or_404(defect_id))

    def list_defects(
        self,
        product_id: Optional[uuid.UUID] = None,
        defect_type: Optional[str] = None,
        severity: Optional[DefectSeverity] = None,
        inspection_id: Optional[uuid.UUID] = None,
        defect_status: Optional[DefectStatus] = None,
        root_cause: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        sort: str = "-created_at",
        page: int = 1,
        limit: int = 10
    ) -> DefectListResponse:
        start, end = parse_date_range(start_date, end_date)

        conditions = []
        if product_id:
            conditions.append(Defect.product_id == product_id)
        if defect_type:
            conditions.append(Defect.type == defect_type)
        if severity:
            conditions.append(Defect.severity == severity)
        if inspection_id:
            conditions.append(Defect.inspection_id == inspection_id)
        if defect_status:
            conditions.append(Defect.status == defect_status)
        if root_cause:
            conditions.append(Defect.root_cause == root_cause)
        if start:
            conditions.append(Defect.created_at >= start)
        if end:
            conditions.append(Defect.created_at <= end)

        descending = sort.startswith("-")
        column = SORTABLE_FIELDS.get(sort.lstrip("-"))
        if column is None:
            raise HTTPException(
                status_code=400,
                detail=f"Cannot sort by '{sort}'. Allowed: {', '.join(SORTABLE_FIELDS)}"
            )

        total = self.session.exec(
            select(func.count()).select_from(Defect).where(*conditions)
        ).one()

        offset = (page - 1) * limit
        statement = (
            select(Defect)
            .where(*conditions)
            .order_by(column.desc() if descending else column.asc())
            .offset(offset)
            .limit(limit)
        )
        defects = self.session.exec(statement).all()

        pagination = Pagination()
        if page * limit < total:
            pagination.next = PageRef(page=page + 1, limit=limit)
        if offset > 0:
            pagination.prev = PageRef(page=page - 1, limit=limit)

        return DefectListResponse(
            count=len(defects),
            total=total,
            pagination=pagination,
            data=[DefectRead.model_validate(d) for d in defects]
        )

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def _persist_defect(self, user: User, data: DefectCreate) -> Tuple[DefectRead, InspectionRead]:
        """
        Validates references, inserts the defect and re-counts the parent
        inspection in one commit. Raises HTTPException on any failure.
        """
        inspection = lock_inspection(self.session, data.inspection_id)
        if not inspection:
            raise HTTPException(
                status_code=404, detail="Inspection not found.")

        if not self.session.get(Product, data.product_id):
            raise HTTPException(status_code=404, detail="Product not found.")

        measurements = parse_measurements(data.measurements)
        if measurements is _MALFORMED:
            logger.warning(
                "Discarding malformed measurements on new defect")
            measurements = None

        defect = Defect(
            inspection_id=data.inspection_id,
            product_id=data.product_id,
            type=data.type,
            severity=data.severity,
            description=data.description,
            location=data.location,
            root_cause=data.root_cause or "unknown",
            measurements=measurements,
            status=data.status,
            detected_by=data.detected_by,
            ai_confidence=data.ai_confidence,
            reported_by_id=user.id
        )
        if data.status == DefectStatus.RESOLVED:
            defect.resolved_at = datetime.utcnow()
            defect.resolved_by_id = user.id

        try:
            self.session.add(defect)
            sync_defect_count(self.session, inspection)
            self.session.commit()
            self.session.refresh(defect)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Defect creation failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not create defect.")

        return DefectRead.model_validate(defect), InspectionRead.model_validate(defect.inspection)

    def _after_create(
        self,
        user: User,
        defect: DefectRead,
        inspection: InspectionRead,
        background_tasks: BackgroundTasks
    ) -> None:
        if is_critical(defect.severity):
            logger.warning(
                f"Critical defect {defect.id} on batch {inspection.batch_number}")
            dispatch_critical_defect(
                background_tasks, self.alert_sink, defect, inspection)

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.DEFECT_LOGGED,
            description=(
                f"Logged {defect.severity.value} {defect.type} defect on batch "
                f"{inspection.batch_number}"
            ),
            details={
                "defect_id": str(defect.id),
                "inspection_id": str(inspection.id),
                "severity": defect.severity.value
            }
        )

    def create_defect(
        self,
        user: User,
        data: DefectCreate,
        background_tasks: BackgroundTasks
    ) -> DefectRead:
        defect, inspection = self._persist_defect(user, data)
        self._after_create(user, defect, inspection, background_tasks)
        return defect

    def bulk_create_defects(
        self,
        user: User,
        data: BulkDefectCreate,
        background_tasks: BackgroundTasks
    ) -> BulkDefectResult:
        """
        Not atomic. Each item is validated and committed on its own; a bad
        item is reported by index and never discards the valid ones.
        """
        created: List[DefectRead] = []
        errors: List[BulkItemError] = []

        for index, raw in enumerate(data.defects):
            try:
                item = DefectCreate.model_validate(raw)
                defect, inspection = self._persist_defect(user, item)
            except ValidationError as e:
                errors.append(BulkItemError(
                    index=index,
                    error=f"Invalid defect at index {index}: {e.errors()[0]['msg']}"
                ))
                continue
            except HTTPException as e:
                errors.append(BulkItemError(
                    index=index,
                    error=f"{e.detail.rstrip('.')} for defect at index {index}"
                ))
                continue

            self._after_create(user, defect, inspection, background_tasks)
            created.append(defect)

        if errors:
            logger.warning(
                f"Bulk defect creation: {len(created)} created, {len(errors)} failed")

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.BATCH_PROCESSED,
            description=f"Bulk logged {len(created)} of {len(data.defects)} defects",
            details={"created": len(created), "failed": len(errors)}
        )

        return BulkDefectResult(
            created_count=len(created),
            error_count=len(errors),
            errors=errors,
            data=created
        )

    def update_defect(
        self,
        user: User,
        defect_id: uuid.UUID,
        data: DefectUpdate,
        background_tasks: BackgroundTasks
    ) -> DefectRead:
        """
        Partial update.
        The first move to RESOLVED stamps resolver and resolved-at; repeating
        it leaves them untouched. Severity edits never re-raise alerts.
        """
        defect = self._get_or_404(defect_id)
        updates: Dict[str, Any] = data.model_dump(exclude_unset=True)

        if "measurements" in updates:
            measurements = parse_measurements(updates["measurements"])
            if measurements is _MALFORMED:
                logger.warning(
                    f"Discarding malformed measurements on defect {defect_id}")
                updates.pop("measurements")
            else:
                updates["measurements"] = measurements

        new_status = updates.get("status")
        if new_status == DefectStatus.OPEN and defect.status == DefectStatus.RESOLVED:
            raise HTTPException(
                status_code=400, detail="A resolved defect cannot be reopened.")

        if new_status == DefectStatus.RESOLVED and defect.status != DefectStatus.RESOLVED:
            updates["resolved_at"] = datetime.utcnow()
            updates["resolved_by_id"] = user.id

        old_state = defect.model_dump(mode="json")

        applied = []
        for key, value in updates.items():
            if value is None and key != "measurements":
                continue
            setattr(defect, key, value)
            applied.append(key)

        try:
            self.session.add(defect)
            self.session.commit()
            self.session.refresh(defect)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Defect update failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not update defect.")

        new_state = defect.model_dump(mode="json")
        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.DEFECT_UPDATED,
            description=f"Updated {defect.type} defect",
            details={
                "defect_id": str(defect.id),
                "changes": {
                    k: {"old": old_state.get(k), "new": new_state.get(k)}
                    for k in applied
                }
            }
        )

        return DefectRead.model_validate(defect)

    def resolve_defect(
        self,
        user: User,
        defect_id: uuid.UUID,
        resolution_notes: Optional[str],
        background_tasks: BackgroundTasks
    ) -> DefectRead:
        """
        Explicit resolution. Idempotent on resolved_at and resolved_by.
        """
        defect = self._get_or_404(defect_id)

        already_resolved = defect.status == DefectStatus.RESOLVED
        old_notes = defect.resolution_notes
        notes_changed = bool(resolution_notes) and resolution_notes != old_notes

        if already_resolved and not notes_changed:
            return DefectRead.model_validate(defect)

        if not already_resolved:
            defect.status = DefectStatus.RESOLVED
            defect.resolved_at = datetime.utcnow()
            defect.resolved_by_id = user.id
        if notes_changed:
            defect.resolution_notes = resolution_notes

        try:
            self.session.add(defect)
            self.session.commit()
            self.session.refresh(defect)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Defect resolution failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not resolve defect.")

        if not already_resolved:
            background_tasks.add_task(
                record_activity,
                user_id=user.id,
                action=ActivityAction.DEFECT_RESOLVED,
                description=f"Resolved {defect.type} defect",
                details={
                    "defect_id": str(defect.id),
                    "inspection_id": str(defect.inspection_id)
                }
            )
        else:
            background_tasks.add_task(
                record_activity,
                user_id=user.id,
                action=ActivityAction.DEFECT_UPDATED,
                description=f"Updated resolution notes on {defect.type} defect",
                details={
                    "defect_id": str(defect.id),
                    "changes": {
                        "resolution_notes": {"old": old_notes, "new": defect.resolution_notes}
                    }
                }
            )

        return DefectRead.model_validate(defect)

    def delete_defect(
        self,
        user: User,
        defect_id: uuid.UUID,
        background_tasks: BackgroundTasks
    ):
        defect = self._get_or_404(defect_id)

        if not can_delete(defect, user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to delete this defect. Only the creator or managers/admins can delete defects."
            )

        inspection_id = defect.inspection_id
        image_public_id = defect.image_public_id
        snapshot = {"type": defect.type, "severity": defect.severity.value}

        try:
            inspection = lock_inspection(self.session, inspection_id)
            self.session.delete(defect)
            if inspection:
                sync_defect_count(self.session, inspection)
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            logger.error(f"Defect deletion failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not delete defect.")

        self._delete_stored_image(image_public_id)

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.DEFECT_DELETED,
            description=f"Deleted {snapshot['severity']} {snapshot['type']} defect",
            details={
                "defect_id": str(defect_id),
                "inspection_id": str(inspection_id)
            }
        )

        return {"message": "Defect deleted successfully."}

    def attach_image(
        self,
        user: User,
        defect_id: uuid.UUID,
        upload: UploadFile,
        background_tasks: BackgroundTasks
    ) -> DefectRead:
        """
        Stores a new image and replaces the previous one. A store failure
        leaves the defect unchanged.
        """
        defect = self._get_or_404(defect_id)

        try:
            stored = self.image_store.store(upload, DEFECT_FOLDER)
        except Exception as e:
            logger.warning(
                f"Image upload failed for defect {defect_id}, continuing without it: {e}")
            return DefectRead.model_validate(defect)

        previous = defect.image_public_id
        defect.image_url = stored.url
        defect.image_public_id = stored.public_id

        self.session.add(defect)
        self.session.commit()
        self.session.refresh(defect)

        self._delete_stored_image(previous)

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.DEFECT_UPDATED,
            description=f"Attached image to {defect.type} defect",
            details={"defect_id": str(defect.id)}
        )

        return DefectRead.model_validate(defect)

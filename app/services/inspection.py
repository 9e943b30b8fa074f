from typing import List, Optional
import math
import uuid
from datetime import date, datetime, time, timedelta

from fastapi import BackgroundTasks, HTTPException, UploadFile, status
from loguru import logger
from sqlmodel import Session, select, func

from app.core.alerts import (
    AlertSink, PersistentAlertSink, defect_rate, exceeds_defect_rate,
    dispatch_defect_rate
)
from app.core.audit import record_activity
from app.core.config import settings
from app.core.permissions import can_delete
from app.db.schema import (
    User, Product, Inspection, InspectionStatus, Defect, ActivityAction
)
from app.models.defect import DefectRead
from app.models.inspection import (
    InspectionCreate, InspectionUpdate, InspectionRead, InspectionDetailRead,
    InspectionCompletionRead, InspectionListResponse, InspectionPagination,
    InspectionImage
)
from app.utils.file_storage import ImageStore, LocalImageStore, INSPECTION_FOLDER


# ==============================================================================
# DEFECT COUNTER
# ==============================================================================
# `Inspection.defects_found` has a single strategy: it is re-counted from the
# live Defect rows inside the same transaction as every write that can change
# it, while the inspection row is locked. It is never incremented in place.

def lock_inspection(session: Session, inspection_id: uuid.UUID) -> Optional[Inspection]:
    """Loads the inspection with a row lock (no-op on SQLite)."""
    statement = (
        select(Inspection)
        .where(Inspection.id == inspection_id)
        .with_for_update()
    )
    return session.exec(statement).first()


def count_defects(session: Session, inspection_id: uuid.UUID) -> int:
    statement = (
        select(func.count())
        .select_from(Defect)
        .where(Defect.inspection_id == inspection_id)
    )
    return session.exec(statement).one()


def sync_defect_count(session: Session, inspection: Inspection) -> int:
    session.flush()
    count = count_defects(session, inspection.id)
    inspection.defects_found = count
    session.add(inspection)
    return count


class InspectionService:
    def __init__(
        self,
        session: Session,
        alert_sink: Optional[AlertSink] = None,
        image_store: Optional[ImageStore] = None
    ):
        self.session = session
        self.alert_sink = alert_sink or PersistentAlertSink()
        self.image_store = image_store or LocalImageStore()

    def _get_or_404(self, inspection_id: uuid.UUID) -> Inspection:
        inspection = self.session.get(Inspection, inspection_id)
        if not inspection:
            raise HTTPException(
                status_code=404, detail="Inspection not found.")
        return inspection

    def _lock_or_404(self, inspection_id: uuid.UUID) -> Inspection:
        inspection = lock_inspection(self.session, inspection_id)
        if not inspection:
            raise HTTPException(
                status_code=404, detail="Inspection not found.")
        return inspection

    # ==========================================================================
    # READ OPERATIONS
    # ==========================================================================

    def list_inspections(
        self,
        product_id: Optional[uuid.UUID] = None,
        inspection_status: Optional[InspectionStatus] = None,
        inspector_id: Optional[uuid.UUID] = None,
        on_date: Optional[date] = None,
        page: int = 1,
        limit: int = 50
    ) -> InspectionListResponse:
        conditions = []
        if product_id:
            conditions.append(Inspection.product_id == product_id)
        if inspection_status:
            conditions.append(Inspection.status == inspection_status)
        if inspector_id:
            conditions.append(Inspection.inspector_id == inspector_id)
        if on_date:
            day_start = datetime.combine(on_date, time.min)
            conditions.append(Inspection.date >= day_start)
            conditions.append(Inspection.date < day_start + timedelta(days=1))

        total = self.session.exec(
            select(func.count()).select_from(Inspection).where(*conditions)
        ).one()

        statement = (
            select(Inspection)
            .where(*conditions)
            .order_by(Inspection.date.desc(), Inspection.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        inspections = self.session.exec(statement).all()

        return InspectionListResponse(
            count=len(inspections),
            pagination=InspectionPagination(
                total=total,
                page=page,
                pages=math.ceil(total / limit) if limit else 0
            ),
            data=[InspectionRead.model_validate(i) for i in inspections]
        )

    def get_inspection(self, inspection_id: uuid.UUID) -> InspectionDetailRead:
        inspection = self._get_or_404(inspection_id)

        defects = self.session.exec(
            select(Defect)
            .where(Defect.inspection_id == inspection_id)
            .order_by(Defect.created_at.desc())
        ).all()

        return InspectionDetailRead(
            inspection=InspectionRead.model_validate(inspection),
            defects=[DefectRead.model_validate(d) for d in defects]
        )

    # ==========================================================================
    # WRITE OPERATIONS
    # ==========================================================================

    def create_inspection(
        self,
        user: User,
        data: InspectionCreate,
        background_tasks: BackgroundTasks
    ) -> InspectionRead:
        if not self.session.get(Product, data.product_id):
            raise HTTPException(status_code=404, detail="Product not found.")

        inspection = Inspection(
            product_id=data.product_id,
            inspector_id=user.id,
            batch_number=data.batch_number,
            notes=data.notes,
            total_inspected=data.total_inspected,
            date=data.date or datetime.utcnow(),
            defects_found=0,
            status=InspectionStatus.PENDING,
            images=[]
        )

        try:
            self.session.add(inspection)
            self.session.commit()
            self.session.refresh(inspection)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Inspection creation failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not create inspection.")

        logger.info(
            f"Inspection {inspection.id} opened for batch {inspection.batch_number}")

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.INSPECTION_CREATED,
            description=f"Created inspection for batch {inspection.batch_number}",
            details={
                "inspection_id": str(inspection.id),
                "batch_number": inspection.batch_number,
                "total_inspected": inspection.total_inspected
            }
        )

        return InspectionRead.model_validate(inspection)

    def update_inspection(
        self,
        user: User,
        inspection_id: uuid.UUID,
        data: InspectionUpdate,
        background_tasks: BackgroundTasks
    ) -> InspectionRead:
        """
        Update descriptive fields. Status is never written here.
        """
        inspection = self._get_or_404(inspection_id)

        old_state = inspection.model_dump(mode="json")
        updates = data.model_dump(exclude_unset=True)

        for key, value in updates.items():
            if value is not None:
                setattr(inspection, key, value)

        self.session.add(inspection)
        self.session.commit()
        self.session.refresh(inspection)

        changes = {
            k: {"old": old_state.get(k), "new": v}
            for k, v in data.model_dump(mode="json", exclude_unset=True).items()
        }
        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.INSPECTION_UPDATED,
            description=f"Updated inspection for batch {inspection.batch_number}",
            details={
                "inspection_id": str(inspection.id),
                "batch_number": inspection.batch_number,
                "changes": changes
            }
        )

        return InspectionRead.model_validate(inspection)

    def complete_inspection(
        self,
        user: User,
        inspection_id: uuid.UUID,
        background_tasks: BackgroundTasks
    ) -> InspectionCompletionRead:
        """
        Closes the inspection.
        1. Re-counts the live defects (authoritative).
        2. FAILED if any defect exists, COMPLETED otherwise.
        3. Raises the defect-rate alert when the rate exceeds the threshold.
        """
        inspection = self._lock_or_404(inspection_id)

        defects_count = sync_defect_count(self.session, inspection)
        inspection.status = (
            InspectionStatus.FAILED if defects_count > 0
            else InspectionStatus.COMPLETED
        )

        try:
            self.session.add(inspection)
            self.session.commit()
            self.session.refresh(inspection)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Completing inspection {inspection_id} failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not complete inspection.")

        rate = defect_rate(defects_count, inspection.total_inspected)
        threshold = settings.defect_rate_threshold
        rate_exceeded = exceeds_defect_rate(rate, threshold)

        read = InspectionRead.model_validate(inspection)

        if rate_exceeded:
            logger.warning(
                f"Batch {inspection.batch_number}: defect rate {rate:.2f}% "
                f"exceeds {threshold}%")
            dispatch_defect_rate(
                background_tasks, self.alert_sink, read, rate, threshold)

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.INSPECTION_COMPLETED,
            description=(
                f"Completed inspection for batch {inspection.batch_number} "
                f"with status: {inspection.status.value}"
            ),
            details={
                "inspection_id": str(inspection.id),
                "batch_number": inspection.batch_number,
                "status": inspection.status.value,
                "defects_found": defects_count,
                "defect_rate": f"{rate:.2f}"
            }
        )

        return InspectionCompletionRead(
            **read.model_dump(),
            defect_rate=round(rate, 2),
            rate_alert_triggered=rate_exceeded
        )

    def delete_inspection(
        self,
        user: User,
        inspection_id: uuid.UUID,
        background_tasks: BackgroundTasks
    ):
        """
        Deletes the inspection and every defect referencing it as one unit:
        children first, verify none remain, then the parent, single commit.
        """
        inspection = self._lock_or_404(inspection_id)

        if not can_delete(inspection, user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to delete this inspection. Only the inspector or managers/admins can delete inspections."
            )

        batch_number = inspection.batch_number
        image_ids = [img.get("public_id") for img in inspection.images]

        try:
            defects = self.session.exec(
                select(Defect).where(Defect.inspection_id == inspection_id)
            ).all()
            image_ids.extend(d.image_public_id for d in defects)

            for defect in defects:
                self.session.delete(defect)
            self.session.flush()

            remaining = count_defects(self.session, inspection_id)
            if remaining:
                raise RuntimeError(
                    f"{remaining} defects still reference inspection {inspection_id}")

            self.session.delete(inspection)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"Deleting inspection {inspection_id} failed")
            raise HTTPException(
                status_code=500, detail="Could not delete inspection.")

        logger.info(
            f"Deleted inspection {inspection_id} and {len(defects)} associated defects")

        for public_id in filter(None, image_ids):
            try:
                self.image_store.delete(public_id)
            except Exception as e:
                logger.warning(f"Could not delete stored image {public_id}: {e}")

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.INSPECTION_DELETED,
            description=f"Deleted inspection for batch {batch_number}",
            details={
                "inspection_id": str(inspection_id),
                "batch_number": batch_number,
                "defects_deleted": len(defects)
            }
        )

        return {"message": "Inspection deleted successfully."}

    def upload_inspection_images(
        self,
        user: User,
        inspection_id: uuid.UUID,
        files: List[UploadFile],
        background_tasks: BackgroundTasks
    ) -> InspectionRead:
        """
        Appends each successfully stored file; a file the store rejects is
        skipped rather than failing the batch.
        """
        inspection = self._get_or_404(inspection_id)

        if not files:
            raise HTTPException(
                status_code=400, detail="Please upload at least one image file.")

        uploaded = []
        for upload in files:
            try:
                stored = self.image_store.store(upload, INSPECTION_FOLDER)
            except Exception as e:
                logger.warning(
                    f"Image upload failed for {upload.filename}, skipping: {e}")
                continue

            uploaded.append(InspectionImage(
                url=stored.url,
                public_id=stored.public_id
            ).model_dump())

        if uploaded:
            # Reassign so the JSON column is flagged dirty
            inspection.images = [*inspection.images, *uploaded]
            self.session.add(inspection)
            self.session.commit()
            self.session.refresh(inspection)

            background_tasks.add_task(
                record_activity,
                user_id=user.id,
                action=ActivityAction.INSPECTION_UPDATED,
                description=(
                    f"Uploaded {len(uploaded)} image(s) for batch "
                    f"{inspection.batch_number}"
                ),
                details={
                    "inspection_id": str(inspection.id),
                    "uploaded": len(uploaded),
                    "skipped": len(files) - len(uploaded)
                }
            )

        return InspectionRead.model_validate(inspection)

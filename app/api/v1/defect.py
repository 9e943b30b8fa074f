from typing import Optional
from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status

from app.core.dependencies import (
    get_current_user, get_defect_service, get_stats_service
)
from app.db.schema import User, DefectSeverity, DefectStatus
from app.models.defect import (
    DefectCreate, DefectUpdate, DefectResolve, DefectRead, DefectListResponse,
    BulkDefectCreate, BulkDefectResult
)
from app.models.stats import DefectStats
from app.services.defect import DefectService
from app.services.stats import StatsService

router = APIRouter()


@router.post(
    "/",
    response_model=DefectRead,
    status_code=status.HTTP_201_CREATED,
    summary="Log Defect",
    description="Record a defect against an existing inspection. Critical defects raise an alert."
)
def create_defect(
    data: DefectCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.create_defect(current_user, data, background_tasks)


@router.get(
    "/",
    response_model=DefectListResponse,
    summary="List Defects",
    description="Filter, sort and paginate defects."
)
def list_defects(
    product: Optional[UUID] = None,
    type: Optional[str] = None,
    severity: Optional[DefectSeverity] = None,
    inspection: Optional[UUID] = None,
    status: Optional[DefectStatus] = None,
    root_cause: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort: str = "-created_at",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.list_defects(
        product_id=product,
        defect_type=type,
        severity=severity,
        inspection_id=inspection,
        defect_status=status,
        root_cause=root_cause,
        start_date=start_date,
        end_date=end_date,
        sort=sort,
        page=page,
        limit=limit
    )


@router.get(
    "/stats",
    response_model=DefectStats,
    summary="Defect Statistics",
    description="Counts by type, severity, root cause and status plus a daily trend."
)
def get_defect_stats(
    product: Optional[UUID] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: StatsService = Depends(get_stats_service)
):
    return service.get_defect_stats(
        product_id=product, start_date=start_date, end_date=end_date)


@router.post(
    "/bulk",
    response_model=BulkDefectResult,
    status_code=status.HTTP_201_CREATED,
    summary="Bulk Log Defects",
    description="Create many defects; failed items are reported by index."
)
def bulk_create_defects(
    data: BulkDefectCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.bulk_create_defects(current_user, data, background_tasks)


@router.get("/{defect_id}", response_model=DefectRead)
def get_defect(
    defect_id: UUID,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.get_defect(defect_id)


@router.patch(
    "/{defect_id}",
    response_model=DefectRead,
    summary="Update Defect",
    description="Partial update. Setting status to 'resolved' stamps the resolver once."
)
def update_defect(
    defect_id: UUID,
    data: DefectUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.update_defect(current_user, defect_id, data, background_tasks)


@router.put("/{defect_id}/resolve", response_model=DefectRead, summary="Resolve Defect")
def resolve_defect(
    defect_id: UUID,
    background_tasks: BackgroundTasks,
    data: Optional[DefectResolve] = None,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    notes = data.resolution_notes if data else None
    return service.resolve_defect(current_user, defect_id, notes, background_tasks)


@router.put("/{defect_id}/image", response_model=DefectRead, summary="Attach Defect Image")
def attach_defect_image(
    defect_id: UUID,
    background_tasks: BackgroundTasks,
    image: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.attach_image(current_user, defect_id, image, background_tasks)


@router.delete(
    "/{defect_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete Defect",
    description="Only the reporter, managers or admins may delete a defect."
)
def delete_defect(
    defect_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: DefectService = Depends(get_defect_service)
):
    return service.delete_defect(current_user, defect_id, background_tasks)

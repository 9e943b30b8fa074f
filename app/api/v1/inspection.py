from datetime import date
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status

from app.core.dependencies import get_current_user, get_inspection_service
from app.db.schema import User, InspectionStatus
from app.models.inspection import (
    InspectionCreate, InspectionUpdate, InspectionRead, InspectionDetailRead,
    InspectionCompletionRead, InspectionListResponse
)
from app.services.inspection import InspectionService

router = APIRouter()


@router.post(
    "/",
    response_model=InspectionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Open Inspection",
    description="Start a pending inspection of a batch, owned by the current user."
)
def create_inspection(
    data: InspectionCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.create_inspection(current_user, data, background_tasks)


@router.get("/", response_model=InspectionListResponse, summary="List Inspections")
def list_inspections(
    product: Optional[UUID] = None,
    status: Optional[InspectionStatus] = None,
    inspector: Optional[UUID] = None,
    on_date: Optional[date] = Query(default=None, alias="date"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.list_inspections(
        product_id=product,
        inspection_status=status,
        inspector_id=inspector,
        on_date=on_date,
        page=page,
        limit=limit
    )


@router.get(
    "/{inspection_id}",
    response_model=InspectionDetailRead,
    summary="Get Inspection",
    description="The inspection together with all of its defects."
)
def get_inspection(
    inspection_id: UUID,
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.get_inspection(inspection_id)


@router.patch("/{inspection_id}", response_model=InspectionRead, summary="Update Inspection")
def update_inspection(
    inspection_id: UUID,
    data: InspectionUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.update_inspection(current_user, inspection_id, data, background_tasks)


@router.put(
    "/{inspection_id}/complete",
    response_model=InspectionCompletionRead,
    summary="Complete Inspection",
    description=(
        "Re-count the defects, set the final status (failed if any defect exists) "
        "and raise a defect-rate alert above the configured threshold."
    )
)
def complete_inspection(
    inspection_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.complete_inspection(current_user, inspection_id, background_tasks)


@router.post(
    "/{inspection_id}/images",
    response_model=InspectionRead,
    summary="Upload Inspection Images",
    description="Files that fail to store are skipped."
)
def upload_inspection_images(
    inspection_id: UUID,
    background_tasks: BackgroundTasks,
    images: Optional[List[UploadFile]] = File(default=None),
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.upload_inspection_images(
        current_user, inspection_id, images or [], background_tasks)


@router.delete(
    "/{inspection_id}",
    status_code=status.HTTP_200_OK,
    summary="Delete Inspection",
    description="Deletes the inspection and all its defects. Inspector, managers and admins only."
)
def delete_inspection(
    inspection_id: UUID,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: InspectionService = Depends(get_inspection_service)
):
    return service.delete_inspection(current_user, inspection_id, background_tasks)

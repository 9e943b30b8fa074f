from typing import List
from fastapi import APIRouter, BackgroundTasks, Depends, status

from app.core.dependencies import get_current_user, get_product_service
from app.db.schema import User
from app.models.product import ProductCreate, ProductRead
from app.services.product import ProductService

router = APIRouter()


@router.get("/", response_model=List[ProductRead])
def list_products(
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    return service.list_products()


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: ProductService = Depends(get_product_service)
):
    return service.create_product(current_user, data, background_tasks)

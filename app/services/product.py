from typing import List
from fastapi import BackgroundTasks, HTTPException
from loguru import logger
from sqlmodel import Session, select

from app.core.audit import record_activity
from app.db.schema import User, Product, ActivityAction
from app.models.product import ProductCreate, ProductRead


class ProductService:
    """Minimal catalogue so inspections and defects have something to reference."""

    def __init__(self, session: Session):
        self.session = session

    def list_products(self) -> List[ProductRead]:
        products = self.session.exec(
            select(Product).order_by(Product.name.asc())).all()
        return [ProductRead.model_validate(p) for p in products]

    def create_product(
        self,
        user: User,
        data: ProductCreate,
        background_tasks: BackgroundTasks
    ) -> ProductRead:
        product = Product(**data.model_dump())

        try:
            self.session.add(product)
            self.session.commit()
            self.session.refresh(product)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Product creation failed: {e}")
            raise HTTPException(
                status_code=500, detail="Could not create product.")

        background_tasks.add_task(
            record_activity,
            user_id=user.id,
            action=ActivityAction.PRODUCT_CREATED,
            description=f"Created product {product.name}",
            details={"product_id": str(product.id)}
        )

        return ProductRead.model_validate(product)

from typing import Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field


class ProductCreate(SQLModel):
    name: str = Field(min_length=1, max_length=150)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None


class ProductRead(SQLModel):
    id: UUID
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime

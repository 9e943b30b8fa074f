from uuid import UUID
from sqlmodel import SQLModel


class TokenData(SQLModel):
    user_id: UUID

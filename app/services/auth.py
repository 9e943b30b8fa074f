from typing import Optional
import uuid
from datetime import datetime, timedelta

import jwt
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session, select

from app.core.config import settings
from app.db.schema import User
from app.models.auth import TokenData


class AuthService:
    """
    Verifies bearer tokens minted by the external auth service with the
    shared secret. Token issuance lives here only for seeding and tests.
    """
    ALGORITHM = "HS256"

    def __init__(self, session: Session):
        self.session = session

    @classmethod
    def create_access_token(cls, user_id: uuid.UUID, expires_delta: Optional[timedelta] = None) -> str:
        if expires_delta is None:
            expires_delta = timedelta(
                minutes=settings.access_token_expire_minutes)
        to_encode = {
            "sub": str(user_id),
            "exp": datetime.utcnow() + expires_delta,
            "type": "access"
        }
        return jwt.encode(to_encode, settings.secret_key, algorithm=cls.ALGORITHM)

    def verify_access_token(self, token: str) -> Optional[TokenData]:
        """Returns None for refresh tokens or tokens without a subject."""
        try:
            payload = jwt.decode(
                token, settings.secret_key, algorithms=[self.ALGORITHM])
        except InvalidTokenError:
            return None

        if payload.get("type") != "access" or not payload.get("sub"):
            return None

        try:
            return TokenData(user_id=payload["sub"])
        except ValidationError:
            return None

    def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        statement = select(User).where(User.id == user_id)
        return self.session.exec(statement).first()

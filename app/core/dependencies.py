from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from app.core.alerts import AlertSink, PersistentAlertSink
from app.db.core import get_session
from app.db.schema import User
from app.services.auth import AuthService
from app.services.activity import ActivityService
from app.services.alert import AlertService
from app.services.defect import DefectService
from app.services.inspection import InspectionService
from app.services.product import ProductService
from app.services.stats import StatsService
from app.utils.file_storage import ImageStore, LocalImageStore

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_alert_sink() -> AlertSink:
    return PersistentAlertSink()


def get_image_store() -> ImageStore:
    return LocalImageStore()


def get_auth_service(session: Session = Depends(get_session)) -> AuthService:
    return AuthService(session)


def get_defect_service(
    session: Session = Depends(get_session),
    alert_sink: AlertSink = Depends(get_alert_sink),
    image_store: ImageStore = Depends(get_image_store)
) -> DefectService:
    return DefectService(session, alert_sink=alert_sink, image_store=image_store)


def get_inspection_service(
    session: Session = Depends(get_session),
    alert_sink: AlertSink = Depends(get_alert_sink),
    image_store: ImageStore = Depends(get_image_store)
) -> InspectionService:
    return InspectionService(session, alert_sink=alert_sink, image_store=image_store)


def get_stats_service(session: Session = Depends(get_session)) -> StatsService:
    return StatsService(session)


def get_activity_service(session: Session = Depends(get_session)) -> ActivityService:
    return ActivityService(session)


def get_alert_service(session: Session = Depends(get_session)) -> AlertService:
    return AlertService(session)


def get_product_service(session: Session = Depends(get_session)) -> ProductService:
    return ProductService(session)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    service: AuthService = Depends(get_auth_service)
) -> User:
    """
    Validates the JWT token and retrieves the user.
    This is the gatekeeper for protected routes.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    token_data = service.verify_access_token(token)
    if not token_data:
        raise credentials_exception

    user = service.get_user_by_id(token_data.user_id)

    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")

    return user

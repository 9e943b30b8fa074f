from typing import List, Optional
from sqlmodel import Session, select

from app.db.schema import Alert, AlertType
from app.models.alert import AlertRead


class AlertService:
    def __init__(self, session: Session):
        self.session = session

    def list_alerts(self, alert_type: Optional[AlertType] = None, limit: int = 50) -> List[AlertRead]:
        statement = select(Alert)
        if alert_type:
            statement = statement.where(Alert.type == alert_type)
        statement = statement.order_by(Alert.created_at.desc()).limit(limit)

        return [AlertRead.model_validate(a) for a in self.session.exec(statement).all()]

"""
Alert decision rules and dispatch.

Two triggers exist: a defect created with CRITICAL severity, and an
inspection completed with a defect rate above the configured threshold.
Both are fire-and-forget: the decision is made inline, delivery runs as a
background task and its failures are only logged.
"""
from typing import Callable
from fastapi import BackgroundTasks
from loguru import logger
from sqlmodel import Session

from app.db.core import engine
from app.db.schema import Alert, AlertType, DefectSeverity
from app.models.defect import DefectRead
from app.models.inspection import InspectionRead


# ==============================================================================
# DECISION RULES
# ==============================================================================

def is_critical(severity) -> bool:
    return severity == DefectSeverity.CRITICAL


def defect_rate(defects_found: int, total_inspected: int) -> float:
    """Defects per hundred inspected units."""
    if total_inspected <= 0:
        return 0.0
    return defects_found * 100 / total_inspected


def exceeds_defect_rate(rate: float, threshold: float) -> bool:
    # Strictly greater: a rate equal to the threshold is still acceptable.
    return rate > threshold


# ==============================================================================
# SINKS
# ==============================================================================

class AlertSink:
    """Receives alerts. Implementations must not rely on the caller's session."""

    def on_critical_defect(self, defect: DefectRead, inspection: InspectionRead) -> None:
        raise NotImplementedError

    def on_defect_rate_exceeded(self, inspection: InspectionRead, rate: float, threshold: float) -> None:
        raise NotImplementedError


class PersistentAlertSink(AlertSink):
    """Default sink: stores an Alert row and logs it."""

    def _save(self, alert: Alert) -> None:
        # Commit expires the instance; format the line while it is still loaded
        summary = f"ALERT [{alert.type.value}] {alert.message}"
        with Session(engine) as session:
            session.add(alert)
            session.commit()
        logger.warning(summary)

    def on_critical_defect(self, defect, inspection):
        self._save(Alert(
            type=AlertType.CRITICAL_DEFECT,
            message=(
                f"Critical {defect.type} defect logged on batch "
                f"{inspection.batch_number}"
            ),
            inspection_id=inspection.id,
            defect_id=defect.id,
            batch_number=inspection.batch_number
        ))

    def on_defect_rate_exceeded(self, inspection, rate, threshold):
        self._save(Alert(
            type=AlertType.DEFECT_RATE,
            message=(
                f"Defect rate {rate:.2f}% on batch {inspection.batch_number} "
                f"exceeds the {threshold:.2f}% threshold"
            ),
            inspection_id=inspection.id,
            batch_number=inspection.batch_number,
            defect_rate=round(rate, 2),
            threshold=threshold
        ))


# ==============================================================================
# DISPATCH
# ==============================================================================

def _deliver(handler: Callable, *args) -> None:
    try:
        handler(*args)
    except Exception as e:
        logger.error(f"Alert delivery failed ({handler.__name__}): {e}")


def dispatch_critical_defect(
    background_tasks: BackgroundTasks,
    sink: AlertSink,
    defect: DefectRead,
    inspection: InspectionRead
) -> None:
    background_tasks.add_task(
        _deliver, sink.on_critical_defect, defect, inspection)


def dispatch_defect_rate(
    background_tasks: BackgroundTasks,
    sink: AlertSink,
    inspection: InspectionRead,
    rate: float,
    threshold: float
) -> None:
    background_tasks.add_task(
        _deliver, sink.on_defect_rate_exceeded, inspection, rate, threshold)

from typing import Dict, List, Optional
import uuid
from collections import defaultdict
from datetime import timezone
from zoneinfo import ZoneInfo

from sqlmodel import Session, select, func

from app.core.config import settings
from app.db.schema import Defect, DefectSeverity
from app.models.stats import DefectStats, GroupCount, TrendPoint
from app.utils.dates import parse_date_range


def _key(value) -> str:
    return value.value if hasattr(value, "value") else str(value)


class StatsService:
    """
    Read-only defect aggregations over an optional product and created-at
    window. Grouping runs in SQL; ordering and day bucketing run here so the
    result does not depend on how a dialect sorts enum columns or formats
    dates.
    """

    def __init__(self, session: Session):
        self.session = session

    def _conditions(self, product_id, start, end) -> list:
        conditions = []
        if product_id:
            conditions.append(Defect.product_id == product_id)
        if start:
            conditions.append(Defect.created_at >= start)
        if end:
            conditions.append(Defect.created_at <= end)
        return conditions

    def _group_counts(self, column, conditions: list) -> List[GroupCount]:
        statement = (
            select(column, func.count(Defect.id))
            .where(*conditions)
            .group_by(column)
        )
        return [
            GroupCount(key=_key(value), count=count)
            for value, count in self.session.exec(statement).all()
        ]

    @staticmethod
    def _by_count(groups: List[GroupCount]) -> List[GroupCount]:
        return sorted(groups, key=lambda g: (-g.count, g.key))

    def _daily_trend(self, conditions: list) -> List[TrendPoint]:
        tz = ZoneInfo(settings.stats_timezone)
        buckets: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"total": 0, "critical": 0, "major": 0, "minor": 0}
        )

        rows = self.session.exec(
            select(Defect.created_at, Defect.severity).where(*conditions)
        ).all()

        for created_at, severity in rows:
            day = (
                created_at.replace(tzinfo=timezone.utc)
                .astimezone(tz)
                .date()
                .isoformat()
            )
            bucket = buckets[day]
            bucket["total"] += 1
            if severity in (DefectSeverity.CRITICAL, DefectSeverity.MAJOR, DefectSeverity.MINOR):
                bucket[_key(severity)] += 1

        return [
            TrendPoint(date=day, **counts)
            for day, counts in sorted(buckets.items())
        ]

    def get_defect_stats(
        self,
        product_id: Optional[uuid.UUID] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> DefectStats:
        start, end = parse_date_range(start_date, end_date)
        conditions = self._conditions(product_id, start, end)

        return DefectStats(
            by_type=self._by_count(
                self._group_counts(Defect.type, conditions)),
            # Alphabetical (critical, major, minor), not by urgency
            by_severity=sorted(
                self._group_counts(Defect.severity, conditions),
                key=lambda g: g.key
            ),
            by_root_cause=self._by_count(
                self._group_counts(Defect.root_cause, conditions)),
            by_status=self._by_count(
                self._group_counts(Defect.status, conditions)),
            trend=self._daily_trend(conditions)
        )

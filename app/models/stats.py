from typing import List
from sqlmodel import SQLModel


class GroupCount(SQLModel):
    key: str
    count: int


class TrendPoint(SQLModel):
    date: str  # YYYY-MM-DD in the configured stats timezone
    total: int
    critical: int
    major: int
    minor: int


class DefectStats(SQLModel):
    by_type: List[GroupCount]
    by_severity: List[GroupCount]
    by_root_cause: List[GroupCount]
    by_status: List[GroupCount]
    trend: List[TrendPoint]

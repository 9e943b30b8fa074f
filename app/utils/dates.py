from datetime import datetime, timezone
from typing import Optional, Tuple
from fastapi import HTTPException


def parse_instant(value: str) -> datetime:
    """
    Parses an ISO-8601 date or datetime into naive UTC, the form every
    timestamp column is stored in. Raises ValueError on bad input.
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_date_range(
    start_date: Optional[str],
    end_date: Optional[str]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Validates an inclusive created-at range given as query strings.
    Either bound may be omitted; an end before the start is rejected.
    """
    start = end = None

    if start_date:
        try:
            start = parse_instant(start_date)
        except ValueError:
            raise HTTPException(
                status_code=400, detail="Invalid start date format.")

    if end_date:
        try:
            end = parse_instant(end_date)
        except ValueError:
            raise HTTPException(
                status_code=400, detail="Invalid end date format.")

    if start and end and end < start:
        raise HTTPException(
            status_code=400,
            detail="End date cannot be earlier than start date."
        )

    return start, end

from typing import Optional
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_reading_time(seconds: int) -> str:
    """Format reading time for display (e.g., 45s, 12m, 1.5h)"""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{round(seconds / 60)}m"
    else:
        return f"{seconds / 3600:.1f}h"


def display_name(email: Optional[str]) -> str:
    """Name shown next to a comment: the local part of the author's email"""
    if not email:
        return "Anonymous"
    return email.split("@")[0] or "Anonymous"


def minutes_between(start: Optional[datetime], end: Optional[datetime]) -> float:
    if start is None or end is None:
        return 0.0
    return (end - start).total_seconds() / 60

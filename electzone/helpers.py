# electzone/helpers.py
# Small formatting and grouping utilities shared by the routes
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from electzone.config import STUDENT_ID_PATTERN

DateLike = Union[str, datetime, None]


def parse_datetime(value: DateLike) -> Optional[datetime]:
    """Accepts datetimes or ISO strings (with or without a trailing Z). Naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def format_date(value: DateLike) -> str:
    d = parse_datetime(value)
    if d is None:
        return ""
    return d.strftime("%B %d, %Y %I:%M %p")


def is_election_active(election: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    """Running and inside its voting window."""
    if not election:
        return False
    if election.get("status") != "running":
        return False
    now = now or datetime.now(timezone.utc)
    start = parse_datetime(election.get("start_at"))
    end = parse_datetime(election.get("end_at"))
    if start is None or end is None:
        return False
    return start <= now <= end


def get_time_remaining(end_date: DateLike, now: Optional[datetime] = None) -> str:
    end = parse_datetime(end_date)
    if end is None:
        return "Unknown"
    now = now or datetime.now(timezone.utc)
    diff = (end - now).total_seconds()
    if diff <= 0:
        return "Ended"

    days = int(diff // 86400)
    hours = int((diff % 86400) // 3600)
    minutes = int((diff % 3600) // 60)

    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} remaining"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} remaining"
    return f"{minutes} minute{'s' if minutes != 1 else ''} remaining"


def group_by(items: Iterable[Dict[str, Any]], key: str, default: str = "Other") -> Dict[str, List[Dict[str, Any]]]:
    result: Dict[str, List[Dict[str, Any]]] = {}
    for item in items:
        group = item.get(key) or default
        result.setdefault(group, []).append(item)
    return result


def calculate_percentage(value: int, total: int) -> str:
    if not total:
        return "0.00"
    return f"{(value / total) * 100:.2f}"


def is_valid_student_id(student_id: str) -> bool:
    return bool(student_id) and re.match(STUDENT_ID_PATTERN, student_id) is not None


def get_initials(name: str) -> str:
    if not name:
        return "?"
    return "".join(part[0] for part in name.split() if part).upper()[:2]

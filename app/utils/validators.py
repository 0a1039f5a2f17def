import json
import re
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from dateutil import parser as date_parser

from app.utils.responses import APIError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?\d{7,16}$")
TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
WEEK_DAYS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
# PostgreSQL INTEGER
MAX_DB_ID = 2 ** 31 - 1


def is_valid_email(email: Optional[str]) -> bool:
    if not email or not isinstance(email, str):
        return False
    return bool(EMAIL_PATTERN.match(email))


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone or not isinstance(phone, str):
        return False
    return bool(PHONE_PATTERN.match(re.sub(r"[\s\-\(\)]", "", phone)))


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and bool(TIME_PATTERN.match(value))


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def as_db_id(value: Any) -> Optional[int]:
    """Positive integer that fits an INTEGER primary key, or None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()):
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    return value if 0 < value <= MAX_DB_ID else None


def parse_id(value: str, code: str = "INVALID_ID", message: str = "Invalid ID") -> int:
    """Path ids are positive integers; anything else is rejected before lookup"""
    parsed = as_db_id(value)
    if parsed is None:
        raise APIError(400, message, code)
    return parsed


def like_pattern(term: str) -> str:
    """Substring pattern for LIKE/ILIKE with wildcards in the term matched literally (escape char \\)"""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-ish date/datetime; returns None when the value is not a date"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None
    try:
        parsed = date_parser.isoparse(value)
    except ValueError:
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_positive_int(value: Any, default: int) -> int:
    """Lenient query parsing: non-numeric or non-positive values fall back to the default"""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


def parse_json_list(value: Any) -> Optional[List[Any]]:
    """
    Accept a list or a JSON-encoded list (multipart forms send JSON strings).
    Returns None for malformed input so callers can treat it as an explicit empty case.
    """
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            return None
        return decoded if isinstance(decoded, list) else None
    return None

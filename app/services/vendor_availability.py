"""
Vendor availability: a weekly schedule of working windows plus a list of
blocked calendar dates. The two lists are validated independently and are
not checked against each other.
"""
from typing import Any, List

from app.utils.responses import APIError
from app.utils.validators import WEEK_DAYS, is_valid_time, parse_datetime


def validate_schedule(schedule: Any) -> List[dict]:
    if not isinstance(schedule, list):
        raise APIError(400, "availabilitySchedule must be an array", "INVALID_AVAILABILITY_SCHEDULE")

    cleaned = []
    for slot in schedule:
        if not isinstance(slot, dict) or slot.get("dayOfWeek") not in WEEK_DAYS:
            raise APIError(400, "Invalid dayOfWeek in availabilitySchedule", "INVALID_DAY_OF_WEEK")
        if not is_valid_time(slot.get("startTime")):
            raise APIError(400, "Invalid startTime format in availabilitySchedule (use HH:MM)", "INVALID_START_TIME")
        if not is_valid_time(slot.get("endTime")):
            raise APIError(400, "Invalid endTime format in availabilitySchedule (use HH:MM)", "INVALID_END_TIME")
        cleaned.append({
            "dayOfWeek": slot["dayOfWeek"],
            "startTime": slot["startTime"],
            "endTime": slot["endTime"],
        })
    return cleaned


def validate_unavailable_dates(dates: Any) -> List[dict]:
    if not isinstance(dates, list):
        raise APIError(400, "unavailableDates must be an array", "INVALID_UNAVAILABLE_DATES")

    cleaned = []
    for entry in dates:
        parsed = parse_datetime(entry.get("date")) if isinstance(entry, dict) else None
        if parsed is None:
            raise APIError(400, "Invalid date format in unavailableDates", "INVALID_DATE_FORMAT")
        item = {"date": parsed.date().isoformat()}
        if entry.get("reason"):
            item["reason"] = entry["reason"]
        cleaned.append(item)
    return cleaned


def merge_blocked_dates(existing: List[dict], new_dates: List[dict]) -> List[dict]:
    """Append new blocked dates; a date already blocked keeps its original entry"""
    merged = list(existing or [])
    seen = {item.get("date") for item in merged}
    for item in new_dates:
        if item["date"] not in seen:
            merged.append(item)
            seen.add(item["date"])
    return sorted(merged, key=lambda item: item.get("date") or "")

"""timetrack_shared.records — Time record model, validation and key layout.

Table layout (single table, one item per record):

    PK      USER#{userId}
    SK      RECORD#{date}#{recordId}     date-ordered, supports range queries
    GSI1PK  PROJECT#{project}
    GSI1SK  DATE#{date}
"""

from __future__ import annotations

import datetime as dt
import math
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from timetrack_shared.serialization import _now_iso

__all__ = [
    "RECORD_PREFIX",
    "TimeRecordInput",
    "ValidationResult",
    "build_record",
    "calculate_duration",
    "date_range_condition",
    "gsi_keys",
    "parse_timestamp",
    "round_half_up",
    "sort_key",
    "user_pk",
    "validate_time_record_payload",
]

USER_PREFIX = "USER#"
RECORD_PREFIX = "RECORD#"
PROJECT_PREFIX = "PROJECT#"
DATE_PREFIX = "DATE#"
# Sorts after every character that can follow the date in a sort key.
_RANGE_END_SENTINEL = "~"

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)


def user_pk(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def sort_key(date: str, record_id: str) -> str:
    return f"{RECORD_PREFIX}{date}#{record_id}"


def gsi_keys(project: str, date: str) -> Dict[str, str]:
    return {"GSI1PK": f"{PROJECT_PREFIX}{project}", "GSI1SK": f"{DATE_PREFIX}{date}"}


def date_range_condition(start_date: Optional[str], end_date: Optional[str]) -> Dict[str, Any]:
    """Sort-key condition for an inclusive date range.

    Returns the condition fragment and its placeholder values; callers AND it
    onto ``PK = :pk``.
    """
    if start_date and end_date:
        return {
            "expression": "SK BETWEEN :startSK AND :endSK",
            "values": {
                ":startSK": f"{RECORD_PREFIX}{start_date}",
                ":endSK": f"{RECORD_PREFIX}{end_date}{_RANGE_END_SENTINEL}",
            },
        }
    if start_date:
        return {
            "expression": "SK >= :startSK",
            "values": {":startSK": f"{RECORD_PREFIX}{start_date}"},
        }
    if end_date:
        return {
            "expression": "SK <= :endSK",
            "values": {":endSK": f"{RECORD_PREFIX}{end_date}{_RANGE_END_SENTINEL}"},
        }
    return {
        "expression": "begins_with(SK, :skPrefix)",
        "values": {":skPrefix": RECORD_PREFIX},
    }


def parse_timestamp(raw: Any) -> Optional[dt.datetime]:
    """Parse an ISO 8601 string to an aware UTC datetime, or None."""
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        parsed = dt.datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_duration(start_time: str, end_time: str) -> int:
    """Whole minutes between two ISO 8601 timestamps, rounded half up."""
    start = parse_timestamp(start_time)
    end = parse_timestamp(end_time)
    if start is None or end is None:
        raise ValueError("start and end must be ISO 8601 timestamps")
    return round_half_up((end - start).total_seconds() / 60.0)


@dataclass
class TimeRecordInput:
    """A validated create/update payload."""

    project: str
    start_time: str
    end_time: str
    date: str
    comment: str = ""
    tags: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    record: Optional[TimeRecordInput] = None
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def message(self) -> str:
        return f"Validation errors: {', '.join(self.errors)}"


def validate_time_record_payload(data: Dict[str, Any]) -> ValidationResult:
    """Check a create/update body, collecting every violation."""
    errors: List[str] = []

    project = data.get("project")
    if not isinstance(project, str) or not project.strip():
        errors.append("Project is required and must be a non-empty string")

    start_raw = data.get("startTime")
    start = None
    if not start_raw or not isinstance(start_raw, str):
        errors.append("Start time is required and must be a valid ISO 8601 string")
    else:
        start = parse_timestamp(start_raw)
        if start is None:
            errors.append("Start time must be a valid ISO 8601 timestamp")

    end_raw = data.get("endTime")
    end = None
    if not end_raw or not isinstance(end_raw, str):
        errors.append("End time is required and must be a valid ISO 8601 string")
    else:
        end = parse_timestamp(end_raw)
        if end is None:
            errors.append("End time must be a valid ISO 8601 timestamp")

    date = data.get("date")
    if not date or not isinstance(date, str):
        errors.append("Date is required and must be in YYYY-MM-DD format")
    elif not _DATE_RE.fullmatch(date):
        errors.append("Date must be in YYYY-MM-DD format")

    if start is not None and end is not None and end <= start:
        errors.append("End time must be after start time")

    comment = data.get("comment")
    if comment is not None and not isinstance(comment, str):
        errors.append("Comment must be a string")

    tags = data.get("tags")
    if tags is not None and not isinstance(tags, list):
        errors.append("Tags must be an array")
    elif tags and not all(isinstance(tag, str) for tag in tags):
        errors.append("All tags must be strings")

    if errors:
        return ValidationResult(errors=errors)

    return ValidationResult(
        record=TimeRecordInput(
            project=project.strip(),
            start_time=start_raw,
            end_time=end_raw,
            date=date,
            comment=comment or "",
            tags=list(tags or []),
        )
    )


def build_record(
    user_id: str,
    payload: TimeRecordInput,
    *,
    record_id: Optional[str] = None,
    created_at: Optional[str] = None,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """Assemble the full stored item for a record, recomputing duration."""
    record_id = record_id or str(uuid.uuid4())
    now = now or _now_iso()
    item: Dict[str, Any] = {
        "PK": user_pk(user_id),
        "SK": sort_key(payload.date, record_id),
        **gsi_keys(payload.project, payload.date),
        "recordId": record_id,
        "userId": user_id,
        "project": payload.project,
        "startTime": payload.start_time,
        "endTime": payload.end_time,
        "date": payload.date,
        "duration": calculate_duration(payload.start_time, payload.end_time),
        "comment": payload.comment,
        "tags": list(payload.tags),
        "createdAt": created_at or now,
        "updatedAt": now,
    }
    return item

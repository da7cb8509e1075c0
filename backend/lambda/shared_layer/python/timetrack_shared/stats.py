"""timetrack_shared.stats — Fold a user's time records into summary totals."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from timetrack_shared.records import round_half_up

STATS_PROJECTION = ["project", "duration", "date", "tags"]


def _duration(record: Dict[str, Any]) -> int:
    try:
        return int(record.get("duration") or 0)
    except (TypeError, ValueError):
        return 0


def _descending(totals: Dict[str, int], label: str) -> List[Dict[str, Any]]:
    # sorted() is stable, so ties keep first-seen order
    rows = [{label: name, "duration": duration} for name, duration in totals.items()]
    return sorted(rows, key=lambda row: row["duration"], reverse=True)


def aggregate_statistics(records: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    project_stats: Dict[str, int] = {}
    tag_stats: Dict[str, int] = {}
    daily_stats: Dict[str, int] = {}
    total_duration = 0
    total_records = 0

    for record in records:
        duration = _duration(record)
        total_duration += duration
        total_records += 1

        project = record.get("project")
        if project:
            project_stats[project] = project_stats.get(project, 0) + duration

        tags = record.get("tags")
        if isinstance(tags, list):
            for tag in tags:
                tag_stats[tag] = tag_stats.get(tag, 0) + duration

        date = record.get("date")
        if date:
            daily_stats[date] = daily_stats.get(date, 0) + duration

    total_days = len(daily_stats)
    average = total_duration / total_days if total_days else 0

    return {
        "totalDuration": total_duration,
        "totalRecords": total_records,
        "totalDays": total_days,
        "averageDailyTime": round_half_up(average),
        "projectTotals": _descending(project_stats, "project"),
        "tagTotals": _descending(tag_stats, "tag"),
        "dailyTotals": [
            {"date": date, "duration": daily_stats[date]} for date in sorted(daily_stats)
        ],
    }

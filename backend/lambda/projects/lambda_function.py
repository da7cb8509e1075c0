"""projects/lambda_function.py

Lambda API for project listings derived from a user's time records.

Routes (via API Gateway proxy):
    GET     /api/projects
    GET     /api/projects/suggestions?q&limit
    OPTIONS /api/projects*

Environment variables:
    TABLE_NAME                default: time-records
    DEFAULT_SUGGESTION_LIMIT  default: 10
    SUGGESTION_SCAN_LIMIT     default: 100
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from timetrack_shared.auth import extract_owner_id
from timetrack_shared.aws_clients import _get_ddb
from timetrack_shared.config import (
    DEFAULT_SUGGESTION_LIMIT,
    SUGGESTION_SCAN_LIMIT,
    TABLE_NAME,
    logger,
)
from timetrack_shared.http_utils import (
    _error,
    _int_param,
    _options_response,
    _path_method,
    _query_params,
    _response,
)
from timetrack_shared.store import StoreError, TimeRecordStore

_PROJECTS_PATH = "/api/projects"
_SUGGESTIONS_PATH = "/api/projects/suggestions"


def _get_store() -> TimeRecordStore:
    return TimeRecordStore(_get_ddb(), TABLE_NAME)


def summarize_projects(records: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-project totals, most recently used first."""
    projects: Dict[str, Dict[str, Any]] = {}
    for record in records:
        name = record.get("project")
        if not name:
            continue
        updated_at = str(record.get("updatedAt") or "")
        entry = projects.get(name)
        if entry is None:
            projects[name] = {
                "projectName": name,
                "totalDuration": int(record.get("duration") or 0),
                "totalRecords": 1,
                "lastUsed": updated_at,
            }
            continue
        entry["totalDuration"] += int(record.get("duration") or 0)
        entry["totalRecords"] += 1
        if updated_at > entry["lastUsed"]:
            entry["lastUsed"] = updated_at
    return sorted(projects.values(), key=lambda p: p["lastUsed"], reverse=True)


def suggest_projects(records: Iterable[Dict[str, Any]], query: str = "", limit: int = DEFAULT_SUGGESTION_LIMIT) -> List[str]:
    needle = query.lower()
    last_used: Dict[str, str] = {}
    for record in records:
        name = record.get("project")
        if not name or (needle and needle not in name.lower()):
            continue
        updated_at = str(record.get("updatedAt") or "")
        if name not in last_used or updated_at > last_used[name]:
            last_used[name] = updated_at
    ranked = sorted(last_used, key=lambda name: last_used[name], reverse=True)
    return ranked[:limit]


def _get_projects(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    records = store.iter_records(owner_id, projection=["project", "duration", "updatedAt"])
    projects = summarize_projects(records)
    return _response(200, {"projects": projects, "count": len(projects)})


def _get_suggestions(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    params = _query_params(event)
    try:
        limit = _int_param(params, "limit", DEFAULT_SUGGESTION_LIMIT)
    except ValueError as exc:
        return _error(400, str(exc))

    records = store.recent_records(owner_id, SUGGESTION_SCAN_LIMIT, projection=["project", "updatedAt"])
    suggestions = suggest_projects(records, params.get("q") or "", limit)
    return _response(200, {"suggestions": suggestions, "count": len(suggestions)})


def lambda_handler(
    event: Dict[str, Any],
    context: Any,
    store: Optional[TimeRecordStore] = None,
) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    routes = {_PROJECTS_PATH: _get_projects, _SUGGESTIONS_PATH: _get_suggestions}
    route = routes.get(path) if method == "GET" else None
    if route is None:
        return _error(404, "Not found")

    owner_id = extract_owner_id(event)
    if not owner_id:
        return _error(401, "Unauthorized: User ID not found")

    try:
        return route(event, owner_id, store or _get_store())
    except StoreError as exc:
        logger.error("project lookup failed for %s: %s", owner_id, exc)
        return _error(500, "Internal server error")
    except Exception:
        logger.exception("unhandled error on %s %s", method, path)
        return _error(500, "Internal server error")

"""time_records/lambda_function.py

Lambda API for time record CRUD and statistics.

Routes (via API Gateway proxy):
    GET     /api/time-records?startDate&endDate&project&limit&nextToken
    POST    /api/time-records
    PUT     /api/time-records/{id}
    DELETE  /api/time-records/{id}
    GET     /api/stats?startDate&endDate
    OPTIONS /api/*

Auth:
    Owner id comes from the API Gateway request context (IAM identity,
    Cognito provider string or authorizer claims), see timetrack_shared.auth.

Environment variables:
    TABLE_NAME                default: time-records
    DYNAMODB_REGION           default: $AWS_REGION or us-east-1
    DEFAULT_LIST_LIMIT        default: 50
    MAX_LIST_LIMIT            default: 1000
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Optional

from timetrack_shared.auth import extract_owner_id
from timetrack_shared.aws_clients import _get_ddb
from timetrack_shared.config import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, TABLE_NAME, logger
from timetrack_shared.http_utils import (
    _error,
    _int_param,
    _json_body,
    _options_response,
    _path_method,
    _path_param,
    _query_params,
    _response,
)
from timetrack_shared.records import build_record, user_pk, validate_time_record_payload
from timetrack_shared.serialization import _decode_token, _deserialize, _encode_token
from timetrack_shared.stats import STATS_PROJECTION, aggregate_statistics
from timetrack_shared.store import StoreError, TimeRecordStore, latest_copy

_RECORDS_PATH = "/api/time-records"
_RECORD_ID_RE = re.compile(r"^/api/time-records/([^/]+)$")
_STATS_PATH = "/api/stats"
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}", re.ASCII)


def _get_store() -> TimeRecordStore:
    return TimeRecordStore(_get_ddb(), TABLE_NAME)


def _date_params(params: Dict[str, str]) -> tuple:
    start_date = (params.get("startDate") or "").strip() or None
    end_date = (params.get("endDate") or "").strip() or None
    for name, value in (("startDate", start_date), ("endDate", end_date)):
        if value and not _DATE_RE.fullmatch(value):
            raise ValueError(f"{name} must be in YYYY-MM-DD format")
    if start_date and end_date and start_date > end_date:
        raise ValueError("startDate must not be after endDate")
    return start_date, end_date


def _start_key(token: Optional[str], owner_id: str) -> Optional[Dict[str, Any]]:
    """Decode a nextToken, accepting only a key inside the caller's own partition."""
    key = _decode_token(token)
    if key is None:
        return None
    plain = _deserialize(key)
    if set(plain) != {"PK", "SK"} or plain["PK"] != user_pk(owner_id) or not isinstance(plain["SK"], str):
        raise ValueError("Invalid continuation token")
    return key


def _record_id(event: Dict[str, Any], path: str) -> Optional[str]:
    record_id = _path_param(event, "id")
    if record_id:
        return record_id
    match = _RECORD_ID_RE.match(path)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _list_records(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    params = _query_params(event)
    try:
        start_date, end_date = _date_params(params)
        limit = _int_param(params, "limit", DEFAULT_LIST_LIMIT)
        start_key = _start_key(params.get("nextToken"), owner_id)
    except ValueError as exc:
        return _error(400, str(exc))
    if limit < 1:
        return _error(400, "limit must be a positive integer")
    limit = min(limit, MAX_LIST_LIMIT)

    project = (params.get("project") or "").strip() or None
    page = store.query_records(
        owner_id,
        start_date=start_date,
        end_date=end_date,
        project=project,
        limit=limit,
        start_key=start_key,
    )
    logger.info("listed %d time records for %s", len(page.items), owner_id)
    return _response(
        200,
        {
            "timeRecords": page.items,
            "count": len(page.items),
            "lastEvaluatedKey": _deserialize(page.last_evaluated_key) if page.last_evaluated_key else None,
            "nextToken": _encode_token(page.last_evaluated_key),
        },
    )


def _create_record(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    try:
        body = _json_body(event)
    except ValueError as exc:
        return _error(400, str(exc))

    result = validate_time_record_payload(body)
    if not result.is_valid:
        return _error(400, result.message())

    item = store.put_record(build_record(owner_id, result.record))
    logger.info("created time record %s for %s", item["recordId"], owner_id)
    return _response(201, item)


def _update_record(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    _, path = _path_method(event)
    record_id = _record_id(event, path)
    if not record_id:
        return _error(400, "Record ID is required")

    try:
        body = _json_body(event)
    except ValueError as exc:
        return _error(400, str(exc))

    result = validate_time_record_payload(body)
    if not result.is_valid:
        return _error(400, result.message())

    copies = store.find_copies(owner_id, record_id)
    if not copies:
        return _error(404, "Time record not found")
    current = latest_copy(copies)

    item = build_record(
        owner_id,
        result.record,
        record_id=record_id,
        created_at=current.get("createdAt"),
    )
    saved = store.save_update(copies, item)
    if current["date"] != item["date"]:
        logger.info("moved time record %s from %s to %s", record_id, current["date"], item["date"])
    return _response(200, saved)


def _delete_record(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    _, path = _path_method(event)
    record_id = _record_id(event, path)
    if not record_id:
        return _error(400, "Record ID is required")

    copies = store.find_copies(owner_id, record_id)
    if not copies:
        return _error(404, "Time record not found")
    for copy in copies:
        store.delete_record(copy)

    logger.info("deleted time record %s for %s", record_id, owner_id)
    return _response(200, {"message": "Time record deleted successfully", "recordId": record_id})


def _get_statistics(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    try:
        start_date, end_date = _date_params(_query_params(event))
    except ValueError as exc:
        return _error(400, str(exc))

    records = store.iter_records(
        owner_id,
        start_date=start_date,
        end_date=end_date,
        projection=STATS_PROJECTION,
    )
    return _response(200, aggregate_statistics(records))


Route = Callable[[Dict[str, Any], str, TimeRecordStore], Dict[str, Any]]


def _match_route(method: str, path: str) -> Optional[Route]:
    if path == _RECORDS_PATH:
        return {"GET": _list_records, "POST": _create_record}.get(method)
    if _RECORD_ID_RE.match(path):
        return {"PUT": _update_record, "DELETE": _delete_record}.get(method)
    if path == _STATS_PATH and method == "GET":
        return _get_statistics
    return None


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(
    event: Dict[str, Any],
    context: Any,
    store: Optional[TimeRecordStore] = None,
) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    route = _match_route(method, path)
    if route is None:
        return _error(404, "Not found")

    owner_id = extract_owner_id(event)
    if not owner_id:
        return _error(401, "Unauthorized: User ID not found")

    logger.info("time_records %s %s owner=%s", method, path, owner_id)
    try:
        return route(event, owner_id, store or _get_store())
    except StoreError as exc:
        logger.error("time record store failure on %s %s: %s", method, path, exc)
        return _error(500, "Internal server error")
    except Exception:
        logger.exception("unhandled error on %s %s", method, path)
        return _error(500, "Internal server error")

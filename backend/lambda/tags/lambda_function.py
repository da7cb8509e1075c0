"""tags/lambda_function.py

Lambda API for tag suggestions drawn from a user's own time records.

Routes (via API Gateway proxy):
    GET     /api/tags?q&limit
    OPTIONS /api/tags

Environment variables:
    TABLE_NAME                default: time-records
    DEFAULT_TAG_LIMIT         default: 50
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from timetrack_shared.auth import extract_owner_id
from timetrack_shared.aws_clients import _get_ddb
from timetrack_shared.config import DEFAULT_TAG_LIMIT, TABLE_NAME, logger
from timetrack_shared.http_utils import (
    _error,
    _int_param,
    _options_response,
    _path_method,
    _query_params,
    _response,
)
from timetrack_shared.store import StoreError, TimeRecordStore

_TAGS_PATH = "/api/tags"


def _get_store() -> TimeRecordStore:
    return TimeRecordStore(_get_ddb(), TABLE_NAME)


def collect_tags(records: Iterable[Dict[str, Any]], query: str = "", limit: int = DEFAULT_TAG_LIMIT) -> List[str]:
    """Distinct tags across records, sorted, optionally filtered and truncated.

    ``query`` matches case-insensitively anywhere in the tag; a ``limit`` of
    zero or less disables truncation.
    """
    tag_set = set()
    for record in records:
        tags = record.get("tags")
        if isinstance(tags, list):
            tag_set.update(tag for tag in tags if isinstance(tag, str))

    tags = sorted(tag_set)
    if query:
        needle = query.lower()
        tags = [tag for tag in tags if needle in tag.lower()]
    if limit > 0:
        tags = tags[:limit]
    return tags


def _get_tags(event: Dict[str, Any], owner_id: str, store: TimeRecordStore) -> Dict[str, Any]:
    params = _query_params(event)
    try:
        limit = _int_param(params, "limit", DEFAULT_TAG_LIMIT)
    except ValueError as exc:
        return _error(400, str(exc))

    tags = collect_tags(store.iter_records(owner_id, projection=["tags"]), params.get("q") or "", limit)
    logger.info("returning %d tags for %s", len(tags), owner_id)
    return _response(200, {"tags": tags})


def lambda_handler(
    event: Dict[str, Any],
    context: Any,
    store: Optional[TimeRecordStore] = None,
) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    if path != _TAGS_PATH or method != "GET":
        return _error(404, "Not found")

    owner_id = extract_owner_id(event)
    if not owner_id:
        return _error(401, "Unauthorized: User ID not found")

    try:
        return _get_tags(event, owner_id, store or _get_store())
    except StoreError as exc:
        logger.error("tag lookup failed for %s: %s", owner_id, exc)
        return _error(500, "Internal server error")
    except Exception:
        logger.exception("unhandled error in tag lookup")
        return _error(500, "Internal server error")

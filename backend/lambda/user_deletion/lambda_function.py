"""user_deletion/lambda_function.py

Lambda API that erases every item stored under the caller's partition.

Routes (via API Gateway proxy):
    POST    /api/user/delete-all-data
    OPTIONS /api/user/delete-all-data

Deletion is sequential and not transactional: a failure part-way through
leaves the remaining items in place and returns 500. Calling again resumes
the erasure, since already-deleted items no longer appear in the partition.

Environment variables:
    TABLE_NAME                default: time-records
    MAX_DELETE_PAGES          default: 10000
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from timetrack_shared.auth import extract_owner_id
from timetrack_shared.aws_clients import _get_ddb
from timetrack_shared.config import MAX_DELETE_PAGES, TABLE_NAME, logger
from timetrack_shared.http_utils import _error, _options_response, _path_method, _response
from timetrack_shared.store import TimeRecordStore

_DELETE_ALL_PATH = "/api/user/delete-all-data"


def _get_store() -> TimeRecordStore:
    return TimeRecordStore(_get_ddb(), TABLE_NAME)


def delete_all_user_records(
    store: TimeRecordStore,
    user_id: str,
    max_pages: int = MAX_DELETE_PAGES,
) -> int:
    """Walk the user's partition page by page, deleting each item.

    Returns the number of deleted items. The first failed delete propagates.
    """
    logger.info("starting deletion of all records for user %s", user_id)
    deleted = 0
    pages = store.iter_record_pages(user_id, whole_partition=True)
    for page_number, page in enumerate(pages, start=1):
        if page_number > max_pages:
            raise RuntimeError(f"Bulk deletion for {user_id} exceeded {max_pages} pages")
        logger.info("deleting %d records from page %d", len(page.items), page_number)
        for item in page.items:
            try:
                store.delete_record(item)
            except Exception as exc:
                logger.error("failed to delete record %s: %s", item.get("SK"), exc)
                raise
            deleted += 1
    logger.info("deleted %d records for user %s", deleted, user_id)
    return deleted


def lambda_handler(
    event: Dict[str, Any],
    context: Any,
    store: Optional[TimeRecordStore] = None,
) -> Dict[str, Any]:
    method, path = _path_method(event)
    if method == "OPTIONS":
        return _options_response()

    if path != _DELETE_ALL_PATH or method != "POST":
        return _error(404, "Not found")

    owner_id = extract_owner_id(event)
    if not owner_id:
        return _error(401, "Unauthorized: User ID not found")

    try:
        deleted = delete_all_user_records(store or _get_store(), owner_id)
    except Exception as exc:
        logger.error("error deleting user data for %s: %s", owner_id, exc)
        return _error(500, "Internal server error while deleting user data")

    return _response(
        200,
        {
            "message": "All user data deleted successfully",
            "userId": owner_id,
            "deletedCount": deleted,
        },
    )

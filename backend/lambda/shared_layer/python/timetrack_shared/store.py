"""timetrack_shared.store — DynamoDB access for a user's time records.

`TimeRecordStore` wraps a low-level DynamoDB client and the table name. Each
Lambda builds one per invocation from the cached client and passes it into its
route functions, so tests can hand in a fake client instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from timetrack_shared.records import date_range_condition, user_pk
from timetrack_shared.serialization import _deserialize, _serialize, _serialize_item

logger = logging.getLogger(__name__)

__all__ = [
    "RecordPage",
    "StoreError",
    "TimeRecordStore",
    "latest_copy",
]

_MUTABLE_FIELDS = (
    "project",
    "startTime",
    "endTime",
    "duration",
    "comment",
    "tags",
    "updatedAt",
    "GSI1PK",
    "GSI1SK",
)


def latest_copy(copies: List[Dict[str, Any]]) -> Dict[str, Any]:
    """The current copy of a record: the one updated most recently."""
    return max(copies, key=lambda c: str(c.get("updatedAt") or ""))


class StoreError(RuntimeError):
    """A DynamoDB call failed; the request cannot be completed."""


@dataclass
class RecordPage:
    items: List[Dict[str, Any]] = field(default_factory=list)
    last_evaluated_key: Optional[Dict[str, Any]] = None

    @property
    def has_more(self) -> bool:
        return bool(self.last_evaluated_key)


class TimeRecordStore:
    def __init__(self, client: Any, table_name: str):
        self._ddb = client
        self.table_name = table_name

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _query_page(self, kwargs: Dict[str, Any], what: str) -> RecordPage:
        try:
            resp = self._ddb.query(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed querying {what}: {exc}") from exc
        return RecordPage(
            items=[_deserialize(item) for item in resp.get("Items", [])],
            last_evaluated_key=resp.get("LastEvaluatedKey") or None,
        )

    def _pages(
        self,
        kwargs: Dict[str, Any],
        what: str,
        start_key: Optional[Dict[str, Any]] = None,
    ) -> Iterator[RecordPage]:
        next_key = start_key
        while True:
            if next_key:
                kwargs["ExclusiveStartKey"] = next_key
            page = self._query_page(kwargs, what)
            yield page
            if not page.has_more:
                return
            next_key = page.last_evaluated_key

    def _base_query(
        self,
        user_id: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        projection: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        cond = date_range_condition(start_date, end_date)
        values = {":pk": user_pk(user_id), **cond["values"]}
        kwargs: Dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": f"PK = :pk AND {cond['expression']}",
            "ExpressionAttributeValues": {k: _serialize(v) for k, v in values.items()},
        }
        if projection:
            # project and date are reserved words
            names = {f"#p{i}": attr for i, attr in enumerate(projection)}
            kwargs["ProjectionExpression"] = ", ".join(names)
            kwargs["ExpressionAttributeNames"] = names
        return kwargs

    def query_records(
        self,
        user_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        project: Optional[str] = None,
        limit: int = 50,
        start_key: Optional[Dict[str, Any]] = None,
    ) -> RecordPage:
        """One page of a user's records in an inclusive date range, newest first."""
        kwargs = self._base_query(user_id, start_date, end_date)
        kwargs["ScanIndexForward"] = False
        kwargs["Limit"] = limit
        if project:
            kwargs["FilterExpression"] = "#project = :project"
            kwargs["ExpressionAttributeNames"] = {"#project": "project"}
            kwargs["ExpressionAttributeValues"][":project"] = _serialize(project)
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key
        return self._query_page(kwargs, "time records")

    def iter_record_pages(
        self,
        user_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        projection: Optional[List[str]] = None,
        start_key: Optional[Dict[str, Any]] = None,
        page_size: Optional[int] = None,
        whole_partition: bool = False,
    ) -> Iterator[RecordPage]:
        """Lazily page through a user's records.

        Each yielded page carries the continuation key needed to resume after
        it, so a caller can stop and restart from ``start_key``. With
        ``whole_partition`` every item under ``USER#{user_id}`` is walked, not
        only ``RECORD#`` items.
        """
        if whole_partition:
            kwargs: Dict[str, Any] = {
                "TableName": self.table_name,
                "KeyConditionExpression": "PK = :pk",
                "ExpressionAttributeValues": {":pk": _serialize(user_pk(user_id))},
            }
        else:
            kwargs = self._base_query(user_id, start_date, end_date, projection)
        if page_size:
            kwargs["Limit"] = page_size
        return self._pages(kwargs, "time record page", start_key)

    def iter_records(
        self,
        user_id: str,
        *,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        projection: Optional[List[str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        for page in self.iter_record_pages(
            user_id, start_date=start_date, end_date=end_date, projection=projection
        ):
            yield from page.items

    def recent_records(
        self,
        user_id: str,
        limit: int,
        projection: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        kwargs = self._base_query(user_id, projection=projection)
        kwargs["ScanIndexForward"] = False
        kwargs["Limit"] = limit
        return self._query_page(kwargs, "recent time records").items

    def find_copies(self, user_id: str, record_id: str) -> List[Dict[str, Any]]:
        """Every stored item carrying ``record_id`` in the user's partition.

        Normally zero or one. An interrupted date change leaves two.
        """
        kwargs = self._base_query(user_id)
        kwargs["FilterExpression"] = "recordId = :recordId"
        kwargs["ExpressionAttributeValues"][":recordId"] = _serialize(record_id)
        copies: List[Dict[str, Any]] = []
        for page in self._pages(kwargs, f"time record {record_id}"):
            copies.extend(page.items)
        return copies

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_record(self, item: Dict[str, Any]) -> Dict[str, Any]:
        try:
            self._ddb.put_item(
                TableName=self.table_name,
                Item=_serialize_item(item),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed creating time record: {exc}") from exc
        return item

    def update_record(self, existing: Dict[str, Any], item: Dict[str, Any]) -> Dict[str, Any]:
        """Rewrite a record's mutable fields in place; the key must not change."""
        names = {f"#{name}": name for name in _MUTABLE_FIELDS}
        values = {f":{name}": _serialize(item[name]) for name in _MUTABLE_FIELDS}
        values[":recordId"] = _serialize(existing["recordId"])
        try:
            resp = self._ddb.update_item(
                TableName=self.table_name,
                Key=_serialize_item({"PK": existing["PK"], "SK": existing["SK"]}),
                UpdateExpression="SET " + ", ".join(f"#{n} = :{n}" for n in _MUTABLE_FIELDS),
                ConditionExpression="recordId = :recordId",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed updating time record: {exc}") from exc
        attrs = resp.get("Attributes")
        return _deserialize(attrs) if attrs else item

    def move_record(self, existing: Dict[str, Any], item: Dict[str, Any]) -> Dict[str, Any]:
        """Re-key a record whose date changed, in two idempotent phases.

        Phase 1 writes the new key, overwriting only a copy of the same record.
        Phase 2 removes the old key. If phase 2 never runs the record exists
        twice; repeating the move converges.
        """
        try:
            self._ddb.put_item(
                TableName=self.table_name,
                Item=_serialize_item(item),
                ConditionExpression="attribute_not_exists(PK) OR recordId = :recordId",
                ExpressionAttributeValues={":recordId": _serialize(item["recordId"])},
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed writing moved time record: {exc}") from exc

        if existing["SK"] != item["SK"]:
            self.delete_record(existing)
        return item

    def save_update(self, copies: List[Dict[str, Any]], item: Dict[str, Any]) -> Dict[str, Any]:
        """Persist an updated record given every stored copy of it.

        Same date updates in place; a new date moves the record. Copies left
        behind by an earlier interrupted move are removed afterwards.
        """
        existing = latest_copy(copies)
        if existing["SK"] == item["SK"]:
            saved = self.update_record(existing, item)
        else:
            saved = self.move_record(existing, item)
        for copy in copies:
            if copy["SK"] not in (existing["SK"], item["SK"]):
                logger.info("removing stale copy %s of record %s", copy["SK"], item["recordId"])
                self.delete_record(copy)
        return saved

    def delete_record(self, item: Dict[str, Any]) -> None:
        try:
            self._ddb.delete_item(
                TableName=self.table_name,
                Key=_serialize_item({"PK": item["PK"], "SK": item["SK"]}),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StoreError(f"Failed deleting time record {item.get('SK')}: {exc}") from exc

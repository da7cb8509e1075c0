"""Shared pytest fixtures for the time tracking Lambdas.

Provides an in-memory stand-in for the low-level DynamoDB client covering the
expression shapes that timetrack_shared.store emits, with real Limit /
LastEvaluatedKey paging so pagination paths run for real.
"""

from __future__ import annotations

import os
import re
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest
from botocore.exceptions import ClientError

_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "shared_layer", "python"))

from timetrack_shared.store import TimeRecordStore  # noqa: E402

_BETWEEN_RE = re.compile(r"^PK = :pk AND SK BETWEEN (:\w+) AND (:\w+)$")
_GE_RE = re.compile(r"^PK = :pk AND SK >= (:\w+)$")
_LE_RE = re.compile(r"^PK = :pk AND SK <= (:\w+)$")
_BEGINS_RE = re.compile(r"^PK = :pk AND begins_with\(SK, (:\w+)\)$")
_EQ_RE = re.compile(r"^(#?\w+) = (:\w+)$")


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} (fake)"}}, operation)


def _s(attr: Dict[str, Any]) -> str:
    return attr["S"]


class FakeDynamoDB:
    """Single-table fake keyed on (PK, SK)."""

    def __init__(self):
        self.items: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        # operation name -> number of calls to let through before failing
        self.fail_after: Dict[str, int] = {}

    # -- helpers ---------------------------------------------------------

    def _maybe_fail(self, operation: str) -> None:
        if operation not in self.fail_after:
            return
        if self.fail_after[operation] <= 0:
            raise _client_error("InternalServerError", operation)
        self.fail_after[operation] -= 1

    def _resolve(self, token: str, names: Dict[str, str]) -> str:
        return names.get(token, token)

    def _condition_ok(self, current: Optional[Dict[str, Any]], expr: Optional[str], values: Dict[str, Any]) -> bool:
        if not expr:
            return True
        for clause in expr.split(" OR "):
            clause = clause.strip()
            if clause == "attribute_not_exists(PK)":
                if current is None:
                    return True
                continue
            match = _EQ_RE.match(clause)
            if match and current is not None and current.get(match.group(1)) == values[match.group(2)]:
                return True
        return False

    def _key_matches(self, sk: str, expr: str, values: Dict[str, Any]) -> bool:
        if expr == "PK = :pk":
            return True
        match = _BETWEEN_RE.match(expr)
        if match:
            return _s(values[match.group(1)]) <= sk <= _s(values[match.group(2)])
        match = _GE_RE.match(expr)
        if match:
            return sk >= _s(values[match.group(1)])
        match = _LE_RE.match(expr)
        if match:
            return sk <= _s(values[match.group(1)])
        match = _BEGINS_RE.match(expr)
        if match:
            return sk.startswith(_s(values[match.group(1)]))
        raise AssertionError(f"unsupported key condition: {expr}")

    # -- client API ------------------------------------------------------

    def put(self, item: Dict[str, Any]) -> None:
        """Seed a serialized item directly."""
        self.items[(_s(item["PK"]), _s(item["SK"]))] = dict(item)

    def query(self, **kwargs):
        self.calls.append(("query", kwargs))
        self._maybe_fail("query")
        values = kwargs.get("ExpressionAttributeValues") or {}
        names = kwargs.get("ExpressionAttributeNames") or {}
        pk = _s(values[":pk"])
        expr = kwargs["KeyConditionExpression"]

        keys = sorted(
            (key for key in self.items if key[0] == pk and self._key_matches(key[1], expr, values)),
            key=lambda key: key[1],
            reverse=not kwargs.get("ScanIndexForward", True),
        )
        start = kwargs.get("ExclusiveStartKey")
        if start:
            start_key = (_s(start["PK"]), _s(start["SK"]))
            if start_key in keys:
                keys = keys[keys.index(start_key) + 1:]
            else:
                forward = kwargs.get("ScanIndexForward", True)
                keys = [k for k in keys if (k[1] > start_key[1]) == forward and k[1] != start_key[1]]

        limit = kwargs.get("Limit")
        evaluated = keys[:limit] if limit else keys
        more = limit is not None and len(keys) > limit

        items = [self.items[key] for key in evaluated]
        filter_expr = kwargs.get("FilterExpression")
        if filter_expr:
            match = _EQ_RE.match(filter_expr)
            assert match, f"unsupported filter: {filter_expr}"
            attr = self._resolve(match.group(1), names)
            items = [item for item in items if item.get(attr) == values[match.group(2)]]

        projection = kwargs.get("ProjectionExpression")
        if projection:
            attrs = [self._resolve(p.strip(), names) for p in projection.split(",")]
            items = [{a: item[a] for a in attrs if a in item} for item in items]

        resp: Dict[str, Any] = {"Items": [dict(i) for i in items], "Count": len(items)}
        if more and evaluated:
            last = evaluated[-1]
            resp["LastEvaluatedKey"] = {"PK": {"S": last[0]}, "SK": {"S": last[1]}}
        return resp

    def put_item(self, **kwargs):
        self.calls.append(("put_item", kwargs))
        self._maybe_fail("put_item")
        item = kwargs["Item"]
        key = (_s(item["PK"]), _s(item["SK"]))
        if not self._condition_ok(self.items.get(key), kwargs.get("ConditionExpression"), kwargs.get("ExpressionAttributeValues") or {}):
            raise _client_error("ConditionalCheckFailedException", "PutItem")
        self.items[key] = dict(item)
        return {}

    def update_item(self, **kwargs):
        self.calls.append(("update_item", kwargs))
        self._maybe_fail("update_item")
        key = (_s(kwargs["Key"]["PK"]), _s(kwargs["Key"]["SK"]))
        current = self.items.get(key)
        values = kwargs.get("ExpressionAttributeValues") or {}
        names = kwargs.get("ExpressionAttributeNames") or {}
        if current is None or not self._condition_ok(current, kwargs.get("ConditionExpression"), values):
            raise _client_error("ConditionalCheckFailedException", "UpdateItem")
        expr = kwargs["UpdateExpression"]
        assert expr.startswith("SET ")
        updated = dict(current)
        for assignment in expr[len("SET "):].split(","):
            target, placeholder = (part.strip() for part in assignment.split("="))
            updated[self._resolve(target, names)] = values[placeholder]
        self.items[key] = updated
        return {"Attributes": dict(updated)}

    def delete_item(self, **kwargs):
        self.calls.append(("delete_item", kwargs))
        self._maybe_fail("delete_item")
        key = (_s(kwargs["Key"]["PK"]), _s(kwargs["Key"]["SK"]))
        self.items.pop(key, None)
        return {}

    def count(self, pk: str) -> int:
        return sum(1 for key in self.items if key[0] == pk)


@pytest.fixture
def fake_ddb() -> FakeDynamoDB:
    return FakeDynamoDB()


@pytest.fixture
def store(fake_ddb) -> TimeRecordStore:
    return TimeRecordStore(fake_ddb, "time-records-test")

"""timetrack_shared.serialization — DynamoDB serialization/deserialization.

Provides TypeSerializer/TypeDeserializer wrappers, continuation-token
encoding and timestamp helpers used across the time tracking Lambdas.
"""

from __future__ import annotations

import base64
import datetime as dt
import json
from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

_SER = TypeSerializer()
_DESER = TypeDeserializer()


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == int(value) else float(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, set):
        return sorted(_plain(v) for v in value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _serialize(value: Any) -> Any:
    """Serialize a Python value for DynamoDB."""
    if isinstance(value, float):
        value = Decimal(str(value))
    return _SER.serialize(value)


def _serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _serialize(v) for k, v in item.items()}


def _deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Deserialize a DynamoDB item to a plain Python dict."""
    return {k: _plain(_DESER.deserialize(v)) for k, v in item.items()}


def _encode_token(key: Optional[Dict[str, Any]]) -> Optional[str]:
    """Encode a LastEvaluatedKey as an opaque URL-safe token."""
    if not key:
        return None
    raw = json.dumps(_deserialize(key), sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def _decode_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode a token produced by _encode_token back into an ExclusiveStartKey.

    Raises ValueError for anything that is not a token we issued.
    """
    if not token:
        return None
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
        key = json.loads(raw)
    except (ValueError, UnicodeError) as exc:
        raise ValueError("Invalid continuation token") from exc
    if not isinstance(key, dict) or not key:
        raise ValueError("Invalid continuation token")
    return _serialize_item(key)


def _now_iso() -> str:
    """Current UTC timestamp, ISO 8601 with millisecond precision and Z suffix."""
    now = dt.datetime.now(dt.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

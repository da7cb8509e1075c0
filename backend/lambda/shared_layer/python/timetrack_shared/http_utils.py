"""timetrack_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope, request parsing and error formatting used by all
time tracking API Lambda functions. Accepts both API Gateway REST proxy events
(`httpMethod`/`path`) and HTTP API v2 events (`requestContext.http`/`rawPath`).
"""

from __future__ import annotations

import base64
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from timetrack_shared.config import CORS_ALLOW_ORIGIN

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": CORS_ALLOW_ORIGIN,
    "Access-Control-Allow-Headers": (
        "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token,"
        "X-Amz-User-Agent,X-Amz-Content-Sha256,X-Amz-Target"
    ),
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    "Access-Control-Max-Age": "86400",
}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    if isinstance(obj, set):
        return sorted(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            **CORS_HEADERS,
        },
        "body": json.dumps(body, default=_json_default),
    }


def _error(status_code: int, message: str) -> Dict[str, Any]:
    """Build a standard error response: ``{"error": message}``."""
    return _response(status_code, {"error": message})


def _options_response() -> Dict[str, Any]:
    """CORS preflight: always 200, CORS headers, empty body."""
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
        "body": "",
    }


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from a REST or HTTP API event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = event.get("path") or http.get("path") or event.get("rawPath") or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    return method, path


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return dict(event.get("queryStringParameters") or {})


def _path_param(event: Dict[str, Any], name: str) -> Optional[str]:
    value = (event.get("pathParameters") or {}).get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON object body of an event (handles base64).

    Raises ValueError with a client-facing message when the body is missing,
    is not valid JSON, or is not a JSON object.
    """
    raw = event.get("body")
    if raw in (None, ""):
        raise ValueError("Request body is required")
    if event.get("isBase64Encoded"):
        try:
            raw = base64.b64decode(raw).decode("utf-8")
        except (ValueError, UnicodeError) as exc:
            raise ValueError("Invalid JSON in request body") from exc
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError("Invalid JSON in request body") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Request body must be a JSON object")
    return parsed


def _int_param(params: Dict[str, str], name: str, default: int) -> int:
    """Parse an integer query parameter; raises ValueError on garbage."""
    raw = params.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc

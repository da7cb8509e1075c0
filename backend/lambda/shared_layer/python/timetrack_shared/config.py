"""timetrack_shared.config — Environment variables, limits and logging.

Every Lambda in the time tracking API reads its settings from here so that the
same table, CORS policy and limits apply across functions.
"""

from __future__ import annotations

import logging
import os

__all__ = [
    "COGNITO_CLIENT_ID",
    "COGNITO_USER_POOL_ID",
    "CORS_ALLOW_ORIGIN",
    "DEFAULT_LIST_LIMIT",
    "DEFAULT_SUGGESTION_LIMIT",
    "DEFAULT_TAG_LIMIT",
    "DYNAMODB_REGION",
    "LOG_LEVEL",
    "MAX_DELETE_PAGES",
    "MAX_LIST_LIMIT",
    "SUGGESTION_SCAN_LIMIT",
    "TABLE_NAME",
    "logger",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

TABLE_NAME = os.environ.get("TABLE_NAME", "time-records")
DYNAMODB_REGION = os.environ.get("DYNAMODB_REGION", os.environ.get("AWS_REGION", "us-east-1"))
CORS_ALLOW_ORIGIN = os.environ.get("CORS_ALLOW_ORIGIN", "*")

COGNITO_USER_POOL_ID = os.environ.get("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID = os.environ.get("COGNITO_CLIENT_ID", "")

DEFAULT_LIST_LIMIT = int(os.environ.get("DEFAULT_LIST_LIMIT", "50"))
MAX_LIST_LIMIT = int(os.environ.get("MAX_LIST_LIMIT", "1000"))
DEFAULT_TAG_LIMIT = int(os.environ.get("DEFAULT_TAG_LIMIT", "50"))
DEFAULT_SUGGESTION_LIMIT = int(os.environ.get("DEFAULT_SUGGESTION_LIMIT", "10"))
SUGGESTION_SCAN_LIMIT = int(os.environ.get("SUGGESTION_SCAN_LIMIT", "100"))
MAX_DELETE_PAGES = int(os.environ.get("MAX_DELETE_PAGES", "10000"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(LOG_LEVEL)

"""timetrack_shared.aws_clients — Lazy-singleton AWS service clients.

The DynamoDB client is created on first call and cached for the lifetime of
the Lambda container, so cold starts only pay the boto3 construction cost
when a route actually touches the table.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from timetrack_shared.config import DYNAMODB_REGION

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_ddb = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        # Single attempt: a failed store call is terminal for the request.
        _ddb = boto3.client(
            "dynamodb",
            region_name=region or DYNAMODB_REGION,
            config=Config(retries={"max_attempts": 1, "mode": "standard"}),
        )
    return _ddb

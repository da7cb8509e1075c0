"""timetrack_shared — Shared utilities for the time tracking Lambda functions.

Provides:
    - Caller identity extraction (IAM identity, Cognito provider string, authorizer claims)
    - DynamoDB client singleton
    - HTTP response helpers with CORS
    - DynamoDB serialization/deserialization
    - Time record validation, storage access and statistics aggregation
"""

__version__ = "1.0.0"

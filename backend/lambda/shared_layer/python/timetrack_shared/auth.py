"""timetrack_shared.auth — Caller identity extraction for the time tracking Lambdas.

The owner identifier partitions every time record, so each route resolves it
first. Sources, in order of preference:

    1. requestContext.identity.cognitoIdentityId (IAM-authorized proxy)
    2. CognitoSignIn:<id> inside cognitoAuthenticationProvider
    3. sub claim from a Cognito token authorizer (REST or HTTP API shape)
    4. sub claim of a verified `Authorization: Bearer` id token, only when
       COGNITO_USER_POOL_ID is configured

Requires no environment variables for 1-3. Source 4 reads:
    COGNITO_USER_POOL_ID   — e.g. us-east-1_AbCdEf123
    COGNITO_CLIENT_ID      — expected token audience
"""

from __future__ import annotations

import json
import logging
import re
import time
import urllib.request
from typing import Any, Dict, Optional

import jwt
from jwt.algorithms import RSAAlgorithm

from timetrack_shared import config

logger = logging.getLogger(__name__)

_COGNITO_SIGN_IN_RE = re.compile(r"CognitoSignIn:([^,]+)")

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_cache: Dict[str, Any] = {}
_jwks_fetched_at: float = 0.0
_JWKS_TTL: float = 3600.0


def _get_jwks() -> Dict[str, Any]:
    """Fetch (and cache) Cognito User Pool JWKS."""
    global _jwks_cache, _jwks_fetched_at
    now = time.time()
    if _jwks_cache and (now - _jwks_fetched_at) < _JWKS_TTL:
        return _jwks_cache

    pool_id = config.COGNITO_USER_POOL_ID
    if not pool_id:
        raise ValueError("COGNITO_USER_POOL_ID not set")

    region = pool_id.split("_")[0]
    url = f"https://cognito-idp.{region}.amazonaws.com/{pool_id}/.well-known/jwks.json"

    with urllib.request.urlopen(url, timeout=5) as resp:
        data = json.loads(resp.read())

    new_cache: Dict[str, Any] = {}
    for key_data in data.get("keys", []):
        new_cache[key_data["kid"]] = RSAAlgorithm.from_jwk(json.dumps(key_data))

    _jwks_cache = new_cache
    _jwks_fetched_at = now
    return _jwks_cache


def _verify_token(token: str) -> Dict[str, Any]:
    """Verify a Cognito JWT (RS256). Returns decoded claims dict."""
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise ValueError(f"Invalid token header: {exc}") from exc

    kid = header.get("kid")
    alg = header.get("alg", "RS256")
    if alg != "RS256":
        raise ValueError(f"Unexpected token algorithm: {alg}")

    key = _get_jwks().get(kid)
    if key is None:
        raise ValueError("Token key ID not found in JWKS")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=config.COGNITO_CLIENT_ID or None,
            options={"verify_exp": True, "verify_aud": bool(config.COGNITO_CLIENT_ID)},
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired. Please sign in again.")
    except jwt.InvalidAudienceError:
        raise ValueError("Token audience mismatch.")
    except jwt.PyJWTError as exc:
        raise ValueError(f"Token validation failed: {exc}") from exc


def _extract_bearer(event: Dict[str, Any]) -> Optional[str]:
    headers = event.get("headers") or {}
    raw = headers.get("Authorization") or headers.get("authorization") or ""
    if not raw.startswith("Bearer "):
        return None
    token = raw[len("Bearer "):].strip()
    return token or None


def _from_identity(rc: Dict[str, Any]) -> Optional[str]:
    identity = rc.get("identity") or {}
    identity_id = identity.get("cognitoIdentityId")
    if identity_id:
        return str(identity_id)
    return None


def _from_provider(rc: Dict[str, Any]) -> Optional[str]:
    identity = rc.get("identity") or {}
    for provider in (
        identity.get("cognitoAuthenticationProvider"),
        rc.get("cognitoAuthenticationProvider"),
    ):
        if not provider:
            continue
        match = _COGNITO_SIGN_IN_RE.search(str(provider))
        if match:
            return match.group(1)
    return None


def _from_authorizer(rc: Dict[str, Any]) -> Optional[str]:
    authorizer = rc.get("authorizer") or {}
    for claims in (authorizer.get("claims"), (authorizer.get("jwt") or {}).get("claims")):
        if isinstance(claims, dict) and claims.get("sub"):
            return str(claims["sub"])
    return None


def _from_bearer(event: Dict[str, Any]) -> Optional[str]:
    if not config.COGNITO_USER_POOL_ID:
        return None
    token = _extract_bearer(event)
    if not token:
        return None
    try:
        claims = _verify_token(token)
    except (ValueError, OSError, KeyError, jwt.PyJWTError) as exc:
        logger.warning("bearer token rejected: %s", exc)
        return None
    sub = claims.get("sub")
    return str(sub) if sub else None


def extract_owner_id(event: Dict[str, Any]) -> Optional[str]:
    """Return the caller's owner identifier, or None when it cannot be resolved.

    Never raises; a None result means the request is unauthorized.
    """
    rc = event.get("requestContext") or {}
    if not isinstance(rc, dict):
        return None
    for resolve in (_from_identity, _from_provider, _from_authorizer):
        owner_id = resolve(rc)
        if owner_id:
            return owner_id
    return _from_bearer(event)

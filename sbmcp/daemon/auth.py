"""Token authentication for the MCP endpoint."""

import hmac
from collections.abc import Mapping
from typing import Any

from sbmcp.exceptions import AuthError

BEARER_PREFIX = "Bearer "

UNAUTHORIZED_BODY = {
    "error": "Unauthorized - Invalid or missing authentication token",
    "hint": (
        "Provide token via Authorization header (Bearer <token>), "
        'query parameter (?token=<token>), or request body ({"token": "<token>"})'
    ),
}


def extract_token(
    headers: Mapping[str, str],
    query: Mapping[str, str],
    body: Any = None,
) -> str | None:
    """Find the client's token.

    The Authorization bearer header wins over the ``token`` query parameter,
    which wins over a ``token`` field in a JSON object body.

    Args:
        headers: Request headers.
        query: Query parameters.
        body: Decoded JSON body, if any.

    Returns:
        The first non-empty token found, or None.
    """
    authorization = headers.get("Authorization", "")
    if authorization.startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX):].strip()
        if token:
            return token

    token = query.get("token")
    if token:
        return token

    if isinstance(body, dict):
        token = body.get("token")
        if isinstance(token, str) and token:
            return token
    return None


def token_matches(provided: str | None, expected: str) -> bool:
    """Constant-time token comparison."""
    if not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def authenticate(
    headers: Mapping[str, str],
    query: Mapping[str, str],
    body: Any,
    expected_token: str,
) -> None:
    """Check a request's credentials.

    Raises:
        AuthError: If no token was presented or it does not match.
    """
    if not token_matches(extract_token(headers, query, body), expected_token):
        raise AuthError("Invalid or missing authentication token")


"""JSON-RPC error codes and error helpers for the MCP endpoint.

Message framing and the initialize handshake belong to the MCP library's
streamable HTTP transport. This module covers the errors the bridge raises
itself, both before a request reaches a session and inside handlers.
"""

from enum import IntEnum
from typing import Any

from mcp.shared.exceptions import McpError
from mcp.types import ErrorData


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 error codes.

    Standard codes (-32700 to -32600) plus application-specific codes (-32001 to -32099).
    """

    # Standard JSON-RPC 2.0 errors
    PARSE_ERROR = -32700  # Invalid JSON
    INVALID_REQUEST = -32600  # Not a valid request object
    METHOD_NOT_FOUND = -32601  # Method does not exist
    INVALID_PARAMS = -32602  # Invalid method parameters
    INTERNAL_ERROR = -32603  # Internal JSON-RPC error

    # Application-specific errors
    SERVER_ERROR = -32000  # Transport/session level failure
    NOTE_NOT_FOUND = -32001
    STORE_ERROR = -32002
    NOTE_EXISTS = -32003
    INVALID_NOTE_NAME = -32004
    INVALID_ARGUMENT = -32005
    SESSION_NOT_FOUND = -32006
    UNAUTHORIZED = -32007


def error_body(code: int | ErrorCode, message: str, request_id: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC error response body.

    The id is null when the failing request's id is unknown.
    """
    return {
        "jsonrpc": "2.0",
        "error": {"code": int(code), "message": message},
        "id": request_id,
    }


def is_initialize_request(body: Any) -> bool:
    """True if a decoded message is an initialize request."""
    return isinstance(body, dict) and body.get("method") == "initialize" and "id" in body


# Map exception types to error codes
EXCEPTION_TO_ERROR_CODE: dict[str, ErrorCode] = {
    "NotFoundError": ErrorCode.NOTE_NOT_FOUND,
    "StoreError": ErrorCode.STORE_ERROR,
    "NoteExistsError": ErrorCode.NOTE_EXISTS,
    "InvalidNoteNameError": ErrorCode.INVALID_NOTE_NAME,
    "InvalidArgumentError": ErrorCode.INVALID_ARGUMENT,
    "SessionError": ErrorCode.SESSION_NOT_FOUND,
    "AuthError": ErrorCode.UNAUTHORIZED,
}


def exception_to_error_code(exc: Exception) -> ErrorCode:
    """Map an exception to its corresponding error code.

    Args:
        exc: The exception to map.

    Returns:
        The corresponding error code.
    """
    exc_type = type(exc).__name__
    return EXCEPTION_TO_ERROR_CODE.get(exc_type, ErrorCode.INTERNAL_ERROR)


def to_mcp_error(exc: Exception) -> McpError:
    """Wrap an exception so the MCP handler replies with its error code.

    Unrecognized exceptions become INTERNAL_ERROR replies.
    """
    if isinstance(exc, McpError):
        return exc
    return McpError(ErrorData(code=int(exception_to_error_code(exc)), message=str(exc) or type(exc).__name__))

"""Custom exceptions for the SilverBullet MCP bridge."""


class BridgeError(Exception):
    """Base exception for bridge errors."""

    pass


class ConfigError(BridgeError):
    """Raised when mandatory configuration is missing or invalid."""

    pass


class StoreError(BridgeError):
    """Raised when a call to the note store fails.

    Covers connection failures, non-2xx statuses and unparseable bodies.
    """

    def __init__(
        self,
        operation: str,
        name: str | None = None,
        cause: object = None,
        status: int | None = None,
        url: str | None = None,
    ) -> None:
        self.operation = operation
        self.name = name
        self.cause = cause
        self.status = status
        self.url = url
        target = f" {name}" if name else ""
        msg = f"Failed to {operation}{target} from SilverBullet API"
        if url:
            msg += f" ({url})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)

    @property
    def is_not_found(self) -> bool:
        """True when the store answered 404 for the target."""
        return self.status == 404


class NotFoundError(BridgeError):
    """Raised when a note is absent from a fresh listing."""

    def __init__(self, name: str, suggestions: list[str] | None = None) -> None:
        self.name = name
        self.suggestions = suggestions or []
        msg = f"Note {name} not found"
        if self.suggestions:
            msg += "\n\nDid you mean?\n  - " + "\n  - ".join(self.suggestions)
        super().__init__(msg)


class NoteExistsError(BridgeError):
    """Raised when creating a note that already exists without overwrite."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Note {name} already exists. Use overwrite=true to replace it.")


class InvalidNoteNameError(BridgeError):
    """Raised when a note name does not follow the .md convention."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Filename must end with .md extension: {name}")


class InvalidPatternError(BridgeError):
    """Raised when a search pattern cannot be compiled as a regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid regex pattern {pattern!r}: {reason}")


class InvalidArgumentError(BridgeError):
    """Raised when a tool receives a missing or malformed argument."""

    pass


class SessionError(BridgeError):
    """Raised for a session id that is missing, unknown or already closed."""

    pass


class AuthError(BridgeError):
    """Raised when a client credential is missing or does not match."""

    pass


class ToolExecutionError(BridgeError):
    """Raised when an MCP tool fails; the message is what the client sees."""

    pass

from enum import IntEnum
from typing import Any, Dict, Optional, Type


class ErrorCode(IntEnum):
    """Numeric error codes shared with the backend."""

    # Connection
    CONNECTION_FAILED = -1
    TIMEOUT = 124

    # Object errors
    OBJECT_NOT_FOUND = 101
    INVALID_QUERY = 102
    INVALID_CLASS_NAME = 103
    MISSING_OBJECT_ID = 104
    INVALID_KEY_NAME = 105
    INVALID_POINTER = 106
    INVALID_JSON = 107
    COMMAND_UNAVAILABLE = 108
    NOT_INITIALIZED = 109
    INCORRECT_TYPE = 111
    INVALID_CHANNEL_NAME = 112
    PUSH_MISCONFIGURED = 115
    OBJECT_TOO_LARGE = 116
    OPERATION_FORBIDDEN = 119
    CACHE_MISS = 120
    INVALID_NESTED_KEY = 121
    INVALID_FILE_NAME = 122
    INVALID_ACL = 123
    INVALID_EMAIL_ADDRESS = 125
    DUPLICATE_VALUE = 137
    INVALID_ROLE_NAME = 139
    EXCEEDED_QUOTA = 140
    SCRIPT_FAILED = 141
    VALIDATION_ERROR = 142
    INVALID_IMAGE_DATA = 150
    UNSAVED_FILE_ERROR = 151
    INVALID_PUSH_TIME_ERROR = 152
    FILE_DELETE_ERROR = 153
    REQUEST_LIMIT_EXCEEDED = 155
    INVALID_EVENT_NAME = 160

    # User errors
    USERNAME_MISSING = 200
    PASSWORD_MISSING = 201
    USERNAME_TAKEN = 202
    EMAIL_TAKEN = 203
    EMAIL_MISSING = 204
    EMAIL_NOT_FOUND = 205
    SESSION_MISSING = 206
    MUST_CREATE_USER_THROUGH_SIGNUP = 207
    ACCOUNT_ALREADY_LINKED = 208
    INVALID_SESSION_TOKEN = 209

    # Other errors
    AGGREGATE_ERROR = 600
    FILE_READ_ERROR = 601


class ParseError(Exception):
    """Base exception for all client errors.

    Every failure surfaced by the library carries a numeric ``code`` and a
    human readable ``message``. Errors built from a server response also keep
    the raw body in ``details`` and the HTTP status in ``status_code``.
    """

    default_code: int = ErrorCode.CONNECTION_FAILED
    default_message: str = "An unknown error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = int(code if code is not None else self.default_code)
        self.message = message if message is not None else self.default_message
        self.details = details
        self.status_code = status_code
        super().__init__(self.message)

    @classmethod
    def from_json(
        cls, data: Dict[str, Any], status_code: Optional[int] = None
    ) -> "ParseError":
        code = data.get("code")
        if not isinstance(code, int):
            code = ErrorCode.CONNECTION_FAILED
        message = data.get("error") or data.get("message") or "Unknown error"
        return cls(str(message), code=code, details=data, status_code=status_code)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(ParseError):
    """Error raised for invalid local input, e.g. writing a reserved key."""

    default_code = ErrorCode.INVALID_KEY_NAME
    default_message = "Invalid input."


class PreconditionError(ParseError):
    """Error raised when an operation needs state the object does not have."""

    default_code = ErrorCode.MISSING_OBJECT_ID
    default_message = "Object has no objectId."


class RemoteError(ParseError):
    """Structured error reported by the backend."""

    default_message = "The server returned an error."


class ObjectNotFound(RemoteError):
    """Error raised when the backend reports a missing object."""

    default_code = ErrorCode.OBJECT_NOT_FOUND
    default_message = "Object not found."


class ConnectivityError(ParseError):
    """Transport failure: connection refused, reset or timed out."""

    default_code = ErrorCode.CONNECTION_FAILED
    default_message = "Unable to connect to the server."


class NotInitialized(ParseError):
    """Error raised when no configured client is available."""

    default_code = ErrorCode.NOT_INITIALIZED
    default_message = "Client not configured. Call configure() first."


class ConfigError(NotInitialized):
    """Error raised for missing optional collaborators (storage, sockets)."""

    default_message = "Client configuration is incomplete."


class CircularReferenceError(ParseError):
    """Error raised when encoding meets an object already being encoded."""

    default_code = ErrorCode.INVALID_JSON
    default_message = "Circular reference detected."


_ERROR_MAP: Dict[int, Type[ParseError]] = {
    ErrorCode.OBJECT_NOT_FOUND: ObjectNotFound,
}


def error_from_response(
    data: Dict[str, Any], status_code: Optional[int] = None
) -> ParseError:
    """Build the typed error for a structured ``{code, error}`` body."""
    code = data.get("code")
    exc_cls = _ERROR_MAP.get(code, RemoteError) if isinstance(code, int) else RemoteError
    return exc_cls.from_json(data, status_code=status_code)

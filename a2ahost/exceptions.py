"""Custom exception hierarchy for a2ahost.

Errors that can surface over the wire carry their JSON-RPC ``code``.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """JSON-RPC 2.0 and A2A error codes."""

    # Standard JSON-RPC errors
    INVALID_PAYLOAD = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000

    # A2A-specific errors
    TASK_NOT_FOUND = -32001
    TASK_NOT_CANCELABLE = -32002
    PUSH_NOTIFICATION_NOT_SUPPORTED = -32003
    UNSUPPORTED_OPERATION = -32004
    INCOMPATIBLE_CONTENT_TYPES = -32005
    STREAMING_NOT_SUPPORTED = -32006
    AUTHENTICATION_REQUIRED = -32007
    AUTHORIZATION_FAILED = -32008
    INVALID_TASK_STATE = -32009
    RATE_LIMIT_EXCEEDED = -32010
    RESOURCE_UNAVAILABLE = -32011


class A2AHostError(Exception):
    """Base for all a2ahost errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    label: str = "Internal server error"


class InvalidArgumentError(A2AHostError, ValueError):
    """A library function was called with an unusable argument."""


class InvalidPayloadError(A2AHostError):
    """The request body is not valid JSON."""

    code = ErrorCode.INVALID_PAYLOAD
    label = "Invalid JSON payload"


class InvalidRequestError(A2AHostError):
    """The body is JSON but not a JSON-RPC request object."""

    code = ErrorCode.INVALID_REQUEST
    label = "Invalid JSON-RPC Request"


class MethodNotFoundError(A2AHostError):
    """No handler for the requested method."""

    code = ErrorCode.METHOD_NOT_FOUND
    label = "Method not found"


class InvalidParamsError(A2AHostError):
    """The method parameters are missing or malformed."""

    code = ErrorCode.INVALID_PARAMS
    label = "Invalid method parameters"


class InternalError(A2AHostError):
    """Catch-all for failures while serving a request."""


class PlanningFailedError(InternalError):
    """The oracle did not return a non-empty plan."""


class SessionTimeoutError(InternalError):
    """The session lock could not be acquired in time."""


class AuthorizationFailedError(A2AHostError):
    """Access key missing or wrong."""

    code = ErrorCode.AUTHORIZATION_FAILED
    label = "Authorization failed"


class ConfigurationError(A2AHostError):
    """A required collaborator was not supplied."""

    code = ErrorCode.RESOURCE_UNAVAILABLE
    label = "A required resource is unavailable"


class CapabilityNotFoundError(A2AHostError, KeyError):
    """Requested capability does not exist in the table."""

"""
Rich Domain Exceptions

Exception hierarchy for protocol and transport errors.
Supports structured error information, error codes, and context.

Domain outcomes of store operations (invalid index, ended event) are not
exceptions: the store reports them as tagged results carrying an ErrorCode.
"""

from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Store outcomes
    INVALID_INDEX = "INVALID_INDEX"
    EVENT_ENDED = "EVENT_ENDED"

    # Protocol errors
    MALFORMED_REQUEST = "MALFORMED_REQUEST"
    UNKNOWN_REQUEST_TYPE = "UNKNOWN_REQUEST_TYPE"

    # System errors
    TRANSPORT_ERROR = "TRANSPORT_ERROR"


class DomainException(Exception):
    """
    Base class for all domain exceptions.

    Provides structured error information with error codes, context, and metadata.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize domain exception.

        Args:
            message: Human-readable error message
            error_code: Standard error code
            context: Additional context data
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

        logger.warning(
            "Domain exception raised",
            error_code=error_code.value,
            message=message,
            context=context,
            exception_type=type(self).__name__,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging and diagnostics."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "type": type(self).__name__,
        }
        if self.context:
            result["context"] = self.context
        return result


class MalformedRequestError(DomainException):
    """Raised when a request payload cannot be parsed."""

    def __init__(
        self,
        message: str = "Malformed request",
        field: str | None = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if field:
            context["field"] = field

        super().__init__(
            message=message,
            error_code=ErrorCode.MALFORMED_REQUEST,
            context=context,
            **kwargs
        )
        self.field = field


class UnknownRequestTypeError(DomainException):
    """Raised when a request carries a tag outside the known request types."""

    def __init__(
        self,
        request_type: str,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        context["request_type"] = request_type

        super().__init__(
            message=f"Unknown request type: {request_type!r}",
            error_code=ErrorCode.UNKNOWN_REQUEST_TYPE,
            context=context,
            **kwargs
        )
        self.request_type = request_type


class TransportError(DomainException):
    """Raised when sending to or receiving from a peer fails."""

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        **kwargs
    ):
        context = kwargs.pop("context", {})
        if host is not None:
            context["host"] = host
        if port is not None:
            context["port"] = port

        super().__init__(
            message=message,
            error_code=ErrorCode.TRANSPORT_ERROR,
            context=context,
            **kwargs
        )


class ServerStartupError(TransportError):
    """Raised when the server cannot bind its listening socket."""

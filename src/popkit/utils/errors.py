"""Centralized error handling for popkit."""

from enum import Enum
from typing import Any, Dict

from popkit.utils.logging import get_logger

_logger = None


def _get_logger():
    """Get logger with lazy initialisation."""
    global _logger
    if _logger is None:
        _logger = get_logger(__name__)
    return _logger


## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    PROTOCOL = "protocol"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


## Custom Exceptions


class PopKitError(Exception):
    """Base exception for all popkit errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise PopKitError with optional message and details."""
        self.message = message or self.user_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error details to a dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
        }


## Transport Errors


class TransportError(PopKitError):
    """Connectivity failure on the underlying byte stream."""

    category = ErrorCategory.NETWORK
    user_message = "Failed to communicate with the mail server"


class NetworkTimeoutError(TransportError):
    """Exception for network timeout errors."""

    user_message = "The connection timed out"


class TLSHandshakeError(TransportError):
    """Exception for failed TLS negotiation."""

    user_message = "TLS negotiation with the mail server failed"


## Protocol Errors


class ProtocolStateError(PopKitError):
    """A command was issued in a session state that does not permit it."""

    category = ErrorCategory.PROTOCOL
    user_message = "Command is not valid in the current session state"


class ProtocolError(PopKitError):
    """The server sent a negative or malformed response."""

    category = ErrorCategory.PROTOCOL
    user_message = "The mail server rejected the command"


class CapabilityError(ProtocolError):
    """The server does not advertise a required capability."""

    user_message = "The mail server does not support this command"


## Authentication Errors


class AuthError(PopKitError):
    """Credentials were rejected during authentication."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "Authentication failed"


## Validation Errors


class ArgumentError(PopKitError, ValueError):
    """A required parameter is missing or invalid."""

    category = ErrorCategory.VALIDATION
    user_message = "A required argument is missing"


## Configuration Errors


class ConfigError(PopKitError):
    """Invalid configuration, such as an unknown authentication mechanism."""

    category = ErrorCategory.CONFIGURATION
    user_message = "Invalid configuration settings"


## Error Handler


class ErrorHandler:
    """Centralized error handling and logging."""

    @staticmethod
    def handle(
        error: Exception, context: str = "", log_traceback: bool = True
    ) -> Dict[str, Any]:
        """Handle errors with logging and user-friendly message."""
        if isinstance(error, PopKitError):
            _get_logger().error(f"{context}: {error.message}", extra=error.details)
            if log_traceback:
                _get_logger().exception(error)
            return error.to_dict()
        else:
            _get_logger().error(f"{context}: {str(error)}")
            if log_traceback:
                _get_logger().exception(error)
            return {
                "error_type": "UnknownError",
                "category": ErrorCategory.UNKNOWN.value,
                "message": str(error),
                "details": {"context": context},
            }


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, PopKitError):
        return error.message
    else:
        return "An unexpected error occurred - check logs for details."

"""Centralized error types for relaymail."""

from enum import Enum
from typing import Any, Dict, Optional

## Error Categories


class ErrorCategory(Enum):
    """Categories of errors for better handling."""

    NETWORK = "network"
    PROTOCOL = "protocol"
    AUTHENTICATION = "authentication"
    DELIVERY = "delivery"
    VALIDATION = "validation"
    FILE_SYSTEM = "file_system"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


## Custom Exceptions


class RelayMailError(Exception):
    """Base exception for all relaymail errors."""

    category = ErrorCategory.UNKNOWN
    user_message = "An error occurred"

    def __init__(
        self, message: str | None = None, details: Dict[str, Any] | None = None
    ):
        """Initialise RelayMailError with optional message and details."""
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


## Network Errors


class NetworkError(RelayMailError):
    """Base exception for network-related errors."""

    category = ErrorCategory.NETWORK
    user_message = "A network error occurred"


class TransportError(NetworkError):
    """Exception for socket and TLS failures (unreachable, handshake, reset)."""

    user_message = "Failed to communicate with the mail relay"


class SMTPTimeoutError(NetworkError, TimeoutError):
    """Exception raised when the relay does not answer within the bound."""

    user_message = "The mail relay did not respond in time"


## Protocol Errors


class ProtocolError(RelayMailError):
    """Base exception for SMTP protocol violations."""

    category = ErrorCategory.PROTOCOL
    user_message = "The mail relay sent an invalid response"


class DecodeError(ProtocolError):
    """Exception for malformed or unexpected server replies."""

    user_message = "Failed to decode the mail relay response"


## SMTP Reply Errors


class SMTPError(RelayMailError):
    """Base exception for rejections carrying an SMTP reply code."""

    category = ErrorCategory.DELIVERY
    user_message = "The mail relay rejected the request"

    def __init__(
        self,
        message: str | None = None,
        code: Optional[int] = None,
        text: str = "",
        details: Dict[str, Any] | None = None,
    ):
        self.code = code
        self.text = text
        details = dict(details or {})
        if code is not None:
            details.setdefault("code", code)
            details.setdefault("reply", text)
        super().__init__(message, details)


class AuthenticationError(SMTPError):
    """Exception raised when the relay rejects the account credentials."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "The mail relay rejected the credentials"


class DeliveryError(SMTPError):
    """Exception raised when the relay rejects the envelope or message."""

    user_message = "The mail relay refused to deliver the message"


## Validation Errors


class ValidationError(RelayMailError):
    """Base exception for validation-related errors."""

    category = ErrorCategory.VALIDATION
    user_message = "Invalid input"


class InvalidEmailAddressError(ValidationError):
    """Exception for invalid email addresses."""

    user_message = "Invalid email address"


## File System Errors


class FileSystemError(RelayMailError):
    """Base exception for file system-related errors."""

    category = ErrorCategory.FILE_SYSTEM
    user_message = "A file system error occurred"


## Configuration Errors


class ConfigurationError(RelayMailError):
    """Base exception for configuration-related errors."""

    category = ErrorCategory.CONFIGURATION
    user_message = "A configuration error occurred"


class MissingConfigError(ConfigurationError):
    """Exception for missing configuration settings."""

    user_message = "Missing configuration settings"


class InvalidConfigError(ConfigurationError):
    """Exception for invalid configuration settings."""

    user_message = "Invalid configuration settings"


class MissingCredentialsError(MissingConfigError):
    """Exception for missing relay credentials."""

    user_message = "Relay credentials not configured"


## Key Store Errors


class KeyStoreError(RelayMailError):
    """Base exception for key store-related errors."""

    category = ErrorCategory.AUTHENTICATION
    user_message = "A key store error occurred"


class KeyringUnavailableError(KeyStoreError):
    """Exception when keyring service is unavailable."""

    user_message = "Keyring service is unavailable"


## Utility Functions


def format_error_message(error: Exception) -> str:
    """Format an error message for display."""
    if isinstance(error, SMTPError) and error.code is not None:
        reply = f"{error.code} {error.text}".strip()
        return f"{error.message} ({reply})"
    if isinstance(error, RelayMailError):
        return error.message
    return "An unexpected error occurred - check logs for details."

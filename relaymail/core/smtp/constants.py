"""SMTP constants and configuration values."""


class SMTPResponse:
    """SMTP response codes the client acts on."""

    # 2xx Success
    AUTH_SUCCESSFUL = 235  # Authentication successful
    OK = 250  # Requested mail action okay, completed

    # 3xx Intermediate
    START_MAIL = 354  # Start mail input; end with <CRLF>.<CRLF>

    # 4xx Transient Failure
    SERVICE_NOT_AVAILABLE = 421  # Service not available, closing channel


class Timeouts:
    """Timeout values for SMTP operations (in seconds)."""

    SMTP_CONNECT = 30.0  # TCP connect plus TLS handshake
    SMTP_REPLY = 30.0  # Waiting for one complete reply
    SMTP_CLOSE = 5.0  # Waiting for the socket to finish closing


class SMTPPorts:
    """Standard SMTP port numbers."""

    SUBMISSION_SSL = 465  # Implicit TLS/SSL


class ConnectionLimits:
    """Line and buffer limits."""

    MAX_BUFFERED_LINE = 4096  # Unterminated bytes tolerated before giving up
    READ_CHUNK = 4096  # Bytes requested per socket read


CRLF = b"\r\n"

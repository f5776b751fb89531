"""Hand-driven SMTP submission over implicit TLS.

Low-level components, one instance of each per delivery attempt:
- SMTPTransport: TLS socket lifecycle (open, write, read, close)
- ReplyDecoder: raw bytes -> complete SmtpReply values
- SMTPProtocol: sans-IO state machine deciding what to send next
- SMTPSession: runs the three together with per-reply timeouts

For sending one-time codes, use OneTimeCodeMailer from the services layer.

Direct Usage (Advanced)
-----------------------
    >>> from relaymail.core.smtp import SMTPSession
    >>> from relaymail.core.models import MailMessage
    >>> from relaymail.utils.config import ConfigManager
    >>>
    >>> relay = ConfigManager().config.relay
    >>> session = SMTPSession(relay, relay.credentials())
    >>> message = MailMessage(
    ...     sender=relay.sender_address,
    ...     recipient="user@example.com",
    ...     subject="Hello",
    ...     body="Hi there",
    ... )
    >>> result = await session.deliver(message)
    >>> print(result.state)

Recommended Usage
-----------------
    >>> from relaymail.core.services import OneTimeCodeMailer
    >>>
    >>> mailer = OneTimeCodeMailer(ConfigManager().config)
    >>> outcome = await mailer.deliver_one_time_code("user@example.com", "481516")
    >>> print(f"Success: {outcome.success}")
"""

from .protocol import SessionState, SMTPProtocol
from .replies import ReplyDecoder, SmtpReply
from .session import SessionResult, SMTPSession
from .transport import SMTPTransport

__all__ = [
    "ReplyDecoder",
    "SessionResult",
    "SessionState",
    "SMTPProtocol",
    "SMTPSession",
    "SMTPTransport",
    "SmtpReply",
]

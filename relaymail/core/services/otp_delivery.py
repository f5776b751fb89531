"""One-time code delivery service - composes the message and runs one session."""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from relaymail.core.models.message import MailMessage
from relaymail.core.smtp.session import SessionResult, SMTPSession, TransportFactory
from relaymail.utils.errors import RelayMailError, SMTPError
from relaymail.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)


@dataclass
class DeliveryOutcome:
    """Result of a single delivery attempt, observed once by the caller."""

    success: bool
    recipient: str
    duration: float = 0.0
    error: Optional[RelayMailError] = None

    @property
    def error_code(self) -> Optional[int]:
        """SMTP reply code when the relay rejected the attempt."""
        if isinstance(self.error, SMTPError):
            return self.error.code
        return None

    @property
    def failure_reason(self) -> Optional[str]:
        if self.error is None:
            return None
        return self.error.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "recipient": self.recipient,
            "duration": round(self.duration, 3),
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class DeliveryStats:
    """Tracks delivery metrics across attempts."""

    attempts: int = 0
    delivered: int = 0
    failures: int = 0
    total_send_time: float = 0.0
    last_operation_time: Optional[float] = None

    def record(self, duration: float, success: bool = True) -> None:
        """Record a delivery attempt.

        Args:
            duration: Time taken by the attempt in seconds
            success: Whether the relay accepted the message
        """
        self.attempts += 1
        self.total_send_time += duration
        self.last_operation_time = time.time()

        if success:
            self.delivered += 1
        else:
            self.failures += 1

    @property
    def avg_send_time(self) -> float:
        """Calculate average time of successful deliveries.

        Returns:
            Average send time in seconds, or 0.0 if nothing delivered
        """
        if self.delivered == 0:
            return 0.0
        return self.total_send_time / self.delivered

    @property
    def success_rate(self) -> float:
        """Calculate success rate as percentage.

        Returns:
            Success rate (0-100), or 0.0 if no attempts
        """
        if self.attempts == 0:
            return 0.0
        return (self.delivered / self.attempts) * 100


class OneTimeCodeMailer:
    """Transmits one-time passcodes through the configured relay.

    Generating, storing and expiring codes is the caller's business; so is
    any retry policy. A failed attempt is never retried here because the
    relay may already have accepted part of the transaction.
    """

    def __init__(self, config, transport_factory: Optional[TransportFactory] = None):
        """Initialise the mailer.

        Args:
            config: AppConfig providing ``relay`` and ``message`` sections
            transport_factory: Optional transport factory handed to every session
        """
        self.relay = config.relay
        self.message_config = config.message
        self._transport_factory = transport_factory
        self.stats = DeliveryStats()

    def compose(self, recipient: str, code: str) -> MailMessage:
        """Build the message carrying ``code`` for ``recipient``."""
        return MailMessage(
            sender=self.relay.sender_address,
            recipient=recipient,
            subject=self.message_config.subject,
            body=self.message_config.body_template.format(code=code),
        )

    def _new_session(self) -> SMTPSession:
        return SMTPSession(
            self.relay,
            self.relay.credentials(),
            transport_factory=self._transport_factory,
        )

    @async_log_call
    async def deliver_one_time_code(self, recipient: str, code: str) -> DeliveryOutcome:
        """Send ``code`` to ``recipient`` in a fresh SMTP session.

        Never raises for delivery problems; the outcome carries the error.

        Args:
            recipient: Destination email address
            code: The one-time code to transmit

        Returns:
            DeliveryOutcome describing success or the failure reason
        """
        start_time = time.monotonic()
        logger.info("Delivering one-time code", extra={"recipient": recipient})

        try:
            message = self.compose(recipient, code)
            result: SessionResult = await self._new_session().deliver(message)

        except RelayMailError as e:
            duration = time.monotonic() - start_time
            self.stats.record(duration, success=False)
            logger.error(
                "One-time code delivery failed",
                extra={
                    "recipient": recipient,
                    "error": e.message,
                    "error_type": e.__class__.__name__,
                    "duration_seconds": round(duration, 2),
                },
            )
            return DeliveryOutcome(
                success=False, recipient=recipient, duration=duration, error=e
            )

        self.stats.record(result.duration)
        logger.info(
            "One-time code delivered",
            extra={
                "recipient": recipient,
                "duration_seconds": round(result.duration, 2),
            },
        )
        return DeliveryOutcome(
            success=True, recipient=recipient, duration=result.duration
        )

    @async_log_call
    async def verify_relay(self) -> SessionResult:
        """Check that the relay accepts the configured credentials.

        Raises:
            RelayMailError: Any transport, protocol or authentication failure
        """
        return await self._new_session().verify()

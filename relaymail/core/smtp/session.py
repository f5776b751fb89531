"""SMTP session - drives one delivery attempt over one transport."""

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, List, Optional

from relaymail.core.models.message import Credentials, MailMessage
from relaymail.utils.errors import (
    RelayMailError,
    SMTPError,
    SMTPTimeoutError,
    TransportError,
)
from relaymail.utils.logging import get_logger

from .constants import Timeouts
from .protocol import SessionState, SMTPProtocol
from .replies import ReplyDecoder, SmtpReply
from .transport import SMTPTransport

TransportFactory = Callable[[], SMTPTransport]


@dataclass
class SessionResult:
    """Outcome of a session that reached CLOSED_SUCCESS."""

    state: SessionState
    duration: float = 0.0
    replies: int = 0
    last_reply: Optional[SmtpReply] = None
    capabilities: List[str] = field(default_factory=list)


class SMTPSession:
    """A single-use delivery attempt.

    Each session owns its transport, reply decoder and protocol state
    machine; nothing mutable is shared with other sessions, so any number of
    them can run concurrently on the same event loop.
    """

    def __init__(
        self,
        relay,
        credentials: Credentials,
        transport_factory: Optional[TransportFactory] = None,
    ):
        """Initialise a session.

        Args:
            relay: RelayConfig with host, port, TLS, timeout and pipelining settings
            credentials: Relay account credentials
            transport_factory: Callable returning an unopened transport; defaults
                to an SMTPTransport for the configured relay
        """
        self.relay = relay
        self.reply_timeout = relay.reply_timeout
        self.attempt_id = uuid.uuid4().hex[:8]
        self.protocol = SMTPProtocol(
            credentials,
            local_name=relay.local_name,
            pipelining=relay.pipelining,
        )
        self._transport_factory = transport_factory or self._default_transport
        self._decoder = ReplyDecoder()
        self._ready: Deque[SmtpReply] = deque()
        self._replies = 0
        self._used = False
        self.logger = get_logger(__name__, attempt=self.attempt_id)

    @property
    def state(self) -> SessionState:
        return self.protocol.state

    def _default_transport(self) -> SMTPTransport:
        return SMTPTransport(
            self.relay.host,
            self.relay.port,
            use_tls=self.relay.use_tls,
            connect_timeout=self.relay.connect_timeout,
        )

    async def deliver(self, message: MailMessage) -> SessionResult:
        """Submit one message.

        Raises:
            TransportError: Network or TLS failure
            SMTPTimeoutError: The relay did not answer within reply_timeout
            DecodeError: The relay sent a malformed or unsolicited reply
            AuthenticationError: The relay rejected the credentials
            DeliveryError: The relay rejected the session, envelope or body
        """
        return await self._run(message)

    async def verify(self) -> SessionResult:
        """Connect and authenticate only, without submitting a message."""
        return await self._run(None)

    async def _run(self, message: Optional[MailMessage]) -> SessionResult:
        if self._used:
            raise RuntimeError("SMTPSession instances are single-use")
        self._used = True

        start_time = time.monotonic()
        transport = self._transport_factory()

        try:
            await transport.open()
            outgoing = self.protocol.connection_made(message)

            while not self.protocol.state.is_closed:
                if outgoing:
                    await transport.write(outgoing)
                reply = await self._next_reply(transport)
                outgoing = self.protocol.receive(reply)

            await self._send_quietly(transport, outgoing)

        except SMTPError as e:
            await self._send_quietly(transport, self.protocol.quit_command())
            self._log_failure(e, start_time)
            raise

        except RelayMailError as e:
            self.protocol.abort(e)
            self._log_failure(e, start_time)
            raise

        except asyncio.CancelledError:
            self.protocol.abort(TransportError("Session cancelled by caller"))
            self.logger.info(
                "SMTP session cancelled", extra={"state": self.state.value}
            )
            raise

        finally:
            transport.close()
            await transport.wait_closed()

        duration = time.monotonic() - start_time
        self.logger.debug(
            "SMTP session completed",
            extra={"duration_seconds": round(duration, 3), "replies": self._replies},
        )

        return SessionResult(
            state=self.protocol.state,
            duration=duration,
            replies=self._replies,
            last_reply=self.protocol.last_reply,
            capabilities=list(self.protocol.capabilities),
        )

    async def _next_reply(self, transport: SMTPTransport) -> SmtpReply:
        try:
            reply = await asyncio.wait_for(
                self._read_reply(transport), timeout=self.reply_timeout
            )
        except asyncio.TimeoutError as e:
            raise SMTPTimeoutError(
                f"No reply from relay within {self.reply_timeout}s",
                details={"state": self.state.value, "timeout": self.reply_timeout},
            ) from e

        self._replies += 1
        return reply

    async def _read_reply(self, transport: SMTPTransport) -> SmtpReply:
        while not self._ready:
            chunk = await transport.read()
            if not chunk:
                where = "mid-reply" if self._decoder.has_partial else "unexpectedly"
                raise TransportError(
                    f"Relay closed the connection {where}",
                    details={"state": self.state.value},
                )
            self._ready.extend(self._decoder.feed(chunk))

        return self._ready.popleft()

    async def _send_quietly(self, transport: SMTPTransport, data: bytes) -> None:
        """Best-effort write used for QUIT; the session outcome is already decided."""
        if not data or not transport.is_open:
            return

        try:
            await asyncio.wait_for(transport.write(data), timeout=Timeouts.SMTP_CLOSE)
        except (TransportError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Ignoring error while sending QUIT: {e}")

    def _log_failure(self, error: RelayMailError, start_time: float) -> None:
        self.logger.warning(
            f"SMTP session failed: {error.message}",
            extra={
                "error_type": error.__class__.__name__,
                "state": self.state.value,
                "duration_seconds": round(time.monotonic() - start_time, 3),
            },
        )

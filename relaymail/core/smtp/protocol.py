"""SMTP protocol state machine.

``SMTPProtocol`` does no I/O. It is advanced by two kinds of events:

- ``connection_made(message)`` once the TLS channel is up
- ``receive(reply)`` for every complete reply the decoder produces

and each call returns the bytes that must be written next (possibly empty).
Every command written is queued as pending and every reply is matched to the
oldest pending command, so decisions are made on the reply to the right
command rather than on whatever text happens to arrive.

Two write policies are supported:

- lockstep (default): each command waits for its acknowledgement
- pipelined: EHLO and AUTH are written as soon as the channel is up, and
  MAIL, RCPT, DATA and the message body are written together once
  authentication succeeds
"""

from collections import deque
from enum import Enum
from typing import Deque, List, Optional

from relaymail.core.models.message import Credentials, MailMessage
from relaymail.utils.errors import (
    AuthenticationError,
    DecodeError,
    DeliveryError,
    RelayMailError,
)
from relaymail.utils.logging import get_logger

from .constants import CRLF, SMTPResponse
from .replies import SmtpReply

logger = get_logger(__name__)


class SessionState(Enum):
    """Lifecycle of one delivery attempt."""

    CONNECTING = "connecting"
    AWAIT_GREETING = "await_greeting"
    AUTHENTICATING = "authenticating"
    AWAIT_AUTH_RESULT = "await_auth_result"
    SENDING_ENVELOPE = "sending_envelope"
    SENDING_BODY = "sending_body"
    AWAIT_DELIVERY_RESULT = "await_delivery_result"
    CLOSED_SUCCESS = "closed_success"
    CLOSED_FAILURE = "closed_failure"

    @property
    def is_closed(self) -> bool:
        return self in (SessionState.CLOSED_SUCCESS, SessionState.CLOSED_FAILURE)


class Command(Enum):
    """Exchanges the client waits on, in the order they are issued."""

    GREETING = "greeting"
    EHLO = "EHLO"
    AUTH = "AUTH"
    MAIL = "MAIL"
    RCPT = "RCPT"
    DATA = "DATA"
    BODY = "body"


class SMTPProtocol:
    """Sans-IO driver for one authenticated single-recipient submission."""

    def __init__(
        self,
        credentials: Credentials,
        local_name: str = "localhost",
        pipelining: bool = False,
    ):
        self.credentials = credentials
        self.local_name = local_name
        self.pipelining = pipelining
        self.state = SessionState.CONNECTING
        self.message: Optional[MailMessage] = None
        self.capabilities: List[str] = []
        self.last_reply: Optional[SmtpReply] = None
        self.error: Optional[RelayMailError] = None
        self._pending: Deque[Command] = deque()

    ## Events

    def connection_made(self, message: Optional[MailMessage] = None) -> bytes:
        """Start the exchange. Without a message the session stops after AUTH."""
        self._require_state(SessionState.CONNECTING)
        self.message = message
        self._pending.append(Command.GREETING)

        if self.pipelining:
            self.state = SessionState.AWAIT_AUTH_RESULT
            return self._ehlo() + self._auth()

        self.state = SessionState.AWAIT_GREETING
        return b""

    def receive(self, reply: SmtpReply) -> bytes:
        """Apply one complete reply and return the bytes to write next.

        Raises:
            AuthenticationError: AUTH was answered with anything but 235
            DeliveryError: the relay rejected the session, envelope or body
            DecodeError: the reply does not answer any outstanding command
        """
        if self.state.is_closed:
            raise DecodeError(
                "Reply received after the session closed",
                details={"code": reply.code},
            )

        self.last_reply = reply

        if not self._pending:
            if reply.code == SMTPResponse.SERVICE_NOT_AVAILABLE:
                self._fail(
                    DeliveryError(
                        "Relay closed the session", code=reply.code, text=reply.text
                    )
                )
            self._fail(
                DecodeError(
                    f"Unsolicited reply from relay: {reply.code}",
                    details={"code": reply.code, "state": self.state.value},
                )
            )

        command = self._pending.popleft()
        logger.debug(
            "S: %s reply to %s", reply.code, command.value,
            extra={"state": self.state.value},
        )

        handler = getattr(self, f"_on_{command.name.lower()}")
        return handler(reply)

    def abort(self, error: RelayMailError) -> None:
        """Record a failure detected outside the state machine."""
        if not self.state.is_closed:
            self.state = SessionState.CLOSED_FAILURE
            self.error = error
        self._pending.clear()

    def quit_command(self) -> bytes:
        return self._command("QUIT")

    ## Reply Handlers

    def _on_greeting(self, reply: SmtpReply) -> bytes:
        if not reply.is_positive:
            self._reject(DeliveryError, "Relay refused the connection", reply)

        if self.pipelining:
            return b""

        self.state = SessionState.AUTHENTICATING
        return self._ehlo()

    def _on_ehlo(self, reply: SmtpReply) -> bytes:
        if not reply.is_positive:
            self._reject(DeliveryError, "Relay rejected EHLO", reply)

        # First line is the relay's greeting, the rest are extensions
        self.capabilities = [line.upper() for line in reply.lines[1:]]

        if self.pipelining:
            return b""

        self.state = SessionState.AWAIT_AUTH_RESULT
        return self._auth()

    def _on_auth(self, reply: SmtpReply) -> bytes:
        if reply.code != SMTPResponse.AUTH_SUCCESSFUL:
            self._reject(AuthenticationError, "Relay rejected the credentials", reply)

        logger.debug("Authenticated with relay")

        if self.message is None:
            return self._succeed()

        self.state = SessionState.SENDING_ENVELOPE
        if not self.pipelining:
            return self._mail()

        envelope = self._mail() + self._rcpt() + self._data()
        return envelope + self._body()

    def _on_mail(self, reply: SmtpReply) -> bytes:
        if not reply.is_positive:
            self._reject(DeliveryError, "Relay rejected the sender", reply)
        return b"" if self.pipelining else self._rcpt()

    def _on_rcpt(self, reply: SmtpReply) -> bytes:
        if not reply.is_positive:
            self._reject(DeliveryError, "Relay rejected the recipient", reply)
        return b"" if self.pipelining else self._data()

    def _on_data(self, reply: SmtpReply) -> bytes:
        if reply.code != SMTPResponse.START_MAIL:
            self._reject(DeliveryError, "Relay refused message data", reply)
        return b"" if self.pipelining else self._body()

    def _on_body(self, reply: SmtpReply) -> bytes:
        if reply.code != SMTPResponse.OK:
            self._reject(DeliveryError, "Relay did not accept the message", reply)
        return self._succeed()

    ## Outgoing Commands

    def _command(self, line: str) -> bytes:
        return line.encode("utf-8") + CRLF

    def _ehlo(self) -> bytes:
        self._pending.append(Command.EHLO)
        logger.debug("C: EHLO %s", self.local_name)
        return self._command(f"EHLO {self.local_name}")

    def _auth(self) -> bytes:
        self._pending.append(Command.AUTH)
        logger.debug("C: AUTH PLAIN")
        return self._command(f"AUTH PLAIN {self.credentials.auth_plain_token()}")

    def _mail(self) -> bytes:
        self._pending.append(Command.MAIL)
        logger.debug("C: MAIL FROM")
        return self._command(f"MAIL FROM:<{self.message.sender}>")

    def _rcpt(self) -> bytes:
        self._pending.append(Command.RCPT)
        logger.debug("C: RCPT TO")
        return self._command(f"RCPT TO:<{self.message.recipient}>")

    def _data(self) -> bytes:
        self._pending.append(Command.DATA)
        logger.debug("C: DATA")
        return self._command("DATA")

    def _body(self) -> bytes:
        self.state = SessionState.SENDING_BODY
        payload = self.message.render()
        self._pending.append(Command.BODY)
        self.state = SessionState.AWAIT_DELIVERY_RESULT
        logger.debug("C: <message body>", extra={"size": len(payload)})
        return payload

    ## Terminal Transitions

    def _succeed(self) -> bytes:
        self.state = SessionState.CLOSED_SUCCESS
        self._pending.clear()
        return self.quit_command()

    def _reject(self, error_cls: type, message: str, reply: SmtpReply) -> None:
        # 4xx replies may succeed on a later attempt, 5xx will not
        transient = reply.is_transient_failure
        logger.warning(
            "%s: %s", message, reply, extra={"state": self.state.value, "transient": transient}
        )
        self._fail(
            error_cls(
                message,
                code=reply.code,
                text=reply.text,
                details={"state": self.state.value, "transient": transient},
            )
        )

    def _fail(self, error: RelayMailError) -> None:
        self.abort(error)
        raise error

    def _require_state(self, expected: SessionState) -> None:
        if self.state is not expected:
            raise RuntimeError(
                f"Invalid protocol state {self.state.value}, expected {expected.value}"
            )


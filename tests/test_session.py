"""
Tests for SMTP session orchestration

Tests cover:
- Successful lockstep and pipelined delivery
- Rejections, timeouts, hang-ups and malformed replies
- Transport release on every exit path, including cancellation
- Concurrent independent sessions
"""
import asyncio

import pytest

from relaymail.core.smtp.protocol import SessionState
from relaymail.core.smtp.session import SMTPSession
from relaymail.utils.errors import (
    AuthenticationError,
    DecodeError,
    DeliveryError,
    SMTPTimeoutError,
    TransportError,
)

from .test_helpers import FakeRelayTransport


def _session(config, credentials, transport):
    return SMTPSession(config, credentials, transport_factory=lambda: transport)


class TestSuccessfulDelivery:
    """Tests for sessions the relay accepts"""

    @pytest.mark.asyncio
    async def test_lockstep_delivery(self, relay_config, credentials, test_message, fake_relay):
        """Test full exchange in lockstep order"""
        session = _session(relay_config, credentials, fake_relay)

        result = await session.deliver(test_message)

        assert result.state == SessionState.CLOSED_SUCCESS
        assert [c.split(" ")[0] for c in fake_relay.commands] == [
            "EHLO", "AUTH", "MAIL", "RCPT", "DATA", "QUIT"
        ]
        assert fake_relay.commands[2] == "MAIL FROM:<sender@test.com>"
        assert fake_relay.commands[3] == "RCPT TO:<recipient@example.com>"
        assert len(fake_relay.messages) == 1
        assert fake_relay.close_count == 1

    @pytest.mark.asyncio
    async def test_one_write_per_command_in_lockstep(
        self, relay_config, credentials, test_message, fake_relay
    ):
        """Test lockstep never batches commands"""
        session = _session(relay_config, credentials, fake_relay)

        await session.deliver(test_message)

        # EHLO, AUTH, MAIL, RCPT, DATA, body, QUIT
        assert len(fake_relay.written) == 7

    @pytest.mark.asyncio
    async def test_result_details(self, relay_config, credentials, test_message, fake_relay):
        """Test the result reports replies and relay extensions"""
        session = _session(relay_config, credentials, fake_relay)

        result = await session.deliver(test_message)

        assert result.replies == 7
        assert result.last_reply.code == 250
        assert "AUTH PLAIN LOGIN" in result.capabilities
        assert result.duration >= 0

    @pytest.mark.asyncio
    async def test_replies_split_into_single_bytes(
        self, relay_config, credentials, test_message
    ):
        """Test delivery when every reply arrives one byte at a time"""
        transport = FakeRelayTransport(chunk_size=1)
        session = _session(relay_config, credentials, transport)

        result = await session.deliver(test_message)

        assert result.state == SessionState.CLOSED_SUCCESS
        assert len(transport.messages) == 1

    @pytest.mark.asyncio
    async def test_pipelined_delivery(
        self, pipelined_config, credentials, test_message, fake_relay
    ):
        """Test the eager policy still waits for the final 250"""
        session = _session(pipelined_config, credentials, fake_relay)

        result = await session.deliver(test_message)

        assert result.state == SessionState.CLOSED_SUCCESS
        assert fake_relay.written[0].startswith(b"EHLO localhost\r\nAUTH PLAIN ")
        assert len(fake_relay.messages) == 1
        assert fake_relay.commands[-1] == "QUIT"
        assert fake_relay.close_count == 1

    @pytest.mark.asyncio
    async def test_message_is_dot_stuffed(self, relay_config, credentials, fake_relay):
        """Test body lines starting with a dot reach the relay stuffed"""
        from relaymail.core.models.message import MailMessage

        message = MailMessage(
            sender="sender@test.com",
            recipient="recipient@example.com",
            subject="Your OTP Code",
            body="Your OTP code is: 1234\n.\n.hidden",
        )
        session = _session(relay_config, credentials, fake_relay)

        await session.deliver(message)

        assert fake_relay.messages[0].endswith(b"\r\n..\r\n..hidden\r\n")


class TestVerify:
    """Tests for authentication-only sessions"""

    @pytest.mark.asyncio
    async def test_verify_stops_after_auth(self, relay_config, credentials, fake_relay):
        """Test verify never opens a mail transaction"""
        session = _session(relay_config, credentials, fake_relay)

        result = await session.verify()

        assert result.state == SessionState.CLOSED_SUCCESS
        assert fake_relay.envelope_commands == []
        assert fake_relay.commands[-1] == "QUIT"
        assert fake_relay.close_count == 1


class TestRejectedSessions:
    """Tests for relay rejections"""

    @pytest.mark.asyncio
    async def test_bad_credentials(self, relay_config, credentials, test_message):
        """Test 535 fails with AuthenticationError and no envelope"""
        transport = FakeRelayTransport(
            replies={"AUTH": b"535 5.7.8 Username and Password not accepted\r\n"}
        )
        session = _session(relay_config, credentials, transport)

        with pytest.raises(AuthenticationError) as exc_info:
            await session.deliver(test_message)

        assert exc_info.value.code == 535
        assert transport.envelope_commands == []
        assert transport.commands[-1] == "QUIT"
        assert transport.close_count == 1
        assert session.state == SessionState.CLOSED_FAILURE

    @pytest.mark.asyncio
    async def test_recipient_rejected(self, relay_config, credentials, test_message):
        """Test 550 to RCPT stops before DATA"""
        transport = FakeRelayTransport(replies={"RCPT": b"550 5.1.1 No such user\r\n"})
        session = _session(relay_config, credentials, transport)

        with pytest.raises(DeliveryError) as exc_info:
            await session.deliver(test_message)

        assert exc_info.value.code == 550
        assert "DATA" not in transport.commands
        assert transport.messages == []
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_greeting_rejected(self, relay_config, credentials, test_message):
        """Test a 554 greeting"""
        transport = FakeRelayTransport(replies={"GREETING": b"554 No SMTP service\r\n"})
        session = _session(relay_config, credentials, transport)

        with pytest.raises(DeliveryError):
            await session.deliver(test_message)

        assert transport.commands == ["QUIT"]
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_pipelined_bad_credentials(
        self, pipelined_config, credentials, test_message
    ):
        """Test pipelined sessions still send nothing after a failed AUTH"""
        transport = FakeRelayTransport(replies={"AUTH": b"535 5.7.8 Bad\r\n"})
        session = _session(pipelined_config, credentials, transport)

        with pytest.raises(AuthenticationError):
            await session.deliver(test_message)

        assert transport.envelope_commands == []
        assert transport.messages == []


class TestFailedSessions:
    """Tests for transport and decoding failures"""

    @pytest.mark.asyncio
    async def test_reply_timeout(self, relay_config, credentials, test_message):
        """Test a stalled relay fails with a timeout instead of hanging"""
        config = relay_config.model_copy(update={"reply_timeout": 0.05})
        transport = FakeRelayTransport(stall_on=["AUTH"])
        session = _session(config, credentials, transport)

        with pytest.raises(SMTPTimeoutError) as exc_info:
            await session.deliver(test_message)

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.details["state"] == SessionState.AWAIT_AUTH_RESULT.value
        assert transport.close_count == 1
        assert session.state == SessionState.CLOSED_FAILURE

    @pytest.mark.asyncio
    async def test_greeting_timeout(self, relay_config, credentials, test_message):
        """Test a relay that never greets"""
        config = relay_config.model_copy(update={"reply_timeout": 0.05})
        transport = FakeRelayTransport(stall_on=["GREETING"])
        session = _session(config, credentials, transport)

        with pytest.raises(SMTPTimeoutError):
            await session.deliver(test_message)

        assert transport.commands == []
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_relay_hangs_up(self, relay_config, credentials, test_message):
        """Test the connection closing before the final reply"""
        transport = FakeRelayTransport(hang_up_on=["DATA"])
        session = _session(relay_config, credentials, transport)

        with pytest.raises(TransportError) as exc_info:
            await session.deliver(test_message)

        assert "unexpectedly" in exc_info.value.message
        assert transport.messages == []
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_relay_hangs_up_mid_reply(
        self, pipelined_config, credentials, test_message
    ):
        """Test the connection closing inside a multi-line reply"""
        transport = FakeRelayTransport(
            replies={"EHLO": b"250-smtp.test.com\r\n"}, hang_up_on=["AUTH"]
        )
        session = _session(pipelined_config, credentials, transport)

        with pytest.raises(TransportError) as exc_info:
            await session.deliver(test_message)

        assert "mid-reply" in exc_info.value.message
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_connection_refused(self, relay_config, credentials, test_message):
        """Test a failed open still releases the transport"""
        transport = FakeRelayTransport(fail_open=TransportError("Connection refused"))
        session = _session(relay_config, credentials, transport)

        with pytest.raises(TransportError):
            await session.deliver(test_message)

        assert transport.written == []
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_malformed_reply(self, relay_config, credentials, test_message):
        """Test garbage from the relay is a DecodeError"""
        transport = FakeRelayTransport(replies={"EHLO": b"this is not smtp\r\n"})
        session = _session(relay_config, credentials, transport)

        with pytest.raises(DecodeError):
            await session.deliver(test_message)

        assert "AUTH" not in [c.split(" ")[0] for c in transport.commands]
        assert transport.close_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_releases_transport(
        self, relay_config, credentials, test_message
    ):
        """Test cancelling a stalled session closes the transport once"""
        transport = FakeRelayTransport(stall_on=["AUTH"])
        session = _session(relay_config, credentials, transport)

        task = asyncio.create_task(session.deliver(test_message))
        while not any(c.startswith("AUTH") for c in transport.commands):
            await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert transport.close_count == 1
        assert session.state == SessionState.CLOSED_FAILURE


class TestSessionLifecycle:
    """Tests for session independence and reuse"""

    @pytest.mark.asyncio
    async def test_session_is_single_use(
        self, relay_config, credentials, test_message, fake_relay
    ):
        """Test a finished session refuses another run"""
        session = _session(relay_config, credentials, fake_relay)
        await session.deliver(test_message)

        with pytest.raises(RuntimeError):
            await session.deliver(test_message)

    @pytest.mark.asyncio
    async def test_concurrent_sessions_are_independent(
        self, relay_config, credentials, test_message
    ):
        """Test parallel sessions each complete on their own transport"""
        transports = [FakeRelayTransport(chunk_size=3) for _ in range(5)]
        transports[2] = FakeRelayTransport(replies={"AUTH": b"535 5.7.8 Bad\r\n"})
        sessions = [_session(relay_config, credentials, t) for t in transports]

        results = await asyncio.gather(
            *(s.deliver(test_message) for s in sessions), return_exceptions=True
        )

        assert isinstance(results[2], AuthenticationError)
        for index, result in enumerate(results):
            assert transports[index].close_count == 1
            if index != 2:
                assert result.state == SessionState.CLOSED_SUCCESS
                assert len(transports[index].messages) == 1

    def test_attempts_have_distinct_ids(self, relay_config, credentials):
        """Test each session carries its own attempt id for logging"""
        first = SMTPSession(relay_config, credentials)
        second = SMTPSession(relay_config, credentials)

        assert first.attempt_id != second.attempt_id

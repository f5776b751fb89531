"""TLS transport to the mail relay - one socket per delivery attempt."""

import asyncio
import ssl
from typing import Optional

from relaymail.utils.errors import SMTPTimeoutError, TransportError
from relaymail.utils.logging import get_logger

from .constants import ConnectionLimits, Timeouts

logger = get_logger(__name__)


class SMTPTransport:
    """Owns the socket lifecycle: open, write, read, close.

    ``open()`` completes the TCP connect and the TLS handshake (standard
    trust-chain and hostname checks) before returning, so no protocol data is
    ever written on an unauthenticated channel. ``close()`` may be called any
    number of times, from any state.
    """

    def __init__(
        self,
        host: str,
        port: int,
        use_tls: bool = True,
        ssl_context: Optional[ssl.SSLContext] = None,
        connect_timeout: float = Timeouts.SMTP_CONNECT,
    ):
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.ssl_context = ssl_context
        self.connect_timeout = connect_timeout
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._closed

    async def open(self) -> "SMTPTransport":
        """Connect to the relay and complete the TLS handshake.

        Raises:
            SMTPTimeoutError: If connecting takes longer than connect_timeout
            TransportError: If the relay is unreachable or the handshake fails
        """
        if self._writer is not None or self._closed:
            raise TransportError("Transport can only be opened once")

        tls_context = None
        if self.use_tls:
            tls_context = self.ssl_context or ssl.create_default_context()

        logger.info(
            "Connecting to mail relay",
            extra={"server": self.host, "port": self.port, "tls": self.use_tls},
        )

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.host,
                    self.port,
                    ssl=tls_context,
                    server_hostname=self.host if tls_context else None,
                ),
                timeout=self.connect_timeout,
            )

        except asyncio.TimeoutError as e:
            self._closed = True
            raise SMTPTimeoutError(
                f"Connection to {self.host}:{self.port} timed out",
                details={"server": self.host, "timeout": self.connect_timeout},
            ) from e

        except ssl.SSLError as e:
            self._closed = True
            raise TransportError(
                f"TLS handshake with {self.host} failed: {e}",
                details={"server": self.host, "port": self.port},
            ) from e

        except OSError as e:
            self._closed = True
            raise TransportError(
                f"Failed to connect to {self.host}:{self.port}: {e}",
                details={"server": self.host, "port": self.port},
            ) from e

        logger.debug("Mail relay connection established", extra={"server": self.host})
        return self

    async def write(self, data: bytes) -> None:
        """Write bytes and wait until they are flushed to the socket."""
        if not self.is_open:
            raise TransportError("Cannot write to a closed transport")

        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise TransportError(
                f"Failed to write to mail relay: {e}", details={"server": self.host}
            ) from e

    async def read(self) -> bytes:
        """Return the next chunk of incoming bytes, ``b""`` once the relay hangs up."""
        if not self.is_open:
            raise TransportError("Cannot read from a closed transport")

        try:
            return await self._reader.read(ConnectionLimits.READ_CHUNK)
        except OSError as e:
            raise TransportError(
                f"Failed to read from mail relay: {e}", details={"server": self.host}
            ) from e

    def close(self) -> None:
        """Close the socket. Safe to call repeatedly and in any state."""
        if self._closed:
            return

        self._closed = True
        if self._writer is not None:
            self._writer.close()
            logger.debug("Mail relay connection closed", extra={"server": self.host})

    async def wait_closed(self) -> None:
        """Wait for a closed socket to finish shutting down."""
        if self._writer is None:
            return

        try:
            await asyncio.wait_for(
                self._writer.wait_closed(), timeout=Timeouts.SMTP_CLOSE
            )
        except (OSError, asyncio.TimeoutError) as e:
            # The socket is already gone; nothing left to release
            logger.debug(f"Error while waiting for relay socket to close: {e}")

    ## Context Manager Support

    async def __aenter__(self):
        """Enter async context manager."""
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        self.close()
        await self.wait_closed()

"""SMTP reply decoding.

Bytes arrive from the transport in arbitrary chunks. ``ReplyDecoder``
buffers them into lines and groups lines into complete replies:

    250-smtp.example.com greets you
    250-AUTH PLAIN LOGIN
    250 8BITMIME

is one reply with code 250. A reply only becomes actionable once its final
line (separator ``' '`` or no text at all) has been received.
"""

import re
from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, Iterator, List, Optional

from relaymail.utils.errors import DecodeError

from .constants import ConnectionLimits

_REPLY_LINE = re.compile(rb"^([2-5][0-9]{2})(?:([ -])(.*))?$", re.DOTALL)
_ENHANCED_STATUS = re.compile(r"^([245]\.\d{1,3}\.\d{1,3})\b")


@dataclass(frozen=True)
class SmtpReply:
    """A decoded SMTP reply (or, with ``continuation`` set, one reply line)."""

    code: int
    text: str = ""
    continuation: bool = False

    @property
    def lines(self) -> List[str]:
        return self.text.split("\n") if self.text else []

    @property
    def is_positive(self) -> bool:
        return 200 <= self.code < 300

    @property
    def is_transient_failure(self) -> bool:
        return 400 <= self.code < 500

    @property
    def enhanced_status(self) -> Optional[str]:
        """RFC 3463 status (e.g. ``2.7.0``) from the final line, if present."""
        lines = self.lines
        if not lines:
            return None
        match = _ENHANCED_STATUS.match(lines[-1])
        return match.group(1) if match else None

    def __str__(self) -> str:
        return f"{self.code} {self.text}".rstrip()


class ReplyDecoder:
    """Incremental decoder turning raw bytes into complete ``SmtpReply`` values.

    One decoder belongs to one session. Once a ``DecodeError`` has been
    raised the decoder refuses further input.
    """

    def __init__(self, max_line_length: int = ConnectionLimits.MAX_BUFFERED_LINE):
        self.max_line_length = max_line_length
        self._buffer = bytearray()
        self._lines: List[SmtpReply] = []
        self._failed = False

    @property
    def has_partial(self) -> bool:
        """True when bytes of an incomplete reply are buffered."""
        return bool(self._lines) or bool(self._buffer.strip())

    def feed(self, data: bytes) -> List[SmtpReply]:
        """Consume a chunk and return the replies it completed, in order."""
        if self._failed:
            raise DecodeError("Reply decoder is no longer usable after an error")

        self._buffer.extend(data)
        replies: List[SmtpReply] = []

        try:
            while True:
                end = self._buffer.find(b"\n")
                if end < 0:
                    break

                raw = bytes(self._buffer[: end + 1])
                del self._buffer[: end + 1]

                reply = self._consume_line(raw)
                if reply is not None:
                    replies.append(reply)

            if len(self._buffer) > self.max_line_length:
                raise DecodeError(
                    "Reply line exceeds maximum length",
                    details={"buffered": len(self._buffer)},
                )

        except DecodeError:
            self._failed = True
            raise

        return replies

    def iter_replies(self, chunks: Iterable[bytes]) -> Iterator[SmtpReply]:
        """Lazily decode a sequence of chunks."""
        pending: Deque[SmtpReply] = deque()
        for chunk in chunks:
            pending.extend(self.feed(chunk))
            while pending:
                yield pending.popleft()

    def _consume_line(self, raw: bytes) -> Optional[SmtpReply]:
        line = raw.rstrip()
        if not line:
            return None

        if len(line) > self.max_line_length:
            raise DecodeError(
                "Reply line exceeds maximum length", details={"length": len(line)}
            )

        parsed = self._parse_line(line)

        if self._lines and parsed.code != self._lines[0].code:
            raise DecodeError(
                "Reply code changed within a multi-line reply",
                details={"expected": self._lines[0].code, "received": parsed.code},
            )

        self._lines.append(parsed)
        if parsed.continuation:
            return None

        lines, self._lines = self._lines, []
        return SmtpReply(
            code=lines[0].code,
            text="\n".join(part.text for part in lines),
        )

    @staticmethod
    def _parse_line(line: bytes) -> SmtpReply:
        match = _REPLY_LINE.match(line)
        if match is None:
            preview = line[:64].decode("utf-8", errors="replace")
            raise DecodeError(
                f"Unparsable reply line: {preview!r}", details={"line": preview}
            )

        code, separator, text = match.groups()
        return SmtpReply(
            code=int(code),
            text=(text or b"").decode("utf-8", errors="replace").strip(),
            continuation=separator == b"-",
        )

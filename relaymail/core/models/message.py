"""Mail message and relay credential models"""

import base64
from dataclasses import dataclass, field
from email.header import Header
from email.utils import formatdate, make_msgid
from typing import List

from relaymail.core.validation import EmailValidator
from relaymail.utils.errors import ValidationError


@dataclass(frozen=True)
class Credentials:
    """Relay account identity and secret.

    The secret is excluded from ``repr`` so credentials never end up in logs
    or tracebacks by accident.
    """

    username: str
    secret: str = field(repr=False)

    def auth_plain_token(self) -> str:
        """Base64 payload for ``AUTH PLAIN``: ``\\0username\\0secret``."""
        raw = f"\0{self.username}\0{self.secret}".encode("utf-8")
        return base64.b64encode(raw).decode("ascii")


@dataclass(frozen=True)
class MailMessage:
    """A single plain-text message for one recipient."""

    sender: str
    recipient: str
    subject: str
    body: str

    def __post_init__(self):
        # Normalised copies replace the originals on the frozen instance
        object.__setattr__(
            self, "sender", EmailValidator.validate(self.sender, role="sender")
        )
        object.__setattr__(
            self, "recipient", EmailValidator.validate(self.recipient)
        )
        if "\r" in self.subject or "\n" in self.subject:
            raise ValidationError(
                "Subject must be a single line", details={"field": "subject"}
            )

    def _encoded_subject(self) -> str:
        if self.subject.isascii():
            return self.subject
        return Header(self.subject, "utf-8").encode(linesep="\r\n")

    def headers(self) -> List[str]:
        """Header lines in the order they are written."""
        domain = self.sender.partition("@")[2]
        return [
            f"From: {self.sender}",
            f"To: {self.recipient}",
            f"Subject: {self._encoded_subject()}",
            f"Date: {formatdate(localtime=True)}",
            f"Message-ID: {make_msgid(domain=domain)}",
        ]

    def render(self) -> bytes:
        """Render the DATA payload, dot-stuffed and terminated by ``CRLF.CRLF``."""
        body_lines = self.body.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        if body_lines and body_lines[-1] == "":
            body_lines.pop()

        stuffed = ["." + line if line.startswith(".") else line for line in body_lines]
        lines = self.headers() + [""] + stuffed

        return ("\r\n".join(lines) + "\r\n.\r\n").encode("utf-8")

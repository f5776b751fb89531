"""Email address validation utilities."""

import re

from relaymail.utils.errors import InvalidEmailAddressError

# Characters that would let an address break out of an SMTP command line
_FORBIDDEN_CHARS = ("\r", "\n", "<", ">", "\0")


class EmailValidator:
    """Validate email addresses before they reach the wire"""

    PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

    @staticmethod
    def is_valid_email(email_address: str) -> bool:
        """Validate email address format"""
        if not email_address or not isinstance(email_address, str):
            return False

        if any(char in email_address for char in _FORBIDDEN_CHARS):
            return False

        return bool(EmailValidator.PATTERN.match(email_address.strip()))

    @staticmethod
    def validate(email_address: str, role: str = "recipient") -> str:
        """Return the stripped address or raise InvalidEmailAddressError."""
        if not EmailValidator.is_valid_email(email_address):
            raise InvalidEmailAddressError(
                f"Invalid {role} email address: {email_address!r}",
                details={"role": role},
            )

        return email_address.strip()

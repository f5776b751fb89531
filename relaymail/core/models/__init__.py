"""Value objects shared by the SMTP core and the delivery service."""

from .message import Credentials, MailMessage

__all__ = ["Credentials", "MailMessage"]

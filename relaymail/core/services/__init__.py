"""Caller-facing services built on the SMTP core."""

from .otp_delivery import DeliveryOutcome, DeliveryStats, OneTimeCodeMailer

__all__ = ["DeliveryOutcome", "DeliveryStats", "OneTimeCodeMailer"]

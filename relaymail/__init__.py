"""relaymail - one-time passcode delivery over a hand-driven SMTP session."""

__version__ = "0.1.0"

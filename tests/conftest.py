"""
Shared test fixtures and configuration for pytest
"""
import os
import tempfile

# Keep logs and config out of the real home directory
os.environ.setdefault("RELAYMAIL_HOME", tempfile.mkdtemp(prefix="relaymail-tests-"))

import pytest

from relaymail.core.models.message import Credentials, MailMessage
from relaymail.utils.config import AppConfig, RelayConfig

from .test_helpers import FakeRelayTransport


@pytest.fixture
def relay_config():
    """Relay configuration pointing at a fake relay"""
    return RelayConfig(
        host="smtp.test.com",
        port=465,
        username="sender@test.com",
        password="testpass",
        reply_timeout=1.0,
        connect_timeout=1.0,
    )


@pytest.fixture
def pipelined_config(relay_config):
    """Relay configuration using the eager (pipelined) write policy"""
    return relay_config.model_copy(update={"pipelining": True})


@pytest.fixture
def app_config(relay_config):
    """Application configuration wrapping the test relay"""
    return AppConfig(relay=relay_config)


@pytest.fixture
def credentials():
    """Relay credentials"""
    return Credentials(username="sender@test.com", secret="testpass")


@pytest.fixture
def test_message():
    """Sample one-time code message"""
    return MailMessage(
        sender="sender@test.com",
        recipient="recipient@example.com",
        subject="Your OTP Code",
        body="Your OTP code is: 481516",
    )


@pytest.fixture
def fake_relay():
    """A cooperative scripted relay"""
    return FakeRelayTransport()


@pytest.fixture(autouse=True)
def clear_env_vars():
    """Clear relay environment variables before each test"""
    env_vars = [
        'SMTP_HOST', 'SMTP_PORT', 'SMTP_SENDER', 'SMTP_PIPELINING',
        'SMTP_REPLY_TIMEOUT', 'EMAIL', 'PASSWORD', 'RELAYMAIL_LOG_LEVEL'
    ]
    original = {}
    for var in env_vars:
        original[var] = os.environ.get(var)
        if var in os.environ:
            del os.environ[var]

    yield

    # Restore original environment
    for var, value in original.items():
        if value is not None:
            os.environ[var] = value
        elif var in os.environ:
            del os.environ[var]

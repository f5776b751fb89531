"""System keyring lookup for the relay secret."""

from typing import Optional

import keyring
from keyring.errors import KeyringError

from relaymail.utils.errors import KeyringUnavailableError
from relaymail.utils.logging import get_logger

logger = get_logger(__name__)


def resolve_secret(service: str, username: str) -> Optional[str]:
    """Retrieve the relay password from the system keyring.

    Args:
        service (str): Keyring service name.
        username (str): Relay account the password belongs to.

    Returns:
        Optional[str]: The stored password, or None if unavailable.
    """
    if not username:
        return None

    try:
        secret = keyring.get_password(service, username)
    except KeyringError as e:
        logger.warning(f"Keyring lookup failed for service {service}: {e}")
        return None

    if secret is None:
        logger.debug(f"No keyring entry for service {service}")

    return secret


def store_secret(service: str, username: str, secret: str) -> None:
    """Store the relay password in the system keyring.

    Args:
        service (str): Keyring service name.
        username (str): Relay account the password belongs to.
        secret (str): The password to store.

    Raises:
        KeyringUnavailableError: If the keyring backend rejects the write.
    """
    try:
        keyring.set_password(service, username, secret)
    except KeyringError as e:
        logger.error(f"Keyring write failed for service {service}: {e}")
        raise KeyringUnavailableError(
            f"Could not store the relay secret in the system keyring: {e}",
            details={"service": service},
        ) from e

    logger.info(f"Stored relay secret in keyring service {service}")

"""Configuration for relaymail, stored as JSON with environment overrides."""

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

from relaymail.core.models.message import Credentials
from relaymail.core.smtp.constants import SMTPPorts, Timeouts

from .errors import (
    ConfigurationError,
    FileSystemError,
    InvalidConfigError,
    MissingCredentialsError,
    RelayMailError,
)
from .logging import get_logger
from .paths import CONFIG_PATH

logger = get_logger(__name__)

# Environment variable -> dotted config key
ENV_OVERRIDES = {
    "SMTP_HOST": "relay.host",
    "SMTP_PORT": "relay.port",
    "EMAIL": "relay.username",
    "PASSWORD": "relay.password",
    "SMTP_SENDER": "relay.sender",
    "SMTP_PIPELINING": "relay.pipelining",
    "SMTP_REPLY_TIMEOUT": "relay.reply_timeout",
    "RELAYMAIL_LOG_LEVEL": "logging.log_level",
}


class RelayConfig(BaseModel):
    """Pydantic model for the mail relay account."""

    host: str = "smtp.gmail.com"
    port: int = Field(default=SMTPPorts.SUBMISSION_SSL, gt=0, lt=65536)
    username: str = ""
    password: SecretStr = SecretStr("")
    sender: str = ""
    local_name: str = "localhost"
    use_tls: bool = True
    pipelining: bool = False
    connect_timeout: float = Field(default=Timeouts.SMTP_CONNECT, gt=0)  # in seconds
    reply_timeout: float = Field(default=Timeouts.SMTP_REPLY, gt=0)  # in seconds
    keyring_service: Optional[str] = None

    @property
    def sender_address(self) -> str:
        return self.sender or self.username

    def credentials(self) -> Credentials:
        """Build immutable Credentials for a session.

        Raises:
            MissingCredentialsError: If the username or password is empty
        """
        secret = self.password.get_secret_value()
        if not self.username or not secret:
            raise MissingCredentialsError(
                "Relay username and password must both be configured",
                details={"username_set": bool(self.username)},
            )

        return Credentials(username=self.username, secret=secret)


class MessageConfig(BaseModel):
    """Pydantic model for the one-time code message."""

    subject: str = "Your OTP Code"
    body_template: str = "Your OTP code is: {code}"

    @field_validator("subject")
    @classmethod
    def _single_line_subject(cls, value: str) -> str:
        if "\r" in value or "\n" in value:
            raise ValueError("subject must be a single line")
        return value

    @field_validator("body_template")
    @classmethod
    def _fillable_template(cls, value: str) -> str:
        # Only {code} is supplied when the message is composed
        try:
            value.format(code="0")
        except (AttributeError, IndexError, KeyError, ValueError) as e:
            raise ValueError(
                f"body_template must only use the {{code}} placeholder: {e!r}"
            ) from e
        return value


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: str = "INFO"
    console_level: str = "WARNING"
    log_to_file: bool = True
    max_file_size: int = 5_242_880  # 5 MB
    backup_count: int = 5


class AppConfig(BaseModel):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    relay: RelayConfig = Field(default_factory=RelayConfig)
    message: MessageConfig = Field(default_factory=MessageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Loads configuration from a JSON file and the process environment.

    The resulting ``AppConfig`` is read once and passed explicitly to the
    components that need it.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.path = Path(config_path) if config_path else CONFIG_PATH
        self.environ = os.environ if environ is None else environ
        self.config = self._load_config()
        logger.debug(f"Configuration loaded from {self.path}")

    def _load_config(self) -> AppConfig:
        """Load configuration from file (or defaults) and apply overrides."""

        data: dict = {}

        try:
            if self.path.exists():
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            else:
                logger.debug("No config file found, using default configuration.")

            for env_var, key in ENV_OVERRIDES.items():
                value = self.environ.get(env_var)
                if value:
                    self._set_nested(data, key, value)

            config = AppConfig(**data)
            self._resolve_keyring_secret(config)
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise InvalidConfigError(
                f"Configuration file is not valid JSON: {str(e)}"
            ) from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {str(e)}"
            ) from e
        except OSError as e:
            raise FileSystemError(
                f"Configuration file could not be read: {self.path}"
            ) from e
        except RelayMailError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error loading config: {e}")
            raise ConfigurationError(f"Failed to load configuration: {str(e)}") from e

    def _resolve_keyring_secret(self, config: AppConfig) -> None:
        relay = config.relay
        if relay.password.get_secret_value() or not relay.keyring_service:
            return

        from relaymail.security.keyring_store import resolve_secret

        secret = resolve_secret(relay.keyring_service, relay.username)
        if secret:
            relay.password = SecretStr(secret)

    @staticmethod
    def _set_nested(data: dict, key: str, value: Any) -> None:
        section, _, field = key.partition(".")
        data.setdefault(section, {})[field] = value

    def get_config(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dotted key, e.g. ``relay.port``."""

        value: Any = self.config
        for part in key.split("."):
            if not hasattr(value, part):
                return default
            value = getattr(value, part)

        return value

    def save(self) -> None:
        """Save the configuration to file, leaving the secret out."""

        data = self.config.model_dump(mode="json", exclude={"relay": {"password"}})

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise FileSystemError(f"Failed to save configuration: {self.path}") from e

        logger.info(f"Configuration saved to {self.path}")

    def masked(self) -> dict:
        """Configuration as a dict suitable for display."""

        data = self.config.model_dump(mode="json")
        data["relay"]["password"] = (
            "[REDACTED]" if self.config.relay.password.get_secret_value() else ""
        )
        return data

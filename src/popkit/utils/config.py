"""Configuration manager for popkit settings stored as JSON."""

import codecs
import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from popkit.pop3.constants import AuthMechanism, Pop3Ports, SecurityMode, Timeouts

from .errors import ConfigError, PopKitError
from .logging import get_logger, log_call
from .paths import CONFIG_PATH

logger = get_logger(__name__)


class Pop3Config(BaseModel):
    """Pydantic model for a POP3 account connection."""

    model_config = {"validate_assignment": True}

    host: str = "localhost"
    port: int = Pop3Ports.POP3
    security_mode: SecurityMode = SecurityMode.PLAIN
    timeout: float = Timeouts.POP3_CONNECT  # in seconds
    verify_certificates: bool = True
    encoding: str = "utf-8"
    username: str = ""
    auth_mechanism: AuthMechanism = AuthMechanism.PLAIN

    @field_validator("host")
    @classmethod
    def _host_not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("host must not be empty")
        return value.strip()

    @field_validator("port")
    @classmethod
    def _port_in_range(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"port out of range: {value}")
        return value

    @field_validator("timeout")
    @classmethod
    def _timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout must be greater than zero")
        return value

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as e:
            raise ValueError(f"unknown encoding: {value}") from e
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
    account: Pop3Config = Field(default_factory=Pop3Config)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Loads, updates and persists the application configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        self.path = Path(config_path) if config_path else CONFIG_PATH
        self.config = self._load_config()

    def _load_config(self) -> AppConfig:
        """Load configuration from file, or fall back to defaults."""

        if not self.path.exists():
            logger.debug(f"No config file at {self.path}, using defaults")
            return AppConfig()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = AppConfig(**data)
            logger.debug(f"Configuration loaded from {self.path}")
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise ConfigError(
                f"Configuration file is not valid JSON: {str(e)}",
                details={"path": str(self.path)},
            ) from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise ConfigError(
                f"Configuration data does not match expected schema: {str(e)}",
                details={"path": str(self.path)},
            ) from e
        except OSError as e:
            raise ConfigError(
                f"Failed to read configuration file: {str(e)}",
                details={"path": str(self.path)},
            ) from e

    @log_call
    def save(self) -> None:
        """Save the current configuration to file."""

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.config.model_dump(mode="json"), f, indent=2)
            logger.debug(f"Configuration saved to {self.path}")
        except OSError as e:
            raise ConfigError(
                f"Failed to write configuration file: {str(e)}",
                details={"path": str(self.path)},
            ) from e

    def get_config(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value using a dot-separated key path."""

        obj: Any = self.config
        for key in key_path.split("."):
            if not hasattr(obj, key):
                return default
            obj = getattr(obj, key)
        return obj

    def set_config(self, key_path: str, value: Any, persist: bool = False) -> None:
        """Set a configuration value using a dot-separated key path."""

        keys = key_path.split(".")
        obj: Any = self.config

        try:
            for key in keys[:-1]:
                if not hasattr(obj, key):
                    raise ConfigError(
                        f"Configuration path '{key_path}' is invalid: '{key}' not found"
                    )
                obj = getattr(obj, key)

            if keys[-1] not in type(obj).model_fields:
                raise ConfigError(
                    f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'"
                )

            setattr(obj, keys[-1], value)

        except PopKitError:
            raise
        except ValidationError as e:
            raise ConfigError(
                f"Invalid value for '{key_path}': {str(e)}",
                details={"key": key_path},
            ) from e

        if persist:
            self.save()

        logger.info(f"Config key '{key_path}' updated")

"""
Configuration manager for JNI Home Automation services.

Settings come from the process environment. A `.env` file is loaded first
when present; variables already set in the environment take precedence.
"""
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError
from .logger import LOG_SETUP_NAME, LogSetup, parse_log_setup

MQTT_SERVER_URL_NAME = "MQTT_SERVER_URL"


def parse_env_variable(name: str) -> str:
    """Return the value of an environment variable, failing if unset or blank."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        raise ConfigurationError(f"Environment variable {name} is not set!")
    return value.strip()


class ConfigManager:
    """Reads shared settings from the environment."""

    def __init__(self, env_file: Optional[Union[str, Path]] = None):
        """Initialize the configuration manager."""
        if env_file is not None:
            self.env_file = Path(env_file)
            if not self.env_file.exists():
                raise ConfigurationError(f"Environment file not found: {self.env_file}")
        else:
            found = find_dotenv(usecwd=True)
            self.env_file = Path(found) if found else None
        self._load()

    def _load(self):
        """Load variables from the env file, if there is one."""
        if self.env_file:
            load_dotenv(self.env_file, override=False)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get a raw setting."""
        return os.environ.get(name, default)

    def get_broker_url(self) -> str:
        """Get the MQTT broker URL."""
        return parse_env_variable(MQTT_SERVER_URL_NAME)

    def get_log_setup(self) -> LogSetup:
        """Get the log setup."""
        return parse_log_setup(parse_env_variable(LOG_SETUP_NAME))

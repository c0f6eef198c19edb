"""
Configuration Management for permctl.

This module handles the settings of the command line client and persists
which permissions system is the current context. Settings come from an INI
file in the local configuration directory and from environment variables.
"""

import os
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from configparser import ConfigParser, Error as ConfigParserError

from permctl.auth.keyrings import BACKEND_AUTO, SERVICE_NAME
from permctl.shared.exceptions import ConfigNotFoundError, ConfigurationError, ErrorCode
from permctl.shared.interfaces import IConfigStore

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV_VAR = 'PERMCTL_CONFIG_DIR'
CONFIG_FILENAME = 'permctl.conf'
CURRENT_SYSTEM_KEY = 'context.current_system'


def get_default_config_dir() -> Path:
    """Resolve the per-user local configuration directory."""
    override = os.environ.get(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override)

    xdg_config = os.environ.get('XDG_CONFIG_HOME')
    if xdg_config:
        return Path(xdg_config) / 'permctl'
    return Path.home() / '.config' / 'permctl'


class PermctlConfiguration:
    """
    Configuration manager for permctl.

    Supports configuration from:
    1. Overrides set by the command line (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)

    Only values read from or set into the configuration file are written
    back by save_configuration().
    """

    DEFAULTS: Dict[str, Dict[str, Any]] = {
        'context': {
            'current_system': None,
        },
        'keyring': {
            'backend': BACKEND_AUTO,
            'service_name': SERVICE_NAME,
        },
        'logging': {
            'level': 'WARNING',
            'format': 'standard',
            'file': None,
        },
    }

    ENV_MAPPINGS = {
        'PERMCTL_KEYRING_BACKEND': ('keyring', 'backend'),
        'PERMCTL_KEYRING_SERVICE': ('keyring', 'service_name'),
        'PERMCTL_LOG_LEVEL': ('logging', 'level'),
        'PERMCTL_LOG_FORMAT': ('logging', 'format'),
        'PERMCTL_LOG_FILE': ('logging', 'file'),
    }

    def __init__(self, config_file: Optional[str] = None, config_dir: Optional[str] = None):
        self._config_dir = Path(config_dir) if config_dir else get_default_config_dir()
        self._config_file = config_file or str(self._config_dir / CONFIG_FILENAME)
        self._file_data: Dict[str, Dict[str, Any]] = {}
        self._env_data: Dict[str, Dict[str, Any]] = {}
        self._overrides: Dict[str, Any] = {}

        self._load_configuration()

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if os.path.exists(self._config_file):
            self._load_from_file()
            logger.debug(f"Configuration loaded from: {self._config_file}")
        else:
            logger.debug(f"Configuration file not found: {self._config_file}")

        self._load_from_environment()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser(interpolation=None)
        try:
            config.read(self._config_file, encoding='utf-8')
        except ConfigParserError as e:
            raise ConfigurationError(
                f"Invalid configuration file {self._config_file}: {e}",
                cause=e
            ) from e

        for section_name in config.sections():
            self._file_data[section_name] = dict(config[section_name].items())

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._env_data.setdefault(section, {})[key] = value

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        section, _, config_key = key.partition('.')
        for layer in (self._env_data, self._file_data, self.DEFAULTS):
            section_data = layer.get(section, {})
            if config_key in section_data and section_data[config_key] is not None:
                return section_data[config_key]
        return default

    def set_config(self, key: str, value: Any) -> None:
        """
        Set a configuration file value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            value: Value to set, None removes the key
        """
        section, _, config_key = key.partition('.')
        if value is None:
            self._file_data.get(section, {}).pop(config_key, None)
        else:
            self._file_data.setdefault(section, {})[config_key] = str(value)

    def set_override(self, key: str, value: Any) -> None:
        """
        Set configuration override (highest priority, never saved).

        Args:
            key: Configuration key in format 'section.key'
            value: Override value
        """
        self._overrides[key] = value

    def save_configuration(self) -> None:
        """Save file-backed configuration values."""
        config = ConfigParser(interpolation=None)
        for section_name, section_data in self._file_data.items():
            if not section_data:
                continue
            config.add_section(section_name)
            for key, value in section_data.items():
                config.set(section_name, key, str(value))

        config_path = Path(self._config_file)
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                config.write(f)
        except OSError as e:
            logger.error(f"Failed to save configuration: {e}")
            raise ConfigurationError(
                f"Failed to save configuration to {self._config_file}: {e}",
                error_code=ErrorCode.CONFIG_WRITE_FAILED,
                cause=e
            ) from e

        logger.debug(f"Configuration saved to: {self._config_file}")

    def reload_configuration(self) -> None:
        """Reload configuration from file and environment."""
        self._file_data.clear()
        self._env_data.clear()
        self._load_configuration()

    def get_config_file_path(self) -> str:
        return self._config_file

    def get_config_dir(self) -> str:
        return str(self._config_dir)

    def get_keyring_backend(self) -> str:
        return str(self.get_config('keyring.backend', BACKEND_AUTO)).lower()

    def get_keyring_service_name(self) -> str:
        return self.get_config('keyring.service_name', SERVICE_NAME)

    def get_log_level(self) -> str:
        return str(self.get_config('logging.level', 'WARNING')).upper()

    def get_log_format(self) -> str:
        return str(self.get_config('logging.format', 'standard')).lower()

    def get_log_file(self) -> Optional[str]:
        return self.get_config('logging.file')


class LocalConfigStore(IConfigStore):
    """Keeps the current context in the permctl configuration file."""

    def __init__(self, config: PermctlConfiguration):
        self.config = config

    def get_current_context(self) -> str:
        system = self.config.get_config(CURRENT_SYSTEM_KEY)
        if not system:
            raise ConfigNotFoundError()
        return system

    def set_current_context(self, system: str) -> None:
        self.config.set_config(CURRENT_SYSTEM_KEY, system)
        self.config.save_configuration()
        logger.info(f"Current context set to: {system}")

    def clear_current_context(self) -> None:
        self.config.set_config(CURRENT_SYSTEM_KEY, None)
        self.config.save_configuration()
        logger.info("Current context cleared")

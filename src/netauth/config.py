"""
NetAuth - Configuration Management

This module handles loading, merging, and managing configuration from
TOML files and environment variables. Supports default values and
validation of the crypto section into CryptoSettings.

Version: 1.0.0
"""

import copy
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

# Python 3.11+ has tomllib built-in, older versions need tomli
if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_DATA_DIR,
    DEFAULT_GENERATOR,
    DEFAULT_HOST,
    DEFAULT_P_SELECTOR,
    DEFAULT_SERVER_PORT,
    HANDSHAKE_TIMEOUT,
    LOG_FILENAME,
    MAX_AUTH_ATTEMPTS,
)
from .crypto import CipherStrength, PaddingPolicy
from .errors import ConfigError, ErrorCode
from .primes import available_selectors

ENV_PREFIX = "NETAUTH"

# Default configuration dictionary
DEFAULT_CONFIG: Dict[str, Any] = {
    "network": {
        "host": DEFAULT_HOST,
        "port": DEFAULT_SERVER_PORT,
        "handshake_timeout": HANDSHAKE_TIMEOUT,
    },
    "crypto": {
        "p_selector": DEFAULT_P_SELECTOR,
        "generator": DEFAULT_GENERATOR,
        "random_parameters": False,
        "key_bits": 128,
        "padding": "zero",
        "negotiate_parameters": False,
    },
    "auth": {
        "max_attempts": MAX_AUTH_ATTEMPTS,
        "username": "",
        "password": "",
    },
    "logging": {
        "level": "INFO",
        "file_logging": False,
        "console_logging": True,
        "log_file": str(Path(DEFAULT_DATA_DIR) / LOG_FILENAME),
    },
}


@dataclass(frozen=True)
class CryptoSettings:
    """Validated key agreement and cipher settings for one host.

    p_selector is None when each session generates a fresh prime.
    Padding policy and strength must match on both peers.
    """

    p_selector: Optional[int] = DEFAULT_P_SELECTOR
    generator: int = DEFAULT_GENERATOR
    strength: CipherStrength = CipherStrength.AES_128
    padding: PaddingPolicy = PaddingPolicy.ZERO
    negotiate_parameters: bool = False


class Config:
    """Configuration manager for NetAuth.

    Loads configuration from TOML files, merges with defaults,
    and applies environment variable overrides. Provides a simple
    interface for accessing and updating configuration values.

    Attributes:
        config_path: Path to the configuration file
        data: Configuration dictionary
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file (optional)
                If not provided, uses default location
        """
        if config_path is None:
            data_dir = Path(DEFAULT_DATA_DIR).expanduser()
            config_path = data_dir / CONFIG_FILENAME

        self.config_path = Path(config_path)
        self.data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file and merge with defaults.

        Raises:
            ConfigError: If configuration loading or parsing fails
        """
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            if tomllib is None:
                raise ConfigError(
                    ErrorCode.E701_CONFIG_LOAD_FAILED,
                    "TOML library not available. Install tomli for Python < 3.11",
                )
            try:
                with open(self.config_path, "rb") as f:
                    file_config = tomllib.load(f)
            except (OSError, tomllib.TOMLDecodeError) as e:
                raise ConfigError(
                    ErrorCode.E704_CONFIG_PARSE_ERROR,
                    f"Failed to parse configuration file: {e}",
                    {"path": str(self.config_path), "error": str(e)},
                ) from e

            config = self._merge_config(config, file_config)

        return self._apply_env_overrides(config)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge override config into base config."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: NETAUTH_SECTION_KEY
        For example: NETAUTH_NETWORK_PORT=7001

        Args:
            config: Base configuration dictionary

        Returns:
            Configuration with environment overrides applied
        """
        result = copy.deepcopy(config)

        for section, settings in config.items():
            if not isinstance(settings, dict):
                continue

            for key in settings:
                env_var = f"{ENV_PREFIX}_{section.upper()}_{key.upper()}"
                env_value = os.environ.get(env_var)

                if env_value is not None:
                    original_type = type(settings[key])
                    try:
                        if original_type == bool:
                            result[section][key] = env_value.lower() in ("true", "1", "yes")
                        elif original_type == int:
                            result[section][key] = int(env_value)
                        elif original_type == float:
                            result[section][key] = float(env_value)
                        else:
                            result[section][key] = env_value
                    except ValueError:
                        # Keep original value if conversion fails
                        pass

        return result

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            section: Configuration section name
            key: Configuration key name
            default: Default value if key not found
        """
        return self.data.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value."""
        if section not in self.data:
            self.data[section] = {}

        self.data[section][key] = value

    def crypto_settings(self) -> CryptoSettings:
        """Validate the [crypto] section.

        Raises:
            ConfigError: If any crypto value is unsupported
        """
        section = self.data.get("crypto", {})

        key_bits = section.get("key_bits", 128)
        try:
            strength = CipherStrength(key_bits)
        except ValueError:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"Unsupported key size: {key_bits}",
                {"key": "crypto.key_bits", "supported": [s.value for s in CipherStrength]},
            ) from None

        padding_name = str(section.get("padding", "zero")).lower()
        try:
            padding = PaddingPolicy(padding_name)
        except ValueError:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"Unsupported padding policy: {padding_name}",
                {"key": "crypto.padding", "supported": [p.value for p in PaddingPolicy]},
            ) from None

        generator = section.get("generator", DEFAULT_GENERATOR)
        if not isinstance(generator, int) or isinstance(generator, bool) or generator < 2:
            raise ConfigError(
                ErrorCode.E703_INVALID_CONFIG,
                f"Invalid generator: {generator}",
                {"key": "crypto.generator"},
            )

        p_selector: Optional[int] = None
        if not section.get("random_parameters", False):
            p_selector = section.get("p_selector", DEFAULT_P_SELECTOR)
            if p_selector not in available_selectors():
                raise ConfigError(
                    ErrorCode.E703_INVALID_CONFIG,
                    f"Unknown P selector: {p_selector}",
                    {"key": "crypto.p_selector", "available": available_selectors()},
                )

        return CryptoSettings(
            p_selector=p_selector,
            generator=generator,
            strength=strength,
            padding=padding,
            negotiate_parameters=bool(section.get("negotiate_parameters", False)),
        )

    def save(self) -> None:
        """Save current configuration to file.

        Raises:
            ConfigError: If saving fails
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                self._write_toml(f, self.data)
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to save configuration: {e}",
                {"path": str(self.config_path), "error": str(e)},
            ) from e

    @staticmethod
    def _write_toml(file, data: Dict[str, Any]) -> None:
        """Write configuration data as TOML format."""
        for section, settings in data.items():
            if isinstance(settings, dict):
                file.write(f"[{section}]\n")
                for key, value in settings.items():
                    if isinstance(value, bool):
                        file.write(f"{key} = {str(value).lower()}\n")
                    elif isinstance(value, (int, float)):
                        file.write(f"{key} = {value}\n")
                    elif isinstance(value, str):
                        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
                        file.write(f'{key} = "{escaped}"\n')
                file.write("\n")

    def to_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return copy.deepcopy(self.data)

    @classmethod
    def create_example(cls, path: Path) -> None:
        """Create an example configuration file.

        Raises:
            ConfigError: If file creation fails
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                f.write("# NetAuth Configuration File\n")
                f.write("# Generated example configuration\n\n")
                cls._write_toml(f, DEFAULT_CONFIG)
        except OSError as e:
            raise ConfigError(
                ErrorCode.E702_CONFIG_SAVE_FAILED,
                f"Failed to create example configuration: {e}",
                {"path": str(path), "error": str(e)},
            ) from e

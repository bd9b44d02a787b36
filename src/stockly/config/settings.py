"""
Configuration settings management for Stockly.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.stockly/config.yaml by default, with the
path overridable via the STOCKLY_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".stockly"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

DEFAULT_REMINDER_DAYS = 7


@dataclass
class BackupConfig:
    """Backup settings."""

    directory: str = str(DEFAULT_CONFIG_DIR / "backups")
    default_reminder_days: int = DEFAULT_REMINDER_DAYS


@dataclass
class CompanyConfig:
    """
    Company defaults written into the store by ``stockly init``.

    Once initialized, the company settings live in the store and travel
    with every backup; these values are only the starting point.
    """

    name: str = ""
    currency_symbol: str = "$"
    invoice_prefix: str = "INV-"
    estimate_prefix: str = "EST-"

    def to_store_settings(self) -> dict[str, Any]:
        """Company defaults in the key naming used by the store."""
        return {
            "companyName": self.name,
            "currencySymbol": self.currency_symbol,
            "invoicePrefix": self.invoice_prefix,
            "estimatePrefix": self.estimate_prefix,
            "nextInvoiceNumber": 1,
            "nextEstimateNumber": 1,
        }


@dataclass
class Settings:
    """
    Complete Stockly configuration settings.

    Settings are loaded from a YAML configuration file and can be overridden
    by environment variables prefixed with STOCKLY_.

    Attributes:
        data_dir: Directory holding the inventory database.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        backup: Backup directory and reminder defaults.
        company: Company defaults for new stores.
    """

    data_dir: str = str(DEFAULT_CONFIG_DIR / "data")
    log_level: str = "INFO"

    backup: BackupConfig = field(default_factory=BackupConfig)
    company: CompanyConfig = field(default_factory=CompanyConfig)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from STOCKLY_CONFIG environment variable if set,
    otherwise returns the default path (~/.stockly/config.yaml).
    """
    env_path = os.environ.get("STOCKLY_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file. If not provided,
                    uses STOCKLY_CONFIG environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        settings: Settings instance to save.
        config_path: Optional path to configuration file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    stockly_data = data.get("stockly") or {}

    if "data_dir" in stockly_data:
        settings.data_dir = str(stockly_data["data_dir"])
    if "log_level" in stockly_data:
        settings.log_level = str(stockly_data["log_level"]).upper()

    backup = data.get("backup") or {}
    if "directory" in backup:
        settings.backup.directory = str(backup["directory"])
    if "default_reminder_days" in backup:
        try:
            settings.backup.default_reminder_days = int(backup["default_reminder_days"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid default_reminder_days: {backup['default_reminder_days']!r}"
            ) from e

    company = data.get("company") or {}
    if "name" in company:
        settings.company.name = str(company["name"])
    if "currency_symbol" in company:
        settings.company.currency_symbol = str(company["currency_symbol"])
    if "invoice_prefix" in company:
        settings.company.invoice_prefix = str(company["invoice_prefix"])
    if "estimate_prefix" in company:
        settings.company.estimate_prefix = str(company["estimate_prefix"])

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "STOCKLY_DATA_DIR": ("data_dir", str),
        "STOCKLY_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "STOCKLY_BACKUP_DIR": ("backup.directory", str),
        "STOCKLY_BACKUP_REMINDER_DAYS": ("backup.default_reminder_days", int),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                converted = converter(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e
            _set_nested_attr(settings, attr_path, converted)

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.backup.default_reminder_days < 0:
        raise ConfigurationError("default_reminder_days must be 0 or greater")

    if not settings.backup.directory:
        raise ConfigurationError("backup.directory must not be empty")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "stockly": {
            "data_dir": settings.data_dir,
            "log_level": settings.log_level,
        },
        "backup": {
            "directory": settings.backup.directory,
            "default_reminder_days": settings.backup.default_reminder_days,
        },
        "company": {
            "name": settings.company.name,
            "currency_symbol": settings.company.currency_symbol,
            "invoice_prefix": settings.company.invoice_prefix,
            "estimate_prefix": settings.company.estimate_prefix,
        },
    }

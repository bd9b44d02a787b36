"""
Configuration management for Stockly.

This module handles loading, validating, and saving configuration settings,
as well as the persisted backup policy (last backup time, reminder interval,
password protection preference).
"""

from stockly.config.policy import (
    POLICY_FILE,
    BackupPolicy,
    PolicyStore,
)
from stockly.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)

__all__ = [
    # Settings
    "Settings",
    "load_config",
    "save_config",
    "get_config_path",
    "ConfigurationError",
    # Backup policy
    "BackupPolicy",
    "PolicyStore",
    "POLICY_FILE",
]

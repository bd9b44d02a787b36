"""
Persistent backup policy.

The backup policy records when the last successful backup finished and how
the user wants to be reminded and protected. It is read once at startup and
written immediately whenever it changes, so a crash never loses a completed
backup's timestamp.

Stored as YAML next to the main configuration file:
    ~/.stockly/backup_policy.yaml
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from stockly.config.settings import DEFAULT_REMINDER_DAYS, ConfigurationError

logger = logging.getLogger(__name__)

POLICY_FILE = "backup_policy.yaml"


@dataclass(frozen=True)
class BackupPolicy:
    """
    Backup reminder and protection preferences.

    Attributes:
        last_backup_at: When the last successful backup completed (UTC).
        reminder_interval_days: Days between reminders. 0 disables them.
        password_protection_enabled: Whether new backups should be encrypted.
    """

    last_backup_at: datetime | None = None
    reminder_interval_days: int = DEFAULT_REMINDER_DAYS
    password_protection_enabled: bool = False

    def __post_init__(self) -> None:
        if self.reminder_interval_days < 0:
            raise ValueError(
                f"reminder_interval_days must be >= 0, got {self.reminder_interval_days}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_backup_at": (
                self.last_backup_at.isoformat() if self.last_backup_at else None
            ),
            "reminder_interval_days": self.reminder_interval_days,
            "password_protection_enabled": self.password_protection_enabled,
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], default_interval: int = DEFAULT_REMINDER_DAYS
    ) -> BackupPolicy:
        last = data.get("last_backup_at")
        if isinstance(last, str):
            last = datetime.fromisoformat(last)
        if isinstance(last, datetime) and last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        return cls(
            last_backup_at=last,
            reminder_interval_days=int(
                data.get("reminder_interval_days", default_interval)
            ),
            password_protection_enabled=bool(
                data.get("password_protection_enabled", False)
            ),
        )


class PolicyStore:
    """
    Loads and saves the backup policy file.

    Example:
        store = PolicyStore(Path("~/.stockly/backup_policy.yaml").expanduser())
        policy = store.load()
        store.save(dataclasses.replace(policy, reminder_interval_days=14))
    """

    def __init__(
        self, path: Path | str, default_interval: int = DEFAULT_REMINDER_DAYS
    ) -> None:
        self.path = Path(path)
        self.default_interval = default_interval

    def load(self) -> BackupPolicy:
        """
        Load the policy, or defaults if it has never been saved.

        Raises:
            ConfigurationError: If the file exists but cannot be parsed.
        """
        if not self.path.exists():
            return BackupPolicy(reminder_interval_days=self.default_interval)

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in backup policy: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read backup policy: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError("Backup policy file must contain a YAML mapping")

        try:
            return BackupPolicy.from_dict(data, self.default_interval)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid backup policy: {e}") from e

    def save(self, policy: BackupPolicy) -> None:
        """
        Write the policy atomically (temp file in the same directory, then rename).

        Raises:
            ConfigurationError: If the file cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
        except OSError as e:
            raise ConfigurationError(f"Cannot write backup policy: {e}") from e

        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(policy.to_dict(), f, default_flow_style=False, sort_keys=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_name, self.path)
        except OSError as e:
            Path(temp_name).unlink(missing_ok=True)
            raise ConfigurationError(f"Cannot write backup policy: {e}") from e

        logger.debug(f"Saved backup policy to {self.path}")

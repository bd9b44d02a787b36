"""
Backup directory management.

Owns the directory archives live in: naming, listing, atomic writes and
deletion. Listing only looks at file names, never at file contents, so it
stays fast with many large backups.

File Naming:
    stockly-backup-20250101T093000123456Z.stocklybackup
    stockly-backup-20250101T093000123456Z-1.stocklybackup   (name collision)
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from stockly.backup.errors import BackupIOError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "stockly-backup-"
BACKUP_EXTENSION = ".stocklybackup"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"

_BACKUP_NAME_RE = re.compile(
    r"^stockly-backup-(?P<stamp>\d{8}T\d{12}Z)(?:-(?P<counter>\d+))?\.stocklybackup$"
)


def backup_filename(created_at: datetime, counter: int = 0) -> str:
    """Build the file name for a backup taken at ``created_at``."""
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)
    stamp = created_at.astimezone(UTC).strftime(TIMESTAMP_FORMAT)
    suffix = f"-{counter}" if counter else ""
    return f"{BACKUP_PREFIX}{stamp}{suffix}{BACKUP_EXTENSION}"


def parse_backup_filename(name: str) -> tuple[datetime, int] | None:
    """
    Parse a backup file name.

    Returns:
        (created_at, counter), or None if the name is not a backup name.
    """
    match = _BACKUP_NAME_RE.match(name)
    if match is None:
        return None
    try:
        created_at = datetime.strptime(match["stamp"], TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return created_at.replace(tzinfo=UTC), int(match["counter"] or 0)


class BackupFileStore:
    """
    Reads and writes archive files in one backup directory.

    Example:
        files = BackupFileStore(Path("~/.stockly/backups").expanduser())
        path = files.write(archive_bytes, snapshot.created_at)
        for backup in files.list():
            print(backup.name)
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def write(self, data: bytes, created_at: datetime) -> Path:
        """
        Atomically write an archive into the backup directory.

        The bytes go to a hidden temporary file in the same directory, are
        flushed to disk, and the file is then renamed into place. A failed
        write never leaves a visible partial backup.

        Returns:
            Path of the new backup file.

        Raises:
            BackupIOError: If the directory cannot be created or written.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupIOError(
                f"Cannot create backup directory {self.directory}: {e}"
            ) from e

        target = self._available_path(created_at)

        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=self.directory
            )
        except OSError as e:
            raise BackupIOError(f"Cannot write to {self.directory}: {e}") from e

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())

            # Owner read/write only; not supported everywhere
            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                pass

            os.replace(temp_path, target)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise BackupIOError(f"Failed to write backup {target.name}: {e}") from e
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        logger.info(f"Wrote backup {target} ({len(data)} bytes)")
        return target

    def list(self) -> list[Path]:
        """
        List backups, most recent first.

        Order is taken from the timestamps in the file names. Temporary files
        and files that do not follow the naming scheme are ignored.
        """
        if not self.directory.is_dir():
            return []

        found: list[tuple[tuple[datetime, int], Path]] = []
        try:
            entries = list(self.directory.iterdir())
        except OSError as e:
            raise BackupIOError(f"Cannot list {self.directory}: {e}") from e

        for entry in entries:
            parsed = parse_backup_filename(entry.name)
            if parsed is None or not entry.is_file():
                continue
            found.append((parsed, entry))

        found.sort(key=lambda item: item[0], reverse=True)
        return [path for _, path in found]

    def read(self, path: Path | str) -> bytes:
        """
        Read an archive file. The path may be anywhere on disk.

        Raises:
            BackupIOError: If the file is missing or unreadable.
        """
        path = Path(path)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BackupIOError(f"Backup file not found: {path}") from e
        except OSError as e:
            raise BackupIOError(f"Cannot read backup file {path}: {e}") from e

    def delete(self, path: Path | str) -> None:
        """
        Delete one backup from the backup directory.

        Deleting a backup that no longer exists is not an error.

        Raises:
            BackupIOError: If the path is outside the backup directory, is not
                a backup file name, or cannot be removed.
        """
        path = Path(path)
        if not path.is_absolute() and path.parent == Path("."):
            path = self.directory / path

        resolved = path.resolve()
        if resolved.parent != self.directory.resolve():
            raise BackupIOError(
                f"Refusing to delete {path}: not in backup directory {self.directory}"
            )
        if parse_backup_filename(resolved.name) is None:
            raise BackupIOError(f"Refusing to delete {path}: not a backup file")

        try:
            resolved.unlink()
        except FileNotFoundError:
            logger.debug(f"Backup already gone: {resolved}")
            return
        except OSError as e:
            raise BackupIOError(f"Failed to delete backup {path}: {e}") from e

        logger.info(f"Deleted backup {resolved}")

    def _available_path(self, created_at: datetime) -> Path:
        counter = 0
        while True:
            candidate = self.directory / backup_filename(created_at, counter)
            if not candidate.exists():
                return candidate
            counter += 1

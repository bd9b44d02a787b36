"""
Tests for backup directory management.

Uses Python's unittest module.
"""

from __future__ import annotations

import os
import shutil
import tempfile
import unittest
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

from stockly.backup.errors import BackupIOError
from stockly.backup.file_store import (
    BACKUP_EXTENSION,
    BackupFileStore,
    backup_filename,
    parse_backup_filename,
)

WHEN = datetime(2025, 1, 1, 9, 30, 0, 123456, tzinfo=UTC)


class TestBackupFilenames(unittest.TestCase):
    """Tests for backup file naming."""

    def test_backup_filename(self) -> None:
        """Test the name format."""
        self.assertEqual(
            backup_filename(WHEN), "stockly-backup-20250101T093000123456Z.stocklybackup"
        )
        self.assertEqual(
            backup_filename(WHEN, 2),
            "stockly-backup-20250101T093000123456Z-2.stocklybackup",
        )

    def test_parse_round_trip(self) -> None:
        """Test that parsing recovers the timestamp and counter."""
        self.assertEqual(parse_backup_filename(backup_filename(WHEN)), (WHEN, 0))
        self.assertEqual(parse_backup_filename(backup_filename(WHEN, 3)), (WHEN, 3))

    def test_parse_rejects_other_names(self) -> None:
        """Test that unrelated names are ignored."""
        for name in (
            "notes.txt",
            "stockly-backup-latest.stocklybackup",
            ".stockly-backup-20250101T093000123456Z.stocklybackup.abc.tmp",
            "stockly-backup-20251301T093000123456Z.stocklybackup",
        ):
            with self.subTest(name=name):
                self.assertIsNone(parse_backup_filename(name))

    def test_local_times_are_normalized(self) -> None:
        """Test that non-UTC timestamps are converted to UTC."""
        eastern = WHEN.astimezone(timezone(timedelta(hours=-5)))
        self.assertEqual(backup_filename(eastern), backup_filename(WHEN))


class TestBackupFileStore(unittest.TestCase):
    """Tests for BackupFileStore."""

    def setUp(self) -> None:
        """Set up test fixtures with temp directory."""
        self.temp_dir = tempfile.mkdtemp()
        self.directory = Path(self.temp_dir) / "backups"
        self.files = BackupFileStore(self.directory)

    def tearDown(self) -> None:
        """Clean up temp directory."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_creates_directory(self) -> None:
        """Test that the first write creates the backup directory."""
        path = self.files.write(b"archive", WHEN)

        self.assertTrue(path.exists())
        self.assertEqual(path.parent, self.directory)
        self.assertEqual(path.read_bytes(), b"archive")
        self.assertTrue(path.name.endswith(BACKUP_EXTENSION))

    def test_write_leaves_no_temp_files(self) -> None:
        """Test that only the final file remains after a write."""
        self.files.write(b"archive", WHEN)

        self.assertEqual(len(list(self.directory.iterdir())), 1)

    @unittest.skipIf(os.name == "nt", "POSIX permissions")
    def test_write_permissions(self) -> None:
        """Test that backups are readable by the owner only."""
        path = self.files.write(b"archive", WHEN)
        self.assertEqual(path.stat().st_mode & 0o777, 0o600)

    def test_name_collision(self) -> None:
        """Test that two backups at the same instant get distinct names."""
        first = self.files.write(b"one", WHEN)
        second = self.files.write(b"two", WHEN)

        self.assertNotEqual(first, second)
        self.assertEqual(first.read_bytes(), b"one")
        self.assertEqual(second.read_bytes(), b"two")

    def test_failed_write_leaves_nothing(self) -> None:
        """Test that a failed rename removes the temporary file."""
        self.directory.mkdir(parents=True)

        with patch("stockly.backup.file_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(BackupIOError):
                self.files.write(b"archive", WHEN)

        self.assertEqual(list(self.directory.iterdir()), [])

    def test_list_most_recent_first(self) -> None:
        """Test listing order."""
        older = self.files.write(b"a", WHEN - timedelta(days=1))
        newest = self.files.write(b"b", WHEN)
        newest_again = self.files.write(b"c", WHEN)

        self.assertEqual(self.files.list(), [newest_again, newest, older])

    def test_list_ignores_other_files(self) -> None:
        """Test that unrelated files and temp files are not listed."""
        path = self.files.write(b"a", WHEN)
        (self.directory / "readme.txt").write_text("hello")
        (self.directory / f".{path.name}.x.tmp").write_bytes(b"partial")

        self.assertEqual(self.files.list(), [path])

    def test_list_missing_directory(self) -> None:
        """Test that a missing directory has no backups."""
        self.assertEqual(self.files.list(), [])

    def test_read(self) -> None:
        """Test reading a backup from any location."""
        elsewhere = Path(self.temp_dir) / "copy.bin"
        elsewhere.write_bytes(b"archive")

        self.assertEqual(self.files.read(elsewhere), b"archive")

    def test_read_missing(self) -> None:
        """Test that reading a missing file raises BackupIOError."""
        with self.assertRaises(BackupIOError):
            self.files.read(Path(self.temp_dir) / "missing.stocklybackup")

    def test_delete(self) -> None:
        """Test deleting a backup by path and by name."""
        first = self.files.write(b"a", WHEN)
        second = self.files.write(b"b", WHEN + timedelta(seconds=1))

        self.files.delete(first)
        self.files.delete(second.name)

        self.assertEqual(self.files.list(), [])

    def test_delete_missing_is_noop(self) -> None:
        """Test that deleting an already deleted backup is not an error."""
        path = self.files.write(b"a", WHEN)
        self.files.delete(path)
        self.files.delete(path)

    def test_delete_outside_directory(self) -> None:
        """Test that files outside the backup directory are protected."""
        outside = Path(self.temp_dir) / backup_filename(WHEN)
        outside.write_bytes(b"keep me")

        with self.assertRaises(BackupIOError):
            self.files.delete(outside)

        self.assertTrue(outside.exists())

    def test_delete_non_backup_file(self) -> None:
        """Test that non-backup files in the directory are protected."""
        self.directory.mkdir(parents=True)
        other = self.directory / "config.yaml"
        other.write_text("keep: me")

        with self.assertRaises(BackupIOError):
            self.files.delete(other)

        self.assertTrue(other.exists())


if __name__ == "__main__":
    unittest.main()

"""
Backup and restore engine for Stockly.

Snapshots the whole inventory store into a single portable archive file,
optionally encrypted with a password, and restores it with an
all-or-nothing commit.

Archive Pipeline:
    backup:  store -> Snapshot -> payload -> (encrypt) -> atomic file write
    restore: file -> (decrypt) -> checksum -> Snapshot -> stage -> commit

Usage:
    from stockly.backup import BackupService

    service = BackupService.from_settings(settings, config_dir)
    result = service.export_backup(password="correct horse battery staple")
    restored = service.import_backup(result.path, password="...")
"""

from stockly.backup.codec import (
    FORMAT_VERSION,
    MAGIC,
    SUPPORTED_VERSIONS,
    ArchiveCodec,
    ArchiveHeader,
)
from stockly.backup.crypto import CryptoEngine
from stockly.backup.errors import (
    ArchiveFormatError,
    AuthenticationFailedError,
    BackupError,
    BackupIOError,
    ChecksumMismatchError,
    CommitFailedError,
    IntegrityError,
    InvalidArchiveError,
    OperationCancelledError,
    OperationInProgressError,
    PasswordRequiredError,
    ReadError,
    TruncatedArchiveError,
    UnsupportedVersionError,
)
from stockly.backup.file_store import BackupFileStore
from stockly.backup.progress import Phase
from stockly.backup.reminder import should_remind
from stockly.backup.restore import RestoreOrchestrator, RestoreState, StagedGraph
from stockly.backup.service import (
    BackupResult,
    BackupService,
    BackupTask,
    RestoreResult,
)
from stockly.backup.snapshot import Snapshot, SnapshotBuilder

__all__ = [
    # Service
    "BackupService",
    "BackupTask",
    "BackupResult",
    "RestoreResult",
    "Phase",
    # Components
    "Snapshot",
    "SnapshotBuilder",
    "ArchiveCodec",
    "ArchiveHeader",
    "CryptoEngine",
    "BackupFileStore",
    "RestoreOrchestrator",
    "RestoreState",
    "StagedGraph",
    "should_remind",
    "MAGIC",
    "FORMAT_VERSION",
    "SUPPORTED_VERSIONS",
    # Exceptions
    "BackupError",
    "ReadError",
    "BackupIOError",
    "ArchiveFormatError",
    "UnsupportedVersionError",
    "TruncatedArchiveError",
    "InvalidArchiveError",
    "ChecksumMismatchError",
    "AuthenticationFailedError",
    "PasswordRequiredError",
    "IntegrityError",
    "OperationInProgressError",
    "OperationCancelledError",
    "CommitFailedError",
]

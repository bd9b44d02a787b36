"""
Backup service: the single entry point for backup and restore.

The service wires the snapshot builder, archive codec, crypto engine, file
store and restore orchestrator together, and enforces the rules that span
them:

    - Only one backup or restore runs at a time. A second request fails
      with OperationInProgressError and does not disturb the running one.
    - Long operations can run in the background (submit_export /
      submit_import) and be cancelled until they reach their final step.
    - A successful backup updates and persists last_backup_at; a restore
      never does.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from stockly import __version__
from stockly.backup import reminder
from stockly.backup.codec import ArchiveCodec, ArchiveHeader
from stockly.backup.crypto import CryptoEngine
from stockly.backup.errors import (
    BackupError,
    OperationCancelledError,
    OperationInProgressError,
)
from stockly.backup.file_store import BackupFileStore
from stockly.backup.progress import Phase, ProgressCallback, check_cancelled, report
from stockly.backup.restore import RestoreOrchestrator, RestoreState
from stockly.backup.snapshot import SnapshotBuilder
from stockly.config.policy import POLICY_FILE, BackupPolicy, PolicyStore
from stockly.config.settings import ConfigurationError, Settings
from stockly.storage.inventory_store import InventoryStore
from stockly.storage.models import utcnow

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Result of a backup operation."""

    success: bool
    path: Path | None = None
    size_bytes: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    encrypted: bool = False
    error: Exception | None = None


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    success: bool
    state: RestoreState | None = None
    counts: dict[str, int] = field(default_factory=dict)
    error: Exception | None = None


class BackupTask:
    """
    Handle to a backup or restore running in the background.

    Attributes:
        kind: "export" or "import".
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.cancel_event = threading.Event()
        self._future: Future[Any] | None = None
        self._gate = threading.Lock()
        self._final_step_started = False

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns:
            True if the operation will stop without taking effect, False if
            it already finished or has started its final step (writing the
            archive, committing the restore) and will run to completion.
        """
        with self._gate:
            if self._final_step_started or self.done():
                return False
            self.cancel_event.set()
            return True

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def result(self, timeout: float | None = None) -> Any:
        """Wait for and return the BackupResult or RestoreResult."""
        if self._future is None:
            raise RuntimeError("Task has not been started")
        return self._future.result(timeout)

    def _guard_progress(self, progress: ProgressCallback | None) -> ProgressCallback:
        """Wrap a progress callback so the final step cannot race a cancel()."""

        def guarded(phase: Phase) -> None:
            if phase in (Phase.WRITING, Phase.COMMITTING):
                with self._gate:
                    check_cancelled(self.cancel_event, f"before {phase.value}")
                    self._final_step_started = True
            report(progress, phase)

        return guarded


class BackupService:
    """
    Creates, lists, inspects and restores backups of an inventory store.

    Usage:
        service = BackupService(store, BackupFileStore(backup_dir), PolicyStore(path))

        result = service.export_backup(password="secret")
        if result.success:
            print(f"Backup written to {result.path}")

        if service.is_encrypted(result.path):
            restored = service.import_backup(result.path, password="secret")

        task = service.submit_export(progress=print)
        result = task.result()

        service.shutdown()
    """

    def __init__(
        self,
        store: InventoryStore,
        file_store: BackupFileStore,
        policy_store: PolicyStore,
        app_version: str = __version__,
        crypto: CryptoEngine | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the backup service.

        Args:
            store: Live inventory store to back up and restore into.
            file_store: Backup directory manager.
            policy_store: Persistence for the backup policy.
            app_version: Recorded in every archive.
            crypto: Crypto engine; defaults to the standard KDF parameters.
            clock: Source of the current time.
        """
        self.store = store
        self.file_store = file_store
        self.policy_store = policy_store
        self.app_version = app_version
        self.clock = clock
        self.codec = ArchiveCodec(crypto or CryptoEngine())
        self.builder = SnapshotBuilder(store, app_version, clock=clock)

        self._operation_lock = threading.Lock()
        self._policy_lock = threading.Lock()
        self._policy = policy_store.load()
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, config_dir: Path, **kwargs: Any
    ) -> BackupService:
        """Build a service from loaded configuration."""
        return cls(
            store=InventoryStore(Path(settings.data_dir).expanduser()),
            file_store=BackupFileStore(Path(settings.backup.directory).expanduser()),
            policy_store=PolicyStore(
                config_dir / POLICY_FILE,
                default_interval=settings.backup.default_reminder_days,
            ),
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # Backup and restore
    # -------------------------------------------------------------------------

    def export_backup(
        self,
        password: str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> BackupResult:
        """
        Create a backup of the whole store.

        Args:
            password: Encrypt the backup with this password. None for a
                      plain backup.
            progress: Called with each pipeline phase.
            cancel_event: Set it to cancel before the archive is written.

        Returns:
            BackupResult. On failure ``error`` holds the exception and no
            backup file is left behind.
        """
        if not self._operation_lock.acquire(blocking=False):
            return BackupResult(
                success=False,
                encrypted=password is not None,
                error=OperationInProgressError("Another backup or restore is running"),
            )
        try:
            return self._run_export(password, progress, cancel_event)
        finally:
            self._operation_lock.release()

    def import_backup(
        self,
        path: Path | str,
        password: str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RestoreResult:
        """
        Replace the whole store with the contents of a backup.

        This is destructive; callers must confirm with the user first.

        Returns:
            RestoreResult. On failure ``error`` holds the exception and the
            store is unchanged.
        """
        if not self._operation_lock.acquire(blocking=False):
            return RestoreResult(
                success=False,
                error=OperationInProgressError("Another backup or restore is running"),
            )
        try:
            return self._run_import(path, password, progress, cancel_event)
        finally:
            self._operation_lock.release()

    def submit_export(
        self,
        password: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> BackupTask:
        """
        Start a backup in the background.

        Raises:
            OperationInProgressError: If another operation is running.
        """
        task = BackupTask("export")
        self._submit(
            task,
            lambda: self._run_export(
                password, task._guard_progress(progress), task.cancel_event
            ),
        )
        return task

    def submit_import(
        self,
        path: Path | str,
        password: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> BackupTask:
        """
        Start a restore in the background.

        Raises:
            OperationInProgressError: If another operation is running.
        """
        task = BackupTask("import")
        self._submit(
            task,
            lambda: self._run_import(
                path, password, task._guard_progress(progress), task.cancel_event
            ),
        )
        return task

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker."""
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def _submit(self, task: BackupTask, work: Callable[[], Any]) -> None:
        if not self._operation_lock.acquire(blocking=False):
            raise OperationInProgressError("Another backup or restore is running")

        def run() -> Any:
            try:
                return work()
            finally:
                self._operation_lock.release()

        try:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="stockly-backup"
                )
            task._future = self._executor.submit(run)
        except BaseException:
            self._operation_lock.release()
            raise

    def _run_export(
        self,
        password: str | None,
        progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> BackupResult:
        encrypted = password is not None
        try:
            check_cancelled(cancel_event, "before reading")

            report(progress, Phase.READING)
            snapshot = self.builder.build()
            check_cancelled(cancel_event, "after reading")

            report(progress, Phase.ENCODING)
            payload = self.codec.encode_payload(snapshot)
            check_cancelled(cancel_event, "after encoding")

            if encrypted:
                report(progress, Phase.ENCRYPTING)
            data = self.codec.build_archive(snapshot, payload, password)
            check_cancelled(cancel_event, "before writing")

            report(progress, Phase.WRITING)
            path = self.file_store.write(data, snapshot.created_at)
        except OperationCancelledError as e:
            logger.info(f"Backup cancelled: {e}")
            return BackupResult(success=False, encrypted=encrypted, error=e)
        except BackupError as e:
            logger.error(f"Backup failed ({e.kind}): {e}")
            return BackupResult(success=False, encrypted=encrypted, error=e)
        except Exception as e:
            logger.exception("Backup failed")
            return BackupResult(success=False, encrypted=encrypted, error=e)

        self._record_backup_completed()
        report(progress, Phase.DONE)

        counts = snapshot.counts()
        logger.info(
            f"Backup created: {path.name} ({len(data)} bytes, "
            f"{sum(counts.values())} records, encrypted={encrypted})"
        )
        return BackupResult(
            success=True,
            path=path,
            size_bytes=len(data),
            counts=counts,
            encrypted=encrypted,
        )

    def _run_import(
        self,
        path: Path | str,
        password: str | None,
        progress: ProgressCallback | None,
        cancel_event: threading.Event | None,
    ) -> RestoreResult:
        orchestrator = RestoreOrchestrator(self.store, self.codec, self.file_store)
        try:
            counts = orchestrator.restore(path, password, progress, cancel_event)
        except OperationCancelledError as e:
            logger.info(f"Restore cancelled: {e}")
            return RestoreResult(success=False, state=orchestrator.state, error=e)
        except BackupError as e:
            logger.error(f"Restore failed ({e.kind}): {e}")
            return RestoreResult(success=False, state=orchestrator.state, error=e)
        except Exception as e:
            logger.exception("Restore failed")
            return RestoreResult(success=False, state=orchestrator.state, error=e)

        report(progress, Phase.DONE)
        return RestoreResult(success=True, state=orchestrator.state, counts=counts)

    # -------------------------------------------------------------------------
    # Backup files
    # -------------------------------------------------------------------------

    def is_encrypted(self, path: Path | str) -> bool:
        """
        Check whether a backup is password protected. No password needed.

        Raises:
            BackupIOError: If the file cannot be read.
            ArchiveFormatError: If the file is not a readable backup.
        """
        return self.inspect(path).encrypted

    def inspect(self, path: Path | str) -> ArchiveHeader:
        """Read a backup's header (version, creation time, encryption)."""
        return self.codec.read_header(self.file_store.read(path))

    def list_backups(self) -> list[Path]:
        """Backups in the backup directory, most recent first."""
        return self.file_store.list()

    def delete_backup(self, path: Path | str) -> None:
        """Delete one backup from the backup directory."""
        self.file_store.delete(path)

    # -------------------------------------------------------------------------
    # Policy
    # -------------------------------------------------------------------------

    def get_backup_policy(self) -> BackupPolicy:
        with self._policy_lock:
            return self._policy

    def set_reminder_interval(self, days: int) -> BackupPolicy:
        """
        Set the reminder interval in days. 0 turns reminders off.

        Raises:
            ValueError: If days is negative.
            ConfigurationError: If the policy cannot be saved.
        """
        if days < 0:
            raise ValueError(f"Reminder interval must be 0 or more days, got {days}")
        return self._update_policy(reminder_interval_days=days)

    def set_password_protection(self, enabled: bool) -> BackupPolicy:
        """Record whether new backups should be password protected."""
        return self._update_policy(password_protection_enabled=bool(enabled))

    def should_remind(self, now: datetime | None = None) -> bool:
        """Whether the user should be reminded to back up."""
        policy = self.get_backup_policy()
        return reminder.should_remind(
            now or self.clock(),
            policy.last_backup_at,
            policy.reminder_interval_days,
        )

    def _update_policy(self, **changes: Any) -> BackupPolicy:
        with self._policy_lock:
            policy = dataclasses.replace(self._policy, **changes)
            self.policy_store.save(policy)
            self._policy = policy
        logger.info(f"Backup policy updated: {changes}")
        return policy

    def _record_backup_completed(self) -> None:
        try:
            self._update_policy(last_backup_at=self.clock())
        except ConfigurationError as e:
            logger.warning(f"Backup succeeded but its time could not be saved: {e}")

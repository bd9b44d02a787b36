"""
Restore orchestration.

A restore replaces the entire live store with the contents of an archive.
It runs as a small state machine:

    VALIDATE -> STAGE -> COMMIT -> DONE
        \\          \\        \\
         +----------+--------+--> FAILED

VALIDATE reads, decrypts and decodes the archive. STAGE indexes the decoded
records and re-checks referential integrity. Neither touches the live store.
COMMIT swaps the whole store inside one database transaction; if anything
goes wrong the transaction is rolled back and the store is exactly as it was.

The caller is responsible for confirming the restore with the user before
calling ``restore()``; the operation is destructive.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from stockly.backup.codec import ArchiveCodec
from stockly.backup.errors import CommitFailedError, IntegrityError
from stockly.backup.file_store import BackupFileStore
from stockly.backup.progress import Phase, ProgressCallback, check_cancelled, report
from stockly.backup.snapshot import Snapshot, check_references
from stockly.storage.inventory_store import InventoryStore, StorageError
from stockly.storage.models import ENTITY_TYPES, Record

logger = logging.getLogger(__name__)


class RestoreState(Enum):
    """States of the restore state machine."""

    VALIDATE = "validate"
    STAGE = "stage"
    COMMIT = "commit"
    DONE = "done"
    FAILED = "failed"


@dataclass
class StagedGraph:
    """
    Decoded records indexed by type and id, ready to be committed.

    Attributes:
        index: Records per entity type name, keyed by id, in snapshot order.
        settings: Company settings to restore.
    """

    index: dict[str, dict[str, Record]] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> StagedGraph:
        """
        Stage a snapshot.

        Raises:
            IntegrityError: If ids are duplicated or a foreign key does not
                resolve within the snapshot.
        """
        problems = check_references(snapshot.collections)
        if problems:
            raise IntegrityError(
                f"Backup has {len(problems)} referential integrity problem(s): "
                f"{problems[0]}",
                problems,
            )

        index = {
            entity_type.name: {
                record.id: record
                for record in snapshot.collections.get(entity_type.name, ())
            }
            for entity_type in ENTITY_TYPES
        }
        return cls(index=index, settings=dict(snapshot.settings))

    def collections(self) -> dict[str, list[Record]]:
        """Records per entity type in registry (insert) order."""
        return {name: list(records.values()) for name, records in self.index.items()}

    def counts(self) -> dict[str, int]:
        return {name: len(records) for name, records in self.index.items()}


class RestoreOrchestrator:
    """
    Runs one restore through Validate, Stage and Commit.

    Example:
        orchestrator = RestoreOrchestrator(store, codec, files)
        counts = orchestrator.restore(path, password="secret")

    Attributes:
        state: Current state, or None before ``restore()`` is called.
        history: Every state entered, in order.
        error: The exception the restore failed with, if any.
    """

    def __init__(
        self,
        store: InventoryStore,
        codec: ArchiveCodec,
        file_store: BackupFileStore,
    ) -> None:
        self.store = store
        self.codec = codec
        self.file_store = file_store
        self.history: list[RestoreState] = []
        self.error: Exception | None = None

    @property
    def state(self) -> RestoreState | None:
        return self.history[-1] if self.history else None

    def restore(
        self,
        path: Path | str,
        password: str | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> dict[str, int]:
        """
        Restore the store from an archive file.

        Args:
            path: Archive to restore.
            password: Password for encrypted archives.
            progress: Called with each pipeline phase.
            cancel_event: Checked before the commit starts. Once committing,
                the restore runs to completion.

        Returns:
            Number of records restored per entity type.

        Raises:
            BackupError: Any failure; see the error kinds. The store is
                unchanged on every failure.
        """
        self.history = []
        self.error = None

        try:
            self._enter(RestoreState.VALIDATE)
            report(progress, Phase.READING)
            data = self.file_store.read(path)
            check_cancelled(cancel_event, "while reading")

            header = self.codec.read_header(data)
            if header.encrypted:
                report(progress, Phase.DECRYPTING)
            _, payload = self.codec.open_payload(data, password)
            check_cancelled(cancel_event, "while validating")

            report(progress, Phase.DECODING)
            snapshot = self.codec.decode_payload(payload)
            check_cancelled(cancel_event, "while decoding")

            self._enter(RestoreState.STAGE)
            report(progress, Phase.STAGING)
            staged = StagedGraph.from_snapshot(snapshot)
            check_cancelled(cancel_event, "before commit")

            report(progress, Phase.COMMITTING)
            self._enter(RestoreState.COMMIT)
            counts = self._commit(staged)

            self._enter(RestoreState.DONE)
        except Exception as e:
            self.error = e
            self._enter(RestoreState.FAILED)
            raise

        logger.info(
            f"Restored {sum(counts.values())} records from {Path(path).name} "
            f"(backup taken {snapshot.created_at.isoformat()}): "
            f"{describe_counts(counts)}"
        )
        return counts

    def _commit(self, staged: StagedGraph) -> dict[str, int]:
        try:
            return self.store.replace_all(staged.collections(), staged.settings)
        except StorageError as e:
            raise CommitFailedError(
                f"Restore failed and was rolled back; no data was changed: {e}"
            ) from e

    def _enter(self, state: RestoreState) -> None:
        self.history.append(state)
        logger.debug(f"Restore state: {state.value}")


def describe_counts(counts: Mapping[str, int]) -> str:
    """Render per-type counts as 'clients=3, items=12' skipping empty types."""
    return ", ".join(f"{name}={count}" for name, count in counts.items() if count)

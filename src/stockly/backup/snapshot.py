"""
Point-in-time snapshots of the inventory store.

A Snapshot is a storage-independent, self-contained copy of every record of
every managed entity type plus the company settings. Relationships are
identifier values, so a snapshot can be serialized, shipped and restored
without any reference to live store objects.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stockly.backup.errors import IntegrityError, ReadError
from stockly.storage.inventory_store import InventoryStore, StorageError
from stockly.storage.models import (
    ENTITY_TYPES,
    ENTITY_TYPES_BY_NAME,
    Record,
    parse_datetime,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable copy of the whole entity graph.

    Attributes:
        created_at: When the snapshot was taken (UTC).
        app_version: Version of the application that took it.
        collections: Records per entity type name, in registry order.
        settings: Company settings (key to JSON scalar).
    """

    created_at: datetime
    app_version: str
    collections: dict[str, tuple[Record, ...]] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        """Number of records per entity type, including empty types."""
        return {
            entity_type.name: len(self.collections.get(entity_type.name, ()))
            for entity_type in ENTITY_TYPES
        }

    def total_records(self) -> int:
        return sum(len(records) for records in self.collections.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "created_at": self.created_at.isoformat(),
            "app_version": self.app_version,
            "collections": {
                entity_type.name: [
                    record.to_dict()
                    for record in self.collections.get(entity_type.name, ())
                ]
                for entity_type in ENTITY_TYPES
            },
            "settings": dict(self.settings),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Snapshot:
        """
        Create from a dictionary produced by ``to_dict``.

        Raises:
            KeyError: If a required key or record field is missing.
            ValueError: If a collection name is unknown or a value is malformed.
        """
        raw_collections = data["collections"]
        if not isinstance(raw_collections, Mapping):
            raise ValueError("collections must be a mapping")

        unknown = set(raw_collections) - set(ENTITY_TYPES_BY_NAME)
        if unknown:
            raise ValueError(f"Unknown entity types: {', '.join(sorted(unknown))}")

        collections: dict[str, tuple[Record, ...]] = {}
        for entity_type in ENTITY_TYPES:
            raw_records = raw_collections.get(entity_type.name, [])
            if not isinstance(raw_records, list):
                raise ValueError(f"{entity_type.name} must be a list")
            collections[entity_type.name] = tuple(
                entity_type.model.from_dict(raw) for raw in raw_records
            )

        settings = data.get("settings", {})
        if not isinstance(settings, Mapping):
            raise ValueError("settings must be a mapping")

        return cls(
            created_at=parse_datetime(data["created_at"]),
            app_version=str(data["app_version"]),
            collections=collections,
            settings=dict(settings),
        )


def check_references(collections: Mapping[str, Sequence[Record]]) -> list[str]:
    """
    Check identifier uniqueness and foreign key resolution.

    Args:
        collections: Records per entity type name.

    Returns:
        A list of human-readable problems. Empty when the graph is consistent.
    """
    problems: list[str] = []
    ids: dict[str, set[str]] = {}

    for entity_type in ENTITY_TYPES:
        seen: set[str] = set()
        for record in collections.get(entity_type.name, ()):
            if record.id in seen:
                problems.append(f"{entity_type.name}: duplicate id {record.id}")
            seen.add(record.id)
        ids[entity_type.name] = seen

    for entity_type in ENTITY_TYPES:
        for fk in entity_type.foreign_keys:
            targets = ids[fk.target]
            for record in collections.get(entity_type.name, ()):
                value = getattr(record, fk.field)
                if value is None:
                    if not fk.nullable:
                        problems.append(
                            f"{entity_type.name} {record.id}: {fk.field} is required"
                        )
                elif value not in targets:
                    problems.append(
                        f"{entity_type.name} {record.id}: {fk.field} references "
                        f"missing {fk.target} {value}"
                    )

    return problems


class SnapshotBuilder:
    """
    Builds snapshots from the live inventory store.

    The whole store is read inside one read transaction, so the snapshot
    reflects a single point in time even while other writers are active.

    Example:
        builder = SnapshotBuilder(store, app_version="1.0.0")
        snapshot = builder.build()
        print(snapshot.counts())
    """

    def __init__(
        self,
        store: InventoryStore,
        app_version: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.app_version = app_version
        self.clock = clock

    def build(self) -> Snapshot:
        """
        Take a snapshot of the store.

        Returns:
            Snapshot with every record of every type.

        Raises:
            ReadError: If the store cannot be read.
            IntegrityError: If the store contains dangling references.
        """
        try:
            contents = self.store.read_all()
        except (StorageError, sqlite3.Error, OSError, ValueError, TypeError) as e:
            raise ReadError(f"Failed to read inventory store: {e}") from e

        problems = check_references(contents.collections)
        if problems:
            raise IntegrityError(
                f"Store has {len(problems)} referential integrity problem(s)",
                problems,
            )

        snapshot = Snapshot(
            created_at=self.clock(),
            app_version=self.app_version,
            collections={
                name: tuple(records) for name, records in contents.collections.items()
            },
            settings=contents.settings,
        )
        logger.debug(f"Built snapshot with {snapshot.total_records()} records")
        return snapshot

"""
Inventory storage engine for Stockly.

This module provides the InventoryStore class, the persistent store that owns
the live entity graph: clients, suppliers, categories and their custom fields,
items, invoices, estimates and their line items, plus the company settings.

Storage Structure:
    data/
        stockly.db                          # SQLite database

Design Decisions:
    - SQLite is used for its simplicity, portability, and ACID compliance
    - One table per entity type, columns named after the model fields
    - Foreign keys are enforced so the live graph has no dangling references
    - read_all() runs inside one read transaction for a point-in-time view
    - replace_all() swaps every table inside one write transaction, so a
      failure rolls back to the exact previous contents

Thread Safety:
    The store uses the connection-per-operation pattern. The backup engine
    is the only writer during a restore commit.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from stockly.storage.models import (
    ENTITY_TYPES,
    ENTITY_TYPES_BY_NAME,
    EntityType,
    Record,
    entity_type_for,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class RecordNotFoundError(StorageError):
    """Raised when a requested record does not exist."""

    pass


# Database schema version for migrations
SCHEMA_VERSION = 1

DATABASE_FILE = "stockly.db"


# SQL statements for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS clients (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    phone TEXT,
    address TEXT NOT NULL,
    city TEXT NOT NULL,
    country TEXT NOT NULL,
    postal_code TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS suppliers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    phone TEXT,
    address TEXT NOT NULL,
    city TEXT NOT NULL,
    country TEXT NOT NULL,
    postal_code TEXT NOT NULL,
    contact_person TEXT,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS categories (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS custom_fields (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category_id TEXT,
    field_type TEXT NOT NULL,
    required INTEGER NOT NULL,
    options TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (category_id) REFERENCES categories(id)
);

CREATE INDEX IF NOT EXISTS idx_custom_fields_category ON custom_fields(category_id);

CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    sku TEXT NOT NULL,
    price REAL NOT NULL,
    buy_price REAL NOT NULL,
    stock_quantity INTEGER NOT NULL,
    min_stock_level INTEGER NOT NULL,
    measurement_unit TEXT NOT NULL,
    tax_rate REAL NOT NULL,
    barcode TEXT,
    image_url TEXT,
    image_data BLOB,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    inventory_added_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    number TEXT NOT NULL,
    client_name TEXT NOT NULL,
    due_date TEXT NOT NULL,
    client_id TEXT,
    client_address TEXT NOT NULL,
    client_email TEXT,
    client_phone TEXT,
    status TEXT NOT NULL,
    payment_method TEXT,
    document_type TEXT NOT NULL,
    date_created TEXT NOT NULL,
    subtotal REAL NOT NULL,
    discount REAL NOT NULL,
    discount_type TEXT NOT NULL,
    tax REAL NOT NULL,
    tax_rate REAL NOT NULL,
    total_amount REAL NOT NULL,
    notes TEXT NOT NULL,
    header_note TEXT,
    footer_note TEXT,
    banking_info TEXT,
    signature BLOB,
    barcode_data TEXT,
    qr_code_data TEXT,
    template_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (client_id) REFERENCES clients(id)
);

CREATE TABLE IF NOT EXISTS invoice_items (
    id TEXT PRIMARY KEY,
    invoice_id TEXT NOT NULL,
    name TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    unit_price REAL NOT NULL,
    description TEXT,
    tax REAL NOT NULL,
    discount REAL NOT NULL,
    total_amount REAL NOT NULL,
    position INTEGER NOT NULL,
    FOREIGN KEY (invoice_id) REFERENCES invoices(id)
);

CREATE INDEX IF NOT EXISTS idx_invoice_items_invoice ON invoice_items(invoice_id);

CREATE TABLE IF NOT EXISTS custom_invoice_fields (
    id TEXT PRIMARY KEY,
    invoice_id TEXT NOT NULL,
    name TEXT NOT NULL,
    value TEXT NOT NULL,
    FOREIGN KEY (invoice_id) REFERENCES invoices(id)
);

CREATE TABLE IF NOT EXISTS estimates (
    id TEXT PRIMARY KEY,
    number TEXT NOT NULL,
    client_name TEXT NOT NULL,
    expiry_date TEXT NOT NULL,
    client_id TEXT,
    client_address TEXT NOT NULL,
    client_email TEXT,
    client_phone TEXT,
    status TEXT NOT NULL,
    date_created TEXT NOT NULL,
    subtotal REAL NOT NULL,
    discount REAL NOT NULL,
    discount_type TEXT NOT NULL,
    tax REAL NOT NULL,
    tax_rate REAL NOT NULL,
    total_amount REAL NOT NULL,
    notes TEXT NOT NULL,
    header_note TEXT,
    footer_note TEXT,
    template_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (client_id) REFERENCES clients(id)
);

CREATE TABLE IF NOT EXISTS estimate_items (
    id TEXT PRIMARY KEY,
    estimate_id TEXT NOT NULL,
    name TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    unit_price REAL NOT NULL,
    description TEXT,
    tax REAL NOT NULL,
    discount REAL NOT NULL,
    total_amount REAL NOT NULL,
    position INTEGER NOT NULL,
    FOREIGN KEY (estimate_id) REFERENCES estimates(id)
);

CREATE INDEX IF NOT EXISTS idx_estimate_items_estimate ON estimate_items(estimate_id);

CREATE TABLE IF NOT EXISTS custom_estimate_fields (
    id TEXT PRIMARY KEY,
    estimate_id TEXT NOT NULL,
    name TEXT NOT NULL,
    value TEXT NOT NULL,
    FOREIGN KEY (estimate_id) REFERENCES estimates(id)
);

-- Company settings (name, address, invoice prefix, ...)
CREATE TABLE IF NOT EXISTS app_settings (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL
);
"""


@dataclass
class StoreContents:
    """
    Everything the store holds, read at one point in time.

    Attributes:
        collections: Records per entity type name, in registry order.
        settings: Company settings as a key to JSON-scalar mapping.
    """

    collections: dict[str, list[Record]] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)


class InventoryStore:
    """
    Persistent storage for the inventory and invoicing entity graph.

    Example:
        store = InventoryStore(data_dir=Path("./data"))

        store.add(Client(id=new_id(), name="John Smith"))
        clients = store.list_records("clients")

        # Point-in-time read of everything
        contents = store.read_all()

        # Atomic swap of everything (used by restore)
        store.replace_all(contents.collections, contents.settings)

    Attributes:
        data_dir: Base directory for all data storage.
        db_path: Path to the SQLite database file.
        timeout: Seconds to wait for a lock held by another connection.
    """

    def __init__(
        self, data_dir: Path | str | None = None, timeout: float = 5.0
    ) -> None:
        """
        Initialize the inventory store.

        Args:
            data_dir: Base directory for data storage. Defaults to ~/.stockly/data
            timeout: Seconds to wait for another connection's lock before
                     giving up with "database is locked".
        """
        if data_dir is None:
            data_dir = Path.home() / ".stockly" / "data"
        elif isinstance(data_dir, str):
            data_dir = Path(data_dir)

        self.data_dir = data_dir
        self.db_path = data_dir / DATABASE_FILE
        self.timeout = timeout

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.executescript(CREATE_TABLES_SQL)

            cursor = conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()

            if row is None:
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, datetime.now(UTC).isoformat()),
                )
                logger.info(f"Initialized database schema version {SCHEMA_VERSION}")
            elif row[0] < SCHEMA_VERSION:
                logger.warning(
                    f"Database schema version {row[0]} is older than "
                    f"expected version {SCHEMA_VERSION}"
                )

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection with proper settings.

        Yields:
            SQLite connection with row factory set.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.timeout,
            isolation_level=None,  # Autocommit mode, we manage transactions manually
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # Record Methods
    # -------------------------------------------------------------------------

    def add(self, record: Record) -> None:
        """
        Insert a single record.

        Raises:
            StorageError: If the insert violates a constraint.
        """
        self.add_many([record])

    def add_many(self, records: Iterable[Record]) -> int:
        """
        Insert records in one transaction, in the order given.

        Parents must come before children (e.g. an invoice before its items).

        Returns:
            Number of records inserted.

        Raises:
            StorageError: If any insert fails; nothing is written in that case.
        """
        records = list(records)
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN TRANSACTION")
                for record in records:
                    entity_type = entity_type_for(record)
                    self._insert_records(conn, entity_type, [record])
                conn.execute("COMMIT")
            except Exception as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StorageError(f"Failed to add records: {e}") from e
        return len(records)

    def get_record(self, entity_name: str, record_id: str) -> Record:
        """
        Get a record by type name and ID.

        Raises:
            RecordNotFoundError: If no such record exists.
        """
        entity_type = ENTITY_TYPES_BY_NAME[entity_name]
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {entity_type.table} WHERE id = ?",  # noqa: S608
                (record_id,),
            ).fetchone()
        if row is None:
            raise RecordNotFoundError(f"No {entity_name} record with id {record_id}")
        return entity_type.model.from_row(row)

    def list_records(self, entity_name: str) -> list[Record]:
        """List all records of one type in insertion order."""
        entity_type = ENTITY_TYPES_BY_NAME[entity_name]
        with self._get_connection() as conn:
            return self._select_records(conn, entity_type)

    def delete_record(self, entity_name: str, record_id: str) -> None:
        """
        Delete a record by type name and ID.

        Raises:
            RecordNotFoundError: If no such record exists.
            StorageError: If other records still reference it.
        """
        entity_type = ENTITY_TYPES_BY_NAME[entity_name]
        with self._get_connection() as conn:
            try:
                cursor = conn.execute(
                    f"DELETE FROM {entity_type.table} WHERE id = ?",  # noqa: S608
                    (record_id,),
                )
            except sqlite3.IntegrityError as e:
                raise StorageError(
                    f"Cannot delete {entity_name} {record_id}: still referenced"
                ) from e
        if cursor.rowcount == 0:
            raise RecordNotFoundError(f"No {entity_name} record with id {record_id}")

    def count_records(self) -> dict[str, int]:
        """Get the number of records per entity type."""
        counts: dict[str, int] = {}
        with self._get_connection() as conn:
            for entity_type in ENTITY_TYPES:
                (count,) = conn.execute(
                    f"SELECT COUNT(*) FROM {entity_type.table}"  # noqa: S608
                ).fetchone()
                counts[entity_type.name] = count
        return counts

    # -------------------------------------------------------------------------
    # Settings Methods
    # -------------------------------------------------------------------------

    def get_settings(self) -> dict[str, Any]:
        """Get all company settings."""
        with self._get_connection() as conn:
            return self._select_settings(conn)

    def set_setting(self, key: str, value: Any) -> None:
        """Set a company setting. Values must be JSON-serializable scalars."""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO app_settings (key, value_json) VALUES (?, ?)",
                (key, json.dumps(value)),
            )

    # -------------------------------------------------------------------------
    # Whole-Graph Methods
    # -------------------------------------------------------------------------

    def read_all(self) -> StoreContents:
        """
        Read every record of every type and all settings.

        All queries run inside a single read transaction, so concurrent
        writers cannot produce a mix of before and after states.

        Returns:
            StoreContents with fresh record instances.

        Raises:
            StorageError: If the database cannot be queried.
        """
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN")
                try:
                    collections = {
                        entity_type.name: self._select_records(conn, entity_type)
                        for entity_type in ENTITY_TYPES
                    }
                    settings = self._select_settings(conn)
                finally:
                    conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read store: {e}") from e

        return StoreContents(collections=collections, settings=settings)

    def replace_all(
        self,
        collections: Mapping[str, Iterable[Record]],
        settings: Mapping[str, Any],
    ) -> dict[str, int]:
        """
        Replace the entire contents of the store atomically.

        Removes every record of every managed type and all settings, then
        inserts the given records preserving their identifiers. Either the
        whole replacement commits or the store is left exactly as it was.

        Args:
            collections: Records per entity type name. Missing types are
                         replaced with nothing.
            settings: Company settings to store.

        Returns:
            Number of records inserted per entity type.

        Raises:
            StorageError: If any step fails; the transaction is rolled back.
        """
        counts: dict[str, int] = {}
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")

                for entity_type in reversed(ENTITY_TYPES):
                    conn.execute(f"DELETE FROM {entity_type.table}")  # noqa: S608
                conn.execute("DELETE FROM app_settings")

                for entity_type in ENTITY_TYPES:
                    records = list(collections.get(entity_type.name, ()))
                    self._insert_records(conn, entity_type, records)
                    counts[entity_type.name] = len(records)

                conn.executemany(
                    "INSERT INTO app_settings (key, value_json) VALUES (?, ?)",
                    [(key, json.dumps(value)) for key, value in settings.items()],
                )

                conn.execute("COMMIT")
            except Exception as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                logger.error(f"Failed to replace store contents: {e}")
                raise StorageError(f"Failed to replace store contents: {e}") from e

        logger.info(f"Replaced store contents: {sum(counts.values())} records")
        return counts

    def _insert_records(
        self,
        conn: sqlite3.Connection,
        entity_type: EntityType,
        records: list[Record],
    ) -> None:
        """
        Insert records of one type (internal helper).

        Args:
            conn: Database connection (within a transaction).
            entity_type: Registry entry for the records.
            records: Records to insert.
        """
        if not records:
            return
        columns = entity_type.model.column_names()
        placeholders = ", ".join("?" for _ in columns)
        conn.executemany(
            f"INSERT INTO {entity_type.table} ({', '.join(columns)}) "  # noqa: S608
            f"VALUES ({placeholders})",
            [record.to_row() for record in records],
        )

    def _select_records(
        self, conn: sqlite3.Connection, entity_type: EntityType
    ) -> list[Record]:
        cursor = conn.execute(
            f"SELECT * FROM {entity_type.table} ORDER BY rowid"  # noqa: S608
        )
        return [entity_type.model.from_row(row) for row in cursor.fetchall()]

    def _select_settings(self, conn: sqlite3.Connection) -> dict[str, Any]:
        cursor = conn.execute("SELECT key, value_json FROM app_settings ORDER BY key")
        return {row["key"]: json.loads(row["value_json"]) for row in cursor.fetchall()}

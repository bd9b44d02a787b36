"""
Tests for snapshots and the snapshot builder.

Uses Python's unittest module.
"""

from __future__ import annotations

import shutil
import sqlite3
import tempfile
import unittest
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from stockly.backup.errors import IntegrityError, ReadError
from stockly.backup.snapshot import Snapshot, SnapshotBuilder, check_references
from stockly.storage.inventory_store import InventoryStore, StorageError, StoreContents
from stockly.storage.models import (
    Client,
    Estimate,
    EstimateItem,
    Invoice,
    InvoiceItem,
)

TAKEN_AT = datetime(2025, 6, 1, 9, 30, tzinfo=UTC)


class TestCheckReferences(unittest.TestCase):
    """Tests for referential integrity checks."""

    def setUp(self) -> None:
        self.client = Client(id="cli-1", name="John Smith")
        self.invoice = Invoice(
            id="inv-1",
            number="INV-1",
            client_name="John Smith",
            due_date=TAKEN_AT,
            client_id="cli-1",
        )

    def test_consistent_graph(self) -> None:
        """Test that a consistent graph has no problems."""
        collections = {
            "clients": [self.client],
            "invoices": [self.invoice],
            "invoice_items": [
                InvoiceItem(
                    id="l1", invoice_id="inv-1", name="Ring", quantity=1, unit_price=5.0
                )
            ],
        }
        self.assertEqual(check_references(collections), [])

    def test_dangling_line_item(self) -> None:
        """Test that a line item pointing at a missing invoice is reported."""
        collections = {
            "estimates": [],
            "estimate_items": [
                EstimateItem(
                    id="l1", estimate_id="est-9", name="Ring", quantity=1, unit_price=5.0
                )
            ],
        }

        problems = check_references(collections)

        self.assertEqual(len(problems), 1)
        self.assertIn("est-9", problems[0])

    def test_nullable_reference(self) -> None:
        """Test that an invoice without a client id is allowed."""
        invoice = Invoice(
            id="inv-2", number="INV-2", client_name="Walk-in", due_date=TAKEN_AT
        )
        self.assertEqual(check_references({"invoices": [invoice]}), [])

    def test_dangling_nullable_reference(self) -> None:
        """Test that a set but unresolved client id is reported."""
        problems = check_references({"invoices": [self.invoice]})
        self.assertEqual(len(problems), 1)
        self.assertIn("client_id", problems[0])

    def test_duplicate_ids(self) -> None:
        """Test that duplicate identifiers are reported."""
        problems = check_references({"clients": [self.client, self.client]})
        self.assertEqual(len(problems), 1)
        self.assertIn("duplicate", problems[0])


class TestSnapshot(unittest.TestCase):
    """Tests for the Snapshot dataclass."""

    def make_snapshot(self) -> Snapshot:
        return Snapshot(
            created_at=TAKEN_AT,
            app_version="1.2.3",
            collections={
                "clients": (Client(id="cli-1", name="John Smith"),),
                "estimates": (
                    Estimate(
                        id="est-1",
                        number="EST-1",
                        client_name="John Smith",
                        expiry_date=TAKEN_AT,
                        client_id="cli-1",
                    ),
                ),
            },
            settings={"companyName": "Montecristo", "nextEstimateNumber": 2},
        )

    def test_counts_include_empty_types(self) -> None:
        """Test that counts list every entity type."""
        counts = self.make_snapshot().counts()

        self.assertEqual(len(counts), 11)
        self.assertEqual(counts["clients"], 1)
        self.assertEqual(counts["suppliers"], 0)

    def test_dict_round_trip(self) -> None:
        """Test to_dict/from_dict equality."""
        snapshot = self.make_snapshot()

        restored = Snapshot.from_dict(snapshot.to_dict())

        self.assertEqual(restored.created_at, snapshot.created_at)
        self.assertEqual(restored.settings, snapshot.settings)
        self.assertEqual(restored.collections["clients"], snapshot.collections["clients"])
        self.assertEqual(
            restored.collections["estimates"], snapshot.collections["estimates"]
        )
        self.assertEqual(restored.total_records(), 2)

    def test_from_dict_unknown_type(self) -> None:
        """Test that unknown collections are rejected."""
        data = self.make_snapshot().to_dict()
        data["collections"]["widgets"] = []

        with self.assertRaises(ValueError):
            Snapshot.from_dict(data)

    def test_from_dict_missing_types_are_empty(self) -> None:
        """Test that absent collections decode as empty."""
        data = {
            "created_at": TAKEN_AT.isoformat(),
            "app_version": "1.0.0",
            "collections": {},
        }

        snapshot = Snapshot.from_dict(data)

        self.assertEqual(snapshot.total_records(), 0)
        self.assertEqual(snapshot.settings, {})


class TestSnapshotBuilder(unittest.TestCase):
    """Tests for SnapshotBuilder."""

    def setUp(self) -> None:
        """Set up test fixtures with temp directory."""
        self.temp_dir = tempfile.mkdtemp()
        self.store = InventoryStore(Path(self.temp_dir))

    def tearDown(self) -> None:
        """Clean up temp directory."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_build(self) -> None:
        """Test building a snapshot of the live store."""
        self.store.add(Client(id="cli-1", name="John Smith"))
        self.store.set_setting("currencySymbol", "$")
        builder = SnapshotBuilder(self.store, "1.0.0", clock=lambda: TAKEN_AT)

        snapshot = builder.build()

        self.assertEqual(snapshot.created_at, TAKEN_AT)
        self.assertEqual(snapshot.app_version, "1.0.0")
        self.assertEqual(snapshot.counts()["clients"], 1)
        self.assertEqual(snapshot.settings, {"currencySymbol": "$"})

    def test_build_empty_store(self) -> None:
        """Test that an empty store gives an empty snapshot."""
        snapshot = SnapshotBuilder(self.store, "1.0.0").build()

        self.assertEqual(snapshot.total_records(), 0)
        self.assertEqual(len(snapshot.counts()), 11)

    def test_snapshot_is_independent_of_store(self) -> None:
        """Test that later writes do not change an existing snapshot."""
        builder = SnapshotBuilder(self.store, "1.0.0")
        snapshot = builder.build()

        self.store.add(Client(id="cli-1", name="John Smith"))

        self.assertEqual(snapshot.counts()["clients"], 0)

    def test_concurrent_write_during_read(self) -> None:
        """Test that a write landing between table reads is seen whole or not at all."""
        self.store.add(Client(id="cli-1", name="John Smith"))
        writer = InventoryStore(Path(self.temp_dir), timeout=0)
        invoice = Invoice(
            id="inv-1",
            number="INV-1",
            client_name="John Smith",
            due_date=TAKEN_AT,
            client_id="cli-1",
        )
        line = InvoiceItem(id="l1", invoice_id="inv-1", name="Ring", quantity=1, unit_price=5.0)
        original = InventoryStore._select_records
        outcome = []

        def select_then_write(store, conn, entity_type):
            records = original(store, conn, entity_type)
            if entity_type.name == "invoices" and not outcome:
                try:
                    writer.add_many([invoice, line])
                    outcome.append("committed")
                except StorageError:
                    outcome.append("locked out")
            return records

        with patch.object(InventoryStore, "_select_records", select_then_write):
            snapshot = SnapshotBuilder(self.store, "1.0.0").build()

        self.assertEqual(len(outcome), 1)
        counts = snapshot.counts()
        self.assertEqual(counts["invoices"], counts["invoice_items"])
        self.assertIn(counts["invoices"], (0, 1))
        self.assertEqual(check_references(snapshot.collections), [])

    def test_malformed_stored_value(self) -> None:
        """Test that an unparseable stored value becomes ReadError."""
        self.store.add(Client(id="cli-1", name="John Smith"))
        self.store.add(
            Invoice(
                id="inv-1",
                number="INV-1",
                client_name="John Smith",
                due_date=TAKEN_AT,
                client_id="cli-1",
            )
        )
        conn = sqlite3.connect(self.store.db_path)
        try:
            conn.execute("UPDATE invoices SET due_date = 'next tuesday'")
            conn.commit()
        finally:
            conn.close()

        with self.assertRaises(ReadError):
            SnapshotBuilder(self.store, "1.0.0").build()

    def test_read_failure(self) -> None:
        """Test that storage errors become ReadError."""
        store = MagicMock()
        store.read_all.side_effect = StorageError("database is locked")

        with self.assertRaises(ReadError):
            SnapshotBuilder(store, "1.0.0").build()

    def test_dangling_reference_in_store(self) -> None:
        """Test that an inconsistent store raises IntegrityError."""
        store = MagicMock()
        store.read_all.return_value = StoreContents(
            collections={
                "invoice_items": [
                    InvoiceItem(
                        id="l1", invoice_id="gone", name="Ring", quantity=1, unit_price=1.0
                    )
                ]
            },
            settings={},
        )

        with self.assertRaises(IntegrityError) as cm:
            SnapshotBuilder(store, "1.0.0").build()

        self.assertEqual(len(cm.exception.problems), 1)


if __name__ == "__main__":
    unittest.main()

"""
Inventory storage engine.

This module provides persistent storage for the business data the backup
engine protects: clients, suppliers, categories, items, invoices, estimates
and their line items and custom fields, plus the company settings.

Features:
    - One SQLite table per entity type with enforced foreign keys
    - Point-in-time reads of the whole entity graph
    - All-or-nothing replacement of the whole entity graph

Storage Structure:
    data/
        stockly.db                          # SQLite database

Usage:
    from stockly.storage import InventoryStore, Client, new_id

    store = InventoryStore()
    store.add(Client(id=new_id(), name="John Smith"))
    contents = store.read_all()
"""

from stockly.storage.inventory_store import (
    InventoryStore,
    RecordNotFoundError,
    StorageError,
    StoreContents,
)
from stockly.storage.models import (
    ENTITY_TYPES,
    ENTITY_TYPES_BY_NAME,
    Category,
    Client,
    CustomEstimateField,
    CustomField,
    CustomInvoiceField,
    EntityType,
    Estimate,
    EstimateItem,
    ForeignKey,
    Invoice,
    InvoiceItem,
    Item,
    Record,
    Supplier,
    entity_type_for,
    new_id,
    utcnow,
)

__all__ = [
    # Main store class
    "InventoryStore",
    "StoreContents",
    # Entity registry
    "ENTITY_TYPES",
    "ENTITY_TYPES_BY_NAME",
    "EntityType",
    "ForeignKey",
    "entity_type_for",
    # Data models
    "Record",
    "Client",
    "Supplier",
    "Category",
    "CustomField",
    "Item",
    "Invoice",
    "InvoiceItem",
    "CustomInvoiceField",
    "Estimate",
    "EstimateItem",
    "CustomEstimateField",
    "new_id",
    "utcnow",
    # Exceptions
    "StorageError",
    "RecordNotFoundError",
]

"""
Data models for the inventory and invoicing store.

This module defines one dataclass per entity type and the ordered registry
that the store, the snapshot builder and the restore orchestrator all share.

Schema Design Decisions:
    - IDs are UUIDs stored as canonical lowercase strings
    - Timestamps are timezone-aware UTC datetimes, ISO format in SQLite
    - Relationships are plain identifier fields, never object references
    - Records are frozen so a snapshot can never alias or mutate live data
    - Binary blobs (item images, signatures) are bytes, BLOB in SQLite
      and base64 in archive payloads
    - Column names are the dataclass field names
"""

from __future__ import annotations

import base64
import functools
import json
import types
import typing
import uuid
from dataclasses import MISSING, dataclass, field, fields
from datetime import UTC, datetime
from typing import Any, TypeVar

R = TypeVar("R", bound="Record")


def new_id() -> str:
    """Generate a new stable identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _unwrap_optional(hint: Any) -> Any:
    """Return the non-None member of an ``X | None`` hint."""
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


@functools.cache
def _resolved_field_types(cls: type) -> dict[str, Any]:
    hints = typing.get_type_hints(cls)
    return {f.name: _unwrap_optional(hints[f.name]) for f in fields(cls)}


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Record:
    """
    Base class for all stored entities.

    Subclasses are plain frozen dataclasses. Conversion to and from
    dictionaries (archive payloads) and SQLite rows is driven by the field
    type hints so every entity converts the same way.
    """

    @classmethod
    def field_types(cls) -> dict[str, Any]:
        """Resolved (non-optional) type of every field, in declaration order."""
        return _resolved_field_types(cls)

    @classmethod
    def column_names(cls) -> list[str]:
        """Column names for this entity's table."""
        return [f.name for f in fields(cls)]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        result: dict[str, Any] = {}
        for name, hint in self.field_types().items():
            value = getattr(self, name)
            if value is None:
                result[name] = None
            elif hint is datetime:
                result[name] = value.isoformat()
            elif hint is bytes:
                result[name] = base64.b64encode(value).decode("ascii")
            elif typing.get_origin(hint) is tuple:
                result[name] = list(value)
            else:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls: type[R], data: dict[str, Any]) -> R:
        """
        Create from a dictionary produced by ``to_dict``.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a value cannot be converted.
        """
        kwargs: dict[str, Any] = {}
        for name, hint in cls.field_types().items():
            if name not in data:
                continue
            value = data[name]
            if value is None:
                kwargs[name] = None
            elif hint is datetime:
                kwargs[name] = parse_datetime(value)
            elif hint is bytes:
                kwargs[name] = base64.b64decode(value, validate=True)
            elif typing.get_origin(hint) is tuple:
                kwargs[name] = tuple(value)
            elif hint is float:
                kwargs[name] = float(value)
            elif hint is int:
                kwargs[name] = int(value)
            elif hint is bool:
                kwargs[name] = bool(value)
            else:
                kwargs[name] = str(value)
        missing = [
            f.name
            for f in fields(cls)
            if f.name not in kwargs
            and f.default is MISSING
            and f.default_factory is MISSING
        ]
        if missing:
            raise KeyError(f"{cls.__name__} missing fields: {', '.join(missing)}")
        return cls(**kwargs)

    def to_row(self) -> tuple[Any, ...]:
        """Convert to a tuple of SQLite column values."""
        row: list[Any] = []
        for name, hint in self.field_types().items():
            value = getattr(self, name)
            if value is None:
                row.append(None)
            elif hint is datetime:
                row.append(value.isoformat())
            elif hint is bool:
                row.append(1 if value else 0)
            elif typing.get_origin(hint) is tuple:
                row.append(json.dumps(list(value)))
            else:
                row.append(value)
        return tuple(row)

    @classmethod
    def from_row(cls: type[R], row: Any) -> R:
        """Create from a SQLite row (sqlite3.Row or mapping)."""
        kwargs: dict[str, Any] = {}
        for name, hint in cls.field_types().items():
            value = row[name]
            if value is None:
                kwargs[name] = None
            elif hint is datetime:
                kwargs[name] = parse_datetime(value)
            elif hint is bool:
                kwargs[name] = bool(value)
            elif hint is bytes:
                kwargs[name] = bytes(value)
            elif typing.get_origin(hint) is tuple:
                kwargs[name] = tuple(json.loads(value))
            else:
                kwargs[name] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class Client(Record):
    """A customer invoices and estimates are addressed to."""

    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str = ""
    city: str = ""
    country: str = "United States"
    postal_code: str = ""
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Supplier(Record):
    """A vendor the business buys stock from."""

    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str = ""
    city: str = ""
    country: str = "United States"
    postal_code: str = ""
    contact_person: str | None = None
    notes: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Category(Record):
    """An inventory category. Owns zero or more custom fields."""

    id: str
    name: str
    description: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class CustomField(Record):
    """
    A user-defined attribute attached to a category.

    field_type is one of text, number, date, boolean or dropdown; options
    holds the dropdown choices.
    """

    id: str
    name: str
    category_id: str | None = None
    field_type: str = "text"
    required: bool = False
    options: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Item(Record):
    """A stocked inventory item. ``category`` is the category name."""

    id: str
    name: str
    description: str = ""
    category: str = ""
    sku: str = ""
    price: float = 0.0
    buy_price: float = 0.0
    stock_quantity: int = 0
    min_stock_level: int = 0
    measurement_unit: str = "PCS"
    tax_rate: float = 0.0
    barcode: str | None = None
    image_url: str | None = None
    image_data: bytes | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    inventory_added_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Invoice(Record):
    """An invoice (or consignment note). Client details are denormalized."""

    id: str
    number: str
    client_name: str
    due_date: datetime
    client_id: str | None = None
    client_address: str = ""
    client_email: str | None = None
    client_phone: str | None = None
    status: str = "draft"
    payment_method: str | None = None
    document_type: str = "invoice"
    date_created: datetime = field(default_factory=utcnow)
    subtotal: float = 0.0
    discount: float = 0.0
    discount_type: str = "percentage"
    tax: float = 0.0
    tax_rate: float = 0.0
    total_amount: float = 0.0
    notes: str = ""
    header_note: str | None = None
    footer_note: str | None = None
    banking_info: str | None = None
    signature: bytes | None = None
    barcode_data: str | None = None
    qr_code_data: str | None = None
    template_type: str = "standard"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class InvoiceItem(Record):
    """A line on an invoice. ``position`` keeps the line order."""

    id: str
    invoice_id: str
    name: str
    quantity: int
    unit_price: float
    description: str | None = None
    tax: float = 0.0
    discount: float = 0.0
    total_amount: float = 0.0
    position: int = 0


@dataclass(frozen=True)
class CustomInvoiceField(Record):
    """A free-form name/value pair printed on an invoice."""

    id: str
    invoice_id: str
    name: str
    value: str = ""


@dataclass(frozen=True)
class Estimate(Record):
    """A quote sent to a client before invoicing."""

    id: str
    number: str
    client_name: str
    expiry_date: datetime
    client_id: str | None = None
    client_address: str = ""
    client_email: str | None = None
    client_phone: str | None = None
    status: str = "draft"
    date_created: datetime = field(default_factory=utcnow)
    subtotal: float = 0.0
    discount: float = 0.0
    discount_type: str = "percentage"
    tax: float = 0.0
    tax_rate: float = 0.0
    total_amount: float = 0.0
    notes: str = ""
    header_note: str | None = None
    footer_note: str | None = None
    template_type: str = "standard"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class EstimateItem(Record):
    """A line on an estimate."""

    id: str
    estimate_id: str
    name: str
    quantity: int
    unit_price: float
    description: str | None = None
    tax: float = 0.0
    discount: float = 0.0
    total_amount: float = 0.0
    position: int = 0


@dataclass(frozen=True)
class CustomEstimateField(Record):
    """A free-form name/value pair printed on an estimate."""

    id: str
    estimate_id: str
    name: str
    value: str = ""


@dataclass(frozen=True)
class ForeignKey:
    """A reference from one entity field to another entity type's id."""

    field: str
    target: str
    nullable: bool


@dataclass(frozen=True)
class EntityType:
    """
    Registry entry describing one managed entity type.

    Attributes:
        name: Collection name used in snapshots and archives.
        model: The dataclass for records of this type.
        table: SQLite table name.
        foreign_keys: References to other entity types.
    """

    name: str
    model: type[Any]
    table: str
    foreign_keys: tuple[ForeignKey, ...] = ()


# Dependency order: every type only references types listed before it.
# Inserts run in this order, deletes in reverse.
ENTITY_TYPES: tuple[EntityType, ...] = (
    EntityType("clients", Client, "clients"),
    EntityType("suppliers", Supplier, "suppliers"),
    EntityType("categories", Category, "categories"),
    EntityType(
        "custom_fields",
        CustomField,
        "custom_fields",
        (ForeignKey("category_id", "categories", nullable=True),),
    ),
    EntityType("items", Item, "items"),
    EntityType(
        "invoices",
        Invoice,
        "invoices",
        (ForeignKey("client_id", "clients", nullable=True),),
    ),
    EntityType(
        "invoice_items",
        InvoiceItem,
        "invoice_items",
        (ForeignKey("invoice_id", "invoices", nullable=False),),
    ),
    EntityType(
        "custom_invoice_fields",
        CustomInvoiceField,
        "custom_invoice_fields",
        (ForeignKey("invoice_id", "invoices", nullable=False),),
    ),
    EntityType(
        "estimates",
        Estimate,
        "estimates",
        (ForeignKey("client_id", "clients", nullable=True),),
    ),
    EntityType(
        "estimate_items",
        EstimateItem,
        "estimate_items",
        (ForeignKey("estimate_id", "estimates", nullable=False),),
    ),
    EntityType(
        "custom_estimate_fields",
        CustomEstimateField,
        "custom_estimate_fields",
        (ForeignKey("estimate_id", "estimates", nullable=False),),
    ),
)

ENTITY_TYPES_BY_NAME: dict[str, EntityType] = {et.name: et for et in ENTITY_TYPES}
ENTITY_TYPES_BY_MODEL: dict[type[Any], EntityType] = {
    et.model: et for et in ENTITY_TYPES
}


def entity_type_for(record: Any) -> EntityType:
    """
    Look up the registry entry for a record instance.

    Raises:
        KeyError: If the record's class is not a managed entity.
    """
    return ENTITY_TYPES_BY_MODEL[type(record)]

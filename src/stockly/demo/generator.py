"""
Demo data generator for Stockly.

Fills an inventory store with a small but complete jewellery business:
categories with custom fields, stock items, clients, suppliers, invoices and
estimates with line items. Useful for trying out backup and restore without
entering real data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from stockly.config.settings import DEFAULT_CONFIG_DIR
from stockly.storage.inventory_store import InventoryStore
from stockly.storage.models import (
    Category,
    Client,
    CustomEstimateField,
    CustomField,
    CustomInvoiceField,
    Estimate,
    EstimateItem,
    Invoice,
    InvoiceItem,
    Item,
    Record,
    Supplier,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

COMPANY_NAME = "Montecristo Jewellers"
HEADER_NOTE = "Montecristo Jewellers - Fine Jewelry Since 1985"
FOOTER_NOTE = "All items come with a 30-day warranty"
BANKING_INFO = (
    "Account: Montecristo Jewellers, Bank: First National Bank, "
    "Account #: 5678901234"
)
TAX_RATE = 7.5

CATEGORIES = ["Rings", "Pendants", "Necklaces", "Earrings", "Bracelets", "Watches"]

# (category, name, field_type, required, options)
CUSTOM_FIELDS = [
    ("Rings", "Ring Size", "number", True, ()),
    ("Rings", "Metal", "dropdown", False, ("Yellow Gold", "White Gold", "Rose Gold", "Platinum")),
    ("Watches", "Movement", "dropdown", False, ("Automatic", "Quartz", "Manual")),
    ("Necklaces", "Length (inches)", "number", False, ()),
]

# (name, description, category, sku, price, buy_price, stock, min_stock, unit)
ITEMS = [
    ("Diamond Solitaire Ring", "14K Gold Diamond Solitaire Ring", "Rings", "MC-R001", 1299.99, 750.00, 5, 2, "PCS"),
    ("Sapphire Pendant", "18K White Gold Sapphire Pendant", "Pendants", "MC-P001", 899.99, 450.00, 8, 3, "PCS"),
    ("Pearl Stud Earrings", "Freshwater Pearl Stud Earrings", "Earrings", "MC-E001", 199.99, 80.00, 15, 5, "PAIR"),
    ("Gold Chain Necklace", "18K Gold Chain Necklace, 18 inch", "Necklaces", "MC-N001", 599.99, 300.00, 10, 4, "PCS"),
    ("Silver Bangle", "Sterling Silver Bangle with Diamonds", "Bracelets", "MC-B001", 249.99, 120.00, 12, 4, "PCS"),
    ("Emerald Drop Earrings", "Emerald and Diamond Drop Earrings", "Earrings", "MC-E002", 1499.99, 800.00, 3, 1, "PAIR"),
    ("Rose Gold Wedding Band", "14K Rose Gold Wedding Band", "Rings", "MC-R002", 799.99, 400.00, 7, 3, "PCS"),
    ("Diamond Tennis Bracelet", "18K White Gold Diamond Tennis Bracelet", "Bracelets", "MC-B002", 2499.99, 1200.00, 2, 1, "PCS"),
    ("Ruby Pendant", "Ruby and Diamond Pendant in 14K Gold", "Pendants", "MC-P002", 1099.99, 550.00, 4, 2, "PCS"),
    ("Pearl Necklace", "Freshwater Pearl Necklace, 16 inch", "Necklaces", "MC-N002", 349.99, 170.00, 6, 2, "PCS"),
    ("Platinum Watch", "Luxury Platinum Watch with Diamonds", "Watches", "MC-W001", 3999.99, 2200.00, 3, 1, "PCS"),
    ("Gold Cufflinks", "18K Gold Cufflinks with Onyx", "Accessories", "MC-A001", 499.99, 250.00, 8, 2, "PAIR"),
]

# (name, email, phone, address, city, postal_code, notes)
CLIENTS = [
    ("John Smith", "john.smith@example.com", "555-1234", "123 Main St", "New York", "10001", "Long-time customer since 2018"),
    ("Emma Johnson", "emma.j@example.com", "555-2345", "456 Oak Ave", "Los Angeles", "90001", "Wedding jewelry client"),
    ("Michael Brown", "mbrown@example.com", "555-3456", "789 Pine Rd", "Chicago", "60007", "Anniversary gift purchaser"),
    ("Sophia Martinez", "smartinez@example.com", "555-4567", "101 Elm Blvd", "Miami", "33101", "Interested in diamond investments"),
    ("Robert Wilson", "rwilson@example.com", "555-5678", "202 Cedar St", "Boston", "02108", "Collector of vintage watches"),
    ("Jennifer Garcia", "jgarcia@example.com", "555-6789", "303 Maple Dr", "San Francisco", "94109", "Corporate gifting client"),
    ("David Lee", "dlee@example.com", "555-7890", "404 Birch Ln", "Seattle", "98101", "Regular customer for anniversary gifts"),
]

# (name, email, phone, address, city, country, postal_code, contact, notes)
SUPPLIERS = [
    ("Diamond Direct", "orders@diamonddirect.com", "800-123-4567", "1 Diamond Way", "Antwerp", "Belgium", "2000", "Johan Van Houten", "Premium diamond supplier with fast international shipping"),
    ("GoldCraft Inc.", "sales@goldcraft.com", "877-765-4321", "555 Gold Ave", "New York", "United States", "10016", "Maria Sanchez", "Gold and silver raw materials"),
    ("Gem World", "wholesale@gemworld.com", "888-555-1212", "78 Jewel Street", "Mumbai", "India", "400001", "Raj Patel", "Specialized in colored gemstones"),
    ("Luxury Watch Parts", "parts@luxurywatchparts.com", "415-999-8888", "200 Clockwork Blvd", "Geneva", "Switzerland", "1201", "Hans Mueller", "Watch movements and repair parts"),
    ("Pearl Paradise", "info@pearlparadise.com", "808-222-3333", "42 Ocean Drive", "Honolulu", "United States", "96815", "Leilani Wong", "Freshwater and saltwater pearls direct from farms"),
]


@dataclass
class SampleDocument:
    """Sample invoice or estimate before it is priced and stored."""

    number: str
    client: str
    status: str
    created_days_ago: int
    valid_days: int
    lines: list[tuple[str, int]]
    discount: float
    discount_type: str
    notes: str
    template: str
    payment_method: str | None = None


INVOICES = [
    SampleDocument("INV-2025-001", "John Smith", "paid", 15, 30,
                 [("Diamond Solitaire Ring", 1), ("Pearl Stud Earrings", 1)],
                 50.00, "fixed", "Thank you for your business!", "classic", "Credit Card"),
    SampleDocument("INV-2025-002", "Emma Johnson", "pending", 5, 30,
                 [("Gold Chain Necklace", 1), ("Silver Bangle", 1)],
                 0.00, "fixed", "Thank you for your business!", "modern", "Bank Transfer"),
    SampleDocument("INV-2025-003", "Michael Brown", "pending", 3, 30,
                 [("Ruby Pendant", 1)],
                 100.00, "fixed", "Thank you for your business!", "minimalist", "Cash"),
    SampleDocument("INV-2025-004", "Robert Wilson", "overdue", 45, 30,
                 [("Platinum Watch", 1), ("Gold Cufflinks", 1)],
                 200.00, "fixed", "Payment overdue. Please contact us to arrange payment.",
                 "classic", "Credit Card"),
]

ESTIMATES = [
    SampleDocument("EST-2025-001", "Sophia Martinez", "sent", 10, 30,
                 [("Diamond Tennis Bracelet", 1), ("Emerald Drop Earrings", 1)],
                 300.00, "fixed", "This estimate is valid for 30 days.", "classic"),
    SampleDocument("EST-2025-002", "John Smith", "accepted", 20, 30,
                 [("Rose Gold Wedding Band", 2), ("Pearl Necklace", 1)],
                 10.00, "percentage", "This estimate is valid for 30 days.", "modern"),
    SampleDocument("EST-2025-003", "Jennifer Garcia", "draft", 2, 30,
                 [("Platinum Watch", 1), ("Gold Cufflinks", 1), ("Diamond Solitaire Ring", 1)],
                 15.00, "percentage",
                 "Corporate pricing estimate. This estimate is valid for 30 days.", "minimalist"),
]

COMPANY_SETTINGS: dict[str, Any] = {
    "companyName": COMPANY_NAME,
    "companyAddress": "88 Fifth Avenue",
    "companyCity": "New York",
    "companyPostalCode": "10011",
    "companyCountry": "United States",
    "companyEmail": "hello@montecristo.example.com",
    "companyPhone": "555-0100",
    "currencySymbol": "$",
    "invoicePrefix": "INV-",
    "estimatePrefix": "EST-",
    "nextInvoiceNumber": len(INVOICES) + 1,
    "nextEstimateNumber": len(ESTIMATES) + 1,
    "defaultTaxRate": TAX_RATE,
    "defaultPaymentTerms": 30,
    "bankingDetails": BANKING_INFO,
}


def price_document(
    lines: list[tuple[float, int]], discount: float, discount_type: str, tax_rate: float
) -> tuple[float, float, float]:
    """
    Compute subtotal, tax and total for a document.

    Args:
        lines: (unit_price, quantity) pairs.
        discount: Fixed amount or percentage, depending on discount_type.
        discount_type: "fixed" or "percentage".
        tax_rate: Tax percentage applied after the discount.

    Returns:
        (subtotal, tax, total), each rounded to cents.
    """
    subtotal = sum(price * quantity for price, quantity in lines)
    if discount_type == "percentage":
        discount_amount = subtotal * discount / 100
    else:
        discount_amount = discount
    taxable = max(subtotal - discount_amount, 0.0)
    tax = taxable * tax_rate / 100
    return round(subtotal, 2), round(tax, 2), round(taxable + tax, 2)


class DemoGenerator:
    """
    Generates demo data for Stockly.

    All records are inserted in one transaction, so a failed run leaves the
    store as it was.
    """

    def __init__(
        self,
        data_dir: Path | None = None,
        store: InventoryStore | None = None,
        now: datetime | None = None,
    ) -> None:
        """
        Initialize demo generator.

        Args:
            data_dir: Directory for data storage. Defaults to ~/.stockly/data
            store: Existing store to fill. Takes precedence over data_dir.
            now: Reference time for document dates. Defaults to the current time.
        """
        self.store = store or InventoryStore(data_dir or (DEFAULT_CONFIG_DIR / "data"))
        self.now = now or utcnow()

    def generate(self) -> dict[str, int]:
        """
        Generate all demo data.

        Returns:
            Number of records created per entity type.
        """
        logger.info(f"Generating demo data for {COMPANY_NAME}")

        records: list[Record] = []
        records.extend(self._catalog())
        clients = self._clients()
        records.extend(clients.values())
        records.extend(self._suppliers())

        prices = {name: price for name, _, _, _, price, *_ in ITEMS}
        for doc in INVOICES:
            records.extend(self._invoice(doc, clients[doc.client], prices))
        for doc in ESTIMATES:
            records.extend(self._estimate(doc, clients[doc.client], prices))

        self.store.add_many(records)
        for key, value in COMPANY_SETTINGS.items():
            self.store.set_setting(key, value)

        summary: dict[str, int] = {}
        for record in records:
            name = type(record).__name__
            summary[name] = summary.get(name, 0) + 1

        logger.info(f"Demo data generation complete: {len(records)} records")
        return summary

    def _catalog(self) -> list[Record]:
        categories = {name: Category(id=new_id(), name=name) for name in CATEGORIES}
        records: list[Record] = list(categories.values())

        for category, name, field_type, required, options in CUSTOM_FIELDS:
            records.append(
                CustomField(
                    id=new_id(),
                    name=name,
                    category_id=categories[category].id,
                    field_type=field_type,
                    required=required,
                    options=options,
                )
            )

        for index, item in enumerate(ITEMS):
            name, description, category, sku, price, buy, stock, minimum, unit = item
            records.append(
                Item(
                    id=new_id(),
                    name=name,
                    description=description,
                    category=category,
                    sku=sku,
                    price=price,
                    buy_price=buy,
                    stock_quantity=stock,
                    min_stock_level=minimum,
                    measurement_unit=unit,
                    tax_rate=TAX_RATE,
                    barcode=str(4901234567890 + index),
                )
            )
        return records

    def _clients(self) -> dict[str, Client]:
        return {
            name: Client(
                id=new_id(),
                name=name,
                email=email,
                phone=phone,
                address=address,
                city=city,
                postal_code=postal_code,
                notes=notes,
            )
            for name, email, phone, address, city, postal_code, notes in CLIENTS
        }

    def _suppliers(self) -> list[Supplier]:
        return [
            Supplier(
                id=new_id(),
                name=name,
                email=email,
                phone=phone,
                address=address,
                city=city,
                country=country,
                postal_code=postal_code,
                contact_person=contact,
                notes=notes,
            )
            for name, email, phone, address, city, country, postal_code, contact, notes in SUPPLIERS
        ]

    def _invoice(
        self, doc: SampleDocument, client: Client, prices: dict[str, float]
    ) -> list[Record]:
        created = self.now - timedelta(days=doc.created_days_ago)
        subtotal, tax, total = price_document(
            [(prices[name], qty) for name, qty in doc.lines],
            doc.discount,
            doc.discount_type,
            TAX_RATE,
        )
        invoice = Invoice(
            id=new_id(),
            number=doc.number,
            client_name=client.name,
            due_date=created + timedelta(days=doc.valid_days),
            client_id=client.id,
            client_address=_address_line(client),
            client_email=client.email,
            client_phone=client.phone,
            status=doc.status,
            payment_method=doc.payment_method,
            date_created=created,
            subtotal=subtotal,
            discount=doc.discount,
            discount_type=doc.discount_type,
            tax=tax,
            tax_rate=TAX_RATE,
            total_amount=total,
            notes=doc.notes,
            header_note=HEADER_NOTE,
            footer_note=FOOTER_NOTE,
            banking_info=BANKING_INFO,
            template_type=doc.template,
            created_at=created,
            updated_at=created,
        )
        records: list[Record] = [invoice]
        for position, (name, qty) in enumerate(doc.lines):
            records.append(
                InvoiceItem(
                    id=new_id(),
                    invoice_id=invoice.id,
                    name=name,
                    quantity=qty,
                    unit_price=prices[name],
                    total_amount=round(prices[name] * qty, 2),
                    position=position,
                )
            )
        records.append(
            CustomInvoiceField(
                id=new_id(), invoice_id=invoice.id, name="Sales Associate", value="Elena"
            )
        )
        return records

    def _estimate(
        self, doc: SampleDocument, client: Client, prices: dict[str, float]
    ) -> list[Record]:
        created = self.now - timedelta(days=doc.created_days_ago)
        subtotal, tax, total = price_document(
            [(prices[name], qty) for name, qty in doc.lines],
            doc.discount,
            doc.discount_type,
            TAX_RATE,
        )
        estimate = Estimate(
            id=new_id(),
            number=doc.number,
            client_name=client.name,
            expiry_date=created + timedelta(days=doc.valid_days),
            client_id=client.id,
            client_address=_address_line(client),
            client_email=client.email,
            client_phone=client.phone,
            status=doc.status,
            date_created=created,
            subtotal=subtotal,
            discount=doc.discount,
            discount_type=doc.discount_type,
            tax=tax,
            tax_rate=TAX_RATE,
            total_amount=total,
            notes=doc.notes,
            header_note=HEADER_NOTE,
            footer_note=FOOTER_NOTE,
            template_type=doc.template,
            created_at=created,
            updated_at=created,
        )
        records: list[Record] = [estimate]
        for position, (name, qty) in enumerate(doc.lines):
            records.append(
                EstimateItem(
                    id=new_id(),
                    estimate_id=estimate.id,
                    name=name,
                    quantity=qty,
                    unit_price=prices[name],
                    total_amount=round(prices[name] * qty, 2),
                    position=position,
                )
            )
        records.append(
            CustomEstimateField(
                id=new_id(), estimate_id=estimate.id, name="Valid For", value="30 days"
            )
        )
        return records


def _address_line(client: Client) -> str:
    return f"{client.address}, {client.city}, USA {client.postal_code}"


def generate_demo_data(data_dir: Path | None = None) -> dict[str, int]:
    """
    Generate demo data with a single function call.

    Args:
        data_dir: Data directory. Defaults to ~/.stockly/data.

    Returns:
        Number of records created per entity type.

    Example:
        summary = generate_demo_data()
        print(summary["Item"])  # 12
    """
    return DemoGenerator(data_dir=data_dir).generate()

"""
Stockly - Backup and restore engine for small-business inventory data

Snapshot every client, supplier, item, invoice and estimate into one portable
file, lock it with a password if you want to, and restore it without ever
leaving the books half-overwritten.

Key Features:
    - Point-in-time snapshots of the whole inventory/invoicing store
    - Versioned binary archive format with SHA-256 integrity checksums
    - Optional AES-256-GCM encryption with PBKDF2 password derivation
    - Atomic archive writes and all-or-nothing restores
    - Backup reminders driven by a persisted backup policy

Design Principles:
    - Safety: A failed restore never touches the live data
    - Portability: One self-contained file per backup
    - Transparency: Every failure has a distinct, explainable kind
"""

__version__ = "0.1.0"
__author__ = ""
__email__ = ""

from stockly.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]

"""
Versioned binary archive format for snapshots.

Archive Layout (big-endian):
    magic           8 bytes  b"STOCKLY\\x00"
    format_version  u32
    created_at      i64      microseconds since the Unix epoch, UTC
    app_version     u16 length + UTF-8
    encrypted       u8       0 or 1
    salt            u16 length + bytes (empty when not encrypted)
    nonce           u16 length + bytes (empty when not encrypted)
    checksum        u16 length + bytes (SHA-256 of the plaintext payload)
    payload_len     u64
    payload         payload_len bytes

The payload is the snapshot as canonical JSON (sorted keys, compact
separators, UTF-8), so the same snapshot always encodes to the same bytes
when encryption is off. When encryption is on, the payload is AES-256-GCM
ciphertext and every header byte above it is authenticated as associated data.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import struct
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from stockly.backup.crypto import TAG_LENGTH, CryptoEngine
from stockly.backup.errors import (
    ChecksumMismatchError,
    InvalidArchiveError,
    TruncatedArchiveError,
    UnsupportedVersionError,
)
from stockly.backup.snapshot import Snapshot

logger = logging.getLogger(__name__)

MAGIC = b"STOCKLY\x00"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = (1, 1)  # inclusive range this build can read
CHECKSUM_LENGTH = 32

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MICROSECOND = timedelta(microseconds=1)


def _to_micros(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // _ONE_MICROSECOND


def _from_micros(value: int) -> datetime:
    try:
        return _EPOCH + timedelta(microseconds=value)
    except OverflowError as e:
        raise InvalidArchiveError(f"Invalid creation timestamp: {value}") from e


@dataclass(frozen=True)
class ArchiveHeader:
    """
    Everything in an archive before the payload.

    Readable without a password, which is how encrypted archives are
    recognised and how backup metadata is shown before a restore.
    """

    format_version: int
    created_at: datetime
    app_version: str
    encrypted: bool
    salt: bytes
    nonce: bytes
    checksum: bytes
    payload_length: int

    def to_bytes(self) -> bytes:
        """Serialize the header, including the payload length field."""
        app_version = self.app_version.encode("utf-8")
        parts = [
            MAGIC,
            struct.pack(">I", self.format_version),
            struct.pack(">q", _to_micros(self.created_at)),
            struct.pack(">H", len(app_version)),
            app_version,
            struct.pack(">B", 1 if self.encrypted else 0),
        ]
        for blob in (self.salt, self.nonce, self.checksum):
            parts.append(struct.pack(">H", len(blob)))
            parts.append(blob)
        parts.append(struct.pack(">Q", self.payload_length))
        return b"".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary (binary fields as hex)."""
        return {
            "format_version": self.format_version,
            "created_at": self.created_at.isoformat(),
            "app_version": self.app_version,
            "encrypted": self.encrypted,
            "salt": self.salt.hex(),
            "nonce": self.nonce.hex(),
            "checksum": self.checksum.hex(),
            "payload_length": self.payload_length,
        }


class _Reader:
    """Sequential big-endian reader over archive bytes."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def take(self, size: int, what: str) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise TruncatedArchiveError(
                f"Archive ends inside {what} "
                f"(need {size} bytes at offset {self.offset}, have {len(self.data)})"
            )
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def unpack(self, fmt: str, what: str) -> int:
        (value,) = struct.unpack(fmt, self.take(struct.calcsize(fmt), what))
        return value

    def blob(self, what: str) -> bytes:
        return self.take(self.unpack(">H", f"{what} length"), what)


class ArchiveCodec:
    """
    Encodes snapshots into archives and decodes them back.

    Usage:
        codec = ArchiveCodec()
        data = codec.encode(snapshot)                  # plain
        data = codec.encode(snapshot, password="pw")   # encrypted
        snapshot = codec.decode(data, password="pw")

    The encode and decode pipelines are also exposed step by step
    (encode_payload / build_archive, open_payload / decode_payload) so the
    backup service can report progress and honour cancellation between them.
    """

    def __init__(self, crypto: CryptoEngine | None = None) -> None:
        self.crypto = crypto or CryptoEngine()

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def encode(self, snapshot: Snapshot, password: str | None = None) -> bytes:
        """
        Encode a snapshot into archive bytes.

        Args:
            snapshot: Snapshot to encode.
            password: Encrypt the payload with this password. None for a
                      plain archive.

        Returns:
            Complete archive bytes.
        """
        payload = self.encode_payload(snapshot)
        return self.build_archive(snapshot, payload, password)

    def encode_payload(self, snapshot: Snapshot) -> bytes:
        """Serialize a snapshot to canonical JSON bytes."""
        return json.dumps(
            snapshot.to_dict(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        ).encode("utf-8")

    def build_archive(
        self, snapshot: Snapshot, payload: bytes, password: str | None = None
    ) -> bytes:
        """Wrap an encoded payload in a header, encrypting it if a password is set."""
        checksum = hashlib.sha256(payload).digest()

        if password is None:
            header = ArchiveHeader(
                format_version=FORMAT_VERSION,
                created_at=snapshot.created_at,
                app_version=snapshot.app_version,
                encrypted=False,
                salt=b"",
                nonce=b"",
                checksum=checksum,
                payload_length=len(payload),
            )
            return header.to_bytes() + payload

        header = ArchiveHeader(
            format_version=FORMAT_VERSION,
            created_at=snapshot.created_at,
            app_version=snapshot.app_version,
            encrypted=True,
            salt=self.crypto.new_salt(),
            nonce=self.crypto.new_nonce(),
            checksum=checksum,
            payload_length=len(payload) + TAG_LENGTH,
        )
        header_bytes = header.to_bytes()
        ciphertext = self.crypto.encrypt(
            payload, password, header.salt, header.nonce, aad=header_bytes
        )
        return header_bytes + ciphertext

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def read_header(self, data: bytes) -> ArchiveHeader:
        """
        Parse only the archive header.

        Raises:
            ArchiveFormatError: If the header is malformed, truncated or of an
                unsupported version.
        """
        header, _ = self._parse_header(data)
        return header

    def decode(self, data: bytes, password: str | None = None) -> Snapshot:
        """
        Decode and verify archive bytes.

        Raises:
            ArchiveFormatError: Bad magic, unsupported version, truncated data,
                trailing data or a malformed payload.
            PasswordRequiredError: Encrypted archive and no password given.
            AuthenticationFailedError: Wrong password or tampered ciphertext.
            ChecksumMismatchError: Payload does not match its checksum.
        """
        _, payload = self.open_payload(data, password)
        return self.decode_payload(payload)

    def open_payload(
        self, data: bytes, password: str | None = None
    ) -> tuple[ArchiveHeader, bytes]:
        """
        Parse the header, decrypt if needed and verify the checksum.

        Returns:
            The header and the verified plaintext payload.
        """
        header, offset = self._parse_header(data)

        body = data[offset:]
        if len(body) < header.payload_length:
            raise TruncatedArchiveError(
                f"Payload is truncated: expected {header.payload_length} bytes, "
                f"found {len(body)}"
            )
        if len(body) > header.payload_length:
            raise InvalidArchiveError(
                f"Archive has {len(body) - header.payload_length} trailing bytes"
            )

        if header.encrypted:
            payload = self.crypto.decrypt(
                body, password, header.salt, header.nonce, aad=data[:offset]
            )
        else:
            payload = body

        actual = hashlib.sha256(payload).digest()
        if not hmac.compare_digest(actual, header.checksum):
            raise ChecksumMismatchError(
                f"Checksum mismatch: expected {header.checksum.hex()}, "
                f"computed {actual.hex()}"
            )

        return header, payload

    def decode_payload(self, payload: bytes) -> Snapshot:
        """
        Deserialize a verified payload into a snapshot.

        Raises:
            InvalidArchiveError: If the payload is not a valid snapshot document.
        """
        try:
            document = json.loads(payload.decode("utf-8"))
            if not isinstance(document, dict):
                raise ValueError("payload is not a JSON object")
            return Snapshot.from_dict(document)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise InvalidArchiveError(f"Malformed archive payload: {e}") from e

    def _parse_header(self, data: bytes) -> tuple[ArchiveHeader, int]:
        if len(data) < len(MAGIC):
            if MAGIC.startswith(bytes(data)):
                raise TruncatedArchiveError("Archive ends inside the magic bytes")
            raise InvalidArchiveError("Not a Stockly backup (bad magic bytes)")
        if data[: len(MAGIC)] != MAGIC:
            raise InvalidArchiveError("Not a Stockly backup (bad magic bytes)")

        reader = _Reader(data)
        reader.take(len(MAGIC), "magic")

        version = reader.unpack(">I", "format version")
        low, high = SUPPORTED_VERSIONS
        if not low <= version <= high:
            raise UnsupportedVersionError(version, SUPPORTED_VERSIONS)

        created_at = _from_micros(reader.unpack(">q", "creation timestamp"))

        try:
            app_version = reader.blob("app version").decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidArchiveError("App version is not valid UTF-8") from e

        flag = reader.unpack(">B", "encryption flag")
        if flag not in (0, 1):
            raise InvalidArchiveError(f"Invalid encryption flag: {flag}")
        encrypted = flag == 1

        salt = reader.blob("salt")
        nonce = reader.blob("nonce")
        checksum = reader.blob("checksum")
        payload_length = reader.unpack(">Q", "payload length")

        if len(checksum) != CHECKSUM_LENGTH:
            raise InvalidArchiveError(f"Invalid checksum length: {len(checksum)}")
        if encrypted and not (salt and nonce):
            raise InvalidArchiveError("Encrypted archive is missing its salt or nonce")
        if not encrypted and (salt or nonce):
            raise InvalidArchiveError("Plain archive carries encryption parameters")

        header = ArchiveHeader(
            format_version=version,
            created_at=created_at,
            app_version=app_version,
            encrypted=encrypted,
            salt=salt,
            nonce=nonce,
            checksum=checksum,
            payload_length=payload_length,
        )
        return header, reader.offset


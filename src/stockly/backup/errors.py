"""
Error taxonomy for backup and restore operations.

Every failure surfaced by the engine is a BackupError subclass with a stable
``kind`` string, so callers can tell recoverable cases (wrong password, try
again) apart from terminal ones (corrupted file, pick another backup) without
parsing messages.

Hierarchy:
    BackupError
        ReadError
        BackupIOError
        ArchiveFormatError
            UnsupportedVersionError
            TruncatedArchiveError
            InvalidArchiveError
        ChecksumMismatchError
        AuthenticationFailedError
            PasswordRequiredError
        IntegrityError
        OperationInProgressError
        OperationCancelledError
        CommitFailedError
"""


class BackupError(Exception):
    """Base exception for backup and restore errors."""

    kind = "backup_error"


class ReadError(BackupError):
    """Raised when the live store cannot be read while building a snapshot."""

    kind = "read_error"


class BackupIOError(BackupError):
    """Raised on filesystem failures (missing file, permission denied, disk full)."""

    kind = "io_error"


class ArchiveFormatError(BackupError):
    """Raised when archive bytes do not follow the archive layout."""

    kind = "format_error"


class UnsupportedVersionError(ArchiveFormatError):
    """Raised when the archive format version is outside the supported range."""

    kind = "unsupported_version"

    def __init__(self, version: int, supported: tuple[int, int]) -> None:
        self.version = version
        self.supported = supported
        super().__init__(
            f"Unsupported archive format version {version} "
            f"(supported: {supported[0]}-{supported[1]})"
        )


class TruncatedArchiveError(ArchiveFormatError):
    """Raised when the byte stream ends before the declared content."""

    kind = "truncated"


class InvalidArchiveError(ArchiveFormatError):
    """Raised for bad magic bytes, trailing data or a malformed payload."""

    kind = "invalid_archive"


class ChecksumMismatchError(BackupError):
    """Raised when the payload checksum does not match the stored value."""

    kind = "checksum_mismatch"


class AuthenticationFailedError(BackupError):
    """Raised when AEAD authentication fails (wrong password or tampered data)."""

    kind = "authentication_failure"


class PasswordRequiredError(AuthenticationFailedError):
    """Raised when an encrypted archive is opened without a password."""

    kind = "password_required"


class IntegrityError(BackupError):
    """Raised when a snapshot contains dangling references or duplicate ids."""

    kind = "integrity_error"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        super().__init__(message)


class OperationInProgressError(BackupError):
    """Raised when a backup or restore is requested while another one runs."""

    kind = "operation_in_progress"


class OperationCancelledError(BackupError):
    """Raised when an operation is cancelled before it could take effect."""

    kind = "cancelled"


class CommitFailedError(BackupError):
    """Raised when the restore transaction failed and was rolled back."""

    kind = "commit_failure"

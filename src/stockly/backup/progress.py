"""Coarse progress reporting for backup and restore operations."""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum

from stockly.backup.errors import OperationCancelledError


class Phase(Enum):
    """Pipeline phases reported to progress callbacks."""

    READING = "reading"
    ENCODING = "encoding"
    ENCRYPTING = "encrypting"
    WRITING = "writing"
    DECRYPTING = "decrypting"
    DECODING = "decoding"
    STAGING = "staging"
    COMMITTING = "committing"
    DONE = "done"


ProgressCallback = Callable[[Phase], None]


def report(progress: ProgressCallback | None, phase: Phase) -> None:
    if progress is not None:
        progress(phase)


def check_cancelled(cancel_event: threading.Event | None, where: str) -> None:
    """
    Raise if cancellation was requested.

    Raises:
        OperationCancelledError: If ``cancel_event`` is set.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelledError(f"Operation cancelled {where}")

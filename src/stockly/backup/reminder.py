"""Backup reminder scheduling."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def should_remind(
    now: datetime,
    last_backup_at: datetime | None,
    interval_days: int,
) -> bool:
    """
    Decide whether the user should be reminded to back up.

    Args:
        now: Current time.
        last_backup_at: Time of the last successful backup, if any.
        interval_days: Reminder interval. 0 disables reminders.

    Returns:
        True when a reminder is due.

    Example:
        >>> from datetime import datetime, UTC
        >>> should_remind(datetime(2025, 1, 8, tzinfo=UTC),
        ...               datetime(2025, 1, 1, tzinfo=UTC), 7)
        True
    """
    if interval_days < 0:
        raise ValueError(f"interval_days must be >= 0, got {interval_days}")
    if interval_days == 0:
        return False
    if last_backup_at is None:
        return True

    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    if last_backup_at.tzinfo is None:
        last_backup_at = last_backup_at.replace(tzinfo=UTC)

    return now - last_backup_at >= timedelta(days=interval_days)


def next_reminder_at(
    last_backup_at: datetime | None, interval_days: int
) -> datetime | None:
    """When the next reminder becomes due. None if reminders are off or no backup exists yet."""
    if interval_days <= 0 or last_backup_at is None:
        return None
    if last_backup_at.tzinfo is None:
        last_backup_at = last_backup_at.replace(tzinfo=UTC)
    return last_backup_at + timedelta(days=interval_days)

"""
Command-line interface for Stockly.

Provides commands for creating, listing, inspecting, deleting and restoring
backups of the inventory store, managing the backup policy, and generating
demo data.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import platform as platform_module
import sys
from pathlib import Path
from typing import Any, NoReturn

from stockly import __version__
from stockly.backup import (
    AuthenticationFailedError,
    BackupError,
    BackupService,
    BackupTask,
    OperationCancelledError,
    PasswordRequiredError,
    Phase,
)
from stockly.backup.file_store import parse_backup_filename
from stockly.backup.reminder import next_reminder_at
from stockly.config.policy import POLICY_FILE, PolicyStore
from stockly.config.settings import (
    ConfigurationError,
    Settings,
    get_config_path,
    load_config,
    save_config,
)
from stockly.storage import ENTITY_TYPES, InventoryStore

# Set up logging
logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_AUTH_FAILURE = 3
EXIT_INTERRUPTED = 130

MAX_PASSWORD_ATTEMPTS = 3

# Global verbosity settings (set during main() based on args)
_quiet_mode = False
_verbose_level = 0


def set_output_mode(quiet: bool = False, verbose: int = 0) -> None:
    """
    Set the output mode for the CLI.

    Args:
        quiet: If True, suppress non-essential output.
        verbose: Verbosity level (0=normal, 1+=verbose).
    """
    global _quiet_mode, _verbose_level
    _quiet_mode = quiet
    _verbose_level = verbose


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output like JSON).
    """
    if force or not _quiet_mode:
        print(message)


def output_verbose(message: str, level: int = 1) -> None:
    """Print a verbose message only if verbosity is high enough."""
    if _verbose_level >= level and not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def format_size(size_bytes: int) -> str:
    """Format a byte count for display."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / 1024 / 1024:.2f} MB"


def exit_code_for(error: BaseException | None) -> int:
    """Map a backup error to a process exit code."""
    if isinstance(error, AuthenticationFailedError):
        return EXIT_AUTH_FAILURE
    if isinstance(error, OperationCancelledError):
        return EXIT_INTERRUPTED
    return EXIT_FAILURE


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for Stockly CLI."""
    parser = argparse.ArgumentParser(
        prog="stockly",
        description="Backup and restore for Stockly inventory and invoicing data",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"stockly {__version__}",
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Override config file location (default: ~/.stockly/config.yaml)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize Stockly configuration and data store",
        description="Create the config file, data store and backup directory.",
    )
    init_parser.add_argument(
        "--company",
        metavar="NAME",
        help="Company name stored in the company settings",
    )
    init_parser.set_defaults(func=cmd_init)

    # info command
    info_parser = subparsers.add_parser(
        "info",
        help="Show paths, record counts and backup status",
        description="Display version, configuration paths, store contents and backup policy.",
    )
    info_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    info_parser.set_defaults(func=cmd_info)

    # backup command
    backup_parser = subparsers.add_parser(
        "backup",
        help="Create a backup of all data",
        description=(
            "Snapshot every record and the company settings into one backup file "
            "in the backup directory."
        ),
    )
    backup_parser.add_argument(
        "--encrypt",
        action="store_true",
        help="Protect the backup with a password (default when password protection is on)",
    )
    backup_parser.add_argument(
        "--password-stdin",
        action="store_true",
        dest="password_stdin",
        help="Read the password from standard input instead of prompting",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # restore command
    restore_parser = subparsers.add_parser(
        "restore",
        help="Replace all data with the contents of a backup",
        description=(
            "Restore every record and the company settings from a backup file. "
            "Existing data is replaced; nothing changes if the restore fails."
        ),
    )
    restore_parser.add_argument(
        "backup_file",
        metavar="PATH",
        help="Path to the backup file (.stocklybackup)",
    )
    restore_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt",
    )
    restore_parser.add_argument(
        "--password-stdin",
        action="store_true",
        dest="password_stdin",
        help="Read the password from standard input instead of prompting",
    )
    restore_parser.set_defaults(func=cmd_restore)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List backups, most recent first",
    )
    list_parser.add_argument(
        "--format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    list_parser.set_defaults(func=cmd_list)

    # delete command
    delete_parser = subparsers.add_parser(
        "delete",
        help="Delete a backup from the backup directory",
    )
    delete_parser.add_argument(
        "backup_file",
        metavar="PATH",
        help="Backup file path or name",
    )
    delete_parser.add_argument(
        "--force",
        action="store_true",
        help="Skip confirmation prompt",
    )
    delete_parser.set_defaults(func=cmd_delete)

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Show backup metadata without restoring",
        description="Read a backup's header. No password is needed.",
    )
    inspect_parser.add_argument(
        "backup_file",
        metavar="PATH",
        help="Path to the backup file",
    )
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    # policy command
    policy_parser = subparsers.add_parser(
        "policy",
        help="Show or change the backup policy",
        description="Manage backup reminders and password protection.",
    )
    policy_subparsers = policy_parser.add_subparsers(
        dest="policy_command",
        metavar="<action>",
    )
    policy_subparsers.add_parser("show", help="Show the current policy")
    interval_parser = policy_subparsers.add_parser(
        "interval",
        help="Set the reminder interval in days (0 disables reminders)",
    )
    interval_parser.add_argument("days", type=int, metavar="DAYS")
    protect_parser = policy_subparsers.add_parser(
        "protect",
        help="Turn password protection for new backups on or off",
    )
    protect_parser.add_argument("state", choices=["on", "off"])
    policy_parser.set_defaults(func=cmd_policy, policy_command="show")

    # remind command
    remind_parser = subparsers.add_parser(
        "remind",
        help="Check whether a backup is due",
    )
    remind_parser.set_defaults(func=cmd_remind)

    # demo command
    demo_parser = subparsers.add_parser(
        "demo",
        help="Fill the store with sample business data",
        description=(
            "Generate a sample jewellery business (items, clients, suppliers, "
            "invoices, estimates) for trying out backup and restore."
        ),
    )
    demo_parser.add_argument(
        "--force",
        action="store_true",
        help="Add demo data even if the store already has records",
    )
    demo_parser.set_defaults(func=cmd_demo)

    return parser


def setup_logging(verbose: int, quiet: bool) -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.WARNING
    elif verbose == 0:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_settings(args: argparse.Namespace) -> tuple[Settings, Path]:
    """Load settings and return them with the config file path."""
    config_path = Path(args.config) if args.config else get_config_path()
    return load_config(config_path), config_path


def build_service(args: argparse.Namespace) -> BackupService:
    """Create a backup service from the CLI configuration."""
    settings, config_path = load_settings(args)
    return BackupService.from_settings(settings, config_path.parent)


def read_password(args: argparse.Namespace, prompt: str, confirm: bool = False) -> str:
    """
    Read a password from stdin (--password-stdin) or an interactive prompt.

    Raises:
        PasswordRequiredError: If the password is empty.
    """
    if getattr(args, "password_stdin", False):
        password = sys.stdin.readline().rstrip("\r\n")
    else:
        password = getpass.getpass(prompt)
        if confirm and password:
            if getpass.getpass("Confirm password: ") != password:
                raise PasswordRequiredError("Passwords do not match")

    if not password:
        raise PasswordRequiredError("A password is required")
    return password


def print_progress(phase: Phase) -> None:
    output_verbose(f"  ... {phase.value}")


def wait_for_task(task: BackupTask, action: str) -> Any:
    """
    Wait for a background task, turning Ctrl-C into a cancel request.

    Once the task has started writing or committing it cannot be cancelled,
    so the interrupt only waits for it to finish.
    """
    try:
        return task.result()
    except KeyboardInterrupt:
        if task.cancel():
            output(f"Cancelling {action}...")
        else:
            output(f"The {action} is finishing its last step, please wait...")
        return task.result()


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize Stockly configuration and data store."""
    output("Stockly Initialization")
    output("=" * 50)
    output()

    config_path = Path(args.config) if args.config else get_config_path()

    settings = load_config(config_path)
    if config_path.exists():
        output(f"Using existing configuration: {config_path}")
    else:
        if args.company:
            settings.company.name = args.company
        save_config(settings, config_path)
        output(f"Configuration file created: {config_path}")

    data_dir = Path(settings.data_dir).expanduser()
    backup_dir = Path(settings.backup.directory).expanduser()

    store = InventoryStore(data_dir)
    backup_dir.mkdir(parents=True, exist_ok=True)

    if not store.get_settings():
        company = settings.company
        if args.company:
            company.name = args.company
        for key, value in company.to_store_settings().items():
            store.set_setting(key, value)
        output("Company settings initialized.")

    policy_store = PolicyStore(
        config_path.parent / POLICY_FILE,
        default_interval=settings.backup.default_reminder_days,
    )
    if not policy_store.path.exists():
        policy_store.save(policy_store.load())

    output(f"Data store: {store.db_path}")
    output(f"Backup directory: {backup_dir}")
    output()
    output("Initialization complete.")
    output()
    output("Next steps:")
    output("  1. Run 'stockly demo' to load sample data (optional)")
    output("  2. Run 'stockly backup' to create your first backup")
    output("  3. Run 'stockly policy interval 7' to get weekly reminders")
    output()
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Show paths, record counts and backup status."""
    settings, config_path = load_settings(args)
    service = BackupService.from_settings(settings, config_path.parent)

    policy = service.get_backup_policy()
    backups = service.list_backups()

    info: dict[str, Any] = {
        "version": __version__,
        "python_version": platform_module.python_version(),
        "platform": platform_module.platform(),
        "config_file": str(config_path),
        "data_dir": str(service.store.data_dir),
        "backup_dir": str(service.file_store.directory),
        "records": service.store.count_records(),
        "backups": len(backups),
        "latest_backup": backups[0].name if backups else None,
        "policy": policy.to_dict(),
        "reminder_due": service.should_remind(),
        "next_reminder_at": next_reminder_at(
            policy.last_backup_at, policy.reminder_interval_days
        ),
    }

    if args.json:
        output(json.dumps(info, indent=2, default=str), force=True)
        return 0

    output("Stockly System Information")
    output("=" * 60)
    output()
    output(f"Version: {info['version']}")
    output(f"Python: {info['python_version']}")
    output(f"Platform: {info['platform']}")
    output()
    output("Paths:")
    output(f"  Config file: {info['config_file']}")
    output(f"  Data directory: {info['data_dir']}")
    output(f"  Backup directory: {info['backup_dir']}")
    output()
    output("Records:")
    for name, count in info["records"].items():
        output(f"  {name}: {count:,}")
    output()
    output("Backups:")
    output(f"  Count: {info['backups']}")
    output(f"  Latest: {info['latest_backup'] or 'none'}")
    output(f"  Last successful backup: {policy.last_backup_at or 'never'}")
    output(f"  Reminder due: {'Yes' if info['reminder_due'] else 'No'}")
    if info["next_reminder_at"] is not None:
        output(f"  Next reminder: {info['next_reminder_at']:%Y-%m-%d %H:%M} UTC")
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Create a backup of all data."""
    service = build_service(args)
    try:
        policy = service.get_backup_policy()
        encrypt = args.encrypt or policy.password_protection_enabled

        output("Stockly Backup")
        output("=" * 50)
        output()
        output(f"Backup directory: {service.file_store.directory}")
        output(f"Password protected: {'Yes' if encrypt else 'No'}")
        output()

        password = None
        if encrypt:
            password = read_password(args, "Backup password: ", confirm=True)

        output("Creating backup...")
        task = service.submit_export(password=password, progress=print_progress)
        result = wait_for_task(task, "backup")
    finally:
        service.shutdown()

    if not result.success:
        output()
        output_error(f"Backup failed: {result.error}")
        return exit_code_for(result.error)

    output()
    output("Backup created successfully!")
    output()
    output(f"  File: {result.path}")
    output(f"  Size: {format_size(result.size_bytes)}")
    output(f"  Encrypted: {'Yes' if result.encrypted else 'No'}")
    output(f"  Records: {sum(result.counts.values()):,}")
    for name, count in result.counts.items():
        if count:
            output_verbose(f"    - {name}: {count}")
    output()
    output("To restore from this backup, run:")
    output(f"  stockly restore {result.path}")
    return 0


def cmd_restore(args: argparse.Namespace) -> int:
    """Replace all data with the contents of a backup."""
    service = build_service(args)
    backup_path = Path(args.backup_file)

    output("Stockly Restore")
    output("=" * 50)
    output()
    output(f"Backup file: {backup_path}")

    header = service.inspect(backup_path)
    output(f"  Created: {header.created_at.isoformat()}")
    output(f"  App version: {header.app_version}")
    output(f"  Password protected: {'Yes' if header.encrypted else 'No'}")
    output()

    if not args.force:
        output("WARNING: This will replace ALL existing clients, items, invoices,")
        output("estimates and company settings with the contents of this backup.")
        output()
        response = input("Proceed with restore? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Restore cancelled.")
            return 0

    attempts = 1 if args.password_stdin else MAX_PASSWORD_ATTEMPTS
    try:
        for attempt in range(1, attempts + 1):
            password = None
            if header.encrypted:
                password = read_password(args, "Backup password: ")

            output()
            output("Restoring...")
            task = service.submit_import(backup_path, password, progress=print_progress)
            result = wait_for_task(task, "restore")

            if result.success:
                break
            retry = (
                isinstance(result.error, AuthenticationFailedError)
                and attempt < attempts
            )
            if not retry:
                break
            output_error("Wrong password or the backup was modified. Try again.")
    finally:
        service.shutdown()

    if not result.success:
        output()
        output_error(f"Restore failed: {result.error}")
        output_error("Your existing data was not changed.")
        return exit_code_for(result.error)

    output()
    output("Restore completed successfully!")
    output()
    output(f"  Records restored: {sum(result.counts.values()):,}")
    for name, count in result.counts.items():
        if count:
            output(f"    - {name}: {count}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List backups, most recent first."""
    service = build_service(args)
    backups = service.list_backups()

    rows: list[dict[str, Any]] = []
    for path in backups:
        parsed = parse_backup_filename(path.name)
        created = parsed[0].isoformat() if parsed else None
        rows.append(
            {
                "name": path.name,
                "path": str(path),
                "created_at": created,
                "size_bytes": path.stat().st_size,
            }
        )

    if args.format == "json":
        output(json.dumps(rows, indent=2), force=True)
        return 0

    if not rows:
        output(f"No backups found in {service.file_store.directory}")
        return 0

    output(f"{'Created (UTC)':<28} {'Size':>10}  Name")
    output("-" * 80)
    for row in rows:
        output(
            f"{row['created_at'] or '?':<28} {format_size(row['size_bytes']):>10}  "
            f"{row['name']}",
            force=True,
        )
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a backup from the backup directory."""
    service = build_service(args)
    target = Path(args.backup_file)

    if not args.force:
        response = input(f"Delete backup {target.name}? [y/N]: ").strip().lower()
        if response not in ("y", "yes"):
            output("Delete cancelled.")
            return 0

    service.delete_backup(target)
    output(f"Deleted: {target.name}")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    """Show backup metadata without restoring."""
    service = build_service(args)
    header = service.inspect(Path(args.backup_file))

    if args.json:
        output(json.dumps(header.to_dict(), indent=2), force=True)
        return 0

    output(f"Backup: {args.backup_file}")
    output(f"  Format version: {header.format_version}")
    output(f"  Created: {header.created_at.isoformat()}")
    output(f"  App version: {header.app_version}")
    output(f"  Password protected: {'Yes' if header.encrypted else 'No'}")
    output(f"  Payload size: {format_size(header.payload_length)}")
    output(f"  Checksum (SHA-256): {header.checksum.hex()}")
    return 0


def cmd_policy(args: argparse.Namespace) -> int:
    """Show or change the backup policy."""
    service = build_service(args)

    if args.policy_command == "interval":
        if args.days < 0:
            output_error("Error: interval must be 0 or more days")
            return EXIT_FAILURE
        service.set_reminder_interval(args.days)
        if args.days == 0:
            output("Backup reminders disabled.")
        else:
            output(f"Backup reminders every {args.days} day(s).")
    elif args.policy_command == "protect":
        enabled = args.state == "on"
        service.set_password_protection(enabled)
        output(f"Password protection {'enabled' if enabled else 'disabled'}.")

    policy = service.get_backup_policy()
    output()
    output("Backup Policy")
    output("-" * 30)
    last = policy.last_backup_at
    output(f"  Last backup: {last.isoformat() if last else 'never'}")
    interval = policy.reminder_interval_days
    output(f"  Reminder interval: {f'{interval} day(s)' if interval else 'disabled'}")
    output(f"  Password protection: {'on' if policy.password_protection_enabled else 'off'}")
    return 0


def cmd_remind(args: argparse.Namespace) -> int:
    """Check whether a backup is due."""
    service = build_service(args)
    policy = service.get_backup_policy()

    if not service.should_remind():
        output("No backup reminder due.")
        due = next_reminder_at(policy.last_backup_at, policy.reminder_interval_days)
        if due is not None:
            output(f"Next reminder due {due:%Y-%m-%d %H:%M} UTC.")
        return 0

    if policy.last_backup_at is None:
        output("You have never backed up your data. Run 'stockly backup' now.", force=True)
    else:
        output(
            f"Your last backup was on {policy.last_backup_at:%Y-%m-%d}. "
            "Run 'stockly backup' to create a new one.",
            force=True,
        )
    return 0


def cmd_demo(args: argparse.Namespace) -> int:
    """Fill the store with sample business data."""
    from stockly.demo import DemoGenerator

    settings, _ = load_settings(args)
    store = InventoryStore(Path(settings.data_dir).expanduser())

    existing = sum(store.count_records().values())
    if existing and not args.force:
        output_error(
            f"The store already has {existing} records. "
            "Use --force to add demo data anyway."
        )
        return EXIT_FAILURE

    output("Stockly Demo Data Generator")
    output("=" * 50)
    output()
    output("Generating demo data...")

    try:
        DemoGenerator(store=store).generate()
    except Exception as e:
        output_error(f"Error generating demo data: {e}")
        logger.exception("Demo data generation failed")
        return EXIT_FAILURE

    output("Demo data generated successfully!")
    output()
    output("Summary:")
    counts = store.count_records()
    for entity_type in ENTITY_TYPES:
        output(f"  {entity_type.name}: {counts[entity_type.name]}")
    output()
    output("Next steps:")
    output("  1. Run 'stockly backup' to back up the demo data")
    output("  2. Run 'stockly list' to see your backups")
    return 0


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for Stockly CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging and output mode
    setup_logging(args.verbose, args.quiet)
    set_output_mode(args.quiet, args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        exit_code = args.func(args)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(EXIT_INTERRUPTED)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)
    except AuthenticationFailedError as e:
        output_error(f"Authentication error: {e}")
        sys.exit(EXIT_AUTH_FAILURE)
    except BackupError as e:
        output_error(f"Error: {e}")
        sys.exit(exit_code_for(e))
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()

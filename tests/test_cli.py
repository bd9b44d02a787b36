"""
Tests for the CLI commands.

Uses Python's unittest module.
Tests argument parsing and runs the commands against a temporary data
directory, backup directory and config file.
"""

from __future__ import annotations

import io
import json
import os
import shutil
import tempfile
import threading
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import MagicMock, patch

from stockly.backup import (
    AuthenticationFailedError,
    BackupIOError,
    BackupTask,
    OperationCancelledError,
    PasswordRequiredError,
    Phase,
)
from stockly.cli import (
    EXIT_AUTH_FAILURE,
    EXIT_FAILURE,
    EXIT_INTERRUPTED,
    create_parser,
    exit_code_for,
    format_size,
    main,
    wait_for_task,
)
from stockly.config.policy import POLICY_FILE
from stockly.storage import Client, InventoryStore


class TestArgumentParser(unittest.TestCase):
    """Tests for CLI argument parsing."""

    def setUp(self) -> None:
        """Set up parser for tests."""
        self.parser = create_parser()

    def test_version_argument(self) -> None:
        """Test --version argument."""
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                self.parser.parse_args(["--version"])

        self.assertEqual(cm.exception.code, 0)

    def test_help_argument(self) -> None:
        """Test --help argument."""
        with redirect_stdout(io.StringIO()):
            with self.assertRaises(SystemExit) as cm:
                self.parser.parse_args(["--help"])

        self.assertEqual(cm.exception.code, 0)

    def test_no_command_defaults(self) -> None:
        """Test parsing with no command."""
        args = self.parser.parse_args([])

        self.assertIsNone(args.command)
        self.assertEqual(args.verbose, 0)
        self.assertFalse(args.quiet)

    def test_verbose_flag(self) -> None:
        """Test -v verbose flag."""
        self.assertEqual(self.parser.parse_args(["-v"]).verbose, 1)
        self.assertEqual(self.parser.parse_args(["-vv"]).verbose, 2)

    def test_backup_command(self) -> None:
        """Test backup command options."""
        args = self.parser.parse_args(["backup", "--encrypt", "--password-stdin"])

        self.assertEqual(args.command, "backup")
        self.assertTrue(args.encrypt)
        self.assertTrue(args.password_stdin)

    def test_restore_requires_path(self) -> None:
        """Test that restore needs a backup path."""
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                self.parser.parse_args(["restore"])

        args = self.parser.parse_args(["restore", "/tmp/x.stocklybackup", "--force"])
        self.assertEqual(args.backup_file, "/tmp/x.stocklybackup")
        self.assertTrue(args.force)

    def test_list_format(self) -> None:
        """Test list output format choices."""
        self.assertEqual(self.parser.parse_args(["list"]).format, "table")
        self.assertEqual(self.parser.parse_args(["list", "--format", "json"]).format, "json")

    def test_policy_subcommands(self) -> None:
        """Test policy actions."""
        self.assertEqual(self.parser.parse_args(["policy"]).policy_command, "show")

        args = self.parser.parse_args(["policy", "interval", "14"])
        self.assertEqual(args.policy_command, "interval")
        self.assertEqual(args.days, 14)

        args = self.parser.parse_args(["policy", "protect", "on"])
        self.assertEqual(args.policy_command, "protect")
        self.assertEqual(args.state, "on")

    def test_all_commands_have_handlers(self) -> None:
        """Test that every command sets a handler."""
        for argv in (
            ["init"],
            ["info"],
            ["backup"],
            ["restore", "x"],
            ["list"],
            ["delete", "x"],
            ["inspect", "x"],
            ["policy"],
            ["remind"],
            ["demo"],
        ):
            with self.subTest(command=argv[0]):
                self.assertTrue(callable(self.parser.parse_args(argv).func))


class TestHelpers(unittest.TestCase):
    """Tests for CLI helper functions."""

    def test_format_size(self) -> None:
        """Test human-readable sizes."""
        self.assertEqual(format_size(512), "512 B")
        self.assertEqual(format_size(2048), "2.0 KB")
        self.assertEqual(format_size(3 * 1024 * 1024), "3.00 MB")

    def test_exit_code_for(self) -> None:
        """Test exit codes for backup errors."""
        self.assertEqual(exit_code_for(AuthenticationFailedError("x")), EXIT_AUTH_FAILURE)
        self.assertEqual(exit_code_for(PasswordRequiredError("x")), EXIT_AUTH_FAILURE)
        self.assertEqual(exit_code_for(OperationCancelledError("x")), EXIT_INTERRUPTED)
        self.assertEqual(exit_code_for(BackupIOError("x")), EXIT_FAILURE)

    def test_wait_for_task_cancels_on_interrupt(self) -> None:
        """Test that Ctrl-C requests cancellation and waits for the result."""
        task = MagicMock()
        task.result.side_effect = [KeyboardInterrupt(), "cancelled result"]
        task.cancel.return_value = True

        with redirect_stdout(io.StringIO()) as out:
            result = wait_for_task(task, "backup")

        self.assertEqual(result, "cancelled result")
        task.cancel.assert_called_once()
        self.assertIn("Cancelling backup", out.getvalue())

    def test_wait_for_task_past_final_step(self) -> None:
        """Test that Ctrl-C during the final step waits for completion."""
        task = MagicMock()
        task.result.side_effect = [KeyboardInterrupt(), "finished result"]
        task.cancel.return_value = False

        with redirect_stdout(io.StringIO()) as out:
            result = wait_for_task(task, "restore")

        self.assertEqual(result, "finished result")
        self.assertIn("please wait", out.getvalue())


class TestCommands(unittest.TestCase):
    """Runs CLI commands against temporary directories."""

    def setUp(self) -> None:
        """Point the CLI at a temp config, data and backup directory."""
        self.temp_dir = tempfile.mkdtemp()
        root = Path(self.temp_dir)
        self.config_path = root / "config" / "config.yaml"
        self.data_dir = root / "data"
        self.backup_dir = root / "backups"
        self.env = patch.dict(
            os.environ,
            {
                "STOCKLY_CONFIG": str(self.config_path),
                "STOCKLY_DATA_DIR": str(self.data_dir),
                "STOCKLY_BACKUP_DIR": str(self.backup_dir),
            },
            clear=True,
        )
        self.env.start()

    def tearDown(self) -> None:
        """Restore environment and clean up temp directory."""
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_cli(self, *argv: str, stdin: str = "") -> tuple[int, str, str]:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            with patch("sys.stdin", io.StringIO(stdin)):
                with self.assertRaises(SystemExit) as cm:
                    main(list(argv))
        return cm.exception.code, out.getvalue(), err.getvalue()

    def latest_backup(self) -> str:
        code, out, _ = self.run_cli("list", "--format", "json")
        self.assertEqual(code, 0)
        return json.loads(out)[0]["path"]

    def test_no_command_prints_help(self) -> None:
        """Test running without a command."""
        code, out, _ = self.run_cli()

        self.assertEqual(code, 0)
        self.assertIn("usage:", out)

    def test_init(self) -> None:
        """Test that init creates config, store, backup directory and policy."""
        code, out, _ = self.run_cli("init", "--company", "Montecristo Jewellers")

        self.assertEqual(code, 0, out)
        self.assertTrue(self.config_path.exists())
        self.assertTrue(self.backup_dir.is_dir())
        self.assertTrue((self.config_path.parent / POLICY_FILE).exists())

        settings = InventoryStore(self.data_dir).get_settings()
        self.assertEqual(settings["companyName"], "Montecristo Jewellers")
        self.assertEqual(settings["nextInvoiceNumber"], 1)

    def test_demo_refuses_non_empty_store(self) -> None:
        """Test that demo data is not mixed into existing data by default."""
        self.assertEqual(self.run_cli("demo")[0], 0)

        code, _, err = self.run_cli("demo")

        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("--force", err)

    def test_backup_list_inspect_restore(self) -> None:
        """Test the plain backup and restore cycle."""
        self.run_cli("demo")
        demo_counts = InventoryStore(self.data_dir).count_records()

        code, out, _ = self.run_cli("backup")
        self.assertEqual(code, 0, out)
        self.assertIn("Backup created successfully", out)

        path = self.latest_backup()

        code, out, _ = self.run_cli("inspect", path, "--json")
        self.assertEqual(code, 0)
        header = json.loads(out)
        self.assertFalse(header["encrypted"])
        self.assertEqual(header["format_version"], 1)

        store = InventoryStore(self.data_dir)
        store.add(Client(id="added-later", name="Added After Backup"))

        code, out, _ = self.run_cli("restore", path, "--force")
        self.assertEqual(code, 0, out)
        self.assertIn("Restore completed successfully", out)
        self.assertEqual(store.count_records(), demo_counts)

    def test_encrypted_backup_and_restore(self) -> None:
        """Test password protection through the policy and stdin passwords."""
        self.run_cli("demo")
        self.assertEqual(self.run_cli("policy", "protect", "on")[0], 0)

        code, out, _ = self.run_cli("backup", "--password-stdin", stdin="s3cret\n")
        self.assertEqual(code, 0, out)
        self.assertIn("Encrypted: Yes", out)

        path = self.latest_backup()
        code, out, _ = self.run_cli("inspect", path, "--json")
        self.assertTrue(json.loads(out)["encrypted"])

        code, _, err = self.run_cli(
            "restore", path, "--force", "--password-stdin", stdin="wrong\n"
        )
        self.assertEqual(code, EXIT_AUTH_FAILURE)
        self.assertIn("not changed", err)

        code, out, _ = self.run_cli(
            "restore", path, "--force", "--password-stdin", stdin="s3cret\n"
        )
        self.assertEqual(code, 0, out)

    def test_restore_interrupted_while_committing(self) -> None:
        """Test that Ctrl-C once the commit has started lets the restore finish."""
        self.run_cli("demo")
        demo_counts = InventoryStore(self.data_dir).count_records()
        self.run_cli("backup")
        path = self.latest_backup()
        InventoryStore(self.data_dir).add(Client(id="added-later", name="Added After Backup"))

        committing = threading.Event()
        original_result = BackupTask.result
        interrupts = []

        def note_phase(phase: Phase) -> None:
            if phase is Phase.COMMITTING:
                committing.set()

        def interrupted_result(task, timeout=None):
            if not interrupts:
                interrupts.append(task)
                committing.wait(10)
                raise KeyboardInterrupt
            return original_result(task, timeout)

        with patch("stockly.cli.print_progress", note_phase):
            with patch.object(BackupTask, "result", interrupted_result):
                code, out, _ = self.run_cli("restore", path, "--force")

        self.assertEqual(code, 0, out)
        self.assertEqual(len(interrupts), 1)
        self.assertIn("please wait", out)
        self.assertIn("Restore completed successfully", out)
        self.assertEqual(InventoryStore(self.data_dir).count_records(), demo_counts)

    def test_backup_requires_password_when_protected(self) -> None:
        """Test that an empty password is refused."""
        self.run_cli("policy", "protect", "on")

        code, _, _ = self.run_cli("backup", "--password-stdin", stdin="\n")

        self.assertEqual(code, EXIT_AUTH_FAILURE)
        self.assertFalse(self.backup_dir.exists() and any(self.backup_dir.iterdir()))

    def test_restore_missing_file(self) -> None:
        """Test restoring a file that does not exist."""
        code, _, err = self.run_cli(
            "restore", str(Path(self.temp_dir) / "nope.stocklybackup"), "--force"
        )

        self.assertEqual(code, EXIT_FAILURE)
        self.assertIn("not found", err)

    def test_restore_declined(self) -> None:
        """Test that answering no leaves the store alone."""
        self.run_cli("demo")
        self.run_cli("backup")
        path = self.latest_backup()
        store = InventoryStore(self.data_dir)
        store.add(Client(id="keep-me", name="Keep Me"))

        with patch("builtins.input", return_value="n"):
            code, out, _ = self.run_cli("restore", path)

        self.assertEqual(code, 0)
        self.assertIn("Restore cancelled", out)
        store.get_record("clients", "keep-me")

    def test_list_table_and_delete(self) -> None:
        """Test the table listing and deleting a backup."""
        code, out, _ = self.run_cli("list")
        self.assertIn("No backups found", out)

        self.run_cli("backup")
        path = self.latest_backup()

        code, out, _ = self.run_cli("list")
        self.assertIn(Path(path).name, out)

        code, out, _ = self.run_cli("delete", Path(path).name, "--force")
        self.assertEqual(code, 0)
        code, out, _ = self.run_cli("list", "--format", "json")
        self.assertEqual(json.loads(out), [])

    def test_policy_interval(self) -> None:
        """Test changing and showing the reminder interval."""
        code, out, _ = self.run_cli("policy", "interval", "14")
        self.assertEqual(code, 0)
        self.assertIn("every 14 day(s)", out)

        code, out, _ = self.run_cli("policy", "interval", "0")
        self.assertIn("disabled", out)

        code, _, err = self.run_cli("policy", "interval", "-3")
        self.assertEqual(code, EXIT_FAILURE)

    def test_remind(self) -> None:
        """Test reminders before and after a backup."""
        code, out, _ = self.run_cli("remind")
        self.assertEqual(code, 0)
        self.assertIn("never backed up", out)

        self.run_cli("backup")

        code, out, _ = self.run_cli("remind")
        self.assertIn("No backup reminder due", out)
        self.assertIn("Next reminder due", out)

        self.run_cli("policy", "interval", "0")
        code, out, _ = self.run_cli("remind")
        self.assertIn("No backup reminder due", out)
        self.assertNotIn("Next reminder due", out)

    def test_info_json(self) -> None:
        """Test the info command JSON output."""
        self.run_cli("demo")

        code, out, _ = self.run_cli("info", "--json")

        self.assertEqual(code, 0)
        info = json.loads(out)
        self.assertEqual(info["records"]["items"], 12)
        self.assertEqual(info["backups"], 0)
        self.assertTrue(info["reminder_due"])
        self.assertIsNone(info["next_reminder_at"])

        self.run_cli("backup")
        code, out, _ = self.run_cli("info", "--json")
        info = json.loads(out)
        self.assertFalse(info["reminder_due"])
        self.assertIsNotNone(info["next_reminder_at"])


if __name__ == "__main__":
    unittest.main()

import os
import tempfile
import unittest
from unittest.mock import patch

from typer.testing import CliRunner

import parallel
from parallel.cli import CommandFailed, app, build_command, run_command
from parallel.process_pool import can_fork

runner = CliRunner()


class TestBuildCommand(unittest.TestCase):

    def test_placeholder_is_replaced_with_quoted_item(self):
        self.assertEqual(build_command("echo {}", "a b"), "echo 'a b'")

    def test_item_is_appended_without_placeholder(self):
        self.assertEqual(build_command("wc -c", "file.txt"), "wc -c file.txt")

    def test_run_command(self):
        result = run_command("echo {}", "hello")
        self.assertEqual((result.returncode, result.stdout), (0, "hello\n"))

        with self.assertRaises(CommandFailed) as cm:
            run_command("exit 3 # {}", "x")
        self.assertEqual(cm.exception.returncode, 3)
        self.assertEqual(run_command("exit 3 # {}", "x", keep_going=True).returncode, 3)


class TestRun(unittest.TestCase):

    def test_outputs_in_input_order(self):
        result = runner.invoke(app, ["run", "echo {}", "--threads", "-j", "3"], input="a\nb\n\nc\nd\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.stdout, "a\nb\nc\nd\n")

    @unittest.skipUnless(can_fork(), "fork start method not available")
    def test_outputs_in_processes(self):
        result = runner.invoke(app, ["run", "echo {}", "-j", "2"], input="x\ny\nz\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.stdout, "x\ny\nz\n")

    def test_zero_jobs_in_threads_runs_directly(self):
        with patch("parallel.cli.processor_count", return_value=8), \
                patch("parallel.cli.parallel.map", wraps=parallel.map) as spy:
            result = runner.invoke(app, ["run", "echo {}", "--threads", "-j", "0"], input="a\nb\n")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.stdout, "a\nb\n")
        self.assertEqual(spy.call_args[0][2].in_threads, 0)

    def test_reads_input_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "items.txt")
            with open(path, "w") as f:
                f.write("1\n2\n")
            result = runner.invoke(app, ["run", "echo item-{}", "--threads", "--input", path])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(result.stdout, "item-1\nitem-2\n")

    def test_missing_input_file(self):
        result = runner.invoke(app, ["run", "echo {}", "--input", "/nonexistent/items.txt"])
        self.assertEqual(result.exit_code, 1)
        self.assertIn("does not exist", result.output)

    def test_failure_stops_with_error(self):
        result = runner.invoke(app, ["run", "exit 4 # {}", "--threads"], input="a\n")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("exited with status 4", result.output)

    def test_keep_going_reports_failures(self):
        result = runner.invoke(app, ["run", "test {} = b", "--threads", "--keep-going"], input="a\nb\nc\n")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("2 of 3 commands failed", result.output)


def test_config_file_settings(write_config):
    path = write_config({"in_threads": 2, "log_level": "WARNING"})
    result = runner.invoke(app, ["run", "echo {}", "--config", str(path)], input="p\nq\n")
    assert result.exit_code == 0, result.output
    assert result.stdout == "p\nq\n"


def test_invalid_config_file(write_config):
    path = write_config({"threads": 2})
    result = runner.invoke(app, ["run", "echo {}", "--config", str(path)], input="p\n")
    assert result.exit_code == 2
    assert "Configuration Error" in result.output


def test_cpus():
    result = runner.invoke(app, ["cpus"])
    assert result.exit_code == 0
    assert "processors:" in result.stdout
    assert "physical:" in result.stdout


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.stdout.strip() == parallel.__version__

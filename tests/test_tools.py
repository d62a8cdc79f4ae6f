#!/usr/bin/env python3
"""
Unit tests for the external tool wrappers.
"""

import subprocess
import sys
import unittest
from unittest import mock

from konflux_tools.errors import ToolError
from konflux_tools.tools import require_tool, run_tool


class TestRequireTool(unittest.TestCase):

    def test_tool_on_path(self):
        with mock.patch("konflux_tools.tools.shutil.which", return_value="/usr/bin/opm"):
            self.assertEqual(require_tool("opm"), "/usr/bin/opm")

    def test_missing_tool(self):
        with mock.patch("konflux_tools.tools.shutil.which", return_value=None):
            with self.assertRaises(ToolError):
                require_tool("opm")

    def test_missing_tool_path(self):
        with self.assertRaises(ToolError):
            require_tool("/nonexistent/bin/opm")


class TestRunTool(unittest.TestCase):
    """Test cases for run_tool function."""

    def test_success(self):
        result = run_tool([sys.executable, "-c", "print('ok')"])

        self.assertEqual(result.stdout.strip(), "ok")

    def test_failure_reports_stderr(self):
        with self.assertRaises(ToolError) as context:
            run_tool([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])

        self.assertIn("exit code 3: boom", str(context.exception))

    def test_missing_binary(self):
        with self.assertRaises(ToolError) as context:
            run_tool(["/nonexistent/bin/opm", "version"])

        self.assertIn("seems not to be installed", str(context.exception))

    @mock.patch("konflux_tools.tools.time.sleep")
    @mock.patch("konflux_tools.tools.subprocess.run")
    def test_retries(self, run, sleep):
        """Test that a failed attempt is retried before giving up."""
        run.side_effect = [subprocess.CalledProcessError(1, ["podman"], stderr="busy"),
                           subprocess.CompletedProcess(["podman"], 0, stdout="", stderr="")]

        result = run_tool(["podman", "pull", "quay.io/fbc:latest"], retries=2)

        self.assertEqual(result.returncode, 0)
        self.assertEqual(run.call_count, 2)
        sleep.assert_called_once_with(2)

    @mock.patch("konflux_tools.tools.time.sleep")
    @mock.patch("konflux_tools.tools.subprocess.run",
                side_effect=subprocess.TimeoutExpired(["podman"], 5))
    def test_timeout(self, run, sleep):
        with self.assertRaises(ToolError) as context:
            run_tool(["podman", "pull", "quay.io/fbc:latest"], timeout=5, retries=2)

        self.assertIn("Timeout after 5s", str(context.exception))
        self.assertEqual(run.call_count, 2)


if __name__ == '__main__':
    unittest.main(verbosity=2)

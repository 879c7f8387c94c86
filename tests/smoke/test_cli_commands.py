"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(command: str, timeout: int = 30, env: dict | None = None) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m lms_core.cli.main')
        timeout: Maximum time to wait
        env: Extra environment variables

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m lms_core.cli.main {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env={**os.environ, "LOG_FILE": "", "COLUMNS": "200", **(env or {})},
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    def test_main_help(self):
        exit_code, stdout, _ = run_cli_command("--help")

        assert exit_code == 0
        for group in ("db", "path", "course", "info"):
            assert group in stdout


class TestInfoCommands:
    def test_calculators(self):
        exit_code, stdout, _ = run_cli_command("info calculators")

        assert exit_code == 0
        assert "lesson_based" in stdout
        assert "assessment_inclusive" in stdout

    def test_grading_types(self):
        exit_code, stdout, _ = run_cli_command("info grading-types")

        assert exit_code == 0
        assert "short_answer" in stdout
        assert "manual" in stdout


class TestDatabaseCommands:
    def test_init_and_missing_enrollment(self, tmp_path):
        env = {"DATABASE_URL": f"sqlite:///{tmp_path / 'cli.db'}"}

        exit_code, stdout, _ = run_cli_command("db init", env=env)
        assert exit_code == 0
        assert "Database initialized" in stdout

        exit_code, stdout, _ = run_cli_command("path progress 1", env=env)
        assert exit_code == 1
        assert "not found" in stdout

"""Tests for CommandRunner against real local programs."""

import logging
import sys

import pytest

from slipway.errors import CommandFailedError, CommandNotFoundError
from slipway.provisioning.shell import CommandRunner, format_command


def test_run_returns_stripped_stdout():
    assert CommandRunner().run(sys.executable, ["-c", "print('  hello  ')"]) == "hello"


def test_run_nonzero_exit_raises_with_stderr():
    code = "import sys; sys.stderr.write('boom'); sys.exit(3)"
    with pytest.raises(CommandFailedError) as exc_info:
        CommandRunner().run(sys.executable, ["-c", code])
    assert exc_info.value.returncode == 3
    assert exc_info.value.stderr == "boom"
    assert "(exit 3)" in str(exc_info.value)


def test_failed_run_logs_stderr_as_error(caplog):
    code = "import sys; sys.stderr.write('no such container'); sys.exit(1)"
    with caplog.at_level(logging.DEBUG, logger="slipway.provisioning.shell"):
        with pytest.raises(CommandFailedError):
            CommandRunner().run(sys.executable, ["-c", code])
    assert [(r.levelno, r.getMessage()) for r in caplog.records if r.getMessage().startswith("stderr:")] == [
        (logging.ERROR, "stderr: no such container")
    ]


def test_quiet_run_logs_stderr_at_debug(caplog):
    code = "import sys; sys.stderr.write('no such container'); sys.exit(1)"
    with caplog.at_level(logging.DEBUG, logger="slipway.provisioning.shell"):
        with pytest.raises(CommandFailedError) as exc_info:
            CommandRunner().run(sys.executable, ["-c", code], quiet=True)
    assert exc_info.value.stderr == "no such container"
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
    assert "stderr: no such container" in [r.getMessage() for r in caplog.records]


def test_missing_program():
    with pytest.raises(CommandNotFoundError, match="command not found: slipway-no-such-tool"):
        CommandRunner().run("slipway-no-such-tool", [])


def test_run_with_input_accepts_str_and_bytes():
    runner = CommandRunner()
    echo = ["-c", "import sys; print(sys.stdin.read().upper())"]
    assert runner.run_with_input(sys.executable, echo, "abc") == "ABC"
    assert runner.run_with_input(sys.executable, echo, b"xyz") == "XYZ"


def test_run_pipeline_failure():
    with pytest.raises(CommandFailedError):
        CommandRunner().run_pipeline("exit 4")


def test_command_exists():
    runner = CommandRunner()
    assert runner.command_exists("sh")
    assert not runner.command_exists("slipway-no-such-tool")


def test_format_command():
    assert format_command("docker", ["compose", "up", "-d"]) == "docker compose up -d"

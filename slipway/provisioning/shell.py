"""Shell command execution helper."""

import logging
import shlex
import shutil
import subprocess

from slipway.errors import CommandFailedError, CommandNotFoundError

logger = logging.getLogger(__name__)


def format_command(program, args):
    return " ".join([program, *args])


class CommandRunner:
    """Runs local programs synchronously.

    Captured runs return stdout with surrounding whitespace stripped. A
    non-zero exit raises CommandFailedError; a program missing from PATH raises
    CommandNotFoundError.
    """

    def __init__(self, timeout=None):
        self.timeout = timeout

    def _spawn(self, program, args, **kwargs):
        command = [program, *args]
        logger.debug(f"$ {shlex.join(command)}")
        try:
            return subprocess.run(command, timeout=self.timeout, **kwargs)
        except FileNotFoundError:
            raise CommandNotFoundError(program) from None

    def _check(self, program, args, result, capture=True, quiet=False):
        if result.returncode == 0:
            return result.stdout.decode(errors="replace").strip() if capture else None
        stderr = result.stderr.decode(errors="replace").strip() if capture and result.stderr else ""
        if stderr:
            logger.log(logging.DEBUG if quiet else logging.ERROR, f"stderr: {stderr}")
        raise CommandFailedError(format_command(program, args), result.returncode, stderr)

    def run(self, program, args, quiet=False):
        """Run and capture output.

        ``quiet`` logs stderr of a failed run at DEBUG, for callers that expect
        and handle the failure.
        """
        result = self._spawn(program, args, capture_output=True)
        return self._check(program, args, result, quiet=quiet)

    def run_interactive(self, program, args):
        """Run with the caller's stdin/stdout/stderr."""
        result = self._spawn(program, args)
        self._check(program, args, result, capture=False)

    def run_with_input(self, program, args, data):
        """Run feeding ``data`` (bytes or str) on stdin, capture output."""
        if isinstance(data, str):
            data = data.encode()
        result = self._spawn(program, args, input=data, capture_output=True)
        return self._check(program, args, result)

    def run_pipeline(self, shell_cmd):
        """Run a shell pipeline through ``sh -c`` interactively."""
        self.run_interactive("sh", ["-c", shell_cmd])

    def command_exists(self, program):
        return shutil.which(program) is not None

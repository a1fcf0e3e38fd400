"""SSH transport: run commands and write files on remote servers via SSH/SCP."""

import logging
import shlex
import time

from slipway.errors import DeployError, SshError
from slipway.provisioning.shell import CommandRunner

logger = logging.getLogger(__name__)


def ssh_base_args(key_file=None, connect_timeout=10):
    """Options shared by every ssh invocation."""
    args = [
        "-o", "StrictHostKeyChecking=accept-new",
        "-o", f"ConnectTimeout={connect_timeout}",
    ]
    if key_file:
        args += ["-i", key_file]
    return args


def scp_base_args(key_file=None):
    args = ["-o", "StrictHostKeyChecking=accept-new"]
    if key_file:
        args += ["-i", key_file]
    return args


class SshSession:
    """Remote session to ``user@host`` over the system ssh client."""

    def __init__(self, host, user="root", key_file=None, runner=None):
        self.host = host
        self.user = user
        self.key_file = key_file
        self.runner = runner or CommandRunner()

    @property
    def destination(self):
        return f"{self.user}@{self.host}"

    def _ssh_args(self, command):
        return [*ssh_base_args(self.key_file), self.destination, command]

    def shell_command(self, remote_cmd):
        """Local shell snippet that runs ``remote_cmd`` on the host, for use in pipelines."""
        return shlex.join(["ssh", *self._ssh_args(remote_cmd)])

    def execute(self, command, quiet=False):
        """Run ``command`` remotely and return its stripped stdout."""
        return self.runner.run("ssh", self._ssh_args(command), quiet=quiet)

    def execute_interactive(self, command):
        self.runner.run_interactive("ssh", self._ssh_args(command))

    def write_remote_file(self, content, remote_path):
        """Stream ``content`` into ``remote_path`` through ``cat``."""
        self.runner.run_with_input("ssh", self._ssh_args(f"cat > {shlex.quote(remote_path)}"), content)

    def copy_local_file_to_remote(self, local_path, remote_path):
        args = [*scp_base_args(self.key_file), local_path, f"{self.destination}:{remote_path}"]
        self.runner.run_interactive("scp", args)

    def wait_until_reachable(self, max_attempts=30, interval=5, sleep=time.sleep):
        """Poll ``echo ok`` until the host accepts SSH connections."""
        for attempt in range(1, max_attempts + 1):
            logger.info(f"Waiting for SSH on {self.host} ({attempt}/{max_attempts})...")
            try:
                self.execute("echo ok", quiet=True)
                logger.info(f"SSH on {self.host} is ready")
                return
            except DeployError as e:
                logger.debug(f"SSH not ready yet: {e}")
            if attempt < max_attempts:
                sleep(interval)
        raise SshError(f"SSH not ready after {max_attempts} attempts on {self.host}")

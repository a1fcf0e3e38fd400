"""Deployment error types.

Every failure raised by a collaborator (shell, SSH, provisioner, DNS, deployer)
is a ``DeployError`` subclass so the pipeline can report it with the phase it
happened in. Configuration mistakes (bad app names, unknown upstream ports) are
plain ``ValueError`` raised while the descriptors are built.
"""


class DeployError(Exception):
    """Base class for runtime deployment failures."""


class CommandFailedError(DeployError):
    """An external command exited with a non-zero status."""

    def __init__(self, command, returncode, stderr=""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"command failed: {command} (exit {returncode})")


class CommandNotFoundError(DeployError):
    """The program itself could not be located on PATH."""

    def __init__(self, program):
        self.program = program
        super().__init__(f"command not found: {program}")


class SshError(DeployError):
    def __init__(self, detail):
        super().__init__(f"SSH connection failed: {detail}")


class PrerequisiteMissingError(DeployError):
    def __init__(self, detail):
        super().__init__(f"prerequisite missing: {detail}")


class ServerNotFoundError(DeployError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"server not found: {name}")


class DnsError(DeployError):
    def __init__(self, detail):
        super().__init__(f"DNS error: {detail}")


class EnvMissingError(DeployError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"environment variable missing: {name}")


class MissingFileError(DeployError):
    def __init__(self, path):
        self.path = path
        super().__init__(f"file not found: {path}")


class HealthcheckTimeoutError(DeployError):
    """A container never reported ``healthy`` within the polling budget."""

    def __init__(self, app_name, attempts):
        self.app_name = app_name
        self.attempts = attempts
        super().__init__(f"container '{app_name}' did not become healthy after {attempts} attempts")


class UnsupportedOperationError(DeployError):
    """A backend does not implement an optional capability (e.g. CNAME records)."""

    def __init__(self, detail):
        super().__init__(f"unsupported operation: {detail}")

"""Provisioner interface."""

from abc import ABC, abstractmethod

REMOTE_DIR = "/opt/app"
DEFAULT_REGION = "fra1"


class Provisioner(ABC):
    """Creates, configures and destroys the servers apps are deployed to."""

    @abstractmethod
    def check_prerequisites(self):
        """Raise PrerequisiteMissingError if a required tool or credential is absent."""

    @property
    def default_region(self):
        """Region used when provisioning without an explicit one."""
        return DEFAULT_REGION

    def detect_ssh_key(self):
        """Backend-specific key reference passed to create_server (empty if unused)."""
        return ""

    @abstractmethod
    def create_server(self, name, region, key_ref):
        """Create a server and return its ServerInfo."""

    @abstractmethod
    def setup_server(self, server, domain=None):
        """Install Docker, open the firewall and start the placeholder proxy."""

    @abstractmethod
    def get_server(self, name):
        """Return the ServerInfo for ``name``, or None if it does not exist."""

    @abstractmethod
    def destroy_server(self, name):
        ...

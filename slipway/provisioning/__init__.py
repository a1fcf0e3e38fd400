"""Server provisioning: shell and SSH helpers, provisioners."""

from slipway.provisioning.base import REMOTE_DIR, Provisioner
from slipway.provisioning.digitalocean import DigitalOcean
from slipway.provisioning.libvirt import Libvirt, NetworkMode, parse_domifaddr
from slipway.provisioning.remote import run_setup_script
from slipway.provisioning.shell import CommandRunner
from slipway.provisioning.ssh_config import SshConfig, remove_ssh_host_entry
from slipway.provisioning.ssh_transport import SshSession, ssh_base_args
from slipway.provisioning.types import ServerInfo

__all__ = [
    "REMOTE_DIR",
    "Provisioner",
    "DigitalOcean",
    "Libvirt",
    "NetworkMode",
    "parse_domifaddr",
    "run_setup_script",
    "CommandRunner",
    "SshConfig",
    "remove_ssh_host_entry",
    "SshSession",
    "ssh_base_args",
    "ServerInfo",
]

"""DigitalOcean provisioner: create/delete droplets using doctl."""

import glob
import logging
import os

from slipway.errors import DeployError, MissingFileError, PrerequisiteMissingError, ServerNotFoundError
from slipway.provisioning.base import DEFAULT_REGION, REMOTE_DIR, Provisioner
from slipway.provisioning.remote import prepare_server
from slipway.provisioning.shell import CommandRunner
from slipway.provisioning.ssh_config import SshConfig
from slipway.provisioning.ssh_transport import SshSession
from slipway.provisioning.types import ServerInfo

logger = logging.getLogger(__name__)

DEFAULT_SIZE = "s-1vcpu-1gb"
DEFAULT_IMAGE = "ubuntu-24-04-x64"

# ── Command builders ───────────────────────────────────────────────


def _droplet_list_args(columns):
    return ["compute", "droplet", "list", "--format", columns, "--no-header"]


def _droplet_create_args(name, image, size, region, ssh_key_id):
    return [
        "compute", "droplet", "create", name,
        "--image", image,
        "--size", size,
        "--region", region,
        "--ssh-keys", ssh_key_id,
        "--enable-monitoring",
        "--wait",
    ]


def _rows(output, min_columns):
    for line in output.splitlines():
        parts = line.split()
        if len(parts) >= min_columns:
            yield parts


# ── Provisioner ────────────────────────────────────────────────────


class DigitalOcean(Provisioner):
    def __init__(
        self,
        size=DEFAULT_SIZE,
        region=DEFAULT_REGION,
        image=DEFAULT_IMAGE,
        remote_dir=REMOTE_DIR,
        runner=None,
        ssh_config=None,
        session_factory=SshSession,
        ssh_dir=None,
    ):
        self.size = size
        self.region = region
        self.image = image
        self.remote_dir = remote_dir
        self.runner = runner or CommandRunner()
        self.ssh_config = ssh_config if ssh_config is not None else SshConfig()
        self.session_factory = session_factory
        self.ssh_dir = ssh_dir or os.path.join(os.path.expanduser("~"), ".ssh")
        self._key = None  # (key_id, private_key_file)

    @property
    def default_region(self):
        return self.region

    def _doctl(self, args, quiet=False):
        return self.runner.run("doctl", args, quiet=quiet)

    def check_prerequisites(self):
        logger.info("Checking prerequisites...")
        if not self.runner.command_exists("doctl"):
            raise PrerequisiteMissingError("doctl is not installed. Install with: brew install doctl")
        try:
            self._doctl(["account", "get"], quiet=True)
        except DeployError:
            raise PrerequisiteMissingError("doctl is not authenticated. Run: doctl auth init") from None
        logger.info("Prerequisites OK")

    def _local_fingerprint(self, pub_key):
        # "2048 MD5:aa:bb:... comment (RSA)"
        try:
            output = self.runner.run("ssh-keygen", ["-l", "-E", "md5", "-f", pub_key], quiet=True)
        except DeployError:
            return None
        parts = output.split()
        if len(parts) < 2:
            return None
        return parts[1].removeprefix("MD5:")

    def _find_key(self):
        if self._key is not None:
            return self._key
        output = self._doctl(["compute", "ssh-key", "list", "--format", "ID,FingerPrint", "--no-header"])
        rows = list(_rows(output, 2))
        if not rows:
            raise PrerequisiteMissingError("no SSH keys found in DigitalOcean (doctl compute ssh-key import)")
        key_id, remote_fp = rows[0][0], rows[0][1]

        if not os.path.isdir(self.ssh_dir):
            raise MissingFileError(self.ssh_dir)
        for pub_key in sorted(glob.glob(os.path.join(self.ssh_dir, "*.pub"))):
            if self._local_fingerprint(pub_key) == remote_fp:
                private_key = pub_key.removesuffix(".pub")
                logger.info(f"SSH key: {private_key} (ID: {key_id})")
                self._key = (key_id, private_key)
                return self._key
        raise PrerequisiteMissingError(f"no local key in {self.ssh_dir} matches DigitalOcean fingerprint {remote_fp}")

    def detect_ssh_key(self):
        """ID of the first SSH key registered with DigitalOcean that has a local private key."""
        return self._find_key()[0]

    def _droplet_ip(self, name):
        for parts in _rows(self._doctl(_droplet_list_args("Name,PublicIPv4")), 2):
            if parts[0] == name:
                return parts[1]
        raise ServerNotFoundError(name)

    def create_server(self, name, region, key_ref):
        logger.info(f"Creating droplet '{name}' in {region}...")
        self.runner.run_interactive("doctl", _droplet_create_args(name, self.image, self.size, region, key_ref))
        ip = self._droplet_ip(name)
        logger.info(f"Droplet created! IP: {ip}")
        _, key_file = self._find_key()
        return ServerInfo(name=name, ip=ip, region=region, ssh_key_file=key_file, ssh_key_id=key_ref)

    def setup_server(self, server, domain=None):
        session = self.session_factory(server.ip, "root", server.ssh_key_file)
        prepare_server(session, server, domain, self.remote_dir, self.ssh_config, label="Droplet")

    def get_server(self, name):
        for parts in _rows(self._doctl(_droplet_list_args("Name,PublicIPv4,Region")), 3):
            if parts[0] == name:
                _, key_file = self._find_key()
                return ServerInfo(name=name, ip=parts[1], region=parts[2], ssh_key_file=key_file)
        return None

    def destroy_server(self, name):
        droplet_id = None
        for parts in _rows(self._doctl(_droplet_list_args("Name,ID")), 2):
            if parts[0] == name:
                droplet_id = parts[1]
                break
        if droplet_id is None:
            raise ServerNotFoundError(name)

        logger.info(f"Deleting droplet '{name}'...")
        self._doctl(["compute", "droplet", "delete", droplet_id, "--force"])
        logger.info(f"Droplet '{name}' deleted")
        self.ssh_config.unregister_host(name)

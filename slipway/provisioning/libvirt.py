"""Libvirt/KVM provisioner: VMs on a hypervisor driven over SSH.

Guests boot from an Ubuntu cloud image; the root SSH key is injected with a
cloud-init NoCloud seed ISO built on the hypervisor.
"""

import logging
import os
import shlex
import time
from dataclasses import dataclass

from slipway.errors import DeployError, MissingFileError, PrerequisiteMissingError
from slipway.provisioning.base import REMOTE_DIR, Provisioner
from slipway.provisioning.remote import prepare_server
from slipway.provisioning.ssh_config import SshConfig
from slipway.provisioning.ssh_transport import SshSession
from slipway.provisioning.types import ServerInfo

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_URL = "https://cloud-images.ubuntu.com/releases/24.04/release/ubuntu-24.04-server-cloudimg-amd64.img"
DEFAULT_STORAGE_DIR = "/var/lib/libvirt/images"
DEFAULT_OS_VARIANT = "ubuntu24.04"

IP_WAIT_ATTEMPTS = 30
IP_WAIT_INTERVAL = 5
IP_LOOKUP_ATTEMPTS = 3
IP_LOOKUP_INTERVAL = 2

REQUIRED_TOOLS = ("virsh", "virt-install", "qemu-img")


@dataclass(frozen=True)
class NetworkMode:
    """How the guest is attached: a host bridge (LAN address) or libvirt's default NAT."""

    bridge: str | None = None

    @classmethod
    def bridged(cls, bridge):
        return cls(bridge=bridge)

    @classmethod
    def nat(cls):
        return cls()

    def virt_install_arg(self):
        return f"bridge={self.bridge}" if self.bridge else "network=default"


def parse_domifaddr(output):
    """Return the first IPv4 address in ``virsh domifaddr`` output, without its prefix length.

    Works for both the lease/agent table and ``--source arp``::

         Name       MAC address          Protocol     Address
        -------------------------------------------------------
         vnet0      52:54:00:ab:cd:ef    ipv4         192.168.122.45/24
    """
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith("Name") or line.startswith("-"):
            continue
        parts = line.split()
        if len(parts) >= 4 and parts[2] == "ipv4":
            ip = parts[3].split("/")[0]
            if ip:
                return ip
    return None


def cloud_init_user_data(pub_key):
    return (
        "#cloud-config\n"
        "users:\n"
        "  - name: root\n"
        "    ssh_authorized_keys:\n"
        f"      - {pub_key}\n"
        "ssh_pwauth: false\n"
        "package_update: false\n"
    )


def cloud_init_meta_data(name):
    return f"instance-id: {name}\nlocal-hostname: {name}\n"


class Libvirt(Provisioner):
    def __init__(
        self,
        hypervisor_host,
        vm_ssh_key,
        hypervisor_user="root",
        hypervisor_key=None,
        vcpus=2,
        memory_mib=2048,
        disk_gib=20,
        image_url=DEFAULT_IMAGE_URL,
        network=None,
        storage_dir=DEFAULT_STORAGE_DIR,
        os_variant=DEFAULT_OS_VARIANT,
        remote_dir=REMOTE_DIR,
        ssh_config=None,
        session_factory=SshSession,
        sleep=time.sleep,
    ):
        self.hypervisor_host = hypervisor_host
        self.vm_ssh_key = vm_ssh_key
        self.hypervisor_user = hypervisor_user
        self.hypervisor_key = hypervisor_key
        self.vcpus = vcpus
        self.memory_mib = memory_mib
        self.disk_gib = disk_gib
        self.image_url = image_url
        self.network = network or NetworkMode.nat()
        self.storage_dir = storage_dir
        self.os_variant = os_variant
        self.remote_dir = remote_dir
        self.ssh_config = ssh_config if ssh_config is not None else SshConfig()
        self.session_factory = session_factory
        self.sleep = sleep

    def _hypervisor(self):
        return self.session_factory(self.hypervisor_host, self.hypervisor_user, self.hypervisor_key)

    def _server(self, name, ip):
        return ServerInfo(name=name, ip=ip, region="local", ssh_key_file=self.vm_ssh_key)

    def _read_pub_key(self):
        pub_path = f"{self.vm_ssh_key}.pub"
        try:
            with open(pub_path) as f:
                return f.read().strip()
        except FileNotFoundError:
            raise MissingFileError(pub_path) from None

    def check_prerequisites(self):
        logger.info("Checking prerequisites...")
        for path in (self.vm_ssh_key, f"{self.vm_ssh_key}.pub"):
            if not os.path.exists(path):
                raise MissingFileError(path)

        ssh = self._hypervisor()
        try:
            ssh.execute("echo ok", quiet=True)
        except DeployError:
            raise PrerequisiteMissingError(
                f"cannot SSH to hypervisor {self.hypervisor_user}@{self.hypervisor_host}"
            ) from None

        for tool in REQUIRED_TOOLS:
            try:
                ssh.execute(f"command -v {tool}", quiet=True)
            except DeployError:
                raise PrerequisiteMissingError(f"'{tool}' not found on hypervisor") from None
        try:
            ssh.execute("command -v genisoimage || command -v mkisofs", quiet=True)
        except DeployError:
            raise PrerequisiteMissingError(
                "neither genisoimage nor mkisofs found on hypervisor (apt install genisoimage)"
            ) from None
        logger.info("Prerequisites OK")

    def _create_seed_iso(self, ssh, name):
        pub_key = self._read_pub_key()
        seed_dir = f"/tmp/cloud-init-{name}"
        iso_path = f"{self.storage_dir}/{name}-seed.iso"

        ssh.execute(f"mkdir -p {seed_dir}")
        ssh.write_remote_file(cloud_init_user_data(pub_key), f"{seed_dir}/user-data")
        ssh.write_remote_file(cloud_init_meta_data(name), f"{seed_dir}/meta-data")
        iso_args = f"-output {iso_path} -volid cidata -joliet -rock {seed_dir}/user-data {seed_dir}/meta-data"
        ssh.execute(
            f"if command -v genisoimage >/dev/null 2>&1; then genisoimage {iso_args}; "
            f"else mkisofs {iso_args}; fi"
        )
        ssh.execute(f"rm -rf {seed_dir}")
        return iso_path

    def _lookup_ip(self, ssh, name):
        # Bridged guests often only show up in the ARP table.
        for source in ("", " --source arp"):
            try:
                output = ssh.execute(f"virsh domifaddr {name}{source} 2>/dev/null", quiet=True)
            except DeployError:
                continue
            ip = parse_domifaddr(output)
            if ip:
                return ip
        return None

    def _wait_for_ip(self, ssh, name):
        for attempt in range(1, IP_WAIT_ATTEMPTS + 1):
            logger.info(f"Waiting for IP of '{name}' ({attempt}/{IP_WAIT_ATTEMPTS})...")
            ip = self._lookup_ip(ssh, name)
            if ip:
                return ip
            self.sleep(IP_WAIT_INTERVAL)
        raise DeployError(f"VM '{name}' did not get an IP after {IP_WAIT_ATTEMPTS} attempts")

    def _virt_install_cmd(self, name, disk_path, seed_iso):
        return (
            f"virt-install --name {name} --vcpus {self.vcpus} --memory {self.memory_mib} "
            f"--disk path={disk_path},format=qcow2 --disk path={seed_iso},device=cdrom "
            f"--os-variant {self.os_variant} --network {self.network.virt_install_arg()} "
            f"--graphics none --noautoconsole --import"
        )

    def create_server(self, name, region, key_ref):
        ssh = self._hypervisor()
        cached = f"{self.storage_dir}/cloud-base.img"
        disk_path = f"{self.storage_dir}/{name}.qcow2"
        logger.info(f"Creating VM '{name}'...")

        try:
            has_cache = ssh.execute(f"test -f {cached} && echo yes", quiet=True) == "yes"
        except DeployError:
            has_cache = False
        if not has_cache:
            logger.info("Downloading cloud image...")
            ssh.execute(f"wget -q -O {cached} {shlex.quote(self.image_url)}")

        ssh.execute(f"cp {cached} {disk_path}")
        ssh.execute(f"qemu-img resize {disk_path} {self.disk_gib}G")
        seed_iso = self._create_seed_iso(ssh, name)
        ssh.execute(self._virt_install_cmd(name, disk_path, seed_iso))

        ip = self._wait_for_ip(ssh, name)
        logger.info(f"VM created! IP: {ip}")
        return self._server(name, ip)

    def setup_server(self, server, domain=None):
        # Setup runs on the guest, not the hypervisor.
        session = self.session_factory(server.ip, "root", server.ssh_key_file)
        prepare_server(session, server, domain, self.remote_dir, self.ssh_config, label="VM")

    def get_server(self, name):
        ssh = self._hypervisor()
        try:
            state = ssh.execute(f"virsh domstate {name} 2>/dev/null", quiet=True)
        except DeployError:
            return None
        if not state.strip():
            return None

        for attempt in range(IP_LOOKUP_ATTEMPTS):
            ip = self._lookup_ip(ssh, name)
            if ip:
                return self._server(name, ip)
            if attempt < IP_LOOKUP_ATTEMPTS - 1:
                self.sleep(IP_LOOKUP_INTERVAL)
        # Defined but no address yet.
        return self._server(name, "")

    def destroy_server(self, name):
        ssh = self._hypervisor()
        logger.info(f"Destroying VM '{name}'...")
        ssh.execute(f"virsh destroy {name} 2>/dev/null || true")
        ssh.execute(f"virsh undefine {name} --remove-all-storage 2>/dev/null || true")
        ssh.execute(f"rm -f {self.storage_dir}/{name}-seed.iso")
        logger.info(f"VM '{name}' destroyed")
        self.ssh_config.unregister_host(name)

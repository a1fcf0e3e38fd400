"""Tests for the libvirt provisioner helpers and command flow."""

import pytest
from conftest import SessionFactory

from slipway.errors import CommandFailedError, MissingFileError, PrerequisiteMissingError, SshError
from slipway.provisioning.libvirt import (
    Libvirt,
    NetworkMode,
    cloud_init_meta_data,
    cloud_init_user_data,
    parse_domifaddr,
)
from slipway.provisioning.ssh_config import SshConfig

DOMIFADDR = """ Name       MAC address          Protocol     Address
-------------------------------------------------------------------------------
 vnet0      52:54:00:ab:cd:ef    ipv4         192.168.122.45/24
"""


# ── helpers ─────────────────────────────────────────────────────────


def test_parse_domifaddr():
    assert parse_domifaddr(DOMIFADDR) == "192.168.122.45"


def test_parse_domifaddr_skips_ipv6():
    output = DOMIFADDR.replace("ipv4         192.168.122.45/24", "ipv6         fe80::1/64")
    assert parse_domifaddr(output) is None


def test_parse_domifaddr_empty():
    assert parse_domifaddr("") is None


def test_network_mode():
    assert NetworkMode.nat().virt_install_arg() == "network=default"
    assert NetworkMode.bridged("br0").virt_install_arg() == "bridge=br0"


def test_cloud_init_documents():
    user_data = cloud_init_user_data("ssh-ed25519 AAA me")
    assert user_data.startswith("#cloud-config\n")
    assert "      - ssh-ed25519 AAA me\n" in user_data
    assert cloud_init_meta_data("vm1") == "instance-id: vm1\nlocal-hostname: vm1\n"


# ── provisioner ─────────────────────────────────────────────────────


@pytest.fixture
def vm_key(tmp_path):
    key = tmp_path / "id_vm"
    key.write_text("PRIVATE")
    (tmp_path / "id_vm.pub").write_text("ssh-ed25519 AAA vm\n")
    return str(key)


def make_libvirt(vm_key, tmp_path, responses=None, sleeps=None):
    sessions = SessionFactory(responses=responses)
    libvirt = Libvirt(
        "hv.lan",
        vm_key,
        ssh_config=SshConfig(str(tmp_path / "ssh_config")),
        session_factory=sessions,
        sleep=(sleeps if sleeps is not None else []).append,
    )
    return libvirt, sessions


def test_check_prerequisites_needs_key_files(tmp_path):
    libvirt, _ = make_libvirt(str(tmp_path / "absent"), tmp_path)
    with pytest.raises(MissingFileError):
        libvirt.check_prerequisites()


def test_check_prerequisites_unreachable_hypervisor(vm_key, tmp_path):
    libvirt, _ = make_libvirt(vm_key, tmp_path, responses=[SshError("refused")])
    with pytest.raises(PrerequisiteMissingError, match="cannot SSH to hypervisor root@hv.lan"):
        libvirt.check_prerequisites()


def test_create_server(vm_key, tmp_path):
    # test -f, cp, qemu-img, mkdir, iso, rm, virt-install, then domifaddr
    responses = ["yes", "", "", "", "", "", "", DOMIFADDR]
    libvirt, sessions = make_libvirt(vm_key, tmp_path, responses=responses)
    server = libvirt.create_server("vm1", "local", "")

    assert server.ip == "192.168.122.45"
    assert server.region == "local"
    assert server.ssh_key_file == vm_key

    hv = sessions.sessions[0]
    assert hv.host == "hv.lan"
    executed = [call[1] for call in hv.calls if call[0] == "execute"]
    assert not any(cmd.startswith("wget") for cmd in executed)
    assert "qemu-img resize /var/lib/libvirt/images/vm1.qcow2 20G" in executed
    assert any(cmd.startswith("virt-install --name vm1 --vcpus 2 --memory 2048") for cmd in executed)
    assert "ssh-ed25519 AAA vm" in hv.written("/tmp/cloud-init-vm1/user-data")


def test_get_server_missing_domain(vm_key, tmp_path):
    libvirt, sessions = make_libvirt(vm_key, tmp_path, responses=[CommandFailedError("virsh", 1)])
    assert libvirt.get_server("vm1") is None
    assert sessions.sessions[0].quiet == ["virsh domstate vm1 2>/dev/null"]


def test_get_server_without_address(vm_key, tmp_path):
    sleeps = []
    libvirt, _ = make_libvirt(vm_key, tmp_path, responses=["running"], sleeps=sleeps)
    server = libvirt.get_server("vm1")
    assert server.ip == ""
    assert sleeps == [2, 2]


def test_destroy_server(vm_key, tmp_path):
    libvirt, sessions = make_libvirt(vm_key, tmp_path)
    libvirt.destroy_server("vm1")
    executed = [call[1] for call in sessions.calls]
    assert executed == [
        "virsh destroy vm1 2>/dev/null || true",
        "virsh undefine vm1 --remove-all-storage 2>/dev/null || true",
        "rm -f /var/lib/libvirt/images/vm1-seed.iso",
    ]

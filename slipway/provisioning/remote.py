"""Remote server setup: install Docker, open the firewall, start a placeholder Caddy."""

import logging
import posixpath
import shlex

from slipway.deploy.caddyfile import placeholder_caddyfile
from slipway.deploy.compose import placeholder_compose

logger = logging.getLogger(__name__)

SSH_READY_ATTEMPTS = 30
SSH_READY_INTERVAL = 10

# Runs as root on a fresh Ubuntu host. $1 is the deploy directory.
SETUP_SCRIPT = r"""set -euo pipefail
REMOTE_DIR="$1"

echo "Stopping unattended-upgrades..."
systemctl stop unattended-upgrades 2>/dev/null || true
systemctl disable unattended-upgrades 2>/dev/null || true
systemctl mask unattended-upgrades 2>/dev/null || true
pkill -9 unattended-upgr 2>/dev/null || true
sleep 5

echo "Waiting for apt locks..."
while fuser /var/lib/dpkg/lock-frontend /var/lib/dpkg/lock \
    /var/lib/apt/lists/lock /var/cache/apt/archives/lock >/dev/null 2>&1; do
    echo "  Locks still held, waiting..."
    sleep 3
done

APT_OPTS="-o DPkg::Lock::Timeout=120"

if ! command -v docker >/dev/null 2>&1; then
    echo "Installing Docker..."
    apt-get $APT_OPTS update
    apt-get $APT_OPTS install -y ca-certificates curl
    install -m 0755 -d /etc/apt/keyrings
    curl -fsSL https://download.docker.com/linux/ubuntu/gpg -o /etc/apt/keyrings/docker.asc
    chmod a+r /etc/apt/keyrings/docker.asc
    . /etc/os-release
    echo "deb [arch=$(dpkg --print-architecture) signed-by=/etc/apt/keyrings/docker.asc] https://download.docker.com/linux/ubuntu $VERSION_CODENAME stable" \
        > /etc/apt/sources.list.d/docker.list
    apt-get $APT_OPTS update
    apt-get $APT_OPTS install -y docker-ce docker-ce-cli containerd.io docker-compose-plugin
    systemctl enable docker
    systemctl start docker
else
    echo "Docker already installed"
    docker --version
fi

ufw allow OpenSSH
ufw allow 80/tcp
ufw allow 443/tcp
ufw --force enable

mkdir -p "$REMOTE_DIR"
"""


def run_setup_script(session, domain, remote_dir):
    """Prepare a fresh server and serve a 503 placeholder on ``domain``.

    The placeholder Caddy lets certificate issuance start before the first
    real deploy replaces both files.
    """
    logger.info(f"Running server setup on {session.host}...")
    session.execute_interactive(f"bash -c {shlex.quote(SETUP_SCRIPT)} _ {shlex.quote(remote_dir)}")

    project = posixpath.basename(remote_dir.rstrip("/")) or "app"
    session.write_remote_file(placeholder_caddyfile(domain), f"{remote_dir}/Caddyfile")
    session.write_remote_file(placeholder_compose(project), f"{remote_dir}/docker-compose.yml")
    session.execute_interactive(f"cd {shlex.quote(remote_dir)} && docker compose pull && docker compose up -d")
    logger.info("Server setup complete")


def prepare_server(session, server, domain, remote_dir, ssh_config, label="Server"):
    """Shared tail of every provisioner's setup_server()."""
    session.wait_until_reachable(SSH_READY_ATTEMPTS, SSH_READY_INTERVAL)
    run_setup_script(session, domain or server.ip, remote_dir)

    alias = domain or server.name
    if ssh_config is not None:
        ssh_config.register_host(alias, server.ip, server.ssh_key_file)

    deploy_host = domain or server.ip
    logger.info("")
    logger.info(f"{label} provisioned successfully!")
    logger.info(f"  Name:   {server.name}")
    logger.info(f"  IP:     {server.ip}")
    logger.info(f"  Region: {server.region}")
    if domain:
        logger.info(f"  Domain: {domain}")
    logger.info(f"Deploy with: slipway deploy {deploy_host}")

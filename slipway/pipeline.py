"""Deployment pipeline: provision -> DNS -> deploy, plus status and destroy.

A Pipeline is assembled once from app and proxy descriptors and the chosen
backends, then driven by one of four operations. Everything runs sequentially
in the calling thread; the only waiting happens while health-gating.
"""

import enum
import logging
import os
import shlex
import sys
import time

from slipway.app import App
from slipway.commands import build_parser
from slipway.deploy.caddyfile import generate_caddyfile
from slipway.deploy.compose import generate_compose
from slipway.errors import DeployError, HealthcheckTimeoutError, MissingFileError
from slipway.logging_setup import setup_cli_logging
from slipway.provisioning.base import REMOTE_DIR
from slipway.provisioning.ssh_transport import SshSession
from slipway.proxy import ProxyConfig

logger = logging.getLogger(__name__)

DEFAULT_SSH_USER = "root"

HEALTH_MAX_ATTEMPTS = 30
HEALTH_INTERVAL = 5
NO_HEALTHCHECK_GRACE = 5

CONFIRM_TOKEN = "yes"


class Phase(enum.Enum):
    IDLE = "idle"
    PROVISIONING = "provisioning"
    DNS_UPDATING = "dns update"
    BUILDING = "build"
    TRANSFERRING = "image transfer"
    ROLLING_OUT = "rollout"
    HEALTH_GATING = "health check"
    COMPLETE = "complete"
    DESTROYING = "destroy"
    STATUS = "status"


def health_status_command(app_name):
    return f"docker inspect --format='{{{{.State.Health.Status}}}}' {shlex.quote(app_name)}"


def wait_healthy(session, apps, remote_dir, sleep=time.sleep, max_attempts=HEALTH_MAX_ATTEMPTS, interval=HEALTH_INTERVAL):
    """Block until every app with a health check reports ``healthy``.

    Without any health checks this is a fixed grace period. A failed
    ``docker inspect`` (container not created yet) uses up an attempt like any
    other non-healthy answer.
    """
    checked = [app for app in apps if app.healthcheck_cmd]
    if not checked:
        logger.info(f"No healthcheck configured, waiting {NO_HEALTHCHECK_GRACE}s...")
        sleep(NO_HEALTHCHECK_GRACE)
        return

    for app in checked:
        logger.info(f"Waiting for {app.name} to be healthy...")
        command = f"cd {shlex.quote(remote_dir)} && {health_status_command(app.name)}"
        for attempt in range(1, max_attempts + 1):
            try:
                status = session.execute(command, quiet=True).strip()
            except DeployError:
                status = None
            if status == "healthy":
                logger.info(f"  Health check ({attempt}/{max_attempts}): healthy")
                break
            logger.info(f"  Health check ({attempt}/{max_attempts}): {status or 'waiting for container'}")
            if attempt < max_attempts:
                sleep(interval)
        else:
            raise HealthcheckTimeoutError(app.name, max_attempts)


class Pipeline:
    """Owns the backends and sequences the deployment phases."""

    def __init__(self, apps, proxy=None, session_factory=SshSession, confirm=input, sleep=time.sleep):
        if isinstance(apps, App):
            apps = [apps]
        apps = list(apps)
        if not apps:
            raise ValueError("a pipeline needs at least one app")
        names = [app.name for app in apps]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate app names: {', '.join(duplicates)}")
        self.apps = apps
        self.proxy = proxy if proxy is not None else ProxyConfig()
        self.provisioner = None
        self.dns_provider = None
        self.deployer = None
        self.remote_directory = REMOTE_DIR
        self.user = DEFAULT_SSH_USER
        self.session_factory = session_factory
        self.confirm = confirm
        self.sleep = sleep
        self.phase = Phase.IDLE

    @classmethod
    def single(cls, app, proxy=None, **kwargs):
        return cls([app], proxy, **kwargs)

    # ── configuration ──────────────────────────────────────────────

    def provision(self, provisioner):
        self.provisioner = provisioner
        return self

    def dns(self, provider):
        self.dns_provider = provider
        return self

    def deploy(self, deployer):
        self.deployer = deployer
        return self

    def remote_dir(self, path):
        self.remote_directory = path
        return self

    def ssh_user(self, user):
        self.user = user
        return self

    def _require(self, attr, what):
        backend = getattr(self, attr)
        if backend is None:
            raise DeployError(f"no {what} configured")
        return backend

    def _session(self, host):
        return self.session_factory(host, self.user)

    # ── operations ─────────────────────────────────────────────────

    def run_provision(self, name, domain=None, region=None):
        """Create and set up ``name`` unless it already exists."""
        self.phase = Phase.PROVISIONING
        provisioner = self._require("provisioner", "provisioner")
        provisioner.check_prerequisites()

        existing = provisioner.get_server(name)
        if existing is not None:
            logger.info(f"Server '{name}' already exists (IP: {existing.ip})")
            logger.info(f"Deploy with: slipway deploy {domain or existing.ip}")
            self.phase = Phase.COMPLETE
            return existing

        key_ref = provisioner.detect_ssh_key()
        server = provisioner.create_server(name, region or provisioner.default_region, key_ref)

        # Before setup, so the domain already resolves when Caddy asks for a certificate.
        if self.dns_provider is not None and domain:
            self.phase = Phase.DNS_UPDATING
            logger.info("Setting up DNS...")
            self.dns_provider.upsert_a_record(server.ip)

        self.phase = Phase.PROVISIONING
        provisioner.setup_server(server, domain)
        self.phase = Phase.COMPLETE
        return server

    def render(self, host):
        """(docker-compose.yml, Caddyfile) as they would be written for ``host``."""
        return generate_compose(self.apps, self.proxy), generate_caddyfile(self.proxy, host)

    def _dry_run(self, host, skip_build):
        compose_text, caddyfile_text = self.render(host)
        logger.info("=== Dry run: no changes will be made ===")
        logger.info("")
        logger.info("--- docker-compose.yml ---")
        logger.info(compose_text)
        logger.info("--- Caddyfile ---")
        logger.info(caddyfile_text)
        logger.info("--- Actions that would be performed ---")
        if self.deployer is not None:
            steps = self.deployer.plan(host, self.user, self.apps, self.remote_directory, skip_build)
        else:
            steps = [f"deploy {', '.join(app.name for app in self.apps)} to {host}:{self.remote_directory}"]
        for i, step in enumerate(steps, 1):
            logger.info(f"[dry-run] {i}. {step}")

    def _check_env_files(self):
        for app in self.apps:
            if app.env_file_path and not os.path.isfile(app.env_file_path):
                raise MissingFileError(f"{app.env_file_path} (create it from .env.example)")

    def run_deploy(self, host, skip_build=False, dry_run=False):
        """Build, ship and start every app on ``host``, then wait for health."""
        if dry_run:
            self._dry_run(host, skip_build)
            return

        self.phase = Phase.BUILDING
        deployer = self._require("deployer", "deployer")
        self._check_env_files()

        if not skip_build:
            for app in self.apps:
                deployer.build_image(app)

        if deployer.is_remote:
            self.phase = Phase.TRANSFERRING
            for app in self.apps:
                deployer.transfer_image(app, host, self.user)

        self.phase = Phase.ROLLING_OUT
        deployer.deploy(host, self.user, self.apps, self.proxy, self.remote_directory)

        if deployer.is_remote:
            self.phase = Phase.HEALTH_GATING
            session = self._session(host)
            wait_healthy(session, self.apps, self.remote_directory, sleep=self.sleep)
            session.execute_interactive(f"cd {shlex.quote(self.remote_directory)} && docker compose ps")
        else:
            target = deployer.cname_target()
            if target and self.dns_provider is not None:
                self.phase = Phase.DNS_UPDATING
                self.dns_provider.upsert_cname_record(target)

        self.phase = Phase.COMPLETE
        logger.info("")
        logger.info("Deployment complete!")
        if deployer.is_remote:
            logger.info(f"Application available at: https://{host}")

    def run_status(self, host):
        self.phase = Phase.STATUS
        self._session(host).execute_interactive(f"cd {shlex.quote(self.remote_directory)} && docker compose ps")

    def run_destroy(self, name, domain=None):
        """Delete ``name`` (and the DNS record) after typed confirmation.

        Returns False if the user did not confirm; nothing is touched then.
        """
        self.phase = Phase.DESTROYING
        provisioner = self._require("provisioner", "provisioner")
        logger.warning(f"WARNING: This will permanently delete server '{name}'")
        if domain:
            logger.warning(f"and the DNS record for {domain}")
        try:
            answer = self.confirm(f"Are you sure? Type '{CONFIRM_TOKEN}' to confirm: ")
        except (EOFError, KeyboardInterrupt):
            answer = ""
        if (answer or "").strip() != CONFIRM_TOKEN:
            logger.info("Aborted.")
            return False

        provisioner.destroy_server(name)
        if domain and self.dns_provider is not None:
            self.phase = Phase.DNS_UPDATING
            logger.info("Removing DNS record...")
            self.dns_provider.delete_a_record()
        self.phase = Phase.COMPLETE
        logger.info("Cleanup complete!")
        return True

    # ── CLI ────────────────────────────────────────────────────────

    def dispatch(self, args):
        """Run the subcommand selected in ``args``; exit 1 on a deployment error."""
        try:
            args.func(self, args)
        except DeployError as e:
            logger.error(f"{self.phase.value} failed: {e}")
            sys.exit(1)

    def run(self, argv=None):
        """Parse ``argv`` (default: sys.argv) and run the chosen subcommand."""
        args = build_parser().parse_args(argv)
        setup_cli_logging(getattr(args, "verbose", False))
        self.dispatch(args)

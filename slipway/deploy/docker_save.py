"""Registry-free deploys: ``docker save | gzip | ssh docker load``, then compose up."""

import logging
import shlex

from slipway.deploy.base import Deployer
from slipway.deploy.caddyfile import generate_caddyfile
from slipway.deploy.compose import generate_compose
from slipway.provisioning.shell import CommandRunner
from slipway.provisioning.ssh_transport import SshSession

logger = logging.getLogger(__name__)


def build_args(app):
    """``docker build`` arguments for ``app``."""
    args = ["build", "--platform", app.platform_name, "-f", app.dockerfile_path]
    for key, value in app.build_args:
        args += ["--build-arg", f"{key}={value}"]
    args += ["-t", app.image_tag, app.build_context()]
    return args


def restart_command(remote_dir):
    """Tear down whatever is running (nothing is fine), then start the new stack."""
    return f"cd {shlex.quote(remote_dir)} && docker compose down 2>/dev/null || true && docker compose up -d"


def planned_actions(host, user, apps, remote_dir, skip_build=False):
    """Human-readable steps a deploy would take, in order."""
    multi = len(apps) > 1
    steps = []
    if not skip_build:
        steps += [f"docker {' '.join(build_args(app))}" for app in apps]
    steps += [f"docker save {app.image_tag} | gzip | ssh {user}@{host} 'gunzip | docker load'" for app in apps]
    steps.append(f"write {remote_dir}/docker-compose.yml")
    steps.append(f"write {remote_dir}/Caddyfile")
    for app in apps:
        if app.env_file_path:
            remote = f"{remote_dir}/{app.remote_env_file_name(multi)}"
            steps.append(f"scp {app.env_file_path} -> {user}@{host}:{remote} (chmod 600)")
    steps.append(f"ssh {user}@{host}: {restart_command(remote_dir)}")
    return steps


class DockerSaveLoad(Deployer):
    """Build locally for the app's platform and stream the image over SSH."""

    def __init__(self, runner=None, session_factory=SshSession):
        self.runner = runner or CommandRunner()
        self.session_factory = session_factory

    def build_image(self, app):
        logger.info(f"Building Docker image {app.image_tag} for {app.platform_name}...")
        self.runner.run_interactive("docker", build_args(app))

    def transfer_image(self, app, host, user):
        tag = app.image_tag
        size = self.runner.run("docker", ["image", "inspect", "--format", "{{.Size}}", tag])
        size_bytes = int(size) if size.isdigit() else 0
        logger.info(f"Transferring image {tag} ({size_bytes // (1024 * 1024)} MB) to {user}@{host}")

        progress = f"pv -s {size_bytes} -p -t -e -r -b" if self.runner.command_exists("pv") else "cat"
        session = self.session_factory(host, user)
        pipeline = f"docker save {shlex.quote(tag)} | {progress} | gzip | {session.shell_command('gunzip | docker load')}"
        logger.info("  Saving image, compressing, and streaming over SSH...")
        self.runner.run_pipeline(pipeline)
        logger.info(f"  Image loaded on {host}")

    def deploy(self, host, user, apps, proxy, remote_dir):
        logger.info(f"Deploying to {user}@{host}...")
        session = self.session_factory(host, user)

        logger.info("Writing deployment config...")
        session.write_remote_file(generate_compose(apps, proxy), f"{remote_dir}/docker-compose.yml")
        session.write_remote_file(generate_caddyfile(proxy, host), f"{remote_dir}/Caddyfile")

        multi = len(apps) > 1
        for app in apps:
            if not app.env_file_path:
                continue
            remote = f"{remote_dir}/{app.remote_env_file_name(multi)}"
            session.copy_local_file_to_remote(app.env_file_path, remote)
            session.execute(f"chmod 600 {shlex.quote(remote)}")

        logger.info("Starting containers...")
        session.execute_interactive(restart_command(remote_dir))

    def plan(self, host, user, apps, remote_dir, skip_build=False):
        return planned_actions(host, user, apps, remote_dir, skip_build)

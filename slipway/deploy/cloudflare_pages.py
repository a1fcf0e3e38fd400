"""Cloudflare Pages deployer: publish a static build with wrangler."""

import logging

from slipway.deploy.base import Deployer
from slipway.provisioning.shell import CommandRunner

logger = logging.getLogger(__name__)

DEFAULT_BUILD_DIR = "dist"


class CloudflarePages(Deployer):
    """Static site hosting; needs ``wrangler`` on PATH and ``CLOUDFLARE_API_TOKEN``."""

    def __init__(self, project, runner=None):
        self.project = project
        self.runner = runner or CommandRunner()

    def build_image(self, app):
        if app.build_command:
            logger.info(f"Building static site for {app.name}...")
            self.runner.run_interactive("sh", ["-c", app.build_command])

    def transfer_image(self, app, host, user):
        pass

    def deploy(self, host, user, apps, proxy, remote_dir):
        for app in apps:
            build_dir = app.build_output_dir or DEFAULT_BUILD_DIR
            logger.info(f"Deploying {app.name} to Cloudflare Pages project '{self.project}'...")
            self.runner.run_interactive("wrangler", ["pages", "deploy", build_dir, "--project-name", self.project])
            logger.info(f"Deployed to https://{self.project}.pages.dev")

    @property
    def is_remote(self):
        return False

    def cname_target(self):
        return f"{self.project}.pages.dev"

    def plan(self, host, user, apps, remote_dir, skip_build=False):
        steps = []
        for app in apps:
            if app.build_command and not skip_build:
                steps.append(f"sh -c {app.build_command!r}")
            build_dir = app.build_output_dir or DEFAULT_BUILD_DIR
            steps.append(f"wrangler pages deploy {build_dir} --project-name {self.project}")
        return steps

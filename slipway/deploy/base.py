"""Deployer interface."""

from abc import ABC, abstractmethod


class Deployer(ABC):
    """Builds images, ships them and starts the stack."""

    @abstractmethod
    def build_image(self, app):
        ...

    @abstractmethod
    def transfer_image(self, app, host, user):
        ...

    @abstractmethod
    def deploy(self, host, user, apps, proxy, remote_dir):
        """Write the rendered Caddyfile and compose file, ship env files and restart the stack."""

    @property
    def is_remote(self):
        """False for deployers that publish somewhere other than an SSH host."""
        return True

    def cname_target(self):
        """Hostname the domain should CNAME to, for non-remote deployers."""
        return None

    def plan(self, host, user, apps, remote_dir, skip_build=False):
        """Steps a deploy would take, for dry runs. Performs no work."""
        steps = [] if skip_build else [f"build {app.image_tag}" for app in apps]
        if self.is_remote:
            steps += [f"transfer {app.image_tag} to {user}@{host}" for app in apps]
        steps.append(f"deploy {', '.join(app.name for app in apps)} to {host}:{remote_dir}")
        return steps

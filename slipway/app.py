"""Application descriptor and upstream references."""

import os
import re
from dataclasses import dataclass, field, replace

_NAME_RE = re.compile(r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?$")


def _check_port(port):
    if not isinstance(port, int) or isinstance(port, bool) or not 1 <= port <= 65535:
        raise ValueError(f"invalid port: {port!r}")
    return port


@dataclass(frozen=True)
class Upstream:
    """A (service name, port) pair the proxy can forward to."""

    host: str
    port: int

    def __str__(self):
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, value):
        """Parse ``host:port`` into an Upstream."""
        host, sep, port = str(value).rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"invalid upstream {value!r}, expected host:port")
        return cls(host=host, port=_check_port(int(port)))


@dataclass(frozen=True)
class GitSource:
    url: str
    ref: str = "main"


@dataclass(frozen=True)
class App:
    """One deployable container.

    Built once through the ``with``-style mutators below; each returns a new
    App and the original is left untouched. List-valued fields are tuples so
    a finished App can be shared freely between the renderers and deployer.
    """

    name: str
    dockerfile_path: str = "Dockerfile"
    context_dir: str = "."
    git_source: GitSource | None = None
    platform_name: str = "linux/amd64"
    build_args: tuple[tuple[str, str], ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    env_file_path: str | None = None
    volumes: tuple[tuple[str, str], ...] = ()
    exposed: tuple[int, ...] = ()
    published: tuple[tuple[int, int], ...] = ()
    healthcheck_cmd: str | None = None
    build_command: str | None = None
    build_output_dir: str | None = None

    def __post_init__(self):
        if not _NAME_RE.match(self.name or ""):
            raise ValueError(
                f"invalid app name {self.name!r}: use lowercase letters, digits, '.', '_' or '-', "
                "starting and ending with a letter or digit"
            )

    # ── builder ─────────────────────────────────────────────────────

    def dockerfile(self, path):
        return replace(self, dockerfile_path=path)

    def context(self, path):
        """Build from a local directory (clears any git source)."""
        return replace(self, context_dir=path, git_source=None)

    def source(self, url, ref="main"):
        """Build from a remote git repository instead of the local context."""
        return replace(self, git_source=GitSource(url, ref))

    def platform(self, platform):
        return replace(self, platform_name=platform)

    def build_arg(self, key, value):
        return replace(self, build_args=self.build_args + ((key, str(value)),))

    def with_env(self, key, value):
        return replace(self, env=self.env + ((key, str(value)),))

    def env_file(self, path):
        # Single-valued: a second call replaces the first.
        return replace(self, env_file_path=path)

    def volume(self, name, mount):
        return replace(self, volumes=self.volumes + ((name, mount),))

    def expose(self, port):
        return replace(self, exposed=self.exposed + (_check_port(port),))

    def port(self, host, container):
        return replace(self, published=self.published + ((_check_port(host), _check_port(container)),))

    def healthcheck(self, command):
        return replace(self, healthcheck_cmd=command)

    def build_cmd(self, command):
        return replace(self, build_command=command)

    def build_dir(self, path):
        return replace(self, build_output_dir=path)

    # ── accessors ───────────────────────────────────────────────────

    def upstream(self):
        """Upstream for the first exposed port."""
        if not self.exposed:
            raise ValueError(f"app '{self.name}' exposes no ports; call expose() before upstream()")
        return Upstream(self.name, self.exposed[0])

    def upstream_port(self, port):
        """Upstream for a specific exposed port."""
        if port not in self.exposed:
            raise ValueError(f"app '{self.name}' does not expose port {port} (exposed: {list(self.exposed)})")
        return Upstream(self.name, port)

    @property
    def image_tag(self):
        return f"{self.name}:latest"

    def build_context(self):
        if self.git_source is not None:
            return f"{self.git_source.url}#{self.git_source.ref}"
        return self.context_dir

    def remote_env_file_name(self, multi=False):
        """Name of the env file on the remote host, or None if the app has none.

        A lone app keeps the bare basename (usually ``.env``). When several
        apps share a host the name is prefixed with the app name so their
        files cannot overwrite each other.
        """
        if self.env_file_path is None:
            return None
        base = os.path.basename(self.env_file_path)
        return f"{self.name}-{base}" if multi else base

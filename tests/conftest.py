"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest
import yaml

from slipway.app import App
from slipway.deploy.base import Deployer
from slipway.dns import DnsProvider
from slipway.errors import CommandFailedError
from slipway.provisioning.base import Provisioner
from slipway.provisioning.shell import format_command
from slipway.provisioning.types import ServerInfo
from slipway.proxy import ProxyConfig

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the slipway CLI as a subprocess."""

    def _run(*args, cwd=None):
        env = dict(os.environ)
        env["PYTHONPATH"] = project_root + os.pathsep + env.get("PYTHONPATH", "")
        result = subprocess.run(
            [sys.executable, "-m", "slipway.slipway", *args],
            capture_output=True,
            text=True,
            cwd=cwd or project_root,
            env=env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


@pytest.fixture
def make_stack_file(tmp_path):
    """Return a factory that writes a temporary slipway.yaml."""

    def _make(config):
        path = tmp_path / "slipway.yaml"
        with open(path, "w") as f:
            yaml.dump(config, f)
        return str(path)

    return _make


# ── Descriptors ─────────────────────────────────────────────────────


@pytest.fixture
def api_app():
    return App("api").expose(8000).healthcheck("curl -f http://localhost:8000/health")


@pytest.fixture
def web_app():
    return App("web").expose(3000)


@pytest.fixture
def routed_proxy(api_app, web_app):
    return ProxyConfig().route("/api/*", api_app.upstream()).route("", web_app.upstream())


# ── Recording fakes ─────────────────────────────────────────────────


class FakeRunner:
    """CommandRunner stand-in that records calls and replays canned output.

    ``outputs`` maps a substring of the formatted command to its stdout (or to
    an exception instance to raise). The first matching key wins.
    """

    def __init__(self, outputs=None, existing=("pv",)):
        self.outputs = outputs or {}
        self.existing = set(existing)
        self.calls = []
        self.quiet = []

    def _answer(self, kind, program, args, data=None):
        command = " ".join([program, *args])
        self.calls.append((kind, command) if data is None else (kind, command, data))
        for key, value in self.outputs.items():
            if key in command:
                if isinstance(value, Exception):
                    raise value
                return value
        return ""

    def run(self, program, args, quiet=False):
        if quiet:
            self.quiet.append(format_command(program, args))
        return self._answer("run", program, args)

    def run_interactive(self, program, args):
        self._answer("interactive", program, args)

    def run_with_input(self, program, args, data):
        return self._answer("input", program, args, data)

    def run_pipeline(self, shell_cmd):
        self._answer("pipeline", "sh", ["-c", shell_cmd])

    def command_exists(self, program):
        return program in self.existing

    def commands(self):
        return [call[1] for call in self.calls]


class FakeSession:
    """SshSession stand-in; ``execute`` answers from ``responses`` in order."""

    def __init__(self, host, user="root", key_file=None, responses=None):
        self.host = host
        self.user = user
        self.key_file = key_file
        self.responses = list(responses or [])
        self.calls = []
        self.quiet = []

    def shell_command(self, remote_cmd):
        return f"ssh {self.user}@{self.host} '{remote_cmd}'"

    def execute(self, command, quiet=False):
        self.calls.append(("execute", command))
        if quiet:
            self.quiet.append(command)
        if not self.responses:
            return ""
        value = self.responses.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def execute_interactive(self, command):
        self.calls.append(("interactive", command))

    def write_remote_file(self, content, remote_path):
        self.calls.append(("write", remote_path, content))

    def copy_local_file_to_remote(self, local_path, remote_path):
        self.calls.append(("copy", local_path, remote_path))

    def wait_until_reachable(self, max_attempts=30, interval=5, sleep=None):
        self.calls.append(("wait", max_attempts, interval))

    def written(self, remote_path):
        for call in self.calls:
            if call[0] == "write" and call[1] == remote_path:
                return call[2]
        raise KeyError(remote_path)


class SessionFactory:
    """Hands out one FakeSession per (host, user) and remembers them."""

    def __init__(self, responses=None):
        self.responses = responses or []
        self.sessions = []

    def __call__(self, host, user="root", key_file=None):
        session = FakeSession(host, user, key_file, responses=self.responses)
        self.sessions.append(session)
        return session

    @property
    def calls(self):
        return [call for session in self.sessions for call in session.calls]


class RecordingProvisioner(Provisioner):
    def __init__(self, journal, existing=None):
        self.journal = journal
        self.servers = dict(existing or {})

    def check_prerequisites(self):
        self.journal.append("check_prerequisites")

    def detect_ssh_key(self):
        self.journal.append("detect_ssh_key")
        return "key-1"

    def create_server(self, name, region, key_ref):
        self.journal.append(("create_server", name, region, key_ref))
        server = ServerInfo(name=name, ip="203.0.113.10", region=region, ssh_key_file="/tmp/id", ssh_key_id=key_ref)
        self.servers[name] = server
        return server

    def setup_server(self, server, domain=None):
        self.journal.append(("setup_server", server.name, domain))

    def get_server(self, name):
        self.journal.append(("get_server", name))
        return self.servers.get(name)

    def destroy_server(self, name):
        self.journal.append(("destroy_server", name))
        self.servers.pop(name, None)


class RecordingDns(DnsProvider):
    def __init__(self, journal, domain="app.example.com"):
        super().__init__(domain)
        self.journal = journal

    def upsert_a_record(self, ip):
        self.journal.append(("upsert_a_record", ip))

    def delete_a_record(self):
        self.journal.append("delete_a_record")

    def upsert_cname_record(self, target):
        self.journal.append(("upsert_cname_record", target))


class RecordingDeployer(Deployer):
    def __init__(self, journal, remote=True, cname=None, fail_on=None):
        self.journal = journal
        self.remote = remote
        self.cname = cname
        self.fail_on = fail_on

    def _record(self, entry):
        self.journal.append(entry)
        if self.fail_on == entry[0]:
            raise CommandFailedError(entry[0], 1)

    def build_image(self, app):
        self._record(("build_image", app.name))

    def transfer_image(self, app, host, user):
        self._record(("transfer_image", app.name, host, user))

    def deploy(self, host, user, apps, proxy, remote_dir):
        self._record(("deploy", host, user, tuple(a.name for a in apps), remote_dir))

    @property
    def is_remote(self):
        return self.remote

    def cname_target(self):
        return self.cname


@pytest.fixture
def journal():
    return []


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def sessions():
    return SessionFactory()

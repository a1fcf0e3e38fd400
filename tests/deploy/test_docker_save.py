"""Unit tests for the docker save/load deployer (no Docker, no SSH)."""

from conftest import FakeRunner, SessionFactory

from slipway.app import App
from slipway.deploy.docker_save import DockerSaveLoad, build_args, planned_actions, restart_command


# ── build ───────────────────────────────────────────────────────────


def test_build_args_local_context():
    app = App("api").dockerfile("docker/Dockerfile.prod").context("./api").build_arg("VERSION", "1.0")
    assert build_args(app) == [
        "build", "--platform", "linux/amd64",
        "-f", "docker/Dockerfile.prod",
        "--build-arg", "VERSION=1.0",
        "-t", "api:latest",
        "./api",
    ]


def test_build_args_git_source_and_platform():
    app = App("api").source("https://github.com/acme/api.git", "release").platform("linux/arm64")
    args = build_args(app)
    assert args[1:3] == ["--platform", "linux/arm64"]
    assert args[-1] == "https://github.com/acme/api.git#release"


def test_build_image_runs_docker_interactively():
    runner = FakeRunner()
    DockerSaveLoad(runner=runner).build_image(App("api"))
    assert runner.calls == [("interactive", "docker build --platform linux/amd64 -f Dockerfile -t api:latest .")]


# ── transfer ────────────────────────────────────────────────────────


def test_transfer_streams_through_pv_when_available():
    runner = FakeRunner(outputs={"image inspect": "52428800"}, existing=("pv",))
    sessions = SessionFactory()
    DockerSaveLoad(runner=runner, session_factory=sessions).transfer_image(App("api"), "1.2.3.4", "deploy")

    kind, command = runner.calls[-1]
    assert kind == "pipeline"
    assert "docker save api:latest | pv -s 52428800 -p -t -e -r -b | gzip | ssh deploy@1.2.3.4" in command
    assert "gunzip | docker load" in command
    assert sessions.sessions[0].host == "1.2.3.4"


def test_transfer_falls_back_to_cat_without_pv():
    runner = FakeRunner(outputs={"image inspect": "100"}, existing=())
    DockerSaveLoad(runner=runner, session_factory=SessionFactory()).transfer_image(App("api"), "h", "root")
    assert "| cat | gzip |" in runner.calls[-1][1]


# ── deploy ──────────────────────────────────────────────────────────


def test_deploy_writes_files_then_restarts(tmp_path, api_app, web_app, routed_proxy):
    env = tmp_path / ".env"
    env.write_text("SECRET=1\n")
    apps = [api_app.env_file(str(env)), web_app]
    sessions = SessionFactory()

    DockerSaveLoad(runner=FakeRunner(), session_factory=sessions).deploy(
        "app.example.com", "root", apps, routed_proxy, "/opt/app"
    )

    calls = sessions.calls
    assert [c[0] for c in calls] == ["write", "write", "copy", "execute", "interactive"]
    assert calls[0][1] == "/opt/app/docker-compose.yml"
    assert calls[1][1] == "/opt/app/Caddyfile"
    assert calls[1][2].startswith("app.example.com {\n")
    assert calls[2] == ("copy", str(env), "/opt/app/api-.env")
    assert calls[3] == ("execute", "chmod 600 /opt/app/api-.env")
    assert calls[4] == ("interactive", restart_command("/opt/app"))


def test_restart_command_tolerates_nothing_running():
    assert restart_command("/opt/app") == (
        "cd /opt/app && docker compose down 2>/dev/null || true && docker compose up -d"
    )


# ── dry-run plan ────────────────────────────────────────────────────


def test_planned_actions_order(api_app):
    steps = planned_actions("h.example.com", "root", [api_app.env_file(".env")], "/opt/app")
    assert steps[0].startswith("docker build")
    assert steps[1].startswith("docker save api:latest | gzip | ssh root@h.example.com")
    assert steps[2] == "write /opt/app/docker-compose.yml"
    assert steps[3] == "write /opt/app/Caddyfile"
    assert steps[4] == "scp .env -> root@h.example.com:/opt/app/.env (chmod 600)"
    assert steps[5].startswith("ssh root@h.example.com: cd /opt/app")


def test_planned_actions_skip_build(api_app):
    steps = DockerSaveLoad(runner=FakeRunner()).plan("h", "root", [api_app], "/opt/app", skip_build=True)
    assert not any(step.startswith("docker build") for step in steps)


def test_deployer_is_remote():
    deployer = DockerSaveLoad(runner=FakeRunner())
    assert deployer.is_remote
    assert deployer.cname_target() is None

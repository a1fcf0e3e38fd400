"""End-to-end CLI tests: run slipway as a subprocess against a temp stack file."""

import yaml

STACK = {
    "apps": [
        {"name": "api", "expose": [8000], "healthcheck": "curl -f http://localhost:8000/health"},
        {"name": "web", "expose": [3000]},
    ],
    "proxy": {"routes": [{"path": "/api/*", "app": "api"}, {"path": "", "app": "web"}]},
    "variants": {"auth": {"proxy": {"basic_auth": {"user": "admin", "hash": "h"}}}},
}


def test_deploy_dry_run(run_cli, make_stack_file):
    rc, stdout, stderr = run_cli("--config", make_stack_file(STACK), "deploy", "app.example.com", "--dry-run")
    assert rc == 0, stderr

    assert "--- docker-compose.yml ---" in stdout
    assert "api-network" in stdout
    assert "app.example.com {" in stdout
    assert "\thandle /api/* {" in stdout
    assert "[dry-run] 1. docker build --platform linux/amd64" in stdout
    assert "docker compose up -d" in stdout


def test_dry_run_compose_section_is_valid_yaml(run_cli, make_stack_file):
    _, stdout, _ = run_cli("--config", make_stack_file(STACK), "deploy", "app.example.com", "--dry-run")
    section = stdout.split("--- docker-compose.yml ---\n", 1)[1].split("--- Caddyfile ---", 1)[0]
    compose = yaml.safe_load(section)
    assert list(compose["services"]) == ["caddy", "api", "web"]


def test_variant_applied(run_cli, make_stack_file):
    rc, stdout, _ = run_cli(
        "--config", make_stack_file(STACK), "--variant", "auth", "deploy", "app.example.com", "--dry-run"
    )
    assert rc == 0
    assert "basic_auth @protected {" in stdout


def test_unknown_variant(run_cli, make_stack_file):
    rc, stdout, _ = run_cli("--config", make_stack_file(STACK), "--variant", "nope", "deploy", "h", "--dry-run")
    assert rc == 1
    assert "Unknown variant 'nope'. Available variants: auth" in stdout


def test_missing_stack_file(run_cli, tmp_path):
    rc, stdout, _ = run_cli("--config", str(tmp_path / "absent.yaml"), "status", "h")
    assert rc == 1
    assert "Stack file not found" in stdout


def test_malformed_stack_file(run_cli, tmp_path):
    path = tmp_path / "slipway.yaml"
    path.write_text("apps: [name: api\n")
    rc, stdout, stderr = run_cli("--config", str(path), "status", "h")
    assert rc == 1
    assert f"Error loading {path}" in stdout
    assert "Traceback" not in stderr


def test_provision_without_provisioner_fails(run_cli, make_stack_file):
    rc, stdout, _ = run_cli("--config", make_stack_file(STACK), "provision", "web-1")
    assert rc == 1
    assert "provisioning failed: no provisioner configured" in stdout


def test_requires_subcommand(run_cli):
    rc, _, stderr = run_cli()
    assert rc == 2
    assert "required" in stderr

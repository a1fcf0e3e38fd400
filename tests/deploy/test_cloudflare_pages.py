"""Unit tests for the Cloudflare Pages deployer."""

from conftest import FakeRunner

from slipway.app import App
from slipway.deploy.cloudflare_pages import CloudflarePages


def test_build_runs_build_command():
    runner = FakeRunner()
    CloudflarePages("site", runner=runner).build_image(App("site").build_cmd("npm ci && npm run build"))
    assert runner.calls == [("interactive", "sh -c npm ci && npm run build")]


def test_build_without_command_is_noop():
    runner = FakeRunner()
    CloudflarePages("site", runner=runner).build_image(App("site"))
    assert runner.calls == []


def test_deploy_publishes_build_dir():
    runner = FakeRunner()
    pages = CloudflarePages("marketing", runner=runner)
    pages.deploy("www.example.com", "root", [App("site").build_dir("out")], None, "/opt/app")
    assert runner.calls == [("interactive", "wrangler pages deploy out --project-name marketing")]


def test_deploy_default_build_dir():
    runner = FakeRunner()
    CloudflarePages("p", runner=runner).deploy("h", "root", [App("site")], None, "/opt/app")
    assert runner.commands() == ["wrangler pages deploy dist --project-name p"]


def test_not_remote_and_cname_target():
    pages = CloudflarePages("marketing", runner=FakeRunner())
    assert not pages.is_remote
    assert pages.cname_target() == "marketing.pages.dev"


def test_plan():
    pages = CloudflarePages("p", runner=FakeRunner())
    steps = pages.plan("h", "root", [App("site").build_cmd("make")], "/opt/app")
    assert steps == ["sh -c 'make'", "wrangler pages deploy dist --project-name p"]

"""Deploy library: Caddyfile and compose rendering, deployers."""

from slipway.deploy.base import Deployer
from slipway.deploy.caddyfile import (
    Caddyfile,
    Directive,
    SiteBlock,
    format_caddyfile,
    generate_caddyfile,
    parse_caddyfile,
    tokenize,
)
from slipway.deploy.compose import (
    ComposeManifest,
    ComposeService,
    compose_manifest,
    generate_compose,
    parse_compose,
)
from slipway.deploy.cloudflare_pages import CloudflarePages
from slipway.deploy.docker_save import DockerSaveLoad

__all__ = [
    "Deployer",
    "Caddyfile",
    "Directive",
    "SiteBlock",
    "format_caddyfile",
    "generate_caddyfile",
    "parse_caddyfile",
    "tokenize",
    "ComposeManifest",
    "ComposeService",
    "compose_manifest",
    "generate_compose",
    "parse_compose",
    "CloudflarePages",
    "DockerSaveLoad",
]

"""slipway: declarative deployment pipelines for containerized apps behind Caddy."""

from slipway.app import App, GitSource, Upstream
from slipway.proxy import ProxyConfig
from slipway.pipeline import Phase, Pipeline

__all__ = [
    "App",
    "GitSource",
    "Upstream",
    "ProxyConfig",
    "Phase",
    "Pipeline",
]

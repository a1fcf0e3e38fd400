"""Reverse proxy (Caddy) descriptor."""

from dataclasses import dataclass, replace

from slipway.app import Upstream


def _as_upstream(value):
    if isinstance(value, Upstream):
        return value
    return Upstream.parse(value)


@dataclass(frozen=True)
class ProxyConfig:
    """How the Caddy sidecar fronts the apps.

    ``basic_auth`` and ``reverse_proxy`` are single-valued; routes, raw
    directives and volumes accumulate in call order. Routes take precedence
    over the default upstream when both are set; a route with an empty path
    is the catch-all.
    """

    auth: tuple[str, str] | None = None
    default_upstream: Upstream | None = None
    routes: tuple[tuple[str, Upstream], ...] = ()
    compress: bool = False
    add_security_headers: bool = False
    extra_directives: tuple[str, ...] = ()
    volumes: tuple[tuple[str, str], ...] = ()

    def basic_auth(self, user, password_hash):
        """Gate the site behind HTTP basic auth. ``password_hash`` is a bcrypt hash from ``caddy hash-password``."""
        return replace(self, auth=(user, password_hash))

    def reverse_proxy(self, upstream):
        return replace(self, default_upstream=_as_upstream(upstream))

    def route(self, path, upstream):
        return replace(self, routes=self.routes + ((path, _as_upstream(upstream)),))

    def gzip(self, enabled=True):
        return replace(self, compress=enabled)

    def security_headers(self, enabled=True):
        return replace(self, add_security_headers=enabled)

    def directive(self, line):
        return replace(self, extra_directives=self.extra_directives + (line,))

    def volume(self, source, target):
        return replace(self, volumes=self.volumes + ((source, target),))

    def has_upstreams(self):
        return self.default_upstream is not None or bool(self.routes)

    def upstream_hosts(self):
        """Service names the proxy forwards to, in first-reference order."""
        candidates = [up for _, up in self.routes] if self.routes else [self.default_upstream]
        hosts = []
        for up in candidates:
            if up is not None and up.host not in hosts:
                hosts.append(up.host)
        return hosts

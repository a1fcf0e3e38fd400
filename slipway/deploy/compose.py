"""Docker Compose manifest generation and parsing."""

from dataclasses import dataclass, field

import yaml

PROXY_SERVICE = "caddy"
CADDY_IMAGE = "caddy:2-alpine"
CADDYFILE_MOUNT = "./Caddyfile:/etc/caddy/Caddyfile:ro"
CADDY_STATE_VOLUMES = (("caddy-data", "/data"), ("caddy-config", "/config"))

HEALTHCHECK_INTERVAL = "30s"
HEALTHCHECK_TIMEOUT = "10s"
HEALTHCHECK_RETRIES = 3
HEALTHCHECK_START_PERIOD = "10s"


def network_name(apps):
    """Name of the single bridge network every service joins."""
    return f"{apps[0].name}-network"


def is_bind_mount(source):
    return source.startswith("./") or source.startswith("/")


@dataclass
class ComposeService:
    name: str
    image: str
    container_name: str
    restart: str = "always"
    ports: list[str] = field(default_factory=list)
    expose: list[str] = field(default_factory=list)
    environment: list[str] = field(default_factory=list)
    env_file: str | None = None
    volumes: list[str] = field(default_factory=list)
    healthcheck: dict | None = None
    depends_on: dict[str, str] = field(default_factory=dict)
    networks: list[str] = field(default_factory=list)

    def to_dict(self):
        d = {"image": self.image, "container_name": self.container_name, "restart": self.restart}
        if self.ports:
            d["ports"] = list(self.ports)
        if self.expose:
            d["expose"] = list(self.expose)
        if self.environment:
            d["environment"] = list(self.environment)
        if self.env_file:
            d["env_file"] = self.env_file
        if self.volumes:
            d["volumes"] = list(self.volumes)
        if self.healthcheck:
            d["healthcheck"] = dict(self.healthcheck)
        if self.depends_on:
            d["depends_on"] = {svc: {"condition": cond} for svc, cond in self.depends_on.items()}
        if self.networks:
            d["networks"] = list(self.networks)
        return d

    @classmethod
    def from_dict(cls, name, d):
        depends = d.get("depends_on") or {}
        if isinstance(depends, list):
            depends = {svc: "service_started" for svc in depends}
        else:
            depends = {svc: (spec or {}).get("condition", "service_started") for svc, spec in depends.items()}
        env_file = d.get("env_file")
        if isinstance(env_file, list):
            env_file = env_file[0] if env_file else None
        return cls(
            name=name,
            image=d.get("image", ""),
            container_name=d.get("container_name", name),
            restart=d.get("restart", "no"),
            ports=[str(p) for p in d.get("ports", [])],
            expose=[str(p) for p in d.get("expose", [])],
            environment=list(d.get("environment", [])),
            env_file=env_file,
            volumes=list(d.get("volumes", [])),
            healthcheck=d.get("healthcheck"),
            depends_on=depends,
            networks=list(d.get("networks", [])),
        )


@dataclass
class ComposeManifest:
    services: list[ComposeService] = field(default_factory=list)
    volumes: dict[str, str] = field(default_factory=dict)  # name -> driver
    networks: dict[str, str] = field(default_factory=dict)  # name -> driver

    def service(self, name):
        for svc in self.services:
            if svc.name == name:
                return svc
        raise KeyError(name)

    @property
    def service_names(self):
        return [svc.name for svc in self.services]

    def to_dict(self):
        d = {"services": {svc.name: svc.to_dict() for svc in self.services}}
        if self.volumes:
            d["volumes"] = {name: {"driver": driver} for name, driver in self.volumes.items()}
        if self.networks:
            d["networks"] = {name: {"driver": driver} for name, driver in self.networks.items()}
        return d

    @classmethod
    def from_dict(cls, d):
        d = d or {}
        return cls(
            services=[ComposeService.from_dict(name, spec or {}) for name, spec in (d.get("services") or {}).items()],
            volumes={name: (spec or {}).get("driver", "local") for name, spec in (d.get("volumes") or {}).items()},
            networks={name: (spec or {}).get("driver", "bridge") for name, spec in (d.get("networks") or {}).items()},
        )


def _healthcheck(command):
    return {
        "test": ["CMD", "sh", "-c", command],
        "interval": HEALTHCHECK_INTERVAL,
        "timeout": HEALTHCHECK_TIMEOUT,
        "retries": HEALTHCHECK_RETRIES,
        "start_period": HEALTHCHECK_START_PERIOD,
    }


def _proxy_service(apps, proxy, network):
    volumes = [CADDYFILE_MOUNT] + [f"{name}:{mount}" for name, mount in CADDY_STATE_VOLUMES]
    volumes += [f"{source}:{target}" for source, target in proxy.volumes]
    return ComposeService(
        name=PROXY_SERVICE,
        image=CADDY_IMAGE,
        container_name=f"{apps[0].name}-caddy",
        ports=["80:80", "443:443"],
        volumes=volumes,
        # service_healthy never resolves for a container without a healthcheck
        depends_on={app.name: "service_healthy" if app.healthcheck_cmd else "service_started" for app in apps},
        networks=[network],
    )


def _app_service(app, network, multi):
    return ComposeService(
        name=app.name,
        image=app.image_tag,
        container_name=app.name,
        ports=[f"{host}:{container}" for host, container in app.published],
        expose=[str(p) for p in app.exposed],
        environment=[f"{key}={value}" for key, value in app.env],
        env_file=app.remote_env_file_name(multi),
        volumes=[f"{name}:{mount}" for name, mount in app.volumes],
        healthcheck=_healthcheck(app.healthcheck_cmd) if app.healthcheck_cmd else None,
        networks=[network],
    )


def compose_manifest(apps, proxy):
    """Build the compose model for ``apps`` fronted by ``proxy``.

    The Caddy service, its ports, state volumes and dependency edges are only
    present when the proxy has somewhere to forward to.
    """
    if not apps:
        raise ValueError("at least one app is required")
    network = network_name(apps)
    multi = len(apps) > 1
    manifest = ComposeManifest(networks={network: "bridge"})

    with_proxy = proxy is not None and proxy.has_upstreams()
    if with_proxy:
        manifest.services.append(_proxy_service(apps, proxy, network))

    for app in apps:
        manifest.services.append(_app_service(app, network, multi))
        for name, _ in app.volumes:
            if not is_bind_mount(name):
                manifest.volumes.setdefault(name, "local")

    if with_proxy:
        for name, _ in CADDY_STATE_VOLUMES:
            manifest.volumes.setdefault(name, "local")
        for source, _ in proxy.volumes:
            if not is_bind_mount(source):
                manifest.volumes.setdefault(source, "local")

    return manifest


def dump_manifest(manifest):
    return yaml.safe_dump(manifest.to_dict(), sort_keys=False, default_flow_style=False)


def generate_compose(apps, proxy):
    """Render docker-compose.yml text for ``apps`` fronted by ``proxy``."""
    return dump_manifest(compose_manifest(apps, proxy))


def parse_compose(text):
    """Parse docker-compose.yml text back into a ComposeManifest."""
    return ComposeManifest.from_dict(yaml.safe_load(text))


def placeholder_compose(project):
    """Caddy-only manifest started by server setup, before any app is deployed."""
    network = f"{project}-network"
    caddy = ComposeService(
        name=PROXY_SERVICE,
        image=CADDY_IMAGE,
        container_name=f"{project}-caddy",
        ports=["80:80", "443:443"],
        volumes=[CADDYFILE_MOUNT] + [f"{name}:{mount}" for name, mount in CADDY_STATE_VOLUMES],
        networks=[network],
    )
    manifest = ComposeManifest(
        services=[caddy],
        volumes={name: "local" for name, _ in CADDY_STATE_VOLUMES},
        networks={network: "bridge"},
    )
    return dump_manifest(manifest)

"""Stack file loading: YAML -> App/ProxyConfig descriptors and backends.

A stack file describes the same things the Python builders do::

    apps:
      - name: api
        expose: [8000]
        healthcheck: curl -f http://localhost:8000/health
    proxy:
      routes:
        - {path: "/api/*", app: api}
    provisioner: {type: digitalocean}
    dns: {type: cloudflare, domain: app.example.com}
    deployer: {type: docker-save}
    variants:
      staging: {dns: {domain: staging.example.com}}

Proxy references name apps (optionally with ``port:``) and resolve through
App.upstream()/upstream_port(), so a bad reference fails at load time.
"""

import os
from dataclasses import dataclass

import yaml

from slipway.app import App, Upstream
from slipway.deploy.cloudflare_pages import CloudflarePages
from slipway.deploy.docker_save import DockerSaveLoad
from slipway.dns.cloudflare import Cloudflare
from slipway.dns.ovh import Ovh
from slipway.pipeline import DEFAULT_SSH_USER, Pipeline
from slipway.provisioning.base import REMOTE_DIR
from slipway.provisioning.digitalocean import DigitalOcean
from slipway.provisioning.libvirt import Libvirt, NetworkMode
from slipway.proxy import ProxyConfig

CONFIG_ENV = "SLIPWAY_CONFIG"
DEFAULT_CONFIG = "slipway.yaml"

_APP_KEYS = {
    "name", "dockerfile", "context", "source", "platform", "build_args", "env", "env_file",
    "volumes", "expose", "ports", "healthcheck", "build_cmd", "build_dir",
}
_PROXY_KEYS = {"basic_auth", "reverse_proxy", "routes", "gzip", "security_headers", "directives", "volumes"}
_TOP_KEYS = {"apps", "proxy", "provisioner", "dns", "deployer", "settings", "variants"}
_SETTINGS_KEYS = {"remote_dir", "ssh_user"}


def deep_merge(base, override):
    """Recursive dict merge. Override wins for scalars and lists."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def default_config_path():
    return os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG


def _check_keys(d, allowed, where):
    if not isinstance(d, dict):
        raise ValueError(f"{where}: expected a mapping, got {type(d).__name__}")
    unknown = sorted(set(d) - set(allowed))
    if unknown:
        raise ValueError(f"{where}: unknown keys {', '.join(unknown)}")


def _require_keys(d, required, where):
    missing = [key for key in required if key not in d]
    if missing:
        raise ValueError(f"{where}: missing required keys {', '.join(missing)}")


def _pairs(value, where):
    """Accept ``{k: v}`` or ``[[k, v], ...]``/``["k=v", ...]`` and return ordered pairs."""
    if value is None:
        return []
    if isinstance(value, dict):
        return [(str(k), v) for k, v in value.items()]
    pairs = []
    for item in value:
        if isinstance(item, str) and "=" in item:
            key, _, val = item.partition("=")
            pairs.append((key, val))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            pairs.append((str(item[0]), item[1]))
        else:
            raise ValueError(f"{where}: cannot read {item!r} as a key/value pair")
    return pairs


def _port_mapping(value, where):
    if isinstance(value, str):
        host, sep, container = value.partition(":")
        if not sep or not host.isdigit() or not container.isdigit():
            raise ValueError(f"{where}: invalid port mapping {value!r}, expected HOST:CONTAINER")
        return int(host), int(container)
    if isinstance(value, int):
        return value, value
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return int(value[0]), int(value[1])
    raise ValueError(f"{where}: invalid port mapping {value!r}")


def app_from_dict(d):
    _check_keys(d, _APP_KEYS, "app")
    if "name" not in d:
        raise ValueError("app: 'name' is required")
    where = f"app '{d['name']}'"
    app = App(str(d["name"]))
    if "dockerfile" in d:
        app = app.dockerfile(d["dockerfile"])
    if "context" in d:
        app = app.context(d["context"])
    if "source" in d:
        source = d["source"]
        if isinstance(source, str):
            app = app.source(source)
        else:
            _check_keys(source, {"url", "ref"}, f"{where} source")
            _require_keys(source, ("url",), f"{where} source")
            app = app.source(source["url"], source.get("ref", "main"))
    if "platform" in d:
        app = app.platform(d["platform"])
    for key, value in _pairs(d.get("build_args"), f"{where} build_args"):
        app = app.build_arg(key, value)
    for key, value in _pairs(d.get("env"), f"{where} env"):
        app = app.with_env(key, value)
    if d.get("env_file"):
        app = app.env_file(d["env_file"])
    for name, mount in _pairs(d.get("volumes"), f"{where} volumes"):
        app = app.volume(name, mount)
    for port in d.get("expose") or []:
        app = app.expose(int(port))
    for mapping in d.get("ports") or []:
        app = app.port(*_port_mapping(mapping, where))
    if d.get("healthcheck"):
        app = app.healthcheck(d["healthcheck"])
    if d.get("build_cmd"):
        app = app.build_cmd(d["build_cmd"])
    if d.get("build_dir"):
        app = app.build_dir(d["build_dir"])
    return app


def _resolve_upstream(ref, apps, where):
    """``"host:port"`` or ``{app: name, port: n}`` -> Upstream."""
    if isinstance(ref, str):
        if ":" in ref:
            return Upstream.parse(ref)
        ref = {"app": ref}
    _check_keys(ref, {"app", "port"}, where)
    name = ref.get("app")
    if name not in apps:
        raise ValueError(f"{where}: unknown app '{name}' (defined: {', '.join(apps) or 'none'})")
    app = apps[name]
    return app.upstream_port(int(ref["port"])) if "port" in ref else app.upstream()


def proxy_from_dict(d, apps):
    """Build a ProxyConfig; ``apps`` maps app name -> App for reference resolution."""
    d = d or {}
    _check_keys(d, _PROXY_KEYS, "proxy")
    proxy = ProxyConfig()
    if d.get("basic_auth"):
        auth = d["basic_auth"]
        _check_keys(auth, {"user", "hash"}, "proxy basic_auth")
        _require_keys(auth, ("user", "hash"), "proxy basic_auth")
        proxy = proxy.basic_auth(auth["user"], auth["hash"])
    if d.get("reverse_proxy"):
        proxy = proxy.reverse_proxy(_resolve_upstream(d["reverse_proxy"], apps, "proxy reverse_proxy"))
    for i, route in enumerate(d.get("routes") or []):
        where = f"proxy route #{i + 1}"
        _check_keys(route, {"path", "app", "port", "upstream"}, where)
        ref = route["upstream"] if "upstream" in route else {k: route[k] for k in ("app", "port") if k in route}
        proxy = proxy.route(route.get("path") or "", _resolve_upstream(ref, apps, where))
    if d.get("gzip"):
        proxy = proxy.gzip()
    if d.get("security_headers"):
        proxy = proxy.security_headers()
    for line in d.get("directives") or []:
        proxy = proxy.directive(str(line))
    for source, target in _pairs(d.get("volumes"), "proxy volumes"):
        proxy = proxy.volume(source, target)
    return proxy


def _options(d, where, allowed):
    opts = dict(d)
    opts.pop("type", None)
    _check_keys(opts, allowed, where)
    return opts


def provisioner_from_dict(d, remote_dir):
    if not d:
        return None
    kind = d.get("type")
    if kind == "digitalocean":
        opts = _options(d, "provisioner", {"size", "region", "image"})
        return DigitalOcean(remote_dir=remote_dir, **opts)
    if kind == "libvirt":
        opts = _options(
            d,
            "provisioner",
            {
                "hypervisor_host", "vm_ssh_key", "hypervisor_user", "hypervisor_key", "vcpus", "memory_mib",
                "disk_gib", "image_url", "bridge", "storage_dir", "os_variant",
            },
        )
        for required in ("hypervisor_host", "vm_ssh_key"):
            if required not in opts:
                raise ValueError(f"provisioner: libvirt needs '{required}'")
        bridge = opts.pop("bridge", None)
        network = NetworkMode.bridged(bridge) if bridge else NetworkMode.nat()
        opts["vm_ssh_key"] = os.path.expanduser(opts["vm_ssh_key"])
        return Libvirt(network=network, remote_dir=remote_dir, **opts)
    raise ValueError(f"provisioner: unknown type {kind!r} (available: digitalocean, libvirt)")


def dns_from_dict(d):
    if not d:
        return None
    kind = d.get("type")
    opts = _options(d, "dns", {"domain"})
    if "domain" not in opts:
        raise ValueError("dns: 'domain' is required")
    if kind == "cloudflare":
        return Cloudflare(opts["domain"])
    if kind == "ovh":
        return Ovh(opts["domain"])
    raise ValueError(f"dns: unknown type {kind!r} (available: cloudflare, ovh)")


def deployer_from_dict(d):
    d = d or {"type": "docker-save"}
    kind = d.get("type")
    if kind == "docker-save":
        _options(d, "deployer", set())
        return DockerSaveLoad()
    if kind == "cloudflare-pages":
        opts = _options(d, "deployer", {"project"})
        if "project" not in opts:
            raise ValueError("deployer: cloudflare-pages needs 'project'")
        return CloudflarePages(opts["project"])
    raise ValueError(f"deployer: unknown type {kind!r} (available: docker-save, cloudflare-pages)")


@dataclass
class Stack:
    apps: list[App]
    proxy: ProxyConfig
    provisioner: object = None
    dns: object = None
    deployer: object = None
    remote_dir: str = REMOTE_DIR
    ssh_user: str = DEFAULT_SSH_USER

    def pipeline(self, **kwargs):
        """A Pipeline wired with this stack's descriptors and backends."""
        pipeline = Pipeline(self.apps, self.proxy, **kwargs).remote_dir(self.remote_dir).ssh_user(self.ssh_user)
        if self.provisioner is not None:
            pipeline.provision(self.provisioner)
        if self.dns is not None:
            pipeline.dns(self.dns)
        if self.deployer is not None:
            pipeline.deploy(self.deployer)
        return pipeline


def stack_from_dict(config):
    _check_keys(config, _TOP_KEYS, "stack")
    app_list = [app_from_dict(d) for d in config.get("apps") or []]
    if not app_list:
        raise ValueError("stack: at least one app is required")
    apps = {app.name: app for app in app_list}
    if len(apps) != len(app_list):
        raise ValueError("stack: app names must be unique")

    settings = config.get("settings") or {}
    _check_keys(settings, _SETTINGS_KEYS, "settings")
    remote_dir = settings.get("remote_dir", REMOTE_DIR)

    return Stack(
        apps=app_list,
        proxy=proxy_from_dict(config.get("proxy"), apps),
        provisioner=provisioner_from_dict(config.get("provisioner"), remote_dir),
        dns=dns_from_dict(config.get("dns")),
        deployer=deployer_from_dict(config.get("deployer")),
        remote_dir=remote_dir,
        ssh_user=settings.get("ssh_user", DEFAULT_SSH_USER),
    )


def load_stack(path=None, variant=None):
    """Load a stack file, optionally deep-merging one of its variants.

    Returns a Stack.
    """
    path = path or default_config_path()
    if not os.path.isfile(path):
        raise FileNotFoundError(f"Stack file not found: {path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"{path}: expected a mapping at the top level, got {type(config).__name__}")

    variants = config.pop("variants", {}) or {}

    if variant is not None:
        if variant not in variants:
            available = ", ".join(sorted(variants.keys())) if variants else "none"
            raise ValueError(f"Unknown variant '{variant}'. Available variants: {available}")
        config = deep_merge(config, variants[variant])

    return stack_from_dict(config)

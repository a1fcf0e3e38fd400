"""DNS providers: keep an A (or CNAME) record pointed at the deployment."""

from abc import ABC, abstractmethod

from slipway.errors import UnsupportedOperationError


def split_domain(fqdn):
    """Split an FQDN into (zone, subdomain).

    ``app.example.com`` -> ``("example.com", "app")``. A bare zone yields an
    empty subdomain. The zone is always the last two labels.
    """
    parts = fqdn.split(".")
    if len(parts) <= 2:
        return fqdn, ""
    return ".".join(parts[-2:]), ".".join(parts[:-2])


class DnsProvider(ABC):
    """Record lifecycle for one fully-qualified domain name."""

    def __init__(self, domain):
        self._domain = domain

    @property
    def domain(self):
        return self._domain

    @abstractmethod
    def upsert_a_record(self, ip):
        """Create or update the A record so ``domain`` resolves to ``ip``."""

    @abstractmethod
    def delete_a_record(self):
        ...

    def upsert_cname_record(self, target):
        raise UnsupportedOperationError(f"{type(self).__name__} does not manage CNAME records")

    def delete_cname_record(self):
        raise UnsupportedOperationError(f"{type(self).__name__} does not manage CNAME records")

"""OVH DNS provider using the signed OVH REST API.

Credentials come from ``~/.ovh.conf`` as written by ``ovhcloud login``::

    [default]
    endpoint = ovh-eu

    [ovh-eu]
    application_key = ...
    application_secret = ...
    consumer_key = ...
"""

import configparser
import hashlib
import json
import logging
import os
from dataclasses import dataclass

import httpx

from slipway.dns import DnsProvider, split_domain
from slipway.errors import DeployError, DnsError, MissingFileError
from slipway.redact import register_secret

logger = logging.getLogger(__name__)

RECORD_TTL = 300

_API_BASES = {
    "ovh-eu": "https://eu.api.ovh.com/1.0",
    "ovh-us": "https://api.us.ovhcloud.com/1.0",
    "ovh-ca": "https://ca.api.ovh.com/1.0",
}


@dataclass(frozen=True)
class OvhCredentials:
    endpoint: str
    application_key: str
    application_secret: str
    consumer_key: str


def default_conf_path():
    return os.path.join(os.path.expanduser("~"), ".ovh.conf")


def parse_ovh_conf(content):
    """Parse ``.ovh.conf`` text into OvhCredentials."""
    parser = configparser.ConfigParser(interpolation=None)
    parser.read_string(content)

    def value(section, key):
        if not parser.has_option(section, key):
            raise DeployError(f"missing {key} in ~/.ovh.conf")
        return parser.get(section, key).strip()

    endpoint = value("default", "endpoint")
    return OvhCredentials(
        endpoint=endpoint,
        application_key=value(endpoint, "application_key"),
        application_secret=value(endpoint, "application_secret"),
        consumer_key=value(endpoint, "consumer_key"),
    )


def read_ovh_credentials(path=None):
    path = path or default_conf_path()
    if not os.path.exists(path):
        raise MissingFileError(f"{path} (run: ovhcloud login)")
    with open(path) as f:
        return parse_ovh_conf(f.read())


def api_base(credentials):
    """API base URL for the credentials' endpoint name."""
    endpoint = credentials.endpoint
    return _API_BASES.get(endpoint, f"https://{endpoint}.api.ovh.com/1.0")


def sign_request(credentials, method, url, body, timestamp):
    """OVH request signature: ``$1$`` + SHA1 of AS+CK+METHOD+URL+BODY+TS."""
    data = "+".join(
        [credentials.application_secret, credentials.consumer_key, method, url, body, str(timestamp)]
    )
    return "$1$" + hashlib.sha1(data.encode()).hexdigest()


class Ovh(DnsProvider):
    """A records in an OVH-hosted zone."""

    def __init__(self, domain, credentials=None, conf_path=None, transport=None, timeout=30):
        super().__init__(domain)
        self._credentials = credentials
        self.conf_path = conf_path
        self.transport = transport
        self.timeout = timeout

    @property
    def credentials(self):
        if self._credentials is None:
            self._credentials = read_ovh_credentials(self.conf_path)
            register_secret(self._credentials.application_secret)
            register_secret(self._credentials.consumer_key)
        return self._credentials

    # ── API helpers ───────────────────────────────────────────────

    def _request(self, client, method, path, params=None, payload=None):
        creds = self.credentials
        base = api_base(creds)
        url = str(httpx.URL(f"{base}{path}", params=params))
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        try:
            time_resp = client.get(f"{base}/auth/time")
            time_resp.raise_for_status()
            timestamp = time_resp.text.strip()
            headers = {
                "X-Ovh-Application": creds.application_key,
                "X-Ovh-Consumer": creds.consumer_key,
                "X-Ovh-Timestamp": timestamp,
                "X-Ovh-Signature": sign_request(creds, method, url, body, timestamp),
                "Content-Type": "application/json",
            }
            resp = client.request(method, url, content=body or None, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DnsError(f"OVH {method} {path}: {e}") from e
        return resp.json() if resp.content else None

    def _record_ids(self, client, zone, subdomain):
        params = {"fieldType": "A", "subDomain": subdomain}
        return self._request(client, "GET", f"/domain/zone/{zone}/record", params=params) or []

    def _refresh(self, client, zone):
        logger.info("  Refreshing DNS zone...")
        self._request(client, "POST", f"/domain/zone/{zone}/refresh")

    # ── DnsProvider ───────────────────────────────────────────────

    def upsert_a_record(self, ip):
        zone, subdomain = split_domain(self.domain)
        logger.info(f"OVH DNS: {self.domain} -> {ip}")
        logger.info(f"  Zone: {zone}")
        logger.info(f"  SubDomain: {subdomain or '@'}")
        with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
            ids = self._record_ids(client, zone, subdomain)
            if ids:
                logger.info(f"  Updating existing A record (id: {ids[0]})...")
                self._request(
                    client, "PUT", f"/domain/zone/{zone}/record/{ids[0]}", payload={"target": ip, "ttl": RECORD_TTL}
                )
            else:
                logger.info("  Creating new A record...")
                payload = {"fieldType": "A", "subDomain": subdomain, "target": ip, "ttl": RECORD_TTL}
                self._request(client, "POST", f"/domain/zone/{zone}/record", payload=payload)
            self._refresh(client, zone)
        logger.info(f"DNS record set: {self.domain} -> {ip}")

    def delete_a_record(self):
        zone, subdomain = split_domain(self.domain)
        with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
            for record_id in self._record_ids(client, zone, subdomain):
                logger.info(f"  Deleting A record (id: {record_id})...")
                self._request(client, "DELETE", f"/domain/zone/{zone}/record/{record_id}")
            self._refresh(client, zone)
        logger.info(f"DNS record deleted: {self.domain}")

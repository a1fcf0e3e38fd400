"""Cloudflare DNS provider using the Cloudflare v4 REST API."""

import logging
import os

import httpx

from slipway.dns import DnsProvider, split_domain
from slipway.errors import DnsError, EnvMissingError

logger = logging.getLogger(__name__)

CF_API = "https://api.cloudflare.com/client/v4"
TOKEN_ENV = "CF_API_TOKEN"
RECORD_TTL = 300


class Cloudflare(DnsProvider):
    """A and CNAME records in a Cloudflare zone.

    Needs ``CF_API_TOKEN`` with Zone > DNS > Edit permission
    (https://dash.cloudflare.com/profile/api-tokens).
    """

    def __init__(self, domain, api_url=CF_API, transport=None, timeout=30):
        super().__init__(domain)
        self.api_url = api_url
        self.transport = transport
        self.timeout = timeout

    # ── API helpers ───────────────────────────────────────────────

    def _token(self):
        token = os.environ.get(TOKEN_ENV)
        if not token:
            raise EnvMissingError(TOKEN_ENV)
        return token

    def _client(self):
        return httpx.Client(
            base_url=self.api_url,
            headers={"Authorization": f"Bearer {self._token()}", "Content-Type": "application/json"},
            transport=self.transport,
            timeout=self.timeout,
        )

    def _request(self, client, method, path, params=None, body=None):
        try:
            resp = client.request(method, path, params=params, json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise DnsError(f"Cloudflare {method} {path}: {e}") from e
        if not payload.get("success", True):
            messages = ", ".join(err.get("message", "") for err in payload.get("errors", []))
            raise DnsError(f"Cloudflare {method} {path}: {messages or 'request failed'}")
        return payload.get("result")

    def _zone_id(self, client):
        zone, _ = split_domain(self.domain)
        zones = self._request(client, "GET", "/zones", params={"name": zone}) or []
        if not zones:
            raise DnsError(f"zone '{zone}' not found")
        return zones[0]["id"]

    def _find_record(self, client, zone_id, record_type):
        records = self._request(
            client, "GET", f"/zones/{zone_id}/dns_records", params={"type": record_type, "name": self.domain}
        )
        return records[0]["id"] if records else None

    def _upsert(self, record_type, content):
        zone, subdomain = split_domain(self.domain)
        logger.info(f"Cloudflare DNS: {self.domain} -> {content} ({record_type})")
        logger.info(f"  Zone: {zone}")
        logger.info(f"  Record: {subdomain or '@'}")
        body = {"type": record_type, "name": self.domain, "content": content, "ttl": RECORD_TTL, "proxied": False}
        with self._client() as client:
            zone_id = self._zone_id(client)
            record_id = self._find_record(client, zone_id, record_type)
            if record_id:
                logger.info(f"  Updating existing {record_type} record...")
                self._request(client, "PUT", f"/zones/{zone_id}/dns_records/{record_id}", body=body)
            else:
                logger.info(f"  Creating new {record_type} record...")
                self._request(client, "POST", f"/zones/{zone_id}/dns_records", body=body)
        logger.info(f"DNS record set: {self.domain} -> {content}")

    def _delete(self, record_type):
        with self._client() as client:
            zone_id = self._zone_id(client)
            record_id = self._find_record(client, zone_id, record_type)
            if record_id is None:
                logger.info(f"No {record_type} record found for {self.domain}")
                return
            logger.info(f"  Deleting {record_type} record...")
            self._request(client, "DELETE", f"/zones/{zone_id}/dns_records/{record_id}")
        logger.info(f"DNS record deleted: {self.domain}")

    # ── DnsProvider ───────────────────────────────────────────────

    def upsert_a_record(self, ip):
        self._upsert("A", ip)

    def delete_a_record(self):
        self._delete("A")

    def upsert_cname_record(self, target):
        self._upsert("CNAME", target)

    def delete_cname_record(self):
        self._delete("CNAME")

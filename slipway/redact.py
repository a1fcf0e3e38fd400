"""Centralized secret redaction for log output."""

import logging
import os
import re

# Env vars whose values should be redacted from all output
_SECRET_ENV_VARS = [
    "CF_API_TOKEN",
    "CLOUDFLARE_API_TOKEN",
    "DIGITALOCEAN_ACCESS_TOKEN",
]

_MIN_SECRET_LENGTH = 8  # skip short values to avoid false positives

# Values read from credential files at runtime
_registered: set[str] = set()


def _collect_secret_values() -> set[str]:
    values = set()
    for var in _SECRET_ENV_VARS:
        val = os.environ.get(var, "")
        if len(val) >= _MIN_SECRET_LENGTH:
            values.add(val)
    values.update(_registered)
    return values


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Longer values first so a secret containing another one is fully masked
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


_patterns: list[re.Pattern] | None = None


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_collect_secret_values())
    return _patterns


def register_secret(value: str) -> None:
    """Redact ``value`` from all further output (ignored if too short)."""
    global _patterns
    if len(value) >= _MIN_SECRET_LENGTH and value not in _registered:
        _registered.add(value)
        _patterns = None


def _apply(text: str, patterns: list[re.Pattern]) -> str:
    for p in patterns:
        text = p.sub("***", text)
    return text


def redact_secrets(text: str) -> str:
    """Replace known secret values with '***'."""
    return _apply(text, _get_patterns())


class SecretRedactingFilter(logging.Filter):
    """Logging filter that masks secret values in log records.

    Handles both pre-formatted f-string messages and %-style msg + args.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if not patterns:
            return True
        record.msg = _apply(str(record.msg), patterns)
        if isinstance(record.args, dict):
            record.args = {k: _apply(v, patterns) if isinstance(v, str) else v for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_apply(a, patterns) if isinstance(a, str) else a for a in record.args)
        return True

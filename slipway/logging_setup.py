"""CLI logging setup: plain %(message)s output with secret redaction."""

import logging
import sys

from slipway.redact import SecretRedactingFilter


def setup_cli_logging(verbose=False):
    """Configure the root logger for the slipway CLI.

    Output reads like print(): one line per message on stdout, no prefixes.
    Secrets from the environment are masked before any handler sees them.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)

#!/usr/bin/env python3
"""slipway CLI entrypoint: run a pipeline described by a YAML stack file."""

import logging
import sys

import yaml

from slipway.commands import build_parser
from slipway.config import default_config_path, load_stack
from slipway.logging_setup import setup_cli_logging

logger = logging.getLogger(__name__)


def main(argv=None):
    parser = build_parser(prog="slipway", description="Declarative deployment pipeline")
    parser.add_argument("--config", default=None, help="Stack file (default: $SLIPWAY_CONFIG or slipway.yaml)")
    parser.add_argument("--variant", default=None, help="Variant from the stack file's 'variants' section")

    args = parser.parse_args(argv)
    setup_cli_logging(args.verbose)

    config_path = args.config or default_config_path()
    try:
        stack = load_stack(config_path, variant=args.variant)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        logger.error(f"Error loading {config_path}: {e}")
        sys.exit(1)

    stack.pipeline().dispatch(args)


if __name__ == "__main__":
    main()

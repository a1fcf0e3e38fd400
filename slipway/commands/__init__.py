"""CLI subcommands shared by Pipeline.run() and the slipway console script."""

import argparse

from slipway.commands.deploy import register_deploy_command
from slipway.commands.destroy import register_destroy_command
from slipway.commands.provision import register_provision_command
from slipway.commands.status import register_status_command


def build_parser(prog=None, description="Deployment automation"):
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument("-v", "--verbose", action="store_true", help="Show every external command")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_provision_command(subparsers)
    register_deploy_command(subparsers)
    register_status_command(subparsers)
    register_destroy_command(subparsers)
    return parser

"""Provision command: create a server, point DNS at it, prepare it for deploys."""


def handle_provision(pipeline, args):
    pipeline.run_provision(args.name, domain=args.domain, region=args.region)


def register_provision_command(subparsers):
    parser = subparsers.add_parser("provision", help="Provision a new server")
    parser.add_argument("name", help="Server name")
    parser.add_argument("--domain", default=None, help="Domain to point at the server")
    parser.add_argument("--region", default=None, help="Cloud region (default: fra1)")
    parser.set_defaults(func=handle_provision)

"""Destroy command: delete a server and its DNS record after confirmation."""


def handle_destroy(pipeline, args):
    pipeline.run_destroy(args.name, domain=args.domain)


def register_destroy_command(subparsers):
    parser = subparsers.add_parser("destroy", help="Destroy a server (asks for confirmation)")
    parser.add_argument("name", help="Server name")
    parser.add_argument("--domain", default=None, help="Domain record to remove")
    parser.set_defaults(func=handle_destroy)

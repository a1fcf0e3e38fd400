"""Status command: docker compose ps on the remote host."""


def handle_status(pipeline, args):
    pipeline.run_status(args.host)


def register_status_command(subparsers):
    parser = subparsers.add_parser("status", help="Show container status on a remote server")
    parser.add_argument("host", help="Hostname or IP address")
    parser.set_defaults(func=handle_status)

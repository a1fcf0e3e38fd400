"""Deploy command: build, ship and start the stack on a host."""


def handle_deploy(pipeline, args):
    pipeline.run_deploy(args.host, skip_build=args.skip_build, dry_run=args.dry_run)


def register_deploy_command(subparsers):
    parser = subparsers.add_parser("deploy", help="Deploy to a server")
    parser.add_argument("host", help="Hostname or IP address")
    parser.add_argument("--skip-build", action="store_true", help="Skip the Docker image build")
    parser.add_argument(
        "--dry-run", action="store_true", help="Print the generated files and planned actions without executing"
    )
    parser.set_defaults(func=handle_deploy)

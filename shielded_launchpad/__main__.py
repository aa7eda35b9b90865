"""Command line entry point for launchpad operations"""
import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from shielded_launchpad.config import settings
from shielded_launchpad.db import db
from shielded_launchpad.errors import LaunchpadError
from shielded_launchpad.launchpad import LaunchpadOrchestrator
from shielded_launchpad.models.launchpad import ProjectStatus
from shielded_launchpad.services.signer import JsonRpcSigner
from shielded_launchpad.services.storage import SqlProjectStore
from shielded_launchpad.utils.json_encoder import LaunchpadEncoder

logger = logging.getLogger(__name__)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='shielded_launchpad', description="Shielded token launchpad")
    parser.add_argument("--database-url", help="SQLAlchemy URL, overrides DATABASE_* settings")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        default=settings.LOG_LEVEL)
    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help="Create launchpad tables")
    commands.add_parser('list-projects', help="List projects, latest start first")

    create = commands.add_parser('create-project', help="Create a project from a JSON file")
    create.add_argument('file', help="JSON file with the project fields")

    get = commands.add_parser('get-project', help="Show one project")
    get.add_argument('project_id')

    for name, help_text in (('activate', "Open a project for contributions"),
                            ('cancel', "Cancel a project")):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument('project_id')

    contribute = commands.add_parser('contribute', help="Shield and record a contribution")
    contribute.add_argument('project_id')
    contribute.add_argument('amount')
    contribute.add_argument('token', choices=['USDT', 'USDC'])
    contribute.add_argument('--from', dest='address', help="Node-managed account to send from")
    contribute.add_argument('--destination', help="Shielded address receiving the tokens")
    contribute.add_argument('--timeout', type=float, help="Seconds allowed before the transfer is submitted")

    distribute = commands.add_parser('distribute', help="Distribute tokens to all pending contributors")
    distribute.add_argument('project_id')
    distribute.add_argument('--from', dest='address', help="Node-managed admin account")
    distribute.add_argument('--timeout', type=float, help="Seconds allowed before the transaction is submitted")

    unlock = commands.add_parser('unlock', help="Clear the distribution marker of an interrupted distribution")
    unlock.add_argument('project_id')
    unlock.add_argument('--yes', action='store_true', help="Confirm no distribution of the project is running")

    status = commands.add_parser('status', help="Contribution status of an address")
    status.add_argument('project_id')
    status.add_argument('address')

    return parser

def execute(args: argparse.Namespace, launchpad: LaunchpadOrchestrator) -> Any:
    """Run one parsed command and return its JSON-serializable result"""
    if args.command == 'init-db':
        return {'initialized': True}
    if args.command == 'list-projects':
        return {'projects': launchpad.list_projects()}
    if args.command == 'create-project':
        with open(args.file, 'r') as f:
            fields = json.load(f)
        return {'project': launchpad.create_project(fields)}
    if args.command == 'get-project':
        return {'project': launchpad.get_project(args.project_id)}
    if args.command == 'activate':
        return {'project': launchpad.set_project_status(args.project_id, ProjectStatus.ACTIVE)}
    if args.command == 'cancel':
        return {'project': launchpad.set_project_status(args.project_id, ProjectStatus.CANCELLED)}
    if args.command == 'contribute':
        signer = JsonRpcSigner(settings.rpc_settings, address=args.address)
        return launchpad.contribute(
            args.project_id, args.amount, args.token, signer,
            destination_address=args.destination, timeout=args.timeout
        )
    if args.command == 'distribute':
        signer = JsonRpcSigner(settings.rpc_settings, address=args.address)
        return launchpad.distribute(args.project_id, signer, timeout=args.timeout)
    if args.command == 'unlock':
        return {'released': launchpad.release_distribution_lock(args.project_id, confirm=args.yes)}
    if args.command == 'status':
        return {'status': launchpad.get_contribution_status(args.project_id, args.address)}
    raise ValueError(f"Unknown command: {args.command}")

def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the command and print its result as JSON."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format='%(message)s')

    try:
        db.init(args.database_url)
        launchpad = LaunchpadOrchestrator(settings, SqlProjectStore(db))
        result = execute(args, launchpad)
        print(json.dumps(result, cls=LaunchpadEncoder, indent=2))
        return 0
    except LaunchpadError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        db.dispose()

if __name__ == "__main__":
    sys.exit(run())

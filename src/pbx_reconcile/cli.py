"""Command-line interface for reconciliation, sync and backups.

Usage examples::

    pbx-reconcile status
    pbx-reconcile sync record-to-live 1001
    pbx-reconcile sync auto --json
    pbx-reconcile backup --force
    pbx-reconcile list /etc/asterisk/pjsip.conf
    pbx-reconcile restore pjsip.conf.backup.20260101_120000
    pbx-reconcile cleanup --keep 3

Exit status is 0 on success, 1 when any item failed or the engine did
not apply a reload, and 2 on configuration errors.
"""

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from . import __version__
from .config_loader import load_runtime_config
from .errors import ReconcileError
from .logger import setup_logging
from .sync.reporter import (
    backups_to_json,
    format_backup_status,
    format_backups,
    format_operation_report,
    format_sync_status,
    report_to_json,
    status_to_json,
)
from .sync.service import ReconcileService

logger = logging.getLogger(__name__)

_ENGINE_COMMANDS = {"status", "sync", "remove"}

_SYNC_DIRECTIONS = ("record-to-live", "live-to-record", "auto")


def _emit(args: argparse.Namespace, text: str, data) -> None:
    if args.json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def _emit_report(args: argparse.Namespace, report) -> int:
    _emit(args, format_operation_report(report), report_to_json(report))
    return 0 if report.success else 1


def _cmd_status(service: ReconcileService, args: argparse.Namespace) -> int:
    result = service.get_sync_status()
    _emit(
        args,
        format_sync_status(result, show_matched=args.all),
        status_to_json(result),
    )
    return 0


def _cmd_sync(service: ReconcileService, args: argparse.Namespace) -> int:
    if args.direction == "record-to-live":
        report = service.sync_record_to_live(args.identifier)
    elif args.direction == "live-to-record":
        report = service.sync_live_to_record(args.identifier)
    else:
        if args.identifier:
            raise ValueError("sync auto does not take an extension")
        report = service.sync_auto()
    return _emit_report(args, report)


def _cmd_remove(service: ReconcileService, args: argparse.Namespace) -> int:
    return _emit_report(args, service.remove_from_live(args.identifiers))


def _cmd_backup(service: ReconcileService, args: argparse.Namespace) -> int:
    return _emit_report(args, service.backup_now(args.path, force=args.force))


def _cmd_list(service: ReconcileService, args: argparse.Namespace) -> int:
    entries = service.list_backups(args.path)
    _emit(args, format_backups(entries), backups_to_json(entries))
    return 0


def _cmd_latest(service: ReconcileService, args: argparse.Namespace) -> int:
    entry = service.latest_backup(args.path)
    if entry is None:
        _emit(args, f"No backups of {args.path}.", None)
        return 0
    _emit(args, format_backups([entry]), entry.model_dump(mode="json"))
    return 0


def _cmd_restore(service: ReconcileService, args: argparse.Namespace) -> int:
    return _emit_report(args, service.restore_backup(args.backup_id, args.target))


def _cmd_cleanup(service: ReconcileService, args: argparse.Namespace) -> int:
    return _emit_report(args, service.cleanup_backups(args.path, keep=args.keep))


def _cmd_backup_status(service: ReconcileService, args: argparse.Namespace) -> int:
    statuses = service.backup_status()
    _emit(
        args,
        format_backup_status(statuses),
        [s.model_dump(mode="json") for s in statuses],
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pbx-reconcile",
        description="Reconcile PBX extension records with a live Asterisk engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s status --all
  %(prog)s sync record-to-live 1001
  %(prog)s sync auto
  %(prog)s backup
  %(prog)s restore pjsip.conf.backup.20260101_120000
  %(prog)s cleanup --keep 3
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--url", help="Override ARI URL")
    parser.add_argument("--username", help="Override ARI username")
    parser.add_argument("--password", help="Override ARI password")
    parser.add_argument("--insecure", action="store_true", help="Skip SSL verification")
    parser.add_argument("--database-url", help="SQLAlchemy URL of the extension database")
    parser.add_argument("--pjsip-config", help="Path of the PJSIP endpoint config file")
    parser.add_argument("--backup-dir", help="Directory for configuration backups")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", default=None, help="Also log to this file")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("status", help="Show drift between records and the engine")
    p.add_argument("--all", action="store_true", help="List in-sync extensions too")
    p.set_defaults(func=_cmd_status)

    p = sub.add_parser("sync", help="Sync records and the engine")
    p.add_argument("direction", choices=_SYNC_DIRECTIONS)
    p.add_argument("identifier", nargs="?", help="Extension number (default: all)")
    p.set_defaults(func=_cmd_sync)

    p = sub.add_parser("remove", help="Remove extensions from the engine config")
    p.add_argument("identifiers", nargs="+", metavar="ID")
    p.set_defaults(func=_cmd_remove)

    p = sub.add_parser("backup", help="Back up managed config files")
    p.add_argument("path", nargs="?", help="File to back up (default: all managed files)")
    p.add_argument("--force", action="store_true", help="Copy even if unchanged")
    p.set_defaults(func=_cmd_backup)

    p = sub.add_parser("list", help="List backups of a file, newest first")
    p.add_argument("path", nargs="?", help="Config file (default: PJSIP config)")
    p.set_defaults(func=_cmd_list)

    p = sub.add_parser("latest", help="Show the newest backup of a file")
    p.add_argument("path")
    p.set_defaults(func=_cmd_latest)

    p = sub.add_parser("restore", help="Restore a backup over its file")
    p.add_argument("backup_id")
    p.add_argument("target", nargs="?", help="File to restore (default: PJSIP config)")
    p.set_defaults(func=_cmd_restore)

    p = sub.add_parser("cleanup", help="Delete old backups")
    p.add_argument("path", nargs="?", help="Config file (default: all managed files)")
    p.add_argument("--keep", type=int, default=None, help="Backups to keep per file")
    p.set_defaults(func=_cmd_cleanup)

    p = sub.add_parser("backup-status", help="Backup summary for managed files")
    p.set_defaults(func=_cmd_backup_status)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(mode="cli", debug=args.verbose, log_file=args.log_file)
    load_dotenv()

    overrides = {
        "url": args.url,
        "username": args.username,
        "password": args.password,
        "insecure": args.insecure,
        "debug": args.verbose,
        "database_url": args.database_url,
        "pjsip_config": args.pjsip_config,
        "backup_dir": args.backup_dir,
    }
    try:
        config, _ = load_runtime_config(
            overrides, require_engine=args.command in _ENGINE_COMMANDS
        )
        service = ReconcileService.from_config(config)
        return args.func(service, args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ReconcileError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error ({e.error_type}): {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

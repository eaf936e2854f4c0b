from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable

from hotel_offline.bootstrap.container import build_data_service
from hotel_offline.bootstrap.data_service import DataService
from hotel_offline.bootstrap.logging import configure_logging
from hotel_offline.bootstrap.settings import resolve_log_dir
from hotel_offline.core.errors import AppError
from hotel_offline.domain.models import SyncStatus

EXIT_OK = 0
EXIT_UNHEALTHY = 1
EXIT_ERROR = 2

logger = logging.getLogger("hotel_offline.cli")

ServiceFactory = Callable[[], DataService]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotel-offline", description="Local encrypted hotel data store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create or open the local store and apply migrations")
    subparsers.add_parser("stats", help="Print table, sync and conflict counters")
    subparsers.add_parser("health", help="Run the health checks")
    subparsers.add_parser("migrations", help="List migrations and whether they are applied")

    outbox = subparsers.add_parser("outbox", help="List sync outbox entries")
    outbox.add_argument(
        "--status",
        choices=[status.value for status in SyncStatus],
        default=SyncStatus.PENDING.value,
        help="Entries with this status (default: pending)",
    )
    outbox.add_argument("--limit", type=int, default=None, help="Maximum pending entries to list")

    retry = subparsers.add_parser("retry-failed", help="Move failed outbox entries back to pending")
    retry.add_argument("--max-retries", type=int, default=None, help="Skip entries retried this many times")

    reset = subparsers.add_parser("reset", help="Delete all local data and restore the defaults")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")
    return parser


def _outbox_entries(service: DataService, status: str, limit: int | None) -> list[dict[str, Any]]:
    if status == SyncStatus.PENDING.value:
        entries = service.outbox.list_pending(limit)
    else:
        entries = service.outbox.list_by_status(SyncStatus(status))
    return [entry.to_document() for entry in entries]


def _run_command(service: DataService, args: argparse.Namespace) -> tuple[int, Any]:
    if args.command == "health":
        report = service.check_health()
        code = EXIT_UNHEALTHY if report.status == "unhealthy" else EXIT_OK
        return code, report.to_dict()

    service.initialize()
    if args.command == "init":
        return EXIT_OK, service.get_database_info()
    if args.command == "stats":
        return EXIT_OK, service.get_statistics()
    if args.command == "migrations":
        return EXIT_OK, service.migration_status()
    if args.command == "outbox":
        return EXIT_OK, _outbox_entries(service, args.status, args.limit)
    if args.command == "retry-failed":
        return EXIT_OK, {"requeued": service.outbox.retry_failed(args.max_retries)}
    if args.command == "reset":
        if not args.yes:
            return EXIT_UNHEALTHY, {"error": "Reset deletes every local record; pass --yes to confirm."}
        return EXIT_OK, {"seeded": service.reset()}
    raise AssertionError(f"Unhandled command {args.command!r}")


def main(argv: list[str] | None = None, service_factory: ServiceFactory = build_data_service) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(resolve_log_dir())

    service = service_factory()
    try:
        if args.command == "health":
            # health reports on an opened store when it can be opened at all
            try:
                service.initialize()
            except AppError:
                logger.warning("Store could not be opened before health check", exc_info=True)
        code, output = _run_command(service, args)
    except AppError as exc:
        logger.exception("Command %s failed", args.command)
        code, output = EXIT_ERROR, {"error": str(exc), "error_type": type(exc).__name__}
    finally:
        service.close()

    sys.stdout.write(json.dumps(output, ensure_ascii=False, default=str) + "\n")
    logger.info("Command finished", extra={"extra": {"command": args.command, "exit_code": code}})
    return code


if __name__ == "__main__":
    raise SystemExit(main())

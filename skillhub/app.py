import argparse
import json
import sys

from . import __version__
from .access import AuthenticationError, AuthorizationError, resolve_caller
from .blobs import HttpBlobStore, LocalBlobStore
from .database import init_database
from .env import Settings, load_env
from .logger import get_logger
from .maintenance import MaintenanceService
from .pipelines.backfill import BackfillIncompleteError
from .storage import SkillStore

logger = get_logger()


def build_service(settings: Settings) -> MaintenanceService:
    store = SkillStore(settings.db_path)
    if settings.blob_url:
        blobs = HttpBlobStore(settings.blob_url)
    else:
        blobs = LocalBlobStore(settings.blob_dir)
    return MaintenanceService(store, blobs)


def _run_backfill(args: argparse.Namespace, job: str) -> None:
    settings = Settings.from_env()
    if not settings.db_path.exists():
        raise SystemExit(f"Database not found: {settings.db_path}")

    service = build_service(settings)
    try:
        with service.store.read() as session:
            caller = resolve_caller(session, args.user)

        if args.schedule:
            if job == "summaries":
                outcome = service.schedule_backfill_skill_summaries(caller, dry_run=args.dry_run)
            else:
                outcome = service.schedule_backfill_skill_fingerprints(caller, dry_run=args.dry_run)
            print(json.dumps(outcome))
            service.scheduler.wait()
            return

        params = {
            "dry_run": args.dry_run,
            "batch_size": args.batch_size,
            "max_batches": args.max_batches,
        }
        if job == "summaries":
            outcome = service.backfill_skill_summaries(caller, **params)
        else:
            outcome = service.backfill_skill_fingerprints(caller, **params)
        print(json.dumps(outcome, indent=2))
    except (AuthenticationError, AuthorizationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)
    except BackfillIncompleteError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(1)
    finally:
        logger.log_metrics_summary()
        service.store.dispose()


def cmd_backfill_summaries(args: argparse.Namespace) -> None:
    _run_backfill(args, "summaries")


def cmd_backfill_fingerprints(args: argparse.Namespace) -> None:
    _run_backfill(args, "fingerprints")


def cmd_init_db(args: argparse.Namespace) -> None:
    settings = Settings.from_env()
    init_database(settings.db_path)
    print(f"Initialized {settings.db_path}")


def _add_backfill_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user", required=True, help="Handle of the admin running the backfill")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without writing")
    parser.add_argument("--batch-size", type=float, help="Records per page (1-200, default 50)")
    parser.add_argument("--max-batches", type=float, help="Page budget (1-200, default 20)")
    parser.add_argument("--schedule", action="store_true",
                        help="Run in the background with default batch settings")


def main():
    # Load .env if present (SKILLHUB_DB_PATH, SKILLHUB_BLOB_DIR, etc.)
    load_env()
    settings = Settings.from_env()
    logger.configure(level=settings.log_level, log_dir=settings.log_dir)

    parser = argparse.ArgumentParser(prog="skillhub", description="Skills registry maintenance jobs")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    init = subparsers.add_parser("init-db", help="Create the registry tables")
    init.set_defaults(func=cmd_init_db)

    summ = subparsers.add_parser("backfill-summaries", help="Recompute skill summaries and parsed SKILL.md metadata")
    _add_backfill_args(summ)
    summ.set_defaults(func=cmd_backfill_summaries)

    fing = subparsers.add_parser("backfill-fingerprints", help="Recompute and reconcile version fingerprints")
    _add_backfill_args(fing)
    fing.set_defaults(func=cmd_backfill_fingerprints)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()

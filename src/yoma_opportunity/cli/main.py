"""Main CLI entry point."""

import argparse
import json
import logging
import sys
from pathlib import Path
from uuid import UUID

from yoma_opportunity.errors import AuthorizationError, EntityNotFoundError, RequestValidationError

logger = logging.getLogger(__name__)

EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_UNAUTHORIZED = 4


def main() -> None:
    """Parse args and dispatch to subcommands."""
    parser = argparse.ArgumentParser(prog="yoma-opportunity", description="Yoma opportunity services")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to settings YAML (default: built-in defaults)",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to SQLite database (overrides database_path in settings)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides log_level in settings)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # init-db
    subparsers.add_parser("init-db", help="Create the schema and seed enumerated lookups")

    # seed
    seed_parser = subparsers.add_parser("seed", help="Load reference data (lookups, users, organizations)")
    seed_parser.add_argument("path", type=Path, help="Path to seed YAML")

    # jobs
    jobs_parser = subparsers.add_parser("jobs", help="Run a scheduled batch job once")
    jobs_parser.add_argument(
        "job",
        choices=["expiration", "expiration-notification", "deletion"],
        help="Job to run",
    )

    # search
    search_parser = subparsers.add_parser("search", help="Search opportunities")
    search_parser.add_argument(
        "--filter",
        type=Path,
        default=None,
        help="Path to filter JSON (admin filter fields)",
    )
    search_parser.add_argument(
        "--public",
        action="store_true",
        help="Anonymous search (published opportunities only)",
    )
    search_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write results to file (default: stdout)",
    )

    # get
    get_parser = subparsers.add_parser("get", help="Show one opportunity")
    get_parser.add_argument("id", type=UUID, help="Opportunity id")

    # status
    status_parser = subparsers.add_parser("status", help="Change an opportunity's status as the system user")
    status_parser.add_argument("id", type=UUID, help="Opportunity id")
    status_parser.add_argument(
        "status",
        choices=["Active", "Inactive", "Deleted"],
        help="Target status",
    )

    args = parser.parse_args()
    settings = _load_settings(args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "init-db":
            _run_init_db(settings)
        elif args.command == "seed":
            _run_seed(settings, args)
        elif args.command == "jobs":
            _run_jobs(settings, args)
        elif args.command == "search":
            _run_search(settings, args)
        elif args.command == "get":
            _run_get(settings, args)
        elif args.command == "status":
            _run_status(settings, args)
        else:
            parser.print_help()
    except RequestValidationError as e:
        print(f"Validation failed: {e}", file=sys.stderr)
        raise SystemExit(EXIT_VALIDATION)
    except EntityNotFoundError as e:
        print(f"Not found: {e}", file=sys.stderr)
        raise SystemExit(EXIT_NOT_FOUND)
    except AuthorizationError as e:
        print(f"Unauthorized: {e}", file=sys.stderr)
        raise SystemExit(EXIT_UNAUTHORIZED)


def _load_settings(args: argparse.Namespace):
    from yoma_opportunity.config import AppSettings

    settings = AppSettings.from_yaml(args.config) if args.config else AppSettings()
    update = {}
    if args.db is not None:
        update["database_path"] = str(args.db)
    if args.log_level is not None:
        update["log_level"] = args.log_level
    return settings.model_copy(update=update) if update else settings


def _run_init_db(settings) -> None:
    """Run init-db command."""
    from yoma_opportunity.app import build_services

    services = build_services(settings)
    print(f"Initialized database at {services.db.path}")


def _run_seed(settings, args: argparse.Namespace) -> None:
    """Run seed command."""
    from yoma_opportunity.app import build_services, seed_reference_data

    services = build_services(settings)
    counts = seed_reference_data(services, args.path)
    print(", ".join(f"{section}: {n}" for section, n in counts.items()))


def _run_jobs(settings, args: argparse.Namespace) -> None:
    """Run jobs command."""
    from yoma_opportunity.app import build_services

    background = build_services(settings).background
    if args.job == "expiration":
        count = background.process_expiration()
        print(f"Expired {count} opportunities")
    elif args.job == "expiration-notification":
        count = background.process_expiration_notifications()
        print(f"Notified admins of {count} opportunities expiring soon")
    elif args.job == "deletion":
        count = background.process_deletion()
        print(f"Deleted {count} opportunities")


def _run_search(settings, args: argparse.Namespace) -> None:
    """Run search command. Without --filter, lists the first page ordered by newest start date."""
    from yoma_opportunity.app import build_services
    from yoma_opportunity.context import RequestContext
    from yoma_opportunity.models.search import OpportunitySearchFilter, OpportunitySearchFilterAdmin
    from yoma_opportunity.services.info import DEFAULT_ORDER_INSTRUCTIONS

    data = json.loads(args.filter.read_text()) if args.filter else {"page_number": 1, "page_size": 20}
    info = build_services(settings).info
    if args.public:
        results = info.search_public(OpportunitySearchFilter.model_validate(data))
    else:
        flt = OpportunitySearchFilterAdmin.model_validate(data)
        if not flt.order_instructions and not flt.total_count_only:
            flt.order_instructions = list(DEFAULT_ORDER_INSTRUCTIONS)
        results = info.search(flt, RequestContext.system())

    output = json.dumps(results.model_dump(mode="json"), indent=2, default=str)
    if args.output:
        args.output.write_text(output, encoding="utf-8")
        print(f"Wrote {len(results.items)} opportunities to {args.output}")
    else:
        print(output)


def _run_get(settings, args: argparse.Namespace) -> None:
    """Run get command."""
    from yoma_opportunity.app import build_services

    info = build_services(settings).info.get_by_id(args.id)
    print(json.dumps(info.model_dump(mode="json"), indent=2, default=str))


def _run_status(settings, args: argparse.Namespace) -> None:
    """Run status command."""
    from yoma_opportunity.app import build_services
    from yoma_opportunity.context import RequestContext
    from yoma_opportunity.models.lookup import Status

    opp = build_services(settings).opportunities.update_status(
        args.id, Status(args.status), RequestContext.system()
    )
    logger.info("Opportunity %s is now %s", opp.id, opp.status.value)
    print(f"{opp.title}: {opp.status.value}")


if __name__ == "__main__":
    main()

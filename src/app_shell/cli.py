import argparse
import logging
import os
import sys
from datetime import date, timedelta

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.auth_utils import create_admin_token
from src.app_shell.config import resolve_db_path, resolve_rules_path
from src.app_shell.context import ServiceContext
from src.components.analytics import AggregationError
from src.components.tokens import SECRET_ENV_VAR, ConfigurationError
from src.rules.loader import load_rules

logger = logging.getLogger("cli")


def get_context() -> ServiceContext:
    rules_path = resolve_rules_path()
    if not rules_path.exists():
        logger.error("Rules file %s not found.", rules_path)
        sys.exit(1)

    rules = load_rules(rules_path)
    db_path = resolve_db_path()
    SQLiteMigrator(db_path).run_migrations()
    return ServiceContext.create(db_path, rules, os.environ.get(SECRET_ENV_VAR) or None)


def parse_date_arg(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def handle_migrate(args: argparse.Namespace) -> None:
    applied = SQLiteMigrator(resolve_db_path()).run_migrations()
    print(f"Applied {len(applied)} migrations.")


def handle_snapshot(ctx: ServiceContext, args: argparse.Namespace) -> None:
    # Default run is for the previous (complete) UTC day
    target = args.date or (ctx.clock.now_utc().date() - timedelta(days=1))
    try:
        result = ctx.aggregation_engine.generate_daily_snapshot(target)
    except AggregationError as e:
        logger.error("%s", e)
        sys.exit(1)

    print(
        f"Snapshot {result.snapshot_date.isoformat()}: "
        f"{result.events_read} events, {result.rows_written} rows, {result.articles} articles."
    )


def handle_issue_token(ctx: ServiceContext, args: argparse.Namespace) -> None:
    payload: dict[str, str] = {"nwl": args.newsletter_id}
    if args.article:
        payload["art"] = args.article

    try:
        token = ctx.token_service.generate(args.subject_id, payload)
    except ConfigurationError as e:
        logger.error("%s", e)
        sys.exit(1)

    if not args.no_store:
        ctx.token_service.store(token, args.subject_id)
    print(token)


def handle_revoke_subject(ctx: ServiceContext, args: argparse.Namespace) -> None:
    count = ctx.token_service.revoke_all_for_subject(args.subject_id)
    print(f"Revoked {count} tokens.")


def handle_admin_token(args: argparse.Namespace) -> None:
    try:
        token = create_admin_token(args.name, expires_delta=timedelta(hours=args.hours))
    except RuntimeError as e:
        logger.error("%s", e)
        sys.exit(1)
    print(token)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Newsletter tracking CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # snapshot
    snapshot_parser = subparsers.add_parser("snapshot", help="Build daily analytics snapshots")
    snapshot_parser.add_argument(
        "--date", type=parse_date_arg, help="UTC date (YYYY-MM-DD); defaults to yesterday"
    )

    # issue-token
    issue_parser = subparsers.add_parser("issue-token", help="Mint a tracking token")
    issue_parser.add_argument("subject_id", help="Recipient identifier")
    issue_parser.add_argument("newsletter_id", help="Newsletter identifier")
    issue_parser.add_argument("--article", help="Article identifier for click links")
    issue_parser.add_argument(
        "--no-store", action="store_true", help="Do not record the token for revocation"
    )

    # revoke-subject
    revoke_parser = subparsers.add_parser(
        "revoke-subject", help="Revoke every stored token of a recipient"
    )
    revoke_parser.add_argument("subject_id", help="Recipient identifier")

    # admin-token
    admin_parser = subparsers.add_parser("admin-token", help="Mint an admin API bearer token")
    admin_parser.add_argument("--name", default="cli", help="Token subject")
    admin_parser.add_argument("--hours", type=int, default=24, help="Token lifetime in hours")

    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    if args.command == "migrate":
        handle_migrate(args)
        return
    if args.command == "admin-token":
        handle_admin_token(args)
        return

    ctx = get_context()

    if args.command == "snapshot":
        handle_snapshot(ctx, args)
    elif args.command == "issue-token":
        handle_issue_token(ctx, args)
    elif args.command == "revoke-subject":
        handle_revoke_subject(ctx, args)


if __name__ == "__main__":
    main()

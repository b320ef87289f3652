"""Maintenance CLI.

Out-of-band account setup and cleanup; none of these run on a request
path.

    admingate init-db
    admingate create-admin alice
    admingate list-admins
    admingate deactivate-admin alice
    admingate cleanup-sessions
    admingate purge-logs --days 90
    admingate purge-rate-limits
"""

import argparse
import asyncio
import getpass
import sys
from collections.abc import Awaitable, Callable
from datetime import timedelta

from admingate.app.config import get_settings
from admingate.app.logging import setup_logging
from admingate.core.domain import AuditAction
from admingate.core.errors import AdminGateError
from admingate.infra.database import close_db, get_session_factory, init_db
from admingate.infra.redis import close_redis, init_redis
from admingate.services.account_service import AccountService
from admingate.services.audit_service import get_audit_logger
from admingate.services.rate_limiter import get_rate_limiter
from admingate.services.session_service import SessionService

CLI_IP = "system"
CLI_USER_AGENT = "admingate-cli"


async def init_schema() -> None:
    """Create missing tables."""
    await init_db(create_tables=True)
    print("Database schema ready")


async def create_admin(username: str, password: str) -> None:
    async with get_session_factory()() as db:
        account = await AccountService.create_account(db, username, password)
    await get_audit_logger().record(
        AuditAction.ADMIN_USER_CREATED,
        {"username": account.username, "via": "cli"},
        CLI_IP,
        CLI_USER_AGENT,
    )
    print(f"Admin '{account.username}' created ({account.id})")


async def list_admins() -> None:
    async with get_session_factory()() as db:
        accounts = await AccountService.list_accounts(db)

    if not accounts:
        print("No admin users found")
        return

    print(f"{'Username':<20} {'Active':<8} {'Created At':<20} {'Last Login':<20}")
    print("-" * 70)
    for account in accounts:
        created = account.created_at.strftime("%Y-%m-%d %H:%M:%S") if account.created_at else "N/A"
        last = account.last_login.strftime("%Y-%m-%d %H:%M:%S") if account.last_login else "never"
        active = "yes" if account.is_active else "no"
        print(f"{account.username:<20} {active:<8} {created:<20} {last:<20}")


async def deactivate_admin(username: str) -> None:
    async with get_session_factory()() as db:
        account = await AccountService.get_by_username(db, username)
        if account is None:
            print(f"Error: Admin '{username}' not found")
            sys.exit(1)
        account = await AccountService.deactivate(db, account.id)
    await get_audit_logger().record(
        AuditAction.ADMIN_USER_DEACTIVATED,
        {"userId": account.id, "username": account.username, "via": "cli"},
        CLI_IP,
        CLI_USER_AGENT,
    )
    print(f"Admin '{username}' deactivated")


async def cleanup_sessions() -> None:
    async with get_session_factory()() as db:
        removed = await SessionService.cleanup(db)
    await get_audit_logger().record(
        AuditAction.SESSION_CLEANUP,
        {"sessions_removed": removed, "via": "cli"},
        CLI_IP,
        CLI_USER_AGENT,
    )
    print(f"Removed {removed} expired or revoked sessions")


async def purge_logs(days: int) -> None:
    removed = await get_audit_logger().purge_older_than(days)
    print(f"Deleted {removed} audit entries older than {days} days")


async def purge_rate_limits(hours: int | None) -> None:
    older_than = timedelta(hours=hours) if hours is not None else None
    removed = await get_rate_limiter().purge_stale(older_than)
    print(f"Deleted {removed} stale rate limit entries")


async def _run(command: Callable[[], Awaitable[None]], *, schema: bool = False) -> None:
    if not schema:
        await init_db()
    if get_settings().security.rate_limit_backend == "redis":
        await init_redis()
    try:
        await command()
    except AdminGateError as exc:
        print(f"Error: {exc.message}")
        sys.exit(1)
    finally:
        await close_redis()
        await close_db()


def get_password_interactive(confirm: bool = True) -> str:
    """Get password interactively with optional confirmation."""
    password = getpass.getpass("Password: ")
    if not password:
        print("Error: Password cannot be empty")
        sys.exit(1)

    if confirm:
        password_confirm = getpass.getpass("Confirm password: ")
        if password != password_confirm:
            print("Error: Passwords do not match")
            sys.exit(1)

    return password


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="admin-gate maintenance",
        prog="admingate",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create missing database tables")

    create_parser = subparsers.add_parser("create-admin", help="Create an admin user")
    create_parser.add_argument("username", help="Username to create")
    create_parser.add_argument(
        "--password", "-p",
        help="Password (will prompt if not provided)",
    )

    subparsers.add_parser("list-admins", help="List admin users")

    deactivate_parser = subparsers.add_parser(
        "deactivate-admin", help="Deactivate an admin user and revoke its sessions"
    )
    deactivate_parser.add_argument("username", help="Username to deactivate")
    deactivate_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip confirmation",
    )

    subparsers.add_parser("cleanup-sessions", help="Delete expired and revoked sessions")

    logs_parser = subparsers.add_parser("purge-logs", help="Delete old audit entries")
    logs_parser.add_argument(
        "--days", "-d",
        type=int,
        default=90,
        help="Retention in days (default: 90)",
    )

    rate_parser = subparsers.add_parser(
        "purge-rate-limits", help="Delete stale, unlocked rate limit entries"
    )
    rate_parser.add_argument(
        "--hours",
        type=int,
        default=None,
        help="Retention in hours (default: SECURITY_RATE_LIMIT_RETENTION)",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.command == "init-db":
        asyncio.run(_run(init_schema, schema=True))

    elif args.command == "create-admin":
        password = args.password or get_password_interactive()
        asyncio.run(_run(lambda: create_admin(args.username, password)))

    elif args.command == "list-admins":
        asyncio.run(_run(list_admins))

    elif args.command == "deactivate-admin":
        if not args.force:
            confirm = input(f"Deactivate admin '{args.username}'? [y/N]: ")
            if confirm.lower() != "y":
                print("Cancelled")
                sys.exit(0)
        asyncio.run(_run(lambda: deactivate_admin(args.username)))

    elif args.command == "cleanup-sessions":
        asyncio.run(_run(cleanup_sessions))

    elif args.command == "purge-logs":
        if args.days < 1:
            print("Error: --days must be at least 1")
            sys.exit(1)
        asyncio.run(_run(lambda: purge_logs(args.days)))

    elif args.command == "purge-rate-limits":
        asyncio.run(_run(lambda: purge_rate_limits(args.hours)))


if __name__ == "__main__":
    main()

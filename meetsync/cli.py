#!/usr/bin/env python3
"""
meetsync Command Line Interface

Main entry point for the `meetsync` command. Results print as JSON.

Usage:
    meetsync init-db                       # Create the database
    meetsync serve --port 8080             # Start the API server
    meetsync register --email a@acme.com --name Ana
    meetsync slots --user-id <id> --emails b@acme.com --start 2026-11-02T09:00:00+00:00 \\
        --end 2026-11-02T18:00:00+00:00 --duration 60
    meetsync suggest --user-id <id>
    meetsync grant --user-id <id> --type domain --value acme.com
    meetsync revoke --user-id <id> --permission-id <pid>
    meetsync --version
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime

from dotenv import load_dotenv


def _print(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _parse_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO datetime: {value!r}") from e


def cmd_init_db(args):
    """Create tables and indexes."""
    import meetsync

    meetsync.get_connection().close()
    _print({"success": True, "database": str(meetsync.DB_PATH)})


def cmd_serve(args):
    """Start the API server."""
    import uvicorn

    print(f"Starting meetsync API at http://{args.host}:{args.port}")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "meetsync.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


def cmd_register(args):
    from meetsync.users import register_user

    user = register_user(args.email, args.name, timezone=args.timezone)
    _print({"success": True, "user": user.to_dict()})


def cmd_slots(args):
    """Run the find-times flow for a requester."""
    from meetsync.availability.finder import find_meeting_times

    result = asyncio.run(
        find_meeting_times(args.user_id, args.emails, args.start, args.end, args.duration)
    )
    _print(result.to_dict())


def cmd_suggest(args):
    from meetsync.availability.suggest import suggest

    times = asyncio.run(suggest(args.user_id))
    _print({"suggestions": [t.isoformat() for t in times]})


def cmd_grant(args):
    from meetsync.permissions.grants import grant_access

    permission = grant_access(args.user_id, args.type, args.value)
    _print({"success": True, "permission": permission.to_dict()})


def cmd_revoke(args):
    from meetsync.permissions.grants import revoke

    permission = revoke(args.permission_id, args.user_id)
    _print({"success": True, "permission": permission.to_dict()})


def cmd_version(args):
    """Show version information."""
    try:
        from importlib.metadata import version

        v = version("meetsync")
    except Exception:
        v = "0.1.0 (development)"

    print(f"meetsync version {v}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meetsync",
        description="meetsync - find meeting times across permissioned calendars",
    )
    parser.add_argument("--version", "-V", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init-db", help="Create the database")
    init_parser.set_defaults(func=cmd_init_db)

    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on changes")
    serve_parser.set_defaults(func=cmd_serve)

    register_parser = subparsers.add_parser("register", help="Create a user")
    register_parser.add_argument("--email", required=True)
    register_parser.add_argument("--name", required=True)
    register_parser.add_argument("--timezone", help="IANA timezone")
    register_parser.set_defaults(func=cmd_register)

    slots_parser = subparsers.add_parser("slots", help="Find common meeting slots")
    slots_parser.add_argument("--user-id", required=True, help="Requesting user")
    slots_parser.add_argument("--emails", nargs="+", required=True, help="Participant emails")
    slots_parser.add_argument("--start", type=_parse_datetime, required=True)
    slots_parser.add_argument("--end", type=_parse_datetime, required=True)
    slots_parser.add_argument("--duration", type=int, default=60, help="Minutes")
    slots_parser.set_defaults(func=cmd_slots)

    suggest_parser = subparsers.add_parser("suggest", help="Suggest times for one user")
    suggest_parser.add_argument("--user-id", required=True)
    suggest_parser.set_defaults(func=cmd_suggest)

    grant_parser = subparsers.add_parser("grant", help="Grant calendar access")
    grant_parser.add_argument("--user-id", required=True, help="Granting user")
    grant_parser.add_argument("--type", choices=["email", "domain"], required=True)
    grant_parser.add_argument("--value", required=True, help="Email or domain")
    grant_parser.set_defaults(func=cmd_grant)

    revoke_parser = subparsers.add_parser("revoke", help="Revoke a grant")
    revoke_parser.add_argument("--user-id", required=True, help="Granting user")
    revoke_parser.add_argument("--permission-id", required=True)
    revoke_parser.set_defaults(func=cmd_revoke)

    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    load_dotenv()

    from meetsync.errors import MeetSyncError
    from meetsync.logging_config import setup_logging

    setup_logging()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        cmd_version(args)
        return

    if not args.command:
        parser.print_help()
        return

    try:
        result = args.func(args)
    except MeetSyncError as e:
        _print({"success": False, "error": str(e), "code": type(e).__name__})
        sys.exit(1)

    if isinstance(result, int) and result != 0:
        sys.exit(result)


if __name__ == "__main__":
    main()

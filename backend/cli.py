"""fivetwo command line: user administration, token issuance, and serving the API.

Usage:
    fivetwo mkhuman <username> [--email EMAIL]
    fivetwo mkagent <username> [--email EMAIL]
    fivetwo auth <username>
    fivetwo serve [--host HOST] [--port PORT]
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from auth import AuthService
from database import init_db, close_db, get_db_context
from errors import FivetwoError
from models import UserType
import project_registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fivetwo", description="fivetwo card tracker")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("mkhuman", "Create a human user"), ("mkagent", "Create an AI agent user")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("username")
        p.add_argument("--email", default=None)

    p = sub.add_parser("auth", help="Print a bearer token for a user")
    p.add_argument("username")

    p = sub.add_parser("serve", help="Start the API server")
    p.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    return parser


async def run(args: argparse.Namespace) -> int:
    """Execute a database-backed command; returns the process exit code"""
    try:
        await init_db()
        async with get_db_context() as db:
            if args.command in ("mkhuman", "mkagent"):
                user_type = UserType.HUMAN if args.command == "mkhuman" else UserType.AI
                user = await project_registry.create_user(db, args.username, user_type.value, args.email)
                kind = "human" if user_type == UserType.HUMAN else "AI agent"
                print(f"Created {kind} user: {user.username}")
            elif args.command == "auth":
                user = await project_registry.get_user_by_username(db, args.username)
                print(AuthService.create_access_token(user.id))
    except FivetwoError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_db()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        import uvicorn
        uvicorn.run("main:app", host=args.host, port=args.port)
        return 0
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())

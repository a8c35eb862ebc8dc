import argparse
import json
import sys

from sqlmodel import SQLModel

from . import models  # noqa: F401
from .db import get_engine, get_session_ctx, is_postgres
from .db_admin import enable_rls


def main(argv=None):
    parser = argparse.ArgumentParser(prog="bookmarks-admin", description="Database maintenance for Smart Bookmarks")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create missing tables without Alembic (development)")
    sub.add_parser("enable-rls", help="Enable Postgres row-level security policies on owned tables")
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    if args.command == "init-db":
        SQLModel.metadata.create_all(get_engine())
        print("Database initialised.")
        return 0

    if not is_postgres():
        print("Not using Postgres backend (DATABASE_URL). Nothing to do.")
        return 0
    with get_session_ctx() as session:
        details = enable_rls(session)
    print("Row-level security:")
    print(json.dumps(details, indent=2))
    return 0 if details.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())

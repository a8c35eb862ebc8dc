"""Terminal front end for the bookmarks API.

    BOOKMARKS_TOKEN=... python -m app.client.shell watch
"""

import argparse
import asyncio
import os
import sys
from typing import Iterable, Optional

import httpx

from ..formatting import count_label, format_date
from ..schemas import BookmarkRecord
from .api import BookmarksApiClient
from .view import BookmarkListView


DEFAULT_API_URL = "http://localhost:8000"


def render(items: Iterable[BookmarkRecord], pending: Iterable[str] = (), out=None) -> None:
    out = out or sys.stdout
    items = list(items)
    pending = set(pending)
    print(count_label(len(items)), file=out)
    if not items:
        print("No bookmarks", file=out)
        return
    for item in items:
        marker = " (deleting)" if item.id in pending else ""
        print(f"- {item.title}{marker}", file=out)
        print(f"  {item.url}", file=out)
        print(f"  {format_date(item.created_at)}  [{item.id}]", file=out)


def _alert(message: str) -> None:
    print(f"Error: {message}", file=sys.stderr)


async def _run(args, client: BookmarksApiClient) -> int:
    if args.command == "list":
        render(await client.list_bookmarks())
        return 0
    if args.command == "add":
        view = BookmarkListView(client)
        error = await view.create(args.url, args.title)
        if error:
            print(error, file=sys.stderr)
            return 1
        print("Bookmark added.")
        return 0
    if args.command == "delete":
        view = BookmarkListView(client, alert=_alert)
        return 0 if await view.delete(args.id) else 1

    view = BookmarkListView(client, alert=_alert)
    view.on_change = lambda items: render(items, view.reconciler.pending)
    await view.open()
    try:
        await asyncio.Event().wait()
    finally:
        await view.close()
    return 0


async def _main(args) -> int:
    async with BookmarksApiClient(args.api_url, args.token) as client:
        try:
            return await _run(args, client)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 401:
                _alert("Not signed in; set BOOKMARKS_TOKEN")
            else:
                _alert("Could not load bookmarks")
            return 1
        except httpx.HTTPError:
            _alert("Could not reach the bookmarks service")
            return 1


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(prog="bookmarks-shell", description="Smart Bookmarks terminal client")
    parser.add_argument("--api-url", default=os.getenv("BOOKMARKS_API_URL", DEFAULT_API_URL))
    parser.add_argument("--token", default=os.getenv("BOOKMARKS_TOKEN"))
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Print your bookmarks")
    add = sub.add_parser("add", help="Add a bookmark")
    add.add_argument("url")
    add.add_argument("title")
    delete = sub.add_parser("delete", help="Delete a bookmark by id")
    delete.add_argument("id")
    sub.add_parser("watch", help="Follow your bookmarks live")
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

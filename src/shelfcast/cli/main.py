import argparse
import asyncio
import sys
from typing import List, Optional

from rich.console import Console

from shelfcast.core.aggregator import Aggregator
from shelfcast.core.chapters import ChapterResolver
from shelfcast.core.config import load_settings
from shelfcast.core.genres import match_genre
from shelfcast.core.logging import setup_logging
from shelfcast.core.models import Item
from shelfcast.core.network import build_client
from . import ui

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shelfcast", description="Shelfcast: search free audiobook and podcast catalogs.")
    parser.add_argument("--debug", action="store_true", help="Enable debug output.")
    parser.add_argument("--config", help="Path to a shelfcast.yaml file.")
    parser.add_argument("--timeout", type=float, help="Per-source timeout in seconds.")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Search the aggregated sources, or a single one.")
    search.add_argument("query", nargs="?", default="")
    search.add_argument("--source", help="Search only this source key.")
    search.add_argument("--limit", type=int, default=50)
    search.add_argument("--offset", type=int, default=0)

    featured = commands.add_parser("featured", help="Popular items from the featured source.")
    featured.add_argument("--limit", type=int, default=20)

    chapters = commands.add_parser("chapters", help="List the chapters of one item.")
    chapters.add_argument("source")
    chapters.add_argument("raw_id")

    genre = commands.add_parser("genre", help="Classify a genre or subject string.")
    genre.add_argument("text", nargs="?", default="")

    return parser


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    if args.timeout:
        settings.timeout = args.timeout

    if args.command == "genre":
        ui.display_genre(args.text, match_genre(args.text))
        return 0

    client = build_client(settings.user_agent, timeout=settings.timeout)
    aggregator = Aggregator.from_settings(settings, client)
    try:
        if args.command == "search":
            if args.source:
                result = await aggregator.search_source(args.source, args.query, limit=args.limit, offset=args.offset)
                if not result.success:
                    console.print(f"[red]{args.source}: {result.error}[/red]")
                    return 1
                ui.display_items(result.items)
            else:
                result = await aggregator.search_all(args.query, limit=args.limit, timeout=args.timeout)
                ui.display_aggregate(result)
                if not result.success:
                    return 1

        elif args.command == "featured":
            result = await aggregator.get_featured(limit=args.limit)
            if not result.success:
                console.print(f"[red]{result.error}[/red]")
                return 1
            ui.display_items(result.items, title="Featured")

        elif args.command == "chapters":
            item = Item(id=f"{args.source}-{args.raw_id}", source=args.source, raw_source_id=args.raw_id)
            with console.status(f"[bold green]Fetching chapters for {item.id}..."):
                manifest = await ChapterResolver(aggregator.sources).fetch_chapters(item)
            ui.display_chapters(manifest, title=item.id)
            if not manifest.success:
                return 1
    finally:
        await aggregator.close()
    return 0


def start(argv: Optional[List[str]] = None):
    """Function to be called by the entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
        sys.exit(130)


if __name__ == "__main__":
    start()

from typing import List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from shelfcast.core.genres import Genre
from shelfcast.core.models import AggregateResult, Item, Manifest, SourceReport

console = Console()


def format_duration(seconds: int) -> str:
    if not seconds:
        return "-"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}" if hours else f"{minutes}:{secs:02d}"


def _badges(item: Item) -> str:
    flags = item.flags
    badges = []
    if flags.is_original:
        badges.append("original")
    if flags.is_educational:
        badges.append("educational")
    if flags.is_full_cast:
        badges.append("full cast")
    if flags.is_podcast:
        badges.append("podcast")
    return ", ".join(badges)


def display_items(items: List[Item], title: str = "Search Results") -> None:
    """Displays items in a table."""
    if not items:
        console.print("[yellow]No results found.[/yellow]")
        return

    table = Table(title=title, show_lines=True)
    table.add_column("#", style="cyan", justify="center")
    table.add_column("Title", style="magenta")
    table.add_column("Author")
    table.add_column("Length", justify="right")
    table.add_column("Source", style="green")
    table.add_column("ID", style="dim")

    for i, item in enumerate(items, 1):
        source = item.source_label
        badges = _badges(item)
        if badges:
            source = f"{source}\n[dim]{badges}[/dim]"
        table.add_row(str(i), item.title, item.author, format_duration(item.duration), source, item.raw_source_id or item.id)

    console.print(Panel(table, border_style="blue"))


def display_source_reports(reports: List[SourceReport]) -> None:
    for report in reports:
        if report.success:
            console.print(f"[dim]{report.source}: {report.count} results[/dim]")
        else:
            console.print(f"[yellow]Warning: {report.source} failed ({report.error})[/yellow]")


def display_aggregate(result: AggregateResult) -> None:
    if not result.success:
        console.print(f"[red]{result.error or 'Search failed'}[/red]")
    display_source_reports(result.sources)
    display_items(result.items)


def display_chapters(manifest: Manifest, title: Optional[str] = None) -> None:
    """Displays a manifest's chapters with their total length."""
    if not manifest.chapters:
        console.print(f"[red]No chapters available{f' ({manifest.error})' if manifest.error else ''}.[/red]")
        return

    table = Table(title=title or "Chapters")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Title", style="magenta")
    table.add_column("Length", justify="right")
    table.add_column("Reader")
    for chapter in manifest.chapters:
        table.add_row(str(chapter.number), chapter.title, format_duration(chapter.duration), chapter.reader or "")

    console.print(table)
    console.print(f"[bold]Total:[/bold] {format_duration(manifest.total_duration)}")


def display_genre(text: str, genre: Genre) -> None:
    console.print(f"{genre.icon} '{text}' -> [bold]{genre.name}[/bold] [dim]({genre.id}, {genre.color})[/dim]")

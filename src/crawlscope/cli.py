"""Terminal front-end for the domain timeline explorer."""

import asyncio
import logging
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from crawlscope import __version__
from crawlscope.client.api import CollectApiClient
from crawlscope.core.interfaces import Snapshot
from crawlscope.core.models import ClientConfig, CrawlRun, CrawlStatus
from crawlscope.core.timeutil import crawl_epoch, format_epoch, run_epoch, to_epoch
from crawlscope.engine.explorer import DomainTimelineExplorer
from crawlscope.engine.publication import (
    Action,
    PublicationChanges,
    PublicationState,
    SetDomainPublished,
    SetRunPublished,
    ToggleCrawlPublished,
    ToggleRunTag,
    ToggleSectionPublished,
    compute_changes,
)
from crawlscope.media import display_image_src
from crawlscope.resolvers.factory import SnapshotResolverFactory

console = Console()

STATUS_STYLES = {
    CrawlStatus.SUCCESS: "green",
    CrawlStatus.FAILED: "red",
    CrawlStatus.RUNNING: "blue",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]crawlscope[/bold] version {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _status_label(status: CrawlStatus) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status.value}[/{style}]" if style else status.value


def _run_row(run: CrawlRun, marker: str = "") -> list[str]:
    return [
        marker,
        _status_label(run.status),
        format_epoch(run_epoch(run)),
        run.id,
        ", ".join(run.tags),
        "yes" if run.is_published else "",
        run.error or "",
    ]


def _changed_fields(changes: PublicationChanges) -> list[tuple[str, str]]:
    """Human-readable lines for a diff, one per non-empty field."""
    rows: list[tuple[str, str]] = []
    if changes.domain_is_published_changed:
        rows.append(("domain published", "changed"))
    if changes.run_is_published_changed:
        rows.append(("run published", "changed"))
    if changes.run_tags_changed:
        rows.append(("run tags", "changed"))
    for label, ids in (
        ("crawls to publish", changes.crawls_to_publish),
        ("crawls to unpublish", changes.crawls_to_unpublish),
        ("sections to publish", changes.sections_to_publish),
        ("sections to unpublish", changes.sections_to_unpublish),
    ):
        if ids:
            rows.append((label, ", ".join(ids)))
    return rows


def _print_errors(title: str, errors: list[str]) -> None:
    if errors:
        console.print(f"[red]{title}:[/red] {' · '.join(errors)}")


def _print_timeline(explorer: DomainTimelineExplorer) -> None:
    domain = explorer.domain
    if domain is None:
        return

    timeline = explorer.timeline
    console.print()
    console.print(
        Panel(
            f"[bold cyan]Host:[/bold cyan] {domain.host}\n"
            f"[bold green]URL:[/bold green] {domain.canonical_url}\n"
            f"[bold yellow]URLs:[/bold yellow] {len(domain.urls)}   "
            f"[bold yellow]Completed runs:[/bold yellow] {len(timeline.scrub)}   "
            f"[bold yellow]Active:[/bold yellow] {len(timeline.active)}",
            title=f"[bold]{domain.title}[/bold]",
            border_style="blue",
        )
    )

    if not timeline.listing:
        console.print("[dim]No crawl runs yet.[/dim]")
        return

    effective = explorer.effective_run
    table = Table(title="[bold]Crawl runs[/bold]", header_style="bold cyan")
    for column in ("", "Status", "Time", "Run", "Tags", "Published", "Error"):
        table.add_column(column)
    for run in timeline.listing:
        marker = "▶" if effective and run.id == effective.id else ""
        index = timeline.index_of(run.id)
        if index is not None:
            marker = f"{marker}{index}"
        table.add_row(*_run_row(run, marker))
    console.print(table)
    console.print("[dim]Numbers are scrub positions of completed runs (0 = earliest).[/dim]")


def _print_snapshot(snapshot: Snapshot, api_url: str) -> None:
    table = Table(title="[bold]Snapshot[/bold]", header_style="bold cyan")
    for column in ("Type", "Path", "Crawl", "Time", "Published", "Categories", "Screenshot"):
        table.add_column(column)

    for entry in snapshot:
        crawl = entry.crawl
        if crawl is None:
            table.add_row(entry.url.type.value, entry.url.path, "[dim]not crawled[/dim]", "-", "", "", "")
            continue
        screenshot = crawl.screenshots[0].public_url if crawl.screenshots else None
        table.add_row(
            entry.url.type.value,
            entry.url.path,
            f"{_status_label(crawl.status)} {crawl.id}",
            format_epoch(crawl_epoch(crawl)),
            "yes" if crawl.is_published else "",
            " · ".join(crawl.category_names[:2]),
            display_image_src(screenshot, api_url),
        )

    console.print(table)


def _print_changes(state: PublicationState) -> None:
    rows = _changed_fields(compute_changes(state))
    if not rows:
        console.print("[dim]No publication changes.[/dim]")
        return

    table = Table(title=f"[bold]Changes for run {state.run_id}[/bold]", header_style="bold cyan")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for label, value in rows:
        table.add_row(label, value)
    if state.marks_reviewed:
        table.add_row("mark reviewed", "yes")
    console.print(table)


def _build_config(api_url: Optional[str], verbose: bool) -> ClientConfig:
    return ClientConfig.from_env(api_url=api_url, verbose=verbose)


async def _open(
    config: ClientConfig, domain_id: str, mode: Optional[str] = None
) -> tuple[CollectApiClient, DomainTimelineExplorer]:
    client = CollectApiClient(config)
    resolver = SnapshotResolverFactory.get_resolver(client, mode=mode, config=config)
    explorer = DomainTimelineExplorer(client, client, resolver=resolver, config=config)
    await explorer.open_domain(domain_id)
    return client, explorer


def _check_meta(explorer: DomainTimelineExplorer) -> None:
    if explorer.meta_error:
        console.print(f"[red]Error: {explorer.meta_error}[/red]")
        raise typer.Exit(1)
    _print_errors("GraphQL error", explorer.meta_errors)
    if explorer.domain is None:
        console.print("[yellow]Domain not found.[/yellow]")
        raise typer.Exit(1)


async def _timeline(config: ClientConfig, domain_id: str) -> None:
    client, explorer = await _open(config, domain_id)
    try:
        _check_meta(explorer)
        _print_timeline(explorer)
    finally:
        await client.close()


async def _snapshot(
    config: ClientConfig,
    domain_id: str,
    run_id: Optional[str],
    index: Optional[int],
    at: Optional[str],
) -> None:
    mode = "time-cutoff" if at else None
    client, explorer = await _open(config, domain_id, mode=mode)
    try:
        _check_meta(explorer)
        if at:
            cutoff = to_epoch(at)
            if not cutoff:
                console.print(f"[red]Error: invalid timestamp {at!r}[/red]")
                raise typer.Exit(1)
            await explorer.show_at(cutoff)
        elif run_id:
            if not await explorer.select_run(run_id):
                console.print(f"[red]Error: unknown run {run_id}[/red]")
                raise typer.Exit(1)
        elif index is not None:
            await explorer.scrub(index)

        _print_timeline(explorer)
        if explorer.snapshot_error:
            console.print(f"[red]Error: {explorer.snapshot_error}[/red]")
        _print_errors("GraphQL error", explorer.snapshot.errors)
        if not explorer.snapshot.entries:
            console.print("[dim]No completed crawl runs yet.[/dim]")
            return
        _print_snapshot(explorer.snapshot, config.api_url)
    finally:
        await client.close()


async def _publish(
    config: ClientConfig,
    domain_id: str,
    run_id: str,
    actions: list[Action],
    dry_run: bool,
) -> None:
    client, explorer = await _open(config, domain_id)
    try:
        _check_meta(explorer)
        if not await explorer.select_run(run_id):
            console.print(f"[red]Error: unknown run {run_id}[/red]")
            raise typer.Exit(1)
        if explorer.snapshot_error:
            console.print(f"[red]Error: {explorer.snapshot_error}[/red]")
            raise typer.Exit(1)

        state = explorer.publication
        if state is None:
            console.print("[red]Error: run snapshot is unavailable[/red]")
            raise typer.Exit(1)
        if not state.can_publish_selection:
            console.print(
                f"[yellow]Run {run_id} is {state.run_status.value}; "
                "only SUCCESS runs can change publication.[/yellow]"
            )

        for action in actions:
            before = explorer.publication
            after = explorer.dispatch(action)
            if after is before:
                console.print(f"[yellow]Skipped (not allowed or no effect): {action}[/yellow]")

        state = explorer.publication
        _print_changes(state)

        if dry_run or not state.can_save:
            return

        if await explorer.save():
            console.print("[bold green]Publication saved.[/bold green]")
        else:
            console.print(f"[red]Error: {explorer.save_error}[/red]")
            raise typer.Exit(1)
    finally:
        await client.close()


app = typer.Typer(
    name="crawlscope",
    help="Explore crawl timelines and publish crawl results.",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

ApiUrlOption = Annotated[
    Optional[str],
    typer.Option("--api-url", envvar="COLLECT_API_URL", help="Base URL of the collect API"),
]
VerboseOption = Annotated[bool, typer.Option("-v", "--verbose", help="Verbose output")]


@app.callback()
def main_callback(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """Explore crawl timelines and publish crawl results."""


@app.command()
def timeline(
    domain_id: Annotated[str, typer.Argument(help="Domain id")],
    api_url: ApiUrlOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the completed-run timeline and every crawl run of a domain."""
    _configure_logging(verbose)
    asyncio.run(_timeline(_build_config(api_url, verbose), domain_id))


@app.command()
def snapshot(
    domain_id: Annotated[str, typer.Argument(help="Domain id")],
    run: Annotated[
        Optional[str], typer.Option("-r", "--run", help="Inspect this run (any status)")
    ] = None,
    index: Annotated[
        Optional[int],
        typer.Option("-i", "--index", help="Scrub position (0 = earliest completed run)"),
    ] = None,
    at: Annotated[
        Optional[str],
        typer.Option("--at", help="ISO timestamp; latest crawl per URL at or before it"),
    ] = None,
    api_url: ApiUrlOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Show the crawl resolved for every URL at one point of the timeline.

    \b
    Examples:
        crawlscope snapshot dom_1
        crawlscope snapshot dom_1 --index 0
        crawlscope snapshot dom_1 --at 2024-05-01T00:00:00Z
    """
    _configure_logging(verbose)
    asyncio.run(_snapshot(_build_config(api_url, verbose), domain_id, run, index, at))


@app.command()
def publish(
    domain_id: Annotated[str, typer.Argument(help="Domain id")],
    run: Annotated[str, typer.Option("-r", "--run", help="Crawl run to edit")],
    crawl: Annotated[
        Optional[list[str]],
        typer.Option("-c", "--crawl", help="Toggle publication of a crawl"),
    ] = None,
    section: Annotated[
        Optional[list[str]],
        typer.Option("-s", "--section", help="Toggle publication of a homepage section"),
    ] = None,
    tag: Annotated[
        Optional[list[str]], typer.Option("-t", "--tag", help="Add a run tag")
    ] = None,
    untag: Annotated[
        Optional[list[str]], typer.Option("--untag", help="Remove a run tag")
    ] = None,
    run_published: Annotated[
        Optional[bool],
        typer.Option("--run-published/--run-unpublished", help="Set the run flag"),
    ] = None,
    domain_published: Annotated[
        Optional[bool],
        typer.Option("--domain-published/--domain-unpublished", help="Set the domain flag"),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("-n", "--dry-run", help="Show the diff without saving")
    ] = False,
    api_url: ApiUrlOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Edit publication flags of a crawl run and save the minimal diff.

    \b
    Examples:
        crawlscope publish dom_1 --run run_9 --crawl crawl_1 --run-published
        crawlscope publish dom_1 --run run_9 --tag redesign --dry-run
    """
    _configure_logging(verbose)

    actions: list[Action] = []
    if run_published is not None:
        actions.append(SetRunPublished(run_published))
    actions.extend(ToggleCrawlPublished(crawl_id) for crawl_id in crawl or [])
    actions.extend(ToggleSectionPublished(section_id) for section_id in section or [])
    actions.extend(ToggleRunTag(name, True) for name in tag or [])
    actions.extend(ToggleRunTag(name, False) for name in untag or [])
    if domain_published is not None:
        actions.append(SetDomainPublished(domain_published))

    asyncio.run(
        _publish(_build_config(api_url, verbose), domain_id, run, actions, dry_run)
    )


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()

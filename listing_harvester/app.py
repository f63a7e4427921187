"""Typer CLI entrypoint for listing-harvester."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence
from urllib.parse import urlparse

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import (
    ConfigRepository,
    FetchConfig,
    IdentityRule,
    RevealConfig,
    RevealMode,
    SourceConfig,
)
from .domain import JobRunSnapshot, JobState
from .engine import ThreadPoolManager
from .harvester import Harvester
from .infra import SQLiteManager
from .logging_conf import (
    available_source_logs,
    configure_logging,
    default_log_dir,
    source_log_path,
    tail_log,
)
from .ui import RichProgressSink, shorten_url

app = typer.Typer(
    help="listing-harvester: bulk crawl of real-estate catalogs",
    no_args_is_help=True,
    rich_markup_mode=None,
)
source_app = typer.Typer(name="source", help="Manage catalog sources.", no_args_is_help=True)
log_app = typer.Typer(name="log", help="Inspect log files.", no_args_is_help=True)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    harvester: Harvester
    storage: SQLiteManager
    thread_pool: ThreadPoolManager


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    storage = SQLiteManager()
    thread_pool = ThreadPoolManager()
    harvester = Harvester(config_repository=repository, thread_pool=thread_pool, storage=storage)
    return AppState(
        repository=repository,
        harvester=harvester,
        storage=storage,
        thread_pool=thread_pool,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _require_source(state: AppState, name: str) -> SourceConfig:
    try:
        return state.repository.load_source(name)
    except FileNotFoundError:
        console.print(f"Source `{name}` not found.", style="red")
        raise typer.Exit(code=1)


def _render_sources_table(sources: Sequence[SourceConfig]) -> Table:
    table = Table(title=f"Sources · {len(sources)} total", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Mode", style="magenta")
    table.add_column("Catalog", overflow="fold")
    table.add_column("Delay", style="yellow", justify="right")
    for source in sources:
        table.add_row(
            source.source_name,
            source.reveal.mode.value,
            source.catalog_url,
            f"{source.job.inter_item_delay:g}s",
        )
    return table


def _render_result_table(snapshot: JobRunSnapshot) -> Table:
    table = Table(title=f"{snapshot.source_name} · {snapshot.state.value}", box=box.SIMPLE_HEAD)
    table.add_column("Discovered", justify="right")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Unresolved", justify="right", style="dim")
    table.add_column("Processed", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    summary = snapshot.summary()
    table.add_row(
        str(summary["discovered"]),
        str(summary["skipped"]),
        str(summary["unresolved"]),
        f"{summary['processed']}/{snapshot.planned_total}",
        str(summary["success"]),
        str(summary["failed"]),
    )
    return table


app.add_typer(source_app, name="source")
app.add_typer(log_app, name="log")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    ctx.obj = build_state(verbose)


@source_app.command("list", help="List configured sources.")
def source_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    sources = state.repository.list_sources()
    if not sources:
        console.print("No sources yet; create one with `listing-harvester source add`.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_sources_table(sources))


def _identity_rules(name: str, catalog_url: str, id_pattern: Optional[str]) -> list[IdentityRule]:
    if not id_pattern:
        return []
    host = urlparse(catalog_url).hostname or ""
    return [IdentityRule(source=name.strip().lower(), hosts=[host] if host else [], patterns=[id_pattern])]


@source_app.command("add", help="Create a source configuration.")
def source_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    catalog_url: str = typer.Option(..., "--catalog-url", help="Catalog page to harvest."),
    entry_pattern: str = typer.Option(..., "--entry-pattern", help="CSS selector of item links."),
    link_pattern: Optional[str] = typer.Option(None, "--link-pattern", help="Regex item links must match."),
    title_selector: str = typer.Option("h1", "--title", help="CSS selector of the item title."),
    mode: RevealMode = typer.Option(RevealMode.PAGES, "--mode", help="How the catalog reveals more items."),
    delay: float = typer.Option(3.0, "--delay", help="Seconds between item requests."),
    id_pattern: Optional[str] = typer.Option(
        None, "--id-pattern", help="Regex capturing the item id; built-in avito/cian rules otherwise."
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing source."),
) -> None:
    state = _get_state(ctx)
    if state.repository.source_path(name).exists() and not force:
        console.print(f"Source `{name}` already exists; pass --force to overwrite.", style="red")
        raise typer.Exit(code=1)
    try:
        config = SourceConfig(
            source_name=name,
            catalog_url=catalog_url,
            entry_pattern=entry_pattern,
            link_pattern=link_pattern,
            detail_pattern={"title": title_selector},
            identity_rules=_identity_rules(name, catalog_url, id_pattern),
            job={"inter_item_delay": delay},
            reveal=RevealConfig(mode=mode),
            fetch=FetchConfig(),
        )
    except ValidationError as exc:
        console.print(f"Invalid source configuration:\n{exc}", style="red", markup=False)
        raise typer.Exit(code=1)
    path = state.repository.save_source(config)
    console.print(f"Source `{config.source_name}` saved to {path}.", style="green")


@source_app.command("remove", help="Delete a source configuration and its stored records.")
def source_remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    state = _get_state(ctx)
    _require_source(state, name)
    if not yes and not typer.confirm(f"Delete `{name}` and its stored records?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    removed = state.harvester.reset_history(name)
    state.repository.delete_source(name)
    console.print(f"Source `{name}` removed ({removed} stored records deleted).", style="green")


def _run_with_progress(
    state: AppState,
    source: SourceConfig,
    quiet: bool,
    run: Callable[[Optional[RichProgressSink]], JobRunSnapshot],
) -> JobRunSnapshot:
    global_config = state.repository.load_global_config()
    progress = None
    if not quiet and global_config.enable_progress_bar:
        progress = RichProgressSink(
            source.source_name,
            console=console,
            max_url_length=global_config.max_url_display_length,
        )
    try:
        return run(progress)
    finally:
        if progress is not None:
            progress.close()
        state.thread_pool.shutdown(wait=False)


def _report(snapshot: JobRunSnapshot, quiet: bool) -> None:
    if quiet:
        summary = snapshot.summary()
        console.print(
            f"{snapshot.source_name}: {snapshot.state.value} "
            + " ".join(f"{key}={value}" for key, value in summary.items())
        )
    else:
        console.print(_render_result_table(snapshot))
        if snapshot.failure_queue:
            console.print("Failed items:", style="red")
            for ref in snapshot.failure_queue:
                console.print(f"  {ref}", style="dim", markup=False)
    if snapshot.state is JobState.STOPPED:
        raise typer.Exit(code=130)
    if snapshot.failure_queue:
        raise typer.Exit(code=1)


@app.command("crawl", help="Run a bulk-crawl job for a source. Ctrl+C stops it.")
def crawl(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    quiet: bool = typer.Option(False, "--quiet", help="Print only the result line."),
    retry: int = typer.Option(0, "--retry", min=0, help="Retry passes over failed items."),
    max_items: Optional[int] = typer.Option(None, "--max-items", min=1, help="Process at most N new items."),
) -> None:
    state = _get_state(ctx)
    source = _require_source(state, name)
    snapshot = _run_with_progress(
        state,
        source,
        quiet,
        lambda progress: state.harvester.run_source(
            source.source_name, progress=progress, max_items=max_items, retry_passes=retry
        ),
    )
    _report(snapshot, quiet)


@app.command("refresh", help="Re-extract stored listings that were not updated recently.")
def refresh(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    days: Optional[int] = typer.Option(
        None, "--days", min=1, help="Refresh listings older than N days; global setting by default."
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Print only the result line."),
    retry: int = typer.Option(0, "--retry", min=0, help="Retry passes over failed items."),
    max_items: Optional[int] = typer.Option(None, "--max-items", min=1, help="Refresh at most N listings."),
) -> None:
    state = _get_state(ctx)
    source = _require_source(state, name)
    snapshot = _run_with_progress(
        state,
        source,
        quiet,
        lambda progress: state.harvester.refresh_source(
            source.source_name,
            older_than_days=days,
            progress=progress,
            max_items=max_items,
            retry_passes=retry,
        ),
    )
    _report(snapshot, quiet)


@app.command("history", help="Show the most recently stored records of a source.")
def history(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    limit: int = typer.Option(20, "--limit", min=1, help="Number of records to show."),
) -> None:
    state = _get_state(ctx)
    _require_source(state, name)
    records = state.harvester.view_history(name, limit=limit)
    if not records:
        console.print("No stored records.", style="dim")
        return
    table = Table(title=f"{name} · latest {len(records)} records", box=box.SIMPLE_HEAD)
    table.add_column("Fetched", style="green")
    table.add_column("ID", style="cyan")
    table.add_column("Title", overflow="fold")
    table.add_column("URL", overflow="fold")
    for record in records:
        table.add_row(
            record.fetched_at.isoformat(timespec="seconds"),
            record.identity.external_id,
            str(record.data.get("title") or ""),
            shorten_url(record.url, 80),
        )
    console.print(table)


@app.command("reset", help="Delete stored records of a source.")
def reset(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Source name."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt."),
) -> None:
    state = _get_state(ctx)
    _require_source(state, name)
    if not yes and not typer.confirm(f"Delete all stored records of `{name}`?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    removed = state.harvester.reset_history(name)
    console.print(f"Deleted {removed} stored records of `{name}`.", style="green")


@log_app.command("list", help="List available source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("tail", help="Show the last lines of the global or a source log.")
def log_tail(
    source: Optional[str] = typer.Option(None, "--source", help="Source name; global log when omitted."),
    lines: int = typer.Option(100, "--lines", min=1, help="Number of lines to show."),
) -> None:
    path = source_log_path(source) if source else default_log_dir() / "harvester.log"
    content = tail_log(path, lines)
    if not content:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(content)} lines", style="cyan")
    console.print("".join(content), end="", markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()

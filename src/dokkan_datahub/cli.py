"""Click-based CLI for dokkan-datahub.

Thin wrapper around the hub. Every command builds a DataHub from config,
delegates to the coordinator or orchestrator, and renders the result.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # Suppress per-request logs from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from dokkan_datahub.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _open_hub(ctx: click.Context):
    """Build and initialize a DataHub from config."""
    from dokkan_datahub.hub import build_hub

    return await build_hub(_load_config(ctx))


def _run_with_hub(ctx: click.Context, action):
    """Open a hub, await `action(hub)`, and always close the hub.

    DataHubError is reported in red and exits with status 1.
    """
    from dokkan_datahub.core.exceptions import DataHubError

    async def _run():
        hub = await _open_hub(ctx)
        try:
            return await action(hub)
        finally:
            await hub.close()

    try:
        return _run_async(_run())
    except DataHubError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise SystemExit(1)


def _format_ms(ms: int | None) -> str:
    if ms is None:
        return "N/A"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _echo_json(payload) -> None:
    from pydantic_core import to_jsonable_python

    click.echo(json.dumps(to_jsonable_python(payload), indent=2))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="DOKKAN_DATAHUB_CONFIG",
    default=None,
    help="Path to dokkan-datahub.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="dokkan-datahub")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Dokkan DataHub: multi-source Dokkan Battle game data aggregator."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("data_type")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format.",
)
@click.option("--limit", "-n", type=int, default=20, help="Rows to show in table output.")
@click.pass_context
def get(ctx: click.Context, data_type: str, output_format: str, limit: int) -> None:
    """Get best-available data for DATA_TYPE (cache first)."""

    async def _action(hub):
        return await hub.coordinator.get_or_refresh(data_type)

    result = _run_with_hub(ctx, _action)

    if output_format == "json":
        _echo_json(result.model_dump())
        return

    origin = "cache" if result.from_cache else "fetched"
    console.print(
        f"[bold]{result.count}[/bold] {data_type} records from "
        f"[cyan]{result.source}[/cyan] ({origin}, {_format_ms(result.fetched_at)})"
    )
    if not result.data:
        return
    columns: list[str] = []
    for record in result.data[:limit]:
        for key in record:
            if key not in columns:
                columns.append(key)
    table = Table(title=data_type)
    for column in columns[:8]:
        table.add_column(column)
    for record in result.data[:limit]:
        table.add_row(*(str(record.get(column, "")) for column in columns[:8]))
    console.print(table)


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("data_types", nargs=-1)
@click.pass_context
def update(ctx: click.Context, data_types: tuple[str, ...]) -> None:
    """Refresh DATA_TYPES (default: every registered type)."""

    async def _action(hub):
        return await hub.coordinator.update_all(list(data_types) or None)

    report = _run_with_hub(ctx, _action)

    table = Table(title="Update Summary")
    table.add_column("Data type", style="bold")
    table.add_column("Records", justify="right")
    table.add_column("Source")
    table.add_column("Status")
    for name, result in report.results.items():
        if result.ok:
            status = "cached" if result.from_cache else "fetched"
            table.add_row(name, str(result.count), result.source or "", f"[green]{status}[/green]")
        else:
            table.add_row(name, "-", "-", f"[red]{result.error}[/red]")
    console.print(table)

    if not report.success:
        console.print(f"[red]Failed: {', '.join(report.failed_types)}[/red]")
        raise SystemExit(1)
    console.print(f"[green]Updated {len(report.results)} data types.[/green]")


# ---------------------------------------------------------------------------
# clear-cache
# ---------------------------------------------------------------------------


@cli.command("clear-cache")
@click.confirmation_option(prompt="Delete every cached entry?")
@click.pass_context
def clear_cache(ctx: click.Context) -> None:
    """Delete every cached entry."""

    async def _action(hub):
        await hub.coordinator.clear_cache()

    _run_with_hub(ctx, _action)
    console.print("[green]Cache cleared.[/green]")


# ---------------------------------------------------------------------------
# rescore / priorities
# ---------------------------------------------------------------------------


def _output_priorities(table_data: dict[str, list[str]], title: str = "Source Priorities") -> None:
    table = Table(title=title)
    table.add_column("Data type", style="bold")
    table.add_column("Priority (best first)")
    for data_type, sources in table_data.items():
        table.add_row(data_type, " > ".join(sources))
    console.print(table)


@cli.command()
@click.option("--type", "-t", "data_type", default=None, help="Rescore only this data type.")
@click.pass_context
def rescore(ctx: click.Context, data_type: str | None) -> None:
    """Sample every source and re-rank priorities by freshness."""

    async def _action(hub):
        scores = await hub.coordinator.rescore_and_reorder(data_type)
        return scores, hub.orchestrator.priority_table()

    scores, priorities = _run_with_hub(ctx, _action)

    table = Table(title="Freshness Scores")
    table.add_column("Data type", style="bold")
    table.add_column("Source")
    table.add_column("Score", justify="right")
    table.add_column("Sample", justify="right")
    for name, type_scores in scores.items():
        for score in type_scores:
            value = f"[red]error: {score.error}[/red]" if score.excluded else f"{score.score:.2f}"
            table.add_row(name, score.source, value, str(score.sample_size))
    console.print(table)
    _output_priorities({name: priorities.get(name, []) for name in scores})


@cli.command()
@click.pass_context
def priorities(ctx: click.Context) -> None:
    """Show the configured source priority per data type."""

    async def _action(hub):
        return hub.orchestrator.priority_table()

    _output_priorities(_run_with_hub(ctx, _action))


# ---------------------------------------------------------------------------
# discover
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def discover(ctx: click.Context) -> None:
    """Learn parsers for data types advertised by sources."""

    async def _action(hub):
        return await hub.coordinator.discover_data_types()

    learned = _run_with_hub(ctx, _action)
    if not learned:
        console.print("[yellow]No new data types discovered.[/yellow]")
        return
    console.print(f"[green]Learned parsers for {len(learned)} data types:[/green] {', '.join(learned)}")


# ---------------------------------------------------------------------------
# anniversary
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--game-version",
    "-g",
    "game_version",
    type=click.Choice(["jp", "global"], case_sensitive=False),
    default="jp",
    help="Game release to check.",
)
@click.pass_context
def anniversary(ctx: click.Context, game_version: str) -> None:
    """Check whether an anniversary campaign is running."""

    async def _action(hub):
        return await hub.coordinator.check_anniversary_status(game_version)

    status = _run_with_hub(ctx, _action)
    label = status.version.value.upper()

    if status.error:
        console.print(f"[red]Anniversary check failed: {status.error}[/red]")
        raise SystemExit(1)
    if status.is_active:
        console.print(
            f"[green]{label} anniversary is live[/green]: {status.event.get('title', '')} "
            f"({status.days_remaining} days remaining)"
        )
    elif status.is_upcoming:
        console.print(
            f"[cyan]{label} anniversary upcoming[/cyan]: {status.event.get('title', '')} "
            f"(in {status.days_until} days)"
        )
    else:
        forecast = status.next_expected
        console.print(
            f"No {label} anniversary event found. Next expected around "
            f"[bold]{forecast.expected_date:%Y-%m-%d}[/bold] (in {forecast.days_until} days)"
        )


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    try:
        import uvicorn
    except ImportError:
        console.print(
            "[red]uvicorn not installed. Install with: "
            "pip install dokkan-datahub[api][/red]"
        )
        raise SystemExit(1)

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting dokkan-datahub API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    # The app factory loads its own config; point it at the same file.
    config_path = ctx.obj.get("config_path")
    if config_path:
        os.environ["DOKKAN_DATAHUB_CONFIG"] = os.path.abspath(config_path)

    uvicorn.run(
        "dokkan_datahub.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and cache status."""

    async def _action(hub):
        return await hub.store.health_check(), await hub.coordinator.cache_summary(), hub

    healthy, summary, hub = _run_with_hub(ctx, _action)
    config = hub.config

    table = Table(title="Dokkan DataHub Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Storage backend", config.storage.backend.value)
    table.add_row(
        "Location",
        config.storage.sqlite_path if config.storage.backend.value == "sqlite" else config.storage.cache_dir,
    )
    table.add_row("Store healthy", "yes" if healthy else "[red]no[/red]")
    table.add_row("Sources", ", ".join(config.source_order()))
    table.add_row("Data types", str(len(hub.registry.type_names())))
    console.print(table)

    cache = Table(title="Cache")
    cache.add_column("Data type", style="bold")
    cache.add_column("Records", justify="right")
    cache.add_column("Source")
    cache.add_column("Updated")
    cache.add_column("Fresh")
    for name, info in summary.items():
        cache.add_row(
            name,
            str(info["count"]),
            info["source"],
            _format_ms(info["timestamp"]),
            "[green]yes[/green]" if info["fresh"] else "[yellow]stale[/yellow]",
        )
    if summary:
        console.print(cache)
    else:
        console.print("[yellow]Cache is empty.[/yellow]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()

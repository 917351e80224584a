"""WBSMatch CLI.

Commands:
- init: Initialize database schema
- import-wbs: Import a WBS schedule (CSV/XLSX) as a new WBS set
- show-wbs: Show the latest WBS set for a project/model
- category: Fetch the elements of one category from a model
- match: Run element-to-WBS matching for a model
- latest: Show the latest match run for a model
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from wbsmatch.aec.client import AecGraphQLClient
from wbsmatch.config import get_config
from wbsmatch.core.logging import configure_logging
from wbsmatch.db.connection import close_db, init_db
from wbsmatch.db.repository import SqlWbsRepository
from wbsmatch.exceptions import WbsMatchError
from wbsmatch.service import WbsMatchService
from wbsmatch.wbs.ingestion import read_wbs_file

app = typer.Typer(
    name="wbsmatch",
    help="WBSMatch - link BIM model elements to WBS schedule activities",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(log_level)


def _build_service(with_source: bool = True) -> tuple[WbsMatchService, AecGraphQLClient | None]:
    config = get_config()
    client = None
    if with_source:
        if not config.aec.access_token:
            console.print("[bold red]✗[/bold red] APS_ACCESS_TOKEN is not set")
            raise typer.Exit(code=1)
        client = AecGraphQLClient(config.aec.access_token, config.aec)
    service = WbsMatchService(
        SqlWbsRepository(), source=client, matching=config.matching, aec=config.aec
    )
    return service, client


def _run(coro) -> None:
    async def _wrapped():
        try:
            await coro
        finally:
            await close_db()

    try:
        asyncio.run(_wrapped())
    except (WbsMatchError, FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]✗[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")
    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import-wbs")
def import_wbs(
    file: Path = typer.Argument(..., help="WBS schedule (CSV/XLSX)"),
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    model_id: str | None = typer.Option(None, "--model", help="Model (element group) ID"),
    source_name: str | None = typer.Option(None, "--source", help="Source label"),
):
    """Import a WBS schedule as a new, immutable WBS set."""
    service, _ = _build_service(with_source=False)

    async def _import():
        rows = read_wbs_file(file)
        console.print(f"[bold]Importing WBS:[/bold] {file} ({len(rows)} rows)")
        saved = await service.save_wbs_set(project_id, model_id, source_name or file.name, rows)
        console.print(
            f"[bold green]✓[/bold green] {saved.rows_saved} rows saved as {saved.wbs_set_id}"
        )

    _run(_import())


@app.command(name="show-wbs")
def show_wbs(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    model_id: str | None = typer.Option(None, "--model", help="Model ID"),
):
    """Show the latest WBS set."""
    service, _ = _build_service(with_source=False)

    async def _show():
        snapshot = await service.get_latest_wbs_set(project_id, model_id)
        if snapshot is None:
            console.print("[yellow]No WBS set found[/yellow]")
            return

        table = Table(title=f"{snapshot.wbs_set.wbs_set_id} ({snapshot.wbs_set.source_name})")
        table.add_column("Code")
        table.add_column("Title")
        table.add_column("Level", justify="right")
        table.add_column("Start")
        table.add_column("End")
        for item in snapshot.items:
            table.add_row(
                "  " * (item.level - 1) + item.code,
                item.title,
                str(item.level),
                item.start_date or "",
                item.end_date or "",
            )
        console.print(table)

    _run(_show())


@app.command()
def category(
    model_id: str = typer.Argument(..., help="Model (element group) ID"),
    label: str = typer.Argument(..., help='Category label, e.g. "Walls"'),
    limit: int = typer.Option(20, "--limit", help="Rows to display"),
):
    """Fetch the elements of one category."""
    service, client = _build_service()

    async def _category():
        try:
            result = await service.resolve_category_elements(model_id, label)
        finally:
            await client.close()

        console.print(
            f"Token: [cyan]{result.resolved_token}[/cyan]  Filter: [dim]{result.filter_used}[/dim]"
        )
        console.print(
            f"Elements: {result.summary.total_elements}  "
            f"Avg compliance: {result.summary.average_compliance_pct}%  "
            f"Fully compliant: {result.summary.fully_compliant}"
        )

        table = Table()
        for column in ("Element", "Family", "Name", "Assembly", "Compliance"):
            table.add_column(column)
        for row in result.rows[:limit]:
            table.add_row(
                row.revit_element_id or row.element_id,
                row.family_name,
                row.element_name,
                row.assembly_code,
                f"{row.compliance.pct}%",
            )
        console.print(table)

    _run(_category())


@app.command()
def match(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    model_id: str = typer.Option(..., "--model", help="Model ID"),
    wbs_set_id: str | None = typer.Option(None, "--wbs-set", help="WBS set (default: latest)"),
):
    """Run element-to-WBS matching for a model."""
    service, client = _build_service()
    console.print(f"[bold]Running matcher:[/bold] project={project_id}, model={model_id}")

    async def _match():
        try:
            summary = await service.run_matching(project_id, model_id, wbs_set_id)
        finally:
            await client.close()

        table = Table(title=summary.run_id)
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        table.add_row("Total elements", str(summary.total_elements))
        table.add_row("Matched", str(summary.matched_elements))
        table.add_row("Unmatched", str(summary.unmatched_elements))
        table.add_row("Average confidence", f"{summary.average_confidence:.4f}")
        console.print(table)

        if not summary.latest_updated:
            console.print(
                "[yellow]⚠[/yellow] Run saved but not marked as latest for the WBS set"
            )

    _run(_match())


@app.command()
def latest(
    project_id: str = typer.Option(..., "--project", help="Project ID"),
    model_id: str = typer.Option(..., "--model", help="Model ID"),
    limit: int = typer.Option(50, "--limit", help="Rows to display"),
):
    """Show the latest match run for a model."""
    service, _ = _build_service(with_source=False)

    async def _latest():
        result = await service.get_latest_match_run(project_id, model_id)
        if result is None:
            console.print("[yellow]No match run found[/yellow]")
            return

        run = result.run
        console.print(
            f"[bold]{run.run_id}[/bold]  {run.matched_elements}/{run.total_elements} matched, "
            f"avg confidence {run.average_confidence:.4f}"
        )
        table = Table()
        for column in ("Key", "Element", "Assembly", "WBS", "Title", "Confidence", "Strategy"):
            table.add_column(column)
        for row in run.rows[:limit]:
            table.add_row(
                row.item_key,
                row.element_name or row.element_id,
                row.assembly_code,
                row.matched_wbs_code or "",
                row.matched_wbs_title or "",
                f"{row.confidence:.2f}",
                row.strategy.value,
            )
        console.print(table)

    _run(_latest())


if __name__ == "__main__":
    app()

import asyncio, json, logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..adapters.parquet_sink import write_parquet
from ..config import DatasourceConfig
from ..domain.errors import BlockdiveError
from ..application.use_cases import Datasource
from ..logging_setup import configure_logging

app = typer.Typer(help="blockdive: block-range archive queries into Arrow tables.")
console = Console()


def _config(archive_url: Optional[str], concurrency: Optional[int], rps: Optional[float]) -> DatasourceConfig:
    overrides: dict = {}
    if archive_url: overrides["base_url"] = archive_url.rstrip("/")
    if concurrency is not None: overrides["max_concurrent_requests"] = concurrency or None
    if rps is not None: overrides["requests_per_second"] = rps or None
    return DatasourceConfig.from_env(**overrides)


def _run(coro):
    try:
        return asyncio.run(coro)
    except BlockdiveError as e:
        console.print(f"[red]error[/]: {e}")
        raise typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    json_logs: bool = typer.Option(False, "--json-logs", help="JSON lines on stdout instead of rich output"),
):
    configure_logging(logging.DEBUG if verbose else logging.INFO, json_lines=json_logs)


@app.command()
def height(archive_url: Optional[str] = typer.Option(None, "--archive-url")):
    """Print the highest block indexed by the archive."""
    async def go():
        async with Datasource(_config(archive_url, None, None)) as ds:
            return await ds.get_dataset_height()
    typer.echo(_run(go()))


@app.command()
def worker(block: int, archive_url: Optional[str] = typer.Option(None, "--archive-url")):
    """Print the worker URL serving BLOCK."""
    async def go():
        async with Datasource(_config(archive_url, None, None)) as ds:
            return await ds.get_worker_url(block)
    typer.echo(_run(go()))


@app.command()
def fetch(
    query_file: typer.FileText = typer.Argument(..., help="JSON filter document"),
    start_block: int = typer.Argument(..., help="First block (inclusive)"),
    end_block: int = typer.Argument(..., help="Last block (exclusive)"),
    out: Optional[str] = typer.Option(None, "--out", help="Write the table to this Parquet file"),
    step: Optional[int] = typer.Option(None, "--step", help="Split the range into concurrent sub-ranges"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Max in-flight requests (0 = unlimited)"),
    rps: Optional[float] = typer.Option(None, "--rps", help="Requests per second (0 = unthrottled)"),
    archive_url: Optional[str] = typer.Option(None, "--archive-url"),
    preview: int = typer.Option(5, "--preview", help="Rows to print"),
):
    """Fetch [START_BLOCK, END_BLOCK) for the query in QUERY_FILE and materialize it."""
    try:
        query = json.load(query_file)
    except ValueError as e:
        raise typer.BadParameter(f"not valid JSON: {e}", param_hint="QUERY_FILE")
    if not isinstance(query, dict):
        raise typer.BadParameter("the filter document must be a JSON object", param_hint="QUERY_FILE")

    async def go():
        async with Datasource(_config(archive_url, concurrency, rps)) as ds:
            return await ds.get_table(query, start_block, end_block, step=step)

    result = _run(go())
    tbl = Table(title=f"{result.dataset.value} [{start_block:,}, {end_block:,})")
    for name in result.column_names:
        tbl.add_column(name, overflow="fold")
    for row in result.table.slice(0, preview).to_pylist():
        tbl.add_row(*(str(row[n]) for n in result.column_names))
    console.print(tbl)
    console.print(f"[bold]rows[/]={result.num_rows}  [bold]columns[/]={len(result.column_names)}  "
                  f"[yellow]skipped[/]={result.total_skipped}")
    if out:
        path = write_parquet(result, out)
        console.print(f"💾 wrote {path}")


if __name__ == "__main__":
    app()

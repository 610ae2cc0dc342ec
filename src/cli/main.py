"""Fulfillment Desk CLI.

Runs the same operations as the dashboard API, in-process.

Usage:
    fulfillment-desk serve            Start the API server
    fulfillment-desk orders           List unfulfilled orders
    fulfillment-desk export           Export the manifest as a new batch
    fulfillment-desk ship             Run a label job on the latest batch
    fulfillment-desk history          Show batch history
    fulfillment-desk config show      Show resolved configuration
"""

import asyncio
import logging
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from src.cli.config import FulfillmentConfig, load_config
from src.cli.output import format_batch_table, format_job_detail, format_orders_table
from src.db.connection import SessionLocal, init_db
from src.db.models import JobStatus
from src.services.batch_store import BatchStore
from src.services.errors import CarrierAPIError, StorefrontError
from src.services.job_store import JobStore
from src.services.label_job import run_label_job
from src.services.order_processor import compute_stats, process_orders
from src.services.report_storage import build_report_storage
from src.services.report_writer import export_filename, render_csv, render_xlsx
from src.services.shopify_client import ShopifyClient

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="fulfillment-desk",
    help="Order manifests and shipping labels for the print-on-demand store",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None

# Exit codes for `ship`, so scripts can tell a halt from a failure
EXIT_FAILED = 1
EXIT_REQUIRES_MONEY = 2


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to fulfillment.yaml config file"
    ),
):
    """Fulfillment Desk CLI."""
    global _config_path
    _config_path = config


def _load() -> FulfillmentConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _batch_store(cfg: FulfillmentConfig) -> BatchStore:
    init_db()
    return BatchStore(SessionLocal, history_limit=cfg.reports.history_limit)


async def _fetch_rows(
    cfg: FulfillmentConfig,
    days: int | None,
    start: str | None,
    end: str | None,
) -> list[dict]:
    async with ShopifyClient(cfg.shopify) as shopify:
        orders = await shopify.get_unfulfilled_orders(
            lookback_days=days, start_date=start, end_date=end
        )
        return process_orders(orders, store_domain=shopify.domain)


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Start the API server (single worker)."""
    import uvicorn

    cfg = _load()
    uvicorn.run(
        "src.api.main:app",
        host=host or cfg.server.host,
        port=port or cfg.server.port,
        log_level=cfg.server.log_level,
        reload=reload,
        workers=1,
    )


# --- Orders ---


@app.command()
def orders(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Lookback window in days"),
    start: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="End date (YYYY-MM-DD)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List unfulfilled orders as manifest rows."""
    cfg = _load()
    try:
        rows = asyncio.run(_fetch_rows(cfg, days, start, end))
    except StorefrontError as e:
        console.print(f"[red]Shopify error:[/red] {e}")
        raise typer.Exit(1)
    stats = compute_stats(rows, cfg.reports.gst_rate)
    console.print(format_orders_table(rows, stats, as_json=json_output))


@app.command()
def export(
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Lookback window in days"),
    start: Optional[str] = typer.Option(None, "--start", help="Start date (YYYY-MM-DD)"),
    end: Optional[str] = typer.Option(None, "--end", help="End date (YYYY-MM-DD)"),
    fmt: str = typer.Option("csv", "--format", "-f", help="csv or xlsx"),
    output_dir: Path = typer.Option(Path("."), "--output", "-o", help="Directory to write to"),
    skip_history: bool = typer.Option(
        False, "--skip-history", help="Do not record the export as a batch"
    ),
):
    """Export unfulfilled orders as a manifest and record the batch."""
    if fmt not in ("csv", "xlsx"):
        console.print("[red]--format must be csv or xlsx[/red]")
        raise typer.Exit(1)

    cfg = _load()
    try:
        rows = asyncio.run(_fetch_rows(cfg, days, start, end))
    except StorefrontError as e:
        console.print(f"[red]Shopify error:[/red] {e}")
        raise typer.Exit(1)
    if not rows:
        console.print("[yellow]No unfulfilled orders to export.[/yellow]")
        raise typer.Exit(0)

    batch_id = "000" if skip_history else _batch_store(cfg).save_batch(rows).id
    gst_rate = cfg.reports.gst_rate
    content = render_xlsx(rows, gst_rate) if fmt == "xlsx" else render_csv(rows, gst_rate)
    filename = export_filename(rows, batch_id, extension=fmt, today=date.today())

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    path.write_bytes(content)
    console.print(f"[green]Exported {len(rows)} rows[/green] to {path}")
    if not skip_history:
        console.print(f"Batch: [cyan]{batch_id}[/cyan]")


# --- Shipping ---


@app.command()
def ship(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Run a label job for the latest batch and wait for it to finish."""
    cfg = _load()
    batch_store = _batch_store(cfg)
    job_store = JobStore(SessionLocal)
    job = job_store.create_job()
    console.print(f"Started job [cyan]{job.id}[/cyan]")

    try:
        job = asyncio.run(
            run_label_job(
                job.id,
                config=cfg,
                job_store=job_store,
                batch_store=batch_store,
                reports=build_report_storage(),
            )
        )
    except (StorefrontError, CarrierAPIError) as e:
        _log.exception("Label job %s crashed", job.id)
        job = job_store.fail(job.id, str(e))

    console.print(format_job_detail(job, as_json=json_output))
    if job.status == JobStatus.REQUIRES_MONEY.value:
        raise typer.Exit(EXIT_REQUIRES_MONEY)
    if job.status == JobStatus.FAILED.value:
        raise typer.Exit(EXIT_FAILED)


@app.command()
def history(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show exported batch history, newest first."""
    cfg = _load()
    console.print(format_batch_table(_batch_store(cfg).list_batches(), as_json=json_output))


# --- Config ---


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    return "***" + secret[-4:] if len(secret) > 8 else "***"


@config_app.command("show")
def config_show():
    """Display resolved configuration (secrets masked)."""
    cfg = _load()

    console.print("[bold]Server:[/bold]")
    console.print(f"  host: {cfg.server.host}")
    console.print(f"  port: {cfg.server.port}")
    console.print(f"  log_level: {cfg.server.log_level}")

    console.print("\n[bold]Shopify:[/bold]")
    console.print(f"  store_domain: {cfg.shopify.store_domain or '(not set)'}")
    console.print(f"  client_id: {_mask(cfg.shopify.client_id)}")
    console.print(f"  client_secret: {_mask(cfg.shopify.client_secret)}")
    console.print(f"  api_version: {cfg.shopify.api_version}")
    console.print(f"  lookback_days: {cfg.shopify.lookback_days}")

    console.print("\n[bold]Shiprocket:[/bold]")
    console.print(f"  base_url: {cfg.carrier.base_url}")
    console.print(f"  email: {cfg.carrier.email or '(not set)'}")
    console.print(f"  password: {_mask(cfg.carrier.password)}")

    console.print("\n[bold]Wallet:[/bold]")
    console.print(f"  fallback_shipping_cost: {cfg.wallet.fallback_shipping_cost}")
    console.print(f"  safety_margin: {cfg.wallet.safety_margin:.0%}")

    console.print("\n[bold]Jobs:[/bold]")
    console.print(f"  lookup_concurrency: {cfg.jobs.lookup_concurrency}")
    console.print(f"  schedule_pickup: {cfg.jobs.schedule_pickup}")
    console.print(f"  timeout_seconds: {cfg.jobs.timeout_seconds}")

    console.print("\n[bold]Reports:[/bold]")
    console.print(f"  gst_rate: {cfg.reports.gst_rate}%")
    console.print(f"  history_limit: {cfg.reports.history_limit}")


if __name__ == "__main__":
    app()

"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich output (default) and machine-parseable JSON
(--json flag). All formatting goes through these functions so the CLI
commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.api.schemas import serialize_job
from src.db.models import Batch, FulfillmentJob
from src.services.batch_store import batch_to_dict

console = Console()

STATUS_COLORS = {
    "STARTING": "yellow",
    "FETCHING_DETAILS": "blue",
    "CHECKING_WALLET": "blue",
    "PROCESSING_SHIPROCKET": "blue",
    "GENERATING_LABELS": "blue",
    "COMPLETED": "green",
    "FAILED": "red",
    "REQUIRES_MONEY": "magenta",
}


def format_rupees(amount: float | None) -> str:
    """Format an amount as rupees, or "-" for None."""
    if amount is None:
        return "-"
    return f"₹{amount:,.2f}"


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_orders_table(
    rows: list[dict[str, Any]],
    stats: dict[str, Any],
    as_json: bool = False,
) -> str:
    """Format processed order rows and their totals.

    Args:
        rows: Order rows from the order processor.
        stats: Totals from ``compute_stats``.
        as_json: If True, return JSON string instead of a Rich table.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps({"stats": stats, "orders": rows}, indent=2, ensure_ascii=False)

    if not rows:
        return "No unfulfilled orders found."

    table = Table(title="Unfulfilled Orders")
    table.add_column("Order", style="cyan", no_wrap=True)
    table.add_column("Customer")
    table.add_column("Category")
    table.add_column("Model")
    table.add_column("SKU")
    table.add_column("Payment")
    table.add_column("COGS", justify="right")

    for row in rows:
        table.add_row(
            str(row.get("orderId", "")),
            row.get("customerName") or "",
            row.get("category") or "",
            row.get("model") or "",
            str(row.get("sku") or ""),
            row.get("payment") or "",
            format_rupees(row.get("cogs")),
        )

    summary = (
        f"[bold]Orders:[/bold] {stats['totalOrders']}   "
        f"[bold]Items:[/bold] {stats['totalItems']}   "
        f"[bold]Subtotal:[/bold] {format_rupees(stats['subtotal'])}   "
        f"[bold]GST:[/bold] {format_rupees(stats['gst'])}   "
        f"[bold]Total:[/bold] {format_rupees(stats['total'])}"
    )
    return _render(table) + _render(summary)


def format_job_detail(job: FulfillmentJob, as_json: bool = False) -> str:
    """Format a label job as a Rich panel or JSON."""
    if as_json:
        return json.dumps(serialize_job(job), indent=2)

    color = STATUS_COLORS.get(job.status, "white")
    lines = [
        f"[bold]Job ID:[/bold]    {job.id}",
        f"[bold]Status:[/bold]    [{color}]{job.status}[/{color}]",
    ]
    if job.batch_id:
        lines.append(f"[bold]Batch:[/bold]     {job.batch_id}")
    if job.progress:
        lines.append(f"[bold]Progress:[/bold]  {job.progress}")
    if job.estimated_cost is not None:
        lines.append("")
        lines.append(f"[bold]Estimate:[/bold]  {format_rupees(job.estimated_cost)}")
        lines.append(f"[bold]Balance:[/bold]   {format_rupees(job.current_balance)}")
    if job.shortfall:
        lines.append(f"[bold magenta]Shortfall:[/bold magenta] {format_rupees(job.shortfall)}")
    if job.success_count is not None:
        lines.append("")
        lines.append(f"[bold]Shipped:[/bold]   [green]{job.success_count}[/green]")
        lines.append(f"[bold]Failed:[/bold]    [red]{job.failed_count or 0}[/red]")
        lines.append(f"[bold]High risk:[/bold] [yellow]{job.high_risk_count or 0}[/yellow]")
    for label, url in (
        ("Labels", job.label_url),
        ("High risk", job.high_risk_url),
        ("Failures", job.failed_report_url),
    ):
        if url:
            lines.append(f"[bold]{label}:[/bold] {url}")
    if job.message:
        lines.append("")
        lines.append(job.message)
    if job.error:
        lines.append("")
        lines.append(f"[bold red]Error:[/bold red] {job.error}")

    return _render(Panel("\n".join(lines), title="Label Job", border_style="cyan"))


def format_batch_table(batches: list[Batch], as_json: bool = False) -> str:
    """Format batch history, newest first."""
    if as_json:
        summaries = []
        for batch in batches:
            data = batch_to_dict(batch)
            data.pop("rows")
            summaries.append(data)
        return json.dumps(summaries, indent=2)

    if not batches:
        return "No batches exported yet."

    table = Table(title="Batch History")
    table.add_column("Batch", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Rows", justify="right")
    table.add_column("Exported")
    table.add_column("Modified")

    for batch in batches:
        table.add_row(
            batch.id,
            batch.type,
            str(len(batch.rows or [])),
            batch.timestamp[:19],
            batch.last_modified[:19] if batch.last_modified else "-",
        )
    return _render(table)

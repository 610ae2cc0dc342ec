"""Render order rows and job reports as CSV or XLSX bytes.

``render_csv`` is the print partner's manifest: data rows, then an ORDER
SUMMARY block and an INVOICE block. ``render_dynamic_csv`` is used for the
high-risk and failure reports whose rows have no fixed schema.
"""

import csv
import io
from collections import Counter
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

# UTF-8 BOM so Excel opens the rupee sign correctly
BOM = "\ufeff"

RULE = "════════════════════════"

MANIFEST_COLUMNS: list[tuple[str, str, int]] = [
    ("Category", "category", 20),
    ("Model", "model", 25),
    ("SKU", "sku", 30),
    ("Customer Name", "customerName", 25),
    ("Order ID", "orderId", 15),
    ("Preview Product URL", "previewUrl", 40),
    ("Payment", "payment", 15),
    ("COGS", "cogs", 15),
]


def _cogs(row: dict[str, Any]) -> float:
    try:
        return float(row.get("cogs") or 0)
    except (TypeError, ValueError):
        return 0.0


def _totals(rows: list[dict[str, Any]], gst_rate: float) -> tuple[float, float, float]:
    subtotal = sum(_cogs(r) for r in rows)
    gst = subtotal * (gst_rate / 100)
    return subtotal, gst, subtotal + gst


def _category_counts(rows: list[dict[str, Any]]) -> list[tuple[str, int]]:
    # Counter.most_common keeps first-seen order among equal counts
    return Counter(r.get("category") for r in rows).most_common()


def _format_rate(gst_rate: float) -> str:
    return f"{gst_rate:g}"


def _to_bytes(buffer: io.StringIO) -> bytes:
    return (BOM + buffer.getvalue()).encode("utf-8")


def render_csv(
    rows: list[dict[str, Any]],
    gst_rate: float = 18,
    now: Callable[[], datetime] | None = None,
) -> bytes:
    """Render the order manifest with summary and invoice blocks.

    Args:
        rows: Order rows.
        gst_rate: GST percentage applied to the COGS subtotal.
        now: Clock for the "Generated On" line.

    Returns:
        UTF-8 (with BOM) CSV bytes.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    writer.writerow([header for header, _, _ in MANIFEST_COLUMNS])
    for row in rows:
        cogs = _cogs(row)
        writer.writerow([
            row.get("category", ""),
            row.get("model", ""),
            row.get("sku", ""),
            row.get("customerName", ""),
            row.get("orderId", ""),
            row.get("previewUrl", ""),
            row.get("payment", ""),
            f"{cogs:.2f}" if cogs > 0 else "",
        ])

    writer.writerow([])
    writer.writerow([RULE, "ORDER SUMMARY", RULE])
    writer.writerow([])
    writer.writerow(["VARIANT CATEGORY", "QUANTITY"])
    for category, count in _category_counts(rows):
        writer.writerow([category, count])

    writer.writerow([])
    writer.writerow(["TOTAL ITEMS", len(rows)])
    writer.writerow(["TOTAL ORDERS", len({r.get("orderId") for r in rows})])

    subtotal, gst, grand_total = _totals(rows, gst_rate)
    generated_on = (now or datetime.now)()
    writer.writerow([])
    writer.writerow([RULE, "INVOICE", RULE])
    writer.writerow([])
    writer.writerow(["Subtotal (COGS)", f"₹{subtotal:.2f}"])
    writer.writerow([f"GST ({_format_rate(gst_rate)}%)", f"₹{gst:.2f}"])
    writer.writerow(["GRAND TOTAL", f"₹{grand_total:.2f}"])
    writer.writerow([])
    writer.writerow(["Generated On", generated_on.strftime("%d/%m/%Y, %H:%M:%S")])

    return _to_bytes(buffer)


def render_dynamic_csv(rows: list[dict[str, Any]]) -> bytes:
    """Render heterogeneous dict rows; header is the union of keys in first-seen order."""
    fieldnames: list[str] = []
    for row in rows:
        for key in row:
            if key not in fieldnames:
                fieldnames.append(key)

    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer, fieldnames=fieldnames, restval="", extrasaction="ignore", lineterminator="\n"
    )
    writer.writeheader()
    for row in rows:
        writer.writerow({
            k: "" if v is None else (v if isinstance(v, (str, int, float)) else str(v))
            for k, v in row.items()
        })
    return _to_bytes(buffer)


def render_xlsx(rows: list[dict[str, Any]], gst_rate: float = 18) -> bytes:
    """Render the order manifest as a styled single-sheet workbook."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Orders"
    ws.sheet_view.showGridLines = False

    header_font = Font(bold=True, color="FFFFFFFF", size=12)
    header_fill = PatternFill(fill_type="solid", fgColor="FF4F46E5")
    header_border = Border(bottom=Side(style="medium", color="FF000000"))
    row_border = Border(bottom=Side(style="thin", color="FFEEEEEE"))

    for col, (header, _, width) in enumerate(MANIFEST_COLUMNS, start=1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(vertical="center", horizontal="center")
        cell.border = header_border
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.row_dimensions[1].height = 30

    url_col = next(i for i, (_, key, _) in enumerate(MANIFEST_COLUMNS, start=1) if key == "previewUrl")
    cogs_col = len(MANIFEST_COLUMNS)

    for row_idx, row in enumerate(rows, start=2):
        for col, (_, key, _) in enumerate(MANIFEST_COLUMNS, start=1):
            value = _cogs(row) if key == "cogs" else row.get(key, "")
            cell = ws.cell(row=row_idx, column=col, value=value)
            cell.alignment = Alignment(
                vertical="center", horizontal="left" if col == url_col else "center"
            )
            cell.border = row_border
            if col == cogs_col:
                cell.number_format = "₹#,##0.00"
        ws.row_dimensions[row_idx].height = 20

    current = len(rows) + 3
    bold = Font(bold=True)
    ws.cell(row=current, column=1, value="ORDER SUMMARY").font = bold
    current += 1
    for category, count in _category_counts(rows):
        ws.cell(row=current, column=1, value=category)
        ws.cell(row=current, column=2, value=count)
        current += 1
    ws.cell(row=current, column=1, value="TOTAL ITEMS").font = bold
    ws.cell(row=current, column=2, value=len(rows))
    current += 1
    ws.cell(row=current, column=1, value="TOTAL ORDERS").font = bold
    ws.cell(row=current, column=2, value=len({r.get("orderId") for r in rows}))
    current += 2

    subtotal, gst, grand_total = _totals(rows, gst_rate)
    for label, amount in (
        ("Subtotal (COGS)", subtotal),
        (f"GST ({_format_rate(gst_rate)}%)", gst),
        ("GRAND TOTAL", grand_total),
    ):
        ws.cell(row=current, column=1, value=label).font = bold
        ws.cell(row=current, column=2, value=amount).number_format = "₹#,##0.00"
        current += 1

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def payment_mix(rows: list[dict[str, Any]]) -> str:
    """PREPAID, COD or MIXED depending on the payments present."""
    has_prepaid = any(r.get("payment") == "Prepaid" for r in rows)
    has_cod = any(r.get("payment") == "Cash on Delivery" for r in rows)
    if has_prepaid and not has_cod:
        return "PREPAID"
    if has_cod and not has_prepaid:
        return "COD"
    return "MIXED"


def export_filename(
    rows: list[dict[str, Any]],
    batch_id: str,
    extension: str = "csv",
    today: date | None = None,
) -> str:
    """Content-derived export name, e.g. ``2026-01-05_NLG_POD_COD_BATCH-042.csv``."""
    day = (today or date.today()).isoformat()
    return f"{day}_NLG_POD_{payment_mix(rows)}_BATCH-{batch_id[-3:]}.{extension}"

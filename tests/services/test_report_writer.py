"""Tests for manifest and report rendering."""

import csv
import io
from datetime import date, datetime

from openpyxl import load_workbook

from src.services.report_writer import (
    BOM,
    export_filename,
    payment_mix,
    render_csv,
    render_dynamic_csv,
    render_xlsx,
)
from tests.helpers import make_row

FIXED_NOW = datetime(2026, 1, 5, 14, 30, 0)


def _parse(content: bytes) -> list[list[str]]:
    text = content.decode("utf-8")
    assert text.startswith(BOM)
    return list(csv.reader(io.StringIO(text[len(BOM):])))


class TestRenderCsv:
    """Print partner manifest."""

    def setup_method(self):
        self.rows = [
            make_row("A", payment="Cash on Delivery", cogs=50, category="Premium Hard Case"),
            make_row("A", payment="Cash on Delivery", cogs=50, category="Premium Tough Case"),
            make_row("B", payment="Prepaid", cogs=200, category="Premium Tough Case"),
        ]

    def test_header_and_data_rows(self):
        lines = _parse(render_csv(self.rows, now=lambda: FIXED_NOW))
        assert lines[0] == [
            "Category", "Model", "SKU", "Customer Name", "Order ID",
            "Preview Product URL", "Payment", "COGS",
        ]
        assert lines[1][4] == "A"
        assert lines[1][7] == "50.00"

    def test_zero_cogs_is_blank(self):
        lines = _parse(render_csv([make_row(cogs=0)], now=lambda: FIXED_NOW))
        assert lines[1][7] == ""

    def test_summary_counts_descending(self):
        lines = _parse(render_csv(self.rows, now=lambda: FIXED_NOW))
        start = lines.index(["VARIANT CATEGORY", "QUANTITY"])
        assert lines[start + 1] == ["Premium Tough Case", "2"]
        assert lines[start + 2] == ["Premium Hard Case", "1"]
        assert ["TOTAL ITEMS", "3"] in lines
        assert ["TOTAL ORDERS", "2"] in lines

    def test_invoice_block(self):
        lines = _parse(render_csv(self.rows, gst_rate=18, now=lambda: FIXED_NOW))
        assert ["Subtotal (COGS)", "₹300.00"] in lines
        assert ["GST (18%)", "₹54.00"] in lines
        assert ["GRAND TOTAL", "₹354.00"] in lines
        assert lines[-1] == ["Generated On", "05/01/2026, 14:30:00"]


class TestRenderDynamicCsv:
    """Schema-less report rows."""

    def test_header_is_union_in_first_seen_order(self):
        rows = [
            {"orderId": "#1", "error": "Fetch Failed: boom"},
            {"Order ID": "#2", "Reason": "Missing Phone", "orderId": "#2"},
        ]
        lines = _parse(render_dynamic_csv(rows))
        assert lines[0] == ["orderId", "error", "Order ID", "Reason"]
        assert lines[1] == ["#1", "Fetch Failed: boom", "", ""]
        assert lines[2] == ["#2", "", "#2", "Missing Phone"]

    def test_none_values_are_blank(self):
        lines = _parse(render_dynamic_csv([{"a": None, "b": 1}]))
        assert lines[1] == ["", "1"]


class TestRenderXlsx:
    """Spreadsheet export."""

    def test_workbook_contents(self):
        rows = [make_row("A", cogs=120), make_row("B", cogs=80)]
        wb = load_workbook(io.BytesIO(render_xlsx(rows)))
        ws = wb["Orders"]
        assert ws["A1"].value == "Category"
        assert ws["H2"].value == 120
        labels = [ws.cell(row=r, column=1).value for r in range(1, ws.max_row + 1)]
        assert "ORDER SUMMARY" in labels
        assert "GRAND TOTAL" in labels


class TestExportFilename:
    """Content-derived file names."""

    def test_payment_mix(self):
        assert payment_mix([make_row(payment="Prepaid")]) == "PREPAID"
        assert payment_mix([make_row(payment="Cash on Delivery")]) == "COD"
        assert payment_mix([
            make_row(payment="Prepaid"), make_row(payment="Cash on Delivery"),
        ]) == "MIXED"

    def test_filename_uses_last_three_of_batch(self):
        name = export_filename(
            [make_row(payment="Cash on Delivery")], "000042", today=date(2026, 1, 5)
        )
        assert name == "2026-01-05_NLG_POD_COD_BATCH-042.csv"

    def test_xlsx_extension(self):
        name = export_filename([make_row()], "000007", extension="xlsx", today=date(2026, 1, 5))
        assert name.endswith("_BATCH-007.xlsx")

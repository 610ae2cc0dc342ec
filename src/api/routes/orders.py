"""FastAPI routes for unfulfilled orders and manifest export."""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from src.api.dependencies import get_batch_store, get_config, get_shopify_client
from src.api.schemas import ExportRequest, OrdersResponse, OrderStats
from src.cli.config import FulfillmentConfig
from src.services.batch_store import BatchStore
from src.services.order_processor import compute_stats, process_orders
from src.services.report_writer import export_filename, render_csv, render_xlsx
from src.services.shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

# Batch id used in the filename of exports kept out of history
UNSAVED_BATCH_ID = "000"

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("", response_model=OrdersResponse)
async def get_orders(
    days: int | None = Query(None, ge=0, le=365),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    shopify: ShopifyClient = Depends(get_shopify_client),
    config: FulfillmentConfig = Depends(get_config),
) -> OrdersResponse:
    """Fetch unfulfilled orders and expand them into manifest rows.

    Args:
        days: Lookback window in days (config default when omitted).
        start_date: ISO date overriding the lookback window.
        end_date: Optional ISO date upper bound.
    """
    orders = await shopify.get_unfulfilled_orders(
        lookback_days=days, start_date=start_date, end_date=end_date
    )
    rows = process_orders(orders, store_domain=shopify.domain)
    stats = compute_stats(rows, config.reports.gst_rate)
    return OrdersResponse(
        stats=OrderStats.model_validate(stats),
        orders=rows,
        raw_count=len(orders),
    )


@router.post("/export")
def export_orders(
    request: ExportRequest,
    batch_store: BatchStore = Depends(get_batch_store),
    config: FulfillmentConfig = Depends(get_config),
) -> Response:
    """Render the manifest and record it as the newest batch.

    With ``skipHistory`` the file is produced without touching history,
    so a later label job still ships the previous batch.
    """
    if request.skip_history:
        batch_id = UNSAVED_BATCH_ID
    else:
        batch_id = batch_store.save_batch(request.rows).id

    gst_rate = config.reports.gst_rate
    if request.format == "xlsx":
        content = render_xlsx(request.rows, gst_rate)
        media_type = XLSX_MEDIA_TYPE
    else:
        content = render_csv(request.rows, gst_rate)
        media_type = "text/csv; charset=utf-8"

    filename = export_filename(request.rows, batch_id, extension=request.format)
    logger.info("Exported %d rows as %s", len(request.rows), filename)
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Filename": filename,
            "X-Batch-Id": batch_id,
            "Access-Control-Expose-Headers": "Content-Disposition, X-Filename, X-Batch-Id",
        },
    )

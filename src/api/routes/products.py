"""FastAPI routes for product maintenance."""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_shopify_client
from src.api.schemas import SkuAssignedResponse
from src.services.shopify_client import ShopifyClient

router = APIRouter(prefix="/products", tags=["products"])


@router.post("/{product_id}/assign-sku", response_model=SkuAssignedResponse)
async def assign_sku(
    product_id: str,
    shopify: ShopifyClient = Depends(get_shopify_client),
) -> SkuAssignedResponse:
    """Give every variant of a product the next free numeric SKU."""
    sku = await shopify.assign_sku_to_product(product_id)
    return SkuAssignedResponse(product_id=product_id, sku=sku)

"""Turn canonical storefront orders into printable order rows.

One row is produced per unit of each line item. Rows are plain dicts with
camelCase keys because they round-trip through the API and are stored
as-is inside batches:

    {category, model, sku, customerName, orderId, id, previewUrl,
     payment, cogs, price}
"""

import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

PREPAID = "Prepaid"
CASH_ON_DELIVERY = "Cash on Delivery"

PREPAID_GATEWAYS = ("razorpay", "paytm", "stripe", "paypal")

# Lowercase variant-title fragment -> printed category
CATEGORY_RENAMES: dict[str, str] = {
    "double armoured": "Premium Tough Case",
    "slim snap case": "Premium Hard Case",
}

GRIP_PAD_CATEGORY = "GripPad"

# Storefront colour option -> colour name used by the print partner
GRIP_PAD_COLOUR_MAP: dict[str, str] = {
    "eclipse": "Black",
    "bubblegum": "BabyPink",
    "flamingo": "Hot Pink",
    "neptune": "Teal",
    "butter yellow": "Neon Yellow",
    "cherry": "Red",
    "citrus": "Orange",
    "butteryellow": "Neon Yellow",
    "baby pink": "BabyPink",
}

_GRIP_TITLE = re.compile(r"Grip\s*Pad|Sticky\s*Grip|Suction", re.IGNORECASE)
_GRIP_CATEGORY = re.compile(r"Grip\s*Pad|Sticky\s*Grip", re.IGNORECASE)
_GRIP_OPTION = re.compile(r"color|style|model", re.IGNORECASE)
_MODEL_ATTR = re.compile(r"model|device", re.IGNORECASE)
_BRAND_ATTR = re.compile(r"brand", re.IGNORECASE)


def payment_method(order: dict[str, Any]) -> str:
    """Prepaid when paid or paid through a known online gateway."""
    gateways = " ".join(order.get("paymentGatewayNames") or []).lower()
    if order.get("displayFinancialStatus") == "PAID" or any(
        g in gateways for g in PREPAID_GATEWAYS
    ):
        return PREPAID
    return CASH_ON_DELIVERY


def map_category(raw_category: str | None) -> str:
    """Rename storefront variant titles to the print partner's categories."""
    if not raw_category:
        return ""
    lowered = raw_category.lower()
    for fragment, renamed in CATEGORY_RENAMES.items():
        if fragment in lowered:
            return renamed
    return raw_category


def clean_model_name(
    raw_model: str,
    brand: str | None = None,
    attributes: list[dict[str, Any]] | None = None,
) -> str:
    """Normalize a device model string from line item attributes.

    Explicit ``model``/``brand`` attributes win over ``raw_model``.
    ``Brand: X :Model: Y`` strings are reduced to ``Y``. Apple models lose
    the ``Apple`` prefix; Samsung models gain a ``Samsung`` prefix.
    """
    attributes = attributes or []
    model = (raw_model or "").strip()

    attr_model = next(
        (a.get("value") for a in attributes if a.get("key") and "model" in a["key"].lower()),
        None,
    )
    attr_brand = next(
        (a.get("value") for a in attributes if a.get("key") and "brand" in a["key"].lower()),
        None,
    )
    if attr_model:
        model = attr_model
        if not brand and attr_brand:
            brand = attr_brand

    if re.search(r"Model:", model, re.IGNORECASE):
        model = re.sub(r".*Model:\s*", "", model, flags=re.IGNORECASE)
    model = re.sub(r"(Brand:|Device:)\s*", "", model, flags=re.IGNORECASE)
    model = re.sub(r"^[:\s]+", "", model)

    model_lower = model.lower()
    detected = (brand or "").lower()
    if not detected:
        if "iphone" in model_lower or "ipad" in model_lower or "apple" in model_lower:
            detected = "apple"
        elif "samsung" in model_lower or "galaxy" in model_lower:
            detected = "samsung"
        elif "google" in model_lower or "pixel" in model_lower:
            detected = "google"
        elif "oneplus" in model_lower:
            detected = "oneplus"

    if detected == "apple":
        model = re.sub(r"^apple\s+", "", model, flags=re.IGNORECASE)
        model = re.sub(r"apple\s*iphone", "iPhone", model, flags=re.IGNORECASE)
        return model.strip()

    if detected == "samsung":
        if not model_lower.startswith("samsung"):
            model = f"Samsung {model}"
        return model.strip()

    return model.strip()


def grip_pad_model(item: dict[str, Any]) -> str:
    """Resolve the printed model for a grip pad line item.

    Order of preference: ``custom.handle`` metafield, ``custom.color_handle``
    metafield, mapped colour option, product handle.
    """
    variant = item.get("variant") or {}
    product = item.get("product") or {}

    meta_handle = (variant.get("handle_metafield") or {}).get("value")
    meta_colour = (variant.get("color_handle") or {}).get("value")

    if meta_handle:
        model = meta_handle
    elif meta_colour:
        model = meta_colour
    else:
        options = variant.get("selectedOptions") or []
        option = next((o for o in options if _GRIP_OPTION.search(o.get("name") or "")), None)
        if option is None and options:
            option = options[0]
        colour = (option or {}).get("value") or ""
        if colour:
            model = GRIP_PAD_COLOUR_MAP.get(colour.strip().lower(), colour)
        else:
            model = product.get("handle") or GRIP_PAD_CATEGORY

    if model and len(model) < 20 and "grip" not in model.lower():
        model = model[0].upper() + model[1:]
    return model


def _as_float(value: Any) -> float:
    try:
        return float(value) if value not in (None, "") else 0.0
    except (TypeError, ValueError):
        return 0.0


def _line_items(order: dict[str, Any]) -> list[dict[str, Any]]:
    items = order.get("lineItems") or []
    if isinstance(items, dict):
        return [edge["node"] for edge in items.get("edges") or []]
    return items


def process_orders(
    orders: list[dict[str, Any]],
    store_domain: str | None = None,
) -> list[dict[str, Any]]:
    """Expand canonical orders into order rows.

    Args:
        orders: Canonical orders from ShopifyClient.
        store_domain: Normalized store domain used to build preview URLs
            for products without a public storefront URL.

    Returns:
        One row dict per unit ordered.
    """
    rows: list[dict[str, Any]] = []
    for order in orders:
        order_id = (order.get("name") or "").replace("#", "")
        shipping = order.get("shippingAddress") or {}
        customer_name = shipping.get("name") or "Guest"
        payment = payment_method(order)

        for item in _line_items(order):
            variant = item.get("variant") or {}
            product = item.get("product") or {}
            attributes = item.get("customAttributes") or []

            category = map_category(item.get("variantTitle") or variant.get("title") or "Default")

            if _GRIP_TITLE.search(item.get("title") or "") or _GRIP_CATEGORY.search(category):
                category = GRIP_PAD_CATEGORY
                model = grip_pad_model(item)
            else:
                raw_model = next(
                    (a.get("value") or "" for a in attributes if _MODEL_ATTR.search(a.get("key") or "")),
                    "",
                )
                raw_brand = next(
                    (a.get("value") or "" for a in attributes if _BRAND_ATTR.search(a.get("key") or "")),
                    "",
                )
                model = clean_model_name(raw_model, raw_brand, attributes)

            preview_url = ""
            if product.get("onlineStoreUrl"):
                preview_url = product["onlineStoreUrl"]
            elif product.get("handle") and store_domain:
                preview_url = f"https://{store_domain}/products/{product['handle']}"

            unit_cost = ((variant.get("inventoryItem") or {}).get("unitCost") or {}).get("amount")
            row = {
                "category": category,
                "model": model,
                "sku": item.get("sku") or variant.get("sku") or "",
                "customerName": customer_name,
                "orderId": order_id,
                "id": order.get("id"),
                "previewUrl": preview_url,
                "payment": payment,
                "cogs": _as_float(unit_cost),
                "price": _as_float(item.get("originalUnitPrice")),
            }
            quantity = item.get("quantity") or 1
            rows.extend(dict(row) for _ in range(int(quantity)))

    logger.debug("Processed %d orders into %d rows", len(orders), len(rows))
    return rows


def compute_stats(rows: list[dict[str, Any]], gst_rate: float) -> dict[str, float | int]:
    """Dashboard totals for a set of order rows."""
    subtotal = sum(_as_float(r.get("cogs")) for r in rows)
    revenue = sum(_as_float(r.get("price")) for r in rows)
    gst = subtotal * (gst_rate / 100)
    return {
        "totalOrders": len({r.get("orderId") for r in rows}),
        "totalItems": len(rows),
        "subtotal": subtotal,
        "revenue": revenue,
        "gst": gst,
        "total": subtotal + gst,
    }

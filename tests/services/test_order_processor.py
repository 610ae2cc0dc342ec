"""Tests for turning canonical orders into manifest rows."""

import pytest

from src.services.order_processor import (
    CASH_ON_DELIVERY,
    PREPAID,
    clean_model_name,
    compute_stats,
    grip_pad_model,
    map_category,
    payment_method,
    process_orders,
)
from tests.helpers import make_line_item, make_order


class TestPaymentMethod:
    """Prepaid vs cash on delivery."""

    def test_paid_status_is_prepaid(self):
        assert payment_method(make_order(financial_status="PAID")) == PREPAID

    def test_online_gateway_is_prepaid(self):
        order = make_order(financial_status="PENDING", gateways=["Razorpay Secure"])
        assert payment_method(order) == PREPAID

    def test_pending_cod_is_cash_on_delivery(self):
        order = make_order(financial_status="PENDING", gateways=["Cash on Delivery (COD)"])
        assert payment_method(order) == CASH_ON_DELIVERY


class TestCategoryAndModel:
    """Category renames and model cleaning."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Double Armoured / Matte", "Premium Tough Case"),
            ("Slim Snap Case", "Premium Hard Case"),
            ("Glass Case", "Glass Case"),
            (None, ""),
        ],
    )
    def test_map_category(self, raw, expected):
        assert map_category(raw) == expected

    def test_model_prefix_is_stripped(self):
        assert clean_model_name("Brand: Apple :Model: iPhone 15") == "iPhone 15"

    def test_apple_prefix_removed(self):
        assert clean_model_name("Apple iPhone 14 Pro") == "iPhone 14 Pro"

    def test_samsung_prefix_added(self):
        assert clean_model_name("Galaxy S24") == "Samsung Galaxy S24"

    def test_samsung_prefix_not_doubled(self):
        assert clean_model_name("Samsung Galaxy S24") == "Samsung Galaxy S24"

    def test_attribute_model_wins(self):
        attributes = [{"key": "Model", "value": "Pixel 8"}, {"key": "Brand", "value": "Google"}]
        assert clean_model_name("ignored", None, attributes) == "Pixel 8"


class TestGripPadModel:
    """Grip pad model resolution."""

    def test_metafield_handle_wins(self):
        item = {"variant": {"handle_metafield": {"value": "neon-wave"}}}
        assert grip_pad_model(item) == "Neon-wave"

    def test_colour_option_is_mapped(self):
        item = {"variant": {"selectedOptions": [{"name": "Color", "value": "Eclipse"}]}}
        assert grip_pad_model(item) == "Black"

    def test_unmapped_colour_is_kept(self):
        item = {"variant": {"selectedOptions": [{"name": "Style", "value": "lavender"}]}}
        assert grip_pad_model(item) == "Lavender"

    def test_product_handle_fallback(self):
        item = {"variant": {}, "product": {"handle": "sticky-grip-pad"}}
        assert grip_pad_model(item) == "sticky-grip-pad"


class TestProcessOrders:
    """Row expansion."""

    def test_one_row_per_unit(self):
        order = make_order("1001", line_items=[make_line_item(quantity=3)])
        rows = process_orders([order])
        assert len(rows) == 3
        assert all(r["orderId"] == "1001" for r in rows)
        rows[0]["model"] = "changed"
        assert rows[1]["model"] == "iPhone 15 Pro"

    def test_row_fields(self):
        order = make_order("1001", customer="Ravi Kumar", financial_status="PENDING")
        [row] = process_orders([order], store_domain="my-shop.myshopify.com")
        assert row == {
            "category": "Premium Tough Case",
            "model": "iPhone 15 Pro",
            "sku": "101",
            "customerName": "Ravi Kumar",
            "orderId": "1001",
            "id": "gid://shopify/Order/1001",
            "previewUrl": "https://my-shop.myshopify.com/products/custom-case",
            "payment": CASH_ON_DELIVERY,
            "cogs": 250.0,
            "price": 999.0,
        }

    def test_guest_when_no_shipping_name(self):
        order = make_order(customer="")
        assert process_orders([order])[0]["customerName"] == "Guest"

    def test_grip_pad_items_use_grip_category(self):
        item = make_line_item(title="Sticky Grip Pad", variant_title="Eclipse")
        item["variant"]["selectedOptions"] = [{"name": "Color", "value": "Eclipse"}]
        [row] = process_orders([make_order(line_items=[item])])
        assert row["category"] == "GripPad"
        assert row["model"] == "Black"

    def test_missing_unit_cost_is_zero(self):
        order = make_order(line_items=[make_line_item(unit_cost=None)])
        assert process_orders([order])[0]["cogs"] == 0.0


class TestComputeStats:
    """Dashboard totals."""

    def test_totals(self):
        rows = [
            {"orderId": "A", "cogs": 50, "price": 500},
            {"orderId": "A", "cogs": 50, "price": 500},
            {"orderId": "B", "cogs": 200, "price": 900},
        ]
        stats = compute_stats(rows, gst_rate=18)
        assert stats["totalOrders"] == 2
        assert stats["totalItems"] == 3
        assert stats["subtotal"] == 300
        assert stats["revenue"] == 1900
        assert stats["gst"] == pytest.approx(54)
        assert stats["total"] == pytest.approx(354)

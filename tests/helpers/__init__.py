"""Shared builders for canonical orders and HTTP fakes used across tests."""

from tests.helpers.fakes import FakeTransport, json_response
from tests.helpers.orders import make_line_item, make_order, make_row

__all__ = [
    "FakeTransport",
    "json_response",
    "make_line_item",
    "make_order",
    "make_row",
]

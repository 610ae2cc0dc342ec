"""Risk checks applied to canonical orders before anything is shipped.

Three pure checks, run in this order by the label job:
1. Address completeness (length, then degenerate-pattern blocklist)
2. Indian mobile number format
3. Same address shipped to different names across the batch

Orders are canonical storefront dicts (``shippingAddress``, ``phone``,
``id``, ``name``) as returned by ShopifyClient.get_order.
"""

import re
from dataclasses import dataclass
from typing import Any

# Cleaned numbers only: 10 digits starting with 6-9
VALID_PHONE_REGEX = re.compile(r"^[6-9]\d{9}$")

MIN_ADDRESS_LENGTH = 10

BLOCKED_ADDRESS_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^house\s*\d+$", re.IGNORECASE),
    re.compile(r"^flat\s*\d+$", re.IGNORECASE),
    re.compile(r"^room\s*\d+$", re.IGNORECASE),
    re.compile(r"^\d+$"),
    re.compile(r"^no\s+\d+$", re.IGNORECASE),
    re.compile(r"^same$", re.IGNORECASE),
    re.compile(r"^test$", re.IGNORECASE),
    re.compile(r"^unknown(\s*address)?$", re.IGNORECASE),
    re.compile(r"^na$", re.IGNORECASE),
    re.compile(r"^n/a$", re.IGNORECASE),
)

_NON_DIGIT = re.compile(r"\D")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class RiskVerdict:
    """Outcome of a single risk check."""

    valid: bool
    reason: str | None = None


def validate_phone(phone: str | None) -> RiskVerdict:
    """Validate an Indian mobile number.

    Non-digits are stripped; a number longer than 10 digits loses a leading
    ``91`` country code or, failing that, a leading trunk ``0``.

    Args:
        phone: Raw phone string from the order (may be None).

    Returns:
        RiskVerdict with the first failing reason.
    """
    if not phone:
        return RiskVerdict(False, "Missing Phone")

    cleaned = _NON_DIGIT.sub("", phone)
    if len(cleaned) > 10:
        if cleaned.startswith("91"):
            cleaned = cleaned[2:]
        elif cleaned.startswith("0"):
            cleaned = cleaned[1:]

    if len(cleaned) != 10:
        return RiskVerdict(False, "Phone length invalid (must be 10 digits)")
    if not VALID_PHONE_REGEX.match(cleaned):
        return RiskVerdict(False, "Invalid Indian Mobile Format")
    return RiskVerdict(True)


def validate_address(order: dict[str, Any]) -> RiskVerdict:
    """Validate the shipping address of a canonical order.

    Length is checked before the blocklist; the offending text is echoed in
    the reason so operators can triage from the report alone.
    """
    address = order.get("shippingAddress")
    if not address:
        return RiskVerdict(False, "Missing Shipping Address")

    address1 = (address.get("address1") or "").strip()
    address2 = (address.get("address2") or "").strip()
    full_address = f"{address1} {address2}".strip()

    if len(full_address) < MIN_ADDRESS_LENGTH:
        return RiskVerdict(False, f"Address too short ({len(full_address)} chars)")

    for pattern in BLOCKED_ADDRESS_PATTERNS:
        if pattern.match(full_address):
            return RiskVerdict(False, f'Suspicious Address Pattern: "{full_address}"')

    return RiskVerdict(True)


def duplicate_key(order: dict[str, Any]) -> str | None:
    """Grouping key for duplicate detection: lowercase alphanumeric address1 + zip.

    Transliteration and abbreviation variants ("St." vs "Street") produce
    different keys; matching sensitivity is intentionally left as is.
    """
    address = order.get("shippingAddress")
    if not address:
        return None
    raw = f"{address.get('address1') or ''}{address.get('zip') or ''}".lower()
    return _NON_ALNUM.sub("", raw)


def find_duplicates(orders: list[dict[str, Any]]) -> dict[str, str]:
    """Flag orders sharing an address but shipped to different names.

    Same address with the same name is a repeat customer and is not
    flagged. Every member of a mixed-name group gets the same reason,
    listing the colliding order names.

    Args:
        orders: Canonical orders surviving the address and phone checks.

    Returns:
        Mapping of order id to reason for every flagged order.
    """
    groups: dict[str, list[dict[str, str]]] = {}
    for order in orders:
        key = duplicate_key(order)
        if key is None:
            continue
        groups.setdefault(key, []).append({
            "id": order.get("id"),
            "name": (order["shippingAddress"].get("name") or "").lower().strip(),
            "display_id": order.get("name") or str(order.get("id")),
        })

    flagged: dict[str, str] = {}
    for group in groups.values():
        if len(group) < 2:
            continue
        if len({member["name"] for member in group}) <= 1:
            continue
        matches = ", ".join(member["display_id"] for member in group)
        reason = f"Duplicate Address with Different Names (Matches: {matches})"
        for member in group:
            flagged[member["id"]] = reason
    return flagged

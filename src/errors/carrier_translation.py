"""Carrier error message classification.

Shiprocket does not return stable error codes for courier assignment
failures, only free-text messages. The keyword lists below are the single
place where those messages are interpreted; everything else works with
the resulting category.
"""

from enum import Enum


class CarrierErrorKind(str, Enum):
    """Categories of courier assignment failures."""

    LOW_WALLET = "LOW_WALLET"
    DIMENSIONS = "DIMENSIONS"
    GENERIC = "GENERIC"


# Matched case-insensitively as substrings of the carrier message
LOW_WALLET_KEYWORDS: tuple[str, ...] = ("wallet", "balance", "insufficient")
DIMENSION_KEYWORDS: tuple[str, ...] = (
    "dimension",
    "weight",
    "length",
    "breadth",
    "height",
)


def classify_carrier_error(message: str | None) -> CarrierErrorKind:
    """Classify a carrier failure message.

    Low wallet wins over dimensions when a message mentions both, since a
    top-up is required before any other fix can be verified.

    Args:
        message: Raw message from the carrier response (may be None).

    Returns:
        The matching CarrierErrorKind, GENERIC when nothing matches.
    """
    if not message:
        return CarrierErrorKind.GENERIC
    lowered = message.lower()
    if any(keyword in lowered for keyword in LOW_WALLET_KEYWORDS):
        return CarrierErrorKind.LOW_WALLET
    if any(keyword in lowered for keyword in DIMENSION_KEYWORDS):
        return CarrierErrorKind.DIMENSIONS
    return CarrierErrorKind.GENERIC


def format_assign_failure(message: str | None) -> str:
    """Build the failure-report reason for a courier assignment failure.

    Args:
        message: Raw message from the carrier response.

    Returns:
        Reason string prefixed with "Assign Failed:".
    """
    detail = message or "Unknown error"
    kind = classify_carrier_error(message)
    if kind is CarrierErrorKind.DIMENSIONS:
        return (
            "Assign Failed: Package dimensions/weight missing "
            f"(set them on the product or in Shiprocket) - {detail}"
        )
    if kind is CarrierErrorKind.LOW_WALLET:
        return f"Assign Failed: Low wallet balance (recharge Shiprocket wallet) - {detail}"
    return f"Assign Failed: {detail}"

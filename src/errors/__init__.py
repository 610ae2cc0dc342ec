"""Error handling for the fulfillment service.

This package provides:
- Typed domain exceptions mapped to HTTP status codes
- Carrier error message classification for assignment failures
"""

from src.errors.carrier_translation import (
    DIMENSION_KEYWORDS,
    LOW_WALLET_KEYWORDS,
    CarrierErrorKind,
    classify_carrier_error,
    format_assign_failure,
)
from src.errors.domain import (
    DomainError,
    NotFoundError,
    ValidationError,
)

__all__ = [
    # Domain
    "DomainError",
    "NotFoundError",
    "ValidationError",
    # Carrier classification
    "CarrierErrorKind",
    "classify_carrier_error",
    "format_assign_failure",
    "LOW_WALLET_KEYWORDS",
    "DIMENSION_KEYWORDS",
]

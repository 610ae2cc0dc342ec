"""Shared service-layer error types.

Provides error dataclasses used by the storefront and carrier clients.
Centralised here to avoid circular imports between service modules.
"""

from dataclasses import dataclass


@dataclass
class CarrierAPIError(Exception):
    """Error from the Shiprocket API.

    Attributes:
        message: Human-readable error message (carrier text when available)
        status_code: HTTP status code, None for transport failures
        details: Raw error body
    """

    message: str
    status_code: int | None = None
    details: dict | None = None

    def __str__(self) -> str:
        """Return the carrier message."""
        return self.message


@dataclass
class AuthenticationError(CarrierAPIError):
    """Carrier rejected the credentials or the login call failed."""


@dataclass
class StorefrontError(Exception):
    """Error from the Shopify Admin API.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code, None for GraphQL-level errors
        details: Raw errors payload
    """

    message: str
    status_code: int | None = None
    details: list | dict | None = None

    def __str__(self) -> str:
        """Return the storefront message."""
        return self.message

"""Shiprocket external API client.

Wraps the handful of Shiprocket endpoints the label job needs: login,
wallet balance, order search by channel order id, AWB assignment, pickup
scheduling and label generation.

The client never retries. Per-order failures are returned as result
objects so the caller can bucket them; only authentication and transport
problems on the login call raise.

Example:
    async with ShiprocketClient(config.carrier) as client:
        await client.authenticate()
        match = await client.find_order_by_external_id("1573")
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

import httpx

from src.cli.config import CarrierConfig
from src.errors.carrier_translation import CarrierErrorKind, classify_carrier_error
from src.services.errors import AuthenticationError, CarrierAPIError
from src.utils.redaction import redact_for_logging

logger = logging.getLogger(__name__)


@dataclass
class CarrierOrderMatch:
    """Result of searching the carrier for a storefront order."""

    found: bool
    shipment_id: int | str | None = None
    order_id: int | str | None = None
    status: str | None = None


@dataclass
class CourierAssignment:
    """Result of an AWB assignment request.

    ``error`` is "LOW_WALLET" for balance failures, otherwise the carrier
    message (or None on success).
    """

    success: bool
    awb: str | None = None
    error: str | None = None
    message: str | None = None


@dataclass
class LabelResult:
    """Result of a (bulk) label generation request."""

    success: bool
    url: str | None = None
    error: str | None = None


@dataclass
class PickupResult:
    """Result of a pickup scheduling request."""

    success: bool
    date: str | None = None
    error: str | None = None


def _error_message(response: httpx.Response) -> str:
    """Extract the carrier's message from an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
        errors = body.get("errors")
        if isinstance(errors, dict) and errors:
            first = next(iter(errors.values()))
            if isinstance(first, list) and first:
                return str(first[0])
            return str(first)
    return f"HTTP {response.status_code}"


class ShiprocketClient:
    """Stateful Shiprocket API client.

    The bearer token is memoized for the lifetime of the instance; callers
    that see it rejected call ``invalidate_token()`` and authenticate again.
    """

    def __init__(
        self,
        config: CarrierConfig,
        http_client: httpx.AsyncClient | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Carrier credentials, base URL and timeouts.
            http_client: Optional pre-built httpx client (tests inject a
                mock transport here). Created on demand when omitted.
            today: Clock used for pickup dates; defaults to local date.
        """
        self._config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._token: str | None = None
        self._today = today or date.today

    async def __aenter__(self) -> "ShiprocketClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                timeout=self._config.timeout_seconds,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self._config.base_url.rstrip('/')}{path}"

    async def _headers(self) -> dict[str, str]:
        token = await self.authenticate()
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    @property
    def is_authenticated(self) -> bool:
        """Whether a token is currently cached."""
        return self._token is not None

    def invalidate_token(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._token = None

    async def authenticate(self) -> str:
        """Log in and cache the bearer token.

        Returns:
            The bearer token.

        Raises:
            AuthenticationError: Credentials missing or rejected, or the
                login call could not be made.
        """
        if self._token:
            return self._token

        if not self._config.email or not self._config.password:
            raise AuthenticationError("Shiprocket credentials are not configured")

        client = self._ensure_client()
        try:
            response = await client.post(
                self._url("/auth/login"),
                json={"email": self._config.email, "password": self._config.password},
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("Shiprocket login request failed: %s", e)
            raise AuthenticationError(f"Shiprocket Authentication Failed: {e}") from e

        if response.status_code >= 400:
            detail = _error_message(response)
            logger.error(
                "Shiprocket login rejected (HTTP %d): %s", response.status_code, detail
            )
            raise AuthenticationError(
                "Shiprocket Authentication Failed",
                status_code=response.status_code,
            )

        token = response.json().get("token")
        if not token:
            raise AuthenticationError(
                "Shiprocket Authentication Failed: no token in response",
                status_code=response.status_code,
            )
        self._token = token
        logger.info("Authenticated with Shiprocket")
        return token

    async def get_wallet_balance(self) -> float | None:
        """Return the prepaid wallet balance.

        Returns:
            Balance in rupees, or None when the endpoint is unreachable or
            does not report a balance. None means "unknown", never zero.

        Raises:
            AuthenticationError: If login fails.
        """
        headers = await self._headers()
        client = self._ensure_client()
        try:
            response = await client.get(
                self._url("/account/details"),
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch wallet balance (ignoring check): %s", e)
            return None

        if response.status_code >= 400:
            logger.warning(
                "Failed to fetch wallet balance (ignoring check): HTTP %d",
                response.status_code,
            )
            return None

        try:
            data = response.json().get("data") or {}
            balance = data.get("wallet_balance")
        except (ValueError, AttributeError):
            logger.warning("Wallet balance response was not understood")
            return None
        if balance is None or balance == "":
            return None
        try:
            return float(balance)
        except (TypeError, ValueError):
            logger.warning("Wallet balance %r is not numeric", balance)
            return None

    async def find_order_by_external_id(self, external_id: str) -> CarrierOrderMatch:
        """Scan recent carrier orders for an exact channel order id match.

        Shiprocket has no indexed lookup by channel order id, so this pages
        through the order list up to ``max_search_pages``.

        Raises:
            CarrierAPIError: The order list could not be fetched.
        """
        headers = await self._headers()
        client = self._ensure_client()
        wanted = str(external_id)

        for page in range(1, self._config.max_search_pages + 1):
            try:
                response = await client.get(
                    self._url("/orders"),
                    params={"page": page, "per_page": self._config.per_page},
                    headers=headers,
                    timeout=self._config.timeout_seconds,
                )
            except httpx.HTTPError as e:
                raise CarrierAPIError(f"Order search failed: {e}") from e

            if response.status_code >= 400:
                raise CarrierAPIError(
                    _error_message(response), status_code=response.status_code
                )

            body = response.json()
            orders = body.get("data") or []
            for order in orders:
                if str(order.get("channel_order_id")) == wanted:
                    return CarrierOrderMatch(
                        found=True,
                        shipment_id=self._shipment_id(order),
                        order_id=order.get("id"),
                        status=order.get("status"),
                    )

            if not orders or len(orders) < self._config.per_page:
                break
            total_pages = (
                body.get("meta", {}).get("pagination", {}).get("total_pages")
            )
            if total_pages is not None and page >= int(total_pages):
                break

        return CarrierOrderMatch(found=False)

    @staticmethod
    def _shipment_id(order: dict[str, Any]) -> int | str | None:
        shipments = order.get("shipments")
        if isinstance(shipments, list) and shipments:
            first = shipments[0]
            if isinstance(first, dict) and first.get("id"):
                return first["id"]
        elif isinstance(shipments, dict) and shipments.get("id"):
            return shipments["id"]
        return order.get("shipment_id")

    async def assign_courier(self, shipment_id: int | str) -> CourierAssignment:
        """Request automatic courier (AWB) assignment for a shipment."""
        headers = await self._headers()
        client = self._ensure_client()
        try:
            response = await client.post(
                self._url("/courier/assign/awb"),
                json={"shipment_id": shipment_id},
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            return CourierAssignment(success=False, error=str(e), message=str(e))

        body: dict[str, Any] = {}
        try:
            body = response.json()
        except ValueError:
            pass

        awb = None
        if response.status_code < 400 and isinstance(body, dict):
            awb = ((body.get("response") or {}).get("data") or {}).get("awb_code")

        if awb:
            return CourierAssignment(success=True, awb=str(awb))

        message = _error_message(response) if response.status_code >= 400 else (
            str(body.get("message") or "AWB not assigned")
            if isinstance(body, dict) else "AWB not assigned"
        )
        logger.warning("AWB assignment failed for shipment %s: %s", shipment_id, message)
        if classify_carrier_error(message) is CarrierErrorKind.LOW_WALLET:
            return CourierAssignment(
                success=False, error=CarrierErrorKind.LOW_WALLET.value, message=message
            )
        return CourierAssignment(success=False, error=message, message=message)

    async def schedule_pickup(self, shipment_id: int | str) -> PickupResult:
        """Schedule pickup for today, falling back to tomorrow."""
        headers = await self._headers()
        client = self._ensure_client()
        last_error = None

        for offset in (0, 1):
            pickup_date = (self._today() + timedelta(days=offset)).isoformat()
            try:
                response = await client.post(
                    self._url("/courier/generate/pickup"),
                    json={"shipment_id": [shipment_id], "pickup_date": pickup_date},
                    headers=headers,
                    timeout=self._config.timeout_seconds,
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning("Pickup for %s failed (%s)", pickup_date, last_error)
                continue
            if response.status_code < 400:
                logger.info("Pickup scheduled for shipment %s on %s", shipment_id, pickup_date)
                return PickupResult(success=True, date=pickup_date)
            last_error = _error_message(response)
            logger.warning("Pickup for %s failed (%s)", pickup_date, last_error)

        return PickupResult(success=False, error=last_error)

    async def bulk_generate_label(self, shipment_ids: list[int | str]) -> LabelResult:
        """Generate a single label document covering all shipments."""
        if not shipment_ids:
            return LabelResult(success=False, error="No shipments to label")

        headers = await self._headers()
        client = self._ensure_client()
        try:
            response = await client.post(
                self._url("/courier/generate/label"),
                json={"shipment_id": list(shipment_ids)},
                headers=headers,
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.error("Label generation request failed: %s", e)
            return LabelResult(success=False, error=str(e))

        if response.status_code >= 400:
            error = _error_message(response)
            logger.error("Label generation failed: %s", error)
            return LabelResult(success=False, error=error)

        try:
            body = response.json()
        except ValueError:
            logger.error("Label generation returned a non-JSON body (HTTP %s)", response.status_code)
            return LabelResult(success=False, error="Label response was not JSON")
        url = body.get("label_url") if isinstance(body, dict) else None
        if not url:
            logger.error(
                "Label generation returned no URL: %s",
                redact_for_logging(body) if isinstance(body, dict) else body,
            )
            message = body.get("message") if isinstance(body, dict) else None
            return LabelResult(success=False, error=message or "No label URL returned")
        return LabelResult(success=True, url=url)

    async def generate_label(self, shipment_id: int | str) -> LabelResult:
        """Generate a label for one shipment."""
        return await self.bulk_generate_label([shipment_id])

"""Background label job: risk-filter the latest batch and ship it via Shiprocket.

Phases (each a job status):

    STARTING -> FETCHING_DETAILS -> CHECKING_WALLET -> PROCESSING_SHIPROCKET
             -> GENERATING_LABELS -> COMPLETED

FETCHING_DETAILS fetches each distinct order once and runs the risk checks.
CHECKING_WALLET compares a self-calibrating cost estimate with the carrier
wallet and may stop in REQUIRES_MONEY. PROCESSING_SHIPROCKET finds each
safe order in Shiprocket and assigns couriers one at a time.
GENERATING_LABELS makes a single bulk label call.

Per-order problems never abort the job: they are collected into the
high-risk or failed buckets and written out as CSV reports. Only
authentication and unexpected errors fail the job.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from src.cli.config import FulfillmentConfig, JobConfig, WalletConfig
from src.db.models import FulfillmentJob, JobStatus
from src.errors.carrier_translation import format_assign_failure
from src.services.batch_store import BatchStore
from src.services.job_store import JobStore
from src.services.report_storage import (
    ReportStorage,
    failed_filename,
    high_risk_filename,
)
from src.services.report_writer import render_dynamic_csv
from src.services.risk_validator import find_duplicates, validate_address, validate_phone
from src.services.shiprocket_client import CarrierOrderMatch, ShiprocketClient
from src.services.shopify_client import ShopifyClient

logger = logging.getLogger(__name__)

NO_HISTORY_MESSAGE = "No CSV history found."
NO_SAFE_ORDERS_MESSAGE = "No safe orders to process."
NO_CARRIER_ORDERS_MESSAGE = "No valid Shiprocket orders found."
NO_ASSIGNMENTS_MESSAGE = "No orders were successfully assigned."
NOT_FOUND_REASON = "Not found in Shiprocket (Sync Issue)"
NO_SHIPMENT_REASON = "Shipment Creation Failed"


def resolve_order_id(row: dict[str, Any]) -> str | None:
    """Storefront order id for a batch row.

    Uses ``id`` or ``orderId``, falling back to ``orderLink``; GIDs and
    URLs are reduced to their last path segment.
    """
    raw = row.get("id") or row.get("orderId") or row.get("orderLink")
    if not raw:
        return None
    value = str(raw).rstrip("/")
    if "/" in value:
        value = value.rsplit("/", 1)[-1]
    return value or None


def lookup_keys(order: dict[str, Any]) -> list[str]:
    """Channel order ids to try in Shiprocket, most likely first.

    Order name without ``#``, the name as-is, then the numeric storefront id.
    """
    name = order.get("name") or ""
    keys = [name.replace("#", ""), name]
    if order.get("id"):
        keys.append(str(order["id"]).rsplit("/", 1)[-1])
    seen: list[str] = []
    for key in keys:
        if key and key not in seen:
            seen.append(key)
    return seen


def per_order_estimate(avg_shipping_cost: float | None, wallet: WalletConfig) -> int:
    """Estimated wallet spend per order: ceil(ceil(avg or fallback) x (1 + margin))."""
    base = math.ceil(avg_shipping_cost) if avg_shipping_cost is not None else math.ceil(
        wallet.fallback_shipping_cost
    )
    # round() first so 70 x 1.1 ceils to 77, not 78
    return math.ceil(round(base * (1 + wallet.safety_margin), 6))


def _customer(order: dict[str, Any]) -> str:
    return (order.get("shippingAddress") or {}).get("name") or "Unknown"


@dataclass
class Shipment:
    """A safe order matched to its Shiprocket shipment."""

    shipment_id: int | str
    order_id: int | str | None
    order: dict[str, Any]

    @property
    def order_name(self) -> str:
        return self.order.get("name") or str(self.shipment_id)


@dataclass
class Buckets:
    """Per-order outcomes collected while a job runs."""

    high_risk: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def flag(self, order: dict[str, Any], risk: str, reason: str) -> None:
        self.high_risk.append({
            "Order ID": order.get("name"),
            "Customer": _customer(order),
            "Risk": risk,
            "Reason": reason,
        })

    def fail(self, order_name: str, error: str) -> None:
        self.failed.append({"orderId": order_name, "error": error})


class LabelJob:
    """Runs label jobs against injected stores and clients."""

    def __init__(
        self,
        job_store: JobStore,
        batch_store: BatchStore,
        shopify: ShopifyClient,
        carrier: ShiprocketClient,
        reports: ReportStorage,
        wallet: WalletConfig | None = None,
        jobs: JobConfig | None = None,
    ) -> None:
        self.job_store = job_store
        self.batch_store = batch_store
        self.shopify = shopify
        self.carrier = carrier
        self.reports = reports
        self.wallet = wallet or WalletConfig()
        self.jobs = jobs or JobConfig()

    async def run(self, job_id: str) -> FulfillmentJob:
        """Run a job to a terminal status under the job watchdog.

        Never raises for job-level failures; they are recorded on the job.
        """
        timeout = self.jobs.timeout_seconds
        try:
            await asyncio.wait_for(self._execute(job_id), timeout=timeout)
        except TimeoutError:
            logger.error("Job %s timed out after %ss", job_id, timeout)
            self.job_store.fail(job_id, f"Job timed out after {timeout}s")
        except Exception as e:
            logger.exception("Job %s failed", job_id)
            self.job_store.fail(job_id, str(e) or type(e).__name__)
        return self.job_store.get_job(job_id)

    def _progress(self, job_id: str, message: str) -> None:
        self.job_store.update_fields(job_id, progress=message)

    def _write_reports(self, job_id: str, buckets: Buckets) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "high_risk_count": len(buckets.high_risk),
            "failed_count": len(buckets.failed),
            "high_risk_url": None,
        }
        if buckets.high_risk:
            fields["high_risk_url"] = self.reports.save(
                high_risk_filename(job_id), render_dynamic_csv(buckets.high_risk)
            )
        if buckets.failed:
            fields["failed_report_url"] = self.reports.save(
                failed_filename(job_id), render_dynamic_csv(buckets.failed)
            )
        return fields

    def _complete(
        self,
        job_id: str,
        buckets: Buckets,
        label_url: str | None = None,
        success_count: int = 0,
        message: str | None = None,
    ) -> None:
        fields = self._write_reports(job_id, buckets)
        fields.update(label_url=label_url, success_count=success_count)
        if message:
            fields["message"] = message
        self.job_store.update_status(job_id, JobStatus.COMPLETED, **fields)
        logger.info(
            "Job %s completed: %d shipped, %d high risk, %d failed",
            job_id, success_count, len(buckets.high_risk), len(buckets.failed),
        )

    async def _execute(self, job_id: str) -> None:
        batch = self.batch_store.get_latest_batch()
        if batch is None:
            self.job_store.update_status(job_id, JobStatus.FAILED, error=NO_HISTORY_MESSAGE)
            return

        rows = list(batch.rows or [])
        logger.info("Job %s processing batch %s with %d rows", job_id, batch.id, len(rows))
        self.job_store.update_status(
            job_id, JobStatus.FETCHING_DETAILS, batch_id=batch.id, line_item_count=len(rows)
        )

        buckets = Buckets()
        candidates = await self._fetch_orders(job_id, rows, buckets)
        safe_orders = self._validate(candidates, buckets)
        logger.info("Job %s validation complete. Safe orders: %d", job_id, len(safe_orders))

        if not safe_orders:
            self._complete(job_id, buckets, message=NO_SAFE_ORDERS_MESSAGE)
            return

        self.job_store.update_status(job_id, JobStatus.CHECKING_WALLET)
        if not await self._check_wallet(job_id, safe_orders, len(rows)):
            return

        self.job_store.update_status(job_id, JobStatus.PROCESSING_SHIPROCKET)
        shipments = await self._find_shipments(job_id, safe_orders, buckets)
        if not shipments:
            self._complete(job_id, buckets, message=NO_CARRIER_ORDERS_MESSAGE)
            return

        assigned = await self._assign_couriers(job_id, shipments, buckets)
        if not assigned:
            self._complete(job_id, buckets, message=NO_ASSIGNMENTS_MESSAGE)
            return

        self.job_store.update_status(
            job_id,
            JobStatus.GENERATING_LABELS,
            progress=f"Generating Bulk Label for {len(assigned)} shipments...",
        )
        label = await self.carrier.bulk_generate_label([s.shipment_id for s in assigned])
        if label.success:
            self._complete(job_id, buckets, label_url=label.url, success_count=len(assigned))
            return

        logger.error("Job %s bulk label failed: %s", job_id, label.error)
        for shipment in assigned:
            buckets.fail(shipment.order_name, f"Label Gen Failed: {label.error}")
        self._complete(job_id, buckets)

    async def _fetch_orders(
        self, job_id: str, rows: list[dict[str, Any]], buckets: Buckets
    ) -> list[dict[str, Any]]:
        """Fetch canonical orders for the batch rows, once per distinct id."""
        total = len(rows)
        fetched: dict[str, dict[str, Any] | Exception] = {}
        candidates: dict[str, dict[str, Any]] = {}

        for n, row in enumerate(rows, start=1):
            if n % self.jobs.progress_every == 0:
                self._progress(job_id, f"Reviewing Order {n}/{total}")

            order_id = resolve_order_id(row)
            if not order_id:
                buckets.failed.append({**row, "error": "No ID found"})
                continue

            if order_id not in fetched:
                try:
                    fetched[order_id] = await self.shopify.get_order(order_id)
                except Exception as e:
                    logger.warning("Fetch failed for order %s: %s", order_id, e)
                    fetched[order_id] = e

            result = fetched[order_id]
            if isinstance(result, Exception):
                buckets.failed.append({**row, "error": f"Fetch Failed: {result}"})
                continue

            if result.get("riskLevel") == "HIGH":
                logger.info("Order %s is HIGH risk on the storefront; skipping", order_id)
                buckets.high_risk.append(
                    {**row, "riskLevel": "HIGH", "riskAnalysis": "Shopify marked HIGH"}
                )
                continue

            candidates.setdefault(order_id, result)

        return list(candidates.values())

    def _validate(self, orders: list[dict[str, Any]], buckets: Buckets) -> list[dict[str, Any]]:
        """Address, then phone, then cross-order duplicate checks."""
        validated = []
        for order in orders:
            verdict = validate_address(order)
            if not verdict.valid:
                logger.info("Risk check failed (address): %s - %s", order.get("name"), verdict.reason)
                buckets.flag(order, "HIGH (Validator)", verdict.reason)
                continue
            phone = order.get("phone") or (order.get("shippingAddress") or {}).get("phone")
            verdict = validate_phone(phone)
            if not verdict.valid:
                logger.info("Risk check failed (phone): %s - %s", order.get("name"), verdict.reason)
                buckets.flag(order, "HIGH (Validator)", verdict.reason)
                continue
            validated.append(order)

        duplicates = find_duplicates(validated)
        safe = []
        for order in validated:
            reason = duplicates.get(order.get("id"))
            if reason:
                logger.info("Risk check failed (duplicate): %s", order.get("name"))
                buckets.flag(order, "HIGH (Duplicate)", reason)
            else:
                safe.append(order)
        return safe

    async def _check_wallet(
        self, job_id: str, safe_orders: list[dict[str, Any]], line_item_count: int
    ) -> bool:
        """Record the estimate; stop in REQUIRES_MONEY when the wallet is short.

        Returns:
            True to continue shipping.
        """
        order_count = len({order.get("id") for order in safe_orders})
        per_order = per_order_estimate(self.batch_store.average_shipping_cost(), self.wallet)
        estimated_cost = order_count * per_order

        await self.carrier.authenticate()
        balance = await self.carrier.get_wallet_balance()

        estimate = {
            "estimated_cost": estimated_cost,
            "current_balance": balance,
            "order_count": order_count,
            "line_item_count": line_item_count,
            "avg_cost_per_order": per_order,
        }
        if balance is not None and balance < estimated_cost:
            shortfall = math.ceil(estimated_cost - balance)
            logger.warning(
                "Insufficient funds. Need ~%s, have %s, shortfall %s",
                estimated_cost, balance, shortfall,
            )
            self.job_store.update_status(
                job_id, JobStatus.REQUIRES_MONEY, shortfall=shortfall, **estimate
            )
            return False

        if balance is None:
            logger.warning("Wallet balance unknown; continuing without a funds check")
        self.job_store.update_fields(job_id, **estimate)
        return True

    async def _lookup(self, order: dict[str, Any]) -> CarrierOrderMatch:
        match = CarrierOrderMatch(found=False)
        for key in lookup_keys(order):
            match = await self.carrier.find_order_by_external_id(key)
            if match.found:
                break
        return match

    async def _find_shipments(
        self, job_id: str, orders: list[dict[str, Any]], buckets: Buckets
    ) -> list[Shipment]:
        """Match safe orders to Shiprocket shipments, preserving input order."""
        total = len(orders)
        semaphore = asyncio.Semaphore(max(1, self.jobs.lookup_concurrency))
        done = 0

        async def lookup(order: dict[str, Any]) -> CarrierOrderMatch | Exception:
            nonlocal done
            async with semaphore:
                try:
                    result: CarrierOrderMatch | Exception = await self._lookup(order)
                except Exception as e:
                    logger.warning("Lookup failed for %s: %s", order.get("name"), e)
                    result = e
            done += 1
            if done % self.jobs.progress_every == 0:
                self._progress(job_id, f"Identifying Orders {done}/{total}")
            return result

        results = await asyncio.gather(*(lookup(order) for order in orders))

        shipments = []
        for order, result in zip(orders, results):
            name = order.get("name") or str(order.get("id"))
            if isinstance(result, Exception):
                buckets.fail(name, f"Lookup Failed: {result}")
            elif not result.found:
                buckets.fail(name, NOT_FOUND_REASON)
            elif not result.shipment_id:
                buckets.fail(name, NO_SHIPMENT_REASON)
            else:
                shipments.append(Shipment(result.shipment_id, result.order_id, order))
        return shipments

    async def _assign_couriers(
        self, job_id: str, shipments: list[Shipment], buckets: Buckets
    ) -> list[Shipment]:
        """Assign couriers one shipment at a time; schedule pickups when enabled."""
        self._progress(job_id, f"Bulk Assigning Couriers for {len(shipments)} shipments...")
        assigned = []
        for shipment in shipments:
            result = await self.carrier.assign_courier(shipment.shipment_id)
            if not result.success:
                buckets.fail(shipment.order_name, format_assign_failure(result.message or result.error))
                continue
            assigned.append(shipment)
            if self.jobs.schedule_pickup:
                pickup = await self.carrier.schedule_pickup(shipment.shipment_id)
                if not pickup.success:
                    logger.warning(
                        "Pickup scheduling failed for %s: %s", shipment.order_name, pickup.error
                    )
        return assigned


async def run_label_job(
    job_id: str,
    config: FulfillmentConfig,
    job_store: JobStore,
    batch_store: BatchStore,
    reports: ReportStorage,
) -> FulfillmentJob:
    """Build clients from config and run one job to completion."""
    async with ShopifyClient(config.shopify) as shopify, ShiprocketClient(config.carrier) as carrier:
        runner = LabelJob(
            job_store=job_store,
            batch_store=batch_store,
            shopify=shopify,
            carrier=carrier,
            reports=reports,
            wallet=config.wallet,
            jobs=config.jobs,
        )
        return await runner.run(job_id)

"""Export batch history.

Every download of the order manifest is saved as a batch so the label job
can ship exactly what was sent to the print partner. Batch ids are
zero-padded sequence numbers; history keeps the newest ``history_limit``
batches.
"""

import logging
import math
from collections.abc import Callable
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.db.models import Batch, BatchType, utc_now_iso
from src.errors.domain import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
BATCH_ID_WIDTH = 6


def format_batch_id(seq: int) -> str:
    """Zero-padded batch id for a sequence number."""
    return str(seq).zfill(BATCH_ID_WIDTH)


def batch_to_dict(batch: Batch) -> dict[str, Any]:
    """Serialize a batch for the API."""
    data: dict[str, Any] = {
        "id": batch.id,
        "timestamp": batch.timestamp,
        "type": batch.type,
        "count": len(batch.rows or []),
        "rows": batch.rows or [],
    }
    if batch.last_modified:
        data["lastModified"] = batch.last_modified
    return data


class BatchStore:
    """SQLAlchemy-backed batch history.

    Attributes:
        session_factory: Callable returning a new Session.
        history_limit: Number of batches kept; older ones are evicted on save.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.session_factory = session_factory
        self.history_limit = history_limit

    def list_batches(self) -> list[Batch]:
        """All batches, newest first."""
        with self.session_factory() as db:
            batches = list(db.scalars(select(Batch).order_by(Batch.seq.desc())))
            for batch in batches:
                db.expunge(batch)
            return batches

    def get_latest_batch(self) -> Batch | None:
        """The most recent batch, or None when history is empty."""
        with self.session_factory() as db:
            batch = db.scalars(select(Batch).order_by(Batch.seq.desc()).limit(1)).first()
            if batch is not None:
                db.expunge(batch)
            return batch

    def get_batch(self, batch_id: str) -> Batch:
        """Fetch a batch by id.

        Raises:
            NotFoundError: Unknown batch id.
        """
        with self.session_factory() as db:
            batch = db.get(Batch, batch_id)
            if batch is None:
                raise NotFoundError("Batch", batch_id)
            db.expunge(batch)
            return batch

    def save_batch(
        self,
        rows: list[dict[str, Any]],
        batch_type: BatchType = BatchType.DOWNLOAD,
    ) -> Batch:
        """Save rows as the newest batch and evict beyond the history limit."""
        with self.session_factory() as db:
            last_seq = db.scalar(select(func.max(Batch.seq))) or 0
            seq = last_seq + 1
            batch = Batch(
                id=format_batch_id(seq),
                seq=seq,
                timestamp=utc_now_iso(),
                type=batch_type.value,
                rows=list(rows),
            )
            db.add(batch)
            db.flush()

            stale = list(
                db.scalars(
                    select(Batch).order_by(Batch.seq.desc()).offset(self.history_limit)
                )
            )
            for old in stale:
                db.delete(old)
            db.commit()
            db.refresh(batch)
            db.expunge(batch)

        if stale:
            logger.info("Evicted %d old batch(es) from history", len(stale))
        logger.info("Saved batch %s with %d rows", batch.id, len(rows))
        return batch

    def update_batch(self, batch_id: str, rows: list[dict[str, Any]]) -> Batch:
        """Replace a batch's rows (manual corrections from the dashboard).

        Raises:
            NotFoundError: Unknown batch id.
        """
        with self.session_factory() as db:
            batch = db.get(Batch, batch_id)
            if batch is None:
                raise NotFoundError("Batch", batch_id)
            batch.rows = list(rows)
            batch.last_modified = utc_now_iso()
            db.commit()
            db.refresh(batch)
            db.expunge(batch)
            return batch

    def average_shipping_cost(self) -> float | None:
        """Mean of every finite numeric ``shippingCost`` recorded across history.

        Returns:
            The mean, or None when no row carries a usable cost.
        """
        costs: list[float] = []
        for batch in self.list_batches():
            for row in batch.rows or []:
                value = row.get("shippingCost") if isinstance(row, dict) else None
                if value in (None, ""):
                    continue
                try:
                    cost = float(value)
                except (TypeError, ValueError):
                    continue
                if math.isfinite(cost):
                    costs.append(cost)
        if not costs:
            return None
        return sum(costs) / len(costs)

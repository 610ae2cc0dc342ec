"""FastAPI routes for export batch history."""

from typing import Any

from fastapi import APIRouter, Depends

from src.api.dependencies import get_batch_store
from src.api.schemas import BatchUpdate
from src.services.batch_store import BatchStore, batch_to_dict

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("")
def list_batches(
    batch_store: BatchStore = Depends(get_batch_store),
) -> list[dict[str, Any]]:
    """Batch history, newest first."""
    return [batch_to_dict(batch) for batch in batch_store.list_batches()]


@router.get("/{batch_id}")
def get_batch(
    batch_id: str,
    batch_store: BatchStore = Depends(get_batch_store),
) -> dict[str, Any]:
    """One batch with its rows."""
    return batch_to_dict(batch_store.get_batch(batch_id))


@router.put("/{batch_id}")
def update_batch(
    batch_id: str,
    update: BatchUpdate,
    batch_store: BatchStore = Depends(get_batch_store),
) -> dict[str, Any]:
    """Replace a batch's rows with manually corrected ones."""
    return batch_to_dict(batch_store.update_batch(batch_id, update.rows))

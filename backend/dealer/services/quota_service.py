# Overview: Service-layer operations for the media storage quota across live stock items.

"""
Media storage quota.

INVARIANT: SUM(stock_items.total_encoded_bytes) <= STORAGE_BUDGET_BYTES after
every successful write.

The check reads the aggregate with SQL SUM inside the caller's transaction.
Writers must hold the write lock (concurrency.acquire_write_lock) before the
check so that two uploads cannot both observe room and together overshoot.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..config import DEFAULT_STORAGE_BUDGET_BYTES
from ..extensions import db
from ..models import StockItem
from ..validation import QuotaExceededError

GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024


def storage_budget_bytes() -> int:
    return int(current_app.config.get("STORAGE_BUDGET_BYTES", DEFAULT_STORAGE_BUDGET_BYTES))


def estimate_blob_bytes(blob: str | None) -> int:
    """
    Estimate the decoded size of one base64 media blob.

    Strips a data-URI prefix ("data:image/jpeg;base64,") and applies the
    3/4 base64 ratio to the payload length. Padding is not corrected for.
    """
    if not blob:
        return 0
    payload = blob.split(",", 1)[1] if "," in blob else blob
    return len(payload) * 3 // 4


def estimate_total_bytes(blobs: list[str] | None) -> int:
    if not blobs:
        return 0
    return sum(estimate_blob_bytes(blob) for blob in blobs)


def total_used(excluding_id: int | None = None) -> int:
    """Bytes consumed by all live stock items, optionally minus one item."""
    query = db.session.query(func.coalesce(func.sum(StockItem.total_encoded_bytes), 0))
    if excluding_id is not None:
        query = query.filter(StockItem.id != excluding_id)
    return int(query.scalar() or 0)


def would_exceed(candidate_bytes: int, excluding_id: int | None = None) -> bool:
    return total_used(excluding_id) + candidate_bytes > storage_budget_bytes()


def ensure_capacity(candidate_bytes: int, excluding_id: int | None = None) -> None:
    """
    Raise QuotaExceededError if candidate_bytes does not fit the budget.

    excluding_id: the stock item being replaced in place (its current bytes
    are released by the write).
    """
    budget = storage_budget_bytes()
    used = total_used(excluding_id)
    current_app.logger.info(
        "Storage in use %.2fMB (excluding=%s), candidate %.2fMB",
        used / MIB,
        excluding_id,
        candidate_bytes / MIB,
    )
    if used + candidate_bytes > budget:
        current_app.logger.warning(
            "Storage budget exceeded: used=%d candidate=%d budget=%d", used, candidate_bytes, budget
        )
        raise QuotaExceededError(
            available_bytes=budget - used,
            required_bytes=candidate_bytes,
            budget_bytes=budget,
        )


def storage_info() -> dict:
    budget = storage_budget_bytes()
    used = total_used()
    available = budget - used
    return {
        "total_used_bytes": used,
        "total_used_gb": round(used / GIB, 2),
        "budget_bytes": budget,
        "budget_gb": round(budget / GIB, 2),
        "available_bytes": available,
        "available_gb": round(available / GIB, 2),
        "percentage_used": round((used / budget) * 100, 2) if budget else 100.0,
    }

# Overview: Service-layer operations for stock intake; encapsulates quota checks and database work.

"""
Stock Service

Intake and maintenance of stock items (vehicles held before sale/transfer).

RULES:
1. total_encoded_bytes is always recomputed from media_blobs on write; callers
   cannot set it.
2. Every write that carries media runs the quota check inside the same
   transaction as the write, under the global write lock.
3. An intake with an acquisition cost emits one payable obligation.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import StockItem
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    validate_payload,
    enforce_rules_stock_item,
)
from . import financial_service, quota_service
from .concurrency import lock_for_update, run_atomic


STOCK_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "brand",
        "model",
        "year",
        "plate",
        "km",
        "color",
        "acquisition_value_cents",
        "promotion_value_cents",
        "discount_cents",
        "notes",
        "media_blobs",
    },
    required_on_create={"brand", "model", "year"},
)

MIB = 1024 * 1024


def _load_locked(stock_item_id: int) -> StockItem:
    item = lock_for_update(db.session.query(StockItem).filter_by(id=stock_item_id)).first()
    if item is None:
        raise NotFoundError(f"Stock item {stock_item_id} not found")
    return item


def get_stock_item(stock_item_id: int) -> StockItem:
    item = db.session.get(StockItem, stock_item_id)
    if item is None:
        raise NotFoundError(f"Stock item {stock_item_id} not found")
    return item


def list_stock_items(search: str | None = None) -> list[StockItem]:
    query = db.session.query(StockItem)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                StockItem.brand.ilike(like),
                StockItem.model.ilike(like),
                StockItem.plate.ilike(like),
            )
        )
    return query.order_by(StockItem.created_at.desc(), StockItem.id.desc()).all()


def create_stock_item(payload: dict) -> StockItem:
    """
    Register a stock item.

    Raises:
        ValidationError: bad payload
        QuotaExceededError: media would exceed the storage budget
    """
    patch = validate_payload(model=StockItem, payload=payload, policy=STOCK_ITEM_POLICY, partial=False)
    enforce_rules_stock_item(patch)

    blobs = patch.get("media_blobs") or []
    size = quota_service.estimate_total_bytes(blobs)
    current_app.logger.info("Stock intake: %d media blob(s), %.2fMB", len(blobs), size / MIB)

    def _op():
        quota_service.ensure_capacity(size)

        item = StockItem(**patch)
        item.media_blobs = list(blobs)
        item.total_encoded_bytes = size
        db.session.add(item)
        db.session.flush()

        financial_service.emit_stock_acquisition_payable(item)
        return item

    item = run_atomic(_op)
    current_app.logger.info("Stock item %s created (%s)", item.id, item.label)
    return item


def update_stock_item(stock_item_id: int, payload: dict) -> StockItem:
    """
    Partially update a stock item.

    When media_blobs is supplied the quota check releases the item's own
    current bytes first; omitting media leaves them untouched.
    """
    patch = validate_payload(model=StockItem, payload=payload, policy=STOCK_ITEM_POLICY, partial=True)
    enforce_rules_stock_item(patch)

    def _op():
        item = _load_locked(stock_item_id)

        if "media_blobs" in patch:
            blobs = patch.pop("media_blobs") or []
            size = quota_service.estimate_total_bytes(blobs)
            quota_service.ensure_capacity(size, excluding_id=item.id)
            item.media_blobs = list(blobs)
            item.total_encoded_bytes = size

        for key, value in patch.items():
            setattr(item, key, value)

        db.session.flush()
        return item

    item = run_atomic(_op)
    current_app.logger.info("Stock item %s updated", item.id)
    return item


def delete_stock_item(stock_item_id: int) -> None:
    def _op():
        item = _load_locked(stock_item_id)
        db.session.delete(item)
        db.session.flush()

    run_atomic(_op)
    current_app.logger.info("Stock item %s deleted", stock_item_id)


def recompute_sizes() -> tuple[int, int]:
    """
    Re-estimate total_encoded_bytes for every live item.

    Returns (items_changed, total_bytes_after).
    """
    def _op():
        changed = 0
        for item in db.session.query(StockItem).order_by(StockItem.id).all():
            size = quota_service.estimate_total_bytes(item.media_blobs)
            if size != item.total_encoded_bytes:
                item.total_encoded_bytes = size
                changed += 1
        db.session.flush()
        return changed

    changed = run_atomic(_op)
    return changed, quota_service.total_used()

# Overview: Service-layer operations for the inventory ledger; stock items, item types and low-stock watching.

"""
Inventory ledger

A stock item document in the `stock` collection:
    {name, quantity, category, price_cents, notify_threshold}

INVARIANTS:
- quantity is never negative
- an item whose quantity reaches exactly zero is deleted, not kept at zero
- names are unique; restocking an existing name adds to it. A new item is
  created at an id derived from its name, so two concurrent first restocks
  of one name collide on that id and the loser retries as a top-up.
"""

from __future__ import annotations

import uuid
from typing import Callable

from flask import current_app

from stockpos.validation import (
    ValidationError,
    coerce_int,
    coerce_text,
    enforce_positive_quantity,
    format_cents,
    parse_price_cents,
)
from .concurrency import run_with_retry
from .document_store import (
    BatchConflictError,
    DocumentSnapshot,
    NotFoundError,
    StoreError,
    Subscription,
    store,
)


STOCK = "stock"
ITEM_TYPES = "item_types"

# Namespace for name-derived stock item ids
STOCK_ID_NAMESPACE = uuid.UUID("6f1c4d2a-8e57-4b0e-9a43-3d5f0c7e21b9")


class InsufficientStockError(StoreError):
    """Raised when a decrement would take quantity below zero."""


def _default_threshold() -> int:
    return current_app.config.get("LOW_STOCK_DEFAULT_THRESHOLD", 5)


def effective_threshold(item: DocumentSnapshot) -> int:
    # Zero or missing falls back to the default
    return item.get("notify_threshold") or _default_threshold()


def is_low_stock(item: DocumentSnapshot) -> bool:
    return int(item.get("quantity", 0)) < effective_threshold(item)


def serialize_item(item: DocumentSnapshot) -> dict:
    price_cents = int(item.get("price_cents", 0))
    return {
        "id": item.id,
        "name": item.get("name"),
        "quantity": int(item.get("quantity", 0)),
        "category": item.get("category"),
        "price_cents": price_cents,
        "price": format_cents(price_cents),
        "notify_threshold": effective_threshold(item),
        "is_low_stock": is_low_stock(item),
        "version_id": item.version_id,
    }


def get_item(item_id: str) -> DocumentSnapshot:
    item = store.get(STOCK, item_id)
    if item is None:
        raise NotFoundError("Stock item not found", details={"item_id": item_id})
    return item


def stock_item_id(name: str) -> str:
    return uuid.uuid5(STOCK_ID_NAMESPACE, name).hex


def find_item_by_name(name: str) -> DocumentSnapshot | None:
    matches = store.query(STOCK, name=name)
    return matches[0] if matches else None


def restock(
    name,
    quantity,
    category,
    unit_price,
    notify_threshold=None,
) -> DocumentSnapshot:
    """
    Add stock under `name`.

    Existing item: quantity increases, category and price are overwritten.
    New name: a new item is created. The category is registered as an
    item type either way.
    """
    name = coerce_text("name", name)
    quantity = enforce_positive_quantity("quantity", quantity)
    category = coerce_text("category", category, max_length=64)
    price_cents = parse_price_cents("price", unit_price)
    threshold = None
    if notify_threshold not in (None, ""):
        threshold = enforce_positive_quantity("notify_threshold", notify_threshold)

    def _op() -> str:
        existing = find_item_by_name(name)
        batch = store.batch()
        batch.set(ITEM_TYPES, category, {"name": category})
        if existing is None:
            data = {
                "name": name,
                "quantity": quantity,
                "category": category,
                "price_cents": price_cents,
            }
            if threshold is not None:
                data["notify_threshold"] = threshold
            item_id = stock_item_id(name)
            batch.create(STOCK, item_id, data)
        else:
            patch = {
                "quantity": int(existing.get("quantity", 0)) + quantity,
                "category": category,
                "price_cents": price_cents,
            }
            if threshold is not None:
                patch["notify_threshold"] = threshold
            item_id = existing.id
            batch.update_if_version(STOCK, existing.id, existing.version_id, patch)
        batch.commit()
        return item_id

    item_id = run_with_retry(
        _op,
        retry_on=(BatchConflictError,),
        attempts=current_app.config.get("STOCK_WRITE_MAX_ATTEMPTS", 3),
    )
    return get_item(item_id)


def stage_adjustment(batch, item: DocumentSnapshot, delta: int) -> int | None:
    """
    Queue a quantity change for `item` on `batch`, guarded by its version.

    Returns the resulting quantity, or None when the item will be removed.
    Raises InsufficientStockError if the result would be negative.
    """
    on_hand = int(item.get("quantity", 0))
    new_quantity = on_hand + delta
    if new_quantity < 0:
        raise InsufficientStockError(
            "Insufficient stock",
            details={"item_id": item.id, "on_hand": on_hand, "requested_delta": delta},
        )
    if new_quantity == 0:
        batch.delete_if_version(STOCK, item.id, item.version_id)
        return None
    batch.update_if_version(STOCK, item.id, item.version_id, {"quantity": new_quantity})
    return new_quantity


def adjust(item_id: str, delta) -> DocumentSnapshot | None:
    """
    Apply `delta` to an item's quantity.

    Returns the updated item, or None when the item reached zero and was
    removed from the ledger.
    """
    delta = coerce_int("delta", delta)
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    def _op():
        item = get_item(item_id)
        batch = store.batch()
        new_quantity = stage_adjustment(batch, item, delta)
        batch.commit()
        return new_quantity

    new_quantity = run_with_retry(
        _op,
        retry_on=(BatchConflictError,),
        attempts=current_app.config.get("STOCK_WRITE_MAX_ATTEMPTS", 3),
    )
    if new_quantity is None:
        return None
    return get_item(item_id)


def delete_item(item_id: str) -> None:
    if not store.delete(STOCK, item_id):
        raise NotFoundError("Stock item not found", details={"item_id": item_id})


def _sorted_by_name(items: list[DocumentSnapshot]) -> list[DocumentSnapshot]:
    return sorted(items, key=lambda i: str(i.get("name", "")).lower())


def list_stock(category: str | None = None, search: str | None = None) -> list[DocumentSnapshot]:
    items = store.list(STOCK)
    if category:
        items = [i for i in items if i.get("category") == category]
    if search:
        needle = search.lower()
        items = [i for i in items if needle in str(i.get("name", "")).lower()]
    return _sorted_by_name(items)


def low_stock_items() -> list[DocumentSnapshot]:
    return [i for i in list_stock() if is_low_stock(i)]


def subscribe_stock(on_snapshot: Callable[[list[DocumentSnapshot]], None], **kwargs) -> Subscription:
    """Subscribe to stock snapshots, delivered sorted by name."""
    return store.subscribe(STOCK, lambda items: on_snapshot(_sorted_by_name(items)), **kwargs)


def add_item_type(name) -> str:
    name = coerce_text("name", name, max_length=64)
    store.set(ITEM_TYPES, name, {"name": name})
    return name


def list_item_types() -> list[str]:
    return sorted(t.id for t in store.list(ITEM_TYPES))


class LowStockWatcher:
    """
    Logs a warning when a stock item drops below its notify threshold.

    Only transitions are reported: an item that stays low is not logged
    again until it recovers and drops again.
    """

    def __init__(self):
        self._low: set[str] = set()
        self.subscription: Subscription | None = None

    def __call__(self, items: list[DocumentSnapshot]) -> None:
        low_now = {i.id: i for i in items if is_low_stock(i)}
        for item_id in sorted(set(low_now) - self._low):
            item = low_now[item_id]
            current_app.logger.warning(
                "Low stock: %s has %s left (threshold %s)",
                item.get("name"), item.get("quantity"), effective_threshold(item),
            )
        self._low = set(low_now)

    def start(self) -> "LowStockWatcher":
        self.subscription = subscribe_stock(self, deliver_initial=False)
        return self

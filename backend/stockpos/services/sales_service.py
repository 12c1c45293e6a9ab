"""
Sale recorder

Every sale decrements stock and appends a record to the `sales` collection.
Both writes go through one WriteBatch guarded by the stock item's version,
so a sale is never recorded without its decrement (or the reverse).

Once a sale is INCLUDED in a Z-report the store refuses any further change
to it, including deletion.

A sale document:
    {item_id, item_name, quantity, unit_price_cents, total_price_cents,
     sold_by, timestamp, included_in_zreport}
"""

from __future__ import annotations

import enum
from collections import OrderedDict
from dataclasses import dataclass

from flask import current_app

from stockpos.time_utils import coerce_timestamp, to_utc_z, utcnow
from stockpos.validation import coerce_text, enforce_positive_quantity, format_cents
from .concurrency import run_with_retry
from .document_store import BatchConflictError, DocumentSnapshot, StoreError, store
from .inventory_service import InsufficientStockError, get_item, stage_adjustment


SALES = "sales"


class InclusionState(enum.Enum):
    """Whether a sale has been folded into a Z-report."""
    PENDING = "pending"
    INCLUDED = "included"

    @classmethod
    def decode(cls, raw) -> "InclusionState":
        # Only a literal True counts as included; absent, False, null or
        # anything else is still pending.
        return cls.INCLUDED if raw is True else cls.PENDING

    def encode(self) -> bool:
        return self is InclusionState.INCLUDED


@dataclass(frozen=True)
class SaleResult:
    sale: DocumentSnapshot
    remaining_quantity: int | None  # None: item sold out and removed


class SaleLockedError(StoreError):
    """Raised on an attempt to change a sale that is already in a Z-report."""


def inclusion_state(sale: DocumentSnapshot) -> InclusionState:
    return InclusionState.decode(sale.get("included_in_zreport"))


def _included_sales_are_final(sale_id: str, current: dict, new_data) -> None:
    if InclusionState.decode(current.get("included_in_zreport")) is InclusionState.INCLUDED:
        raise SaleLockedError(
            "Sale is already included in a Z-report and cannot be changed",
            details={"sale_id": sale_id},
        )


store.guard(SALES, _included_sales_are_final)


def serialize_sale(sale: DocumentSnapshot) -> dict:
    total_cents = int(sale.get("total_price_cents") or 0)
    return {
        "id": sale.id,
        "item_id": sale.get("item_id"),
        "item_name": sale.get("item_name"),
        "quantity": sale.get("quantity"),
        "unit_price_cents": sale.get("unit_price_cents"),
        "total_price_cents": total_cents,
        "total_price": format_cents(total_cents),
        "sold_by": sale.get("sold_by"),
        "timestamp": to_utc_z(coerce_timestamp(sale.get("timestamp"), default=sale.created_at)),
        "inclusion": inclusion_state(sale).value,
    }


def sell(item_id: str, quantity, operator) -> SaleResult:
    """
    Sell `quantity` units of a stock item on behalf of `operator`.

    Raises NotFoundError if the item does not exist and
    InsufficientStockError if quantity exceeds stock on hand. The price
    is the item's current price.
    """
    quantity = enforce_positive_quantity("quantity", quantity)
    operator = coerce_text("operator", operator, max_length=64)

    def _op() -> SaleResult:
        item = get_item(item_id)
        on_hand = int(item.get("quantity", 0))
        if quantity > on_hand:
            raise InsufficientStockError(
                "Selling quantity exceeds available stock",
                details={"item_id": item_id, "on_hand": on_hand, "requested_quantity": quantity},
            )

        unit_price_cents = int(item.get("price_cents", 0))
        batch = store.batch()
        remaining = stage_adjustment(batch, item, -quantity)
        sale_id = batch.add(SALES, {
            "item_id": item.id,
            "item_name": item.get("name"),
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
            "total_price_cents": quantity * unit_price_cents,
            "sold_by": operator,
            "timestamp": to_utc_z(utcnow()),
            "included_in_zreport": InclusionState.PENDING.encode(),
        })
        batch.commit()
        return SaleResult(sale=store.get(SALES, sale_id), remaining_quantity=remaining)

    return run_with_retry(
        _op,
        retry_on=(BatchConflictError,),
        attempts=current_app.config.get("SALE_MAX_ATTEMPTS", 3),
    )


def _sale_time(sale: DocumentSnapshot):
    return coerce_timestamp(sale.get("timestamp"), default=sale.created_at)


def list_sales() -> list[DocumentSnapshot]:
    """All sales, newest first."""
    sales = list(reversed(store.list(SALES)))
    return sorted(sales, key=_sale_time, reverse=True)


def sales_history() -> dict:
    """
    Sales grouped by UTC calendar day, newest day first.

    Returns {"days": [{"date", "total_cents", "total", "sales": [...]}],
             "total_cents", "total"}.
    """
    groups: "OrderedDict[str, list[DocumentSnapshot]]" = OrderedDict()
    for sale in list_sales():
        groups.setdefault(_sale_time(sale).date().isoformat(), []).append(sale)

    days = []
    grand_total = 0
    for day, sales in groups.items():
        day_total = sum(int(s.get("total_price_cents") or 0) for s in sales)
        grand_total += day_total
        days.append({
            "date": day,
            "total_cents": day_total,
            "total": format_cents(day_total),
            "sales": [serialize_sale(s) for s in sales],
        })

    return {"days": days, "total_cents": grand_total, "total": format_cents(grand_total)}

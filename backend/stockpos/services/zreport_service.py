# Overview: Service-layer operations for Z-reports; folds pending sales into immutable reporting batches.

"""
Z-report generation

Each sale moves PENDING -> INCLUDED exactly once. A report embeds a copy
of the sales it claimed, taken at generation time.

INVARIANTS:
- No sale is embedded in two reports.
- The flag flips and the report document are committed in ONE batch, so
  there is never a report without flagged sales or flagged sales without
  a report.
- Each flag flip is compare-and-set on the version read during
  collection. Under concurrent generation exactly one generator wins a
  given sale; the loser rolls back and retries against fresh state.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from stockpos.time_utils import coerce_timestamp, to_utc_z, utcnow
from stockpos.validation import coerce_text, format_cents
from .concurrency import run_with_retry
from .document_store import BatchConflictError, DocumentSnapshot, NotFoundError, StoreError, store
from .sales_service import SALES, InclusionState, inclusion_state


ZREPORTS = "zreports"


class NoNewSalesError(StoreError):
    """Raised when there is nothing pending to report; nothing is written."""


@dataclass(frozen=True)
class ZReportResult:
    report: DocumentSnapshot
    sales_count: int
    total_sales_cents: int


def collect_pending_sales() -> list[DocumentSnapshot]:
    """Read the whole sales ledger and keep the pending records, in ledger order."""
    return [s for s in store.list(SALES) if inclusion_state(s) is InclusionState.PENDING]


def _embed(sale: DocumentSnapshot) -> dict:
    return {
        "id": sale.id,
        "item_id": sale.get("item_id"),
        "item_name": sale.get("item_name"),
        "quantity": sale.get("quantity"),
        "unit_price_cents": sale.get("unit_price_cents"),
        "total_price_cents": int(sale.get("total_price_cents") or 0),
        "sold_by": sale.get("sold_by"),
        "timestamp": to_utc_z(coerce_timestamp(sale.get("timestamp"), default=sale.created_at)),
    }


def commit_zreport(pending: list[DocumentSnapshot], operator: str) -> ZReportResult:
    """
    Claim `pending` sales and persist their report atomically.

    Raises BatchConflictError if any of them changed since it was read;
    in that case nothing is written.
    """
    if not pending:
        raise NoNewSalesError("There are no new sales to include in a Z-report")

    total_cents = sum(int(s.get("total_price_cents") or 0) for s in pending)

    batch = store.batch()
    for sale in pending:
        batch.update_if_version(
            SALES, sale.id, sale.version_id,
            {"included_in_zreport": InclusionState.INCLUDED.encode()},
        )
    report_id = batch.add(ZREPORTS, {
        "generated_at": to_utc_z(utcnow()),
        "generated_by": operator,
        "total_sales_cents": total_cents,
        "sales": [_embed(s) for s in pending],
    })
    batch.commit()

    return ZReportResult(
        report=store.get(ZREPORTS, report_id),
        sales_count=len(pending),
        total_sales_cents=total_cents,
    )


def generate_zreport(operator) -> ZReportResult:
    """
    Fold every pending sale into a new Z-report generated by `operator`.

    Raises NoNewSalesError when nothing is pending. Conflicts with a
    concurrent generator are retried up to ZREPORT_MAX_ATTEMPTS times.
    """
    operator = coerce_text("operator", operator, max_length=64)

    def _attempt() -> ZReportResult:
        return commit_zreport(collect_pending_sales(), operator)

    result = run_with_retry(
        _attempt,
        retry_on=(BatchConflictError,),
        attempts=current_app.config.get("ZREPORT_MAX_ATTEMPTS", 3),
    )
    current_app.logger.info(
        "Z-report %s generated by %s: %d sales, total %s",
        result.report.id, operator, result.sales_count, format_cents(result.total_sales_cents),
    )
    return result


def _generated_at(report: DocumentSnapshot):
    return coerce_timestamp(report.get("generated_at"), default=report.created_at)


def list_zreports() -> list[DocumentSnapshot]:
    """Reports, most recent generation first."""
    reports = list(reversed(store.list(ZREPORTS)))
    return sorted(reports, key=_generated_at, reverse=True)


def get_zreport(report_id: str) -> DocumentSnapshot:
    report = store.get(ZREPORTS, report_id)
    if report is None:
        raise NotFoundError("Z-report not found", details={"report_id": report_id})
    return report


def serialize_zreport(report: DocumentSnapshot, *, include_sales: bool = True) -> dict:
    total_cents = int(report.get("total_sales_cents") or 0)
    sales = report.get("sales") or []
    payload = {
        "id": report.id,
        "generated_at": to_utc_z(_generated_at(report)),
        "generated_by": report.get("generated_by"),
        "total_sales_cents": total_cents,
        "total_sales": format_cents(total_cents),
        "sales_count": len(sales),
    }
    if include_sales:
        payload["sales"] = [
            {**s, "total_price": format_cents(int(s.get("total_price_cents") or 0))}
            for s in sales
        ]
    return payload


def zreport_summary() -> dict:
    """All reports plus the grand total across them."""
    reports = list_zreports()
    grand_total = sum(int(r.get("total_sales_cents") or 0) for r in reports)
    return {
        "zreports": [serialize_zreport(r) for r in reports],
        "total_cents": grand_total,
        "total": format_cents(grand_total),
    }

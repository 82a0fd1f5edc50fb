"""
Sale Recorder - point-of-sale entry into the inventory engine

WHY: A paid sale must consume stock exactly once, whether the terminal is
online, retrying after a timeout, or replaying an offline queue.

MODES (chosen once, at app construction, from RECONCILIATION_MODE):
- LegacySaleRecorder: FIFO deduction against the batch ledger right now,
  one transaction per product line. A shortfall rejects the line and
  writes nothing.
- TrackingSaleRecorder: one 'pending' SaleTrackingEntry per product line,
  no ledger writes; the reconciliation sweep deducts later.

IDEMPOTENCY: both modes key every line on (order_id, product_id). A line
that already has a tracking entry is reported as skipped, never recorded
twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    SaleTrackingEntry,
    TRACKING_PENDING,
    TRACKING_RECONCILED,
    RECORDED_VIA_LEGACY,
    RECORDED_VIA_RECONCILIATION,
    LOG_ACTION_DEDUCT,
)
from stockrecon.time_utils import utcnow
from . import summary_service
from .audit_service import append_reconciliation_log
from .concurrency import run_with_retry
from .fifo import plan
from .inventory_service import apply_plan, load_fifo_batches


MODE_LEGACY = "legacy"
MODE_RECONCILIATION = "reconciliation"

ERROR_INSUFFICIENT_INVENTORY = "insufficient-inventory"


class SaleRecordError(Exception):
    """Raised for invalid sale submissions; nothing is written."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientInventory(Exception):
    """Legacy mode: active batches cannot cover the line. The line's transaction is aborted."""
    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for product {product_id}. Available: {available}, Requested: {requested}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


@dataclass(frozen=True)
class SaleContext:
    company_id: str
    store_id: str
    order_id: str
    cashier_id: str | None = None
    invoice_number: str | None = None
    payment_captured: bool = True


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price_cents: int | None = None
    product_name: str | None = None
    line_total_cents: int | None = None

    @property
    def total_cents(self) -> int | None:
        if self.line_total_cents is not None:
            return self.line_total_cents
        if self.unit_price_cents is None:
            return None
        return self.unit_price_cents * self.quantity


@dataclass
class LineError:
    product_id: str
    code: str
    message: str
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class RecordResult:
    recorded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[LineError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "recorded": list(self.recorded),
            "skipped": list(self.skipped),
            "errors": [e.to_dict() for e in self.errors],
        }


def merge_line_items(line_items: list[LineItem]) -> list[LineItem]:
    """
    Collapse repeated products into one line per product (first-seen order).

    Tracking entries are unique per (order_id, product_id), so two cart rows
    for the same product must become one entry with the summed quantity.
    """
    merged: dict[str, LineItem] = {}
    for item in line_items:
        current = merged.get(item.product_id)
        if current is None:
            merged[item.product_id] = LineItem(
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                product_name=item.product_name,
                line_total_cents=item.total_cents,
            )
            continue
        totals = [t for t in (current.total_cents, item.total_cents) if t is not None]
        merged[item.product_id] = LineItem(
            product_id=item.product_id,
            quantity=current.quantity + item.quantity,
            unit_price_cents=current.unit_price_cents,
            product_name=current.product_name or item.product_name,
            line_total_cents=sum(totals) if totals else None,
        )
    return list(merged.values())


def find_tracking_entry(order_id: str, product_id: str) -> SaleTrackingEntry | None:
    return (
        db.session.query(SaleTrackingEntry)
        .filter_by(order_id=order_id, product_id=product_id)
        .first()
    )


def _new_entry(context: SaleContext, item: LineItem, *, status: str, recorded_via: str) -> SaleTrackingEntry:
    return SaleTrackingEntry(
        company_id=context.company_id,
        store_id=context.store_id,
        order_id=context.order_id,
        invoice_number=context.invoice_number,
        cashier_id=context.cashier_id,
        product_id=item.product_id,
        product_name=item.product_name,
        quantity=item.quantity,
        unit_price_cents=item.unit_price_cents,
        line_total_cents=item.total_cents,
        recorded_via=recorded_via,
        status=status,
    )


class SaleRecorder:
    """Shared record_sale() flow; subclasses implement one product line."""

    mode: str = ""

    def record_sale(self, context: SaleContext, line_items: list[LineItem]) -> RecordResult:
        self._validate(context, line_items)

        result = RecordResult()
        for item in merge_line_items(line_items):
            try:
                created = self._record_line(context, item)
            except InsufficientInventory as exc:
                result.errors.append(LineError(
                    product_id=item.product_id,
                    code=ERROR_INSUFFICIENT_INVENTORY,
                    message=str(exc),
                    details={"requested": exc.requested, "available": exc.available},
                ))
                continue

            if created:
                result.recorded.append(item.product_id)
            else:
                result.skipped.append(item.product_id)

        current_app.logger.info(
            "Recorded sale order=%s store=%s mode=%s recorded=%d skipped=%d errors=%d",
            context.order_id,
            context.store_id,
            self.mode,
            len(result.recorded),
            len(result.skipped),
            len(result.errors),
        )
        return result

    def _validate(self, context: SaleContext, line_items: list[LineItem]) -> None:
        if not context.payment_captured:
            # Abandoned carts never reach the ledger or the tracking store
            raise SaleRecordError("Order payment has not been captured", {"order_id": context.order_id})
        for name in ("company_id", "store_id", "order_id"):
            if not getattr(context, name):
                raise SaleRecordError(f"{name} required")
        if not line_items:
            raise SaleRecordError("Cannot record a sale with no line items")
        for item in line_items:
            if not item.product_id:
                raise SaleRecordError("product_id required on every line item")
            if item.quantity is None or item.quantity <= 0:
                raise SaleRecordError(
                    "quantity must be > 0",
                    {"product_id": item.product_id, "quantity": item.quantity},
                )

    def _record_line(self, context: SaleContext, item: LineItem) -> bool:
        raise NotImplementedError


class TrackingSaleRecorder(SaleRecorder):
    """Reconciliation mode: a single insert per line, no ledger contention at the till."""

    mode = MODE_RECONCILIATION

    def _record_line(self, context: SaleContext, item: LineItem) -> bool:
        def _op() -> bool:
            if find_tracking_entry(context.order_id, item.product_id) is not None:
                return False

            db.session.add(_new_entry(
                context, item, status=TRACKING_PENDING, recorded_via=RECORDED_VIA_RECONCILIATION
            ))
            try:
                db.session.commit()
            except IntegrityError:
                # A concurrent retry of the same sale inserted the line first
                db.session.rollback()
                return False
            return True

        return run_with_retry(_op)


class LegacySaleRecorder(SaleRecorder):
    """Legacy mode: synchronous FIFO deduction, one product-scoped transaction per line."""

    mode = MODE_LEGACY

    def _record_line(self, context: SaleContext, item: LineItem) -> bool:
        def _op() -> bool:
            if find_tracking_entry(context.order_id, item.product_id) is not None:
                return False

            batches = load_fifo_batches(item.product_id)
            deduction_plan = plan(batches, item.quantity)
            if not deduction_plan.fulfilled:
                raise InsufficientInventory(item.product_id, item.quantity, deduction_plan.allocated)

            apply_plan(batches, deduction_plan)

            entry = _new_entry(context, item, status=TRACKING_RECONCILED, recorded_via=RECORDED_VIA_LEGACY)
            entry.reconciled_at = utcnow()
            db.session.add(entry)
            try:
                db.session.flush()
            except IntegrityError:
                # Same line already deducted by a concurrent retry; drop our deduction
                db.session.rollback()
                return False

            append_reconciliation_log(
                entry=entry,
                action=LOG_ACTION_DEDUCT,
                quantity_processed=deduction_plan.allocated,
                deductions=deduction_plan.deductions,
                message="Deducted at sale time",
            )
            summary_service.recompute(item.product_id, commit=False)

            db.session.commit()
            return True

        return run_with_retry(_op)


RECORDERS = {
    MODE_LEGACY: LegacySaleRecorder,
    MODE_RECONCILIATION: TrackingSaleRecorder,
}


def build_sale_recorder(mode: str) -> SaleRecorder:
    try:
        recorder_cls = RECORDERS[(mode or "").strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown RECONCILIATION_MODE {mode!r}; expected one of {sorted(RECORDERS)}"
        ) from None
    return recorder_cls()


def get_sale_recorder() -> SaleRecorder:
    """The recorder selected for the running app."""
    return current_app.extensions["sale_recorder"]

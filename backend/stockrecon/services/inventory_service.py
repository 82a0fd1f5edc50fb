# Overview: Batch ledger operations; loads lots in FIFO order, applies deduction plans, receives stock.

# backend/stockrecon/services/inventory_service.py

"""
Batch Ledger Invariants (authoritative)

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- API accepts ISO-8601 with 'Z' or offsets; inputs are normalized to UTC-naive.

Ledger model:
- Stock lives in InventoryBatch rows; a product's on-hand is SUM(quantity) of its active batches.
- Batch quantity only decreases through a FIFO deduction plan (apply_plan).
- A batch drained to zero becomes 'inactive' and is never reactivated here.
- Restocks append new batches; batch_id is unique per product.
- ProductSummary is recomputed in the same transaction as every ledger write made here.
"""

from datetime import timedelta

from ..extensions import db
from ..models import InventoryBatch, BATCH_ACTIVE, BATCH_INACTIVE
from ..validation import ConflictError
from stockrecon.time_utils import utcnow, coerce_datetime, to_utc_z
from . import summary_service
from .concurrency import run_with_retry
from .fifo import DeductionPlan, fifo_order, plan


# Preview warns when available stock is below this multiple of the request
LOW_STOCK_RATIO = 1.1


class LedgerConsistencyError(Exception):
    """Raised when a deduction plan no longer matches the batches it is applied to."""


def load_fifo_batches(product_id: str) -> list[InventoryBatch]:
    """Active batches with stock for a product, oldest first (ties by batch_id)."""
    rows = (
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.product_id == product_id,
            InventoryBatch.status == BATCH_ACTIVE,
            InventoryBatch.quantity > 0,
        )
        .order_by(InventoryBatch.received_at.asc(), InventoryBatch.batch_id.asc())
        .all()
    )
    return fifo_order(rows)


def apply_plan(batches: list[InventoryBatch], deduction_plan: DeductionPlan) -> list[InventoryBatch]:
    """
    Apply a deduction plan to the batches it was computed from.

    Must run inside the caller's transaction; the caller commits. Returns the
    batches that were drained (now inactive).
    """
    by_id = {b.batch_id: b for b in batches}
    drained = []
    for deduction in deduction_plan.deductions:
        batch = by_id.get(deduction.batch_id)
        if batch is None:
            raise LedgerConsistencyError(f"batch {deduction.batch_id} not in loaded batch set")
        if batch.quantity < deduction.quantity:
            raise LedgerConsistencyError(
                f"batch {deduction.batch_id} has {batch.quantity}, plan needs {deduction.quantity}"
            )
        batch.quantity -= deduction.quantity
        if batch.quantity == 0:
            batch.status = BATCH_INACTIVE
            drained.append(batch)
    db.session.flush()
    return drained


def preview_deduction(product_id: str, quantity: int) -> dict:
    """
    Speculative FIFO plan against the current ledger. Read-only.
    """
    batches = load_fifo_batches(product_id)
    available = sum(b.quantity for b in batches)
    deduction_plan = plan(batches, quantity)

    warnings = []
    if available < quantity * LOW_STOCK_RATIO:
        warnings.append("Stock level is getting low")

    errors = []
    if not deduction_plan.fulfilled:
        errors.append(f"Insufficient stock. Available: {available}, Requested: {quantity}")

    return {
        "product_id": product_id,
        "requested_quantity": quantity,
        "available_stock": available,
        "plan": deduction_plan.to_dict(),
        "available_batches": [
            {
                "batch_id": b.batch_id,
                "quantity": b.quantity,
                "unit_price_cents": b.unit_price_cents,
                "received_at": to_utc_z(b.received_at),
            }
            for b in batches
        ],
        "warnings": warnings,
        "errors": errors,
    }


def receive_batch(
    *,
    product_id: str,
    batch_id: str,
    quantity: int,
    unit_price_cents: int,
    received_at=None,
    company_id: str | None = None,
    store_id: str | None = None,
) -> InventoryBatch:
    """
    Append a newly received lot to the ledger and refresh the product summary.

    Restock never edits an existing lot: reusing a batch_id for the same
    product is a ConflictError.
    """
    def _op():
        received_dt = coerce_datetime(received_at)
        if received_dt > (utcnow() + timedelta(minutes=2)):
            raise ValueError("received_at cannot be in the future")

        existing = (
            db.session.query(InventoryBatch)
            .filter_by(product_id=product_id, batch_id=batch_id)
            .first()
        )
        if existing is not None:
            raise ConflictError(f"batch {batch_id} already exists for product {product_id}")

        batch = InventoryBatch(
            product_id=product_id,
            batch_id=batch_id,
            company_id=company_id,
            store_id=store_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            received_at=received_dt,
            status=BATCH_ACTIVE,
        )
        db.session.add(batch)
        db.session.flush()

        summary_service.recompute(product_id, commit=False)

        db.session.commit()
        return batch

    return run_with_retry(_op)


def list_batches(product_id: str, include_inactive: bool = True) -> list[InventoryBatch]:
    q = db.session.query(InventoryBatch).filter_by(product_id=product_id)
    if not include_inactive:
        q = q.filter(InventoryBatch.status == BATCH_ACTIVE)
    return q.order_by(InventoryBatch.received_at.asc(), InventoryBatch.batch_id.asc()).all()

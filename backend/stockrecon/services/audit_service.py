# Overview: Append-only reconciliation audit log; one record per processed sale tracking entry.

from __future__ import annotations

from typing import Iterable

from ..extensions import db
from ..models import ReconciliationLogEntry, SaleTrackingEntry
from .fifo import Deduction
"""
Reconciliation Log Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Rows are written inside the same DB transaction as the deductions they describe.
- batches_used records exactly which lots were drawn from, in draw order.
"""


def append_reconciliation_log(
    *,
    entry: SaleTrackingEntry,
    action: str,
    quantity_processed: int = 0,
    deductions: Iterable[Deduction] = (),
    message: str | None = None,
) -> ReconciliationLogEntry:
    """
    Append one audit row for a tracking entry.

    No commit here; the caller's transaction owns it.
    """
    log_entry = ReconciliationLogEntry(
        tracking_id=entry.id,
        company_id=entry.company_id,
        store_id=entry.store_id,
        order_id=entry.order_id,
        product_id=entry.product_id,
        quantity_processed=quantity_processed,
        batches_used=[d.to_dict() for d in deductions],
        action=action,
        message=message,
    )
    db.session.add(log_entry)
    db.session.flush()  # ensures log_entry.id is assigned without committing
    return log_entry


def list_log_entries(
    *,
    company_id: str | None = None,
    store_id: str | None = None,
    product_id: str | None = None,
    tracking_id: int | None = None,
    action: str | None = None,
    limit: int = 200,
) -> list[ReconciliationLogEntry]:
    q = db.session.query(ReconciliationLogEntry)
    if company_id:
        q = q.filter(ReconciliationLogEntry.company_id == company_id)
    if store_id:
        q = q.filter(ReconciliationLogEntry.store_id == store_id)
    if product_id:
        q = q.filter(ReconciliationLogEntry.product_id == product_id)
    if tracking_id is not None:
        q = q.filter(ReconciliationLogEntry.tracking_id == tracking_id)
    if action:
        q = q.filter(ReconciliationLogEntry.action == action)
    return (
        q.order_by(ReconciliationLogEntry.created_at.desc(), ReconciliationLogEntry.id.desc())
        .limit(limit)
        .all()
    )

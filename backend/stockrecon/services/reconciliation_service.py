# Overview: Reconciliation engine; turns pending sale tracking entries into FIFO ledger deductions.

"""
Reconciliation Engine

Consumes SaleTrackingEntry rows in status 'pending' and applies the FIFO
plan for each one against the live batch ledger, one transaction per entry:

    re-read entry (skip unless pending)
    -> load active batches oldest-first -> plan
    -> write batch deductions -> set entry status -> append audit row
    -> commit

OUTCOMES:
- reconciled: full quantity deducted ('deduct' log row)
- partial: some stock deducted, entry 'error' with remaining > 0 ('partial' log row)
- no-inventory: nothing to draw from, entry 'error' ('error' log row, no batches)
- skipped: entry already left 'pending' (earlier or concurrent run)
- failed: unexpected exception; entry best-effort marked 'error'
- deferred: store kept conflicting after every retry; entry stays 'pending'

Partial fulfilment is terminal. Entries are not retried against later
restocks; they wait for operational review.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import (
    SaleTrackingEntry,
    TRACKING_PENDING,
    TRACKING_RECONCILED,
    TRACKING_ERROR,
    LOG_ACTION_DEDUCT,
    LOG_ACTION_PARTIAL,
    LOG_ACTION_ERROR,
)
from ..validation import ValidationError
from stockrecon.time_utils import utcnow
from . import summary_service
from .audit_service import append_reconciliation_log
from .concurrency import TransientStoreError, run_with_retry
from .fifo import plan
from .inventory_service import apply_plan, load_fifo_batches


NO_INVENTORY = "no-inventory"

OUTCOME_RECONCILED = "reconciled"
OUTCOME_PARTIAL = "partial"
OUTCOME_NO_INVENTORY = NO_INVENTORY
OUTCOME_SKIPPED = "skipped"
OUTCOME_FAILED = "failed"
OUTCOME_DEFERRED = "deferred"


@dataclass(frozen=True)
class EntryOutcome:
    entry_id: int
    outcome: str
    quantity_processed: int = 0
    remaining: int = 0


@dataclass
class SweepResult:
    processed: int = 0
    reconciled: int = 0
    partial: int = 0
    no_inventory: int = 0
    skipped: int = 0
    failed: int = 0
    deferred: int = 0
    cancelled: bool = False

    def count(self, outcome: str) -> None:
        if outcome == OUTCOME_RECONCILED:
            self.reconciled += 1
        elif outcome == OUTCOME_PARTIAL:
            self.partial += 1
        elif outcome == OUTCOME_NO_INVENTORY:
            self.no_inventory += 1
        elif outcome == OUTCOME_SKIPPED:
            self.skipped += 1
        elif outcome == OUTCOME_FAILED:
            self.failed += 1
        elif outcome == OUTCOME_DEFERRED:
            self.deferred += 1

    def to_dict(self) -> dict:
        return {
            "status": "ok",
            "processed": self.processed,
            "reconciled": self.reconciled,
            "partial": self.partial,
            "no_inventory": self.no_inventory,
            "skipped": self.skipped,
            "failed": self.failed,
            "deferred": self.deferred,
            "cancelled": self.cancelled,
        }


def reconcile_entry(entry_id: int) -> EntryOutcome:
    """
    Reconcile one tracking entry in its own optimistic transaction.

    Two workers racing on the same entry: the loser's flush fails the
    version check, the transaction is retried, the re-read sees a terminal
    status and the entry is skipped. Only one of them mutates the ledger.
    """
    def _op() -> EntryOutcome:
        entry = db.session.get(SaleTrackingEntry, entry_id)
        if entry is None or entry.status != TRACKING_PENDING:
            db.session.rollback()
            return EntryOutcome(entry_id, OUTCOME_SKIPPED)

        now = utcnow()
        requested = entry.quantity or 0

        if requested <= 0:
            entry.status = TRACKING_RECONCILED
            entry.reconciled_at = now
            db.session.commit()
            return EntryOutcome(entry_id, OUTCOME_RECONCILED)

        batches = load_fifo_batches(entry.product_id)
        if not batches:
            entry.status = TRACKING_ERROR
            entry.error_message = NO_INVENTORY
            entry.remaining = requested
            entry.reconciled_at = now
            append_reconciliation_log(
                entry=entry,
                action=LOG_ACTION_ERROR,
                message=NO_INVENTORY,
            )
            db.session.commit()
            return EntryOutcome(entry_id, OUTCOME_NO_INVENTORY, remaining=requested)

        deduction_plan = plan(batches, requested)
        apply_plan(batches, deduction_plan)

        processed = deduction_plan.allocated
        remaining = requested - processed
        entry.reconciled_at = now

        if remaining == 0:
            entry.status = TRACKING_RECONCILED
            action = LOG_ACTION_DEDUCT
            message = "Reconciled successfully"
            outcome = OUTCOME_RECONCILED
        else:
            entry.status = TRACKING_ERROR
            entry.remaining = remaining
            entry.error_message = f"partial: remaining {remaining}"
            action = LOG_ACTION_PARTIAL
            message = f"Only partially reconciled; remaining {remaining}"
            outcome = OUTCOME_PARTIAL

        append_reconciliation_log(
            entry=entry,
            action=action,
            quantity_processed=processed,
            deductions=deduction_plan.deductions,
            message=message,
        )
        db.session.commit()
        return EntryOutcome(entry_id, outcome, quantity_processed=processed, remaining=remaining)

    return run_with_retry(_op)


def _mark_failed(entry_id: int, exc: Exception) -> bool:
    """Best-effort: move a still-pending entry to 'error' with the exception message."""
    message = (str(exc) or exc.__class__.__name__)[:255]

    def _op() -> bool:
        entry = db.session.get(SaleTrackingEntry, entry_id)
        if entry is None or entry.status != TRACKING_PENDING:
            db.session.rollback()
            return False
        entry.status = TRACKING_ERROR
        entry.error_message = message
        entry.reconciled_at = utcnow()
        append_reconciliation_log(entry=entry, action=LOG_ACTION_ERROR, message=message)
        db.session.commit()
        return True

    try:
        return run_with_retry(_op)
    except Exception:
        current_app.logger.exception("Could not mark tracking entry %s as error", entry_id)
        return False


def _pending_work(company_id: str | None, store_id: str | None, limit: int | None) -> list[tuple[int, str]]:
    q = db.session.query(SaleTrackingEntry.id, SaleTrackingEntry.product_id).filter(
        SaleTrackingEntry.status == TRACKING_PENDING
    )
    if company_id:
        q = q.filter(SaleTrackingEntry.company_id == company_id)
    if store_id:
        q = q.filter(SaleTrackingEntry.store_id == store_id)
    q = q.order_by(SaleTrackingEntry.created_at.asc(), SaleTrackingEntry.id.asc())
    if limit is not None:
        q = q.limit(limit)
    work = [(row[0], row[1]) for row in q.all()]
    db.session.rollback()  # end the read transaction before per-entry writes
    return work


def reconcile_pending(
    *,
    company_id: str | None = None,
    store_id: str | None = None,
    limit: int | None = None,
    stop_event: threading.Event | None = None,
) -> SweepResult:
    """
    Sweep pending tracking entries, oldest first, up to limit.

    Per-entry failures are recorded and never abort the sweep. The product
    summary is recomputed after every entry. stop_event is only checked
    between entries: the entry in flight always finishes its transaction.
    """
    if limit is not None and limit < 1:
        raise ValidationError("limit must be at least 1")

    logger = current_app.logger
    result = SweepResult()

    for entry_id, product_id in _pending_work(company_id, store_id, limit):
        if stop_event is not None and stop_event.is_set():
            result.cancelled = True
            logger.info("Reconciliation sweep cancelled after %d entries", result.processed)
            break

        result.processed += 1
        try:
            outcome = reconcile_entry(entry_id)
        except TransientStoreError as exc:
            logger.warning("Tracking entry %s left pending: %s", entry_id, exc)
            result.count(OUTCOME_DEFERRED)
            continue
        except Exception as exc:
            logger.exception("Error reconciling tracking entry %s", entry_id)
            _mark_failed(entry_id, exc)
            result.count(OUTCOME_FAILED)
            continue

        result.count(outcome.outcome)
        if outcome.outcome == OUTCOME_SKIPPED:
            continue

        try:
            summary_service.recompute(product_id)
        except Exception:
            # The ledger change is committed; the summary is rebuilt on the next recompute
            logger.exception("Summary recompute failed for product %s", product_id)

    return result


def reconcile_on_demand(
    *,
    company_id: str | None = None,
    store_id: str | None = None,
    limit: int | None = None,
) -> SweepResult:
    """
    Scoped sweep for one tenant/store. An unscoped call is rejected so a
    single request cannot drain every tenant's backlog.
    """
    if not company_id and not store_id:
        raise ValidationError("Provide company_id or store_id to scope reconciliation.")
    if limit is None:
        limit = current_app.config["RECONCILE_ON_DEMAND_LIMIT"]

    result = reconcile_pending(company_id=company_id, store_id=store_id, limit=limit)
    current_app.logger.info(
        "On-demand reconciliation company=%s store=%s: %s", company_id, store_id, result.to_dict()
    )
    return result


def run_scheduled_sweep(stop_event: threading.Event | None = None) -> SweepResult:
    """Daily sweep across all tenants, bounded by RECONCILE_DEFAULT_LIMIT."""
    limit = current_app.config["RECONCILE_DEFAULT_LIMIT"]
    current_app.logger.info("Starting scheduled reconciliation (limit=%s)", limit)
    result = reconcile_pending(limit=limit, stop_event=stop_event)
    current_app.logger.info("Scheduled reconciliation completed: %s", result.to_dict())
    return result


def list_tracking_entries(
    *,
    company_id: str | None = None,
    store_id: str | None = None,
    product_id: str | None = None,
    order_id: str | None = None,
    status: str | None = None,
    limit: int = 200,
) -> list[SaleTrackingEntry]:
    q = db.session.query(SaleTrackingEntry)
    if company_id:
        q = q.filter(SaleTrackingEntry.company_id == company_id)
    if store_id:
        q = q.filter(SaleTrackingEntry.store_id == store_id)
    if product_id:
        q = q.filter(SaleTrackingEntry.product_id == product_id)
    if order_id:
        q = q.filter(SaleTrackingEntry.order_id == order_id)
    if status:
        q = q.filter(SaleTrackingEntry.status == status)
    return (
        q.order_by(SaleTrackingEntry.created_at.desc(), SaleTrackingEntry.id.desc())
        .limit(limit)
        .all()
    )

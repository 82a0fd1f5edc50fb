# Overview: Product summary projector; re-derives per-product stock and price from the batch ledger.

"""
Product Summary Projector

ProductSummary is a cache over the batch ledger, never a source of truth:
- total_stock = SUM(quantity) over active batches
- selling_price_cents = unit price of the most recently received active batch (0 if none)

recompute() is a full re-derivation, not an increment, so calling it twice,
or from two workers at once, converges on the same row. Only the three
projected columns are written; catalog fields on the row are left alone.

CONCURRENCY: the summary row is versioned and loaded before the ledger is
read. A recompute whose ledger reading went stale loses the version check
on flush (StaleDataError) and run_with_retry re-derives it from scratch.
"""

from __future__ import annotations

from flask import g
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import InventoryBatch, ProductSummary, BATCH_ACTIVE
from stockrecon.time_utils import utcnow
from .concurrency import run_with_retry


def derive_summary(product_id: str) -> tuple[int, int]:
    """Return (total_stock, selling_price_cents) for a product from its active batches."""
    batches = (
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.product_id == product_id,
            InventoryBatch.status == BATCH_ACTIVE,
        )
        .all()
    )
    total_stock = sum(max(b.quantity or 0, 0) for b in batches)
    latest = max(batches, key=lambda b: (b.received_at, b.batch_id), default=None)
    selling_price_cents = latest.unit_price_cents if latest is not None else 0
    return total_stock, selling_price_cents


def _apply(product_id: str) -> ProductSummary:
    # Load the row before reading the ledger: the version read here guards the write
    summary = (
        db.session.query(ProductSummary)
        .filter_by(product_id=product_id)
        .populate_existing()
        .first()
    )
    total_stock, selling_price_cents = derive_summary(product_id)

    if summary is None:
        summary = ProductSummary(product_id=product_id)
        db.session.add(summary)

    summary.total_stock = total_stock
    summary.selling_price_cents = selling_price_cents
    summary.last_updated = utcnow()
    db.session.flush()
    return summary


def recompute(product_id: str, *, commit: bool = True) -> ProductSummary:
    """
    Recompute a product's summary from the ledger.

    commit=False joins the caller's open transaction (legacy sale path), so
    the summary commits atomically with the deduction that changed it.
    """
    if not commit:
        return _apply(product_id)

    def _op():
        try:
            summary = _apply(product_id)
            db.session.commit()
        except IntegrityError:
            # Another worker inserted the first summary row; merge into it
            db.session.rollback()
            summary = _apply(product_id)
            db.session.commit()
        return summary

    return run_with_retry(_op)


def rebuild_all() -> int:
    """Recompute every product that has at least one batch. Returns the product count."""
    product_ids = [
        row[0]
        for row in db.session.query(InventoryBatch.product_id).distinct().order_by(InventoryBatch.product_id)
    ]
    for product_id in product_ids:
        recompute(product_id)
    return len(product_ids)


def get_summary(product_id: str) -> ProductSummary | None:
    return db.session.query(ProductSummary).filter_by(product_id=product_id).first()


class SummaryReader:
    """
    Read-through cache of product summaries for one request.

    Lives on flask.g (see current_summary_reader), so nothing survives past
    the request that created it.
    """

    def __init__(self):
        self._cache: dict[str, dict | None] = {}

    def get(self, product_id: str) -> dict | None:
        if product_id not in self._cache:
            summary = get_summary(product_id)
            self._cache[product_id] = summary.to_dict() if summary is not None else None
        return self._cache[product_id]

    def invalidate(self, product_id: str) -> None:
        self._cache.pop(product_id, None)


def current_summary_reader() -> SummaryReader:
    reader = g.get("summary_reader")
    if reader is None:
        reader = SummaryReader()
        g.summary_reader = reader
    return reader

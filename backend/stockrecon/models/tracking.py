from __future__ import annotations

from ..extensions import db
from stockrecon.time_utils import to_utc_z


TRACKING_PENDING = "pending"
TRACKING_RECONCILED = "reconciled"
TRACKING_ERROR = "error"

TRACKING_STATUSES = (TRACKING_PENDING, TRACKING_RECONCILED, TRACKING_ERROR)

RECORDED_VIA_LEGACY = "legacy"
RECORDED_VIA_RECONCILIATION = "reconciliation"

LOG_ACTION_DEDUCT = "deduct"
LOG_ACTION_PARTIAL = "partial"
LOG_ACTION_ERROR = "error"


class SaleTrackingEntry(db.Model):
    """
    One product line of one paid sale; the unit of reconciliation work.

    LIFECYCLE:
    - pending: written by the sale recorder, no stock deducted yet
    - reconciled: full quantity deducted from the batch ledger
    - error: no inventory, partial deduction (remaining > 0), or a processing failure

    reconciled and error are terminal; the reconciliation sweep only ever
    picks up pending rows.

    IDEMPOTENCY: (order_id, product_id) is unique, so a retried sale
    submission cannot create a second entry for the same line.
    """
    __tablename__ = "sale_tracking_entries"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_sale_tracking_order_product"),
        db.Index("ix_sale_tracking_status_created", "status", "created_at"),
        db.Index("ix_sale_tracking_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.String(64), nullable=False, index=True)
    store_id = db.Column(db.String(64), nullable=False, index=True)
    order_id = db.Column(db.String(64), nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    cashier_id = db.Column(db.String(64), nullable=True)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    line_total_cents = db.Column(db.Integer, nullable=True)

    recorded_via = db.Column(db.String(16), nullable=False, default=RECORDED_VIA_RECONCILIATION)

    status = db.Column(db.String(16), nullable=False, default=TRACKING_PENDING)
    remaining = db.Column(db.Integer, nullable=True)
    error_message = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<SaleTrackingEntry id={self.id} order_id={self.order_id!r} "
            f"product_id={self.product_id!r} quantity={self.quantity} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "store_id": self.store_id,
            "order_id": self.order_id,
            "invoice_number": self.invoice_number,
            "cashier_id": self.cashier_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "recorded_via": self.recorded_via,
            "status": self.status,
            "remaining": self.remaining,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "reconciled_at": to_utc_z(self.reconciled_at),
        }


class ReconciliationLogEntry(db.Model):
    """
    Append-only audit record: one row per processed tracking entry.

    batches_used is a JSON list of {"batch_id": str, "quantity": int} in the
    order the lots were drawn. Rows are never updated or deleted.
    """
    __tablename__ = "reconciliation_log"
    __table_args__ = (
        db.Index("ix_reconciliation_log_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    tracking_id = db.Column(db.Integer, db.ForeignKey("sale_tracking_entries.id"), nullable=True, index=True)
    company_id = db.Column(db.String(64), nullable=True, index=True)
    store_id = db.Column(db.String(64), nullable=True, index=True)
    order_id = db.Column(db.String(64), nullable=True)
    product_id = db.Column(db.String(64), nullable=False)

    quantity_processed = db.Column(db.Integer, nullable=False, default=0)
    batches_used = db.Column(db.JSON, nullable=False, default=list)

    action = db.Column(db.String(16), nullable=False, index=True)
    message = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tracking_id": self.tracking_id,
            "company_id": self.company_id,
            "store_id": self.store_id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity_processed": self.quantity_processed,
            "batches_used": list(self.batches_used or []),
            "action": self.action,
            "message": self.message,
            "created_at": to_utc_z(self.created_at),
        }

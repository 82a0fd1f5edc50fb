from __future__ import annotations

from ..extensions import db
from stockrecon.time_utils import to_utc_z


BATCH_ACTIVE = "active"
BATCH_INACTIVE = "inactive"


class InventoryBatch(db.Model):
    """
    One received lot of a product.

    LEDGER RULES:
    - quantity is the remaining on-hand of this lot (never negative).
    - received_at is the FIFO ordering key; ties are broken by batch_id.
    - A deduction that drains the lot sets status='inactive'. The engine never
      flips a batch back to 'active'; restocks create new batch records.
    - Batches are never deleted (audit trail).

    CONCURRENCY: version_id makes every UPDATE conditional on the version that
    was read, so two transactions deducting from the same lot cannot both win.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "batch_id", name="uq_inventory_batches_product_batch"),
        db.Index("ix_inventory_batches_fifo", "product_id", "status", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    batch_id = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.String(64), nullable=False, index=True)
    company_id = db.Column(db.String(64), nullable=True, index=True)
    store_id = db.Column(db.String(64), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=BATCH_ACTIVE, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch product_id={self.product_id!r} batch_id={self.batch_id!r} "
            f"quantity={self.quantity} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "product_id": self.product_id,
            "company_id": self.company_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "received_at": to_utc_z(self.received_at),
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSummary(db.Model):
    """
    Derived per-product projection read by catalog and UI layers.

    total_stock, selling_price_cents and last_updated are written only by
    summary_service.recompute(). name/sku belong to the catalog and are never
    touched by the projector.

    CONCURRENCY: version_id turns each recompute write into a compare-and-set
    against the row version read before the ledger was summed.
    """
    __tablename__ = "product_summaries"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_product_summaries_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.String(64), nullable=False)

    # Catalog-owned fields
    name = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    total_stock = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "sku": self.sku,
            "total_stock": self.total_stock,
            "selling_price_cents": self.selling_price_cents,
            "last_updated": to_utc_z(self.last_updated),
        }

"""Initial schema: batch ledger, product summaries, sale tracking, reconciliation log, invoice series

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "inventory_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("company_id", sa.String(64), nullable=True),
        sa.Column("store_id", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "batch_id", name="uq_inventory_batches_product_batch"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("inventory_batches", schema=None) as batch_op:
        batch_op.create_index("ix_inventory_batches_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_inventory_batches_company_id", ["company_id"], unique=False)
        batch_op.create_index("ix_inventory_batches_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_inventory_batches_status", ["status"], unique=False)
        batch_op.create_index("ix_inventory_batches_fifo", ["product_id", "status", "received_at"], unique=False)

    op.create_table(
        "product_summaries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("total_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", name="uq_product_summaries_product"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sale_tracking_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("store_id", sa.String(64), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("cashier_id", sa.String(64), nullable=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=True),
        sa.Column("line_total_cents", sa.Integer(), nullable=True),
        sa.Column("recorded_via", sa.String(16), nullable=False, server_default="reconciliation"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("remaining", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("reconciled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "product_id", name="uq_sale_tracking_order_product"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sale_tracking_entries", schema=None) as batch_op:
        batch_op.create_index("ix_sale_tracking_entries_company_id", ["company_id"], unique=False)
        batch_op.create_index("ix_sale_tracking_entries_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_sale_tracking_entries_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_sale_tracking_entries_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sale_tracking_status_created", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_sale_tracking_store_status", ["store_id", "status"], unique=False)

    op.create_table(
        "reconciliation_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tracking_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.String(64), nullable=True),
        sa.Column("store_id", sa.String(64), nullable=True),
        sa.Column("order_id", sa.String(64), nullable=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("quantity_processed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("batches_used", sa.JSON(), nullable=False),
        sa.Column("action", sa.String(16), nullable=False),
        sa.Column("message", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["tracking_id"], ["sale_tracking_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("reconciliation_log", schema=None) as batch_op:
        batch_op.create_index("ix_reconciliation_log_tracking_id", ["tracking_id"], unique=False)
        batch_op.create_index("ix_reconciliation_log_company_id", ["company_id"], unique=False)
        batch_op.create_index("ix_reconciliation_log_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_reconciliation_log_action", ["action"], unique=False)
        batch_op.create_index("ix_reconciliation_log_product_created", ["product_id", "created_at"], unique=False)

    op.create_table(
        "invoice_series",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("company_id", sa.String(64), nullable=True),
        sa.Column("store_id", sa.String(64), nullable=True),
        sa.Column("prefix", sa.String(32), nullable=False),
        sa.Column("series_start", sa.Integer(), nullable=False),
        sa.Column("series_end", sa.Integer(), nullable=False),
        sa.Column("current_number", sa.Integer(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("series_start <= series_end", name="ck_invoice_series_bounds"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("device_id", name="uq_invoice_series_device"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("invoice_series", schema=None) as batch_op:
        batch_op.create_index("ix_invoice_series_company_id", ["company_id"], unique=False)
        batch_op.create_index("ix_invoice_series_store_id", ["store_id"], unique=False)


def downgrade():
    op.drop_table("invoice_series")
    op.drop_table("reconciliation_log")
    op.drop_table("sale_tracking_entries")
    op.drop_table("product_summaries")
    op.drop_table("inventory_batches")

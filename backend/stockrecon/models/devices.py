from __future__ import annotations

from ..extensions import db
from stockrecon.time_utils import to_utc_z


class InvoiceSeries(db.Model):
    """
    Bounded invoice number range assigned to one POS device/terminal.

    INVARIANT: series_start <= current_number <= series_end.
    current_number is the last number handed out (a fresh series starts at
    series_start, so the first allocation returns series_start + 1). Once
    current_number == series_end the device is blocked until an external
    process extends the series.

    CONCURRENCY: version_id turns each allocation into a compare-and-set, so
    concurrent terminals retry instead of reusing or skipping a number.
    """
    __tablename__ = "invoice_series"
    __table_args__ = (
        db.UniqueConstraint("device_id", name="uq_invoice_series_device"),
        db.CheckConstraint("series_start <= series_end", name="ck_invoice_series_bounds"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    device_id = db.Column(db.String(64), nullable=False)
    company_id = db.Column(db.String(64), nullable=True, index=True)
    store_id = db.Column(db.String(64), nullable=True, index=True)

    prefix = db.Column(db.String(32), nullable=False)
    series_start = db.Column(db.Integer, nullable=False)
    series_end = db.Column(db.Integer, nullable=False)
    current_number = db.Column(db.Integer, nullable=False)

    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining(self) -> int:
        return self.series_end - self.current_number

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "company_id": self.company_id,
            "store_id": self.store_id,
            "prefix": self.prefix,
            "start": self.series_start,
            "end": self.series_end,
            "current": self.current_number,
            "remaining": self.remaining,
            "last_used_at": to_utc_z(self.last_used_at),
            "version_id": self.version_id,
        }

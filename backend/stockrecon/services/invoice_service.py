# Overview: Per-device invoice number allocation within a bounded series.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import InvoiceSeries
from ..validation import ConflictError, ValidationError
from stockrecon.time_utils import utcnow
from .concurrency import run_with_retry


INVOICE_NUMBER_PAD = 6


class SeriesExhausted(Exception):
    """
    The device has handed out the last number of its series.

    Blocking for the sale: there is no fallback to an unnumbered invoice.
    Cleared only when an external process extends the series.
    """
    def __init__(self, device_id: str, series_end: int):
        super().__init__(
            f"Invoice series exhausted for device {device_id} (end={series_end}). "
            "Request a new series before continuing sales."
        )
        self.device_id = device_id
        self.series_end = series_end


class SeriesNotFound(LookupError):
    """No invoice series is registered for the device."""


def format_invoice_number(prefix: str, number: int, pad: int = INVOICE_NUMBER_PAD) -> str:
    return f"{prefix}-{number:0{pad}d}"


def _get_series(device_id: str) -> InvoiceSeries:
    series = db.session.query(InvoiceSeries).filter_by(device_id=device_id).first()
    if series is None:
        raise SeriesNotFound(f"No invoice series for device {device_id}")
    return series


def allocate(device_id: str) -> str:
    """
    Atomically allocate the next invoice number for a device.

    Compare-and-set on the series row (version_id): of N concurrent callers
    exactly one commits each value of current_number + 1; the others hit
    StaleDataError, roll back and re-read. Numbers are therefore handed out
    without gaps or duplicates.
    """
    def _op() -> str:
        if not device_id:
            raise ValidationError("device_id is required")

        series = _get_series(device_id)
        next_number = series.current_number + 1
        if next_number > series.series_end:
            raise SeriesExhausted(device_id, series.series_end)

        series.current_number = next_number
        series.last_used_at = utcnow()
        prefix = series.prefix

        db.session.commit()
        return format_invoice_number(prefix, next_number)

    invoice_number = run_with_retry(_op)
    current_app.logger.debug("Allocated invoice %s for device %s", invoice_number, device_id)
    return invoice_number


def register_series(
    *,
    device_id: str,
    prefix: str,
    start: int,
    end: int,
    company_id: str | None = None,
    store_id: str | None = None,
) -> InvoiceSeries:
    """Register a device's series; the first allocation returns start + 1."""
    if start < 0 or end < start:
        raise ValidationError("series bounds must satisfy 0 <= start <= end")

    def _op():
        if db.session.query(InvoiceSeries).filter_by(device_id=device_id).first() is not None:
            raise ConflictError(f"device {device_id} already has an invoice series")
        series = InvoiceSeries(
            device_id=device_id,
            company_id=company_id,
            store_id=store_id,
            prefix=prefix,
            series_start=start,
            series_end=end,
            current_number=start,
        )
        db.session.add(series)
        db.session.commit()
        return series

    return run_with_retry(_op)


def invoice_usage(device_id: str) -> dict:
    series = _get_series(device_id)
    total = series.series_end - series.series_start + 1
    used = series.current_number - series.series_start
    percent_used = (used / total) * 100 if total else 100.0
    return {
        "device_id": device_id,
        "prefix": series.prefix,
        "current": series.current_number,
        "start": series.series_start,
        "end": series.series_end,
        "remaining": series.remaining,
        "percent_used": round(percent_used, 2),
    }


def has_available_numbers(device_id: str) -> bool:
    try:
        series = _get_series(device_id)
    except SeriesNotFound:
        return False
    return series.current_number < series.series_end

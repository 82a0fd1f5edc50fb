# Overview: Flask API routes for per-device invoice series.

# backend/stockrecon/routes/devices.py

from flask import Blueprint, request, jsonify, current_app

from ..services import invoice_service
from ..services.concurrency import TransientStoreError
from ..services.invoice_service import SeriesExhausted, SeriesNotFound
from ..validation import ValidationError, ConflictError, coerce_int, optional_text, require_text


devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


@devices_bp.post("/<device_id>/invoice-series")
def register_series_route(device_id: str):
    data = request.get_json(silent=True) or {}

    try:
        series = invoice_service.register_series(
            device_id=device_id,
            prefix=require_text(data, "prefix", max_length=32),
            start=coerce_int(data.get("start"), "start"),
            end=coerce_int(data.get("end"), "end"),
            company_id=optional_text(data, "company_id"),
            store_id=optional_text(data, "store_id"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"series": series.to_dict()}), 201


@devices_bp.post("/<device_id>/invoice-numbers")
def allocate_invoice_number_route(device_id: str):
    """
    Allocate the next invoice number for a device.

    409 when the series is exhausted: the sale must not proceed until the
    series is extended.
    """
    try:
        invoice_number = invoice_service.allocate(device_id)
    except SeriesNotFound as e:
        return jsonify({"error": str(e)}), 404
    except SeriesExhausted as e:
        return jsonify({
            "error": str(e),
            "details": {"device_id": e.device_id, "series_end": e.series_end},
        }), 409
    except TransientStoreError:
        current_app.logger.exception("Invoice allocation kept conflicting for device %s", device_id)
        return jsonify({"error": "Invoice series is busy, retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to allocate invoice number")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"invoice_number": invoice_number}), 201


@devices_bp.get("/<device_id>/invoice-usage")
def invoice_usage_route(device_id: str):
    try:
        usage = invoice_service.invoice_usage(device_id)
    except SeriesNotFound as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"usage": usage}), 200

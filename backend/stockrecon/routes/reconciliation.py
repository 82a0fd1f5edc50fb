# Overview: Flask API routes for on-demand reconciliation and operational review.

# backend/stockrecon/routes/reconciliation.py
"""
Reconciliation routes.

- POST /run: scoped on-demand sweep (company_id and/or store_id required)
- GET /entries: sale tracking entries, newest first
- GET /log: reconciliation audit log, newest first
"""

from flask import Blueprint, request, jsonify, current_app

from ..models import TRACKING_STATUSES
from ..services import reconciliation_service
from ..services.audit_service import list_log_entries
from ..validation import ValidationError, coerce_int, optional_limit, optional_text


reconciliation_bp = Blueprint("reconciliation", __name__, url_prefix="/api/reconciliation")


@reconciliation_bp.post("/run")
def run_reconciliation_route():
    data = request.get_json(silent=True) or {}

    try:
        company_id = optional_text(data, "company_id")
        store_id = optional_text(data, "store_id")
        limit = optional_limit(data.get("limit"))
        result = reconciliation_service.reconcile_on_demand(
            company_id=company_id,
            store_id=store_id,
            limit=limit,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("On-demand reconciliation failed")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), 200


@reconciliation_bp.get("/entries")
def list_entries_route():
    args = request.args
    try:
        status = optional_text(args, "status", max_length=16)
        if status is not None and status not in TRACKING_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(TRACKING_STATUSES)}")
        limit = optional_limit(args.get("limit")) or 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    entries = reconciliation_service.list_tracking_entries(
        company_id=args.get("company_id"),
        store_id=args.get("store_id"),
        product_id=args.get("product_id"),
        order_id=args.get("order_id"),
        status=status,
        limit=limit,
    )
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200


@reconciliation_bp.get("/log")
def list_log_route():
    args = request.args
    try:
        limit = optional_limit(args.get("limit")) or 200
        tracking_id = args.get("tracking_id")
        tracking_id = coerce_int(tracking_id, "tracking_id") if tracking_id else None
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    log_entries = list_log_entries(
        company_id=args.get("company_id"),
        store_id=args.get("store_id"),
        product_id=args.get("product_id"),
        tracking_id=tracking_id,
        action=args.get("action"),
        limit=limit,
    )
    return jsonify({"log": [row.to_dict() for row in log_entries]}), 200

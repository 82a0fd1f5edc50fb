# Overview: Flask API routes for product stock summaries and batch listings.

# backend/stockrecon/routes/products.py

from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service, summary_service
from ..services.concurrency import TransientStoreError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/<product_id>/summary")
def get_summary_route(product_id: str):
    summary = summary_service.current_summary_reader().get(product_id)
    if summary is None:
        return jsonify({"error": "Product summary not found"}), 404
    return jsonify(summary), 200


@products_bp.post("/<product_id>/summary/recompute")
def recompute_summary_route(product_id: str):
    """Re-derive the summary from the batch ledger (repair path)."""
    try:
        summary = summary_service.recompute(product_id)
    except TransientStoreError:
        current_app.logger.exception("Summary recompute kept conflicting for product %s", product_id)
        return jsonify({"error": "Product is busy, retry"}), 503

    summary_service.current_summary_reader().invalidate(product_id)
    return jsonify(summary.to_dict()), 200


@products_bp.get("/<product_id>/batches")
def list_batches_route(product_id: str):
    include_inactive = request.args.get("include_inactive", "true").lower() in ("1", "true", "yes")
    batches = inventory_service.list_batches(product_id, include_inactive=include_inactive)
    return jsonify({"batches": [b.to_dict() for b in batches]}), 200

# Overview: Flask API routes for recording paid sales and previewing FIFO deductions.

# backend/stockrecon/routes/sales.py
"""Sale recording routes"""

from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..services.concurrency import TransientStoreError
from ..services.sale_recorder import (
    SaleContext,
    LineItem,
    SaleRecordError,
    get_sale_recorder,
)
from ..validation import (
    ValidationError,
    coerce_int,
    enforce_price_cents,
    optional_text,
    require_positive_int,
    require_text,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_line_items(raw_items) -> list[LineItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("line_items must be a non-empty list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each line item must be an object")
        price = raw.get("unit_price_cents")
        total = raw.get("line_total_cents")
        items.append(LineItem(
            product_id=require_text(raw, "product_id"),
            quantity=coerce_int(raw.get("quantity"), "quantity"),
            unit_price_cents=enforce_price_cents(price, "unit_price_cents") if price is not None else None,
            product_name=optional_text(raw, "product_name", max_length=255),
            line_total_cents=coerce_int(total, "line_total_cents") if total is not None else None,
        ))
    return items


def _parse_context(data: dict) -> SaleContext:
    payment_captured = data.get("payment_captured", True)
    if not isinstance(payment_captured, bool):
        raise ValidationError("payment_captured must be a boolean")
    return SaleContext(
        company_id=require_text(data, "company_id"),
        store_id=require_text(data, "store_id"),
        order_id=require_text(data, "order_id"),
        cashier_id=optional_text(data, "cashier_id"),
        invoice_number=optional_text(data, "invoice_number"),
        payment_captured=payment_captured,
    )


@sales_bp.post("/record")
def record_sale_route():
    """
    Record a paid sale.

    Legacy mode deducts stock now; reconciliation mode writes pending
    tracking entries. Re-submitting the same order is safe: lines already
    recorded come back under "skipped".

    Returns 201 when every line was recorded or skipped, 409 when a line
    was rejected for insufficient stock.
    """
    data = request.get_json(silent=True) or {}

    try:
        context = _parse_context(data)
        line_items = _parse_line_items(data.get("line_items"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        result = get_sale_recorder().record_sale(context, line_items)
    except SaleRecordError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except TransientStoreError:
        current_app.logger.exception("Sale recording kept conflicting for order %s", context.order_id)
        return jsonify({"error": "Inventory is busy, retry the sale"}), 503
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(result.to_dict()), (201 if result.success else 409)


@sales_bp.post("/preview")
def preview_sale_route():
    """
    Stock validation preview: the FIFO plan a sale of this quantity would
    use right now, with low-stock warnings. Writes nothing.
    """
    data = request.get_json(silent=True) or {}

    try:
        product_id = require_text(data, "product_id")
        quantity = require_positive_int(data.get("quantity"), "quantity")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    preview = inventory_service.preview_deduction(product_id, quantity)
    return jsonify({"preview": preview}), 200

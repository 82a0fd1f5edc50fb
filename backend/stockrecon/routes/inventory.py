# backend/stockrecon/routes/inventory.py
"""
Inventory batch routes.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- received_at defaults to now and may not be in the future.
"""
from flask import Blueprint, request, current_app

from ..models import InventoryBatch
from ..services.concurrency import TransientStoreError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    ValidationError,
    ConflictError,
    enforce_rules_batch_receive,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

BATCH_RECEIVE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "batch_id", "company_id", "store_id", "quantity", "unit_price_cents", "received_at"},
    required_on_create={"product_id", "batch_id", "quantity", "unit_price_cents"},
)


@inventory_bp.post("/batches")
def receive_batch_route():
    """
    Receive a new batch (restock). Existing batches are never edited; a
    repeated batch_id for the product is rejected with 409.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=InventoryBatch,
            payload=payload,
            policy=BATCH_RECEIVE_POLICY,
        )
        enforce_rules_batch_receive(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    from ..services.inventory_service import receive_batch

    try:
        batch = receive_batch(**patch)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except ValueError as e:
        return {"error": str(e)}, 400
    except TransientStoreError:
        current_app.logger.exception("Batch receive kept conflicting for product %s", patch["product_id"])
        return {"error": "Product is busy, retry"}, 503

    return {"batch": batch.to_dict()}, 201

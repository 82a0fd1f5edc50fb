"""HTTP API tests."""

from stockrecon.models import SaleTrackingEntry, TRACKING_PENDING, TRACKING_RECONCILED
from stockrecon.services.sale_recorder import LegacySaleRecorder


def _sale_payload(order_id="ORD-1", quantity=2, **overrides):
    payload = {
        "company_id": "C1",
        "store_id": "S1",
        "order_id": order_id,
        "cashier_id": "cashier-1",
        "line_items": [
            {"product_id": "P1", "quantity": quantity, "unit_price_cents": 150, "product_name": "Cola"},
        ],
    }
    payload.update(overrides)
    return payload


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["checks"]["database"]["status"] == "healthy"
    assert body["checks"]["reconciliation"]["details"]["mode"] == "reconciliation"


def test_receive_batch_and_read_summary(client, db_session):
    response = client.post("/api/inventory/batches", json={
        "product_id": "P1",
        "batch_id": "B1",
        "quantity": 12,
        "unit_price_cents": 199,
        "received_at": "2026-01-01T08:00:00Z",
        "store_id": "S1",
    })
    assert response.status_code == 201
    assert response.get_json()["batch"]["received_at"] == "2026-01-01T08:00:00Z"

    summary = client.get("/api/products/P1/summary").get_json()
    assert summary["total_stock"] == 12
    assert summary["selling_price_cents"] == 199


def test_receive_batch_validation(client, db_session):
    base = {"product_id": "P1", "batch_id": "B1", "quantity": 5, "unit_price_cents": 100}

    assert client.post("/api/inventory/batches", json={**base, "quantity": 0}).status_code == 400
    assert client.post("/api/inventory/batches", json={**base, "quantity": 1.5}).status_code == 400
    assert client.post("/api/inventory/batches", json={**base, "status": "inactive"}).status_code == 400
    assert client.post(
        "/api/inventory/batches", json={**base, "received_at": "2999-01-01T00:00:00Z"}
    ).status_code == 400

    assert client.post("/api/inventory/batches", json=base).status_code == 201
    assert client.post("/api/inventory/batches", json=base).status_code == 409


def test_summary_not_found(client, db_session):
    assert client.get("/api/products/NOPE/summary").status_code == 404


def test_record_sale_then_reconcile(client, db_session, receive):
    receive("P1", "B1", 10, day=1)

    response = client.post("/api/sales/record", json=_sale_payload())
    assert response.status_code == 201
    assert response.get_json()["recorded"] == ["P1"]

    retry = client.post("/api/sales/record", json=_sale_payload())
    assert retry.status_code == 201
    assert retry.get_json()["skipped"] == ["P1"]

    entries = client.get("/api/reconciliation/entries?store_id=S1&status=pending").get_json()["entries"]
    assert len(entries) == 1
    assert entries[0]["status"] == TRACKING_PENDING

    run = client.post("/api/reconciliation/run", json={"store_id": "S1"})
    assert run.status_code == 200
    assert run.get_json()["status"] == "ok"
    assert run.get_json()["reconciled"] == 1

    log = client.get("/api/reconciliation/log?product_id=P1").get_json()["log"]
    assert log[0]["batches_used"] == [{"batch_id": "B1", "quantity": 2}]
    assert client.get("/api/products/P1/summary").get_json()["total_stock"] == 8


def test_record_sale_rejects_bad_input(client, db_session):
    assert client.post("/api/sales/record", json=_sale_payload(line_items=[])).status_code == 400
    assert client.post("/api/sales/record", json=_sale_payload(quantity=-1)).status_code == 400
    assert client.post("/api/sales/record", json=_sale_payload(order_id="")).status_code == 400

    response = client.post("/api/sales/record", json=_sale_payload(payment_captured=False))
    assert response.status_code == 400
    assert db_session.query(SaleTrackingEntry).count() == 0


def test_legacy_mode_shortfall_returns_409(app, client, db_session, receive, monkeypatch):
    monkeypatch.setitem(app.extensions, "sale_recorder", LegacySaleRecorder())
    receive("P1", "B1", 1, day=1)

    response = client.post("/api/sales/record", json=_sale_payload(quantity=3))

    assert response.status_code == 409
    body = response.get_json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "insufficient-inventory"


def test_legacy_mode_deducts_immediately(app, client, db_session, receive, monkeypatch):
    monkeypatch.setitem(app.extensions, "sale_recorder", LegacySaleRecorder())
    receive("P1", "B1", 5, day=1)

    response = client.post("/api/sales/record", json=_sale_payload(quantity=3))

    assert response.status_code == 201
    assert db_session.query(SaleTrackingEntry).one().status == TRACKING_RECONCILED
    assert client.get("/api/products/P1/summary").get_json()["total_stock"] == 2


def test_preview(client, db_session, receive):
    receive("P1", "B1", 5, day=1)
    receive("P1", "B2", 5, day=2)

    preview = client.post("/api/sales/preview", json={"product_id": "P1", "quantity": 7}).get_json()["preview"]

    assert preview["available_stock"] == 10
    assert preview["plan"]["can_fulfill"] is True
    assert preview["plan"]["deductions"] == [
        {"batch_id": "B1", "quantity": 5},
        {"batch_id": "B2", "quantity": 2},
    ]
    assert preview["warnings"] == []

    tight = client.post("/api/sales/preview", json={"product_id": "P1", "quantity": 10}).get_json()["preview"]
    assert tight["warnings"] == ["Stock level is getting low"]
    assert tight["errors"] == []

    short = client.post("/api/sales/preview", json={"product_id": "P1", "quantity": 11}).get_json()["preview"]
    assert short["plan"]["shortfall"] == 1
    assert short["errors"]


def test_unscoped_reconciliation_is_rejected(client, db_session):
    response = client.post("/api/reconciliation/run", json={})
    assert response.status_code == 400


def test_reconciliation_entries_reject_unknown_status(client, db_session):
    assert client.get("/api/reconciliation/entries?status=done").status_code == 400


def test_invoice_endpoints(client, db_session):
    created = client.post("/api/devices/POS-01/invoice-series", json={"prefix": "INV", "start": 0, "end": 2})
    assert created.status_code == 201

    first = client.post("/api/devices/POS-01/invoice-numbers")
    second = client.post("/api/devices/POS-01/invoice-numbers")
    exhausted = client.post("/api/devices/POS-01/invoice-numbers")

    assert first.get_json()["invoice_number"] == "INV-000001"
    assert second.get_json()["invoice_number"] == "INV-000002"
    assert exhausted.status_code == 409
    assert exhausted.get_json()["details"]["series_end"] == 2

    usage = client.get("/api/devices/POS-01/invoice-usage").get_json()["usage"]
    assert usage["remaining"] == 0

    assert client.post("/api/devices/GHOST/invoice-numbers").status_code == 404
    assert client.post(
        "/api/devices/POS-01/invoice-series", json={"prefix": "INV", "start": 0, "end": 2}
    ).status_code == 409


def test_recompute_summary_route(client, db_session, receive):
    receive("P1", "B1", 4, day=1)
    response = client.post("/api/products/P1/summary/recompute")
    assert response.status_code == 200
    assert response.get_json()["total_stock"] == 4

    batches = client.get("/api/products/P1/batches").get_json()["batches"]
    assert [b["batch_id"] for b in batches] == ["B1"]

"""Product summary projector tests."""

from stockrecon.models import InventoryBatch, ProductSummary, BATCH_INACTIVE
from stockrecon.services import summary_service


def test_receive_updates_summary(db_session, receive):
    receive("P1", "B1", 5, unit_price_cents=100, day=1)
    receive("P1", "B2", 7, unit_price_cents=150, day=2)

    summary = summary_service.get_summary("P1")

    assert summary.total_stock == 12
    assert summary.selling_price_cents == 150
    assert summary.last_updated is not None


def test_price_ties_broken_by_batch_id(db_session, receive):
    receive("P1", "B-A", 1, unit_price_cents=100, day=3)
    receive("P1", "B-B", 1, unit_price_cents=200, day=3)

    assert summary_service.get_summary("P1").selling_price_cents == 200


def test_inactive_batches_are_excluded(db_session, receive):
    receive("P1", "B1", 5, unit_price_cents=100, day=1)
    receive("P1", "B2", 5, unit_price_cents=300, day=2)

    newest = db_session.query(InventoryBatch).filter_by(batch_id="B2").one()
    newest.quantity = 0
    newest.status = BATCH_INACTIVE
    db_session.commit()

    summary = summary_service.recompute("P1")

    assert summary.total_stock == 5
    assert summary.selling_price_cents == 100


def test_product_without_batches_gets_zero_summary(db_session):
    summary = summary_service.recompute("NOPE")
    assert summary.total_stock == 0
    assert summary.selling_price_cents == 0


def test_recompute_is_idempotent_and_keeps_catalog_fields(db_session, receive):
    receive("P1", "B1", 4, unit_price_cents=250, day=1)
    summary = summary_service.get_summary("P1")
    summary.name = "Cola 330ml"
    summary.sku = "COLA-330"
    db_session.commit()

    first = summary_service.recompute("P1").to_dict()
    second = summary_service.recompute("P1").to_dict()

    assert db_session.query(ProductSummary).filter_by(product_id="P1").count() == 1
    assert first["total_stock"] == second["total_stock"] == 4
    assert second["name"] == "Cola 330ml"
    assert second["sku"] == "COLA-330"


def test_rebuild_all_repairs_drift(db_session, receive):
    receive("P1", "B1", 4, day=1)
    receive("P2", "B1", 9, day=1)

    drifted = summary_service.get_summary("P2")
    drifted.total_stock = 999
    db_session.commit()

    assert summary_service.rebuild_all() == 2
    assert summary_service.get_summary("P2").total_stock == 9


def test_summary_reader_caches_within_request(app, db_session, receive):
    receive("P1", "B1", 4, day=1)

    with app.test_request_context():
        reader = summary_service.current_summary_reader()
        assert summary_service.current_summary_reader() is reader
        assert reader.get("P1")["total_stock"] == 4

        summary = summary_service.get_summary("P1")
        summary.total_stock = 50
        db_session.commit()

        assert reader.get("P1")["total_stock"] == 4
        reader.invalidate("P1")
        assert reader.get("P1")["total_stock"] == 50

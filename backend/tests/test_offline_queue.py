"""Offline queue tests: durable storage, replay order and delivery outcomes."""

import httpx
import pytest

from stockrecon.client import (
    HttpSaleTransport,
    MutationRejected,
    OfflineQueue,
    TransportError,
    MUTATION_CONFLICT,
    MUTATION_PENDING,
    MUTATION_SYNCED,
)
from stockrecon.models import InventoryBatch, SaleTrackingEntry


class RecordingTransport:
    def __init__(self, fail_on=None, reject=()):
        self.sent = []
        self.fail_on = fail_on
        self.reject = set(reject)

    def send(self, kind, payload):
        order_id = payload["order_id"]
        if order_id == self.fail_on:
            raise TransportError("connection refused")
        if order_id in self.reject:
            raise MutationRejected("insufficient stock", status_code=409)
        self.sent.append(order_id)
        return {"success": True}


def _sale(order_id):
    return {
        "company_id": "C1",
        "store_id": "S1",
        "order_id": order_id,
        "line_items": [{"product_id": "P1", "quantity": 1, "unit_price_cents": 100}],
    }


@pytest.fixture
def queue_url(tmp_path):
    return f"sqlite:///{tmp_path / 'offline.sqlite3'}"


def test_replays_in_submission_order(queue_url):
    transport = RecordingTransport()
    queue = OfflineQueue(queue_url, transport)
    for order_id in ("A", "B", "C"):
        queue.enqueue("sale", _sale(order_id))

    counts = queue.replay()

    assert transport.sent == ["A", "B", "C"]
    assert counts == {"synced": 3, "conflict": 0, "pending": 0}
    assert queue.pending() == []


def test_replay_order_ignores_clock_going_backwards(queue_url):
    transport = RecordingTransport()
    queue = OfflineQueue(queue_url, transport)
    for order_id in ("A", "B", "C"):
        queue.enqueue("sale", _sale(order_id))

    # Terminal clock was set back before C was queued
    with queue.engine.begin() as conn:
        conn.exec_driver_sql(
            "UPDATE queued_mutations SET created_at = '2000-01-01 00:00:00.000000' "
            "WHERE id = (SELECT MAX(id) FROM queued_mutations)"
        )

    assert [m.payload["order_id"] for m in queue.pending()] == ["A", "B", "C"]
    queue.replay()
    assert transport.sent == ["A", "B", "C"]


def test_transport_failure_stops_pass_and_keeps_queue(queue_url):
    transport = RecordingTransport(fail_on="B")
    queue = OfflineQueue(queue_url, transport)
    for order_id in ("A", "B", "C"):
        queue.enqueue("sale", _sale(order_id))

    counts = queue.replay()

    assert transport.sent == ["A"]
    assert counts["pending"] == 2
    pending = queue.pending()
    assert [m.payload["order_id"] for m in pending] == ["B", "C"]
    assert pending[0].attempts == 1
    assert pending[0].last_error == "connection refused"

    transport.fail_on = None
    queue.replay()
    assert transport.sent == ["A", "B", "C"]


def test_rejected_mutation_is_kept_as_conflict(queue_url):
    transport = RecordingTransport(reject={"B"})
    queue = OfflineQueue(queue_url, transport)
    for order_id in ("A", "B", "C"):
        queue.enqueue("sale", _sale(order_id))

    counts = queue.replay()

    assert counts == {"synced": 2, "conflict": 1, "pending": 0}
    conflicts = queue.conflicts()
    assert [m.payload["order_id"] for m in conflicts] == ["B"]
    assert conflicts[0].status == MUTATION_CONFLICT


def test_queue_survives_restart(queue_url):
    first = OfflineQueue(queue_url, RecordingTransport(fail_on="A"))
    first.enqueue("sale", _sale("A"))
    first.replay()
    first.engine.dispose()

    transport = RecordingTransport()
    reopened = OfflineQueue(queue_url, transport)
    assert [m.status for m in reopened.pending()] == [MUTATION_PENDING]

    reopened.replay()
    assert transport.sent == ["A"]


def test_connectivity_change_triggers_replay_once(queue_url):
    transport = RecordingTransport()
    queue = OfflineQueue(queue_url, transport)
    queue.enqueue("sale", _sale("A"))

    assert queue.on_connectivity_change(False) is None
    assert queue.on_connectivity_change(True)["synced"] == 1
    # Already online: no second replay
    assert queue.on_connectivity_change(True) is None


def test_enqueue_rejects_unknown_kind(queue_url):
    queue = OfflineQueue(queue_url, RecordingTransport())
    with pytest.raises(ValueError):
        queue.enqueue("refund", _sale("A"))


class TestHttpSaleTransport:
    def test_maps_status_codes(self):
        def handler(request):
            body = request.content.decode()
            if '"REJECT"' in body:
                return httpx.Response(409, json={"error": "Insufficient stock"})
            if '"BOOM"' in body:
                return httpx.Response(500, json={"error": "Internal server error"})
            return httpx.Response(201, json={"success": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        transport = HttpSaleTransport("http://pos.local", client=client)

        assert transport.send("sale", _sale("OK"))["success"] is True
        with pytest.raises(MutationRejected) as exc_info:
            transport.send("sale", _sale("REJECT"))
        assert exc_info.value.status_code == 409
        with pytest.raises(TransportError):
            transport.send("sale", _sale("BOOM"))

    def test_network_error_is_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        transport = HttpSaleTransport("http://pos.local", client=client)

        with pytest.raises(TransportError):
            transport.send("sale", _sale("A"))


def test_replay_against_server_is_idempotent(app, db_session, receive, queue_url):
    receive("P1", "B1", 10, day=1)
    client = httpx.Client(transport=httpx.WSGITransport(app=app))
    queue = OfflineQueue(queue_url, HttpSaleTransport("http://testserver", client=client))

    # The same sale queued twice (e.g. a retry after a timeout)
    queue.enqueue("sale", _sale("ORD-1"))
    queue.enqueue("sale", _sale("ORD-1"))

    counts = queue.replay()

    assert counts["synced"] == 2
    assert db_session.query(SaleTrackingEntry).filter_by(order_id="ORD-1").count() == 1
    assert db_session.query(InventoryBatch).one().quantity == 10
    assert [m.status for m in queue.pending()] == []
    with queue.engine.connect() as conn:
        statuses = conn.exec_driver_sql("SELECT status FROM queued_mutations").fetchall()
    assert {row[0] for row in statuses} == {MUTATION_SYNCED}

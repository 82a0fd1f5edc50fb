# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency tests for stockrecon.

Each test runs real threads, each with its own app context and database
connection, against a temporary SQLite file. Run standalone with:
    python -m pytest backend/tests/test_concurrency.py
"""
import os
import tempfile
import threading
import unittest
from datetime import datetime
from unittest import mock

from stockrecon import create_app
from stockrecon.extensions import db
from stockrecon.models import (
    InventoryBatch,
    ReconciliationLogEntry,
    SaleTrackingEntry,
    BATCH_ACTIVE,
    TRACKING_PENDING,
)
from stockrecon.services import inventory_service, invoice_service, reconciliation_service, summary_service
from stockrecon.services.sale_recorder import LegacySaleRecorder, LineItem, SaleContext, TrackingSaleRecorder


def _context(order_id):
    return SaleContext(company_id="C1", store_id="S1", order_id=order_id)


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
            "SCHEDULER_ENABLED": False,
            "TX_RETRY_ATTEMPTS": 100,
            "TX_RETRY_BACKOFF": 0.001,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            inventory_service.receive_batch(
                product_id="P1",
                batch_id="B1",
                quantity=10,
                unit_price_cents=100,
                received_at=datetime(2026, 1, 1),
            )

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_threads(self, target, args_list):
        errors = []
        lock = threading.Lock()

        def worker(*args):
            with self.app.app_context():
                try:
                    target(*args)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return errors

    def test_invoice_numbers_are_unique_and_gapless(self):
        with self.app.app_context():
            invoice_service.register_series(device_id="POS-01", prefix="INV", start=0, end=1000)

        issued = []
        lock = threading.Lock()

        def allocate_many():
            for _ in range(5):
                number = invoice_service.allocate("POS-01")
                with lock:
                    issued.append(number)

        errors = self._run_threads(allocate_many, [()] * 8)

        self.assertFalse(errors)
        self.assertEqual(len(issued), 40)
        self.assertEqual(len(set(issued)), 40)
        self.assertEqual(sorted(issued), [f"INV-{n:06d}" for n in range(1, 41)])

    def test_concurrent_legacy_sales_never_oversell(self):
        results = []
        lock = threading.Lock()

        def sell(order_id):
            result = LegacySaleRecorder().record_sale(_context(order_id), [LineItem("P1", 4)])
            with lock:
                results.append(result)

        errors = self._run_threads(sell, [(f"ORD-{n}",) for n in range(4)])

        self.assertFalse(errors)
        self.assertEqual(sum(1 for r in results if r.success), 2)
        self.assertEqual(sum(1 for r in results if not r.success), 2)
        with self.app.app_context():
            batch = db.session.query(InventoryBatch).filter_by(batch_id="B1").one()
            self.assertEqual(batch.quantity, 2)
            self.assertEqual(summary_service.get_summary("P1").total_stock, 2)

    def test_duplicate_submissions_record_once(self):
        results = []
        lock = threading.Lock()

        def submit():
            result = TrackingSaleRecorder().record_sale(_context("ORD-DUP"), [LineItem("P1", 1)])
            with lock:
                results.append(result)

        errors = self._run_threads(submit, [()] * 5)

        self.assertFalse(errors)
        self.assertEqual(sum(len(r.recorded) for r in results), 1)
        self.assertEqual(sum(len(r.skipped) for r in results), 4)
        with self.app.app_context():
            self.assertEqual(db.session.query(SaleTrackingEntry).count(), 1)

    def test_overlapping_sweeps_reconcile_each_entry_once(self):
        with self.app.app_context():
            recorder = TrackingSaleRecorder()
            for n in range(8):
                recorder.record_sale(_context(f"ORD-{n}"), [LineItem("P1", 1)])

        errors = self._run_threads(lambda: reconciliation_service.reconcile_pending(), [()] * 3)

        self.assertFalse(errors)
        with self.app.app_context():
            batch = db.session.query(InventoryBatch).filter_by(batch_id="B1").one()
            self.assertEqual(batch.quantity, 2)
            self.assertEqual(db.session.query(ReconciliationLogEntry).count(), 8)
            self.assertEqual(
                db.session.query(SaleTrackingEntry).filter_by(status=TRACKING_PENDING).count(), 0
            )

    def test_recompute_with_stale_ledger_reading_is_retried(self):
        original = summary_service.derive_summary
        restock_errors = []
        state = {"restocked": False}

        def restock():
            with self.app.app_context():
                try:
                    inventory_service.receive_batch(
                        product_id="P1",
                        batch_id="B2",
                        quantity=5,
                        unit_price_cents=120,
                        received_at=datetime(2026, 1, 2),
                    )
                except Exception as exc:
                    restock_errors.append(exc)
                finally:
                    db.session.remove()

        def derive_then_restock(product_id):
            reading = original(product_id)
            if not state["restocked"]:
                # Commit a ledger change (and its own recompute) after this reading was taken
                state["restocked"] = True
                t = threading.Thread(target=restock)
                t.start()
                t.join()
            return reading

        with self.app.app_context():
            with mock.patch.object(summary_service, "derive_summary", derive_then_restock):
                summary = summary_service.recompute("P1")

            self.assertFalse(restock_errors)
            self.assertEqual(summary.total_stock, 15)
            self.assertEqual(summary.selling_price_cents, 120)
            db.session.remove()
            self.assertEqual(summary_service.get_summary("P1").total_stock, 15)

    def test_summary_matches_ledger_after_concurrent_sweeps_and_restocks(self):
        with self.app.app_context():
            recorder = TrackingSaleRecorder()
            for n in range(6):
                recorder.record_sale(_context(f"ORD-{n}"), [LineItem("P1", 1)])

        def sweep():
            reconciliation_service.reconcile_pending()

        def restock(batch_id, day):
            inventory_service.receive_batch(
                product_id="P1",
                batch_id=batch_id,
                quantity=5,
                unit_price_cents=100,
                received_at=datetime(2026, 1, day),
            )

        errors = []
        lock = threading.Lock()

        def worker(target, *args):
            with self.app.app_context():
                try:
                    target(*args)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        jobs = [(sweep,), (sweep,), (restock, "B2", 2), (restock, "B3", 3), (restock, "B4", 4)]
        threads = [threading.Thread(target=worker, args=job) for job in jobs]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertFalse(errors)
        with self.app.app_context():
            active_stock = sum(
                b.quantity
                for b in db.session.query(InventoryBatch).filter_by(product_id="P1", status=BATCH_ACTIVE)
            )
            self.assertEqual(active_stock, 10 + 15 - 6)
            self.assertEqual(summary_service.get_summary("P1").total_stock, active_stock)


if __name__ == "__main__":
    unittest.main()

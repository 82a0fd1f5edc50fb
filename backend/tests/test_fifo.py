"""FIFO allocator tests (no database)."""

from datetime import datetime
from types import SimpleNamespace

from stockrecon.models import BATCH_ACTIVE, BATCH_INACTIVE
from stockrecon.services.fifo import Deduction, fifo_order, plan


def _batch(batch_id, quantity, day, status=BATCH_ACTIVE):
    return SimpleNamespace(
        batch_id=batch_id,
        quantity=quantity,
        status=status,
        received_at=datetime(2026, 1, day),
    )


def test_exact_fulfillment_draws_oldest_first():
    batches = fifo_order([_batch("B", 10, 2), _batch("A", 5, 1)])

    result = plan(batches, 8)

    assert result.deductions == (Deduction("A", 5), Deduction("B", 3))
    assert result.allocated == 8
    assert result.shortfall == 0
    assert result.fulfilled


def test_shortfall_consumes_everything_available():
    batches = fifo_order([_batch("A", 5, 1), _batch("B", 10, 2)])

    result = plan(batches, 20)

    assert result.allocated == 15
    assert result.shortfall == 5
    assert not result.fulfilled
    assert result.to_dict()["can_fulfill"] is False


def test_no_batches_is_full_shortfall():
    result = plan([], 4)
    assert result.deductions == ()
    assert result.shortfall == 4


def test_non_positive_need_is_empty_plan():
    batches = [_batch("A", 5, 1)]
    assert plan(batches, 0).deductions == ()
    assert plan(batches, 0).shortfall == 0
    assert plan(batches, -3).fulfilled


def test_fifo_order_filters_and_breaks_ties_by_batch_id():
    batches = [
        _batch("C", 3, 1),
        _batch("A", 3, 1),
        _batch("OLD", 9, 1, status=BATCH_INACTIVE),
        _batch("EMPTY", 0, 1),
        _batch("B", 3, 1),
        _batch("Z", 3, 3),
    ]

    ordered = [b.batch_id for b in fifo_order(batches)]

    assert ordered == ["A", "B", "C", "Z"]


def test_allocated_plus_shortfall_equals_need():
    batches = fifo_order([_batch("A", 2, 1), _batch("B", 3, 2), _batch("C", 1, 3)])
    for need in range(1, 10):
        result = plan(batches, need)
        assert result.allocated + result.shortfall == need
        assert all(d.quantity > 0 for d in result.deductions)


def test_plan_does_not_mutate_batches():
    a = _batch("A", 5, 1)
    plan([a], 3)
    assert a.quantity == 5

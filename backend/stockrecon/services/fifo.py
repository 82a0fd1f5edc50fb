# Overview: Pure FIFO (oldest batch first) deduction planning.

"""
FIFO Allocator

Given the lots of one product and a required quantity, computes which lots
to draw from and how much. Nothing here touches the database: the same plan
is used for the synchronous legacy deduction, the reconciliation sweep and
"can this sale be fulfilled" previews.

ORDERING: fifo_order() keeps only active lots with stock and sorts them by
(received_at, batch_id). plan() consumes lots in the order it is given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol
from datetime import datetime

from ..models import BATCH_ACTIVE


class BatchLike(Protocol):
    batch_id: str
    quantity: int
    status: str
    received_at: datetime


@dataclass(frozen=True)
class Deduction:
    batch_id: str
    quantity: int

    def to_dict(self) -> dict:
        return {"batch_id": self.batch_id, "quantity": self.quantity}


@dataclass(frozen=True)
class DeductionPlan:
    need: int
    deductions: tuple[Deduction, ...] = field(default_factory=tuple)
    shortfall: int = 0

    @property
    def allocated(self) -> int:
        return sum(d.quantity for d in self.deductions)

    @property
    def fulfilled(self) -> bool:
        return self.shortfall == 0

    def to_dict(self) -> dict:
        return {
            "need": self.need,
            "allocated": self.allocated,
            "shortfall": self.shortfall,
            "can_fulfill": self.fulfilled,
            "deductions": [d.to_dict() for d in self.deductions],
        }


def fifo_order(batches: Iterable[BatchLike]) -> list:
    """Active lots with stock, oldest first; batch_id breaks ties."""
    usable = [b for b in batches if b.status == BATCH_ACTIVE and (b.quantity or 0) > 0]
    return sorted(usable, key=lambda b: (b.received_at, b.batch_id))


def plan(batches: Iterable[BatchLike], need: int) -> DeductionPlan:
    """
    Greedily consume lots in the given order until need is met or lots run out.

    - need <= 0 -> empty plan, zero shortfall
    - no lots   -> empty plan, shortfall == need
    Invariant: plan.allocated + plan.shortfall == max(need, 0).
    """
    if need <= 0:
        return DeductionPlan(need=need)

    remaining = need
    deductions: list[Deduction] = []
    for batch in batches:
        if remaining <= 0:
            break
        available = batch.quantity or 0
        if available <= 0:
            continue
        use = min(remaining, available)
        deductions.append(Deduction(batch_id=batch.batch_id, quantity=use))
        remaining -= use

    return DeductionPlan(need=need, deductions=tuple(deductions), shortfall=remaining)

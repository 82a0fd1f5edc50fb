# Overview: Terminal-side durable queue of sale mutations made while offline; replays them on reconnect.

"""
Offline Queue

Runs on the POS terminal, not in the Flask app. Mutations made while the
terminal has no connectivity are stored in a local SQLite file and replayed
in submission order once connectivity returns.

DELIVERY:
- A mutation is marked 'synced' only after the server accepted it.
- A transport failure (network down, timeout, 5xx) stops the pass; the
  mutation and everything after it stay 'pending' for the next replay.
- A business rejection (4xx) marks the mutation 'conflict'. It is kept for
  review and replay moves on to the next one.

Replay is at-least-once. The server keys every sale line on
(order_id, product_id), so a mutation delivered twice is reported back as
skipped rather than recorded again.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Protocol

import httpx
from sqlalchemy import JSON, DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from stockrecon.time_utils import utcnow


logger = logging.getLogger(__name__)


MUTATION_PENDING = "pending"
MUTATION_SYNCED = "synced"
MUTATION_CONFLICT = "conflict"

KIND_SALE = "sale"
KIND_DEDUCTION = "deduction"
MUTATION_KINDS = (KIND_SALE, KIND_DEDUCTION)


class Base(DeclarativeBase):
    pass


class QueuedMutation(Base):
    __tablename__ = "queued_mutations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32))
    payload: Mapped[dict] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(16), default=MUTATION_PENDING, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    synced_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class TransportError(Exception):
    """The server could not be reached or failed; retry on the next replay."""


class MutationRejected(Exception):
    """The server refused the mutation on business grounds; retrying will not help."""
    def __init__(self, message: str, status_code: int, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class Transport(Protocol):
    def send(self, kind: str, payload: dict) -> dict: ...


class HttpSaleTransport:
    """Delivers queued mutations to the record-sale endpoint over HTTP."""

    endpoints = {
        KIND_SALE: "/api/sales/record",
        KIND_DEDUCTION: "/api/sales/record",
    }

    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def send(self, kind: str, payload: dict) -> dict:
        path = self.endpoints.get(kind)
        if path is None:
            raise MutationRejected(f"Unknown mutation kind {kind!r}", status_code=400)

        try:
            if self._client is not None:
                response = self._client.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(f"{self.base_url}{path}", json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(str(exc)) from exc

        if response.status_code >= 500:
            raise TransportError(f"server error {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise MutationRejected(
                message or f"rejected with status {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return body or {}


class OfflineQueue:
    """
    Durable FIFO of mutations awaiting delivery.

    db_url points at the terminal's local database, e.g.
    "sqlite:///pos_offline_queue.sqlite3". State lives entirely in that
    file, so a queue reopened after a restart picks up where it left off.
    """

    def __init__(self, db_url: str, transport: Transport):
        self.engine = create_engine(db_url)
        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.transport = transport
        self.online = False
        self._replay_lock = threading.Lock()

    def enqueue(self, kind: str, payload: dict) -> QueuedMutation:
        if kind not in MUTATION_KINDS:
            raise ValueError(f"Unknown mutation kind {kind!r}; expected one of {MUTATION_KINDS}")
        if not isinstance(payload, dict):
            raise ValueError("payload must be a JSON object")

        with self._session_factory() as session:
            mutation = QueuedMutation(kind=kind, payload=payload, status=MUTATION_PENDING)
            session.add(mutation)
            session.commit()
            logger.debug("Queued %s mutation %s", kind, mutation.id)
            return mutation

    def pending(self) -> list[QueuedMutation]:
        with self._session_factory() as session:
            return self._pending(session)

    def conflicts(self) -> list[QueuedMutation]:
        with self._session_factory() as session:
            stmt = (
                select(QueuedMutation)
                .where(QueuedMutation.status == MUTATION_CONFLICT)
                .order_by(QueuedMutation.id)
            )
            return list(session.scalars(stmt))

    @staticmethod
    def _pending(session: Session) -> list[QueuedMutation]:
        stmt = (
            select(QueuedMutation)
            .where(QueuedMutation.status == MUTATION_PENDING)
            .order_by(QueuedMutation.id)
        )
        return list(session.scalars(stmt))

    def replay(self) -> dict:
        """
        Deliver pending mutations in submission order.

        Returns counts of synced / conflict / still-pending mutations for
        this pass. Only one replay runs at a time per queue.
        """
        counts = {"synced": 0, "conflict": 0, "pending": 0}
        with self._replay_lock, self._session_factory() as session:
            queued = self._pending(session)
            for index, mutation in enumerate(queued):
                mutation.attempts = (mutation.attempts or 0) + 1
                try:
                    self.transport.send(mutation.kind, mutation.payload)
                except TransportError as exc:
                    mutation.last_error = str(exc)
                    session.commit()
                    counts["pending"] = len(queued) - index
                    logger.warning(
                        "Replay stopped at mutation %s (%d left): %s", mutation.id, counts["pending"], exc
                    )
                    return counts
                except MutationRejected as exc:
                    mutation.status = MUTATION_CONFLICT
                    mutation.last_error = str(exc)
                    session.commit()
                    counts["conflict"] += 1
                    logger.warning("Mutation %s rejected by server (%s): %s", mutation.id, exc.status_code, exc)
                    continue

                mutation.status = MUTATION_SYNCED
                mutation.synced_at = utcnow()
                mutation.last_error = None
                session.commit()
                counts["synced"] += 1

        if counts["synced"] or counts["conflict"]:
            logger.info("Replay complete: %s", counts)
        return counts

    def on_connectivity_change(self, online: bool) -> dict | None:
        """Connectivity callback; going online triggers a replay."""
        was_online = self.online
        self.online = online
        if online and not was_online:
            return self.replay()
        return None

from __future__ import annotations

"""Search event storage and hashing utilities."""

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Sequence

SEARCH = "search"
EXTERNAL = "external"
SUMMARY = "summary"

MISS_CONFIDENCE = 0.1
EXTERNAL_CONFIDENCE = 0.8


class AuditStoreError(RuntimeError):
    """Raised when search event storage fails."""
    pass


@dataclass(frozen=True)
class SearchEvent:
    """Outcome of one retrieval or external lookup."""
    event_type: str
    question_hash: str
    confidence: float
    status: str
    files: tuple[str, ...] = field(default=())


class SearchEventSink(Protocol):
    def record_event(self, event: SearchEvent) -> None:
        raise NotImplementedError


def hash_question(question: str) -> str:
    """Hash a question so events can be grouped without storing the text."""
    digest = hashlib.sha256(question.strip().encode("utf-8")).hexdigest()
    return digest[:16]


def retrieval_confidence(files: Sequence[str]) -> float:
    """Confidence of a retrieval that produced context from ``files``."""
    if not files:
        return 0.5
    return min(0.9, 0.3 + 0.15 * len(files))


class AuditStore:
    """Persist search events to a SQL database."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the store and ensure tables exist."""
        try:
            from sqlalchemy import Column, DateTime, Float, MetaData, String, Table, Text, create_engine
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise AuditStoreError(
                "sqlalchemy is required to use the audit store"
            ) from exc

        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "search_events",
            self._metadata,
            Column("id", String(36), primary_key=True),
            Column("event_type", String(32), nullable=False),
            Column("question_hash", String(64), nullable=False),
            Column("confidence", Float, nullable=False),
            Column("status", String(32), nullable=False),
            Column("files", Text, nullable=True),
            Column("created_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def record_event(self, event: SearchEvent) -> None:
        """Insert a new search event row."""
        payload = {
            "id": str(uuid.uuid4()),
            "event_type": event.event_type,
            "question_hash": event.question_hash,
            "confidence": event.confidence,
            "status": event.status,
            "files": json.dumps(list(event.files), ensure_ascii=False),
            "created_at": datetime.now(timezone.utc),
        }
        try:
            with self._engine.begin() as conn:
                conn.execute(self._table.insert().values(**payload))
        except Exception as exc:
            raise AuditStoreError(f"Failed to record search event: {exc}") from exc

    def recent_events(self, limit: int = 50) -> list[dict[str, Any]]:
        """Return the newest events first."""
        query = (
            self._table.select()
            .order_by(self._table.c.created_at.desc())
            .limit(limit)
        )
        with self._engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [
            {
                "event_type": row["event_type"],
                "question_hash": row["question_hash"],
                "confidence": row["confidence"],
                "status": row["status"],
                "files": json.loads(row["files"] or "[]"),
                "created_at": row["created_at"],
            }
            for row in rows
        ]

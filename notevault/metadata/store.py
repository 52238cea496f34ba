from __future__ import annotations

"""Small local key-value storage for session preferences and search history."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

DEFAULT_HISTORY_SIZE = 20
SEARCH_HISTORY_KEY = "search_history"
LAST_PROVIDER_KEY = "last_provider"


class KeyValueStoreError(RuntimeError):
    """Raised when local storage fails."""
    pass


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


@dataclass
class InMemoryKeyValueStore:
    """Process-local store used in tests and when no database is configured."""
    _values: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> Any | None:
        raw = self._values.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = json.dumps(value, ensure_ascii=False)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class SQLKeyValueStore:
    """Store JSON values in a SQL table keyed by name."""
    def __init__(self, connection_uri: str) -> None:
        """Initialize the store and ensure tables exist."""
        try:
            from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise KeyValueStoreError(
                "sqlalchemy is required to use the key-value store"
            ) from exc

        self._engine = create_engine(connection_uri)
        self._metadata = MetaData()
        self._table = Table(
            "local_storage",
            self._metadata,
            Column("key", String(128), primary_key=True),
            Column("value", Text, nullable=False),
            Column("updated_at", DateTime(timezone=True), nullable=False),
        )
        self._metadata.create_all(self._engine)

    def get(self, key: str) -> Any | None:
        query = self._table.select().where(self._table.c.key == key)
        with self._engine.connect() as conn:
            row = conn.execute(query).mappings().first()
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as exc:
            raise KeyValueStoreError(f"Stored value for {key!r} is not valid JSON") from exc

    def set(self, key: str, value: Any) -> None:
        payload = {
            "value": json.dumps(value, ensure_ascii=False),
            "updated_at": datetime.now(timezone.utc),
        }
        with self._engine.begin() as conn:
            updated = conn.execute(
                self._table.update().where(self._table.c.key == key).values(**payload)
            )
            if updated.rowcount == 0:
                conn.execute(self._table.insert().values(key=key, **payload))

    def delete(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(self._table.delete().where(self._table.c.key == key))


@dataclass
class SearchHistory:
    """Most recent questions in the order they were asked."""
    store: KeyValueStore
    limit: int = DEFAULT_HISTORY_SIZE
    key: str = SEARCH_HISTORY_KEY

    def add(self, question: str) -> None:
        question = question.strip()
        if not question:
            return
        items = self.items()
        items.append(question)
        self.store.set(self.key, items[-self.limit :])

    def items(self) -> list[str]:
        value = self.store.get(self.key)
        if not isinstance(value, list):
            return []
        return [str(item) for item in value]

    def clear(self) -> None:
        self.store.delete(self.key)

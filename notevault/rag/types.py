from __future__ import annotations

"""Core data types for notes, chunks and the conversation log."""

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class DocumentFile:
    """A note as handed over by the uploader or the directory loader."""
    path: str
    absolute_path: str
    content: str


@dataclass(frozen=True)
class Chunk:
    """Chunk of a note with its embedding vector."""
    path: str
    absolute_path: str
    content: str
    vector: tuple[float, ...] = field(repr=False)


@dataclass(frozen=True)
class ScoredChunk:
    """Chunk with the signals computed for one question."""
    chunk: Chunk
    final_score: float
    path_score: float = 0.0
    semantic_score: float = 0.0
    content_score: float = 0.0


@dataclass(frozen=True)
class TopicSummary:
    """Structured summary attached to a model message."""
    summary: str
    key_points: tuple[str, ...] = field(default=())
    references: tuple[str, ...] = field(default=())
    confidence: float = 0.0
    related_topics: tuple[str, ...] = field(default=())


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


@dataclass(frozen=True)
class Message:
    """Entry in the conversation log."""
    id: str
    role: Role
    content: str
    requires_external_data_confirmation: bool | None = None
    original_question: str | None = None
    summary: TopicSummary | None = None

    @property
    def is_confirmation_prompt(self) -> bool:
        return self.role == Role.SYSTEM and bool(self.requires_external_data_confirmation)

    @property
    def is_declined_notice(self) -> bool:
        return self.role == Role.MODEL and self.requires_external_data_confirmation is False

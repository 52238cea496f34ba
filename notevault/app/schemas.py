from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class VaultFile(BaseModel):
    path: str = Field(min_length=1)
    absolute_path: str | None = None
    content: str


class VaultRequest(BaseModel):
    files: list[VaultFile] = Field(min_length=1)


class VaultResponse(BaseModel):
    files: int
    chunks: int
    dimension: int
    request_id: str


class VaultStatsResponse(BaseModel):
    files: int
    chunks: int
    dimension: int
    messages: int
    busy: bool


class TopicSummaryModel(BaseModel):
    summary: str
    key_points: list[str]
    references: list[str]
    confidence: float
    related_topics: list[str]


class MessageModel(BaseModel):
    id: str
    role: Literal["user", "model", "system"]
    content: str
    requires_external_data_confirmation: bool | None = None
    original_question: str | None = None
    summary: TopicSummaryModel | None = None


class ChatRequest(BaseModel):
    question: str = Field(min_length=1)


class ChatResponse(BaseModel):
    state: str
    messages: list[MessageModel]
    error: str | None = None
    request_id: str


class ConversationResponse(BaseModel):
    messages: list[MessageModel]


class SearchHistoryResponse(BaseModel):
    questions: list[str]

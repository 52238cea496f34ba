from __future__ import annotations

"""Confidence gate deciding between showing an answer and asking for approval."""

import re
from dataclasses import dataclass
from enum import Enum


DEFAULT_NOT_FOUND = "提供されたノートの情報の中から、その質問に対する回答を見つけることができませんでした。"

# Phrasings a model uses when the context did not contain the answer.
NO_ANSWER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"提供された.*情報.*回答.*見つけ.*ませんでした"),
    re.compile(r"コンテキスト.*情報.*含まれていません"),
    re.compile(r"ドキュメント.*情報.*見つかりません"),
    re.compile(r"申し訳.*情報.*ありません"),
    re.compile(r"回答.*見つかりません"),
    re.compile(r"情報.*見つかりません"),
    re.compile(r"該当.*情報.*ありません"),
)


class QuestionState(str, Enum):
    AWAITING_RETRIEVAL = "awaiting_retrieval"
    AWAITING_ANSWER = "awaiting_answer"
    ANSWER_ACCEPTED = "answer_accepted"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    EXTERNAL_ANSWER = "external_answer"
    STANDARD_NOT_FOUND = "standard_not_found"
    SUMMARY = "summary"
    FAILED = "failed"


@dataclass(frozen=True)
class GuardrailResult:
    allowed: bool
    reason: str


def is_not_found_answer(answer: str) -> bool:
    """True when the answer is really a "could not find it" response."""
    return any(pattern.search(answer) for pattern in NO_ANSWER_PATTERNS)


def require_context(context: str | None) -> GuardrailResult:
    if context is None:
        return GuardrailResult(allowed=False, reason="no_context")
    if not context.strip():
        return GuardrailResult(allowed=False, reason="empty_context")
    return GuardrailResult(allowed=True, reason="ok")


def check_answer(answer: str) -> GuardrailResult:
    if not answer.strip():
        return GuardrailResult(allowed=False, reason="empty_answer")
    if is_not_found_answer(answer):
        return GuardrailResult(allowed=False, reason="not_found_answer")
    return GuardrailResult(allowed=True, reason="ok")

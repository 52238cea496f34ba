from __future__ import annotations

"""Offline answerer that quotes the best context block instead of calling a model."""

import re
from dataclasses import dataclass
from typing import Sequence

from notevault.rag.llm import EMPTY_ANSWER, EXTERNAL_DISCLAIMER, LLMError
from notevault.rag.guardrails import DEFAULT_NOT_FOUND
from notevault.rag.keywords import extract_keywords, normalize
from notevault.rag.types import Message

_BLOCK_RE = re.compile(r"--- FILE: (.*?) ---\n(.*?)(?=\n\n--- FILE: |\Z)", re.S)
_SUMMARY_BLOCK_RE = re.compile(r"【文書\d+: (.*?)】\n(.*?)(?=\n\n【文書\d+: |\Z)", re.S)
_SENTENCE_END_RE = re.compile(r"(?<=[。.!?！？])")
_HEADING_MARK_RE = re.compile(r"^\s*#+\s*", re.M)

MAX_KEY_POINTS = 5


def _flatten(text: str) -> str:
    return " ".join(_HEADING_MARK_RE.sub("", text).split())


def _first_sentence(text: str) -> str:
    stripped = _flatten(text)
    return _SENTENCE_END_RE.split(stripped, maxsplit=1)[0].strip() if stripped else ""


@dataclass
class ExtractiveAnswerer:
    """Return a short extract from the context block sharing most keywords with the question."""
    max_chars: int = 480

    async def generate(self, context: str, history: Sequence[Message]) -> str:
        if not history:
            raise LLMError("Conversation history must end with the current question")
        blocks = _BLOCK_RE.findall(context)
        if not blocks:
            return DEFAULT_NOT_FOUND
        keywords = extract_keywords(history[-1].content)
        path, content = max(blocks, key=lambda block: self._overlap(keywords, block))
        snippet = self._truncate(content.strip())
        if not snippet:
            return EMPTY_ANSWER
        return f"ファイル「{path}」には次のように書かれています：{snippet}"

    async def generate_external(self, question: str) -> str:
        return f"{DEFAULT_NOT_FOUND}{EXTERNAL_DISCLAIMER}"

    async def generate_synonyms(self, keyword: str) -> str:
        return ""

    async def generate_summary(self, topic: str, context: str) -> str:
        """Lead block as the summary, first sentence of each block as key points."""
        blocks = _SUMMARY_BLOCK_RE.findall(context)
        if not blocks:
            return ""
        points = [
            self._truncate(_first_sentence(content), max_chars=120)
            for _, content in blocks[:MAX_KEY_POINTS]
        ]
        bullets = "\n".join(f"- {point}" for point in points if point)
        return f"## 要約\n{self._truncate(_flatten(blocks[0][1]))}\n\n## 重要ポイント\n{bullets}"

    async def generate_related_topics(self, summary: str) -> str:
        return ""

    def _overlap(self, keywords: list[str], block: tuple[str, str]) -> int:
        text = normalize(" ".join(block))
        return sum(1 for keyword in keywords if keyword in text)

    def _truncate(self, text: str, max_chars: int | None = None) -> str:
        """Trim text to the max character budget."""
        limit = max_chars or self.max_chars
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + "..."

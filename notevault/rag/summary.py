from __future__ import annotations

"""Topic summaries built from the chunks that mention a topic."""

import logging
import re
import unicodedata
from typing import Protocol, Sequence

from notevault.rag.types import Chunk, TopicSummary

logger = logging.getLogger(__name__)

MAX_SUMMARY_CHUNKS = 15
MAX_RELATED_TOPICS = 5
SUMMARY_MAX_CHARS = 800

NOT_FOUND_SUMMARY = "「{topic}」に関する情報が見つかりませんでした。"
SUMMARY_FAILED = "要約の生成に失敗しました"
NO_KEY_POINTS = "要約から重要ポイントを抽出できませんでした"
SUMMARY_REPLY = "「{topic}」についての要約を生成しました。"

_TOPIC_PUNCT_RE = re.compile(r"[？?。、，！!]")
_TOPIC_STOPWORDS = frozenset({"について", "に関して", "の方法", "のやり方", "とは"})
_BULLET_RE = re.compile(r"^(?:[-•*]\s+|・\s*)")
_RELATED_SPLIT_RE = re.compile(r"[,，、]")


class SummaryWriter(Protocol):
    async def generate_summary(self, topic: str, context: str) -> str:
        raise NotImplementedError

    async def generate_related_topics(self, summary: str) -> str:
        raise NotImplementedError


def topic_keywords(topic: str) -> list[str]:
    words = _TOPIC_PUNCT_RE.sub(" ", topic).split()
    return [word for word in words if len(word) >= 2 and word not in _TOPIC_STOPWORDS]


def select_relevant_chunks(
    chunks: Sequence[Chunk], topic: str, limit: int = MAX_SUMMARY_CHUNKS
) -> list[Chunk]:
    """Chunks mentioning the topic, best first; path matches weigh more than content."""
    normalized_topic = unicodedata.normalize("NFKC", topic.lower())
    keywords = topic_keywords(normalized_topic)
    scored: list[tuple[int, Chunk]] = []
    for chunk in chunks:
        content = unicodedata.normalize("NFKC", chunk.content.lower())
        path = unicodedata.normalize("NFKC", chunk.path.lower())
        score = 0
        for keyword in keywords:
            if keyword in content:
                score += 2
            if keyword in path:
                score += 3
        if normalized_topic in content:
            score += 5
        if normalized_topic in path:
            score += 7
        if score > 0:
            scored.append((score, chunk))
    scored.sort(key=lambda item: item[0], reverse=True)
    return [chunk for _, chunk in scored[:limit]]


def summary_context(chunks: Sequence[Chunk]) -> str:
    return "\n\n".join(
        f"【文書{index}: {chunk.path}】\n{chunk.content}"
        for index, chunk in enumerate(chunks, start=1)
    )


def _section(line: str) -> str | None:
    """Section named by a heading line, ``"other"`` for unrelated headings, None for body text."""
    title = line.lstrip("#").strip().strip("【】:：")
    is_heading = line.startswith("#") or line.startswith("【") or title in {"要約", "重要ポイント", "ポイント"}
    if not is_heading:
        return None
    if "ポイント" in title:
        return "points"
    if "要約" in title:
        return "summary"
    return "other"


def parse_summary_response(response: str) -> tuple[str, list[str]]:
    """Split a ``## 要約`` / ``## 重要ポイント`` reply into summary text and bullet points."""
    summary_lines: list[str] = []
    key_points: list[str] = []
    current = "other"
    for raw_line in response.splitlines():
        line = raw_line.strip()
        section = _section(line)
        if section is not None:
            current = section
            continue
        if current == "summary" and line:
            summary_lines.append(line)
        elif current == "points" and _BULLET_RE.match(line):
            key_points.append(_BULLET_RE.sub("", line).strip())
    summary = "\n".join(summary_lines).strip()
    if not summary and not key_points:
        paragraphs = [paragraph.strip() for paragraph in response.split("\n\n") if paragraph.strip()]
        summary = paragraphs[0] if paragraphs else ""
    return summary or SUMMARY_FAILED, key_points or [NO_KEY_POINTS]


def parse_related_topics(response: str) -> list[str]:
    topics = [item.strip() for item in _RELATED_SPLIT_RE.split(response)]
    return [topic for topic in topics if 0 < len(topic) < 30][:MAX_RELATED_TOPICS]


def summary_confidence(chunks: Sequence[Chunk], topic: str) -> float:
    """Average per-chunk relevance in [0, 1], rounded to two decimals."""
    if not chunks:
        return 0.0
    normalized_topic = topic.lower()
    total = 0.0
    for chunk in chunks:
        relevance = 0.0
        if normalized_topic in chunk.content.lower():
            relevance += 0.3
        if normalized_topic in chunk.path.lower():
            relevance += 0.4
        if len(chunk.content) > 200:
            relevance += 0.2
        if ".md" in chunk.path:
            relevance += 0.1
        total += min(relevance, 1.0)
    return round(min(total / len(chunks), 1.0), 2)


async def summarize_topic(
    topic: str, chunks: Sequence[Chunk], writer: SummaryWriter
) -> TopicSummary:
    """Summarize what the notes say about ``topic``.

    Errors from the summary request propagate; a failed related-topics
    request only leaves ``related_topics`` empty.
    """
    relevant = select_relevant_chunks(chunks, topic)
    if not relevant:
        return TopicSummary(summary=NOT_FOUND_SUMMARY.format(topic=topic))
    response = await writer.generate_summary(topic, summary_context(relevant))
    summary, key_points = parse_summary_response(response)
    try:
        related = parse_related_topics(await writer.generate_related_topics(summary[:500]))
    except Exception as exc:
        logger.warning("related_topics_failed", extra={"error": str(exc)})
        related = []
    references = tuple(dict.fromkeys(chunk.path for chunk in relevant))
    return TopicSummary(
        summary=summary,
        key_points=tuple(key_points),
        references=references,
        confidence=summary_confidence(relevant, topic),
        related_topics=tuple(related),
    )

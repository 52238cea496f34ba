from __future__ import annotations

"""Query intent classification computed once per question."""

import re
from dataclasses import dataclass, field
from typing import Union

from notevault.rag.keywords import extract_keywords, is_date_keyword, is_error_code, normalize

SHORT_QUESTION_CHARS = 20

_DATE_QUERY_RE = re.compile(r"\d{1,2}月\d{1,2}日|\d{1,2}/\d{1,2}|\d{4}-\d{1,2}-\d{1,2}")
_FOLLOW_UP_RE = re.compile(
    r"^(詳細|詳しく|もっと|なぜ|どうして|他には|それで|その後|つまり|要するに|というのは)",
    flags=re.IGNORECASE,
)
_SUMMARY_RE = re.compile(
    r"^(?:要約|まとめ|まとめて|概要|総括)\s*[：:]\s*(?P<prefixed>.+)"
    r"|(?P<topic>.+?)\s*(?:について|に関して|の)\s*(?:要約|まとめ|概要|総括)"
)
_SUMMARY_WORDS_RE = re.compile(r"要約|まとめて|まとめ|概要|総括|について|に関して|の")


@dataclass(frozen=True)
class QueryClassificationBase:
    question: str
    keywords: tuple[str, ...]
    is_short: bool

    @property
    def error_codes(self) -> tuple[str, ...]:
        return tuple(keyword for keyword in self.keywords if is_error_code(keyword))


@dataclass(frozen=True)
class GeneralQuery(QueryClassificationBase):
    """Question with no date, error code or follow-up marker."""


@dataclass(frozen=True)
class DateQuery(QueryClassificationBase):
    """Question mentioning a date expression."""
    date_keywords: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class TechnicalQuery(QueryClassificationBase):
    """Short question built around an error code."""


@dataclass(frozen=True)
class FollowUp(QueryClassificationBase):
    """Question continuing the previous exchange.

    ``fallback`` is the classification used when there is no previous context
    to reuse and the question has to be retrieved on its own.
    """
    fallback: "RetrievalClassification | None" = None


@dataclass(frozen=True)
class SummaryRequest(QueryClassificationBase):
    """Request to summarize what the notes say about ``topic``."""
    topic: str = ""


RetrievalClassification = Union[GeneralQuery, DateQuery, TechnicalQuery]
QueryClassification = Union[GeneralQuery, DateQuery, TechnicalQuery, FollowUp, SummaryRequest]


def is_follow_up(question: str) -> bool:
    return bool(_FOLLOW_UP_RE.match(question.strip()))


def summary_topic(question: str) -> str | None:
    """Topic of a summary request such as ``要約: 会議`` or ``会議の要約``, else None."""
    stripped = question.strip()
    match = _SUMMARY_RE.search(stripped)
    if match is None:
        return None
    topic = (match.group("prefixed") or match.group("topic") or "").strip()
    return topic or _SUMMARY_WORDS_RE.sub("", stripped).strip() or None


def classify_for_retrieval(
    question: str, keywords: list[str] | None = None
) -> RetrievalClassification:
    """Classify a question for scoring and threshold selection."""
    resolved = tuple(keywords if keywords is not None else extract_keywords(question))
    is_short = len(question.strip()) < SHORT_QUESTION_CHARS
    if _DATE_QUERY_RE.search(normalize(question)):
        return DateQuery(
            question=question,
            keywords=resolved,
            is_short=is_short,
            date_keywords=tuple(keyword for keyword in resolved if is_date_keyword(keyword)),
        )
    if is_short and any(is_error_code(keyword) for keyword in resolved):
        return TechnicalQuery(question=question, keywords=resolved, is_short=is_short)
    return GeneralQuery(question=question, keywords=resolved, is_short=is_short)


def classify_query(question: str, keywords: list[str] | None = None) -> QueryClassification:
    """Classify a question, recognising summary requests and follow-ups first."""
    retrieval = classify_for_retrieval(question, keywords)
    topic = summary_topic(question)
    if topic is not None:
        return SummaryRequest(
            question=question,
            keywords=retrieval.keywords,
            is_short=retrieval.is_short,
            topic=topic,
        )
    if is_follow_up(question):
        return FollowUp(
            question=question,
            keywords=retrieval.keywords,
            is_short=retrieval.is_short,
            fallback=retrieval,
        )
    return retrieval

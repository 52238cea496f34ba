from __future__ import annotations

"""Build the text that is embedded for a question.

Scoring always uses the question itself; only the embedding query is expanded:

* questions about "today" get today's written date forms,
* short error-code questions get troubleshooting vocabulary,
* other non-date questions get model-generated synonyms of their key words,
* questions with an ``N月N日`` date get every variation of that date.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Protocol

from cachetools import TTLCache

from notevault.rag.cache import build_synonym_cache
from notevault.rag.classifier import DateQuery, QueryClassification
from notevault.rag.dates import generate_date_variations, today_date_forms
from notevault.rag.keywords import extract_keywords, is_date_keyword

logger = logging.getLogger(__name__)

TECHNICAL_TERMS = "エラーコード 対処法 対処方法 解決方法 トラブルシューティング 異常 故障 センサー"
MAX_SYNONYMS = 5
MAX_IMPORTANT_KEYWORDS = 5

_TODAY_RE = re.compile(r"(今日|today)", flags=re.IGNORECASE)
_SHORT_TECHNICAL_RE = re.compile(r"^[a-zA-Z]+\d+[は？\?]*$")
_ERROR_CODE_RE = re.compile(r"([a-zA-Z]+\d+)")
_MONTH_DAY_RE = re.compile(r"\d{1,2}月\d{1,2}日")
_DATE_QUERY_SKIP_RE = re.compile(r"\d{1,2}月\d{1,2}日|\d{1,2}/\d{1,2}|\d{4}-\d{1,2}-\d{1,2}")
_SYNONYM_SPLIT_RE = re.compile(r"[,、，]")
_LATIN_RE = re.compile(r"[a-zA-Z]")
_WORD_PUNCT_RE = re.compile(r"[？。、，！!]")

_IMPORTANT_STOPWORDS = frozenset(
    {
        "は", "を", "が", "に", "で", "て", "です", "ます", "ある", "いる", "する",
        "から", "まで", "について", "どの", "どこ", "何", "いつ", "？", "?", "。",
    }
)


class SynonymSource(Protocol):
    async def generate_synonyms(self, keyword: str) -> str:
        raise NotImplementedError


def parse_synonym_response(response: str) -> list[str]:
    """Parse a comma separated model reply into at most five Japanese synonyms."""
    synonyms: list[str] = []
    for item in _SYNONYM_SPLIT_RE.split(response):
        candidate = item.strip()
        if not candidate or len(candidate) >= 20:
            continue
        if _LATIN_RE.search(candidate):
            continue
        synonyms.append(candidate)
    return synonyms[:MAX_SYNONYMS]


def important_keywords(question: str) -> list[str]:
    """Whitespace separated words of two or more characters, at most five."""
    normalized = _WORD_PUNCT_RE.sub(" ", unicodedata.normalize("NFKC", question))
    words = [
        word
        for word in normalized.split()
        if len(word) >= 2 and word not in _IMPORTANT_STOPWORDS
    ]
    return words[:MAX_IMPORTANT_KEYWORDS]


def technical_query(question: str) -> str | None:
    """Expanded query for a bare error-code question, or None."""
    if not _SHORT_TECHNICAL_RE.match(question.strip()):
        return None
    match = _ERROR_CODE_RE.search(question)
    if match is None:
        return None
    return f"{question} {match.group(1)} {TECHNICAL_TERMS}"


def date_query(question: str, today: date | None = None) -> str | None:
    """Question plus every variation of its ``N月N日`` date and its other keywords."""
    match = _MONTH_DAY_RE.search(question)
    if match is None:
        return None
    variations = generate_date_variations(match.group(0), today=today)
    others = [keyword for keyword in extract_keywords(question) if not is_date_keyword(keyword)]
    return f"{question} {' '.join(variations)} {' '.join(others)}"


@dataclass
class QueryExpander:
    """Expands questions into embedding queries; owns the synonym cache."""
    synonyms: SynonymSource | None = None
    synonym_expansion: bool = True
    cache: TTLCache = field(default_factory=build_synonym_cache)
    today: Callable[[], date] = date.today

    async def expand(self, question: str, classification: QueryClassification | None = None) -> str:
        today = self.today()
        search_query = question
        if _TODAY_RE.search(question):
            search_query = f"{question} {' '.join(today_date_forms(today))}"
        else:
            technical = technical_query(question)
            if technical is not None:
                search_query = technical
            elif not self._is_date_question(question, classification):
                search_query = await self.synonym_query(question)
        dated = date_query(question, today=today)
        if dated is not None:
            search_query = dated
        if search_query != question:
            logger.info(
                "query_expanded",
                extra={"question_length": len(question), "expanded_length": len(search_query)},
            )
        return search_query

    async def synonym_query(self, question: str) -> str:
        """Question followed by new synonyms of its important words; failures return the question."""
        if self.synonyms is None or not self.synonym_expansion:
            return question
        keywords = important_keywords(question)
        added: list[str] = []
        for keyword in keywords:
            for synonym in await self.synonyms_for(keyword):
                if synonym not in keywords and synonym not in added:
                    added.append(synonym)
        if not added:
            return question
        return f"{question} {' '.join(added)}"

    async def synonyms_for(self, keyword: str) -> list[str]:
        cached = self.cache.get(keyword)
        if cached is not None:
            return cached
        try:
            response = await self.synonyms.generate_synonyms(keyword)
        except Exception as exc:
            logger.warning(
                "synonym_generation_failed",
                extra={"keyword": keyword, "error": str(exc)},
            )
            return []
        synonyms = parse_synonym_response(response)
        self.cache[keyword] = synonyms
        return synonyms

    def _is_date_question(self, question: str, classification: QueryClassification | None) -> bool:
        if isinstance(classification, DateQuery):
            return True
        fallback = getattr(classification, "fallback", None)
        if isinstance(fallback, DateQuery):
            return True
        return classification is None and bool(_DATE_QUERY_SKIP_RE.search(question))


from __future__ import annotations

"""Multi-signal chunk scoring, adaptive thresholds and context assembly."""

import logging
import math
import re
from dataclasses import dataclass
from typing import Sequence

from notevault.rag.classifier import (
    DateQuery,
    FollowUp,
    QueryClassification,
    RetrievalClassification,
    TechnicalQuery,
    classify_for_retrieval,
)
from notevault.rag.dates import generate_date_variations
from notevault.rag.keywords import is_date_keyword, is_error_code, is_numeric, normalize
from notevault.rag.types import Chunk, ScoredChunk

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 10
DEFAULT_CONTEXT_MAX_CHARS = 10000

_FILE_HEADER_RE = re.compile(r"--- FILE: (.*?) ---")


@dataclass(frozen=True)
class MatchBonuses:
    """Bonus awarded per keyword match type."""
    date: float
    error_code: float
    numeric: float
    keyword: float


PATH_BONUSES = MatchBonuses(date=5.0, error_code=6.0, numeric=3.0, keyword=1.0)
CONTENT_BONUSES = MatchBonuses(date=3.0, error_code=4.0, numeric=2.0, keyword=1.0)


@dataclass(frozen=True)
class Weights:
    path: float
    semantic: float
    content: float


DEFAULT_WEIGHTS = Weights(path=1.5, semantic=2.0, content=1.2)
TECHNICAL_WEIGHTS = Weights(path=2.0, semantic=1.0, content=3.0)


@dataclass(frozen=True)
class ChunkSignals:
    """Per-chunk facts that influence weighting."""
    has_exact_technical_match: bool = False


@dataclass(frozen=True)
class Thresholds:
    min_score: float
    min_semantic: float


@dataclass(frozen=True)
class ThresholdConfig:
    """Acceptance floors, from strictest (default) to most permissive (date+path)."""
    default: Thresholds = Thresholds(min_score=0.5, min_semantic=0.4)
    technical: Thresholds = Thresholds(min_score=0.2, min_semantic=0.1)
    date: Thresholds = Thresholds(min_score=0.3, min_semantic=0.2)
    date_path_match: Thresholds = Thresholds(min_score=0.1, min_semantic=0.05)
    high_score: float = 5.0
    high_score_min_semantic: float = 0.05
    date_relaxed_score: float = 1.0
    date_relaxed_min_semantic: float = 0.01


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched dimensions or zero vectors."""
    if len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def _matches_error_code(keyword: str, normalized: str, original: str) -> bool:
    upper = keyword.upper()
    lower = keyword.lower()
    return lower in normalized or upper in normalized or upper in original


def keyword_match_score(
    keywords: Sequence[str],
    normalized: str,
    original: str,
    bonuses: MatchBonuses,
) -> float:
    """Sum the match bonus of every keyword found in the text."""
    score = 0.0
    for keyword in keywords:
        if is_date_keyword(keyword):
            if any(variation in normalized for variation in generate_date_variations(keyword)):
                score += bonuses.date
        elif is_error_code(keyword):
            if _matches_error_code(keyword, normalized, original):
                score += bonuses.error_code
        elif is_numeric(keyword):
            if keyword in normalized or keyword in original:
                score += bonuses.numeric
        elif keyword in normalized or keyword in original:
            score += bonuses.keyword
    return score


def has_exact_technical_match(keywords: Sequence[str], chunk: Chunk) -> bool:
    """True when an error-code keyword appears verbatim in the chunk path or content."""
    for keyword in keywords:
        if not is_error_code(keyword):
            continue
        for candidate in (keyword.upper(), keyword.lower()):
            if candidate in chunk.content or candidate in chunk.path:
                return True
    return False


def compute_weights(classification: QueryClassification, signals: ChunkSignals) -> Weights:
    """Pick signal weights; short questions with an exact code match favour lexical signals."""
    if classification.is_short and signals.has_exact_technical_match:
        return TECHNICAL_WEIGHTS
    return DEFAULT_WEIGHTS


def score_chunk(
    classification: QueryClassification,
    question_vector: Sequence[float],
    chunk: Chunk,
) -> ScoredChunk:
    keywords = classification.keywords
    path_score = keyword_match_score(
        keywords, normalize(chunk.path), chunk.path, PATH_BONUSES
    )
    content_score = keyword_match_score(
        keywords, normalize(chunk.content), chunk.content, CONTENT_BONUSES
    )
    semantic_score = cosine_similarity(question_vector, chunk.vector)
    weights = compute_weights(
        classification,
        ChunkSignals(has_exact_technical_match=has_exact_technical_match(keywords, chunk)),
    )
    final_score = (
        path_score * weights.path
        + semantic_score * weights.semantic
        + content_score * weights.content
    )
    return ScoredChunk(
        chunk=chunk,
        final_score=final_score,
        path_score=path_score,
        semantic_score=semantic_score,
        content_score=content_score,
    )


def score_chunks(
    classification: QueryClassification,
    question_vector: Sequence[float],
    chunks: Sequence[Chunk],
) -> list[ScoredChunk]:
    """Score every chunk and rank by final score, highest first."""
    scored = [score_chunk(classification, question_vector, chunk) for chunk in chunks]
    scored.sort(key=lambda item: item.final_score, reverse=True)
    return scored


def has_date_path_match(classification: DateQuery, ranked: Sequence[ScoredChunk]) -> bool:
    """True when any date variation appears in the path of a ranked chunk."""
    for keyword in classification.date_keywords:
        variations = [variation.lower() for variation in generate_date_variations(keyword)]
        for item in ranked:
            path = item.chunk.path.lower()
            if any(variation in path for variation in variations):
                return True
    return False


def resolve_thresholds(
    classification: RetrievalClassification,
    ranked: Sequence[ScoredChunk],
    config: ThresholdConfig,
) -> Thresholds:
    """Select the acceptance floors for the best ranked chunk."""
    thresholds = config.default
    if isinstance(classification, TechnicalQuery):
        thresholds = config.technical
    if isinstance(classification, DateQuery):
        if has_date_path_match(classification, ranked):
            thresholds = config.date_path_match
        else:
            thresholds = config.date
    if not ranked:
        return thresholds
    best_score = ranked[0].final_score
    min_semantic = thresholds.min_semantic
    if best_score >= config.high_score:
        min_semantic = min(min_semantic, config.high_score_min_semantic)
    if isinstance(classification, DateQuery) and best_score >= config.date_relaxed_score:
        min_semantic = min(min_semantic, config.date_relaxed_min_semantic)
    return Thresholds(min_score=thresholds.min_score, min_semantic=min_semantic)


def format_block(chunk: Chunk) -> str:
    return f"--- FILE: {chunk.absolute_path} ---\n{chunk.content}\n\n"


def build_context(ranked: Sequence[ScoredChunk], max_chars: int = DEFAULT_CONTEXT_MAX_CHARS) -> str | None:
    """Concatenate file-tagged blocks in rank order within a character budget."""
    context = ""
    seen: set[str] = set()
    for item in ranked:
        block = format_block(item.chunk)
        if block in seen:
            continue
        if len(context) + len(block) > max_chars:
            break
        context += block
        seen.add(block)
    return context if context.strip() else None


def context_files(context: str | None) -> list[str]:
    """Return the file paths named in a context string, in order."""
    if not context:
        return []
    return _FILE_HEADER_RE.findall(context)


@dataclass
class ContextBuilder:
    """Rank chunks for a question and build the grounding context."""
    thresholds: ThresholdConfig = ThresholdConfig()
    top_k: int = DEFAULT_TOP_K
    max_chars: int = DEFAULT_CONTEXT_MAX_CHARS

    def rank(
        self,
        classification: QueryClassification,
        question_vector: Sequence[float],
        chunks: Sequence[Chunk],
    ) -> list[ScoredChunk]:
        return score_chunks(classification, question_vector, chunks)[: self.top_k]

    def create_context(
        self,
        question: str,
        question_vector: Sequence[float],
        chunks: Sequence[Chunk],
        classification: QueryClassification | None = None,
    ) -> str | None:
        """Return the context string for a question, or None when nothing is relevant enough."""
        if classification is None:
            classification = classify_for_retrieval(question)
        if isinstance(classification, FollowUp):
            classification = classification.fallback or classify_for_retrieval(question)
        ranked = self.rank(classification, question_vector, chunks)
        if not ranked:
            return None
        thresholds = resolve_thresholds(classification, ranked, self.thresholds)
        best = ranked[0]
        accepted = (
            best.final_score >= thresholds.min_score
            and best.semantic_score >= thresholds.min_semantic
        )
        logger.info(
            "retrieval_analysis",
            extra={
                "query_type": type(classification).__name__,
                "keywords": list(classification.keywords),
                "best_path": best.chunk.path,
                "best_score": round(best.final_score, 4),
                "best_semantic": round(best.semantic_score, 4),
                "min_score": thresholds.min_score,
                "min_semantic": thresholds.min_semantic,
                "top": [
                    {"path": item.chunk.path, "score": round(item.final_score, 3)}
                    for item in ranked[:5]
                ],
                "accepted": accepted,
            },
        )
        if not accepted:
            return None
        return build_context(ranked, self.max_chars)

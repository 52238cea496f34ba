from __future__ import annotations

"""Embedding providers, batching and configuration validation."""

import asyncio
import hashlib
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence

_TOKEN_RE = re.compile(r"\w+")
_ASCII_RE = re.compile(r"^[a-z0-9_]+$")

DEFAULT_BATCH_SIZE = 50
DEFAULT_OPENAI_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_GEMINI_EMBEDDING_MODEL = "models/text-embedding-004"

logger = logging.getLogger(__name__)


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Return one embedding vector per text, in input order."""
        raise NotImplementedError


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Validate and normalize embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


def _tokens(text: str) -> list[str]:
    """Word tokens; non-ASCII runs (Japanese) become character bigrams."""
    tokens: list[str] = []
    for word in _TOKEN_RE.findall(text.lower()):
        if _ASCII_RE.match(word) or len(word) < 2:
            tokens.append(word)
            continue
        tokens.extend(word[idx : idx + 2] for idx in range(len(word) - 1))
    return tokens


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _tokens(text)
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


def resolve_gemini_dimension(model: str) -> int | None:
    """Return expected dimension for Gemini embedding model."""
    mapping = {
        "text-embedding-004": 768,
        "embedding-001": 768,
    }
    return mapping.get(model.removeprefix("models/"))


@dataclass
class OpenAIEmbedder:
    """Embedding provider using OpenAI embeddings API."""
    api_key: str
    model: str = DEFAULT_OPENAI_EMBEDDING_MODEL
    dimension: int = 0
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and create a client."""
        if not self.api_key:
            raise EmbeddingConfigError("An OpenAI API key is required for OpenAI embeddings")
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingError("openai package is required for OpenAIEmbedder") from exc
        self.client = OpenAI(api_key=self.api_key)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts with one OpenAI request."""
        response = self.client.embeddings.create(model=self.model, input=texts)
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise EmbeddingError(
                f"OpenAI returned {len(data)} embeddings for {len(texts)} texts"
            )
        return [validate_vector(list(item.embedding), self.dimension) for item in data]


@dataclass
class GeminiEmbedder:
    """Embedding provider using Gemini embeddings API."""
    api_key: str
    model: str = DEFAULT_GEMINI_EMBEDDING_MODEL
    dimension: int = 0
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate Gemini configuration and create a client."""
        if not self.api_key:
            raise EmbeddingConfigError("A Gemini API key is required for Gemini embeddings")
        if not self.model:
            raise EmbeddingConfigError("GEMINI_EMBEDDING_MODEL is required for GeminiEmbedder")
        if self.dimension <= 0:
            resolved = resolve_gemini_dimension(self.model)
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for Gemini embeddings when model is unknown"
                )
            self.dimension = resolved
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise EmbeddingError("google-generativeai package is required for GeminiEmbedder") from exc
        genai.configure(api_key=self.api_key)
        self.client = genai

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts; an item missing from the response becomes a zero vector."""
        result = self.client.embed_content(model=self.model, content=texts)
        embeddings = None
        if isinstance(result, dict):
            embeddings = result.get("embedding")
        if embeddings is None:
            embeddings = getattr(result, "embedding", None)
        if embeddings is None:
            raise EmbeddingError("Gemini embedding response missing embedding vectors")
        vectors: list[list[float]] = []
        for idx in range(len(texts)):
            values = embeddings[idx] if idx < len(embeddings) else None
            if not values:
                logger.warning(
                    "embedding_zero_vector_substituted",
                    extra={"provider": "gemini", "index": idx},
                )
                vectors.append([0.0] * self.dimension)
                continue
            vectors.append(validate_vector(list(values), self.dimension))
        return vectors


def build_embedder(
    provider: str,
    api_key: str | None,
    *,
    openai_model: str | None = None,
    gemini_model: str | None = None,
    dimension: int = 0,
) -> EmbeddingProvider:
    """Factory for embedding providers; fails before any network call."""
    normalized = provider.lower().strip()
    if normalized == "hash":
        return HashEmbedder(dimension=dimension if dimension > 0 else 256)
    if normalized == "openai":
        return OpenAIEmbedder(
            api_key=api_key or "",
            model=openai_model or DEFAULT_OPENAI_EMBEDDING_MODEL,
            dimension=dimension,
        )
    if normalized in {"gemini", "google"}:
        return GeminiEmbedder(
            api_key=api_key or "",
            model=gemini_model or DEFAULT_GEMINI_EMBEDDING_MODEL,
            dimension=dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


async def embed_texts(
    texts: list[str],
    embedder: EmbeddingProvider,
    on_progress: Callable[[float], None] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[list[float]]:
    """Embed texts in sequential batches, preserving order.

    Each batch is awaited before the next is sent; ``on_progress`` receives the
    completed fraction after every batch.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be greater than zero")
    vectors: list[list[float]] = []
    total = len(texts)
    for start in range(0, total, batch_size):
        batch = texts[start : start + batch_size]
        try:
            batch_vectors = await asyncio.to_thread(embedder.embed_batch, batch)
        except (EmbeddingError, EmbeddingConfigError):
            raise
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        if len(batch_vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding provider returned {len(batch_vectors)} vectors for {len(batch)} texts"
            )
        vectors.extend(batch_vectors)
        logger.info(
            "embedding_batch_complete",
            extra={"batch_start": start, "batch_size": len(batch), "total": total},
        )
        if on_progress is not None:
            on_progress(min((start + batch_size) / total, 1.0))
    return vectors

from __future__ import annotations

import math
from dataclasses import dataclass, field

import pytest

from notevault.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingError,
    HashEmbedder,
    build_embedder,
    embed_texts,
    resolve_gemini_dimension,
    validate_vector,
)
from notevault.rag.scoring import cosine_similarity

pytestmark = pytest.mark.anyio


@dataclass
class RecordingEmbedder:
    dimension: int = 3
    calls: list[list[str]] = field(default_factory=list)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [[float(len(text)), 0.0, 1.0] for text in texts]


@dataclass
class FailingEmbedder:
    dimension: int = 3

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        raise ConnectionError("network down")


@dataclass
class ShortEmbedder:
    dimension: int = 3

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [[0.0, 0.0, 1.0]]


def test_hash_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashEmbedder(dimension=64)

    first = embedder.embed("授業の内容")
    second = embedder.embed("授業の内容")

    assert first == second
    assert math.isclose(sum(value * value for value in first), 1.0, rel_tol=1e-9)


def test_hash_embedder_relates_overlapping_japanese_text() -> None:
    embedder = HashEmbedder(dimension=256)

    question = embedder.embed("微分の授業")
    related = embedder.embed("今日の授業では微分を学んだ")
    unrelated = embedder.embed("カレーの作り方")

    assert cosine_similarity(question, related) > cosine_similarity(question, unrelated)


def test_validate_vector_rejects_bad_values() -> None:
    with pytest.raises(EmbeddingError):
        validate_vector([1.0, 2.0], 3)
    with pytest.raises(EmbeddingError):
        validate_vector([1.0, float("nan")], 2)


def test_build_embedder_requires_keys_before_network() -> None:
    with pytest.raises(EmbeddingConfigError):
        build_embedder("openai", None)
    with pytest.raises(EmbeddingConfigError):
        build_embedder("gemini", "")
    with pytest.raises(EmbeddingConfigError):
        build_embedder("unknown", "key")
    assert isinstance(build_embedder("hash", None), HashEmbedder)


def test_gemini_dimension_ignores_models_prefix() -> None:
    assert resolve_gemini_dimension("models/text-embedding-004") == 768
    assert resolve_gemini_dimension("text-embedding-004") == 768


async def test_embed_texts_batches_in_order_and_reports_progress() -> None:
    embedder = RecordingEmbedder()
    progress: list[float] = []
    texts = [f"text-{idx}" * (idx + 1) for idx in range(5)]

    vectors = await embed_texts(texts, embedder, on_progress=progress.append, batch_size=2)

    assert [vector[0] for vector in vectors] == [float(len(text)) for text in texts]
    assert [len(call) for call in embedder.calls] == [2, 2, 1]
    assert progress == [0.4, 0.8, 1.0]


async def test_embed_texts_wraps_provider_failures() -> None:
    with pytest.raises(EmbeddingError, match="network down"):
        await embed_texts(["a"], FailingEmbedder())


async def test_embed_texts_detects_missing_vectors() -> None:
    with pytest.raises(EmbeddingError):
        await embed_texts(["a", "b"], ShortEmbedder())

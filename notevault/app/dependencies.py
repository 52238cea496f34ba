from __future__ import annotations

from functools import lru_cache

from notevault.app.settings import settings
from notevault.metadata.audit import AuditStore
from notevault.metadata.store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLKeyValueStore,
    SearchHistory,
)
from notevault.rag.cache import build_synonym_cache
from notevault.rag.embeddings import EmbeddingProvider, build_embedder
from notevault.rag.expansion import QueryExpander
from notevault.rag.llm import Answerer, build_llm_answerer
from notevault.rag.pipeline import ChatPipeline
from notevault.rag.scoring import ContextBuilder


@lru_cache
def get_session() -> ChatPipeline:
    """The single chat session served by this process."""
    embedder = get_embedder()
    answerer = get_answerer()
    expander = QueryExpander(
        synonyms=answerer,
        synonym_expansion=settings.synonym_expansion,
        cache=build_synonym_cache(
            maxsize=settings.synonym_cache_size,
            ttl=settings.synonym_cache_ttl,
        ),
    )
    return ChatPipeline(
        embedder=embedder,
        answerer=answerer,
        context_builder=ContextBuilder(
            thresholds=settings.threshold_config(),
            top_k=settings.top_k,
            max_chars=settings.context_max_chars,
        ),
        expander=expander,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        batch_size=settings.embed_batch_size,
        events=get_audit_store(),
        search_history=get_search_history(),
    )


def reset_session_cache() -> None:
    get_session.cache_clear()
    get_audit_store.cache_clear()
    get_kv_store.cache_clear()


def get_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider
    return build_embedder(
        provider,
        settings.api_key_for(provider),
        openai_model=settings.openai_embedding_model,
        gemini_model=settings.gemini_embedding_model,
        dimension=settings.embedding_dimension,
    )


def get_answerer() -> Answerer:
    provider = settings.llm_provider
    return build_llm_answerer(
        provider,
        settings.api_key_for(provider),
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        openai_external_model=settings.openai_external_model,
        gemini_model=settings.gemini_chat_model,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )


@lru_cache
def get_audit_store() -> AuditStore | None:
    if not settings.audit_db_uri:
        return None
    return AuditStore(settings.audit_db_uri)


@lru_cache
def get_kv_store() -> KeyValueStore:
    if settings.kv_store_uri:
        return SQLKeyValueStore(settings.kv_store_uri)
    return InMemoryKeyValueStore()


def get_search_history() -> SearchHistory:
    return SearchHistory(store=get_kv_store(), limit=settings.history_size)

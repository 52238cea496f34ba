from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from notevault.rag.scoring import ThresholdConfig, Thresholds

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1200"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "300"))
    top_k: int = int(os.getenv("RAG_TOP_K", "10"))
    context_max_chars: int = int(os.getenv("RAG_CONTEXT_MAX_CHARS", "10000"))
    embed_batch_size: int = int(os.getenv("RAG_EMBED_BATCH_SIZE", "50"))
    min_score: float = float(os.getenv("RAG_MIN_SCORE", "0.5"))
    min_semantic: float = float(os.getenv("RAG_MIN_SEMANTIC", "0.4"))
    technical_min_score: float = float(os.getenv("RAG_TECHNICAL_MIN_SCORE", "0.2"))
    technical_min_semantic: float = float(os.getenv("RAG_TECHNICAL_MIN_SEMANTIC", "0.1"))
    date_min_score: float = float(os.getenv("RAG_DATE_MIN_SCORE", "0.3"))
    date_min_semantic: float = float(os.getenv("RAG_DATE_MIN_SEMANTIC", "0.2"))
    date_path_min_score: float = float(os.getenv("RAG_DATE_PATH_MIN_SCORE", "0.1"))
    date_path_min_semantic: float = float(os.getenv("RAG_DATE_PATH_MIN_SEMANTIC", "0.05"))
    high_score: float = float(os.getenv("RAG_HIGH_SCORE", "5.0"))
    high_score_min_semantic: float = float(os.getenv("RAG_HIGH_SCORE_MIN_SEMANTIC", "0.05"))
    date_relaxed_min_semantic: float = float(os.getenv("RAG_DATE_RELAXED_MIN_SEMANTIC", "0.01"))
    synonym_expansion: bool = _flag("RAG_SYNONYM_EXPANSION", "true")
    synonym_cache_ttl: float = float(os.getenv("RAG_SYNONYM_CACHE_TTL", "1800"))
    synonym_cache_size: int = int(os.getenv("RAG_SYNONYM_CACHE_SIZE", "512"))
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "0"))
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "hash")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o")
    openai_external_model: str = os.getenv("OPENAI_EXTERNAL_MODEL", "gpt-4")
    openai_embedding_model: str = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_chat_model: str = os.getenv("GEMINI_CHAT_MODEL", "gemini-2.5-flash")
    gemini_embedding_model: str = os.getenv("GEMINI_EMBEDDING_MODEL", "models/text-embedding-004")
    llm_timeout: float = float(os.getenv("LLM_TIMEOUT", "60"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    kv_store_uri: str | None = os.getenv("RAG_KV_STORE_URI")
    audit_db_uri: str | None = os.getenv("RAG_AUDIT_DB_URI")
    metrics_enabled: bool = _flag("RAG_METRICS_ENABLED", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("NOTEVAULT_HOST", "127.0.0.1")
    port: int = int(os.getenv("NOTEVAULT_PORT", "8000"))
    history_size: int = int(os.getenv("RAG_HISTORY_SIZE", "20"))
    file_max_bytes: int = int(os.getenv("RAG_FILE_MAX_BYTES", "10485760"))

    def api_key_for(self, provider: str) -> str | None:
        normalized = provider.lower().strip()
        if normalized == "openai":
            return self.openai_api_key
        if normalized in {"gemini", "google"}:
            return self.gemini_api_key
        return None

    def threshold_config(self) -> ThresholdConfig:
        return ThresholdConfig(
            default=Thresholds(self.min_score, self.min_semantic),
            technical=Thresholds(self.technical_min_score, self.technical_min_semantic),
            date=Thresholds(self.date_min_score, self.date_min_semantic),
            date_path_match=Thresholds(self.date_path_min_score, self.date_path_min_semantic),
            high_score=self.high_score,
            high_score_min_semantic=self.high_score_min_semantic,
            date_relaxed_min_semantic=self.date_relaxed_min_semantic,
        )


settings = Settings()

from __future__ import annotations

"""FastAPI application entrypoint for the notes chat service."""

import logging
import uuid
from pathlib import PurePosixPath

from fastapi import FastAPI, File, HTTPException, Request, UploadFile

from notevault.app.dependencies import get_kv_store, get_search_history, get_session
from notevault.app.metrics import metrics_middleware, metrics_response, record_outcome
from notevault.app.schemas import (
    ChatRequest,
    ChatResponse,
    ConversationResponse,
    MessageModel,
    SearchHistoryResponse,
    TopicSummaryModel,
    VaultRequest,
    VaultResponse,
    VaultStatsResponse,
)
from notevault.app.settings import settings
from notevault.loaders.vault import is_markdown, load_markdown_bytes
from notevault.metadata.audit import AuditStoreError
from notevault.metadata.store import LAST_PROVIDER_KEY
from notevault.rag.embeddings import EmbeddingConfigError, EmbeddingError
from notevault.rag.llm import LLMError
from notevault.rag.pipeline import (
    ChatPipeline,
    IngestError,
    SessionBusyError,
    SessionNotReadyError,
    TurnResult,
    UnknownConfirmationError,
)
from notevault.rag.types import DocumentFile, Message, TopicSummary

logger = logging.getLogger(__name__)

app = FastAPI(title="Notevault", version="0.1.0")


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _request_id(http_request: Request) -> str:
    return getattr(http_request.state, "request_id", str(uuid.uuid4()))


def _session() -> ChatPipeline:
    """Return the chat session, mapping provider misconfiguration to 400."""
    try:
        return get_session()
    except (EmbeddingConfigError, LLMError) as exc:
        logger.error("session_config_invalid", extra={"detail": str(exc)})
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _summary_model(summary: TopicSummary | None) -> TopicSummaryModel | None:
    if summary is None:
        return None
    return TopicSummaryModel(
        summary=summary.summary,
        key_points=list(summary.key_points),
        references=list(summary.references),
        confidence=summary.confidence,
        related_topics=list(summary.related_topics),
    )


def _message_model(message: Message) -> MessageModel:
    return MessageModel(
        id=message.id,
        role=message.role.value,
        content=message.content,
        requires_external_data_confirmation=message.requires_external_data_confirmation,
        original_question=message.original_question,
        summary=_summary_model(message.summary),
    )


def _chat_response(result: TurnResult, request_id: str) -> ChatResponse:
    record_outcome(result.state)
    return ChatResponse(
        state=result.state.value,
        messages=[_message_model(message) for message in result.messages],
        error=result.error,
        request_id=request_id,
    )


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


async def _ingest(files: list[DocumentFile], request_id: str) -> VaultResponse:
    session = _session()
    try:
        report = await session.ingest(files)
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EmbeddingConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except EmbeddingError as exc:
        logger.error(
            "vault_ingest_failed",
            extra={"request_id": request_id, "detail": str(exc)},
        )
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    get_kv_store().set(LAST_PROVIDER_KEY, settings.embedding_provider)
    logger.info(
        "vault_loaded",
        extra={"request_id": request_id, "files": report.files, "chunks": report.chunks},
    )
    return VaultResponse(
        files=report.files,
        chunks=report.chunks,
        dimension=report.dimension,
        request_id=request_id,
    )


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check for uptime monitors."""
    return {"status": "ok"}


@app.post("/vault", response_model=VaultResponse)
async def load_vault(request: VaultRequest, http_request: Request) -> VaultResponse:
    """Index notes sent as JSON records, replacing the current vault."""
    files = [
        DocumentFile(
            path=item.path,
            absolute_path=item.absolute_path or item.path,
            content=item.content,
        )
        for item in request.files
    ]
    return await _ingest(files, _request_id(http_request))


@app.post("/vault/files", response_model=VaultResponse)
async def upload_vault(
    http_request: Request,
    files: list[UploadFile] = File(...),
) -> VaultResponse:
    """Index uploaded markdown files; other file types are ignored."""
    request_id = _request_id(http_request)
    documents: list[DocumentFile] = []
    for idx, upload in enumerate(files, start=1):
        filename = upload.filename or f"upload-{idx}.md"
        if not is_markdown(filename):
            logger.info(
                "upload_skipped",
                extra={"request_id": request_id, "source_name": filename},
            )
            continue
        data = await _read_upload_bytes(upload, settings.file_max_bytes)
        path = str(PurePosixPath(filename))
        documents.append(load_markdown_bytes(data, path=path))
    if not documents:
        raise HTTPException(status_code=400, detail="No markdown (.md) files provided")
    return await _ingest(documents, request_id)


@app.get("/vault/stats", response_model=VaultStatsResponse)
async def vault_stats() -> VaultStatsResponse:
    """Return counts for the loaded vault and conversation."""
    return VaultStatsResponse(**_session().stats())


@app.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, http_request: Request) -> ChatResponse:
    """Ask a question about the loaded notes."""
    request_id = _request_id(http_request)
    session = _session()
    try:
        result = await session.ask(request.question)
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SessionNotReadyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except EmbeddingConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AuditStoreError as exc:
        logger.error("search_event_failed", extra={"request_id": request_id, "detail": str(exc)})
        raise HTTPException(status_code=500, detail="Failed to record search event") from exc
    logger.info(
        "chat_turn_complete",
        extra={"request_id": request_id, "state": result.state.value},
    )
    return _chat_response(result, request_id)


@app.get("/chat/messages", response_model=ConversationResponse)
async def chat_messages() -> ConversationResponse:
    """Return the conversation log in order."""
    session = _session()
    return ConversationResponse(messages=[_message_model(message) for message in session.messages])


@app.post("/chat/confirmations/{message_id}/approve", response_model=ChatResponse)
async def approve_confirmation(message_id: str, http_request: Request) -> ChatResponse:
    """Answer a pending question from general knowledge."""
    session = _session()
    request_id = _request_id(http_request)
    try:
        result = await session.approve(message_id)
    except UnknownConfirmationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except AuditStoreError as exc:
        logger.error("search_event_failed", extra={"request_id": request_id, "detail": str(exc)})
        raise HTTPException(status_code=500, detail="Failed to record search event") from exc
    return _chat_response(result, request_id)


@app.post("/chat/confirmations/{message_id}/decline", response_model=ChatResponse)
async def decline_confirmation(message_id: str, http_request: Request) -> ChatResponse:
    """Replace a pending confirmation with the standard not-found answer."""
    session = _session()
    try:
        result = session.decline(message_id)
    except UnknownConfirmationError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SessionBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _chat_response(result, _request_id(http_request))


@app.get("/chat/history", response_model=SearchHistoryResponse)
async def search_history() -> SearchHistoryResponse:
    """Return the most recent questions asked in this deployment."""
    return SearchHistoryResponse(questions=get_search_history().items())

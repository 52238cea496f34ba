from __future__ import annotations

"""Per-session chat pipeline: ingest notes, answer questions, resolve confirmations."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

from notevault.loaders.chunking import chunk_files
from notevault.metadata.audit import (
    EXTERNAL,
    EXTERNAL_CONFIDENCE,
    MISS_CONFIDENCE,
    SEARCH,
    SUMMARY,
    SearchEvent,
    SearchEventSink,
    hash_question,
    retrieval_confidence,
)
from notevault.metadata.store import SearchHistory
from notevault.rag.classifier import FollowUp, SummaryRequest, classify_query
from notevault.rag.embeddings import (
    DEFAULT_BATCH_SIZE,
    EmbeddingError,
    EmbeddingProvider,
    embed_texts,
)
from notevault.rag.expansion import QueryExpander
from notevault.rag.guardrails import (
    DEFAULT_NOT_FOUND,
    QuestionState,
    check_answer,
    require_context,
)
from notevault.rag.llm import Answerer, LLMError
from notevault.rag.scoring import ContextBuilder, context_files
from notevault.rag.summary import SUMMARY_REPLY, summarize_topic
from notevault.rag.types import Chunk, DocumentFile, Message, Role

logger = logging.getLogger(__name__)

FOLLOW_UP_HISTORY = 6
DEFAULT_CHUNK_SIZE = 1200
DEFAULT_CHUNK_OVERLAP = 300

ERROR_MESSAGE = "申し訳ありません、エラーが発生しました: {error}"
EXTERNAL_ERROR_MESSAGE = "申し訳ありません、外部データの取得中にエラーが発生しました: {error}"


class IngestError(RuntimeError):
    """Raised when notes cannot be indexed."""
    pass


class SessionBusyError(RuntimeError):
    """Raised when a request arrives while another one is still being processed."""
    pass


class SessionNotReadyError(RuntimeError):
    """Raised when a question is asked before any notes were ingested."""
    pass


class UnknownConfirmationError(LookupError):
    """Raised when a confirmation prompt id is not in the conversation."""
    pass


class SpeechOutput(Protocol):
    def speak(self, text: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class IngestReport:
    files: int
    chunks: int
    dimension: int


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one question or confirmation; ``messages`` are the entries appended."""
    state: QuestionState
    messages: list[Message]
    error: str | None = None


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ChatPipeline:
    embedder: EmbeddingProvider
    answerer: Answerer
    context_builder: ContextBuilder = field(default_factory=ContextBuilder)
    expander: QueryExpander = field(default_factory=QueryExpander)
    chunk_size: int = DEFAULT_CHUNK_SIZE
    chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    batch_size: int = DEFAULT_BATCH_SIZE
    speech: SpeechOutput | None = None
    events: SearchEventSink | None = None
    search_history: SearchHistory | None = None
    chunks: list[Chunk] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    last_context: str | None = None
    file_count: int = 0
    _busy: bool = field(default=False, init=False, repr=False)

    @property
    def ready(self) -> bool:
        return bool(self.chunks)

    @property
    def busy(self) -> bool:
        return self._busy

    def _acquire(self) -> None:
        if self._busy:
            raise SessionBusyError("Another request is still being processed")
        self._busy = True

    async def ingest(
        self,
        files: Sequence[DocumentFile],
        on_progress: Callable[[float], None] | None = None,
    ) -> IngestReport:
        """Chunk and embed notes, replacing whatever the session held before."""
        self._acquire()
        try:
            pairs = chunk_files(files, self.chunk_size, self.chunk_overlap)
            if not pairs:
                raise IngestError("No note content to index")
            vectors = await embed_texts(
                [text for _, text in pairs],
                self.embedder,
                on_progress=on_progress,
                batch_size=self.batch_size,
            )
            dimensions = {len(vector) for vector in vectors}
            if len(dimensions) != 1:
                raise EmbeddingError(
                    f"Embedding provider returned mixed dimensions: {sorted(dimensions)}"
                )
            self.chunks = [
                Chunk(
                    path=source.path,
                    absolute_path=source.absolute_path,
                    content=text,
                    vector=tuple(vector),
                )
                for (source, text), vector in zip(pairs, vectors)
            ]
            self.file_count = len(files)
            self.messages = []
            self.last_context = None
        finally:
            self._busy = False
        report = IngestReport(
            files=len(files),
            chunks=len(self.chunks),
            dimension=dimensions.pop(),
        )
        logger.info(
            "vault_ingested",
            extra={"files": report.files, "chunks": report.chunks, "dimension": report.dimension},
        )
        return report

    def conversation_history(self, current: Message, follow_up: bool) -> list[Message]:
        """Messages sent to the answer model for ``current``."""
        if not follow_up:
            return [current]
        filtered = [
            message
            for message in self.messages
            if message.role != Role.SYSTEM and not message.is_declined_notice
        ]
        return [*filtered[-FOLLOW_UP_HISTORY:], current]

    async def ask(self, question: str) -> TurnResult:
        question = question.strip()
        if not question:
            raise ValueError("question must not be empty")
        if not self.ready:
            raise SessionNotReadyError("Load a vault before asking questions")
        self._acquire()
        try:
            return await self._ask(question)
        finally:
            self._busy = False

    async def _ask(self, question: str) -> TurnResult:
        classification = classify_query(question)
        follow_up = isinstance(classification, FollowUp)
        user_message = Message(id=_new_id(), role=Role.USER, content=question)
        history = self.conversation_history(user_message, follow_up)
        self.messages.append(user_message)
        if self.search_history is not None:
            self.search_history.add(question)

        try:
            if isinstance(classification, SummaryRequest):
                return await self._summarize(classification.topic, question, user_message)
            if follow_up and self.last_context:
                context = self.last_context
            else:
                search_query = await self.expander.expand(question, classification)
                vectors = await embed_texts([search_query], self.embedder)
                context = self.context_builder.create_context(
                    question, vectors[0], self.chunks, classification
                )
                self.last_context = context

            if not require_context(context).allowed:
                logger.info("context_rejected", extra={"follow_up": follow_up})
                self._record(SEARCH, question, MISS_CONFIDENCE, "miss")
                return self._confirmation(question, [user_message])

            files = context_files(context)
            self._record(SEARCH, question, retrieval_confidence(files), "hit", files)
            answer = await self.answerer.generate(context, history)
            verdict = check_answer(answer)
            if not verdict.allowed:
                logger.info("answer_rejected_not_found", extra={"reason": verdict.reason})
                self._record(SEARCH, question, MISS_CONFIDENCE, "miss")
                return self._confirmation(question, [user_message])
        except (EmbeddingError, LLMError) as exc:
            logger.warning("question_failed", extra={"error": str(exc)})
            reply = Message(
                id=_new_id(),
                role=Role.MODEL,
                content=ERROR_MESSAGE.format(error=exc),
            )
            self.messages.append(reply)
            return TurnResult(QuestionState.FAILED, [user_message, reply], error=str(exc))

        reply = Message(id=_new_id(), role=Role.MODEL, content=answer)
        self.messages.append(reply)
        self._speak(reply.content)
        return TurnResult(QuestionState.ANSWER_ACCEPTED, [user_message, reply])

    async def _summarize(self, topic: str, question: str, user_message: Message) -> TurnResult:
        summary = await summarize_topic(topic, self.chunks, self.answerer)
        self._record(SUMMARY, question, summary.confidence, "summary", summary.references)
        reply = Message(
            id=_new_id(),
            role=Role.MODEL,
            content=SUMMARY_REPLY.format(topic=topic),
            summary=summary,
        )
        self.messages.append(reply)
        logger.info(
            "topic_summarized",
            extra={"references": len(summary.references), "confidence": summary.confidence},
        )
        return TurnResult(QuestionState.SUMMARY, [user_message, reply])

    def _confirmation(self, question: str, appended: list[Message]) -> TurnResult:
        prompt = Message(
            id=_new_id(),
            role=Role.SYSTEM,
            content="",
            requires_external_data_confirmation=True,
            original_question=question,
        )
        self.messages.append(prompt)
        self.last_context = None
        return TurnResult(QuestionState.AWAITING_CONFIRMATION, [*appended, prompt])

    def _take_confirmation(self, message_id: str) -> Message:
        for index, message in enumerate(self.messages):
            if message.id == message_id and message.is_confirmation_prompt:
                return self.messages.pop(index)
        raise UnknownConfirmationError(f"No pending confirmation with id {message_id}")

    async def approve(self, message_id: str) -> TurnResult:
        """Answer the prompt's question from general knowledge."""
        self._acquire()
        try:
            prompt = self._take_confirmation(message_id)
            question = prompt.original_question or ""
            try:
                answer = await self.answerer.generate_external(question)
            except LLMError as exc:
                logger.warning("external_answer_failed", extra={"error": str(exc)})
                reply = Message(
                    id=_new_id(),
                    role=Role.MODEL,
                    content=EXTERNAL_ERROR_MESSAGE.format(error=exc),
                )
                self.messages.append(reply)
                return TurnResult(QuestionState.FAILED, [reply], error=str(exc))
            reply = Message(id=_new_id(), role=Role.MODEL, content=answer)
            self.messages.append(reply)
            # The reply stays in the conversation even if the event cannot be stored.
            self._record(EXTERNAL, question, EXTERNAL_CONFIDENCE, "external")
        finally:
            self._busy = False
        self._speak(reply.content)
        return TurnResult(QuestionState.EXTERNAL_ANSWER, [reply])

    def decline(self, message_id: str) -> TurnResult:
        """Replace the prompt with the standard not-found answer."""
        if self._busy:
            raise SessionBusyError("Another request is still being processed")
        self._take_confirmation(message_id)
        reply = Message(
            id=_new_id(),
            role=Role.MODEL,
            content=DEFAULT_NOT_FOUND,
            requires_external_data_confirmation=False,
        )
        self.messages.append(reply)
        return TurnResult(QuestionState.STANDARD_NOT_FOUND, [reply])

    def stats(self) -> dict[str, int | bool]:
        dimension = len(self.chunks[0].vector) if self.chunks else 0
        return {
            "files": self.file_count,
            "chunks": len(self.chunks),
            "dimension": dimension,
            "messages": len(self.messages),
            "busy": self._busy,
        }

    def _record(
        self,
        event_type: str,
        question: str,
        confidence: float,
        status: str,
        files: Sequence[str] = (),
    ) -> None:
        if self.events is None:
            return
        self.events.record_event(
            SearchEvent(
                event_type=event_type,
                question_hash=hash_question(question),
                confidence=confidence,
                status=status,
                files=tuple(files),
            )
        )

    def _speak(self, text: str) -> None:
        if self.speech is None:
            return
        try:
            self.speech.speak(text)
        except Exception as exc:
            logger.warning("speech_output_failed", extra={"error": str(exc)})

from __future__ import annotations

"""Hosted chat model answerers for grounded, external and synonym requests."""

from dataclasses import dataclass, field
import asyncio
import logging
from typing import Protocol, Sequence

import httpx

from notevault.rag.summary import SUMMARY_MAX_CHARS
from notevault.rag.types import Message, Role


class LLMError(RuntimeError):
    """Raised when LLM requests fail or responses are invalid."""
    pass


logger = logging.getLogger(__name__)

EMPTY_ANSWER = "回答を生成できませんでした。"
EXTERNAL_DISCLAIMER = "\n\n---\n※ この回答はノート以外の一般的な知識に基づいています。"

_SYSTEM_PROMPT = (
    "あなたはユーザーのノートから情報を探し出すアシスタントです。"
    "提供されたコンテキストだけに基づいて質問に答えてください。\n"
    "ルール:\n"
    "1. 各ブロックは `--- FILE: [ファイルパス] ---` で始まります。"
    "ファイルパスは最も重要な手がかりです。質問に日付や名称が含まれる場合は、"
    "まずそれを含むファイルパスのブロックを確認してください。\n"
    "2. 答えがコンテキストにある場合は、その内容を根拠として回答してください。"
    "完全な答えがなくても関連する記述があれば、"
    "「ファイル「[ファイルパス]」には次のように書かれています：[要約]」の形で事実だけを伝えてください。\n"
    "3. 推測や「かもしれません」といった不確かな表現は使わないでください。\n"
    "4. 「回答が見つかりませんでした」と答えるのは、"
    "どのブロックもパスと内容の両方で質問と無関係な場合に限ります。\n"
    "5. 外部の知識は使わないでください。\n"
    "6. 元のテキストのマークダウン書式は回答でも尊重してください。"
)

_EXTERNAL_PROMPT = (
    "以下の質問に、あなたの一般的な知識を使って回答してください。"
    "ユーザーのノートには該当する情報がありませんでした。\n\n"
    "質問: {question}\n\n"
    "※ 丁寧で分かりやすい回答をお願いします。"
)

_SYNONYM_PROMPT = (
    "「{keyword}」の日本語の同義語を3〜5個、カンマ区切りで出力してください。\n"
    "条件:\n"
    "- ビジネスや学習の文脈で自然に使われる語のみ\n"
    "- 元の語と同じ品詞・意味レベルで、文脈上置き換え可能な語\n"
    "- 略語や俗語は避ける\n"
    "例: 会社 → 企業,組織,職場,勤務先\n"
    "出力形式: 同義語1,同義語2,同義語3（説明は不要）"
)

_SUMMARY_PROMPT = (
    "以下のノートから「{topic}」について包括的に要約してください。\n\n"
    "【要求事項】\n"
    "- 要約は{max_chars}文字以内で簡潔に\n"
    "- 重要なポイントを3〜7個のリストで整理\n"
    "- 概要から詳細の順で記述\n"
    "- 具体例や実践的な情報があれば含める\n"
    "- 曖昧な情報は「詳細は文書を参照」とする\n\n"
    "【出力フォーマット】\n"
    "## 要約\n[ここに要約]\n\n"
    "## 重要ポイント\n- ポイント1\n- ポイント2\n- ポイント3\n\n"
    "【ノート】\n{context}"
)

_RELATED_TOPICS_PROMPT = (
    "以下のテキストから関連するトピックやキーワードを3〜5個抽出してください。\n"
    "出力形式: トピック1,トピック2,トピック3（カンマ区切り、説明は不要）\n\n"
    "テキスト:\n{text}"
)


def base_system_prompt() -> str:
    """Return the default system prompt for grounded answers."""
    return _SYSTEM_PROMPT


def build_user_turn(context: str, question: str) -> str:
    """Final user turn carrying the retrieved context and the question."""
    return (
        "関連性の高いテキストの断片からなるコンテキスト:\n"
        f"---\n{context}\n---\n\n"
        f"質問:\n{question}"
    )


def _split_history(history: Sequence[Message]) -> tuple[list[Message], str]:
    """Return prior turns and the current question (the last history item)."""
    if not history:
        raise LLMError("Conversation history must end with the current question")
    return list(history[:-1]), history[-1].content


class Answerer(Protocol):
    """Answer client used by the chat pipeline."""
    async def generate(self, context: str, history: Sequence[Message]) -> str:
        """Answer the last question in ``history`` using ``context``."""
        raise NotImplementedError

    async def generate_external(self, question: str) -> str:
        """Answer from general knowledge, outside the notes."""
        raise NotImplementedError

    async def generate_synonyms(self, keyword: str) -> str:
        """Return a raw comma separated synonym list for ``keyword``."""
        raise NotImplementedError

    async def generate_summary(self, topic: str, context: str) -> str:
        """Return a ``## 要約`` / ``## 重要ポイント`` reply about ``topic``."""
        raise NotImplementedError

    async def generate_related_topics(self, summary: str) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class OpenAIAnswerer:
    """LLM answerer backed by OpenAI chat completions."""
    api_key: str
    base_url: str
    model: str
    external_model: str
    max_tokens: int
    timeout: float
    system_prompt: str = _SYSTEM_PROMPT
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def _complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        payload: dict[str, object] = {"model": model, "messages": messages}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "llm_request_failed",
                extra={"provider": "openai", "model": model, "detail": type(exc).__name__},
            )
            raise LLMError(str(exc)) from exc

        if not isinstance(data, dict):
            raise LLMError("Invalid OpenAI response")
        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise LLMError("Invalid OpenAI response")
        message = choices[0].get("message") or {}
        if not isinstance(message, dict):
            raise LLMError("Invalid OpenAI response")
        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise LLMError("Invalid OpenAI response content")
        return content or ""

    async def generate(self, context: str, history: Sequence[Message]) -> str:
        """Generate a grounded answer using OpenAI chat completions."""
        previous, question = _split_history(history)
        messages = [{"role": "system", "content": self.system_prompt}]
        for item in previous:
            role = "assistant" if item.role == Role.MODEL else "user"
            messages.append({"role": role, "content": item.content})
        messages.append({"role": "user", "content": build_user_turn(context, question)})
        content = await self._complete(messages, self.model, max_tokens=self.max_tokens)
        return content.strip() or EMPTY_ANSWER

    async def generate_external(self, question: str) -> str:
        prompt = _EXTERNAL_PROMPT.format(question=question)
        content = await self._complete(
            [{"role": "user", "content": prompt}],
            self.external_model,
            temperature=0.7,
            max_tokens=self.max_tokens,
        )
        return f"{content.strip() or EMPTY_ANSWER}{EXTERNAL_DISCLAIMER}"

    async def generate_synonyms(self, keyword: str) -> str:
        prompt = _SYNONYM_PROMPT.format(keyword=keyword)
        content = await self._complete(
            [{"role": "user", "content": prompt}],
            self.model,
            temperature=0.3,
            max_tokens=100,
        )
        return content.strip()

    async def generate_summary(self, topic: str, context: str) -> str:
        prompt = _SUMMARY_PROMPT.format(topic=topic, max_chars=SUMMARY_MAX_CHARS, context=context)
        content = await self._complete(
            [{"role": "user", "content": prompt}],
            self.model,
            temperature=0.3,
            max_tokens=1500,
        )
        return content.strip()

    async def generate_related_topics(self, summary: str) -> str:
        prompt = _RELATED_TOPICS_PROMPT.format(text=summary)
        content = await self._complete(
            [{"role": "user", "content": prompt}],
            self.model,
            temperature=0.2,
            max_tokens=100,
        )
        return content.strip()


@dataclass(frozen=True)
class GeminiAnswerer:
    """LLM answerer backed by Gemini generative models."""
    api_key: str
    model: str
    max_tokens: int
    timeout: float
    system_prompt: str = _SYSTEM_PROMPT

    async def _complete(
        self,
        contents: list[dict[str, object]],
        system_instruction: str | None = None,
        generation_config: dict[str, object] | None = None,
    ) -> str:
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise LLMError("google-generativeai is required for GeminiAnswerer") from exc

        def _run() -> str:
            genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(self.model, system_instruction=system_instruction)
            response = model.generate_content(contents, generation_config=generation_config)
            return getattr(response, "text", "") or ""

        try:
            return await asyncio.wait_for(asyncio.to_thread(_run), timeout=self.timeout)
        except Exception as exc:
            raise LLMError(str(exc)) from exc

    async def generate(self, context: str, history: Sequence[Message]) -> str:
        """Generate a grounded answer using Gemini."""
        previous, question = _split_history(history)
        contents: list[dict[str, object]] = [
            {"role": item.role.value, "parts": [item.content]} for item in previous
        ]
        contents.append({"role": "user", "parts": [build_user_turn(context, question)]})
        content = await self._complete(
            contents,
            system_instruction=self.system_prompt,
            generation_config={"max_output_tokens": self.max_tokens},
        )
        return content.strip() or EMPTY_ANSWER

    async def generate_external(self, question: str) -> str:
        prompt = _EXTERNAL_PROMPT.format(question=question)
        content = await self._complete(
            [{"role": "user", "parts": [prompt]}],
            generation_config={"max_output_tokens": self.max_tokens},
        )
        return f"{content.strip() or EMPTY_ANSWER}{EXTERNAL_DISCLAIMER}"

    async def generate_synonyms(self, keyword: str) -> str:
        prompt = _SYNONYM_PROMPT.format(keyword=keyword)
        content = await self._complete(
            [{"role": "user", "parts": [prompt]}],
            generation_config={"temperature": 0.3, "max_output_tokens": 100},
        )
        return content.strip()

    async def generate_summary(self, topic: str, context: str) -> str:
        prompt = _SUMMARY_PROMPT.format(topic=topic, max_chars=SUMMARY_MAX_CHARS, context=context)
        content = await self._complete(
            [{"role": "user", "parts": [prompt]}],
            generation_config={"temperature": 0.3, "max_output_tokens": 1500},
        )
        return content.strip()

    async def generate_related_topics(self, summary: str) -> str:
        prompt = _RELATED_TOPICS_PROMPT.format(text=summary)
        content = await self._complete(
            [{"role": "user", "parts": [prompt]}],
            generation_config={"temperature": 0.2, "max_output_tokens": 100},
        )
        return content.strip()


def build_llm_answerer(
    provider: str,
    api_key: str | None,
    *,
    openai_base_url: str,
    openai_model: str,
    openai_external_model: str,
    gemini_model: str,
    max_tokens: int,
    timeout: float,
    system_prompt: str | None = None,
) -> Answerer:
    """Factory for answerers based on provider."""
    from notevault.rag.answerer import ExtractiveAnswerer

    resolved_prompt = system_prompt or _SYSTEM_PROMPT
    normalized = provider.strip().lower()
    if normalized == "hash":
        return ExtractiveAnswerer()
    if not api_key:
        raise LLMError(f"An API key is required for the {normalized or 'configured'} provider")
    if normalized == "openai":
        return OpenAIAnswerer(
            api_key=api_key,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            external_model=openai_external_model,
            max_tokens=max_tokens,
            timeout=timeout,
            system_prompt=resolved_prompt,
        )
    if normalized in {"gemini", "google"}:
        return GeminiAnswerer(
            api_key=api_key,
            model=gemini_model,
            max_tokens=max_tokens,
            timeout=timeout,
            system_prompt=resolved_prompt,
        )
    raise LLMError(f"Unsupported LLM provider: {provider}")

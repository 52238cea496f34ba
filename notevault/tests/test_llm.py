from __future__ import annotations

import json

import httpx
import pytest

from notevault.rag.answerer import ExtractiveAnswerer
from notevault.rag.llm import (
    EXTERNAL_DISCLAIMER,
    LLMError,
    OpenAIAnswerer,
    build_llm_answerer,
)
from notevault.rag.types import Message, Role

pytestmark = pytest.mark.anyio

CONTEXT = (
    "--- FILE: /vault/notes/料理.md ---\nカレーの作り方\n\n"
    "--- FILE: /vault/notes/授業.md ---\n今日の授業では微分を学んだ。\n\n"
)


def build_openai(handler, captured: list[dict]) -> OpenAIAnswerer:
    def _record(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return handler(request)

    return OpenAIAnswerer(
        api_key="sk-test",
        base_url="https://llm.test/v1",
        model="gpt-4o",
        external_model="gpt-4",
        max_tokens=256,
        timeout=5,
        transport=httpx.MockTransport(_record),
    )


def reply(content: str):
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    return _handler


async def test_openai_answerer_maps_roles_and_injects_context() -> None:
    captured: list[dict] = []
    answerer = build_openai(reply(" 微分を学びました。 "), captured)
    history = [
        Message(id="1", role=Role.USER, content="授業は？"),
        Message(id="2", role=Role.MODEL, content="微分です。"),
        Message(id="3", role=Role.USER, content="詳しく"),
    ]

    answer = await answerer.generate(CONTEXT, history)

    assert answer == "微分を学びました。"
    messages = captured[0]["messages"]
    assert [message["role"] for message in messages] == ["system", "user", "assistant", "user"]
    assert CONTEXT in messages[-1]["content"]
    assert messages[-1]["content"].endswith("詳しく")
    assert captured[0]["model"] == "gpt-4o"


async def test_openai_external_answer_has_disclaimer() -> None:
    captured: list[dict] = []
    answerer = build_openai(reply("一般的な回答です。"), captured)

    answer = await answerer.generate_external("富士山の高さは？")

    assert answer == f"一般的な回答です。{EXTERNAL_DISCLAIMER}"
    assert captured[0]["model"] == "gpt-4"


async def test_openai_http_errors_become_llm_errors() -> None:
    answerer = build_openai(lambda request: httpx.Response(500, json={}), [])

    with pytest.raises(LLMError):
        await answerer.generate_synonyms("会社")


async def test_openai_rejects_empty_choices() -> None:
    answerer = build_openai(lambda request: httpx.Response(200, json={"choices": []}), [])

    with pytest.raises(LLMError):
        await answerer.generate(CONTEXT, [Message(id="1", role=Role.USER, content="q")])


def test_build_llm_answerer_requires_key() -> None:
    options = dict(
        openai_base_url="https://llm.test/v1",
        openai_model="gpt-4o",
        openai_external_model="gpt-4",
        gemini_model="gemini-2.5-flash",
        max_tokens=256,
        timeout=5,
    )
    with pytest.raises(LLMError):
        build_llm_answerer("openai", None, **options)
    with pytest.raises(LLMError):
        build_llm_answerer("other", "key", **options)
    assert isinstance(build_llm_answerer("hash", None, **options), ExtractiveAnswerer)


async def test_extractive_answerer_quotes_best_matching_block() -> None:
    answerer = ExtractiveAnswerer()
    history = [Message(id="1", role=Role.USER, content="微分の授業")]

    answer = await answerer.generate(CONTEXT, history)

    assert answer == "ファイル「/vault/notes/授業.md」には次のように書かれています：今日の授業では微分を学んだ。"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>bad gateway</html>"),
        httpx.Response(200, json=["choices"]),
        httpx.Response(200, json={"choices": ["text"]}),
        httpx.Response(200, json={"choices": [{"message": "text"}]}),
    ],
)
async def test_openai_malformed_bodies_become_llm_errors(response: httpx.Response) -> None:
    answerer = build_openai(lambda request: response, [])

    with pytest.raises(LLMError):
        await answerer.generate(CONTEXT, [Message(id="1", role=Role.USER, content="q")])

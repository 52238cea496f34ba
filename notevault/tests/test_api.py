from __future__ import annotations

import os

import httpx
import pytest

os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["RAG_LLM_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"

from notevault.app.dependencies import get_session, reset_session_cache
from notevault.app.main import app
from notevault.metadata.audit import AuditStoreError, SearchEvent
from notevault.rag.guardrails import DEFAULT_NOT_FOUND

pytestmark = pytest.mark.anyio

VAULT = {
    "files": [
        {
            "path": "notes/7月18日 授業.md",
            "absolute_path": "/vault/notes/7月18日 授業.md",
            "content": "今日の授業では微分を学んだ。",
        },
        {"path": "notes/料理.md", "content": "カレーの作り方"},
    ]
}


def get_client() -> httpx.AsyncClient:
    reset_session_cache()
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


async def test_health_endpoint() -> None:
    async with get_client() as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]


async def test_load_vault_and_ask() -> None:
    async with get_client() as client:
        loaded = await client.post("/vault", json=VAULT)
        assert loaded.status_code == 200
        assert loaded.json()["chunks"] == 2
        assert loaded.json()["dimension"] == 256

        response = await client.post("/chat", json={"question": "7月18日の授業について教えて"})
        assert response.status_code == 200
        payload = response.json()
        assert payload["state"] == "answer_accepted"
        answer = payload["messages"][-1]
        assert answer["role"] == "model"
        assert "/vault/notes/7月18日 授業.md" in answer["content"]

        conversation = await client.get("/chat/messages")
        assert [item["role"] for item in conversation.json()["messages"]] == ["user", "model"]

        history = await client.get("/chat/history")
        assert history.json()["questions"][-1] == "7月18日の授業について教えて"

        stats = await client.get("/vault/stats")
        assert stats.json()["files"] == 2
        assert stats.json()["messages"] == 2


async def test_unanswerable_question_can_be_declined() -> None:
    async with get_client() as client:
        await client.post("/vault", json=VAULT)
        response = await client.post("/chat", json={"question": "量子力学とは何ですか"})
        payload = response.json()
        assert payload["state"] == "awaiting_confirmation"
        prompt = payload["messages"][-1]
        assert prompt["role"] == "system"
        assert prompt["requires_external_data_confirmation"] is True

        declined = await client.post(f"/chat/confirmations/{prompt['id']}/decline")
        assert declined.status_code == 200
        assert declined.json()["state"] == "standard_not_found"
        notice = declined.json()["messages"][0]
        assert notice["content"] == DEFAULT_NOT_FOUND
        assert notice["requires_external_data_confirmation"] is False

        again = await client.post(f"/chat/confirmations/{prompt['id']}/decline")
        assert again.status_code == 404


async def test_unanswerable_question_can_be_approved() -> None:
    async with get_client() as client:
        await client.post("/vault", json=VAULT)
        response = await client.post("/chat", json={"question": "量子力学とは何ですか"})
        prompt = response.json()["messages"][-1]

        approved = await client.post(f"/chat/confirmations/{prompt['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["state"] == "external_answer"
        assert "一般的な知識" in approved.json()["messages"][0]["content"]


class ExternalEventFailure:
    def record_event(self, event: SearchEvent) -> None:
        if event.event_type == "external":
            raise AuditStoreError("database is locked")


async def test_approve_event_failure_is_server_error() -> None:
    async with get_client() as client:
        await client.post("/vault", json=VAULT)
        get_session().events = ExternalEventFailure()
        response = await client.post("/chat", json={"question": "量子力学とは何ですか"})
        prompt = response.json()["messages"][-1]

        approved = await client.post(f"/chat/confirmations/{prompt['id']}/approve")
        assert approved.status_code == 500
        assert approved.json()["detail"] == "Failed to record search event"

        conversation = await client.get("/chat/messages")
        assert conversation.json()["messages"][-1]["role"] == "model"


async def test_summary_request_returns_structured_summary() -> None:
    async with get_client() as client:
        await client.post("/vault", json=VAULT)
        response = await client.post("/chat", json={"question": "授業の要約"})
        assert response.status_code == 200
        payload = response.json()
        assert payload["state"] == "summary"
        summary = payload["messages"][-1]["summary"]
        assert summary["summary"] == "今日の授業では微分を学んだ。"
        assert summary["key_points"] == ["今日の授業では微分を学んだ。"]
        assert summary["references"] == ["notes/7月18日 授業.md"]
        assert summary["confidence"] == pytest.approx(0.8)
        assert summary["related_topics"] == []

async def test_chat_before_vault_is_conflict() -> None:
    async with get_client() as client:
        response = await client.post("/chat", json={"question": "授業は？"})
    assert response.status_code == 409


async def test_empty_question_is_rejected() -> None:
    async with get_client() as client:
        response = await client.post("/chat", json={"question": ""})
    assert response.status_code == 422


async def test_vault_without_content_is_bad_request() -> None:
    async with get_client() as client:
        response = await client.post(
            "/vault", json={"files": [{"path": "a.md", "content": "   "}]}
        )
    assert response.status_code == 400


async def test_upload_markdown_files() -> None:
    files = [
        ("files", ("lesson.md", "今日の授業では微分を学んだ。".encode("utf-8"), "text/markdown")),
        ("files", ("notes.txt", b"ignored", "text/plain")),
    ]
    async with get_client() as client:
        response = await client.post("/vault/files", files=files)
    assert response.status_code == 200
    assert response.json()["files"] == 1


async def test_upload_without_markdown_is_bad_request() -> None:
    async with get_client() as client:
        response = await client.post(
            "/vault/files", files=[("files", ("notes.txt", b"text", "text/plain"))]
        )
    assert response.status_code == 400


async def test_metrics_include_retrieval_outcomes() -> None:
    async with get_client() as client:
        await client.post("/vault", json=VAULT)
        await client.post("/chat", json={"question": "量子力学とは何ですか"})
        response = await client.get("/metrics")
    assert response.status_code == 200
    assert "retrieval_outcomes_total" in response.text

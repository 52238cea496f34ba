from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from notevault.rag.llm import LLMError
from notevault.rag.summary import (
    NO_KEY_POINTS,
    SUMMARY_FAILED,
    parse_related_topics,
    parse_summary_response,
    select_relevant_chunks,
    summarize_topic,
    summary_confidence,
    summary_context,
    topic_keywords,
)
from notevault.rag.types import Chunk

pytestmark = pytest.mark.anyio


def make_chunk(path: str, content: str) -> Chunk:
    return Chunk(path=path, absolute_path=f"/v/{path}", content=content, vector=(1.0,))


@dataclass
class StubWriter:
    response: str = "## 要約\n定例会議の内容。\n\n## 重要ポイント\n- 予算を承認\n- 次回は金曜"
    related: str = "予算, 議事録、 スケジュール"
    related_error: Exception | None = None
    contexts: list[str] = field(default_factory=list)

    async def generate_summary(self, topic: str, context: str) -> str:
        self.contexts.append(context)
        return self.response

    async def generate_related_topics(self, summary: str) -> str:
        if self.related_error is not None:
            raise self.related_error
        return self.related


def test_topic_keywords_drop_short_words_and_connectors() -> None:
    assert topic_keywords("会議 について の 予算？") == ["会議", "予算"]


def test_path_matches_rank_above_content_matches() -> None:
    content_only = make_chunk("notes/雑記.md", "会議は延期になった")
    path_match = make_chunk("notes/会議.md", "議事録")
    unrelated = make_chunk("notes/料理.md", "カレー")

    selected = select_relevant_chunks([content_only, unrelated, path_match], "会議")

    assert selected == [path_match, content_only]


def test_selection_is_capped() -> None:
    chunks = [make_chunk(f"会議{index}.md", "会議") for index in range(20)]

    assert len(select_relevant_chunks(chunks, "会議")) == 15
    assert len(select_relevant_chunks(chunks, "会議", limit=3)) == 3


def test_context_blocks_are_numbered_with_paths() -> None:
    context = summary_context([make_chunk("a.md", "一"), make_chunk("b.md", "二")])

    assert context == "【文書1: a.md】\n一\n\n【文書2: b.md】\n二"


def test_summary_and_bullets_are_split_by_heading() -> None:
    summary, points = parse_summary_response(
        "## 要約\n一行目\n二行目\n\n## 重要ポイント\n- 一つ目\n• 二つ目\n・三つ目\n補足"
    )

    assert summary == "一行目\n二行目"
    assert points == ["一つ目", "二つ目", "三つ目"]


def test_unstructured_reply_falls_back_to_first_paragraph() -> None:
    summary, points = parse_summary_response("自由形式の返答。\n\n続き")

    assert summary == "自由形式の返答。"
    assert points == [NO_KEY_POINTS]


def test_empty_reply_is_reported_as_failed() -> None:
    assert parse_summary_response("") == (SUMMARY_FAILED, [NO_KEY_POINTS])


def test_related_topics_are_split_and_filtered() -> None:
    long_topic = "長" * 30
    topics = parse_related_topics(f"a，b、c, {long_topic}, d, e, f")

    assert topics == ["a", "b", "c", "d", "e"]


def test_confidence_averages_per_chunk_relevance() -> None:
    strong = make_chunk("会議.md", "会議" + "。" * 200)
    weak = make_chunk("memo.txt", "会議")

    assert summary_confidence([strong], "会議") == 1.0
    assert summary_confidence([strong, weak], "会議") == pytest.approx(0.65)
    assert summary_confidence([], "会議") == 0.0


async def test_summarize_topic_collects_references_once_per_file() -> None:
    writer = StubWriter()
    chunks = [
        make_chunk("会議.md", "会議の前半"),
        make_chunk("会議.md", "会議の後半"),
        make_chunk("料理.md", "カレー"),
    ]

    result = await summarize_topic("会議", chunks, writer)

    assert result.summary == "定例会議の内容。"
    assert result.key_points == ("予算を承認", "次回は金曜")
    assert result.references == ("会議.md",)
    assert result.related_topics == ("予算", "議事録", "スケジュール")
    assert "カレー" not in writer.contexts[0]


async def test_related_topic_failure_leaves_them_empty() -> None:
    writer = StubWriter(related_error=LLMError("quota"))

    result = await summarize_topic("会議", [make_chunk("会議.md", "会議")], writer)

    assert result.related_topics == ()
    assert result.summary == "定例会議の内容。"


async def test_no_matching_chunks_skips_the_writer() -> None:
    writer = StubWriter()

    result = await summarize_topic("天文学", [make_chunk("会議.md", "会議")], writer)

    assert result.summary == "「天文学」に関する情報が見つかりませんでした。"
    assert result.references == ()
    assert writer.contexts == []

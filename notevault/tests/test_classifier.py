from __future__ import annotations

from notevault.rag.classifier import (
    DateQuery,
    FollowUp,
    GeneralQuery,
    SummaryRequest,
    TechnicalQuery,
    classify_query,
    is_follow_up,
    summary_topic,
)


def test_date_question_is_date_query() -> None:
    classification = classify_query("9月5日の授業は？")

    assert isinstance(classification, DateQuery)
    assert classification.date_keywords == ("9月5日",)
    assert classification.is_short


def test_slash_date_is_date_query() -> None:
    assert isinstance(classify_query("9/5 の予定"), DateQuery)


def test_short_error_code_question_is_technical() -> None:
    classification = classify_query("E001は？")

    assert isinstance(classification, TechnicalQuery)
    assert classification.error_codes == ("e001",)


def test_long_error_code_question_is_general() -> None:
    classification = classify_query("センサーが E001 を表示したときの正しい対処手順を詳しく教えてください")

    assert isinstance(classification, GeneralQuery)
    assert not classification.is_short


def test_follow_up_wraps_retrieval_classification() -> None:
    classification = classify_query("詳しく教えて")

    assert isinstance(classification, FollowUp)
    assert isinstance(classification.fallback, GeneralQuery)


def test_follow_up_detection_is_anchored() -> None:
    assert is_follow_up("  なぜですか")
    assert not is_follow_up("それはなぜですか")


def test_prefixed_summary_request() -> None:
    classification = classify_query("要約: 定例会議")

    assert isinstance(classification, SummaryRequest)
    assert classification.topic == "定例会議"


def test_suffixed_summary_request_keeps_whole_topic() -> None:
    assert summary_topic("今日の授業の要約") == "今日の授業"
    assert summary_topic("プロジェクトについてまとめて") == "プロジェクト"


def test_plain_questions_are_not_summary_requests() -> None:
    assert summary_topic("9月5日の授業は？") is None
    assert not isinstance(classify_query("詳しく教えて"), SummaryRequest)

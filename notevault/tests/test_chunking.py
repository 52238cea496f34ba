from __future__ import annotations

"""Chunking behavior tests."""

import pytest

from notevault.loaders.chunking import chunk_files, chunk_text, force_split, split_sentences
from notevault.rag.types import DocumentFile


def test_short_text_is_single_chunk() -> None:
    assert chunk_text("  短いメモです。  ", max_chars=100, overlap=10) == ["短いメモです。"]


def test_empty_text_has_no_chunks() -> None:
    assert chunk_text("", max_chars=100, overlap=10) == []
    assert chunk_text(" \n\n ", max_chars=100, overlap=10) == []


def test_paragraphs_are_packed_within_limit() -> None:
    text = "\n\n".join(["a" * 40, "b" * 40, "c" * 40])

    chunks = chunk_text(text, max_chars=90, overlap=10)

    assert chunks == ["a" * 40 + "\n\n" + "b" * 40, "c" * 40]


def test_long_paragraph_falls_back_to_sentences() -> None:
    text = "今日は晴れです。明日は雨です。明後日は曇りです。"

    chunks = chunk_text(text, max_chars=12, overlap=2)

    assert chunks == ["今日は晴れです。", "明日は雨です。", "明後日は曇りです。"]


def test_sentence_terminators_are_kept() -> None:
    assert split_sentences("First. Second! 三番目？") == ["First.", "Second!", "三番目？"]


def test_oversized_sentence_is_force_split_with_overlap() -> None:
    text = "x" * 25

    chunks = chunk_text(text, max_chars=10, overlap=3)

    assert all(len(chunk) <= 10 for chunk in chunks)
    assert chunks == force_split(text, 10, 3)
    assert chunks[0] == "x" * 10
    assert len(chunks) == 4


def test_overlap_larger_than_window_still_advances() -> None:
    windows = force_split("abcdefghij", 4, 8)

    assert windows[0] == "abcd"
    assert windows[1] == "defg"


def test_chunks_never_exceed_limit() -> None:
    text = "\n\n".join(
        "This is sentence number %d in a long note. It has two parts." % idx for idx in range(40)
    )

    chunks = chunk_text(text, max_chars=120, overlap=30)

    assert len(chunks) > 1
    assert all(len(chunk) <= 120 for chunk in chunks)


def test_invalid_max_chars_raises() -> None:
    with pytest.raises(ValueError):
        chunk_text("text", max_chars=0, overlap=0)


def test_chunk_files_skips_empty_files() -> None:
    files = [
        DocumentFile(path="vault/empty.md", absolute_path="/v/empty.md", content="   "),
        DocumentFile(path="vault/note.md", absolute_path="/v/note.md", content="本文"),
    ]

    pairs = chunk_files(files, max_chars=100, overlap=10)

    assert [(source.path, text) for source, text in pairs] == [("vault/note.md", "本文")]


def _distinct(count: int, start: int) -> str:
    """Run of characters that never repeat, so overlaps can be located exactly."""
    return "".join(chr(0x4E00 + start + idx) for idx in range(count))


def _stitch(chunks: list[str], overlap: int) -> str:
    """Join chunks back together, dropping the overlap each one shares with the text so far."""
    text = ""
    for chunk in chunks:
        piece = "".join(chunk.split())
        for size in range(min(overlap, len(piece), len(text)), 0, -1):
            if text.endswith(piece[:size]):
                piece = piece[size:]
                break
        text += piece
    return text


def test_chunks_cover_document_without_gaps() -> None:
    short_sentences = f"{_distinct(6, 0)}。{_distinct(6, 10)}。"
    long_sentence = f"{_distinct(45, 100)}。"
    packed_sentences = "".join(f"{_distinct(9, 200 + idx * 10)}。" for idx in range(3))
    closing = f"{_distinct(8, 300)}。{_distinct(8, 310)}。"
    text = "\n\n".join([short_sentences, long_sentence, packed_sentences, closing])

    chunks = chunk_text(text, max_chars=20, overlap=5)

    assert chunks[0] == short_sentences
    assert chunks[1:4] == force_split(long_sentence, 20, 5)
    assert chunks[-1] == closing
    assert all(len(chunk) <= 20 for chunk in chunks)
    assert _stitch(chunks, overlap=5) == "".join(text.split())

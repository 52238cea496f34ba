from __future__ import annotations

"""Paragraph and sentence aware chunking for markdown notes."""

import re
from typing import Iterable

from notevault.rag.types import DocumentFile

_PARAGRAPH_RE = re.compile(r"\n\s*\n")
_SENTENCE_RE = re.compile(r"(?<=[.｡。!?！？])\s*")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


def _resolve_overlap(max_chars: int, overlap: int) -> int:
    """Clamp overlap so forced windows always advance."""
    if overlap < 0:
        return 0
    if overlap >= max_chars:
        return max(0, max_chars // 4)
    return overlap


def split_sentences(paragraph: str) -> list[str]:
    """Split a paragraph after Latin and Japanese sentence terminators."""
    return [part.strip() for part in _SENTENCE_RE.split(paragraph) if part.strip()]


def force_split(text: str, max_chars: int, overlap: int) -> list[str]:
    """Cut text into fixed windows that overlap by ``overlap`` characters."""
    step = max_chars - _resolve_overlap(max_chars, overlap)
    windows: list[str] = []
    start = 0
    while start < len(text):
        windows.append(text[start : start + max_chars])
        if start + max_chars >= len(text):
            break
        start += step
    return windows


def _pack_sentences(paragraph: str, max_chars: int, overlap: int) -> tuple[list[str], str]:
    """Pack sentences greedily; return finished chunks and the open buffer."""
    chunks: list[str] = []
    buffer = ""
    for sentence in split_sentences(paragraph):
        if len(buffer) + len(sentence) + len(SENTENCE_SEPARATOR) <= max_chars:
            buffer = f"{buffer}{SENTENCE_SEPARATOR}{sentence}" if buffer else sentence
            continue
        if buffer:
            chunks.append(buffer)
        if len(sentence) > max_chars:
            chunks.extend(force_split(sentence, max_chars, overlap))
            buffer = ""
        else:
            buffer = sentence
    return chunks, buffer


def chunk_text(text: str, max_chars: int, overlap: int) -> list[str]:
    """Split text into chunks of at most ``max_chars`` characters.

    Paragraphs are packed greedily. A paragraph that does not fit on its own
    is split into sentences, and a sentence that still does not fit is cut
    into overlapping windows.
    """
    if max_chars <= 0:
        raise ValueError("max_chars must be greater than zero")
    cleaned = text.replace("\r\n", "\n")
    if not cleaned.strip():
        return []
    if len(cleaned) <= max_chars:
        return [cleaned.strip()]

    chunks: list[str] = []
    buffer = ""
    for raw_paragraph in _PARAGRAPH_RE.split(cleaned):
        paragraph = raw_paragraph.strip()
        if not paragraph:
            continue
        if len(buffer) + len(paragraph) + len(PARAGRAPH_SEPARATOR) <= max_chars:
            buffer = f"{buffer}{PARAGRAPH_SEPARATOR}{paragraph}" if buffer else paragraph
            continue
        if buffer:
            chunks.append(buffer)
        if len(paragraph) > max_chars:
            packed, buffer = _pack_sentences(paragraph, max_chars, overlap)
            chunks.extend(packed)
        else:
            buffer = paragraph
    if buffer:
        chunks.append(buffer)
    return [chunk.strip() for chunk in chunks if chunk.strip()]


def chunk_files(
    files: Iterable[DocumentFile], max_chars: int, overlap: int
) -> list[tuple[DocumentFile, str]]:
    """Chunk every non-empty file, keeping input order."""
    pairs: list[tuple[DocumentFile, str]] = []
    for document in files:
        if not document.content or not document.content.strip():
            continue
        for piece in chunk_text(document.content, max_chars=max_chars, overlap=overlap):
            pairs.append((document, piece))
    return pairs

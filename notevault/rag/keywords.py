from __future__ import annotations

"""Keyword extraction with protection for dates, error codes and numbers."""

import re
import unicodedata

# Tried in order; dates must come before the bare number pattern.
PROTECTED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\d{1,2}月\d{1,2}日"),
    re.compile(r"\d{4}年\d{1,2}月\d{1,2}日"),
    re.compile(r"\d{4}/\d{1,2}/\d{1,2}|\d{1,2}/\d{1,2}"),
    re.compile(r"\d{4}-\d{1,2}-\d{1,2}|\d{1,2}-\d{1,2}"),
    re.compile(r"\d{4}\.\d{1,2}\.\d{1,2}|\d{1,2}\.\d{1,2}"),
    re.compile(r"[a-zA-Z]+\d+"),
    re.compile(r"[a-zA-Z]+-\d+"),
    re.compile(r"[a-zA-Z]+_\d+"),
    re.compile(r"\d+\.?\d*"),
)

STOPWORDS: frozenset[str] = frozenset(
    {
        "の", "に", "を", "が", "で", "て", "は", "ます", "です", "ある", "いる", "する",
        "から", "まで", "とも", "として", "もの", "こと", "という", "といった", "について",
        "関して", "対して", "ため", "よう", "みたい", "らしい", "なら", "そして", "また",
        "しかし", "それで", "なお", "および", "あるいは", "または", "かつ",
        "ください", "おしえ", "教え", "何", "どの", "どこ", "誰", "いつ",
        "、", "。", "「", "」", "（", "）", "(", ")", "?", "!", ",", "？", "！",
    }
)


def _is_hiragana(char: str) -> bool:
    return "ぁ" <= char <= "ゟ"


def _is_content(char: str) -> bool:
    """Letters, digits and kanji/katakana, but not hiragana or punctuation."""
    return char.isalnum() and not _is_hiragana(char)


_PUNCTUATION_STOPWORDS = tuple(word for word in STOPWORDS if not any(ch.isalnum() for ch in word))
_PARTICLE_STOPWORDS = tuple(
    sorted(
        (word for word in STOPWORDS if all(_is_hiragana(ch) for ch in word)),
        key=len,
        reverse=True,
    )
)
_WORD_STOPWORDS = tuple(
    sorted(
        (
            word
            for word in STOPWORDS
            if word not in _PUNCTUATION_STOPWORDS and word not in _PARTICLE_STOPWORDS
        ),
        key=len,
        reverse=True,
    )
)

_PUNCTUATION_RE = re.compile("|".join(re.escape(word) for word in _PUNCTUATION_STOPWORDS))
# Kanji stopwords only count when they are not part of a longer kanji compound.
_WORD_STOPWORD_RE = re.compile(
    r"(?<![一-鿿々])(?:"
    + "|".join(re.escape(word) for word in _WORD_STOPWORDS)
    + r")(?![一-鿿々])"
)
_PARTICLE_RUN_RE = re.compile(
    "(?:" + "|".join(re.escape(word) for word in _PARTICLE_STOPWORDS) + ")+"
)
_HIRAGANA_RUN_RE = re.compile(r"[ぁ-ゟ]+")

MIN_FRAGMENT_CHARS = 2

# Placeholders use private-use code points so no protected pattern can match them.
_PLACEHOLDER_OPEN = "\ue000"
_PLACEHOLDER_CLOSE = "\ue001"
_PLACEHOLDER_BASE = 0xE100
_PLACEHOLDER_RE = re.compile(f"{_PLACEHOLDER_OPEN}(.){_PLACEHOLDER_CLOSE}")

_ERROR_CODE_RE = re.compile(r"^[a-zA-Z]+\d+$")
_NUMERIC_RE = re.compile(r"^\d+\.?\d*$")


def normalize(text: str) -> str:
    """NFKC-normalize and lowercase text for matching."""
    return unicodedata.normalize("NFKC", text).lower()


def is_date_keyword(keyword: str) -> bool:
    return "月" in keyword and "日" in keyword


def is_error_code(keyword: str) -> bool:
    return bool(_ERROR_CODE_RE.match(keyword))


def is_numeric(keyword: str) -> bool:
    return bool(_NUMERIC_RE.match(keyword))


def _placeholder(index: int) -> str:
    return f" {_PLACEHOLDER_OPEN}{chr(_PLACEHOLDER_BASE + index)}{_PLACEHOLDER_CLOSE} "


def protect_tokens(text: str) -> tuple[str, list[str]]:
    """Replace structured tokens with placeholders; return text and originals."""
    originals: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        originals.append(match.group(0))
        return _placeholder(len(originals) - 1)

    for pattern in PROTECTED_PATTERNS:
        text = pattern.sub(_replace, text)
    return text, originals


def restore_token(token: str, originals: list[str]) -> str:
    """Map a placeholder token back to its original text."""
    match = _PLACEHOLDER_RE.fullmatch(token)
    if not match:
        return token
    index = ord(match.group(1)) - _PLACEHOLDER_BASE
    if 0 <= index < len(originals):
        return originals[index]
    return token


def _edge_particle(run: str, at_end: bool) -> str | None:
    """Longest particle at one end of ``run`` that leaves a whole word behind."""
    for particle in _PARTICLE_STOPWORDS:
        found = run.endswith(particle) if at_end else run.startswith(particle)
        if found and len(run) - len(particle) >= MIN_FRAGMENT_CHARS:
            return particle
    return None


def _strip_particles(match: re.Match[str]) -> str:
    run = match.group(0)
    if _PARTICLE_RUN_RE.fullmatch(run):
        return " "
    text = match.string
    before = text[match.start() - 1] if match.start() > 0 else ""
    after = text[match.end()] if match.end() < len(text) else ""
    prefix = suffix = ""
    if _is_content(after):
        particle = _edge_particle(run, at_end=True)
        if particle:
            run = run[: -len(particle)]
            suffix = " "
    if _is_content(before):
        particle = _edge_particle(run, at_end=False)
        if particle:
            run = run[len(particle) :]
            prefix = " "
    return f"{prefix}{run}{suffix}"


def _strip_stopwords(segment: str) -> str:
    """Drop punctuation, standalone stopwords and particles at word boundaries.

    A hiragana run made only of stopwords is removed. Otherwise a single
    particle is peeled from an end that touches a kanji, katakana or latin
    word, so ``にんじんのレシピ`` keeps ``にんじん`` intact.
    """
    segment = _PUNCTUATION_RE.sub(" ", segment)
    segment = _WORD_STOPWORD_RE.sub(" ", segment)
    return _HIRAGANA_RUN_RE.sub(_strip_particles, segment)


def remove_stopwords(text: str) -> str:
    """Remove stopwords everywhere except inside placeholders."""
    pieces: list[str] = []
    last = 0
    for match in _PLACEHOLDER_RE.finditer(text):
        pieces.append(_strip_stopwords(text[last : match.start()]))
        pieces.append(match.group(0))
        last = match.end()
    pieces.append(_strip_stopwords(text[last:]))
    return "".join(pieces)


def extract_keywords(question: str) -> list[str]:
    """Extract search keywords from a question.

    Dates, error codes and numbers survive stopword removal verbatim. A
    non-empty question always yields at least one keyword.
    """
    normalized = normalize(question)
    protected, originals = protect_tokens(normalized)
    filtered = remove_stopwords(protected)
    keywords = [restore_token(token, originals) for token in filtered.split() if token]
    if not keywords and question.strip():
        return [normalized]
    return keywords

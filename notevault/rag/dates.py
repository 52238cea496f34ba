from __future__ import annotations

"""Written variations of month/day date expressions."""

import re
from datetime import date

_MONTH_DAY_RE = re.compile(r"(\d{1,2})月(\d{1,2})日")


def _year_forms(year: int, month: str, day: str) -> list[str]:
    return [
        f"{year}年{month}月{day}日",
        f"{year}/{month}/{day}",
        f"{year}-{month}-{day}",
        f"{year}.{month}.{day}",
    ]


def generate_date_variations(date_str: str, today: date | None = None) -> list[str]:
    """Return the de-duplicated written forms of a ``N月N日`` expression.

    Notes name files and write dates inconsistently ("9月5日", "09/05",
    "2025-09-05" ...), so retrieval matches any of these forms. Year-prefixed
    forms use the current and the previous calendar year.
    """
    variations: dict[str, None] = {date_str: None}
    match = _MONTH_DAY_RE.search(date_str)
    if not match:
        return list(variations)
    month, day = match.group(1), match.group(2)
    padded_month, padded_day = month.zfill(2), day.zfill(2)
    forms: list[str] = []
    for m, d in ((month, day), (padded_month, padded_day)):
        forms.extend([f"{m}月{d}日", f"{m}/{d}", f"{m}-{d}", f"{m}.{d}"])
    current_year = (today or date.today()).year
    for year in (current_year, current_year - 1):
        for m, d in ((month, day), (padded_month, padded_day)):
            forms.extend(_year_forms(year, m, d))
    for form in forms:
        variations.setdefault(form, None)
    return list(variations)


def today_date_forms(today: date | None = None) -> list[str]:
    """Written forms of today's date used to expand "today" questions."""
    current = today or date.today()
    month, day, year = current.month, current.day, current.year
    return [
        f"{month}.{day}",
        f"{month}-{day}",
        f"{month}月{day}日",
        f"{year}-{month:02d}-{day:02d}",
        f"{year}年{month}月{day}日",
        f"{year}{month:02d}{day:02d}",
    ]

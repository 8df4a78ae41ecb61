"""Deadline, application-start and publication date extraction."""

import re
from dataclasses import dataclass
from datetime import date
from typing import Final

_DATE = r"\d{4}\s*(?:[.\-/]|년)\s*\d{1,2}\s*(?:[.\-/]|월)\s*\d{1,2}\s*일?"
_DATE_OPT_YEAR = r"(?:\d{4}\s*(?:[.\-/]|년)\s*)?\d{1,2}\s*(?:[.\-/]|월)\s*\d{1,2}\s*일?"

DATE_RE: Final = re.compile(r"(\d{4})\s*(?:[.\-/]|년)\s*(\d{1,2})\s*(?:[.\-/]|월)\s*(\d{1,2})")
MONTH_DAY_RE: Final = re.compile(r"(?:(\d{4})\s*(?:[.\-/]|년)\s*)?(\d{1,2})\s*(?:[.\-/]|월)\s*(\d{1,2})")

DEADLINE_LABELS: Final[list[str]] = [
    "신청마감일", "지원마감일", "모집마감일", "접수마감일", "마감일",
    "신청기한", "접수기한", "제출마감", "마감일시",
]
START_LABELS: Final[list[str]] = [
    "접수시작일", "신청시작일", "접수개시일", "접수일", "신청일", "모집일",
]
PUBLISHED_LABELS: Final[list[str]] = ["공고일", "공고일자", "게시일"]
PERIOD_LABELS: Final[list[str]] = ["접수기간", "신청기간", "모집기간", "공모기간", "접수일정", "신청접수"]


def _label_alternation(labels: list[str]) -> str:
    # Allow optional spaces between syllables ("접수 마감일")
    return "|".join(r"\s*".join(map(re.escape, label)) for label in sorted(labels, key=len, reverse=True))


def _label_date_re(labels: list[str]) -> re.Pattern:
    return re.compile(rf"(?:{_label_alternation(labels)})\s*[:：)\]]?[^\d\n]{{0,15}}({_DATE})")


DEADLINE_RE: Final = _label_date_re(DEADLINE_LABELS)
START_RE: Final = _label_date_re(START_LABELS)
PUBLISHED_RE: Final = _label_date_re(PUBLISHED_LABELS)
PERIOD_RE: Final = re.compile(
    rf"(?:{_label_alternation(PERIOD_LABELS)})\s*[:：)\]]?[^\d\n]{{0,15}}"
    rf"(?P<start>{_DATE})[^~～\n]{{0,25}}?[~～]\s*(?P<end>{_DATE_OPT_YEAR})"
)


@dataclass
class DateMatch:
    value: date
    pattern_id: str
    matched_text: str


def parse_korean_date(value: str | None) -> date | None:
    """Parse ``2025.01.31``, ``2025-01-31``, ``2025/1/31`` or ``2025년 1월 31일``."""
    if not value:
        return None
    m = DATE_RE.search(value)
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def _parse_end(value: str, start: date) -> date | None:
    m = MONTH_DAY_RE.search(value)
    if not m:
        return None
    year = int(m.group(1)) if m.group(1) else start.year
    try:
        end = date(year, int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None
    if not m.group(1) and end < start:
        try:
            end = end.replace(year=end.year + 1)
        except ValueError:
            return None
    return end


def _first_labelled(regex: re.Pattern, text: str, pattern_id: str) -> DateMatch | None:
    for m in regex.finditer(text):
        parsed = parse_korean_date(m.group(1))
        if parsed:
            return DateMatch(parsed, pattern_id, m.group(0))
    return None


def extract_application_period(text: str) -> tuple[DateMatch, DateMatch] | None:
    """``접수기간 : 2025.01.10 ~ 2025.02.10`` style ranges (end year optional)."""
    for m in PERIOD_RE.finditer(text or ""):
        start = parse_korean_date(m.group("start"))
        if not start:
            continue
        end = _parse_end(m.group("end"), start)
        if end:
            return (
                DateMatch(start, "period-start", m.group(0)),
                DateMatch(end, "period-end", m.group(0)),
            )
    return None


def extract_deadline(text: str) -> DateMatch | None:
    if not text:
        return None
    labelled = _first_labelled(DEADLINE_RE, text, "deadline-label")
    if labelled:
        return labelled
    period = extract_application_period(text)
    return period[1] if period else None


def extract_application_start(text: str) -> DateMatch | None:
    if not text:
        return None
    period = extract_application_period(text)
    if period:
        return period[0]
    return _first_labelled(START_RE, text, "start-label")


def extract_published_date(text: str, today: date | None = None) -> DateMatch | None:
    """Publication date; a date after ``today`` is treated as a misread."""
    match = _first_labelled(PUBLISHED_RE, text or "", "published-label")
    if match and match.value > (today or date.today()):
        return None
    return match

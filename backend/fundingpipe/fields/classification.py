"""Announcement type classification — only R&D projects become programs."""

import enum
import logging
import re
from collections import Counter
from typing import Final

logger = logging.getLogger(__name__)


class AnnouncementType(str, enum.Enum):
    R_D_PROJECT = "R_D_PROJECT"
    SURVEY = "SURVEY"
    EVENT = "EVENT"
    NOTICE = "NOTICE"
    UNKNOWN = "UNKNOWN"


RD_PROJECT_PATTERNS: Final[list[re.Pattern]] = [
    re.compile(p, re.IGNORECASE) for p in [
        r"연구과제",
        r"과제\s*공고",
        r"과제선정",
        r"신규\s*과제",
        r"연구개발",
        r"R&D",
        r"(?<![A-Za-z])RD(?![A-Za-z])",
        r"지원사업",
        r"기술개발",
        r"개발과제",
        r"연구지원",
        r"사업화\s*지원",
        r"프로젝트.*공고",
        r"연구.*사업",
        r"과학.*연구",
        r"신규\s*지원",
        r"연구센터.*조성",
        r"창업기업.*지원",
    ]
]

# Checked against the description only, after the title R&D check
DESCRIPTION_EXCLUSIONS: Final[list[tuple[re.Pattern, AnnouncementType]]] = [
    (re.compile(r"인력.*파견|파견.*인력"), AnnouncementType.NOTICE),
    (re.compile(r"(?:우수성과|시상|수상|포상).*(?:모집|선정)"), AnnouncementType.EVENT),
    (re.compile(r"(?:연합|컨소시엄).*(?:구성원|참여기업|참여기관).*(?:모집|선정)"), AnnouncementType.NOTICE),
    (re.compile(r"추천기업.*모집|추천.*모집"), AnnouncementType.NOTICE),
]

SURVEY_PATTERNS: Final[list[re.Pattern]] = [
    re.compile(p) for p in [r"수요\s*조사", r"설문", r"의견\s*수렴", r"참여기업\s*모집", r"기술\s*수요"]
]
EVENT_PATTERNS: Final[list[re.Pattern]] = [
    re.compile(p) for p in [r"설명회", r"세미나", r"행사", r"워크샵", r"워크숍", r"컨퍼런스", r"간담회", r"발표회"]
]
STRONG_RD_RE: Final = re.compile(r"연구과제|과제공고|R&D\s*지원사업|기술개발\s*지원", re.IGNORECASE)
NOTICE_PATTERNS: Final[list[re.Pattern]] = [
    re.compile(p) for p in [
        r"^\s*\[?\s*공지",
        r"시행\s*계획\s*(?:안내|공고)",
        r"추진\s*계획",
        r"실행\s*계획",
        r"과제\s*추진",
        r"변경\s*사항",
        r"일정\s*변경",
        r"연기",
        r"온라인.*시스템.*안내",
        r"제출.*시스템",
        r"입찰.*공고",
        r"용역.*입찰",
        r"정책연구.*입찰",
    ]
]

# IITP type-1 board only carries technology demand surveys
SURVEY_URL_PATTERNS: Final[list[tuple[str, str]]] = [
    ("iitp", "/anno/01/"),
]


def classify_announcement(
    title: str,
    description: str = "",
    url: str = "",
    source: str | None = None,
) -> AnnouncementType:
    """Classify by title, description and listing URL.

    Order: source URL rules, R&D patterns in the title, exclusions in the
    description, R&D patterns in title + description, then survey, event and
    notice patterns. Anything unmatched defaults to R_D_PROJECT because hiding
    a real funding opportunity costs more than showing a notice.
    """
    title = title or ""
    description = description or ""

    for source_code, fragment in SURVEY_URL_PATTERNS:
        if source == source_code and fragment in (url or ""):
            return AnnouncementType.SURVEY

    if any(p.search(title) for p in RD_PROJECT_PATTERNS):
        return AnnouncementType.R_D_PROJECT

    for pattern, announcement_type in DESCRIPTION_EXCLUSIONS:
        if pattern.search(description):
            logger.debug(f"Description exclusion {pattern.pattern!r} -> {announcement_type.value}: {title[:60]}")
            return announcement_type

    combined = f"{title} {description}"
    if any(p.search(combined) for p in RD_PROJECT_PATTERNS):
        return AnnouncementType.R_D_PROJECT

    if any(p.search(combined) for p in SURVEY_PATTERNS):
        return AnnouncementType.SURVEY

    if any(p.search(combined) for p in EVENT_PATTERNS):
        return AnnouncementType.EVENT

    if title.rstrip().endswith("안내") and not STRONG_RD_RE.search(combined):
        return AnnouncementType.NOTICE

    if any(p.search(combined) for p in NOTICE_PATTERNS):
        return AnnouncementType.NOTICE

    return AnnouncementType.R_D_PROJECT


def classification_stats(items: list[dict]) -> dict[str, int]:
    counts = Counter(
        classify_announcement(
            item.get("title", ""), item.get("description", ""), item.get("url", ""), item.get("source"),
        ).value
        for item in items
    )
    return {t.value: counts.get(t.value, 0) for t in AnnouncementType}

"""Industry sector tagging scoped to the subject sections of an announcement.

Keywords are only counted in the title and in sections that describe what is
being funded (사업목적, 지원내용, 지원대상 ...). Boilerplate sections such as
제출서류 or 문의처 mention unrelated terms ("디지털 서명", "전자 제출") and are
never scanned.
"""

import re
from dataclasses import dataclass, field
from typing import Final

INDUSTRY_SECTORS: Final[list[str]] = [
    "ICT", "MANUFACTURING", "BIO_HEALTH", "ENERGY", "ENVIRONMENT", "AGRICULTURE",
    "MARINE", "CONSTRUCTION", "TRANSPORTATION", "DEFENSE", "CULTURAL",
]


def _latin(word: str) -> str:
    # Python's \b treats Hangul as word characters, so bound Latin acronyms explicitly
    return rf"(?<![A-Za-z]){re.escape(word)}(?![A-Za-z])"


def _terms(*words: str) -> list[re.Pattern]:
    patterns = []
    for word in words:
        if word.isascii():
            patterns.append(re.compile(_latin(word), re.IGNORECASE))
        else:
            patterns.append(re.compile(r"\s*".join(map(re.escape, word))))
    return patterns


# Generic terms (정보통신, IT, 디지털) appear in nearly every announcement and are
# deliberately not evidence for ICT.
SECTOR_KEYWORDS: Final[dict[str, list[re.Pattern]]] = {
    "ICT": _terms(
        "ICT", "AI", "인공지능", "머신러닝", "딥러닝", "자연어처리", "컴퓨터비전",
        "소프트웨어", "SW", "클라우드", "SaaS", "빅데이터", "데이터베이스",
        "5G", "6G", "이동통신", "광통신", "정보보안", "사이버보안", "블록체인",
        "IoT", "사물인터넷", "엣지컴퓨팅", "양자컴퓨팅", "양자정보", "메타버스",
    ),
    "MANUFACTURING": _terms(
        "제조", "스마트공장", "스마트제조", "로봇", "협동로봇", "신소재", "소재부품",
        "반도체", "디스플레이", "전자부품", "정밀기계", "공작기계", "뿌리산업",
    ),
    "BIO_HEALTH": _terms(
        "바이오", "생명공학", "의료기기", "진단기기", "헬스케어", "제약", "신약",
        "의약품", "세포치료", "줄기세포", "디지털헬스", "원격의료", "임상",
    ),
    "ENERGY": _terms(
        "에너지", "신재생", "태양광", "풍력", "수소", "연료전지", "ESS",
        "이차전지", "배터리", "스마트그리드", "전력망",
    ),
    "ENVIRONMENT": _terms(
        "친환경", "탄소중립", "탄소저감", "CCUS", "폐기물", "자원순환", "재활용",
        "수처리", "대기오염", "미세먼지", "기후변화",
    ),
    "AGRICULTURE": _terms(
        "농업", "농림", "농식품", "스마트팜", "식물공장", "푸드테크", "축산", "종자",
    ),
    "MARINE": _terms(
        "해양", "수산", "스마트양식", "양식업", "조선", "선박", "해양플랜트", "항만", "해운",
    ),
    "CONSTRUCTION": _terms(
        "건설", "건축", "토목", "BIM", "모듈러", "교량", "터널", "시설물",
    ),
    "TRANSPORTATION": _terms(
        "자율주행", "모빌리티", "UAM", "드론", "항공", "우주", "위성", "철도",
        "전기차", "ADAS",
    ),
    "DEFENSE": _terms(
        "국방", "방산", "방위산업", "무기체계", "군수", "전력증강", "국방기술",
    ),
    "CULTURAL": _terms(
        "문화기술", "콘텐츠", "게임", "웹툰", "애니메이션", "OTT", "방송", "영상",
        "문화유산", "관광", "스포츠",
    ),
}

SUBJECT_HEADERS: Final[list[str]] = [
    "사업목적", "사업개요", "사업내용", "지원내용", "지원분야", "지원대상", "신청자격",
    "연구내용", "과제명", "공모분야", "모집분야", "기술분야", "과제개요",
]
BOILERPLATE_HEADERS: Final[list[str]] = [
    "제출서류", "신청서류", "구비서류", "유의사항", "문의처", "기타", "첨부",
    "접수방법", "신청방법", "접수기간", "평가절차",
]

_BULLET = r"(?:[□■○●◎◇◆▶▷※\-*·•]|\d{1,2}\s*[.)]|[가-하]\s*[.)]|\(\s*\d{1,2}\s*\)|[①-⑳]|[IVX]+\.)?"


def _header_alternation(headers: list[str]) -> str:
    return "|".join(r"\s*".join(map(re.escape, h)) for h in sorted(headers, key=len, reverse=True))


SECTION_HEADER_RE: Final = re.compile(
    rf"^[ \t]*{_BULLET}[ \t]*(?:(?P<subject>{_header_alternation(SUBJECT_HEADERS)})"
    rf"|(?P<boilerplate>{_header_alternation(BOILERPLATE_HEADERS)}))"
    rf"(?:\s*(?:사항|안내|파일|서류|문서))?(?![가-힣])",
    re.MULTILINE,
)

TITLE_HIT_POINTS: Final[int] = 2
SCOPED_HIT_POINTS: Final[int] = 1
TAG_THRESHOLD: Final[int] = 2

# Cross-sector relevance scores (0.0-1.0)
INDUSTRY_RELEVANCE: Final[dict[str, dict[str, float]]] = {
    "ICT": {
        "ICT": 1.0, "MANUFACTURING": 0.8, "BIO_HEALTH": 0.7, "ENERGY": 0.7,
        "ENVIRONMENT": 0.6, "AGRICULTURE": 0.7, "MARINE": 0.6, "CONSTRUCTION": 0.6,
        "TRANSPORTATION": 0.8, "DEFENSE": 0.2, "CULTURAL": 0.8,
    },
    "MANUFACTURING": {
        "ICT": 0.8, "MANUFACTURING": 1.0, "BIO_HEALTH": 0.5, "ENERGY": 0.6,
        "ENVIRONMENT": 0.5, "AGRICULTURE": 0.5, "MARINE": 0.6, "CONSTRUCTION": 0.6,
        "TRANSPORTATION": 0.7, "DEFENSE": 0.4, "CULTURAL": 0.3,
    },
    "BIO_HEALTH": {
        "ICT": 0.7, "MANUFACTURING": 0.5, "BIO_HEALTH": 1.0, "ENERGY": 0.3,
        "ENVIRONMENT": 0.5, "AGRICULTURE": 0.6, "MARINE": 0.5, "CONSTRUCTION": 0.3,
        "TRANSPORTATION": 0.4, "DEFENSE": 0.1, "CULTURAL": 0.2,
    },
    "ENERGY": {
        "ICT": 0.7, "MANUFACTURING": 0.6, "BIO_HEALTH": 0.3, "ENERGY": 1.0,
        "ENVIRONMENT": 0.8, "AGRICULTURE": 0.4, "MARINE": 0.5, "CONSTRUCTION": 0.5,
        "TRANSPORTATION": 0.7, "DEFENSE": 0.1, "CULTURAL": 0.2,
    },
    "ENVIRONMENT": {
        "ICT": 0.6, "MANUFACTURING": 0.5, "BIO_HEALTH": 0.5, "ENERGY": 0.8,
        "ENVIRONMENT": 1.0, "AGRICULTURE": 0.6, "MARINE": 0.6, "CONSTRUCTION": 0.6,
        "TRANSPORTATION": 0.6, "DEFENSE": 0.0, "CULTURAL": 0.3,
    },
    "AGRICULTURE": {
        "ICT": 0.7, "MANUFACTURING": 0.5, "BIO_HEALTH": 0.6, "ENERGY": 0.4,
        "ENVIRONMENT": 0.6, "AGRICULTURE": 1.0, "MARINE": 0.5, "CONSTRUCTION": 0.3,
        "TRANSPORTATION": 0.3, "DEFENSE": 0.0, "CULTURAL": 0.2,
    },
    "MARINE": {
        "ICT": 0.6, "MANUFACTURING": 0.6, "BIO_HEALTH": 0.5, "ENERGY": 0.5,
        "ENVIRONMENT": 0.6, "AGRICULTURE": 0.5, "MARINE": 1.0, "CONSTRUCTION": 0.4,
        "TRANSPORTATION": 0.5, "DEFENSE": 0.3, "CULTURAL": 0.2,
    },
    "CONSTRUCTION": {
        "ICT": 0.6, "MANUFACTURING": 0.6, "BIO_HEALTH": 0.3, "ENERGY": 0.5,
        "ENVIRONMENT": 0.6, "AGRICULTURE": 0.3, "MARINE": 0.4, "CONSTRUCTION": 1.0,
        "TRANSPORTATION": 0.5, "DEFENSE": 0.2, "CULTURAL": 0.4,
    },
    "TRANSPORTATION": {
        "ICT": 0.8, "MANUFACTURING": 0.7, "BIO_HEALTH": 0.4, "ENERGY": 0.7,
        "ENVIRONMENT": 0.6, "AGRICULTURE": 0.3, "MARINE": 0.5, "CONSTRUCTION": 0.5,
        "TRANSPORTATION": 1.0, "DEFENSE": 0.3, "CULTURAL": 0.5,
    },
    "DEFENSE": {
        "ICT": 0.2, "MANUFACTURING": 0.4, "BIO_HEALTH": 0.1, "ENERGY": 0.1,
        "ENVIRONMENT": 0.0, "AGRICULTURE": 0.0, "MARINE": 0.3, "CONSTRUCTION": 0.2,
        "TRANSPORTATION": 0.3, "DEFENSE": 1.0, "CULTURAL": 0.1,
    },
    "CULTURAL": {
        "ICT": 0.3, "MANUFACTURING": 0.2, "BIO_HEALTH": 0.2, "ENERGY": 0.2,
        "ENVIRONMENT": 0.3, "AGRICULTURE": 0.2, "MARINE": 0.2, "CONSTRUCTION": 0.4,
        "TRANSPORTATION": 0.5, "DEFENSE": 0.1, "CULTURAL": 1.0,
    },
}
DEFAULT_RELEVANCE: Final[float] = 0.3


@dataclass
class SectorScore:
    sector: str
    score: int = 0
    keywords: list[str] = field(default_factory=list)


@dataclass
class IndustryResult:
    tags: list[str]
    keywords: list[str]
    scores: dict[str, int]
    scoped_text: str

    @property
    def primary(self) -> str | None:
        return self.tags[0] if self.tags else None


def scope_subject_sections(text: str) -> str:
    """Text of the subject sections, or everything outside boilerplate.

    When no known section header is present the whole text is returned.
    """
    if not text:
        return ""
    headers = list(SECTION_HEADER_RE.finditer(text))
    if not headers:
        return text

    subject_parts = []
    non_boilerplate_parts = [text[:headers[0].start()]]
    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
        body = text[header.start():end]
        if header.group("subject"):
            subject_parts.append(body)
            non_boilerplate_parts.append(body)

    parts = subject_parts or non_boilerplate_parts
    return "\n".join(p.strip() for p in parts if p.strip())


def _matched_terms(patterns: list[re.Pattern], text: str) -> list[str]:
    terms = []
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            term = re.sub(r"\s+", "", m.group(0))
            if term not in terms:
                terms.append(term)
    return terms


def tag_industries(title: str, text: str) -> IndustryResult:
    """Score every sector on the title and scoped body; tag those at threshold."""
    scoped = scope_subject_sections(text or "")
    scores = []
    for sector in INDUSTRY_SECTORS:
        patterns = SECTOR_KEYWORDS[sector]
        title_terms = _matched_terms(patterns, title or "")
        body_terms = _matched_terms(patterns, scoped)
        result = SectorScore(
            sector=sector,
            score=TITLE_HIT_POINTS * len(title_terms) + SCOPED_HIT_POINTS * len(body_terms),
            keywords=title_terms + [t for t in body_terms if t not in title_terms],
        )
        scores.append(result)

    tagged = sorted(
        (s for s in scores if s.score >= TAG_THRESHOLD),
        key=lambda s: -s.score,
    )
    keywords = []
    for s in tagged:
        keywords.extend(k for k in s.keywords if k not in keywords)

    return IndustryResult(
        tags=[s.sector for s in tagged],
        keywords=keywords,
        scores={s.sector: s.score for s in scores if s.score},
        scoped_text=scoped,
    )


def industry_relevance(sector_a: str | None, sector_b: str | None) -> float:
    if not sector_a or not sector_b:
        return DEFAULT_RELEVANCE
    if sector_a == sector_b:
        return 1.0
    return INDUSTRY_RELEVANCE.get(sector_a, {}).get(sector_b, DEFAULT_RELEVANCE)

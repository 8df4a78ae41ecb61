"""Budget extraction from Korean announcement text.

Amounts are returned as integer KRW. The unit 억 is 10^8 won; 3억원 is
300,000,000 won, never 3,000,000,000.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Final

UNIT_MULTIPLIERS: Final[dict[str, int]] = {
    "조": 10**12,
    "억": 10**8,
    "천만": 10**7,
    "백만": 10**6,
    "만": 10**4,
}

EOK: Final[int] = UNIT_MULTIPLIERS["억"]

# Accepted range, in 억: 0 < amount < 100,000 (10조)
MAX_EOK: Final[int] = 100_000

_NUM = r"(\d[\d,]*(?:\.\d+)?)"
_UNIT = r"(조|억|천만|백만|만)"

# Compound amounts such as "3억 5천만원" or "1억 2,000만원"; units descend
_N = r"\d[\d,]*(?:\.\d+)?"
_MINOR = rf"(?:{_N}\s*(?:천만|백만|만)\s*)?"
_EOK_AMOUNT = rf"(?P<amount>{_N}\s*억\s*{_MINOR}원)"
_ANY_AMOUNT = rf"(?P<amount>(?=\d)(?:{_N}\s*조\s*)?(?:{_N}\s*억\s*)?{_MINOR}원)"

# (pattern id, regex); every regex names the amount span "amount"
BUDGET_PATTERNS: Final[list[tuple[str, re.Pattern]]] = [
    ("year-eok", re.compile(rf"['’‘]?(?:20\d{{2}}|\d{{2}})년\s*(?:도\s*)?(?:총\s*)?{_EOK_AMOUNT}")),
    ("total-eok", re.compile(rf"총\s*(?:사업비|예산|연구비|지원\s*규모|지원\s*금액)?\s*[:：]?\s*(?:약\s*)?{_EOK_AMOUNT}")),
    ("labelled-amount", re.compile(
        rf"(?:예산|지원\s*규모|총\s*사업비|공고\s*금액|지원\s*금액|사업\s*예산|총\s*연구비|정부\s*출연금)"
        rf"\s*[:：]?\s*(?:약\s*)?{_ANY_AMOUNT}"
    )),
    ("standalone-eok", re.compile(_EOK_AMOUNT)),
    ("standalone-million", re.compile(rf"(?P<amount>{_N}\s*백만\s*원)")),
]

# Table header "총연구비(억원)" with the figure somewhere in the next 100 chars
TABLE_HEADER_RE: Final = re.compile(r"총\s*연구비\s*\(\s*억\s*원\s*\)")
TABLE_NUMBER_RE: Final = re.compile(r"(?<![\d.])(\d[\d,]*(?:\.\d+)?)(?![\d.]*\s*(?:년|월|일|%|개|명|차))")

AMOUNT_RE: Final = re.compile(_ANY_AMOUNT)
AMOUNT_PART_RE: Final = re.compile(rf"{_NUM}\s*{_UNIT}")

TRACK_PATTERNS: Final[list[tuple[str, re.Pattern]]] = [
    ("일반트랙", re.compile(r"일반\s*트랙")),
    ("딥테크", re.compile(r"딥\s*테크")),
    ("글로벌", re.compile(r"글로벌\s*(?:트랙)?")),
]

RD_KEYWORDS: Final[list[str]] = [
    "R&D", "연구개발", "연구비", "기술개발", "정부지원", "정부출연", "출연금", "매칭", "지원금",
]
NON_RD_KEYWORDS: Final[list[str]] = [
    "비R&D", "마케팅", "판로", "수출", "인증", "특허", "투자", "엔젤투자", "VC", "사업화자금",
]
PER_APPLICANT_KEYWORDS: Final[list[str]] = ["최대", "과제당", "기업당", "건당", "개사당", "기관당"]
TOTAL_KEYWORDS: Final[list[str]] = ["총", "전체", "합계", "총계", "누계"]

CONTEXT_CHARS: Final[int] = 80


@dataclass
class BudgetMatch:
    amount: int
    pattern_id: str
    matched_text: str


def to_won(number: str, unit: str) -> int | None:
    """Convert a numeral string and Korean unit to integer won."""
    try:
        value = Decimal(number.replace(",", "").rstrip("."))
    except InvalidOperation:
        return None
    return int(value * UNIT_MULTIPLIERS[unit])


def parse_amount(amount_text: str) -> int | None:
    """Sum every number-unit part of an amount such as "3억 5천만원"."""
    parts = AMOUNT_PART_RE.findall(amount_text)
    if not parts:
        return None
    total = 0
    for number, unit in parts:
        value = to_won(number, unit)
        if value is None:
            return None
        total += value
    return total


def is_valid_amount(amount: int | None) -> bool:
    return amount is not None and 0 < amount < MAX_EOK * EOK


def extract_budget(text: str) -> BudgetMatch | None:
    """First valid amount by pattern priority, or None."""
    if not text:
        return None

    # Year-prefixed and explicit totals outrank the table header form
    for pattern_id, regex in BUDGET_PATTERNS[:2]:
        match = _first_valid(regex, text, pattern_id)
        if match:
            return match

    header_match = _from_table_header(text)
    if header_match:
        return header_match

    for pattern_id, regex in BUDGET_PATTERNS[2:]:
        match = _first_valid(regex, text, pattern_id)
        if match:
            return match
    return None


def _first_valid(regex: re.Pattern, text: str, pattern_id: str) -> BudgetMatch | None:
    for m in regex.finditer(text):
        amount = parse_amount(m.group("amount"))
        if is_valid_amount(amount):
            return BudgetMatch(amount=amount, pattern_id=pattern_id, matched_text=m.group(0))
    return None


def _from_table_header(text: str) -> BudgetMatch | None:
    for header in TABLE_HEADER_RE.finditer(text):
        window = text[header.end():header.end() + 100]
        number = TABLE_NUMBER_RE.search(window)
        if not number:
            continue
        amount = to_won(number.group(1), "억")
        if is_valid_amount(amount):
            return BudgetMatch(
                amount=amount,
                pattern_id="table-header-eok",
                matched_text=text[header.start():header.end() + number.end()],
            )
    return None


@dataclass
class _Candidate:
    amount: int
    text: str
    is_rd: bool
    is_non_rd: bool
    is_per_applicant: bool
    is_total: bool


def _last_index(haystack: str, needles: list[str]) -> int:
    return max((haystack.rfind(n) for n in needles), default=-1)


def _classify_candidate(text: str, start: int, end: int, amount: int) -> _Candidate:
    before = text[max(0, start - CONTEXT_CHARS):start]
    near_before = before[-40:]

    # "비R&D" must not count as R&D evidence
    masked = before.replace("비R&D", "####")
    last_rd = _last_index(masked, RD_KEYWORDS)
    last_non_rd = _last_index(before, NON_RD_KEYWORDS)

    return _Candidate(
        amount=amount,
        text=text[start:end],
        is_rd=last_rd >= 0 and last_rd > last_non_rd,
        is_non_rd=last_non_rd >= 0 and last_non_rd > last_rd,
        is_per_applicant=any(k in near_before for k in PER_APPLICANT_KEYWORDS),
        is_total=any(k in near_before for k in TOTAL_KEYWORDS),
    )


def extract_budget_with_context(text: str, title: str = "") -> BudgetMatch | None:
    """Disambiguate several budget mentions by track and category labels.

    A track named in the title wins. Otherwise candidates are classified by
    the labels just before them: non-R&D amounts are dropped, a per-applicant
    amount is preferred (explicit R&D first, then the smallest), then a total,
    then the plain pattern extractor.
    """
    if not text:
        return None

    for track_name, track_re in TRACK_PATTERNS:
        if title and track_re.search(title):
            for label in track_re.finditer(text):
                window = text[label.end():label.end() + 300]
                match = extract_budget(window)
                if match:
                    return BudgetMatch(match.amount, f"track:{track_name}", match.matched_text)

    candidates = []
    for m in AMOUNT_RE.finditer(text):
        amount = parse_amount(m.group("amount"))
        if is_valid_amount(amount):
            candidates.append(_classify_candidate(text, m.start(), m.end(), amount))

    relevant = [c for c in candidates if not c.is_non_rd]
    per_applicant = [c for c in relevant if c.is_per_applicant]
    if per_applicant:
        explicit_rd = [c for c in per_applicant if c.is_rd]
        pool, pattern_id = (explicit_rd, "context:per-applicant-rd") if explicit_rd else (per_applicant, "context:per-applicant")
        best = min(pool, key=lambda c: c.amount)
        return BudgetMatch(best.amount, pattern_id, best.text)

    totals = [c for c in relevant if c.is_total]
    if totals:
        return BudgetMatch(totals[0].amount, "context:total", totals[0].text)

    return extract_budget(text)

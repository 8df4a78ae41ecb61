"""Section-aware eligibility criteria extraction.

Every rule runs only on the eligibility section of the announcement (the text
between a heading such as 지원대상/신청자격 and the next major heading), so
boilerplate elsewhere in the document cannot trigger requirements.
"""

import re
from typing import Final

from fundingpipe.fields.budget import to_won
from fundingpipe.schemas.eligibility import (
    CertificationRequirements,
    ConsortiumComposition,
    ConsortiumRequirements,
    EligibilityCriteria,
    FinancialRequirements,
    GovernmentRelationship,
    IndustryRequirements,
    InvestmentThreshold,
    OperatingYears,
    OrganizationRequirements,
    RdInvestmentRatio,
)

SECTION_HEADER_RE: Final = re.compile(
    r"지원\s*대상|신청\s*자격|신청\s*요건|지원\s*요건|참여\s*자격|참여\s*요건|응모\s*자격"
)
SECTION_END_RE: Final = re.compile(
    r"제출\s*서류|접수\s*기간|신청\s*방법|접수\s*방법|문의처|기\s*타\s*사항|(?<![가-힣])기타(?![가-힣])|유의\s*사항|첨부\s*파일"
)
MAX_SECTION_CHARS: Final[int] = 2000
MIN_SECTION_CHARS: Final[int] = 50

OPERATING_YEARS_MAX: Final = [
    re.compile(r"(\d+)\s*년\s*이하"),
    re.compile(r"(\d+)\s*년\s*이내"),
    re.compile(r"(\d+)\s*년\s*미만"),
]
OPERATING_YEARS_MIN: Final = [
    re.compile(r"(\d+)\s*년\s*이상"),
    re.compile(r"(\d+)\s*년\s*초과"),
]
LEGAL_BASIS_RE: Final = re.compile(r"(?:중소기업\s*창업\s*지원법|중소기업\s*기본법)\s*제\s*\d+\s*조(?:\s*제\s*\d+\s*항)?")

ORGANIZATION_TYPES: Final[list[tuple[str, list[str]]]] = [
    ("sme", ["중소기업", "중기"]),
    ("venture", ["벤처기업", "스타트업"]),
    ("corporation", ["법인사업자", "법인", "주식회사"]),
    ("sole_proprietor", ["개인사업자"]),
    ("startup", ["창업기업"]),
    ("research_institute", ["연구기관", "출연연", "연구소"]),
    ("university", ["대학교", "대학"]),
]

RD_RATIO_PATTERNS: Final = [
    re.compile(r"R&D\s*투자\s*비율\s*(\d+(?:\.\d+)?)\s*%\s*이상", re.IGNORECASE),
    re.compile(r"매출액\s*대비\s*R&D\s*투자\s*비율\s*(\d+(?:\.\d+)?)\s*%", re.IGNORECASE),
    re.compile(r"연구\s*개발비\s*(?:비율\s*)?(\d+(?:\.\d+)?)\s*%\s*이상"),
]

_AMOUNT = r"([\d,.]+)\s*(억|백만|만)\s*원"
INVESTMENT_PATTERNS: Final = [
    re.compile(rf"투자\s*유치\s*(?:금액\s*)?{_AMOUNT}\s*이상"),
    re.compile(rf"벤처\s*투자\s*{_AMOUNT}\s*이상"),
    re.compile(rf"{_AMOUNT}\s*이상\s*투자"),
    re.compile(rf"투자\s*(?:유치\s*)?실적\s*{_AMOUNT}"),
    re.compile(rf"투자금\s*{_AMOUNT}\s*이상"),
    re.compile(rf"투자받은\s*금액\s*{_AMOUNT}\s*이상"),
]
EXAMPLE_CONTEXT_RE: Final = re.compile(r"예시|예제|예:|참고:|예를\s*들어|샘플|sample|example", re.IGNORECASE)
INVESTMENT_MIN_WON: Final[int] = 100_000
INVESTMENT_MAX_WON: Final[int] = 10_000_000_000

REQUIRED_CERTIFICATIONS: Final[list[str]] = [
    "INNO-BIZ", "이노비즈", "벤처기업", "경영혁신형기업", "Main-Biz", "메인비즈",
    "국가종합전자조달시스템", "학술·연구용역", "학술연구용역",
]
REQUIRED_DOCUMENTS: Final[list[str]] = [
    "법인등기부등본", "사업자등록증", "창업기업 확인서", "재무제표",
    "중소기업 확인서", "중소기업확인서", "입찰참가자격등록",
]
SME_CONFIRMATION_RE: Final = re.compile(r"중소기업.{0,30}확인")

CONSORTIUM_RE: Final = re.compile(r"컨소시엄|공동\s*연구|산학연")
CONSORTIUM_MANDATORY_RE: Final = re.compile(
    r"(?:컨소시엄|공동\s*연구|산학연)[^.\n]{0,30}(?:필수|의무|반드시|구성하여\s*신청|구성\s*필요)"
    r"|(?:필수|의무|반드시)[^.\n]{0,15}(?:컨소시엄|공동\s*연구|산학연)"
)

GOVERNMENT_AGREEMENTS: Final[list[str]] = ["MOU", "NDA", "양해각서", "비밀유지협약"]
PREFERRED_STATUS: Final[list[str]] = ["우선협상대상자", "우선 선정"]
TARGET_ENTITIES: Final[list[str]] = ["상대국 정부 기관", "방산업체"]
EXCLUSIONS: Final[list[str]] = [
    "금품·향응 등", "금품향응", "부정한 청탁", "사전 협의 또는 특정인의 낙찰", "공정한 경쟁",
]

# Latin tokens need explicit ASCII boundaries; generic "정보통신" and "IT" are left out
INDUSTRY_REQUIREMENT_PATTERNS: Final[list[tuple[str, list[re.Pattern]]]] = [
    ("defense", [re.compile(r"방산\s*분야|방위\s*산업|국방|군사|방산")]),
    ("bio", [re.compile(r"바이오|생명\s*공학|의료\s*기술|헬스케어|제약|신약")]),
    ("it", [
        re.compile(r"(?<![A-Za-z])(?:ICT|SW|AI)(?![A-Za-z])|소프트웨어|인공지능"),
        re.compile(r"디지털\s*전환|디지털화|스마트\s*시티"),
        re.compile(r"사물\s*인터넷|(?<![A-Za-z])IoT(?![A-Za-z])|빅\s*데이터|클라우드"),
    ]),
]


def extract_eligibility_section(text: str) -> str | None:
    """Text from the earliest eligibility heading to the next major heading."""
    if not text:
        return None
    header = SECTION_HEADER_RE.search(text)
    if not header:
        return None

    body_start = header.end()
    end = SECTION_END_RE.search(text, body_start)
    section_end = end.start() if end else len(text)
    section = text[header.start():min(section_end, header.start() + MAX_SECTION_CHARS)].strip()

    if len(section) <= MIN_SECTION_CHARS:
        return None
    return section


def _organization_requirements(text: str) -> OrganizationRequirements | None:
    years = OperatingYears()
    for pattern in OPERATING_YEARS_MAX:
        m = pattern.search(text)
        if m:
            years.maximum = int(m.group(1))
            break
    for pattern in OPERATING_YEARS_MIN:
        m = pattern.search(text)
        if m:
            years.minimum = int(m.group(1))
            break
    basis = LEGAL_BASIS_RE.search(text)
    if basis:
        years.description = basis.group(0)

    types = [key for key, words in ORGANIZATION_TYPES if any(w in text for w in words)]

    has_years = years.minimum is not None or years.maximum is not None or years.description
    if not types and not has_years:
        return None
    return OrganizationRequirements(
        organization_type=types,
        operating_years=years if has_years else None,
    )


def _investment_threshold(text: str) -> InvestmentThreshold | None:
    for pattern in INVESTMENT_PATTERNS:
        for m in pattern.finditer(text):
            context_before = text[max(0, m.start() - 100):m.start()]
            if EXAMPLE_CONTEXT_RE.search(context_before):
                continue
            amount = to_won(m.group(1), m.group(2))
            if amount and INVESTMENT_MIN_WON <= amount <= INVESTMENT_MAX_WON:
                return InvestmentThreshold(minimum_amount=amount, description=m.group(0))
    return None


def _financial_requirements(text: str) -> FinancialRequirements | None:
    ratio = None
    for pattern in RD_RATIO_PATTERNS:
        m = pattern.search(text)
        if m:
            ratio = RdInvestmentRatio(
                minimum=float(m.group(1)),
                period="최근 3년간" if "최근 3년" in text else None,
                calculation_method="매출액 대비 R&D 투자비율" if "매출액 대비" in text else None,
            )
            break
    threshold = _investment_threshold(text)
    if not ratio and not threshold:
        return None
    return FinancialRequirements(rd_investment_ratio=ratio, investment_threshold=threshold)


def _certification_requirements(text: str) -> CertificationRequirements | None:
    required = [c for c in REQUIRED_CERTIFICATIONS if c in text]
    documents = [d for d in REQUIRED_DOCUMENTS if d in text]
    if SME_CONFIRMATION_RE.search(text) and "중소기업확인서" not in documents and "중소기업 확인서" not in documents:
        documents.append("중소기업확인서")
    if not required and not documents:
        return None
    return CertificationRequirements(required=required, documents=documents)


def _consortium_requirements(text: str) -> ConsortiumRequirements | None:
    if not CONSORTIUM_RE.search(text):
        return None

    composition = ConsortiumComposition()
    if "주관기관" in text:
        composition.lead_organization = []
        if re.search(r"주관기관.*중소기업|중소기업.*주관기관", text):
            composition.lead_organization.append("중소기업")
    if "참여기관" in text:
        composition.participants = []
        if re.search(r"참여기관.*중소기업", text):
            composition.participants.append("중소기업")

    types = []
    if "산학연" in text:
        types.append("산학연")
    if "방산분야 컨소시엄" in text:
        types.append("방산분야 컨소시엄")

    has_composition = composition.lead_organization is not None or composition.participants is not None
    return ConsortiumRequirements(
        required=bool(CONSORTIUM_MANDATORY_RE.search(text)),
        composition=composition if has_composition else None,
        type=types,
    )


def _government_relationship(text: str) -> GovernmentRelationship | None:
    relationship = GovernmentRelationship(
        required_agreements=[a for a in GOVERNMENT_AGREEMENTS if a in text],
        preferred_status=[s for s in PREFERRED_STATUS if s in text],
        target_country=next((e for e in TARGET_ENTITIES if e in text), None),
        exclusions=[e for e in EXCLUSIONS if e in text],
    )
    if not (relationship.required_agreements or relationship.preferred_status
            or relationship.target_country or relationship.exclusions):
        return None
    return relationship


def _industry_requirements(text: str) -> IndustryRequirements | None:
    sectors = [
        sector for sector, patterns in INDUSTRY_REQUIREMENT_PATTERNS
        if any(p.search(text) for p in patterns)
    ]
    return IndustryRequirements(sectors=sectors) if sectors else None


def extract_eligibility(text: str) -> EligibilityCriteria | None:
    """Nested eligibility groups from the eligibility section, or None."""
    section = extract_eligibility_section(text)
    if not section:
        return None

    consortium = _consortium_requirements(section)
    business_structures = []
    if "법인" in section:
        business_structures.append("CORPORATION")
    if "개인사업자" in section:
        business_structures.append("SOLE_PROPRIETOR")

    criteria = EligibilityCriteria(
        organization_requirements=_organization_requirements(section),
        financial_requirements=_financial_requirements(section),
        certification_requirements=_certification_requirements(section),
        consortium_requirements=consortium,
        government_relationship=_government_relationship(section),
        industry_requirements=_industry_requirements(section),
        consortium_required=bool(consortium and consortium.required),
        business_structures=business_structures,
    )
    return None if criteria.is_empty() else criteria

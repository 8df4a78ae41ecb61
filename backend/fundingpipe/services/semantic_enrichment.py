"""Semantic enrichment — LLM classification of who a program actually targets.

The same ministry and keywords can target very different companies (an
agriculture-ministry "vaccine" program may be for veterinary pharma). The
classifier asks an Anthropic model for the concrete target industry, a
category-specific sub-domain, specific technology terms, and the program intent.
"""

import json
import logging
import re
from dataclasses import dataclass, field

import anthropic

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024
TEMPERATURE = 0.3

PROGRAM_INTENTS = (
    "BASIC_RESEARCH", "APPLIED_RESEARCH", "COMMERCIALIZATION", "INFRASTRUCTURE", "POLICY_SUPPORT",
)
DEFAULT_INTENT = "APPLIED_RESEARCH"

# category -> ((field, allowed values), (field, allowed values))
SUB_DOMAIN_SCHEMAS: dict[str, tuple[tuple[str, tuple[str, ...]], tuple[str, tuple[str, ...]]]] = {
    "BIO_HEALTH": (
        ("targetOrganism", ("HUMAN", "ANIMAL", "PLANT", "MICROBIAL", "MARINE")),
        ("applicationArea", (
            "PHARMA", "MEDICAL_DEVICE", "DIAGNOSTICS", "DIGITAL_HEALTH", "VETERINARY_PHARMA",
            "VETERINARY_DEVICE", "BIO_MATERIAL", "COSMETICS", "FOOD_HEALTH",
        )),
    ),
    "ICT": (
        ("targetMarket", ("CONSUMER", "ENTERPRISE", "GOVERNMENT", "INDUSTRIAL")),
        ("applicationArea", (
            "SOFTWARE", "HARDWARE", "PLATFORM", "INFRASTRUCTURE", "SECURITY", "AI_ML",
            "DATA_ANALYTICS", "CLOUD", "IOT", "NETWORK", "GAMING", "METAVERSE",
        )),
    ),
    "MANUFACTURING": (
        ("targetIndustry", (
            "AUTOMOTIVE", "AEROSPACE", "ELECTRONICS", "MATERIALS", "MACHINERY",
            "SHIPBUILDING", "SEMICONDUCTOR", "DISPLAY", "ROBOTICS",
        )),
        ("applicationArea", ("PARTS", "SYSTEMS", "EQUIPMENT", "MATERIALS", "PROCESS")),
    ),
    "ENERGY": (
        ("energySource", (
            "SOLAR", "WIND", "NUCLEAR", "HYDROGEN", "BATTERY", "GRID", "FOSSIL", "GEOTHERMAL", "HYDRO",
        )),
        ("applicationArea", ("GENERATION", "STORAGE", "DISTRIBUTION", "EFFICIENCY", "ELECTRIC_VEHICLE")),
    ),
    "AGRICULTURE": (
        ("targetSector", ("CROPS", "LIVESTOCK", "AQUACULTURE", "FORESTRY", "FOOD_PROCESSING")),
        ("applicationArea", ("CULTIVATION", "BREEDING", "PROCESSING", "DISTRIBUTION", "SMART_FARM")),
    ),
    "DEFENSE": (
        ("targetDomain", ("LAND", "NAVAL", "AEROSPACE", "CYBER", "SPACE")),
        ("applicationArea", ("WEAPONS", "SYSTEMS", "LOGISTICS", "C4ISR", "PROTECTION")),
    ),
    "ENVIRONMENT": (
        ("targetArea", ("AIR", "WATER", "SOIL", "WASTE", "CARBON", "ECOSYSTEM")),
        ("applicationArea", ("MONITORING", "TREATMENT", "PREVENTION", "RESTORATION", "RECYCLING")),
    ),
}

PROMPT_TEMPLATE = """당신은 한국 정부 R&D 과제 분석 전문가입니다. 아래 과제가 실제로 어떤 기업을 대상으로 하는지 의미론적으로 분류하세요.

같은 부처나 키워드라도 대상 기업은 전혀 다를 수 있습니다. 예를 들어 농림축산식품부의 "백신" 과제는 동물의약품 기업을, 과기정통부의 "AI" 과제는 소비자 앱 기업 또는 B2B 솔루션 기업을 대상으로 할 수 있습니다.

## 과제 정보
{context}

## 산업별 세부 분류 (semanticSubDomain)
{sub_domain_guide}

## 응답 형식
다음 키를 가진 JSON 객체 하나만 출력하세요:
- primaryTargetIndustry: 구체적인 대상 산업 (예: 동물의약품, B2B SaaS, 전기차 배터리)
- secondaryTargetIndustries: 관련 부가 산업 목록
- semanticSubDomain: 해당 카테고리의 두 필드만 포함한 객체
- technologyDomainsSpecific: 구체적인 기술 키워드 목록 ("바이오" 대신 "동물백신", "GMP제조")
- targetCompanyProfile: 적합한 기업 프로필 (1-2문장)
- programIntent: {intents} 중 하나
- confidence: 0.0~1.0
- reasoning: 분류 근거 (1-2문장)
"""


class EnrichmentServiceError(Exception):
    """One classifier call failed; the record can be retried later."""


class EnrichmentBudgetExhausted(Exception):
    """Rate limit or credit exhaustion; the whole run must stop."""


@dataclass
class ProgramInput:
    title: str
    description: str | None = None
    ministry: str | None = None
    announcing_agency: str | None = None
    category: str | None = None
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_program(cls, program) -> "ProgramInput":
        return cls(
            title=program.title,
            description=program.description,
            ministry=program.ministry,
            announcing_agency=program.announcing_agency,
            category=program.category,
            keywords=list(program.keywords or []),
        )


@dataclass
class SemanticResult:
    primary_target_industry: str = ""
    secondary_target_industries: list[str] = field(default_factory=list)
    semantic_sub_domain: dict | None = None
    technology_domains_specific: list[str] = field(default_factory=list)
    target_company_profile: str = ""
    program_intent: str = DEFAULT_INTENT
    confidence: float = 0.0
    reasoning: str | None = None


def build_prompt(program: ProgramInput) -> str:
    lines = [f"제목: {program.title}"]
    if program.description:
        lines.append(f"설명: {program.description}")
    if program.ministry:
        lines.append(f"주관부처: {program.ministry}")
    if program.announcing_agency:
        lines.append(f"공고기관: {program.announcing_agency}")
    if program.category:
        lines.append(f"카테고리: {program.category}")
    if program.keywords:
        lines.append(f"키워드: {', '.join(program.keywords)}")

    guide = "\n".join(
        f"- {category}: {first[0]} ({' | '.join(first[1])}), {second[0]} ({' | '.join(second[1])})"
        for category, (first, second) in SUB_DOMAIN_SCHEMAS.items()
    )
    return PROMPT_TEMPLATE.format(
        context="\n".join(lines),
        sub_domain_guide=guide,
        intents=" | ".join(PROGRAM_INTENTS),
    )


def validate_sub_domain(raw, category: str | None) -> dict | None:
    """Keep the sub-domain only if both fields are valid for the category."""
    if not isinstance(raw, dict) or not category:
        return None
    schema = SUB_DOMAIN_SCHEMAS.get(category.upper())
    if not schema:
        return None
    result = {}
    for field_name, allowed in schema:
        value = raw.get(field_name)
        if value not in allowed:
            return None
        result[field_name] = value
    return result


def parse_response(text: str, category: str | None) -> SemanticResult:
    """Parse fenced or raw JSON; malformed output yields confidence 0."""
    fenced = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if fenced:
        payload = fenced.group(1)
    else:
        raw = re.search(r"\{.*\}", text, re.DOTALL)
        payload = raw.group(0) if raw else text

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse enrichment response: {e}; raw={text[:200]!r}")
        return SemanticResult(reasoning="Parse error")
    if not isinstance(data, dict):
        return SemanticResult(reasoning="Parse error")

    confidence = data.get("confidence")
    if isinstance(confidence, (int, float)) and not isinstance(confidence, bool):
        confidence = max(0.0, min(1.0, float(confidence)))
    else:
        confidence = 0.5

    intent = data.get("programIntent")
    secondary = data.get("secondaryTargetIndustries")
    technologies = data.get("technologyDomainsSpecific")

    return SemanticResult(
        primary_target_industry=data.get("primaryTargetIndustry") or "",
        secondary_target_industries=secondary if isinstance(secondary, list) else [],
        semantic_sub_domain=validate_sub_domain(data.get("semanticSubDomain"), category),
        technology_domains_specific=technologies if isinstance(technologies, list) else [],
        target_company_profile=data.get("targetCompanyProfile") or "",
        program_intent=intent if intent in PROGRAM_INTENTS else DEFAULT_INTENT,
        confidence=confidence,
        reasoning=data.get("reasoning"),
    )


def _is_credit_exhausted(error: anthropic.APIStatusError) -> bool:
    message = str(error).lower()
    return error.status_code == 402 or "credit balance" in message or "billing" in message


class SemanticClassifier:
    """Wraps an injected ``anthropic.Anthropic`` client."""

    def __init__(self, client: anthropic.Anthropic, model: str, confidence_threshold: float = 0.7):
        self.client = client
        self.model = model
        self.confidence_threshold = confidence_threshold

    def classify(self, program: ProgramInput) -> SemanticResult:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                messages=[{"role": "user", "content": build_prompt(program)}],
            )
        except anthropic.RateLimitError as e:
            raise EnrichmentBudgetExhausted(f"Rate limit reached: {e}") from e
        except anthropic.APIStatusError as e:
            if _is_credit_exhausted(e):
                raise EnrichmentBudgetExhausted(f"Credits exhausted: {e}") from e
            raise EnrichmentServiceError(f"API error {e.status_code}: {e}") from e
        except anthropic.APIError as e:
            raise EnrichmentServiceError(str(e)) from e

        text = "".join(getattr(block, "text", "") for block in message.content)
        result = parse_response(text, program.category)
        logger.info(f"Classified '{program.title[:50]}' (confidence: {result.confidence:.2f})")
        return result

    def is_usable(self, result: SemanticResult) -> bool:
        return result.confidence >= self.confidence_threshold and result.semantic_sub_domain is not None

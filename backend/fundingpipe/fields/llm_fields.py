"""Second-pass field extraction with an Anthropic model.

Only fields the pattern rules left empty, or inferred with low confidence, are
requested. Related fields are batched into one call per group, and a per-job
KRW ceiling stops further calls once the running cost reaches it. API failures
are logged and skipped; the pattern-rule result always stands on its own.
"""

import json
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Final

import anthropic

from fundingpipe.fields.budget import is_valid_amount, parse_amount

logger = logging.getLogger(__name__)

LLM_DATA_SOURCE: Final = "llm-extract"
MAX_INPUT_CHARS: Final = 4000
MAX_OUTPUT_TOKENS: Final = 1024

# KRW per million tokens (USD list price at 1,350 KRW/USD)
INPUT_KRW_PER_MTOK: Final = 1_350.0
OUTPUT_KRW_PER_MTOK: Final = 6_750.0

SYSTEM_PROMPT: Final = (
    "You are a Korean R&D government announcement data extraction specialist. "
    "Extract ONLY the requested fields from the provided text. Respond with valid JSON only."
)

GROUP_PROMPT: Final = """다음 한국 정부 R&D 공고문에서 아래 필드를 추출하세요.

추출할 필드:
{fields}

규칙:
- 값을 찾을 수 없으면 null로 표시
- 날짜는 YYYY-MM-DD 형식으로
- 금액은 원(KRW) 단위 숫자로 변환 (억원 = ×100,000,000, 백만원 = ×1,000,000)
- JSON 형식으로만 응답 (설명 불필요)

응답 형식 (JSON):
{{
{shape}
}}"""


def _as_date(value) -> date | None:
    if not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _as_amount(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = int(value)
    elif isinstance(value, str):
        digits = value.replace(",", "").strip()
        amount = int(digits) if digits.isdigit() else parse_amount(value)
    else:
        return None
    return amount if is_valid_amount(amount) else None


def _as_trl_range(value) -> tuple[int, int] | None:
    if not isinstance(value, list) or len(value) != 2:
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
        return None
    lo, hi = value
    return (lo, hi) if 1 <= lo <= hi <= 9 else None


# group -> [(field name, JSON key, prompt description, coercer)]
FIELD_GROUPS: Final = {
    "dates": [
        ("deadline", "application_close_at", "접수마감일 (YYYY-MM-DD)", _as_date),
        ("application_start", "application_open_at", "접수시작일 (YYYY-MM-DD)", _as_date),
        ("published_at", "published_at", "공고일 (YYYY-MM-DD)", _as_date),
    ],
    "budget": [
        ("budget_amount", "budget_total",
         '총 사업비/지원규모 (숫자, 원 단위). 예: "52억원" → 5200000000', _as_amount),
    ],
    "trl": [
        ("trl", "trl_range",
         '기술성숙도(TRL) 범위 [최소, 최대] (1~9 정수). 예: "TRL 4~6단계" → [4, 6]', _as_trl_range),
    ],
}

FILLABLE_FIELDS: Final = frozenset(f[0] for fields in FIELD_GROUPS.values() for f in fields)


@dataclass
class LLMFieldValue:
    value: object
    group: str


def build_group_prompt(fields: list[tuple]) -> str:
    return GROUP_PROMPT.format(
        fields="\n".join(f"- {key}: {description}" for _, key, description, _ in fields),
        shape=",\n".join(f'  "{key}": <값 또는 null>' for _, key, _, _ in fields),
    )


def parse_json_object(text: str) -> dict | None:
    """First ``{...}`` span of a response, fenced or not."""
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


class LLMFieldExtractor:
    """Wraps an injected ``anthropic.Anthropic`` client."""

    def __init__(self, client: anthropic.Anthropic, model: str, max_cost_krw: float = 50):
        self.client = client
        self.model = model
        self.max_cost_krw = max_cost_krw
        self.cost_krw = 0.0

    def extract(self, text: str, missing: list[str]) -> dict[str, LLMFieldValue]:
        """Ask for ``missing`` fields group by group; cost is tracked per call to this method."""
        self.cost_krw = 0.0
        if not text.strip():
            return {}
        excerpt = text[:MAX_INPUT_CHARS]
        found: dict[str, LLMFieldValue] = {}

        for group, fields in FIELD_GROUPS.items():
            wanted = [f for f in fields if f[0] in missing]
            if not wanted:
                continue
            if self.cost_krw >= self.max_cost_krw:
                logger.info(
                    f"Field LLM cost limit reached ({self.cost_krw:.1f}/{self.max_cost_krw} KRW); "
                    f"skipping {group}"
                )
                break
            try:
                data = self._ask(group, wanted, excerpt)
            except anthropic.APIError as e:
                logger.warning(f"Field LLM call for {group} failed: {e}")
                continue

            for field_name, key, _, coerce in wanted:
                value = coerce(data.get(key))
                if value is not None:
                    found[field_name] = LLMFieldValue(value, group)

        return found

    def _ask(self, group: str, fields: list[tuple], excerpt: str) -> dict:
        message = self.client.messages.create(
            model=self.model,
            max_tokens=MAX_OUTPUT_TOKENS,
            temperature=0,
            system=SYSTEM_PROMPT,
            messages=[{
                "role": "user",
                "content": f"{build_group_prompt(fields)}\n\n---\n공고문 텍스트:\n{excerpt}",
            }],
        )
        usage = getattr(message, "usage", None)
        if usage is not None:
            self.cost_krw += (
                usage.input_tokens * INPUT_KRW_PER_MTOK + usage.output_tokens * OUTPUT_KRW_PER_MTOK
            ) / 1_000_000

        text = "".join(getattr(block, "text", "") for block in message.content)
        data = parse_json_object(text)
        if data is None:
            logger.warning(f"No JSON in field LLM response for {group}: {text[:200]!r}")
            return {}
        logger.info(f"Field LLM {group}: {len(fields)} fields requested, running cost {self.cost_krw:.2f} KRW")
        return data

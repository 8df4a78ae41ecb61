"""Technology Readiness Level range extraction and confidence weighting."""

import re
from dataclasses import dataclass
from typing import Final

TRL_RANGE_RE: Final = re.compile(
    r"(?:TRL|기술\s*성숙도|기술\s*준비\s*수준)\s*[:：]?\s*(?:단계\s*)?(\d)\s*(?:단계)?\s*[-~～–]\s*(?:TRL\s*)?(\d)",
    re.IGNORECASE,
)
TRL_SINGLE_RE: Final = re.compile(r"TRL\s*[:：]?\s*(\d)(?!\s*[-~～–]\s*\d)", re.IGNORECASE)

# (keyword regex, min, max) checked in order; first hit wins
INFERENCE_RULES: Final[list[tuple[re.Pattern, int, int]]] = [
    (re.compile(r"기초\s*연구|원천\s*기술|기초\s*과학"), 1, 3),
    (re.compile(r"응용\s*연구|시제품|시작품|프로토타입"), 4, 6),
    (re.compile(r"상용화|사업화|실증|양산"), 7, 9),
]

TRL_STAGES: Final[list[tuple[str, int, int, str]]] = [
    ("BASIC_RESEARCH", 1, 3, "기초연구"),
    ("APPLIED_RESEARCH", 4, 6, "응용연구"),
    ("COMMERCIALIZATION", 7, 9, "실용화/사업화"),
]

# Downstream score multipliers per confidence tag
TRL_CONFIDENCE_WEIGHTS: Final[dict[str, float]] = {
    "explicit": 1.0,
    "inferred": 0.85,
    "missing": 0.7,
}


@dataclass
class TrlResult:
    min_trl: int | None
    max_trl: int | None
    confidence: str  # explicit, inferred, missing
    pattern_id: str | None = None
    matched_text: str | None = None

    @property
    def stage(self) -> str | None:
        return trl_stage(self.min_trl, self.max_trl)


def _valid(lo: int, hi: int) -> bool:
    return 1 <= lo <= hi <= 9


def extract_trl_range(text: str) -> TrlResult:
    if not text:
        return TrlResult(None, None, "missing")

    for m in TRL_RANGE_RE.finditer(text):
        lo, hi = int(m.group(1)), int(m.group(2))
        if _valid(lo, hi):
            return TrlResult(lo, hi, "explicit", "trl-range", m.group(0))

    for m in TRL_SINGLE_RE.finditer(text):
        level = int(m.group(1))
        if _valid(level, level):
            return TrlResult(level, level, "explicit", "trl-single", m.group(0))

    for regex, lo, hi in INFERENCE_RULES:
        m = regex.search(text)
        if m:
            return TrlResult(lo, hi, "inferred", f"trl-keyword:{m.group(0)}", m.group(0))

    return TrlResult(None, None, "missing")


def trl_stage(min_trl: int | None, max_trl: int | None) -> str | None:
    """Stage whose band contains the midpoint of the range."""
    if min_trl is None or max_trl is None:
        return None
    midpoint = (min_trl + max_trl) / 2
    for stage, lo, hi, _ in TRL_STAGES:
        if lo <= midpoint <= hi + 0.5:
            return stage
    return None


def weighted_trl_points(points: float, confidence: str | None) -> float:
    """Scale a TRL score component by how directly the TRL was stated."""
    return points * TRL_CONFIDENCE_WEIGHTS.get(confidence or "missing", TRL_CONFIDENCE_WEIGHTS["missing"])

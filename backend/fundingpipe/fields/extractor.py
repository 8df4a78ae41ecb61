"""Structured field extraction facade.

Runs every field rule over the combined announcement text and records, per
field, which text portion (attachment or listing metadata) produced the value
and which extraction backends were tried to obtain that text.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

import anthropic

from fundingpipe.config import Settings
from fundingpipe.extraction.base import AttachmentText
from fundingpipe.fields.budget import extract_budget_with_context
from fundingpipe.fields.classification import AnnouncementType, classify_announcement
from fundingpipe.fields.dates import extract_application_start, extract_deadline, extract_published_date
from fundingpipe.fields.eligibility import extract_eligibility, extract_eligibility_section
from fundingpipe.fields.industry import tag_industries
from fundingpipe.fields.llm_fields import FILLABLE_FIELDS, LLM_DATA_SOURCE, LLMFieldExtractor
from fundingpipe.fields.trl import extract_trl_range, trl_stage

logger = logging.getLogger(__name__)

LISTING_METADATA = "listing-metadata"
NO_SOURCE = "none"

MEDIUM_CONFIDENCE_PATTERNS = {"standalone-eok", "standalone-million", "context:per-applicant"}


@dataclass
class TextPortion:
    """One block of announcement text and where it came from."""

    text: str
    data_source: str
    label: str
    attempts: list[dict] = field(default_factory=list)

    @classmethod
    def from_attachment(cls, attachment: AttachmentText) -> "TextPortion":
        return cls(
            text=attachment.text or "",
            data_source=attachment.data_source or NO_SOURCE,
            label=attachment.filename,
            attempts=[{"file": attachment.filename, **a.to_dict()} for a in attachment.attempts],
        )


@dataclass
class ListingMetadata:
    title: str
    ministry: str | None = None
    announcing_agency: str | None = None
    description: str | None = None
    deadline: date | None = None
    posted_at: date | None = None
    url: str = ""
    agency_code: str | None = None


@dataclass
class FieldLogEntry:
    field_name: str
    value: str | None
    data_source: str
    confidence: str
    pattern_id: str | None = None
    sources_attempted: list[dict] = field(default_factory=list)


@dataclass
class ExtractedFields:
    title: str
    ministry: str | None = None
    announcing_agency: str | None = None
    description: str | None = None
    announcement_type: str = AnnouncementType.R_D_PROJECT.value
    deadline: date | None = None
    application_start: date | None = None
    published_at: date | None = None
    budget_amount: int | None = None
    min_trl: int | None = None
    max_trl: int | None = None
    trl_confidence: str = "missing"
    trl_stage: str | None = None
    eligibility_criteria: dict | None = None
    category: str | None = None
    industry_tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    logs: list[FieldLogEntry] = field(default_factory=list)

    def program_values(self) -> dict:
        """Column values for StructuredProgram."""
        return {
            "title": self.title,
            "ministry": self.ministry,
            "announcing_agency": self.announcing_agency,
            "description": self.description,
            "announcement_type": self.announcement_type,
            "deadline": self.deadline,
            "application_start": self.application_start,
            "published_at": self.published_at,
            "budget_amount": self.budget_amount,
            "min_trl": self.min_trl,
            "max_trl": self.max_trl,
            "trl_confidence": self.trl_confidence,
            "trl_stage": self.trl_stage,
            "eligibility_criteria": self.eligibility_criteria,
            "category": self.category,
            "industry_tags": self.industry_tags,
            "keywords": self.keywords,
        }


class StructuredFieldExtractor:
    """Field extraction over tagged text portions.

    Pattern rules run first. When a ``fallback`` is given, fields they leave
    empty or low-confidence are requested from it afterwards.
    """

    def __init__(self, today: date | None = None, fallback: LLMFieldExtractor | None = None):
        self.today = today
        self.fallback = fallback

    def extract(self, portions: list[TextPortion], metadata: ListingMetadata) -> ExtractedFields:
        texts = [p.text for p in portions if p.text]
        combined = "\n\n".join(texts)
        result = ExtractedFields(
            title=metadata.title,
            ministry=metadata.ministry,
            announcing_agency=metadata.announcing_agency,
            description=metadata.description,
        )

        announcement_type = classify_announcement(
            metadata.title, metadata.description or "", metadata.url, metadata.agency_code,
        )
        result.announcement_type = announcement_type.value
        result.logs.append(FieldLogEntry(
            "announcement_type", announcement_type.value, LISTING_METADATA, "medium", "classification",
        ))

        self._extract_dates(result, combined, portions, metadata)
        self._extract_budget(result, combined, portions, metadata)
        self._extract_trl(result, combined, portions)
        self._extract_eligibility(result, combined, portions)
        self._extract_industry(result, combined, portions, metadata)
        if self.fallback is not None:
            self._fill_gaps(result, combined, portions)
        return result

    # -- per-field rules -------------------------------------------------

    def _extract_dates(self, result, combined, portions, metadata):
        deadline = extract_deadline(combined)
        if deadline:
            result.deadline = deadline.value
            self._log_match(result, "deadline", deadline.value.isoformat(), "high",
                            deadline.pattern_id, deadline.matched_text, portions)
        elif metadata.deadline:
            result.deadline = metadata.deadline
            result.logs.append(FieldLogEntry(
                "deadline", metadata.deadline.isoformat(), LISTING_METADATA, "medium",
                "listing-deadline", _all_attempts(portions),
            ))
        else:
            self._log_missing(result, "deadline", portions)

        start = extract_application_start(combined)
        if start:
            result.application_start = start.value
            self._log_match(result, "application_start", start.value.isoformat(), "high",
                            start.pattern_id, start.matched_text, portions)
        else:
            self._log_missing(result, "application_start", portions)

        published = extract_published_date(combined, today=self.today)
        if published:
            result.published_at = published.value
            self._log_match(result, "published_at", published.value.isoformat(), "high",
                            published.pattern_id, published.matched_text, portions)
        elif metadata.posted_at:
            result.published_at = metadata.posted_at
            result.logs.append(FieldLogEntry(
                "published_at", metadata.posted_at.isoformat(), LISTING_METADATA, "medium",
                "listing-posted-at", _all_attempts(portions),
            ))
        else:
            self._log_missing(result, "published_at", portions)

    def _extract_budget(self, result, combined, portions, metadata):
        budget = extract_budget_with_context(combined, metadata.title)
        if not budget:
            self._log_missing(result, "budget_amount", portions)
            return
        result.budget_amount = budget.amount
        confidence = "medium" if budget.pattern_id in MEDIUM_CONFIDENCE_PATTERNS else "high"
        self._log_match(result, "budget_amount", str(budget.amount), confidence,
                        budget.pattern_id, budget.matched_text, portions)

    def _extract_trl(self, result, combined, portions):
        trl = extract_trl_range(combined)
        result.trl_confidence = trl.confidence
        if trl.min_trl is None:
            self._log_missing(result, "trl", portions)
            return
        result.min_trl, result.max_trl = trl.min_trl, trl.max_trl
        result.trl_stage = trl.stage
        confidence = "high" if trl.confidence == "explicit" else "low"
        self._log_match(result, "trl", f"{trl.min_trl}-{trl.max_trl}", confidence,
                        trl.pattern_id, trl.matched_text, portions)

    def _extract_eligibility(self, result, combined, portions):
        criteria = extract_eligibility(combined)
        if not criteria:
            self._log_missing(result, "eligibility_criteria", portions)
            return
        result.eligibility_criteria = criteria.to_json()
        groups = [k for k, v in result.eligibility_criteria.items() if isinstance(v, dict)]
        section = extract_eligibility_section(combined) or ""
        self._log_match(result, "eligibility_criteria", ",".join(groups) or "flags",
                        "high" if len(groups) >= 2 else "medium",
                        "eligibility-section", section[:40], portions)

    def _extract_industry(self, result, combined, portions, metadata):
        industry = tag_industries(metadata.title, combined)
        if not industry.tags:
            self._log_missing(result, "industry_tags", portions)
            return
        result.industry_tags = industry.tags
        result.category = industry.primary
        result.keywords = industry.keywords
        value = ",".join(industry.tags)
        confidence = "high" if industry.scores[industry.primary] >= 4 else "medium"
        pattern_id = f"industry:{industry.primary}"
        first_keyword = industry.keywords[0] if industry.keywords else ""

        # Title hits come from the listing, not from any attachment
        if first_keyword and first_keyword in (metadata.title or "").replace(" ", ""):
            result.logs.append(FieldLogEntry("industry_tags", value, LISTING_METADATA, confidence, pattern_id))
            return
        self._log_match(result, "industry_tags", value, confidence, pattern_id, first_keyword, portions)

    def _fill_gaps(self, result, combined, portions):
        gaps = [
            e.field_name for e in result.logs
            if e.field_name in FILLABLE_FIELDS and (e.value is None or e.confidence == "low")
        ]
        if not gaps or not combined.strip():
            return

        found = self.fallback.extract(combined, gaps)
        for field_name, filled in found.items():
            if field_name == "trl":
                result.min_trl, result.max_trl = filled.value
                result.trl_confidence = "inferred"
                result.trl_stage = trl_stage(result.min_trl, result.max_trl)
                logged = f"{result.min_trl}-{result.max_trl}"
            elif field_name == "budget_amount":
                result.budget_amount = filled.value
                logged = str(filled.value)
            else:
                setattr(result, field_name, filled.value)
                logged = filled.value.isoformat()
            entry = FieldLogEntry(
                field_name, logged, LLM_DATA_SOURCE, "medium", f"llm:{filled.group}", _all_attempts(portions),
            )
            result.logs = [entry if e.field_name == field_name else e for e in result.logs]
        if found:
            logger.info(f"LLM pass filled {len(found)}/{len(gaps)} fields for '{result.title[:50]}'")

    # -- provenance ------------------------------------------------------

    def _log_match(self, result, field_name, value, confidence, pattern_id, matched_text, portions):
        portion = _portion_containing(matched_text, portions)
        if portion is None:
            data_source, attempts = NO_SOURCE, _all_attempts(portions)
        else:
            data_source, attempts = portion.data_source, list(portion.attempts)
        result.logs.append(FieldLogEntry(field_name, value, data_source, confidence, pattern_id, attempts))

    def _log_missing(self, result, field_name, portions):
        result.logs.append(FieldLogEntry(field_name, None, NO_SOURCE, "none", None, _all_attempts(portions)))


def _portion_containing(snippet: str | None, portions: list[TextPortion]) -> TextPortion | None:
    with_text = [p for p in portions if p.text]
    if not with_text:
        return None
    if snippet:
        for portion in with_text:
            if snippet in portion.text:
                return portion
        compact = snippet.replace(" ", "")
        for portion in with_text:
            if compact and compact in portion.text.replace(" ", ""):
                return portion
    # Match spanned a portion boundary
    return with_text[0]


def _all_attempts(portions: list[TextPortion]) -> list[dict]:
    attempts = []
    for portion in portions:
        attempts.extend(portion.attempts)
    return attempts


def build_field_extractor(settings: Settings) -> StructuredFieldExtractor:
    """Pattern rules, plus the LLM pass when enabled and a key is configured."""
    if not settings.enable_tier2_extraction:
        return StructuredFieldExtractor()
    if not settings.anthropic_api_key:
        logger.warning("ENABLE_TIER2_EXTRACTION is set but ANTHROPIC_API_KEY is not; using pattern rules only")
        return StructuredFieldExtractor()
    client = anthropic.Anthropic(api_key=settings.anthropic_api_key)
    return StructuredFieldExtractor(
        fallback=LLMFieldExtractor(client, settings.tier2_model, settings.max_tier2_cost_per_job),
    )

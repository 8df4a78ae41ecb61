"""Resumable, rate-limited semantic enrichment backfill.

Progress is kept in a JSON checkpoint rewritten after every record, so an
interrupted run resumes without re-classifying (and re-paying for) records it
already finished. Failed records stay out of the checkpoint and are retried on
the next resumed run.
"""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy.orm import Session

from fundingpipe.models.structured_program import StructuredProgram
from fundingpipe.services.semantic_enrichment import (
    EnrichmentBudgetExhausted, EnrichmentServiceError, ProgramInput, SemanticClassifier,
)

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class BackfillStats:
    total: int = 0
    enriched: int = 0
    skipped: int = 0
    failed: int = 0
    avg_confidence: float = 0.0
    cost_krw: int = 0
    started_at: str = field(default_factory=_now_iso)
    finished_at: str | None = None
    duration_minutes: float | None = None

    def add_confidence(self, confidence: float) -> None:
        """Running mean over every classified record (enriched or skipped)."""
        classified = self.enriched + self.skipped
        self.avg_confidence = (self.avg_confidence * classified + confidence) / (classified + 1)


@dataclass
class BackfillCheckpoint:
    last_processed_id: str | None = None
    processed_ids: set[str] = field(default_factory=set)
    stats: BackfillStats = field(default_factory=BackfillStats)
    updated_at: str = field(default_factory=_now_iso)

    @classmethod
    def load_or_init(cls, path: str | Path) -> "BackfillCheckpoint":
        path = Path(path)
        if not path.exists():
            return cls()
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            last_processed_id=data.get("last_processed_id"),
            processed_ids=set(data.get("processed_ids", [])),
            stats=BackfillStats(**data.get("stats", {})),
            updated_at=data.get("updated_at") or _now_iso(),
        )

    def mark_processed(self, program_id: str) -> None:
        self.processed_ids.add(program_id)
        self.last_processed_id = program_id

    def save(self, path: str | Path) -> None:
        """Write atomically: temp file in the same directory, then rename."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.updated_at = _now_iso()
        payload = {
            "last_processed_id": self.last_processed_id,
            "processed_ids": sorted(self.processed_ids),
            "stats": asdict(self.stats),
            "updated_at": self.updated_at,
        }
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    @staticmethod
    def clear(path: str | Path) -> None:
        Path(path).unlink(missing_ok=True)


class RunLog:
    """Append-only JSONL log, one line per record."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def append(self, **entry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        entry.setdefault("timestamp", _now_iso())
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")


@dataclass
class BackfillResult:
    stats: BackfillStats
    selected: int
    remaining: int
    run_failed: int = 0
    checkpoint_cleared: bool = False
    dry_run_titles: list[str] = field(default_factory=list)


class BackfillRunner:
    def __init__(
        self,
        db: Session,
        classifier: SemanticClassifier,
        checkpoint_path: str | Path,
        log_path: str | Path,
        requests_per_minute: int = 50,
        cost_per_call_krw: int = 27,
        sleep=time.sleep,
    ):
        self.db = db
        self.classifier = classifier
        self.checkpoint_path = Path(checkpoint_path)
        self.run_log = RunLog(log_path)
        self.delay = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self.cost_per_call_krw = cost_per_call_krw
        self.sleep = sleep

    def select_programs(self, category: str | None = None, limit: int | None = None, force: bool = False):
        query = self.db.query(StructuredProgram)
        if not force:
            query = query.filter(StructuredProgram.semantic_enriched_at.is_(None))
        if category:
            query = query.filter(StructuredProgram.category == category)
        query = query.order_by(StructuredProgram.created_at.desc())
        if limit:
            query = query.limit(limit)
        return query.all()

    def run(
        self,
        dry_run: bool = False,
        limit: int | None = None,
        category: str | None = None,
        resume: bool = False,
        force: bool = False,
    ) -> BackfillResult:
        """Enrich selected programs one at a time.

        ``EnrichmentBudgetExhausted`` saves the checkpoint and propagates.
        """
        checkpoint = BackfillCheckpoint.load_or_init(self.checkpoint_path) if resume else BackfillCheckpoint()
        stats = checkpoint.stats
        started = time.monotonic()

        programs = self.select_programs(category=category, limit=limit, force=force)
        stats.total = len(programs)
        remaining = [p for p in programs if str(p.id) not in checkpoint.processed_ids]
        logger.info(f"Backfill: {len(programs)} selected, {len(remaining)} remaining after checkpoint")

        result = BackfillResult(stats=stats, selected=len(programs), remaining=len(remaining))
        if dry_run:
            result.dry_run_titles = [f"[{p.category or 'UNKNOWN'}] {p.title[:60]}" for p in remaining]
            return result

        for i, program in enumerate(remaining):
            program_id = str(program.id)
            try:
                semantic = self.classifier.classify(ProgramInput.from_program(program))
            except EnrichmentBudgetExhausted as e:
                logger.error(f"Budget exhausted at {program_id}: {e}")
                self.run_log.append(id=program_id, title=program.title, category=program.category,
                                    result="failed", error=str(e))
                checkpoint.save(self.checkpoint_path)
                raise
            except EnrichmentServiceError as e:
                stats.failed += 1
                result.run_failed += 1
                logger.warning(f"Enrichment failed for {program_id}: {e}")
                self.run_log.append(id=program_id, title=program.title, category=program.category,
                                    result="failed", error=str(e))
                checkpoint.save(self.checkpoint_path)
            else:
                stats.cost_krw += self.cost_per_call_krw
                stats.add_confidence(semantic.confidence)

                if self.classifier.is_usable(semantic):
                    self._write(program, semantic)
                    stats.enriched += 1
                    outcome = "enriched"
                else:
                    stats.skipped += 1
                    outcome = "skipped"

                self.run_log.append(
                    id=program_id, title=program.title, category=program.category, result=outcome,
                    confidence=semantic.confidence,
                    primary_target_industry=semantic.primary_target_industry or None,
                    semantic_sub_domain=semantic.semantic_sub_domain,
                )
                checkpoint.mark_processed(program_id)
                checkpoint.save(self.checkpoint_path)
                logger.info(f"[{i + 1}/{len(remaining)}] {outcome}: {program.title[:50]} ({semantic.confidence:.2f})")

            if i < len(remaining) - 1 and self.delay:
                self.sleep(self.delay)

        stats.finished_at = _now_iso()
        stats.duration_minutes = round((time.monotonic() - started) / 60, 2)

        if result.run_failed == 0:
            BackfillCheckpoint.clear(self.checkpoint_path)
            result.checkpoint_cleared = True
        else:
            checkpoint.save(self.checkpoint_path)
        return result

    def _write(self, program: StructuredProgram, semantic) -> None:
        # Confidence is written with the timestamp so the pair is never half-set
        program.primary_target_industry = semantic.primary_target_industry or None
        program.secondary_target_industries = semantic.secondary_target_industries
        program.semantic_sub_domain = semantic.semantic_sub_domain
        program.technology_domains_specific = semantic.technology_domains_specific
        program.target_company_profile = semantic.target_company_profile or None
        program.program_intent = semantic.program_intent
        program.semantic_confidence = semantic.confidence
        program.semantic_enriched_at = datetime.now(timezone.utc)
        program.semantic_enrichment_model = self.classifier.model
        self.db.commit()


def print_summary(result: BackfillResult) -> None:
    stats = result.stats
    print()
    print("=" * 60)
    print("Backfill complete")
    print("=" * 60)
    print(f"  Total programs:   {stats.total}")
    print(f"  Enriched:         {stats.enriched}")
    print(f"  Skipped:          {stats.skipped}")
    print(f"  Failed:           {stats.failed}")
    print(f"  Avg confidence:   {stats.avg_confidence:.3f}")
    print(f"  Estimated cost:   ₩{stats.cost_krw:,}")
    print(f"  Duration:         {stats.duration_minutes} minutes")
    if result.checkpoint_cleared:
        print("  Checkpoint cleared.")
    else:
        print("  Some programs failed. Re-run with --resume to retry.")

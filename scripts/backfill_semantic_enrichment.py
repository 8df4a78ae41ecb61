#!/usr/bin/env python3
"""Backfill semantic enrichment for structured programs.

Classifies each program's concrete target industry, sub-domain and intent with
an Anthropic model. Progress is checkpointed after every program, so an interrupted run
continues with --resume. Rate limit: 50 requests/minute by default.

Usage:
    python scripts/backfill_semantic_enrichment.py --dry-run
    python scripts/backfill_semantic_enrichment.py --limit 10
    python scripts/backfill_semantic_enrichment.py --category BIO_HEALTH
    python scripts/backfill_semantic_enrichment.py --resume
    python scripts/backfill_semantic_enrichment.py --force
"""

import argparse
import logging
import sys
from pathlib import Path

# Add backend to path for imports
script_dir = Path(__file__).resolve().parent
backend_dir = script_dir.parent / "backend"
if backend_dir.exists():
    sys.path.insert(0, str(backend_dir))
else:
    sys.path.insert(0, str(script_dir.parent))

import anthropic

from fundingpipe.config import get_settings
from fundingpipe.models.base import get_session_factory
from fundingpipe.services.backfill import BackfillRunner, print_summary
from fundingpipe.services.semantic_enrichment import EnrichmentBudgetExhausted, SemanticClassifier

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)

DRY_RUN_PREVIEW = 10


def main(args) -> int:
    settings = get_settings()
    if not settings.anthropic_api_key and not args.dry_run:
        print("ANTHROPIC_API_KEY is not set")
        return 1

    client = anthropic.Anthropic(api_key=settings.anthropic_api_key or "dry-run")
    classifier = SemanticClassifier(
        client, settings.enrichment_model, settings.enrichment_confidence_threshold,
    )

    print("=" * 60)
    print("Semantic enrichment backfill")
    print("=" * 60)
    print(f"  Model:      {settings.enrichment_model}")
    print(f"  Rate limit: {settings.enrichment_requests_per_minute}/min")
    print(f"  Threshold:  {settings.enrichment_confidence_threshold}")
    if args.category:
        print(f"  Category:   {args.category}")
    if args.limit:
        print(f"  Limit:      {args.limit}")
    if args.resume:
        print(f"  Resuming from {settings.backfill_checkpoint_path}")
    if args.force:
        print("  Force: re-enriching already enriched programs")

    db = get_session_factory()()
    try:
        runner = BackfillRunner(
            db, classifier,
            checkpoint_path=settings.backfill_checkpoint_path,
            log_path=settings.backfill_log_path,
            requests_per_minute=settings.enrichment_requests_per_minute,
            cost_per_call_krw=settings.enrichment_cost_per_call_krw,
        )

        try:
            result = runner.run(
                dry_run=args.dry_run, limit=args.limit, category=args.category,
                resume=args.resume, force=args.force,
            )
        except EnrichmentBudgetExhausted as e:
            print()
            print(f"Stopped: {e}")
            print(f"Checkpoint saved to {settings.backfill_checkpoint_path}. Re-run with --resume later.")
            return 1

        if args.dry_run:
            print(f"\nDRY RUN: {result.remaining} programs would be enriched "
                  f"(estimated ₩{result.remaining * settings.enrichment_cost_per_call_krw:,})")
            for title in result.dry_run_titles[:DRY_RUN_PREVIEW]:
                print(f"  - {title}")
            if result.remaining > DRY_RUN_PREVIEW:
                print(f"  ... and {result.remaining - DRY_RUN_PREVIEW} more")
            return 0

        print_summary(result)
        return 0

    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Backfill semantic enrichment")
    parser.add_argument("--dry-run", action="store_true", help="List programs without calling the API")
    parser.add_argument("--limit", type=int, help="Maximum programs to process")
    parser.add_argument("--category", help="Only programs in this category")
    parser.add_argument("--resume", action="store_true", help="Skip programs already in the checkpoint")
    parser.add_argument("--force", action="store_true", help="Include already enriched programs")
    args = parser.parse_args()

    try:
        sys.exit(main(args))
    except Exception:
        logger.exception("Backfill failed")
        sys.exit(1)

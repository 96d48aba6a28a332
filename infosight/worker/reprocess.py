"""
Batch re-analysis of completed submissions from their stored transcripts.

No video is downloaded or re-transcribed. Rows are handled one at a time
with a fixed pause between analysis calls; a failing row is logged and
skipped.
"""

import logging
import time
from typing import Callable, Dict, Any

from sqlalchemy import update
from sqlmodel import Session, select, col

from infosight.api.models import Submission, COMPLETED, utcnow
from infosight.config import Config
from .analyzer import InsightAnalyzer
from .prompts import REPROCESS_SYSTEM_MESSAGE, build_reprocess_prompt
from .types import ReprocessSummary

logger = logging.getLogger(__name__)


class TranscriptReprocessor:
    """
    Re-runs insight extraction over every completed submission with a transcript.

    A row's derived fields are replaced only when the new analysis found at
    least as many KPIs as the stored one; otherwise existing data is kept.
    """

    def __init__(
        self,
        config: Config,
        engine,
        analyzer: InsightAnalyzer,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.engine = engine
        self.analyzer = analyzer
        self.sleep = sleep

    def _load_rows(self) -> list[Dict[str, Any]]:
        with Session(self.engine) as session:
            statement = (
                select(Submission)
                .where(Submission.status == COMPLETED)
                .where(col(Submission.transcript).is_not(None))
                .order_by(col(Submission.created_at).desc())
            )
            return [
                {
                    "id": s.id,
                    "transcript": s.transcript or "",
                    "notes": s.notes,
                    "extracted_kpis": list(s.extracted_kpis or []),
                }
                for s in session.exec(statement).all()
            ]

    def run(self) -> ReprocessSummary:
        """Reprocess all eligible rows and return the counts."""
        rows = self._load_rows()
        logger.info(f"Found {len(rows)} completed submissions with transcripts")

        summary = ReprocessSummary()
        for row in rows:
            if len(row["transcript"]) < self.config.reprocess_min_transcript_chars:
                logger.info(f"Skipping submission {row['id']} - insufficient transcript data")
                summary.skipped += 1
                continue

            try:
                if self._reprocess_row(row):
                    summary.updated += 1
                    summary.updated_ids.append(row["id"])
                summary.processed += 1
            except Exception as e:
                logger.error(f"Error reprocessing submission {row['id']}: {e}")
                summary.failed += 1
            finally:
                # Rate-limit the analysis calls
                self.sleep(self.config.reprocess_delay_sec)

        logger.info(
            f"Reprocessing completed: {summary.processed} processed, "
            f"{summary.updated} updated, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    def _reprocess_row(self, row: Dict[str, Any]) -> bool:
        submission_id = row["id"]
        logger.info(f"Reprocessing submission {submission_id}...")

        prompt = build_reprocess_prompt(row["transcript"], row["notes"])
        result = self.analyzer.analyze(prompt, system_message=REPROCESS_SYSTEM_MESSAGE)

        if result.used_fallback:
            logger.info(f"Keeping existing data for {submission_id}: {result.fallback_reason}")
            return False

        old_count = len(row["extracted_kpis"])
        new_count = len(result.extracted_kpis)
        if new_count < old_count:
            logger.info(f"Keeping existing KPIs for {submission_id} ({old_count} > {new_count})")
            return False

        with self.engine.begin() as conn:
            updated = conn.execute(
                update(Submission)
                .where(col(Submission.id) == submission_id, col(Submission.status) == COMPLETED)
                .values(
                    key_points=result.key_points,
                    extracted_kpis=result.extracted_kpis,
                    sentiment=result.sentiment,
                    ai_quotes=result.ai_quotes,
                    updated_at=utcnow(),
                )
            )
        if updated.rowcount != 1:
            logger.warning(f"Submission {submission_id} changed during reprocessing, not updated")
            return False

        logger.info(f"Updated submission {submission_id}: {old_count} -> {new_count} KPIs")
        return True

"""
Core pipeline for processing one submission.

``SubmissionProcessor.process_submission(submission_id)`` runs the stages
strictly in order: fetch row, validate video references, claim the
processing lease, download and transcribe the videos, extract the optional
document, analyse, persist, delete the videos. It returns an HTTP-shaped
``ProcessingOutcome`` rather than raising.
"""

import logging
import uuid
from datetime import timedelta
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import update, or_
from sqlmodel import Session, col

from infosight.api.models import Submission, PROCESSING, COMPLETED, FAILED, utcnow
from infosight.config import Config
from infosight.storage import BlobStore, StorageError
from .analyzer import InsightAnalyzer, AnalysisError
from .extractor import DocumentExtractor, guess_mime_type, document_kind, MIN_DOCUMENT_CHARS
from .prompts import PRESET_QUESTIONS, build_submission_prompt
from .publisher import StatusPublisher
from .transcriber import WhisperTranscriber, TranscriptionError, TranscriptionTimeout
from .types import VideoRef, ExtractionResult, ProcessingOutcome

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Base pipeline error; ``status_code`` becomes the HTTP response code."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class PreconditionError(ProcessingError):
    status_code = 400


class SubmissionNotFound(ProcessingError):
    status_code = 404


class LeaseConflict(ProcessingError):
    """Another invocation owns the row, or the row is already terminal."""
    status_code = 409


class ProcessingTimeout(ProcessingError):
    status_code = 408

    def __init__(self, message: str, row_message: str):
        super().__init__(message)
        self.row_message = row_message


class SubmissionProcessor:
    """Orchestrates transcription, document extraction and analysis for a submission."""

    def __init__(
        self,
        config: Config,
        engine,
        storage: BlobStore,
        transcriber: WhisperTranscriber,
        extractor: DocumentExtractor,
        analyzer: InsightAnalyzer,
        publisher: Optional[StatusPublisher] = None,
    ):
        self.config = config
        self.engine = engine
        self.storage = storage
        self.transcriber = transcriber
        self.extractor = extractor
        self.analyzer = analyzer
        self.publisher = publisher

    def process_submission(self, submission_id: Optional[str]) -> ProcessingOutcome:
        """
        Process one submission end to end.

        Returns:
            ProcessingOutcome with 200 and a summary on success, otherwise
            ``{"error": message}`` with 400, 404, 408, 409 or 500.
        """
        lease_owner = f"{self.config.worker_id}:{uuid.uuid4().hex[:12]}"
        logger.info(f"Processing submission: {submission_id} (lease {lease_owner})")

        try:
            body = self._run(submission_id, lease_owner)
            return ProcessingOutcome(status_code=200, body=body)

        except ProcessingTimeout as e:
            logger.error(f"Submission {submission_id} timed out: {e}")
            self._mark_failed(submission_id, lease_owner, e.row_message)
            return ProcessingOutcome(status_code=e.status_code, body={"error": str(e)})

        except (SubmissionNotFound, LeaseConflict) as e:
            # The row is missing or owned elsewhere: leave it untouched
            logger.error(f"Submission {submission_id} not processed: {e}")
            return ProcessingOutcome(status_code=e.status_code, body={"error": str(e)})

        except ProcessingError as e:
            logger.error(f"Error processing submission {submission_id}: {e}")
            self._mark_failed(submission_id, lease_owner, str(e))
            return ProcessingOutcome(status_code=e.status_code, body={"error": str(e)})

        except Exception as e:
            logger.exception(f"Unexpected error processing submission {submission_id}")
            self._mark_failed(submission_id, lease_owner, str(e))
            return ProcessingOutcome(status_code=500, body={"error": str(e)})

    def _run(self, submission_id: Optional[str], lease_owner: str) -> Dict[str, Any]:
        if not submission_id:
            raise PreconditionError("Submission ID is required")

        # 1. Fetch row
        with Session(self.engine) as session:
            submission = session.get(Submission, submission_id)
            if not submission:
                raise SubmissionNotFound("Submission not found")
            status = submission.status
            raw_videos = submission.video_files
            document_path = submission.document_file
            notes = submission.notes

        if status != PROCESSING:
            raise LeaseConflict(f"Submission {submission_id} is already {status}")

        # 2. Validate before any network call
        videos = self._validate_videos(raw_videos)
        logger.info(f"Found submission {submission_id}: {len(videos)} video(s), document: {bool(document_path)}")

        # 3. Claim the row
        if not self._claim(submission_id, lease_owner):
            raise LeaseConflict(f"Submission {submission_id} is being processed by another worker")
        self._publish(submission_id, PROCESSING)

        # 4-5. Download and transcribe
        transcript = self._transcribe_videos(submission_id, lease_owner, videos)

        # 6. Optional document extraction, never fatal
        document: Optional[ExtractionResult] = None
        mime_type = None
        if document_path:
            mime_type = guess_mime_type(document_path)
            self._renew_lease(submission_id, lease_owner)
            document = self._extract_document(document_path, mime_type)

        # 7-9. Analyse
        prompt = build_submission_prompt(transcript, document, notes)
        logger.info(
            f"Analysis input: transcript {len(transcript)} chars, "
            f"document {len(document.text) if document else 0} chars "
            f"(extracted: {bool(document and document.succeeded)}), notes {len(notes or '')} chars"
        )
        self._renew_lease(submission_id, lease_owner)
        try:
            analysis = self.analyzer.analyze(prompt)
        except AnalysisError as e:
            raise ProcessingError(str(e))

        # 10. Persist
        now = utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(
                update(Submission)
                .where(
                    col(Submission.id) == submission_id,
                    col(Submission.status) == PROCESSING,
                    col(Submission.lease_owner) == lease_owner,
                )
                .values(
                    transcript=transcript,
                    key_points=analysis.key_points,
                    extracted_kpis=analysis.extracted_kpis,
                    sentiment=analysis.sentiment,
                    ai_quotes=analysis.ai_quotes,
                    status=COMPLETED,
                    processing_error=None,
                    lease_owner=None,
                    lease_expires_at=None,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                raise LeaseConflict(f"Processing lease for submission {submission_id} was lost")
        logger.info(f"Submission {submission_id} updated with results")
        self._publish(submission_id, COMPLETED)

        # 11. Best-effort cleanup
        self._delete_videos(videos)

        # 12. Summary
        return self._summary(transcript, document, mime_type, analysis.extracted_kpis)

    def _validate_videos(self, raw_videos: Any) -> List[VideoRef]:
        """Normalize stored video references; every entry needs a path."""
        if isinstance(raw_videos, dict):
            raw_videos = [raw_videos]
        if not raw_videos or not isinstance(raw_videos, list):
            raise PreconditionError("Invalid video file structure")

        videos = []
        for entry in raw_videos:
            if not isinstance(entry, dict) or not entry.get("path"):
                raise PreconditionError("Invalid video file structure")
            videos.append(VideoRef.from_dict(entry))

        # Question order, entries without a question keep their upload order
        return sorted(videos, key=lambda v: (v.question_index is None, v.question_index or 0))

    def _claim(self, submission_id: str, lease_owner: str) -> bool:
        """Compare-and-swap the processing lease onto this invocation."""
        now = utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(
                update(Submission)
                .where(
                    col(Submission.id) == submission_id,
                    col(Submission.status) == PROCESSING,
                    or_(
                        col(Submission.lease_owner).is_(None),
                        col(Submission.lease_expires_at) < now,
                    ),
                )
                .values(
                    lease_owner=lease_owner,
                    lease_expires_at=now + timedelta(seconds=self.config.lease_ttl_sec),
                    updated_at=now,
                )
            )
            return result.rowcount == 1

    def _renew_lease(self, submission_id: str, lease_owner: str) -> None:
        """
        Push the lease expiry out by a full TTL before the next external call.

        Each stage is bounded by its own timeout, shorter than the TTL, so a
        live invocation never lets its lease lapse.

        Raises:
            LeaseConflict: If another invocation took the row over
        """
        now = utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(
                update(Submission)
                .where(
                    col(Submission.id) == submission_id,
                    col(Submission.status) == PROCESSING,
                    col(Submission.lease_owner) == lease_owner,
                )
                .values(
                    lease_expires_at=now + timedelta(seconds=self.config.lease_ttl_sec),
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                raise LeaseConflict(f"Processing lease for submission {submission_id} was lost")

    def _transcribe_videos(self, submission_id: str, lease_owner: str, videos: List[VideoRef]) -> str:
        parts: List[Tuple[VideoRef, str]] = []
        for video in videos:
            self._renew_lease(submission_id, lease_owner)
            logger.info(f"Downloading video from: {video.path}")
            try:
                data = self.storage.download(video.path)
            except StorageError as e:
                raise ProcessingError(f"Failed to download video file: {e}")
            logger.info(f"Video downloaded successfully, size: {len(data)}")

            try:
                text = self.transcriber.transcribe(data, video.name)
            except TranscriptionTimeout:
                minutes = self.config.transcription_timeout_sec / 60
                raise ProcessingTimeout(
                    f"Processing timed out after {minutes:g} minutes",
                    row_message=(
                        f"Processing timed out after {minutes:g} minutes. "
                        f"Please try with a shorter video."
                    ),
                )
            except TranscriptionError as e:
                raise ProcessingError(f"Video processing failed: {e}")
            parts.append((video, text))

        return self._join_transcripts(parts)

    @staticmethod
    def _join_transcripts(parts: List[Tuple[VideoRef, str]]) -> str:
        if len(parts) == 1:
            return parts[0][1]
        sections = []
        for n, (video, text) in enumerate(parts, 1):
            index = video.question_index
            if index is not None and 0 <= index < len(PRESET_QUESTIONS):
                header = f"Question {index + 1}: {PRESET_QUESTIONS[index]}"
            else:
                header = f"Video {n}"
            sections.append(f"{header}\n{text}")
        return "\n\n".join(sections)

    def _extract_document(self, path: str, mime_type: Optional[str]) -> ExtractionResult:
        kind = document_kind(mime_type).upper()
        try:
            data = self.storage.download(path)
        except StorageError as e:
            logger.error(f"{kind} download failed: {e}")
            return ExtractionResult.failed(f"{kind} download failed: {e}", strategy="download")

        try:
            result = self.extractor.extract(data, mime_type, filename=path.rsplit("/", 1)[-1])
        except Exception as e:
            logger.error(f"Error in {kind} processing: {e}")
            return ExtractionResult.failed(f"{kind} processing failed: {e}", strategy="error")

        if not result.succeeded:
            logger.warning(f"{kind} extraction returned insufficient content: {result.warning}")
        return result

    def _delete_videos(self, videos: List[VideoRef]) -> None:
        paths = [v.path for v in videos]
        try:
            logger.info(f"Deleting video file(s) to save storage space: {paths}")
            self.storage.remove(paths)
        except Exception as e:
            logger.warning(f"Error deleting video file(s) {paths}: {e}")

    def _summary(
        self,
        transcript: str,
        document: Optional[ExtractionResult],
        mime_type: Optional[str],
        kpis: List[str],
    ) -> Dict[str, Any]:
        kind = document_kind(mime_type)
        document_ok = bool(document and document.succeeded and len(document.text) >= MIN_DOCUMENT_CHARS)

        if document is None:
            message = f"Submission processed successfully ({len(kpis)} KPIs extracted)"
        elif document_ok:
            message = f"Submission processed successfully with enhanced {kind.upper()} analysis ({len(kpis)} KPIs extracted)"
        else:
            message = f"Submission processed with video analysis and limited {kind.upper()} processing ({len(kpis)} KPIs extracted)"

        body = {
            "success": True,
            "message": message,
            "documentProcessed": document_ok,
            "kpisExtracted": len(kpis),
            "videoProcessed": bool(transcript),
            "transcriptLength": len(transcript),
            "documentContentLength": len(document.text) if document else 0,
        }
        if document is not None and kind != "document":
            body[f"{kind}Processed"] = body["documentProcessed"]
            body[f"{kind}ContentLength"] = body["documentContentLength"]
        return body

    def _mark_failed(self, submission_id: Optional[str], lease_owner: str, message: str) -> None:
        """Write the terminal failed status; never raises and never reverts a terminal row."""
        if not submission_id:
            return
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(Submission)
                    .where(
                        col(Submission.id) == submission_id,
                        col(Submission.status) == PROCESSING,
                        or_(
                            col(Submission.lease_owner).is_(None),
                            col(Submission.lease_owner) == lease_owner,
                        ),
                    )
                    .values(
                        status=FAILED,
                        processing_error=message,
                        lease_owner=None,
                        lease_expires_at=None,
                        updated_at=utcnow(),
                    )
                )
            if result.rowcount:
                logger.info(f"Updated submission status to failed for: {submission_id}")
                self._publish(submission_id, FAILED, message)
        except Exception as e:
            logger.error(f"Error updating failed status for {submission_id}: {e}")

    def _publish(self, submission_id: str, status: str, error: Optional[str] = None) -> None:
        if self.publisher:
            self.publisher.publish(submission_id, status, error)

"""
Pipeline trigger routes: process one submission, reprocess stored transcripts.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from infosight.api.dependencies import (
    Caller, get_caller, get_db_session, get_processor, get_reprocessor, limiter, require_admin,
)
from infosight.api.models import Submission
from infosight.api.schemas import ProcessSubmissionRequest, ReprocessResponse
from infosight.worker.processor import SubmissionProcessor
from infosight.worker.reprocess import TranscriptReprocessor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Processing"])


@router.post("/process-submission")
@limiter.limit("20/minute")
def process_submission(
    request: Request,
    body: ProcessSubmissionRequest,
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
    processor: SubmissionProcessor = Depends(get_processor),
):
    """
    Run the processing pipeline for one submission.

    Blocks until the pipeline finishes. Returns the summary on success or
    ``{"error": message}`` with 400/404/408/409/500.
    """
    if body.submission_id:
        submission = session.get(Submission, body.submission_id)
        if submission and not caller.can_access(submission.user_id):
            return JSONResponse(status_code=403, content={"error": "Not allowed to process this submission"})
    # Release the connection before the long-running pipeline
    session.close()

    outcome = processor.process_submission(body.submission_id)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/reprocess-transcripts", response_model=ReprocessResponse)
def reprocess_transcripts(
    _: Caller = Depends(require_admin),
    reprocessor: TranscriptReprocessor = Depends(get_reprocessor),
):
    """Re-run insight extraction over all completed submissions (admin only)."""
    logger.info("Starting transcript reprocessing...")
    summary = reprocessor.run()
    return ReprocessResponse(**summary.to_dict())

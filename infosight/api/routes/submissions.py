"""
Submission management API routes.
"""

import logging
from typing import List, Optional

from fastapi import (
    APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, Request, UploadFile, status,
)
from sqlalchemy import func
from sqlmodel import Session, select

from infosight.api.dependencies import (
    Caller, get_blob_store, get_caller, get_db_session, get_processor, limiter,
)
from infosight.api.models import Submission, PROCESSING
from infosight.api.schemas import SubmissionListResponse, SubmissionResponse
from infosight.api.upload import (
    DOCUMENT_EXTENSIONS, VIDEO_EXTENSIONS, discard_uploads, read_upload, store_uploads,
)
from infosight.config import get_config
from infosight.storage import BlobStore
from infosight.worker.processor import SubmissionProcessor
from infosight.worker.prompts import PRESET_QUESTIONS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/submissions", tags=["Submissions"])


def get_accessible_submission(session: Session, submission_id: str, caller: Caller) -> Submission:
    """Load a submission the caller owns (or any submission for admins)."""
    submission = session.get(Submission, submission_id)
    # Same 404 for missing and foreign rows
    if not submission or not caller.can_access(submission.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Submission {submission_id} not found"
        )
    return submission


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_submission(
    request: Request,
    background_tasks: BackgroundTasks,
    videos: List[UploadFile] = File(..., description="One video per preset question, in order"),
    document: Optional[UploadFile] = File(None, description="Optional PDF or DOCX"),
    notes: Optional[str] = Form(None),
    process: bool = Form(False, description="Start processing in the background"),
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
    processor: SubmissionProcessor = Depends(get_processor),
):
    """
    Create a new submission.

    Stores the uploads under the caller's folder and creates the row with
    status ``processing``. With ``process=true`` the pipeline runs as a
    background task; otherwise the client triggers it separately.
    """
    config = get_config()
    if len(videos) > len(PRESET_QUESTIONS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {len(PRESET_QUESTIONS)} videos per submission"
        )

    # Validate every file before anything is written
    uploads = [
        read_upload(video, "video", VIDEO_EXTENSIONS, config.max_video_size_mb * 1024 * 1024, index=index + 1)
        for index, video in enumerate(videos)
    ]
    has_document = document is not None and bool(document.filename)
    if has_document:
        uploads.append(
            read_upload(document, "document", DOCUMENT_EXTENSIONS, config.max_document_size_mb * 1024 * 1024)
        )

    paths = store_uploads(store, caller.user_id, uploads)
    video_files = [
        {
            "path": path,
            "name": upload.filename,
            "size": upload.size,
            "question_index": index,
        }
        for index, (upload, path) in enumerate(zip(uploads[:len(videos)], paths))
    ]
    document_path = paths[-1] if has_document else None

    submission = Submission(
        user_id=caller.user_id,
        video_files=video_files,
        document_file=document_path,
        notes=notes,
        status=PROCESSING,
    )
    session.add(submission)
    try:
        session.commit()
    except Exception:
        session.rollback()
        discard_uploads(store, paths)
        raise
    session.refresh(submission)
    logger.info(f"Submission created: {submission.id} ({len(video_files)} video(s))")

    if process:
        background_tasks.add_task(processor.process_submission, submission.id)

    return SubmissionResponse.model_validate(submission)


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    user_id: Optional[str] = Query(None, description="Filter by owner (admins only)"),
    limit: int = Query(50, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
):
    """List the caller's submissions; admins see everyone's."""
    statement = select(Submission)
    count_statement = select(func.count()).select_from(Submission)

    owner = user_id if caller.is_admin else caller.user_id
    if owner:
        statement = statement.where(Submission.user_id == owner)
        count_statement = count_statement.where(Submission.user_id == owner)
    if status_filter:
        statement = statement.where(Submission.status == status_filter)
        count_statement = count_statement.where(Submission.status == status_filter)

    total = session.exec(count_statement).one()
    statement = statement.order_by(Submission.created_at.desc()).limit(limit).offset(offset)
    submissions = session.exec(statement).all()

    return SubmissionListResponse(
        submissions=[SubmissionResponse.model_validate(s) for s in submissions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    submission_id: str,
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
):
    """Get submission details by ID."""
    return SubmissionResponse.model_validate(get_accessible_submission(session, submission_id, caller))


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_submission(
    submission_id: str,
    caller: Caller = Depends(get_caller),
    session: Session = Depends(get_db_session),
    store: BlobStore = Depends(get_blob_store),
):
    """Delete a submission and any files still stored for it."""
    submission = get_accessible_submission(session, submission_id, caller)

    paths = [v.get("path") for v in submission.video_files or [] if v.get("path")]
    if submission.document_file:
        paths.append(submission.document_file)
    try:
        store.remove(paths)
    except Exception as e:
        logger.warning(f"Failed to delete files for submission {submission_id}: {e}")

    session.delete(submission)
    session.commit()
    logger.info(f"Submission {submission_id} deleted by {caller.user_id}")

"""
Dependency injection utilities for FastAPI.

Services are built once from the cached Config and reused; tests replace
them through ``app.dependency_overrides``.
"""

from dataclasses import dataclass
from typing import Generator, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlmodel import Session

from infosight.config import Config, get_config
from infosight.db import build_engine, init_db
from infosight.storage import BlobStore, LocalBlobStore
from infosight.worker.analyzer import InsightAnalyzer
from infosight.worker.extractor import DocumentExtractor
from infosight.worker.llm import ChatClient
from infosight.worker.processor import SubmissionProcessor
from infosight.worker.publisher import StatusPublisher
from infosight.worker.reprocess import TranscriptReprocessor
from infosight.worker.transcriber import WhisperTranscriber

ROLES = ("user", "team_lead", "admin")

limiter = Limiter(key_func=get_remote_address)

_engine = None
_blob_store: Optional[BlobStore] = None
_processor: Optional[SubmissionProcessor] = None
_reprocessor: Optional[TranscriptReprocessor] = None


def get_engine():
    """Engine singleton; creates tables on first use."""
    global _engine
    if _engine is None:
        config = get_config()
        config.ensure_directories()
        _engine = build_engine(config)
        init_db(_engine)
    return _engine


def get_db_session() -> Generator[Session, None, None]:
    """Dependency to get database session."""
    with Session(get_engine()) as session:
        yield session


def get_blob_store() -> BlobStore:
    """Dependency to get the blob store singleton."""
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(get_config().bucket_dir)
    return _blob_store


def _build_analyzer(config: Config, client: ChatClient) -> InsightAnalyzer:
    return InsightAnalyzer(
        client,
        model=config.analysis_model,
        temperature=config.analysis_temperature,
        timeout=config.analysis_timeout_sec,
    )


def get_processor() -> SubmissionProcessor:
    """Dependency to get the pipeline singleton."""
    global _processor
    if _processor is None:
        config = get_config()
        client = ChatClient(api_key=config.openai_api_key or "", base_url=config.openai_base_url)
        _processor = SubmissionProcessor(
            config=config,
            engine=get_engine(),
            storage=get_blob_store(),
            transcriber=WhisperTranscriber(
                api_key=config.openai_api_key or "",
                model=config.transcription_model,
                base_url=config.openai_base_url,
                timeout=config.transcription_timeout_sec,
            ),
            extractor=DocumentExtractor(client, model=config.extraction_model, timeout=config.extraction_timeout_sec),
            analyzer=_build_analyzer(config, client),
            publisher=StatusPublisher(config.redis_url),
        )
    return _processor


def get_reprocessor() -> TranscriptReprocessor:
    """Dependency to get the reprocessing job singleton."""
    global _reprocessor
    if _reprocessor is None:
        config = get_config()
        client = ChatClient(api_key=config.openai_api_key or "", base_url=config.openai_base_url)
        _reprocessor = TranscriptReprocessor(config, get_engine(), _build_analyzer(config, client))
    return _reprocessor


def validate_api_keys() -> Dict[str, bool]:
    """Check which API keys are configured."""
    return {
        "openai": bool(get_config().openai_api_key),
    }


async def verify_api_key(x_api_key: Optional[str] = Header(default=None)):
    """
    Verify the X-API-Key header if ADMIN_API_KEY is set.
    If it is empty, the check is disabled (development mode).
    """
    expected = get_config().admin_api_key
    if expected and x_api_key != expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")


@dataclass
class Caller:
    """Identity forwarded by the auth proxy."""
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_access(self, owner_id: str) -> bool:
        return self.is_admin or self.user_id == owner_id


def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    """Dependency resolving the calling user from X-User-Id / X-User-Role."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    role = (x_user_role or "user").lower()
    if role not in ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid role: {x_user_role}")
    return Caller(user_id=x_user_id, role=role)


def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    """Dependency that only lets admins through."""
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return caller

"""
Shared fixtures: in-memory database, temporary blob store, mocked pipeline services.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlmodel import Session

from infosight.api.models import Submission, PROCESSING
from infosight.config import Config
from infosight.db import build_engine, init_db
from infosight.storage import LocalBlobStore
from infosight.worker.processor import SubmissionProcessor
from infosight.worker.sanitizer import AnalysisResult


@pytest.fixture
def config(tmp_path):
    return Config(
        _env_file=None,
        database_url="sqlite://",
        storage_dir=tmp_path / "storage",
        openai_api_key="test-key",
        reprocess_delay_sec=0,
        redis_url=None,
        admin_api_key=None,
    )


@pytest.fixture
def engine(config):
    engine = build_engine(config)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(config):
    return LocalBlobStore(config.bucket_dir)


@pytest.fixture
def analysis_result():
    return AnalysisResult(
        key_points=["Closed the Q3 pipeline review", "Onboarded two new clients"],
        extracted_kpis=["Revenue Growth: 12%", "New Clients: 2"],
        sentiment="positive",
        ai_quotes=["We beat the target by a wide margin"],
    )


@pytest.fixture
def transcriber():
    mock = MagicMock()
    mock.transcribe.return_value = "This week revenue grew by twelve percent and we signed two clients."
    return mock


@pytest.fixture
def extractor():
    return MagicMock()


@pytest.fixture
def analyzer(analysis_result):
    mock = MagicMock()
    mock.analyze.return_value = analysis_result
    return mock


@pytest.fixture
def publisher():
    return MagicMock()


@pytest.fixture
def processor(config, engine, store, transcriber, extractor, analyzer, publisher):
    return SubmissionProcessor(
        config=config,
        engine=engine,
        storage=store,
        transcriber=transcriber,
        extractor=extractor,
        analyzer=analyzer,
        publisher=publisher,
    )


def create_submission(engine, **fields) -> str:
    """Insert a submission row and return its id."""
    fields.setdefault("user_id", "user-1")
    fields.setdefault("status", PROCESSING)
    fields.setdefault("video_files", [])
    with Session(engine) as session:
        submission = Submission(**fields)
        session.add(submission)
        session.commit()
        return submission.id


def load_submission(engine, submission_id: str) -> Submission:
    with Session(engine) as session:
        submission = session.get(Submission, submission_id)
        session.expunge(submission)
        return submission


def stored_video(store, user_id="user-1", index=0, data=b"fake-video-bytes", name="answer.webm"):
    """Upload a video blob and return its video_files entry."""
    path = f"{user_id}/video_{index + 1}_{datetime.now(timezone.utc).strftime('%H%M%S%f')}.webm"
    store.upload(path, data)
    return {"path": path, "name": name, "size": len(data), "question_index": index}

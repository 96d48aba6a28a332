"""
Tests for configuration loading.
"""

import json
import logging

import pytest
from pydantic import ValidationError

from infosight.config import Config
from infosight.logging_setup import JSONFormatter


def test_defaults(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    config = Config(_env_file=None)

    assert config.transcription_model == "whisper-1"
    assert config.transcription_timeout_sec == 600
    assert config.analysis_timeout_sec == 300
    assert config.reprocess_min_transcript_chars == 50
    assert config.openai_api_key is None
    assert config.bucket_dir.as_posix() == "storage/submissions"


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path))
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    config = Config(_env_file=None)

    assert config.openai_api_key == "sk-env"
    assert config.bucket_dir == tmp_path / "submissions"
    assert config.log_level == "DEBUG"
    assert config.cors_origin_list == ["https://a.example", "https://b.example"]


def test_invalid_log_level():
    with pytest.raises(ValidationError):
        Config(_env_file=None, log_level="LOUD")


def test_invalid_log_format():
    with pytest.raises(ValidationError):
        Config(_env_file=None, log_format="xml")


def test_ensure_directories(tmp_path):
    db_path = tmp_path / "data" / "infosight.db"
    config = Config(_env_file=None, storage_dir=tmp_path / "blobs", database_url=f"sqlite:///{db_path}")

    config.ensure_directories()

    assert config.bucket_dir.is_dir()
    assert db_path.parent.is_dir()


def test_json_log_lines():
    record = logging.LogRecord("infosight.worker", logging.ERROR, __file__, 1, "Submission %s failed", ("sub-1",), None)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "ERROR"
    assert payload["logger"] == "infosight.worker"
    assert payload["message"] == "Submission sub-1 failed"


def test_lease_must_outlive_longest_stage():
    with pytest.raises(ValidationError):
        Config(_env_file=None, lease_ttl_sec=600)

    config = Config(_env_file=None, lease_ttl_sec=601)
    assert config.lease_ttl_sec == 601

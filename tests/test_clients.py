"""
Tests for the transcription and chat-completion clients and the insight analyzer.
"""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock

import pytest
import requests

from infosight.worker.analyzer import AnalysisError, InsightAnalyzer
from infosight.worker.llm import ChatClient, LLMError, LLMTimeout
from infosight.worker import publisher as publisher_module
from infosight.worker.prompts import SUBMISSION_SYSTEM_MESSAGE
from infosight.worker.publisher import CHANNEL, StatusPublisher
from infosight.worker.sanitizer import DEFAULT_KEY_POINTS
from infosight.worker.transcriber import (
    CONNECT_TIMEOUT,
    TranscriptionError,
    TranscriptionTimeout,
    WhisperTranscriber,
)


def make_response(status_code=200, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text or json.dumps(payload or {})
    response.json.return_value = payload or {}
    return response


def chat_payload(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150},
    }


def drip_handler(body: bytes, delay: float):
    """Request handler that answers 200 and sends ``body`` one byte per ``delay`` seconds."""

    class DripHandler(BaseHTTPRequestHandler):

        def do_POST(self):
            self.rfile.read(int(self.headers.get("Content-Length", 0)))
            self.send_response(200)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            for i in range(len(body)):
                try:
                    self.wfile.write(body[i:i + 1])
                    self.wfile.flush()
                except OSError:
                    return
                time.sleep(delay)

        def log_message(self, format, *args):
            pass

    return DripHandler


@pytest.fixture
def drip_server():
    """Start a local server per call; returns its base URL."""
    servers = []

    def start(body: bytes, delay: float = 0.0) -> str:
        server = ThreadingHTTPServer(("127.0.0.1", 0), drip_handler(body, delay))
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}/v1"

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()


def local_session():
    session = requests.Session()
    session.trust_env = False
    return session


class TestWhisperTranscriber:

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def transcriber(self, session):
        return WhisperTranscriber(api_key="sk-test", base_url="https://api.example.com/v1/", timeout=600, session=session)

    def test_transcribe_posts_multipart(self, transcriber, session):
        session.post.return_value = make_response(payload={"text": "  Hello team.  "})

        text = transcriber.transcribe(b"video-bytes", "answer.webm")

        assert text == "Hello team."
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.example.com/v1/audio/transcriptions"
        assert kwargs["headers"] == {"Authorization": "Bearer sk-test"}
        assert kwargs["data"] == {"model": "whisper-1"}
        assert kwargs["files"]["file"][0] == "answer.webm"
        assert kwargs["files"]["file"][1] == b"video-bytes"
        assert kwargs["timeout"] == (CONNECT_TIMEOUT, 600)

    def test_timeout_raises_transcription_timeout(self, transcriber, session):
        session.post.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(TranscriptionTimeout) as exc_info:
            transcriber.transcribe(b"video-bytes", "answer.webm")
        assert exc_info.value.timeout_sec == 600

    def test_api_error_keeps_status(self, transcriber, session):
        session.post.return_value = make_response(status_code=413, text="file too large")

        with pytest.raises(TranscriptionError) as exc_info:
            transcriber.transcribe(b"video-bytes", "answer.webm")
        assert exc_info.value.status_code == 413
        assert exc_info.value.response_text == "file too large"
        assert not isinstance(exc_info.value, TranscriptionTimeout)

    def test_connection_error(self, transcriber, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TranscriptionError, match="Transcription request failed"):
            transcriber.transcribe(b"video-bytes", "answer.webm")

    def test_empty_and_unsupported_payloads(self, transcriber, session):
        with pytest.raises(TranscriptionError, match="empty"):
            transcriber.transcribe(b"", "answer.webm")
        with pytest.raises(TranscriptionError, match="Unsupported video format"):
            transcriber.transcribe(b"data", "answer.exe")
        session.post.assert_not_called()

    def test_missing_api_key(self, session):
        transcriber = WhisperTranscriber(api_key="", session=session)

        with pytest.raises(TranscriptionError, match="not configured"):
            transcriber.transcribe(b"data", "answer.webm")
        session.post.assert_not_called()

    def test_slow_reply_hits_total_deadline(self, drip_server):
        body = json.dumps({"text": "a" * 30}).encode()
        transcriber = WhisperTranscriber(
            api_key="sk-test", base_url=drip_server(body, delay=0.1), timeout=1, session=local_session()
        )

        start = time.monotonic()
        with pytest.raises(TranscriptionTimeout) as exc_info:
            transcriber.transcribe(b"video-bytes", "answer.webm")

        # Every byte arrives well inside the socket read timeout
        assert time.monotonic() - start < 2.5
        assert exc_info.value.timeout_sec == 1

    def test_reply_within_deadline(self, drip_server):
        body = json.dumps({"text": "Hello team."}).encode()
        transcriber = WhisperTranscriber(
            api_key="sk-test", base_url=drip_server(body), timeout=5, session=local_session()
        )

        assert transcriber.transcribe(b"video-bytes", "answer.webm") == "Hello team."


class TestChatClient:

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def client(self, session):
        return ChatClient(api_key="sk-test", base_url="https://api.example.com/v1", session=session)

    def test_chat_sends_system_and_user_messages(self, client, session):
        session.post.return_value = make_response(payload=chat_payload("{}"))

        content, usage = client.chat("prompt text", "system text", model="gpt-4o", temperature=0.1, timeout=300)

        assert content == "{}"
        assert usage == {"input_tokens": 100, "output_tokens": 50, "model": "gpt-4o"}
        args, kwargs = session.post.call_args
        assert args[0] == "https://api.example.com/v1/chat/completions"
        assert kwargs["json"]["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "prompt text"},
        ]
        assert kwargs["json"]["temperature"] == 0.1
        assert "max_tokens" not in kwargs["json"]
        assert kwargs["timeout"] == 300

    def test_timeout(self, client, session):
        session.post.side_effect = requests.exceptions.Timeout()

        with pytest.raises(LLMTimeout):
            client.chat("p", "s", model="gpt-4o", timeout=5)

    def test_error_status(self, client, session):
        session.post.return_value = make_response(status_code=429, text="rate limited")

        with pytest.raises(LLMError) as exc_info:
            client.chat("p", "s", model="gpt-4o")
        assert exc_info.value.status_code == 429

    def test_malformed_body(self, client, session):
        session.post.return_value = make_response(payload={"choices": []})

        with pytest.raises(LLMError, match="Unexpected chat API response format"):
            client.chat("p", "s", model="gpt-4o")

    def test_slow_reply_hits_total_deadline(self, drip_server):
        body = json.dumps(chat_payload("x" * 40)).encode()
        client = ChatClient(api_key="sk-test", base_url=drip_server(body, delay=0.05), session=local_session())

        start = time.monotonic()
        with pytest.raises(LLMTimeout):
            client.chat("p", "s", model="gpt-4o", timeout=1)

        assert time.monotonic() - start < 2.5

    def test_reply_within_deadline(self, drip_server):
        client = ChatClient(
            api_key="sk-test", base_url=drip_server(json.dumps(chat_payload("{}")).encode()), session=local_session()
        )

        content, usage = client.chat("p", "s", model="gpt-4o", timeout=5)

        assert content == "{}"
        assert usage["input_tokens"] == 100


class TestInsightAnalyzer:

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def analyzer(self, client):
        return InsightAnalyzer(client, model="gpt-4o", temperature=0.1, timeout=300)

    def test_parses_reply(self, analyzer, client):
        client.chat.return_value = (
            '```json\n{"key_points": ["Hit target"], "extracted_kpis": ["Sales: 40"], '
            '"sentiment": "positive", "ai_quotes": []}\n```',
            {},
        )

        result = analyzer.analyze("prompt")

        assert result.extracted_kpis == ["Sales: 40"]
        assert result.used_fallback is False
        assert client.chat.call_args.args == ("prompt", SUBMISSION_SYSTEM_MESSAGE)
        assert client.chat.call_args.kwargs["timeout"] == 300

    def test_api_error_status_uses_defaults(self, analyzer, client):
        client.chat.side_effect = LLMError("Chat API error 500", status_code=500)

        result = analyzer.analyze("prompt")

        assert result.used_fallback is True
        assert result.key_points == DEFAULT_KEY_POINTS
        assert result.fallback_reason == "API error 500"

    def test_timeout_is_fatal(self, analyzer, client):
        client.chat.side_effect = LLMTimeout(300)

        with pytest.raises(AnalysisError) as exc_info:
            analyzer.analyze("prompt")
        assert exc_info.value.timed_out is True

    def test_transport_failure_is_fatal(self, analyzer, client):
        client.chat.side_effect = LLMError("Chat API request failed: connection reset")

        with pytest.raises(AnalysisError) as exc_info:
            analyzer.analyze("prompt")
        assert exc_info.value.timed_out is False


class TestStatusPublisher:

    def test_publishes_json_on_channel(self, monkeypatch):
        redis_client = MagicMock()
        monkeypatch.setattr(publisher_module.sync_redis.Redis, "from_url", MagicMock(return_value=redis_client))

        publisher = StatusPublisher("redis://localhost:6379/0")
        publisher.publish("sub-1", "failed", "boom")

        channel, message = redis_client.publish.call_args.args
        assert channel == CHANNEL
        assert json.loads(message) == {"submission_id": "sub-1", "status": "failed", "error": "boom"}

    def test_unavailable_redis_is_ignored(self, monkeypatch):
        redis_client = MagicMock()
        redis_client.ping.side_effect = ConnectionError("refused")
        monkeypatch.setattr(publisher_module.sync_redis.Redis, "from_url", MagicMock(return_value=redis_client))

        publisher = StatusPublisher("redis://localhost:6379/0")
        publisher.publish("sub-1", "completed")

        redis_client.publish.assert_not_called()

    def test_disabled_without_url(self):
        StatusPublisher(None).publish("sub-1", "completed")

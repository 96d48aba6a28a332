"""
Whisper API Transcription Client

This module provides a client for transcribing submission videos with an
OpenAI-compatible ``/audio/transcriptions`` endpoint. Video bytes are sent
as multipart form data. The whole call, upload and reply included, runs
under one wall-clock budget and is never retried.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Optional

import requests

from .deadline import DeadlineExceeded, post_within

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """Exception raised for transcription API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class TranscriptionTimeout(TranscriptionError):
    """The transcription call exceeded its time budget."""

    def __init__(self, timeout_sec: float):
        super().__init__(f"Transcription timed out after {timeout_sec:g}s")
        self.timeout_sec = timeout_sec


# Supported upload formats for the transcription endpoint
SUPPORTED_FORMATS = {'.mp3', '.mp4', '.mpeg', '.mpga', '.m4a', '.wav', '.webm', '.ogg', '.flac', '.mov'}
MAX_FILE_SIZE_MB = 25
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

CONNECT_TIMEOUT = 10


class WhisperTranscriber:
    """
    A client for transcribing video/audio bytes with a Whisper-style API.

    Attributes:
        api_key: The API key for authentication
        model: The speech-to-text model (default: whisper-1)
        timeout: Total time budget in seconds for one transcription call

    Example:
        >>> transcriber = WhisperTranscriber(api_key="your-api-key")
        >>> text = transcriber.transcribe(video_bytes, "video_1.webm")
    """

    def __init__(
        self,
        api_key: str,
        model: str = "whisper-1",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 600,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the WhisperTranscriber.

        Args:
            api_key: The API key for authentication
            model: The speech-to-text model
            base_url: Base URL of the OpenAI-compatible API
            timeout: Time budget for one transcription call in seconds
            session: Optional requests session (shared connection pool)
        """
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/audio/transcriptions"
        self.timeout = timeout
        self.session = session or requests.Session()
        if not api_key:
            logger.warning("Transcription API key not provided. Transcription will fail.")
        logger.info(f"WhisperTranscriber initialized with model: {model}")

    def _validate(self, data: bytes, filename: str) -> None:
        """
        Validate the payload before upload.

        Raises:
            TranscriptionError: If the payload is empty or the format is unsupported
        """
        if not data:
            raise TranscriptionError(f"Video file is empty: {filename}")

        file_ext = Path(filename).suffix.lower()
        if file_ext and file_ext not in SUPPORTED_FORMATS:
            raise TranscriptionError(
                f"Unsupported video format: {file_ext}. "
                f"Supported formats: {', '.join(sorted(SUPPORTED_FORMATS))}"
            )

        size_mb = len(data) / (1024 * 1024)
        if len(data) > MAX_FILE_SIZE_BYTES:
            # The API enforces the limit; surface it early in the logs
            logger.warning(f"{filename} is {size_mb:.1f}MB, above the {MAX_FILE_SIZE_MB}MB API limit")

    def _parse_response(self, response: Dict) -> str:
        return (response.get("text") or "").strip()

    def transcribe(self, data: bytes, filename: str = "video.webm") -> str:
        """
        Transcribe one video.

        Args:
            data: Raw video/audio bytes
            filename: Original file name, used for the multipart part

        Returns:
            The transcript text (may be empty for silent media)

        Raises:
            TranscriptionTimeout: If the call exceeds the time budget
            TranscriptionError: For any other API or transport failure
        """
        self._validate(data, filename)

        if not self.api_key:
            raise TranscriptionError("Transcription API key not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        files = {"file": (filename, data, "application/octet-stream")}
        form = {"model": self.model}

        logger.info(f"Sending {filename} ({len(data) / (1024 * 1024):.2f}MB) to transcription API")
        start_time = time.time()
        try:
            response = post_within(
                self.session,
                self.url,
                self.timeout,
                headers=headers,
                data=form,
                files=files,
                timeout=(CONNECT_TIMEOUT, self.timeout),
            )
        except (DeadlineExceeded, requests.exceptions.Timeout):
            raise TranscriptionTimeout(self.timeout)
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Transcription request failed: {e}")

        duration = time.time() - start_time
        logger.info(f"Transcription API response status: {response.status_code} ({duration:.1f}s)")

        if not response.ok:
            raise TranscriptionError(
                f"Transcription API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
                response_text=response.text,
            )

        try:
            text = self._parse_response(response.json())
        except ValueError as e:
            raise TranscriptionError(f"Unexpected transcription response: {e}", status_code=response.status_code)

        logger.info(f"Transcription completed, length: {len(text)}")
        return text

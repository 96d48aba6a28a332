"""
Chat-completion client for OpenAI-compatible APIs.

Shared by the insight analyzer and the document extractor.
"""

import logging
import time
from typing import Optional, Dict, List, Tuple, Any

import requests

from .deadline import DeadlineExceeded, post_within

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Exception raised for chat-completion API errors.

    ``status_code`` is set when the API answered with a non-2xx status and
    is None for transport failures.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class LLMTimeout(LLMError):
    """The chat-completion call exceeded its time budget."""

    def __init__(self, timeout_sec: float):
        super().__init__(f"Chat completion timed out after {timeout_sec:g}s")
        self.timeout_sec = timeout_sec


class ChatClient:
    """
    Minimal chat-completion client.

    Sends a messages array with a model and temperature and returns the
    first choice's message content.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()

        if not api_key:
            logger.warning("Chat API key not provided. Analysis will fail.")

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        temperature: float = 0.1,
        max_tokens: Optional[int] = None,
        timeout: float = 300,
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Call the chat-completion endpoint.

        Args:
            messages: Chat messages (role/content dicts).
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Optional cap on output tokens.
            timeout: Total time budget in seconds, also used as the socket read timeout.

        Returns:
            Tuple of (content, usage info).

        Raises:
            LLMTimeout: If the call exceeds the timeout.
            LLMError: If the API call fails or the response is malformed.
        """
        if not self.api_key:
            raise LLMError("Chat API key not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            start_time = time.time()
            response = post_within(
                self.session,
                f"{self.base_url}/chat/completions",
                timeout,
                headers=headers,
                json=payload,
                timeout=timeout
            )
            duration = time.time() - start_time
        except (DeadlineExceeded, requests.exceptions.Timeout):
            raise LLMTimeout(timeout)
        except requests.exceptions.RequestException as e:
            raise LLMError(f"Chat API request failed: {e}")

        if not response.ok:
            error_msg = f"Chat API error {response.status_code}: {response.text}"
            logger.error(error_msg)
            raise LLMError(error_msg, status_code=response.status_code, response_text=response.text)

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Unexpected chat API response format: {e}", status_code=response.status_code)

        usage = data.get("usage", {})
        usage_info = {
            "input_tokens": usage.get("prompt_tokens", 0),
            "output_tokens": usage.get("completion_tokens", 0),
            "model": model,
        }
        logger.info(
            f"Chat call successful ({duration:.1f}s). "
            f"Model: {model}. "
            f"Tokens: {usage.get('total_tokens', '?')}"
        )
        return content, usage_info

    def chat(self, prompt: str, system_message: str, model: str, **kwargs) -> Tuple[str, Dict[str, Any]]:
        """Convenience wrapper for a system + user message pair."""
        messages = [
            {"role": "system", "content": system_message},
            {"role": "user", "content": prompt},
        ]
        return self.complete(messages, model=model, **kwargs)

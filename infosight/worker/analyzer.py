"""
Insight extraction using a chat-completion model.

Turns a composed prompt into key points, KPI strings, a sentiment label and
quotes. API error statuses and unparsable replies degrade to default values;
timeouts and transport failures raise AnalysisError.
"""

import logging

from .llm import ChatClient, LLMError, LLMTimeout
from .prompts import SUBMISSION_SYSTEM_MESSAGE
from .sanitizer import AnalysisResult, parse_analysis

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """Raised when the analysis call could not be completed at all."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class InsightAnalyzer:
    """
    Calls the analysis model and parses its JSON reply.

    Example:
        >>> analyzer = InsightAnalyzer(ChatClient(api_key="..."))
        >>> result = analyzer.analyze(build_submission_prompt(transcript, None, notes))
        >>> result.extracted_kpis
    """

    def __init__(
        self,
        client: ChatClient,
        model: str = "gpt-4o",
        temperature: float = 0.1,
        timeout: float = 300,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.timeout = timeout

    def analyze(self, prompt: str, system_message: str = SUBMISSION_SYSTEM_MESSAGE) -> AnalysisResult:
        """
        Run one analysis call.

        Returns:
            Parsed AnalysisResult, or ``AnalysisResult.fallback`` when the API
            answered with an error status or the reply was not valid JSON.

        Raises:
            AnalysisError: On timeout or transport failure.
        """
        logger.info(f"Sending analysis prompt ({len(prompt)} chars) to {self.model}")
        try:
            content, _usage = self.client.chat(
                prompt,
                system_message,
                model=self.model,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except LLMTimeout as e:
            raise AnalysisError(f"Analysis timed out after {self.timeout:g}s", timed_out=True) from e
        except LLMError as e:
            if e.status_code is None:
                raise AnalysisError(f"Analysis request failed: {e}") from e
            logger.warning(f"Using default analysis result due to API error {e.status_code}")
            return AnalysisResult.fallback(f"API error {e.status_code}")

        result = parse_analysis(content)
        logger.info(
            f"Analysis parsed: {len(result.key_points)} key points, "
            f"{len(result.extracted_kpis)} KPIs, sentiment={result.sentiment}, "
            f"{len(result.ai_quotes)} quotes"
            + (" (defaults)" if result.used_fallback else "")
        )
        return result

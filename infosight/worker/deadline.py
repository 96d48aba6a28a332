"""
Wall-clock deadline for outbound API calls.

``requests`` timeouts bound each socket wait, not the call as a whole: a
server that trickles its reply one byte at a time never trips them. The
POST and the full body read run on a worker thread; the caller stops
waiting once the deadline passes.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import List

import requests

logger = logging.getLogger(__name__)


class DeadlineExceeded(Exception):
    """The call did not finish within its total time budget."""

    def __init__(self, deadline_sec: float):
        super().__init__(f"Request did not complete within {deadline_sec:g}s")
        self.deadline_sec = deadline_sec


def post_within(session: requests.Session, url: str, deadline_sec: float, **kwargs) -> requests.Response:
    """
    POST ``url`` and read the whole response body within ``deadline_sec``.

    Args:
        session: Session used for the request
        url: Target URL
        deadline_sec: Total budget covering upload, wait and body download
        **kwargs: Passed through to ``session.post``

    Returns:
        The response, with its body already read

    Raises:
        DeadlineExceeded: If the budget runs out first
        requests.exceptions.RequestException: For transport failures
    """
    opened: List[requests.Response] = []

    def _send() -> requests.Response:
        response = session.post(url, stream=True, **kwargs)
        opened.append(response)
        _ = response.content
        return response

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="infosight-http")
    future = executor.submit(_send)
    try:
        return future.result(timeout=deadline_sec)
    except FuturesTimeoutError:
        logger.warning(f"POST {url} exceeded its {deadline_sec:g}s budget, abandoning the request")
        for response in opened:
            response.close()
        raise DeadlineExceeded(deadline_sec)
    finally:
        # Never block on the abandoned request
        executor.shutdown(wait=False)

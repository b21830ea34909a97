"""Overpass API client with endpoint rotation and bounded retry."""

import logging
import time

import requests

from .constants import (
    OVERPASS_URLS, OVERPASS_MAX_ATTEMPTS, OVERPASS_BACKOFF, OVERPASS_HTTP_TIMEOUT,
)
from .errors import NetworkError

logger = logging.getLogger(__name__)

# Statuses that mean "busy, come back later" rather than "broken"
RETRYABLE_STATUSES = (429, 504)

_CAUSE_MESSAGES = {
    "timeout": "Request timeout - try reducing radius",
    "rate_limited": "Rate limited by every Overpass server - try again later",
}


class OverpassClient:
    """POST Overpass QL queries, failing over between mirror endpoints.

    The rotation index lives on the instance and only ever advances, so a
    server that failed once is not the first one tried by the next request.

    Parameters
    ----------
    endpoints : list[str] — interpreter URLs, tried round-robin
    session : requests.Session | None — injected for testing or pooling
    timeout : float — per-request socket timeout in seconds
    max_attempts : int — total attempts across all endpoints
    backoff : float — base wait in seconds; busy responses wait
        ``backoff * attempt``, other failures wait ``backoff``
    sleep : callable — wait function, replaced in tests
    """

    def __init__(self, endpoints=None, session=None,
                 timeout: float = OVERPASS_HTTP_TIMEOUT,
                 max_attempts: int = OVERPASS_MAX_ATTEMPTS,
                 backoff: float = OVERPASS_BACKOFF,
                 sleep=time.sleep):
        self.endpoints = list(endpoints or OVERPASS_URLS)
        if not self.endpoints:
            raise ValueError("At least one Overpass endpoint is required")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep
        self.index = 0

    @property
    def current_endpoint(self) -> str:
        return self.endpoints[self.index % len(self.endpoints)]

    def _advance(self):
        self.index += 1

    def fetch(self, query: str) -> str:
        """Run ``query`` and return the raw response body.

        Raises ``NetworkError`` once every attempt has failed.
        """
        cause = "server"
        detail = ""

        for attempt in range(1, self.max_attempts + 1):
            url = self.current_endpoint
            logger.info(f"Overpass request attempt {attempt}/{self.max_attempts} to {url}")
            retry_wait = self.backoff

            try:
                response = self.session.post(
                    url,
                    data={"data": query},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=self.timeout,
                )
            except requests.exceptions.Timeout:
                logger.warning(f"Overpass request to {url} timed out")
                cause, detail = "timeout", "client timeout"
                retry_wait = self.backoff * attempt
            except requests.exceptions.RequestException as e:
                logger.warning(f"Overpass request to {url} failed: {e}")
                cause, detail = "server", str(e)
            else:
                if 200 <= response.status_code < 300:
                    logger.info(f"Overpass returned {len(response.content)} bytes from {url}")
                    return response.text

                status = response.status_code
                detail = f"{status} {response.reason or ''}".strip()
                if status in RETRYABLE_STATUSES:
                    cause = "rate_limited" if status == 429 else "timeout"
                    retry_wait = self.backoff * attempt
                    logger.warning(f"Overpass server busy ({detail}) at {url}")
                else:
                    cause = "server"
                    logger.warning(f"Overpass server error ({detail}) at {url}")

            self._advance()
            if attempt < self.max_attempts:
                logger.info(f"Retrying in {retry_wait:.1f}s on {self.current_endpoint}")
                self.sleep(retry_wait)

        message = _CAUSE_MESSAGES.get(cause, f"Server returned: {detail}")
        logger.error(f"Overpass failed after {self.max_attempts} attempts: {message}")
        raise NetworkError(message, cause=cause)

"""
Async HTTP client shared by the adapters of one crawl run.

- One httpx.AsyncClient per run, closed when the run ends
- Politeness delay per funder host
- tenacity retry on timeouts and connection faults only; a 4xx/5xx
  answer is final and surfaces as httpx.HTTPStatusError
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)


DEFAULT_USER_AGENT = "GrantTracker/1.0 (+https://granttracker.co.uk)"
TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


@dataclass
class HostThrottle:
    """Spaces requests to one host at least `interval` seconds apart."""

    interval: float
    next_slot: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def wait(self) -> None:
        async with self.lock:
            delay = self.next_slot - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self.next_slot = time.monotonic() + self.interval


class HttpClient:
    """
    Rate-limited, retrying GET client.

    Usage:
        async with HttpClient(timeout=20) as http:
            html = await http.get_text("https://www.heritagefund.org.uk/funding")
    """

    def __init__(
        self,
        requests_per_second: float = 2.0,
        timeout: float = 20.0,
        max_retries: int = 2,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            requests_per_second: Ceiling per funder host
            timeout: Per-request timeout in seconds
            max_retries: Total attempts per request on transient faults
            user_agent: User-Agent header sent with every request
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.user_agent = user_agent
        self.transport = transport

        self._client: Optional[httpx.AsyncClient] = None
        self._throttles: dict[str, HostThrottle] = {}

    async def __aenter__(self) -> "HttpClient":
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            headers={
                "User-Agent": self.user_agent,
                "Accept-Language": "en-GB,en;q=0.9",
            },
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _throttle_for(self, url: str) -> HostThrottle:
        host = urlsplit(url).hostname or ""
        throttle = self._throttles.get(host)
        if throttle is None:
            throttle = self._throttles[host] = HostThrottle(interval=self.interval)
        return throttle

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """
        GET with throttling and transient-fault retry.

        Args:
            url: URL to fetch
            **kwargs: Passed to httpx (params, headers)

        Raises:
            httpx.HTTPStatusError: Non-2xx answer
            httpx.TimeoutException, httpx.NetworkError: Attempts exhausted
        """
        if self._client is None:
            raise RuntimeError("HttpClient used outside 'async with'")

        await self._throttle_for(url).wait()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.debug("http_retry", url=url, attempt=attempt.retry_state.attempt_number)
                response = await self._client.get(url, **kwargs)
                response.raise_for_status()

        logger.debug("http_get", url=url, status=response.status_code)
        return response

    async def get_text(self, url: str, **kwargs) -> str:
        return (await self.get(url, **kwargs)).text

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET asking for JSON; returns the decoded body."""
        headers = {"Accept": "application/json", **kwargs.pop("headers", {})}
        return (await self.get(url, headers=headers, **kwargs)).json()

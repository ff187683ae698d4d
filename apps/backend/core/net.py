"""
Politeness-aware HTTP client for job sources.

- per-host request spacing (process-wide throttle registry)
- bounded retries with exponential backoff + jitter (tenacity)
- anti-bot / challenge detection: blocked fetches are abandoned, never bypassed
- failures are reported through FetchResult instead of raised
"""
import time
import asyncio
import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

import metrics
from core.config import DEFAULT_USER_AGENT
from core.errors import RunCancelled
from core.normalize import normalize

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT = "text/html"
DEFAULT_ACCEPT_LANGUAGE = "pt-BR,pt;q=0.9,en;q=0.8"
MIN_TIMEOUT_SECONDS = 5
BLOCKED_STATUS_CODES = (401, 403, 429)
CHALLENGE_MARKERS = (
    "verify you are human",
    "cloudflare",
    "turnstile",
    "captcha",
)


class HostThrottle:
    """Single-holder lock guarding the next allowed request time for one host"""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.next_allowed_at = 0.0


class ThrottleRegistry:
    """
    Per-host request spacing shared by every fetch in the process.

    Lifecycle: one registry is created lazily by get_throttle_registry() and
    lives until the process exits. Host state is only read or written while
    holding that host's lock, so concurrent callers to one host are serialized
    and spaced by at least `interval_seconds`.
    """

    def __init__(
        self,
        interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_seconds = max(0.0, interval_seconds)
        self._clock = clock
        self._hosts: Dict[str, HostThrottle] = {}

    def _get(self, host: str) -> HostThrottle:
        key = host.lower()
        throttle = self._hosts.get(key)
        if throttle is None:
            throttle = HostThrottle()
            self._hosts[key] = throttle
        return throttle

    async def wait(self, host: str, cancel: Optional[asyncio.Event] = None):
        """Block until a request to `host` is allowed, then reserve the next slot."""
        throttle = self._get(host)
        async with throttle.lock:
            delay = throttle.next_allowed_at - self._clock()
            if delay > 0:
                logger.debug(f"[net] Throttling {host} for {delay:.2f}s")
                await asyncio.sleep(delay)
            if cancel is not None and cancel.is_set():
                raise RunCancelled(f"cancelled while waiting for {host}")
            throttle.next_allowed_at = self._clock() + self.interval_seconds

    def hosts(self):
        return list(self._hosts.keys())


_throttle_registry: Optional[ThrottleRegistry] = None


def get_throttle_registry(interval_seconds: float = 1.0) -> ThrottleRegistry:
    """Process-wide throttle registry (created on first use)."""
    global _throttle_registry
    if _throttle_registry is None:
        _throttle_registry = ThrottleRegistry(interval_seconds)
    return _throttle_registry


class RetryableResponse(Exception):
    """Transient HTTP status (5xx / 429) signalled to the retry policy"""

    def __init__(self, response: httpx.Response):
        super().__init__(f"retryable status {response.status_code}")
        self.response = response


class FetchResult:
    """Outcome of one logical fetch (after retries)"""

    OK = "ok"
    BLOCKED = "blocked"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"
    INVALID_URL = "invalid_url"

    def __init__(
        self,
        url: str,
        reason: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        self.body = body

    def is_success(self) -> bool:
        return self.reason == self.OK and self.body is not None

    @property
    def blocked(self) -> bool:
        return self.reason == self.BLOCKED

    def __repr__(self):
        return f"FetchResult(reason={self.reason}, status={self.status_code}, url={self.url})"


def is_blocked(status_code: int, body: Optional[str], check_markers: bool = True) -> bool:
    """Anti-bot classification: auth/forbidden/rate-limited statuses or challenge pages."""
    if status_code in BLOCKED_STATUS_CODES:
        return True
    if not check_markers or not body:
        return False
    normalized = normalize(body)
    return any(marker in normalized for marker in CHALLENGE_MARKERS)


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


class SourceHTTPClient:
    """HTTP client with per-host politeness, retries and block detection"""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout_seconds: float = 20,
        max_retries: int = 3,
        initial_backoff_ms: int = 500,
        throttle: Optional[ThrottleRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = httpx.Timeout(max(MIN_TIMEOUT_SECONDS, timeout_seconds))
        self.max_retries = max(0, max_retries)
        self.initial_backoff_ms = max(0, initial_backoff_ms)
        self.throttle = throttle or get_throttle_registry()
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SourceHTTPClient":
        return cls(
            user_agent=settings.user_agent,
            timeout_seconds=settings.http_timeout_seconds,
            max_retries=settings.max_retries,
            initial_backoff_ms=settings.initial_backoff_ms,
            throttle=get_throttle_registry(settings.host_interval_seconds),
            transport=transport,
        )

    def _get_headers(self, accept: Optional[str] = None, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": accept or DEFAULT_ACCEPT,
            "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    def _retrying(self) -> AsyncRetrying:
        # initial_backoff * 2^(attempt-1) plus 20-250ms jitter
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_backoff_ms / 1000.0, max=30) + wait_random(0.02, 0.25),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError, RetryableResponse)),
            reraise=True,
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        host: str,
        method: str,
        url: str,
        headers: Dict[str, str],
        json_body: Optional[Any],
        cancel: Optional[asyncio.Event],
    ) -> httpx.Response:
        async for attempt in self._retrying():
            with attempt:
                if cancel is not None and cancel.is_set():
                    raise RunCancelled(f"cancelled before fetching {url}")
                await self.throttle.wait(host, cancel)

                start_time = time.time()
                response = await client.request(method, url, headers=headers, json=json_body)
                elapsed_ms = int((time.time() - start_time) * 1000)
                logger.info(f"[net] {method} {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

                if _is_retryable_status(response.status_code):
                    raise RetryableResponse(response)
                return response

    async def fetch(
        self,
        url: str,
        source_name: str,
        method: str = "GET",
        json_body: Optional[Any] = None,
        accept: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        check_markers: bool = True,
        cancel: Optional[asyncio.Event] = None,
    ) -> FetchResult:
        """
        Fetch a URL politely.

        Never raises for HTTP or network failures; inspect FetchResult.reason.
        Raises RunCancelled when `cancel` is set, and lets asyncio.CancelledError
        propagate.
        """
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            logger.warning(f"[net] Invalid URL for source {source_name}: {url}")
            return self._result(url, FetchResult.INVALID_URL)

        if cancel is not None and cancel.is_set():
            raise RunCancelled(f"cancelled before fetching {url}")

        request_headers = self._get_headers(accept, headers)

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, transport=self._transport) as client:
            try:
                response = await self._send(client, parsed.hostname, method.upper(), url, request_headers, json_body, cancel)
            except RetryableResponse as e:
                status = e.response.status_code
                if is_blocked(status, None):
                    logger.warning(f"[net] {source_name} blocked at {url} (status={status}) after retries. Skipping without bypass.")
                    return self._result(url, FetchResult.BLOCKED, status)
                logger.warning(f"[net] {source_name} HTTP failure {status} at {url} after {self.max_retries + 1} attempts")
                return self._result(url, FetchResult.HTTP_ERROR, status)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                logger.warning(f"[net] {source_name} network error at {url}: {e}")
                return self._result(url, FetchResult.NETWORK_ERROR)
            except RunCancelled:
                raise
            except Exception as e:
                logger.warning(f"[net] {source_name} unexpected error fetching {url}: {e}")
                return self._result(url, FetchResult.NETWORK_ERROR)

            body = response.text
            if is_blocked(response.status_code, body, check_markers):
                logger.warning(
                    f"[net] {source_name} blocked or challenged at {url} (status={response.status_code}). "
                    f"Skipping without bypass."
                )
                return self._result(url, FetchResult.BLOCKED, response.status_code)

            if not response.is_success:
                logger.warning(f"[net] {source_name} HTTP failure {response.status_code} at {url}")
                return self._result(url, FetchResult.HTTP_ERROR, response.status_code)

            return self._result(url, FetchResult.OK, response.status_code, body)

    async def get_text(self, url: str, source_name: str, cancel: Optional[asyncio.Event] = None) -> Optional[str]:
        """GET and return the body, or None on any failure."""
        result = await self.fetch(url, source_name, cancel=cancel)
        return result.body if result.is_success() else None

    def _result(self, url: str, reason: str, status_code: Optional[int] = None, body: Optional[str] = None) -> FetchResult:
        metrics.record_fetch(reason)
        return FetchResult(url, reason, status_code, body)

"""
Shared HTTP Fetcher
===================

One aiohttp session per import run, with browser-identifying headers, a
certifi-backed SSL context and explicit per-request timeouts. Every helper
returns ``None`` (or a failed ``FetchResponse``) on transport failure
instead of raising; only cancellation propagates.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Any

import aiohttp
import certifi

from ..config.settings import NewsForgeSettings, get_settings
from ..utils.logging import get_logger_for_component


@dataclass
class FetchResponse:
    """Result of one HTTP request."""

    url: str
    success: bool
    status: int = 0
    final_url: Optional[str] = None
    text: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    fetch_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.final_url:
            self.final_url = self.url
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", self.headers.get("content-type", "")).lower()


class HttpFetcher:
    """Browser-like HTTP client shared by every pipeline stage.

    Use as an async context manager, or call ``close()`` when done::

        async with HttpFetcher(settings) as http:
            page = await http.fetch_html(url)
    """

    def __init__(self, settings: Optional[NewsForgeSettings] = None, limiter: Any = None):
        """Initialize fetcher.

        Args:
            settings: Application settings (default: global settings)
            limiter: Optional shared rate limiter with an async ``acquire()``
        """
        self.settings = settings or get_settings()
        self.limiter = limiter
        self.logger = get_logger_for_component("http")
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def default_headers(self) -> Dict[str, str]:
        http = self.settings.http
        return {
            "User-Agent": http.user_agent,
            "Accept": http.accept,
            "Accept-Language": http.accept_language,
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
        }

    async def __aenter__(self) -> "HttpFetcher":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                ssl=self.ssl_context,
                limit=self.settings.http.connect_limit,
                limit_per_host=5,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.settings.http.page_timeout),
                headers=self.default_headers,
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @asynccontextmanager
    async def _request(self, method: str, url: str, timeout: float, **kwargs):
        if self.limiter is not None:
            await self.limiter.acquire()
        session = await self._ensure_session()
        async with session.request(
            method, url, timeout=aiohttp.ClientTimeout(total=timeout), **kwargs
        ) as response:
            yield response

    async def fetch_html(self, url: str, timeout: Optional[float] = None) -> FetchResponse:
        """GET a page and decode its body as text.

        Returns:
            FetchResponse; ``success`` is False for non-200 status or transport failure
        """
        timeout = timeout or self.settings.http.page_timeout
        try:
            async with self._request("GET", url, timeout) as response:
                headers = dict(response.headers)
                if response.status != 200:
                    self.logger.debug(f"HTTP {response.status} for {url}")
                    return FetchResponse(
                        url=url,
                        success=False,
                        status=response.status,
                        final_url=str(response.url),
                        headers=headers,
                        error=f"HTTP {response.status}: {response.reason}",
                    )

                raw = await response.content.read(self.settings.http.max_page_bytes)
                charset = response.charset or "utf-8"
                return FetchResponse(
                    url=url,
                    success=True,
                    status=response.status,
                    final_url=str(response.url),
                    text=raw.decode(charset, errors="replace"),
                    headers=headers,
                )

        except asyncio.TimeoutError:
            self.logger.warning(f"Timeout after {timeout}s fetching {url}", extra={"source_url": url})
            return FetchResponse(url=url, success=False, error=f"Request timeout after {timeout}s")

        except (aiohttp.ClientError, ValueError, LookupError) as e:
            self.logger.warning(f"Fetch failed for {url}: {e}", extra={"source_url": url})
            return FetchResponse(url=url, success=False, error=f"Fetch error: {e}")

    async def follow_redirects(
        self, url: str, max_redirects: int = 5, timeout: float = 10.0
    ) -> Optional[str]:
        """Follow redirects and return the final effective URL, or None."""
        try:
            async with self._request(
                "GET", url, timeout, allow_redirects=True, max_redirects=max_redirects
            ) as response:
                return str(response.url)

        except asyncio.TimeoutError:
            self.logger.debug(f"Redirect lookup timed out for {url}")
            return None

        except (aiohttp.ClientError, ValueError) as e:
            self.logger.debug(f"Redirect lookup failed for {url}: {e}")
            return None

    async def head(self, url: str, timeout: float = 5.0) -> Optional[FetchResponse]:
        """HEAD request returning status and headers, or None."""
        try:
            async with self._request("HEAD", url, timeout, allow_redirects=True) as response:
                return FetchResponse(
                    url=url,
                    success=response.status < 400,
                    status=response.status,
                    final_url=str(response.url),
                    headers=dict(response.headers),
                )

        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            self.logger.debug(f"HEAD failed for {url}: {e}")
            return None

    async def fetch_bytes(
        self, url: str, max_bytes: int, timeout: float = 10.0
    ) -> Optional[bytes]:
        """GET a binary payload, refusing anything larger than ``max_bytes``."""
        try:
            async with self._request("GET", url, timeout) as response:
                if response.status != 200:
                    return None
                if response.content_length and response.content_length > max_bytes:
                    self.logger.debug(f"Payload too large ({response.content_length}B) at {url}")
                    return None

                chunks = []
                received = 0
                async for chunk in response.content.iter_chunked(64 * 1024):
                    received += len(chunk)
                    if received > max_bytes:
                        self.logger.debug(f"Payload exceeded {max_bytes}B at {url}")
                        return None
                    chunks.append(chunk)
                return b"".join(chunks)

        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError) as e:
            self.logger.debug(f"Binary fetch failed for {url}: {e}")
            return None

    async def post_form(
        self,
        url: str,
        data: Dict[str, str],
        timeout: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        """POST form data and return the response text, or None."""
        request_headers = {"Content-Type": "application/x-www-form-urlencoded;charset=UTF-8"}
        request_headers.update(headers or {})
        try:
            async with self._request("POST", url, timeout, data=data, headers=request_headers) as response:
                if response.status != 200:
                    self.logger.debug(f"POST {url} returned HTTP {response.status}")
                    return None
                return await response.text()

        except (asyncio.TimeoutError, aiohttp.ClientError, ValueError, UnicodeDecodeError) as e:
            self.logger.debug(f"POST failed for {url}: {e}")
            return None

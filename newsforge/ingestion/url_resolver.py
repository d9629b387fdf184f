"""
URL Resolver
============

Turns a feed entry link into the canonical article URL. Aggregator links
are unwrapped in up to three steps, cheapest first:

1. decode the target embedded in an aggregator or redirector link (no network)
2. ask the aggregator's batch endpoint for the article URL
3. follow HTTP redirects and take the final effective URL

Resolution never raises; on any failure the input URL is returned unchanged.
"""

import asyncio
import base64
import binascii
import json
import re
from typing import Optional, List
from urllib.parse import urlparse, parse_qs, unquote

from bs4 import BeautifulSoup

from ..config.settings import NewsForgeSettings, get_settings
from ..models.article import ResolvedSource
from ..utils.logging import get_logger_for_component
from ..utils.validators import validate_url


BATCH_EXECUTE_URL = "https://news.google.com/_/DotsSplashUi/data/batchexecute"

ENCODED_SEGMENT_PATTERNS = [
    re.compile(r"/articles/([^?/#]+)"),
    re.compile(r"/read/([^?/#]+)"),
    re.compile(r"(CBM[^&?/#]*)"),
    re.compile(r"0ahUKEwi([^&?/#]*)"),
]

REDIRECT_QUERY_KEYS = ("url", "u", "q", "target", "dest", "destination", "redirect")

EMBEDDED_URL_PATTERN = re.compile(r"https?://[^\s\"'<>\x00-\x1f\x7f-\xff]+")


def _b64_candidates(segment: str) -> List[bytes]:
    padded = segment + "=" * (-len(segment) % 4)
    decoded = []
    for decoder in (base64.urlsafe_b64decode, base64.b64decode):
        try:
            decoded.append(decoder(padded))
        except (binascii.Error, ValueError):
            continue
    return decoded


def decode_embedded_url(url: str) -> Optional[str]:
    """Decode a target URL carried inside a redirect link, without network access."""
    parsed = urlparse(url)

    query = parse_qs(parsed.query)
    for key in REDIRECT_QUERY_KEYS:
        for value in query.get(key, []):
            if value.startswith(("http://", "https://")) and validate_url(value):
                return value

    for pattern in ENCODED_SEGMENT_PATTERNS:
        match = pattern.search(url)
        if not match or not match.group(1):
            continue
        segment = match.group(1)

        for raw in _b64_candidates(segment):
            found = EMBEDDED_URL_PATTERN.search(raw.decode("latin-1"))
            if found and validate_url(found.group(0)):
                return found.group(0)

        unquoted = unquote(segment)
        found = EMBEDDED_URL_PATTERN.search(unquoted)
        if found and validate_url(found.group(0)):
            return found.group(0)

    return None


def build_batch_payload(data_p: str) -> str:
    """``f.req`` form value for the aggregator batch endpoint from a ``data-p`` attribute."""
    obj = json.loads(data_p.replace("%.@.", '["garturlreq",', 1))
    inner = json.dumps(obj[:-6] + obj[-2:], separators=(",", ":"))
    return json.dumps([[["Fbv4je", inner, None, "generic"]]], separators=(",", ":"))


def parse_batch_response(body: str) -> Optional[str]:
    """Article URL from a batch endpoint response body, or None."""
    cleaned = body.replace(")]}'", "", 1).strip()
    parsed = json.loads(cleaned)
    inner = json.loads(parsed[0][2])
    article_url = inner[1]
    return article_url if isinstance(article_url, str) else None


class UrlResolver:
    """Resolves aggregator and redirect links to canonical article URLs."""

    def __init__(self, http, settings: Optional[NewsForgeSettings] = None):
        """
        Args:
            http: HttpFetcher for network steps
            settings: Application settings (default: global settings)
        """
        self.http = http
        self.settings = settings or get_settings()
        self.config = self.settings.resolver
        self.logger = get_logger_for_component("url_resolver")

    @staticmethod
    def _host_in(url: str, hosts: List[str]) -> bool:
        host = urlparse(url).netloc.lower()
        return any(host == h or host.endswith("." + h) for h in hosts)

    def is_aggregator_link(self, url: str) -> bool:
        return self._host_in(url, self.config.aggregator_hosts)

    def is_indirection_link(self, url: str) -> bool:
        """Aggregator or redirector link whose target may be embedded in it."""
        return self.is_aggregator_link(url) or self._host_in(url, self.config.redirector_hosts)

    async def resolve(self, url: str) -> ResolvedSource:
        """
        Resolve ``url`` to its canonical article URL.

        Returns:
            ResolvedSource; ``resolved_url`` equals ``url`` when nothing better was found
        """
        if not validate_url(url):
            return ResolvedSource(url, url, "invalid")

        try:
            # Publisher URLs may carry their own u= or q= parameters
            decoded = decode_embedded_url(url) if self.is_indirection_link(url) else None
            if decoded:
                self.logger.debug(f"Decoded embedded target: {url} -> {decoded}")
                return ResolvedSource(url, decoded, "decoded")

            if self.config.use_batch_decoder and self.is_aggregator_link(url):
                article_url = await self._resolve_via_batch(url)
                if article_url:
                    self.logger.debug(f"Batch-resolved: {url} -> {article_url}")
                    return ResolvedSource(url, article_url, "batch")

            final_url = await self.http.follow_redirects(
                url, max_redirects=self.config.max_redirects, timeout=self.config.timeout
            )
            if final_url and final_url != url and validate_url(final_url):
                # Landing back on the aggregator is not a resolution
                if not self.is_aggregator_link(final_url) or not self.is_aggregator_link(url):
                    return ResolvedSource(url, final_url, "redirect")

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Resolution failed for {url}: {e}", extra={"source_url": url})
            return ResolvedSource(url, url, "failed")

        return ResolvedSource(url, url, "unchanged")

    async def _resolve_via_batch(self, url: str) -> Optional[str]:
        page = await self.http.fetch_html(url, timeout=self.config.timeout)
        if not page.success or not page.text:
            return None

        soup = BeautifulSoup(page.text, "html.parser")
        node = soup.find("c-wiz", attrs={"data-p": True})
        if node is None:
            self.logger.debug(f"No data-p attribute for {url}")
            return None

        try:
            payload = build_batch_payload(node["data-p"])
        except (ValueError, TypeError, IndexError) as e:
            self.logger.debug(f"Unreadable data-p for {url}: {e}")
            return None

        body = await self.http.post_form(
            BATCH_EXECUTE_URL, {"f.req": payload}, timeout=self.config.timeout
        )
        if not body:
            return None

        try:
            article_url = parse_batch_response(body)
        except (ValueError, TypeError, IndexError, KeyError) as e:
            self.logger.debug(f"Unreadable batch response for {url}: {e}")
            return None

        return article_url if article_url and validate_url(article_url) else None

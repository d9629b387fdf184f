"""
Fallback Recovery Service
=========================

Last-resort content reconstruction used when every extraction strategy has
failed. Recovery strategies run in order until one yields enough text:

1. RSS content - the feed entry's own embedded content or snippet
2. Basic scraping - largest generic body container after boilerplate removal
3. Meta tags - og/twitter title, description and image
4. Text paragraphs - full-page text split into pseudo-paragraphs

When all of them fail a minimal stub pointing back to the source is
returned. ``recover()`` never raises.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from ..config.settings import NewsForgeSettings, get_settings
from ..ingestion.content_sanitizer import ContentSanitizer
from ..models.article import FeedEntry
from ..processing.derivation import build_excerpt
from ..utils.logging import get_logger_for_component


@dataclass
class FallbackContent:
    """Content reconstructed by the recovery service."""
    title: str
    content: str
    excerpt: str = ""
    images: List[Dict[str, str]] = field(default_factory=list)
    succeeded: bool = False
    method_used: str = "minimal"


BODY_SELECTORS = [
    "main",
    '[role="main"]',
    ".main-content",
    ".article-content",
    ".post-content",
    ".entry-content",
    ".content",
    "article",
    ".article-body",
]

NOISE_ELEMENTS = ["script", "style", "noscript", "iframe", "nav", "header", "footer", "aside", "form"]


class FallbackRecoveryService:
    """Rebuilds article content from whatever is left."""

    def __init__(
        self,
        http,
        sanitizer: Optional[ContentSanitizer] = None,
        settings: Optional[NewsForgeSettings] = None,
    ):
        self.http = http
        self.sanitizer = sanitizer or ContentSanitizer()
        self.settings = settings or get_settings()
        self.config = self.settings.fallback
        self.logger = get_logger_for_component("fallback")

    async def recover(
        self,
        url: str,
        entry: Optional[FeedEntry] = None,
        html: Optional[str] = None,
    ) -> FallbackContent:
        """
        Reconstruct content for ``url``.

        Args:
            url: Source page URL
            entry: Originating feed entry, if any
            html: Page markup already fetched by the caller; fetched once here otherwise

        Returns:
            FallbackContent; ``succeeded`` is False only for the minimal stub
        """
        try:
            result = self._from_feed_entry(entry)
            if result:
                return self._finish(result, url, entry)

            if html is None:
                html = await self._fetch_page(url)

            if html:
                for method in (self._from_page_body, self._from_meta_tags, self._from_text_paragraphs):
                    try:
                        result = method(html, url)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        self.logger.debug(f"Recovery step {method.__name__} failed for {url}: {e}")
                        continue
                    if result:
                        return self._finish(result, url, entry, html)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Fallback recovery error for {url}: {e}", extra={"source_url": url})

        self.logger.info(f"All recovery strategies failed, using stub for {url}", extra={"source_url": url})
        return self.minimal_stub(url, entry)

    async def _fetch_page(self, url: str) -> Optional[str]:
        response = await self.http.fetch_html(url, timeout=self.config.page_timeout)
        if not response.success:
            self.logger.debug(f"Recovery fetch failed for {url}: {response.error}")
            return None
        return response.text

    def _long_enough(self, text: str) -> bool:
        return len(text or "") >= self.config.min_content_length

    def _from_feed_entry(self, entry: Optional[FeedEntry]) -> Optional[FallbackContent]:
        if entry is None:
            return None

        for raw in entry.embedded_contents():
            text = self.sanitizer.extract_text(raw)
            if not self._long_enough(text):
                continue

            content = self.sanitizer.sanitize(raw)
            if not self.sanitizer.extract_text(content):
                content = self.sanitizer.text_to_html(text)
            return FallbackContent(
                title=entry.title,
                content=content,
                excerpt=build_excerpt(text),
                images=self.sanitizer.extract_images(raw)[: self.config.max_images],
                succeeded=True,
                method_used="rss_content",
            )
        return None

    def _from_page_body(self, html: str, url: str) -> Optional[FallbackContent]:
        soup = BeautifulSoup(html, "html.parser")
        for element in soup.find_all(NOISE_ELEMENTS):
            element.decompose()

        best, best_length = None, 0
        for selector in BODY_SELECTORS:
            for element in soup.select(selector):
                length = len(element.get_text(" ", strip=True))
                if length > best_length:
                    best, best_length = element, length

        if best is None:
            best = soup.body
        if best is None:
            return None

        fragment = str(best)
        text = self.sanitizer.extract_text(fragment)
        if not self._long_enough(text):
            return None

        return FallbackContent(
            title=self._page_title(soup),
            content=self.sanitizer.sanitize(fragment, base_url=url),
            excerpt=build_excerpt(text),
            succeeded=True,
            method_used="basic_scraping",
        )

    def _from_meta_tags(self, html: str, url: str) -> Optional[FallbackContent]:
        metadata = self.sanitizer.extract_metadata(html)
        description = metadata.get("description", "")
        if not self._long_enough(description):
            return None

        content = self.sanitizer.text_to_html(description)
        images = []
        if metadata.get("image"):
            images.append({"src": metadata["image"], "alt": metadata.get("title", ""), "title": ""})

        return FallbackContent(
            title=metadata.get("title", ""),
            content=content,
            excerpt=build_excerpt(description),
            images=images,
            succeeded=True,
            method_used="meta_tags",
        )

    def _from_text_paragraphs(self, html: str, url: str) -> Optional[FallbackContent]:
        soup = BeautifulSoup(html, "html.parser")
        for element in soup.find_all(NOISE_ELEMENTS):
            element.decompose()

        root = soup.body or soup
        text = root.get_text("\n\n", strip=True)
        content = self.sanitizer.text_to_html(text, min_paragraph_length=self.config.min_paragraph_length)
        plain = self.sanitizer.extract_text(content)
        if not self._long_enough(plain):
            return None

        return FallbackContent(
            title=self._page_title(soup),
            content=content,
            excerpt=build_excerpt(plain),
            succeeded=True,
            method_used="text_paragraphs",
        )

    def minimal_stub(self, url: str, entry: Optional[FeedEntry] = None) -> FallbackContent:
        """Stub record linking back to the source."""
        snippet = ""
        if entry is not None:
            snippet = self.sanitizer.extract_text(entry.raw_content_snippet or entry.description)

        safe_url = url.replace('"', "%22")
        link = f'<a href="{safe_url}">Read full article</a>'
        if snippet:
            escaped = self.sanitizer.text_to_html(snippet)
            content = f"{escaped}<p>{link}</p>"
        else:
            content = f"<p>Content not available. {link}</p>"

        title = entry.title if entry is not None and entry.title else ""
        if not title:
            title = f"Article from {urlparse(url).hostname or 'unknown source'}"

        return FallbackContent(
            title=title,
            content=content,
            excerpt=build_excerpt(snippet) or f"Read the full article at {urlparse(url).hostname or url}",
            succeeded=False,
            method_used="minimal",
        )

    def _finish(
        self,
        result: FallbackContent,
        url: str,
        entry: Optional[FeedEntry],
        html: Optional[str] = None,
    ) -> FallbackContent:
        if not result.title:
            result.title = entry.title if entry is not None and entry.title else ""
        if not result.title:
            result.title = f"Article from {urlparse(url).hostname or 'unknown source'}"

        if html and not result.images:
            result.images = self.sanitizer.extract_images(html, base_url=url)
        result.images = result.images[: self.config.max_images]

        self.logger.info(
            f"Recovered {len(result.content)} chars via {result.method_used} for {url}",
            extra={"source_url": url},
        )
        return result

    @staticmethod
    def _page_title(soup: BeautifulSoup) -> str:
        h1 = soup.find("h1")
        if h1 and h1.get_text(strip=True):
            return h1.get_text(" ", strip=True)
        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return ""

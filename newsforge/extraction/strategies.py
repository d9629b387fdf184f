"""
Extraction Strategy Set
=======================

A closed set of extraction strategies evaluated in a fixed order by
``ExtractionEngine``:

1. READABILITY - content-density extraction (readability-lxml)
2. SELECTOR    - prioritized semantic selectors after boilerplate removal
3. PATTERN     - largest <article>/content <div> span in the raw markup
4. RENDERED    - selector logic against a headless-browser DOM

Each strategy returns an ``ExtractionAttempt`` or None. An attempt succeeds
when its plain text reaches the configured minimum length (200 characters by
default); a strategy that raises counts as a failed attempt.

RENDERED runs after the static strategies unless ``extraction.browser_first``
is set, in which case it runs first and the static strategies are skipped
when it already succeeds.

The static strategies are synchronous parsers; the engine runs them in a
worker thread so a slow page does not stall other imports.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from bs4 import BeautifulSoup
from readability import Document

from ..config.settings import NewsForgeSettings, get_settings
from ..ingestion.content_sanitizer import ContentSanitizer
from ..utils.logging import get_logger_for_component


class StrategyKind(str, Enum):
    """Extraction strategies in default evaluation order."""
    READABILITY = "readability"
    SELECTOR = "selector"
    PATTERN = "pattern"
    RENDERED = "rendered"


@dataclass
class ExtractionAttempt:
    """Result of running one strategy."""
    strategy_name: str
    succeeded: bool = False
    html_fragment: str = ""
    plain_text: str = ""
    word_count: int = 0
    title: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0

    def __post_init__(self):
        if self.plain_text and not self.word_count:
            self.word_count = len(self.plain_text.split())


@dataclass
class ExtractionOutcome:
    """Every attempt made for a page and the winning one, if any."""
    attempts: List[ExtractionAttempt] = field(default_factory=list)
    winner: Optional[ExtractionAttempt] = None
    page_html: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.winner is not None

    @property
    def tried(self) -> List[str]:
        return [a.strategy_name for a in self.attempts]


# Pattern strategy spans, widest semantic container first
CONTENT_SPAN_PATTERNS = [
    re.compile(r"<article\b[^>]*>(.*?)</article>", re.IGNORECASE | re.DOTALL),
    re.compile(
        r"<div\b[^>]*class\s*=\s*[\"'][^\"']*(?:article|story|post)[^\"']*[\"'][^>]*>(.*?)</div>",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(
        r"<div\b[^>]*class\s*=\s*[\"'][^\"']*content[^\"']*[\"'][^>]*>(.*?)</div>",
        re.IGNORECASE | re.DOTALL,
    ),
    re.compile(r"<main\b[^>]*>(.*?)</main>", re.IGNORECASE | re.DOTALL),
]


class ExtractionEngine:
    """Fixed-order dispatcher over the strategy set."""

    def __init__(
        self,
        sanitizer: Optional[ContentSanitizer] = None,
        browser_pool=None,
        settings: Optional[NewsForgeSettings] = None,
    ):
        """
        Args:
            sanitizer: Shared sanitizer used for text extraction
            browser_pool: BrowserPool for RENDERED; without one RENDERED always fails
            settings: Application settings (default: global settings)
        """
        self.settings = settings or get_settings()
        self.config = self.settings.extraction
        self.sanitizer = sanitizer or ContentSanitizer()
        self.browser_pool = browser_pool
        self.logger = get_logger_for_component("extraction")

    @property
    def min_length(self) -> int:
        return self.config.min_content_length

    def strategy_order(self) -> List[StrategyKind]:
        order = [StrategyKind(name) for name in self.config.enabled_strategies]
        if self.config.browser_first and StrategyKind.RENDERED in order:
            order.remove(StrategyKind.RENDERED)
            order.insert(0, StrategyKind.RENDERED)
        return order

    async def extract(self, html: Optional[str], url: str) -> ExtractionOutcome:
        """
        Run strategies in order until one yields enough text.

        Args:
            html: Static page markup (None if the page could not be fetched)
            url: Page URL

        Returns:
            ExtractionOutcome with all attempts; ``winner`` is None on total failure
        """
        outcome = ExtractionOutcome(page_html=html)

        for kind in self.strategy_order():
            attempt = await self._run(kind, html, url)
            outcome.attempts.append(attempt)

            if attempt.succeeded:
                outcome.winner = attempt
                self.logger.debug(
                    f"{kind.value} extracted {len(attempt.plain_text)} chars from {url}",
                    extra={"source_url": url, "strategy": kind.value},
                )
                return outcome

        self.logger.info(
            f"All extraction strategies failed for {url} (tried {', '.join(outcome.tried) or 'none'})",
            extra={"source_url": url},
        )
        return outcome

    async def _run(self, kind: StrategyKind, html: Optional[str], url: str) -> ExtractionAttempt:
        started = time.monotonic()
        try:
            attempt = await self._dispatch(kind, html, url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug(f"{kind.value} raised for {url}: {e}")
            attempt = ExtractionAttempt(strategy_name=kind.value, error=f"{type(e).__name__}: {e}")

        if attempt is None:
            attempt = ExtractionAttempt(strategy_name=kind.value, error="no content found")

        attempt.succeeded = len(attempt.plain_text) >= self.min_length
        if not attempt.succeeded and not attempt.error:
            attempt.error = f"content too short ({len(attempt.plain_text)} chars)"
        attempt.duration = time.monotonic() - started
        return attempt

    async def _dispatch(
        self, kind: StrategyKind, html: Optional[str], url: str
    ) -> Optional[ExtractionAttempt]:
        if kind == StrategyKind.RENDERED:
            return await self.extract_rendered(url)

        if not html:
            return None

        if kind == StrategyKind.READABILITY:
            strategy = self.extract_readability
        elif kind == StrategyKind.SELECTOR:
            strategy = self.extract_selector
        elif kind == StrategyKind.PATTERN:
            strategy = self.extract_pattern
        else:
            raise ValueError(f"Unknown strategy: {kind}")

        # Parsing is CPU-bound; keep it off the event loop
        return await asyncio.to_thread(strategy, html, url)

    def extract_readability(self, html: str, url: str) -> Optional[ExtractionAttempt]:
        """Main content block by content density."""
        doc = Document(html, url=url)
        fragment = doc.summary(html_partial=True)
        text = self.sanitizer.extract_text(fragment)
        if not text:
            return None

        return ExtractionAttempt(
            strategy_name=StrategyKind.READABILITY.value,
            html_fragment=fragment,
            plain_text=text,
            title=(doc.short_title() or "").strip() or None,
        )

    def extract_selector(self, html: str, url: str) -> Optional[ExtractionAttempt]:
        """First prioritized selector whose text clears the threshold."""
        soup = BeautifulSoup(html, "html.parser")
        title = self._page_title(soup)

        for selector in self.config.boilerplate_selectors:
            for element in soup.select(selector):
                if not element.decomposed:
                    element.decompose()

        best = None
        for selector in self.config.content_selectors:
            matches = soup.select(selector)
            if not matches:
                continue
            element = max(matches, key=lambda el: len(el.get_text(" ", strip=True)))
            text = self.sanitizer.WHITESPACE_PATTERN.sub(" ", element.get_text(" ", strip=True))
            if len(text) >= self.min_length:
                return ExtractionAttempt(
                    strategy_name=StrategyKind.SELECTOR.value,
                    html_fragment=str(element),
                    plain_text=text,
                    title=title,
                )
            if best is None or len(text) > len(best.plain_text):
                best = ExtractionAttempt(
                    strategy_name=StrategyKind.SELECTOR.value,
                    html_fragment=str(element),
                    plain_text=text,
                    title=title,
                )

        return best

    def extract_pattern(self, html: str, url: str) -> Optional[ExtractionAttempt]:
        """Largest article or content span found by scanning raw markup."""
        best_fragment = None
        best_text = ""

        for pattern in CONTENT_SPAN_PATTERNS:
            for match in pattern.finditer(html):
                text = self.sanitizer.extract_text_fallback(match.group(1))
                if len(text) > len(best_text):
                    best_fragment, best_text = match.group(1), text

        if not best_fragment:
            return None

        title_match = re.search(r"<h1\b[^>]*>(.*?)</h1>", html, re.IGNORECASE | re.DOTALL)
        title = self.sanitizer.extract_text_fallback(title_match.group(1)) if title_match else None

        return ExtractionAttempt(
            strategy_name=StrategyKind.PATTERN.value,
            html_fragment=best_fragment,
            plain_text=best_text,
            title=title or None,
        )

    async def extract_rendered(self, url: str) -> Optional[ExtractionAttempt]:
        """Selector extraction against the browser-rendered DOM."""
        if self.browser_pool is None:
            return None

        rendered = await self.browser_pool.render(url)
        if not rendered:
            return None

        attempt = await asyncio.to_thread(self.extract_selector, rendered, url)
        if attempt is None:
            return None
        attempt.strategy_name = StrategyKind.RENDERED.value
        return attempt

    def _page_title(self, soup: BeautifulSoup) -> Optional[str]:
        h1 = soup.find("h1")
        if h1 and h1.get_text(strip=True):
            return h1.get_text(" ", strip=True)
        if soup.title and soup.title.string and soup.title.string.strip():
            return soup.title.string.strip()
        og = soup.find("meta", attrs={"property": "og:title"})
        if og and og.get("content"):
            return og["content"].strip()
        return None

"""
Article Transformer
===================

Per-entry state machine that turns a FeedEntry into a NormalizedArticle:

    Resolving -> Extracting -> Sanitizing -> Structuring -> Deriving -> Done
                     |
                     +-> fallback recovery; a stub record ends in Failed

Structuring is optional. ``transform()`` always returns a complete article;
only the orchestrator's store calls can raise.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from ..ai.providers.base import StructuringRequest
from ..ai.structuring import StructuringService, StructuredArticle
from ..config.settings import NewsForgeSettings, get_settings
from ..extraction.fallback import FallbackContent, FallbackRecoveryService
from ..extraction.strategies import ExtractionEngine, ExtractionOutcome
from ..images.analyzer import ImageAssignment, ImageQualityAnalyzer
from ..ingestion.content_sanitizer import ContentSanitizer
from ..ingestion.url_resolver import UrlResolver
from ..models.article import FeedEntry, NormalizedArticle, ResolvedSource
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..utils.logging import PerformanceLogger, get_logger_for_component
from .derivation import FieldDeriver, count_words, reading_time


class TransformState(str, Enum):
    RESOLVING = "resolving"
    EXTRACTING = "extracting"
    SANITIZING = "sanitizing"
    STRUCTURING = "structuring"
    DERIVING = "deriving"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TransformResult:
    """Article plus how it was produced."""
    article: NormalizedArticle
    final_state: TransformState
    trace: List[TransformState] = field(default_factory=list)
    resolved: Optional[ResolvedSource] = None
    extraction: Optional[ExtractionOutcome] = None
    fallback: Optional[FallbackContent] = None
    structured: bool = False

    @property
    def method(self) -> str:
        return self.article.extraction_method

    @property
    def used_fallback(self) -> bool:
        return self.fallback is not None


def parse_published(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 timestamp from page metadata, or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ArticleTransformer:
    """Sequences resolution, extraction, sanitization, structuring and derivation."""

    def __init__(
        self,
        http,
        settings: Optional[NewsForgeSettings] = None,
        resolver: Optional[UrlResolver] = None,
        engine: Optional[ExtractionEngine] = None,
        fallback: Optional[FallbackRecoveryService] = None,
        analyzer: Optional[ImageQualityAnalyzer] = None,
        structuring: Optional[StructuringService] = None,
        sanitizer: Optional[ContentSanitizer] = None,
        browser_pool=None,
    ):
        """
        Args:
            http: Shared HttpFetcher
            settings: Application settings (default: global settings)
            browser_pool: BrowserPool for rendered extraction, optional
            Remaining arguments override the default stage implementations
        """
        self.http = http
        self.settings = settings or get_settings()
        self.sanitizer = sanitizer or ContentSanitizer()
        self.resolver = resolver or UrlResolver(http, self.settings)
        self.engine = engine or ExtractionEngine(self.sanitizer, browser_pool, self.settings)
        self.fallback = fallback or FallbackRecoveryService(http, self.sanitizer, self.settings)
        self.analyzer = analyzer or ImageQualityAnalyzer(http, self.settings)
        self.structuring = structuring or StructuringService(self.settings)
        self.deriver = FieldDeriver(self.settings)
        self.logger = get_logger_for_component("transformer")

    async def resolve(self, entry: FeedEntry) -> ResolvedSource:
        return await self.resolver.resolve(entry.link)

    async def transform(
        self,
        entry: FeedEntry,
        category: Optional[str] = None,
        resolved: Optional[ResolvedSource] = None,
        error_handler: Optional[ErrorHandler] = None,
    ) -> TransformResult:
        """
        Transform one feed entry.

        Args:
            entry: Feed entry with a usable title and link
            category: Feed category the entry came from
            resolved: Already resolved source (skips the Resolving step)
            error_handler: Run error handler for attributing failures

        Returns:
            TransformResult whose article is always complete
        """
        trace = [TransformState.RESOLVING]
        if resolved is None:
            resolved = await self.resolve(entry)
        url = resolved.resolved_url
        context = ErrorContext(
            component="transformer",
            operation="structuring",
            entry_title=entry.title,
            entry_url=url,
            category=category,
            run_id=error_handler.run_id if error_handler else None,
        )

        trace.append(TransformState.EXTRACTING)
        with PerformanceLogger(self.logger, "extraction", source_url=url):
            page_html = await self._fetch_page(url)
            outcome = await self.engine.extract(page_html, url)

        recovered: Optional[FallbackContent] = None
        if outcome.succeeded:
            fragment = outcome.winner.html_fragment
            method = outcome.winner.strategy_name
            extracted_title = outcome.winner.title
        else:
            recovered = await self.fallback.recover(url, entry, html=page_html or "")
            fragment = recovered.content
            method = f"fallback:{recovered.method_used}"
            extracted_title = recovered.title

        trace.append(TransformState.SANITIZING)
        body_html = self.sanitizer.sanitize(fragment, base_url=url)
        plain_text = self.sanitizer.extract_text(body_html)
        if not plain_text and outcome.succeeded:
            body_html = self.sanitizer.text_to_html(outcome.winner.plain_text)
            plain_text = self.sanitizer.extract_text(body_html)
        metadata = self.sanitizer.extract_metadata(page_html) if page_html else {}

        assignment = await self._score_images(page_html or fragment, url, recovered)

        structured: Optional[StructuredArticle] = None
        stub = recovered is not None and not recovered.succeeded
        if not stub and self.structuring.available:
            trace.append(TransformState.STRUCTURING)
            structured = await self.structuring.structure(
                StructuringRequest(
                    text=plain_text,
                    source_url=url,
                    title=entry.title,
                    category=category,
                    source_label=entry.source_label,
                    published_at=entry.published_at or parse_published(metadata.get("published")),
                ),
                error_handler=error_handler,
                context=context,
            )

        trace.append(TransformState.DERIVING)
        article = self._derive(
            entry, url, category, body_html, plain_text, method,
            extracted_title, metadata, assignment, recovered, structured,
        )

        final_state = TransformState.FAILED if stub else TransformState.DONE
        trace.append(final_state)
        if stub:
            self.logger.warning(
                f"No content recovered for '{entry.title[:60]}', stored as stub",
                extra={"source_url": url, "entry_title": entry.title, "category": category},
            )

        return TransformResult(
            article=article,
            final_state=final_state,
            trace=trace,
            resolved=resolved,
            extraction=outcome,
            fallback=recovered,
            structured=structured is not None,
        )

    async def _fetch_page(self, url: str) -> Optional[str]:
        response = await self.http.fetch_html(url)
        if not response.success:
            self.logger.info(f"Page fetch failed for {url}: {response.error}", extra={"source_url": url})
            return None
        return response.text

    async def _score_images(
        self, html: Optional[str], url: str, recovered: Optional[FallbackContent]
    ) -> ImageAssignment:
        refs = self.sanitizer.extract_images(html, base_url=url) if html else []
        if recovered is not None:
            known = {ref["src"] for ref in refs}
            refs = [ref for ref in recovered.images if ref.get("src") not in known] + refs

        if not refs:
            return ImageAssignment()

        try:
            with PerformanceLogger(self.logger, "image scoring", source_url=url):
                candidates = await self.analyzer.score_all(refs, context_html=html)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Image scoring failed for {url}: {e}", extra={"source_url": url})
            return ImageAssignment()
        return self.analyzer.assign_use_case(candidates)

    def _derive(
        self,
        entry: FeedEntry,
        url: str,
        category: Optional[str],
        body_html: str,
        plain_text: str,
        method: str,
        extracted_title: Optional[str],
        metadata: Dict[str, Any],
        assignment: ImageAssignment,
        recovered: Optional[FallbackContent],
        structured: Optional[StructuredArticle],
    ) -> NormalizedArticle:
        published_at = (
            entry.published_at
            or parse_published(metadata.get("published"))
            or datetime.now(timezone.utc)
        )
        title_source = entry.title or extracted_title or metadata.get("title") or ""
        derived = self.deriver.derive(
            title_source, plain_text, url, category, entry.source_label, published_at=published_at
        )

        if recovered is not None and recovered.excerpt:
            derived["excerpt"] = self.deriver.excerpt(recovered.excerpt, fallback=derived["title"])
        elif metadata.get("description") and len(plain_text) < self.settings.extraction.min_content_length:
            derived["excerpt"] = self.deriver.excerpt(metadata["description"], fallback=derived["title"])

        if structured is not None:
            structured_body = self.sanitizer.sanitize(structured.content, base_url=url)
            if self.sanitizer.extract_text(structured_body):
                body_html = structured_body
                plain_text = self.sanitizer.extract_text(structured_body)
            derived.update(
                title=structured.title,
                slug=structured.slug,
                excerpt=structured.excerpt,
                tags=structured.tags,
                location=structured.location or derived["location"],
                seo_title=structured.seo_title,
                seo_description=structured.seo_description,
                reading_time=reading_time(plain_text, self.settings.derivation.words_per_minute),
                word_count=count_words(plain_text),
            )

        images = assignment.ordered()

        return NormalizedArticle(
            title=derived["title"],
            slug=derived["slug"],
            excerpt=derived["excerpt"],
            body_html=body_html,
            images=images,
            tags=derived["tags"],
            location=derived["location"],
            reading_time_minutes=derived["reading_time"],
            is_breaking=derived["is_breaking"],
            source_url=url,
            published_at=published_at,
            seo_title=derived["seo_title"],
            seo_description=derived["seo_description"],
            category=category,
            author=metadata.get("author") or entry.source_label or None,
            extraction_method=method,
            word_count=derived["word_count"],
            hero_image_url=assignment.hero.url if assignment.hero else None,
            thumbnail_url=assignment.thumbnail.url if assignment.thumbnail else None,
            structured=structured is not None,
        )

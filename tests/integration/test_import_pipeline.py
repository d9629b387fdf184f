#!/usr/bin/env python3
"""
Import Pipeline Integration Test
================================

Runs the whole flow: feed entry -> resolution -> extraction or fallback ->
sanitizing -> image scoring -> structuring or derivation -> persistence.
Only the HTTP layer and the structuring provider are faked.
"""

import base64
import io
import json
import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from newsforge.ai.providers.base import StructuringProvider
from newsforge.ai.structuring import StructuringService
from newsforge.config.settings import AIProvider, AISettings, ExtractionSettings
from newsforge.ingestion.http_client import FetchResponse
from newsforge.models.article import FeedEntry
from newsforge.processing.orchestrator import ImportOrchestrator
from newsforge.processing.transformer import ArticleTransformer
from newsforge.recovery.retry_logic import RetryConfig, RetryManager
from newsforge.storage.publisher import ArticlePublisher


ARTICLE_URL = "https://example.com/science/ai-drug-discovery"


def aggregator_link(target: str) -> str:
    raw = b"\x08\x13\x22" + bytes([len(target)]) + target.encode() + b"\xd2\x01\x00"
    return "https://news.google.com/rss/articles/" + base64.urlsafe_b64encode(raw).decode().rstrip("=")


def jpeg(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (30, 90, 150)).save(buffer, format="JPEG")
    return buffer.getvalue()


class FeedStub:
    def __init__(self, entries):
        self.entries = entries

    def categories(self):
        return list(self.entries)

    async def fetch_entries(self, category, limit=None):
        return self.entries[category][:limit]


class CannedProvider(StructuringProvider):
    def __init__(self, reply: str):
        super().__init__("test-key", "canned", AIProvider.GEMINI)
        self.reply = reply
        self.calls = 0

    async def complete(self, prompt: str) -> str:
        self.calls += 1
        return self.reply


def serve_pages(mock_http, pages):
    async def fetch_html(url, **kwargs):
        if url in pages:
            return FetchResponse(url=url, success=True, status=200, text=pages[url])
        return FetchResponse(url=url, success=False, error="Fetch error: offline")

    mock_http.fetch_html = AsyncMock(side_effect=fetch_html)


def serve_images(mock_http, width=1200, height=675):
    mock_http.head = AsyncMock(
        return_value=FetchResponse(url="img", success=True, status=200, headers={"Content-Type": "image/jpeg"})
    )
    mock_http.fetch_bytes = AsyncMock(return_value=jpeg(width, height))


def build(settings, http, store, entries, transformer=None):
    return ImportOrchestrator(
        FeedStub(entries),
        ArticlePublisher(store, http, settings),
        transformer or ArticleTransformer(http, settings),
        settings,
        sleep=AsyncMock(),
    )


@pytest.mark.asyncio
async def test_full_pipeline(settings, mock_http, store, sample_page, sample_entry):
    """Readable page becomes a complete article with a hero image."""
    serve_pages(mock_http, {ARTICLE_URL: sample_page})
    serve_images(mock_http)

    report = await build(settings, mock_http, store, {"Science": [sample_entry]}).run_import()

    assert report.totals.imported == 1
    assert report.strategy_counts == {"readability": 1}

    article = store.list_articles()[0]
    assert article.title == "AI Revolutionizes Drug Discovery"
    assert re.fullmatch(r"ai-revolutionizes-drug-discovery-20240301-\d{6}", article.slug)
    assert article.source_url == ARTICLE_URL
    assert article.extraction_method == "readability"
    assert article.author == "Jane Reporter"
    assert article.category == "Science"
    assert "science" in article.tags
    assert article.reading_time_minutes >= 2
    assert article.published_at == datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
    assert article.hero_image_url == "https://example.com/images/lab-hero.jpg"
    assert all(image.valid for image in article.images)
    assert "trackPageView" not in article.body_html
    assert "newsletter" not in article.body_html.lower()
    assert not article.structured


@pytest.mark.asyncio
async def test_aggregator_link_resolved_before_duplicate_check(settings, mock_http, store, sample_page):
    """Two aggregator links to the same story import it once."""
    serve_pages(mock_http, {ARTICLE_URL: sample_page})
    entries = [
        FeedEntry(title="AI Revolutionizes Drug Discovery", link=aggregator_link(ARTICLE_URL)),
        FeedEntry(title="AI Revolutionizes Drug Discovery (update)", link=aggregator_link(ARTICLE_URL)),
    ]

    report = await build(settings, mock_http, store, {"Science": entries}).run_import()

    assert report.totals.imported == 1
    assert report.totals.skipped == 1
    assert store.list_articles()[0].source_url == ARTICLE_URL


@pytest.mark.asyncio
async def test_unreachable_page_stored_as_stub(settings_factory, mock_http, store):
    """Nothing extractable still yields a complete, linked article."""
    settings = settings_factory(extraction=ExtractionSettings(enabled_strategies=[]))
    entry = FeedEntry(title="Short", link="https://example.com/a")

    report = await build(settings, mock_http, store, {"World": [entry]}).run_import()

    assert report.totals.imported == 1
    assert report.stub_count == 1
    article = store.list_articles()[0]
    assert article.extraction_method == "fallback:minimal"
    assert "https://example.com/a" in article.body_html
    assert article.title == "Short"
    assert article.excerpt


@pytest.mark.asyncio
async def test_feed_content_used_when_page_blocked(settings, mock_http, store):
    """Embedded feed content rescues an entry whose page cannot be fetched."""
    paragraphs = "".join(
        f"<p>Paragraph {i} of the embedded story carries enough words to count as real content.</p>"
        for i in range(6)
    )
    entry = FeedEntry(
        title="Harbor reopens after storm",
        link="https://example.com/harbor",
        content=paragraphs,
    )

    report = await build(settings, mock_http, store, {"World": [entry]}).run_import()

    article = store.list_articles()[0]
    assert report.totals.imported == 1
    assert report.fallback_count == 1
    assert report.stub_count == 0
    assert article.extraction_method == "fallback:rss_content"
    assert "Paragraph 5 of the embedded story" in article.body_html


@pytest.mark.asyncio
async def test_structured_article(settings_factory, mock_http, store, sample_page, sample_entry):
    """Provider output replaces derived fields when it validates."""
    settings = settings_factory(ai=AISettings(structuring_enabled=True, retry_delay=0.0))
    body = "<p>" + "An AI system now shortlists drug candidates within months. " * 6 + "</p>"
    provider = CannedProvider(json.dumps({
        "title": "AI shortens drug discovery",
        "excerpt": "An AI system now shortlists drug candidates within months.",
        "content": body,
        "slug": "ignored",
        "seoTitle": "AI shortens drug discovery",
        "seoDescription": "AI system shortlists drug candidates.",
        "tags": ["Health", "AI"],
        "location": "null",
    }))
    structuring = StructuringService(
        settings,
        providers=[provider],
        retry_manager=RetryManager(RetryConfig(max_attempts=3, base_delay=0.0), sleep=AsyncMock()),
    )
    serve_pages(mock_http, {ARTICLE_URL: sample_page})
    transformer = ArticleTransformer(mock_http, settings, structuring=structuring)

    report = await build(settings, mock_http, store, {"Science": [sample_entry]}, transformer).run_import()

    article = store.list_articles()[0]
    assert report.structured_count == 1
    assert provider.calls == 1
    assert article.structured
    assert article.title == "AI shortens drug discovery"
    assert article.tags == ["health", "ai"]
    assert re.fullmatch(r"ai-shortens-drug-discovery-\d{8}-\d{6}", article.slug)
    assert "shortlists drug candidates" in article.body_html

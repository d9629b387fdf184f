"""
Fallback Recovery Tests
=======================

Recovery strategy order and the minimal stub.
"""

from unittest.mock import AsyncMock

import pytest

from newsforge.extraction.fallback import FallbackRecoveryService
from newsforge.ingestion.http_client import FetchResponse
from newsforge.models.article import FeedEntry


LONG_SNIPPET = (
    "Regional officials confirmed that the new rail link will open next spring, "
    "connecting three cities and cutting commuting times by nearly half for thousands of residents."
)


@pytest.fixture
def service(mock_http, sanitizer, settings):
    return FallbackRecoveryService(mock_http, sanitizer, settings)


class TestRecoveryOrder:
    """Each strategy is tried only after the previous one failed."""

    @pytest.mark.asyncio
    async def test_feed_content_used_first(self, service, mock_http):
        entry = FeedEntry(title="Rail link opens", link="https://example.com/rail", content=f"<p>{LONG_SNIPPET}</p>")
        result = await service.recover("https://example.com/rail", entry)

        assert result.succeeded
        assert result.method_used == "rss_content"
        assert "rail link" in result.content
        mock_http.fetch_html.assert_not_called()

    @pytest.mark.asyncio
    async def test_page_body_after_feed_content(self, service, mock_http):
        body = "<p>" + " ".join([LONG_SNIPPET] * 2) + "</p>"
        page = f"<html><head><title>Rail</title></head><body><nav>Menu</nav><main>{body}</main></body></html>"
        mock_http.fetch_html = AsyncMock(return_value=FetchResponse(url="x", success=True, text=page))

        entry = FeedEntry(title="Rail link opens", link="https://example.com/rail", raw_content_snippet="Short.")
        result = await service.recover("https://example.com/rail", entry)

        assert result.succeeded
        assert result.method_used == "basic_scraping"
        assert "Menu" not in result.content
        mock_http.fetch_html.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_meta_tags(self, service):
        page = (
            "<html><head>"
            '<meta property="og:title" content="Rail link opens">'
            f'<meta property="og:description" content="{LONG_SNIPPET}">'
            '<meta property="og:image" content="https://example.com/img/train.jpg">'
            "</head><body><div>tiny</div></body></html>"
        )
        result = await service.recover("https://example.com/rail", None, html=page)

        assert result.method_used == "meta_tags"
        assert result.title == "Rail link opens"
        assert result.images[0]["src"] == "https://example.com/img/train.jpg"

    @pytest.mark.asyncio
    async def test_supplied_page_is_not_fetched_again(self, service, mock_http):
        await service.recover("https://example.com/rail", None, html="")
        mock_http.fetch_html.assert_not_called()


class TestMinimalStub:
    """Total failure produces a stub that links back to the source."""

    @pytest.mark.asyncio
    async def test_unreachable_link(self, service):
        result = await service.recover("https://example.com/missing", None)

        assert result.succeeded is False
        assert result.method_used == "minimal"
        assert result.content
        assert 'href="https://example.com/missing"' in result.content
        assert result.title == "Article from example.com"

    @pytest.mark.asyncio
    async def test_stub_keeps_escaped_snippet(self, service):
        entry = FeedEntry(
            title="Short",
            link="https://example.com/a",
            raw_content_snippet="Tiny <b>teaser</b> & more",
        )
        result = await service.recover("https://example.com/a", entry, html="")

        assert not result.succeeded
        assert result.title == "Short"
        assert "Tiny teaser &amp; more" in result.content
        assert "https://example.com/a" in result.content

    @pytest.mark.asyncio
    async def test_never_raises(self, service, mock_http):
        mock_http.fetch_html = AsyncMock(side_effect=RuntimeError("socket closed"))
        result = await service.recover("https://example.com/a", None)

        assert not result.succeeded
        assert result.content

"""
Image Quality Analyzer Tests
============================

Scoring tiers, probing through the mocked fetcher and use-case assignment.
"""

import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from newsforge.images.analyzer import ImageQualityAnalyzer, read_image_header, score_image
from newsforge.ingestion.http_client import FetchResponse
from newsforge.models.article import ImageCandidate, QualityTier


def image_bytes(width: int, height: int, image_format: str = "JPEG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (120, 80, 40)).save(buffer, format=image_format)
    return buffer.getvalue()


def head_response(content_type: str = "image/jpeg", length: str = "") -> FetchResponse:
    headers = {"Content-Type": content_type}
    if length:
        headers["Content-Length"] = length
    return FetchResponse(url="x", success=True, status=200, headers=headers)


def candidate(url, width, height, tier, valid=True) -> ImageCandidate:
    return ImageCandidate(url=url, width=width, height=height, quality_tier=tier, valid=valid)


class TestScoring:
    """Additive score and tier thresholds."""

    def test_high_tier(self):
        score, tier = score_image(1200, 675, "jpeg", 200 * 1024)
        assert score == 9
        assert tier == QualityTier.HIGH

    def test_medium_tier(self):
        score, tier = score_image(500, 350, "png", 30 * 1024)
        assert score == 4
        assert tier == QualityTier.MEDIUM

    def test_low_tier(self):
        score, tier = score_image(100, 100, "gif", 1000)
        assert score == 0
        assert tier == QualityTier.LOW

    def test_read_image_header(self):
        assert read_image_header(image_bytes(640, 480, "PNG")) == (640, 480, "png")
        assert read_image_header(b"<html>not an image</html>") is None

    def test_low_candidate_never_valid(self):
        image = ImageCandidate(url="https://e.com/a.jpg", width=1000, height=800, quality_tier=QualityTier.LOW, valid=True)
        assert image.valid is False


class TestAnalyzer:
    """Probing and role assignment."""

    @pytest.fixture
    def analyzer(self, mock_http, settings):
        return ImageQualityAnalyzer(mock_http, settings)

    @pytest.mark.asyncio
    async def test_scores_downloaded_image(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response())
        mock_http.fetch_bytes = AsyncMock(return_value=image_bytes(1200, 675))

        result = await analyzer.score("https://example.com/photos/harbor-at-dawn.jpg")

        assert result.valid
        assert result.quality_tier == QualityTier.HIGH
        assert (result.width, result.height, result.format) == (1200, 675, "jpeg")
        assert result.alt_text == "Harbor At Dawn"

    @pytest.mark.asyncio
    async def test_alt_text_from_page_markup(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response())
        mock_http.fetch_bytes = AsyncMock(return_value=image_bytes(900, 600))
        html = '<p><img src="https://example.com/p/1.jpg" alt="Crowd at the rally"></p>'

        result = await analyzer.score("https://example.com/p/1.jpg", context_html=html)

        assert result.alt_text == "Crowd at the rally"

    @pytest.mark.asyncio
    async def test_rejects_non_image_content_type(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response("text/html"))

        result = await analyzer.score("https://example.com/page.jpg")

        assert not result.valid
        assert "content type" in result.rejection_reason
        mock_http.fetch_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejects_oversized(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response(length=str(50 * 1024 * 1024)))

        result = await analyzer.score("https://example.com/huge.jpg")

        assert result.rejection_reason == "too large"

    @pytest.mark.asyncio
    async def test_rejects_undecodable_payload(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response())
        mock_http.fetch_bytes = AsyncMock(return_value=b"definitely not pixels")

        result = await analyzer.score("https://example.com/broken.jpg")

        assert not result.valid
        assert result.rejection_reason == "not an image"

    @pytest.mark.asyncio
    async def test_small_image_is_invalid(self, analyzer, mock_http):
        mock_http.head = AsyncMock(return_value=head_response("image/png"))
        mock_http.fetch_bytes = AsyncMock(return_value=image_bytes(200, 150, "PNG"))

        result = await analyzer.score("https://example.com/thumb.png")

        assert result.quality_tier == QualityTier.LOW
        assert not result.valid

    @pytest.mark.asyncio
    async def test_score_all_ranks_valid_first(self, analyzer, mock_http):
        payloads = {
            "https://example.com/small.png": image_bytes(200, 150, "PNG"),
            "https://example.com/large.jpg": image_bytes(1200, 675),
        }
        mock_http.head = AsyncMock(return_value=head_response())
        mock_http.fetch_bytes = AsyncMock(side_effect=lambda url, **kwargs: payloads[url])

        ranked = await analyzer.score_all([{"src": url} for url in payloads])

        assert [c.url for c in ranked] == ["https://example.com/large.jpg", "https://example.com/small.png"]

    def test_assign_use_case(self, analyzer):
        hero = candidate("https://e.com/wide.jpg", 1200, 675, QualityTier.HIGH)
        square = candidate("https://e.com/square.jpg", 600, 600, QualityTier.MEDIUM)
        extra = candidate("https://e.com/extra.jpg", 800, 450, QualityTier.MEDIUM)
        broken = candidate("https://e.com/broken.jpg", 2000, 1000, QualityTier.HIGH, valid=False)

        assignment = analyzer.assign_use_case([broken, square, extra, hero])

        assert assignment.hero is hero
        assert assignment.thumbnail is square
        assert assignment.gallery == [extra]
        assert broken not in assignment.ordered()

    def test_landscape_image_not_used_as_thumbnail(self, analyzer):
        hero = candidate("https://e.com/wide.jpg", 1200, 675, QualityTier.HIGH)
        landscape = candidate("https://e.com/landscape.jpg", 900, 600, QualityTier.MEDIUM)
        nearly_square = candidate("https://e.com/near.jpg", 600, 500, QualityTier.MEDIUM)

        assert analyzer.assign_use_case([hero, landscape]).thumbnail is None

        assignment = analyzer.assign_use_case([hero, landscape, nearly_square])
        assert assignment.thumbnail is nearly_square
        assert landscape in assignment.gallery

    def test_assign_use_case_never_picks_invalid(self, analyzer):
        broken = candidate("https://e.com/broken.jpg", 2000, 1000, QualityTier.HIGH, valid=False)
        tiny = candidate("https://e.com/tiny.jpg", 100, 80, QualityTier.LOW)

        assignment = analyzer.assign_use_case([broken, tiny])

        assert assignment.hero is None
        assert assignment.thumbnail is None
        assert assignment.gallery == []

"""
Article Publisher Tests
=======================

Taxonomy linking, hero upload and store failure mapping against the
in-memory content store.
"""

import io
from unittest.mock import AsyncMock

import pytest
from PIL import Image

from newsforge.config.settings import ImageSettings
from newsforge.models.article import NormalizedArticle
from newsforge.storage.content_store import InMemoryContentStore, TaxonomyKind
from newsforge.storage.publisher import ArticlePublisher
from newsforge.utils.exceptions import ContentStoreError, ContentStoreUnavailableError, ErrorCode


def make_article(**overrides) -> NormalizedArticle:
    values = {
        "title": "Storm batters coast",
        "slug": "storm-batters-coast-20240301-101010",
        "excerpt": "High winds closed roads along the coast.",
        "body_html": "<p>High winds closed roads along the coast.</p>",
        "tags": ["Weather", "storms"],
        "source_url": "https://example.com/storm",
        "category": "World",
        "author": "Jane Reporter",
        "hero_image_url": "https://example.com/images/storm.jpg",
    }
    values.update(overrides)
    return NormalizedArticle(**values)


class BrokenStore(InMemoryContentStore):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def create_article(self, article, relations=None):
        raise self.error


class TestPublish:

    @pytest.mark.asyncio
    async def test_links_taxonomy(self, settings, store):
        publisher = ArticlePublisher(store, None, settings)

        article_id = await publisher.publish(make_article())

        record = store.articles[article_id]
        relations = record["relations"]
        assert relations["category"] == store.taxonomy[(TaxonomyKind.CATEGORY.value, "world")]
        assert relations["author"] == store.taxonomy[(TaxonomyKind.AUTHOR.value, "jane reporter")]
        assert len(relations["tags"]) == 2
        assert "hero_asset" not in relations
        assert await publisher.exists("https://example.com/storm")

    @pytest.mark.asyncio
    async def test_taxonomy_reused(self, settings, store):
        publisher = ArticlePublisher(store, None, settings)

        await publisher.publish(make_article())
        await publisher.publish(make_article(source_url="https://example.com/storm-2", slug="storm-2"))

        assert len(store.taxonomy) == 4
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_duplicate_is_not_retryable(self, settings, store):
        publisher = ArticlePublisher(store, None, settings)
        await publisher.publish(make_article())

        with pytest.raises(ContentStoreError) as exc_info:
            await publisher.publish(make_article())

        assert exc_info.value.error_code == ErrorCode.STORE_DUPLICATE
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_transport_failure_maps_to_unavailable(self, settings):
        publisher = ArticlePublisher(BrokenStore(ConnectionError("refused")), None, settings)

        with pytest.raises(ContentStoreUnavailableError):
            await publisher.publish(make_article())

    @pytest.mark.asyncio
    async def test_other_failure_maps_to_store_error(self, settings):
        publisher = ArticlePublisher(BrokenStore(KeyError("slug")), None, settings)

        with pytest.raises(ContentStoreError) as exc_info:
            await publisher.publish(make_article())

        assert not isinstance(exc_info.value, ContentStoreUnavailableError)
        assert exc_info.value.error_code == ErrorCode.STORE_WRITE_FAILED
        assert exc_info.value.recoverable


class TestHeroUpload:

    @pytest.fixture
    def upload_settings(self, settings_factory):
        return settings_factory(images=ImageSettings(upload_hero=True))

    @pytest.mark.asyncio
    async def test_hero_uploaded(self, upload_settings, store, mock_http):
        buffer = io.BytesIO()
        Image.new("RGB", (800, 450)).save(buffer, format="PNG")
        mock_http.fetch_bytes = AsyncMock(return_value=buffer.getvalue())
        publisher = ArticlePublisher(store, mock_http, upload_settings)

        article_id = await publisher.publish(make_article())

        asset_id = store.articles[article_id]["relations"]["hero_asset"]
        assert store.assets[asset_id]["content_type"] == "image/png"
        assert store.assets[asset_id]["alt_text"] == "Storm batters coast"

    @pytest.mark.asyncio
    async def test_failed_download_still_publishes(self, upload_settings, store, mock_http):
        publisher = ArticlePublisher(store, mock_http, upload_settings)

        article_id = await publisher.publish(make_article())

        assert "hero_asset" not in store.articles[article_id]["relations"]
        assert store.assets == {}

    @pytest.mark.asyncio
    async def test_upload_errors_never_raise(self, upload_settings, store, mock_http):
        mock_http.fetch_bytes = AsyncMock(side_effect=RuntimeError("socket closed"))
        publisher = ArticlePublisher(store, mock_http, upload_settings)

        assert await publisher.upload_hero(make_article()) is None

    @pytest.mark.asyncio
    async def test_prepared_asset_reused(self, upload_settings, store, mock_http):
        publisher = ArticlePublisher(store, mock_http, upload_settings)

        article_id = await publisher.publish(make_article(), "asset-7", upload_hero=False)

        assert store.articles[article_id]["relations"]["hero_asset"] == "asset-7"
        mock_http.fetch_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_upload_when_disabled_by_caller(self, upload_settings, store, mock_http):
        publisher = ArticlePublisher(store, mock_http, upload_settings)

        article_id = await publisher.publish(make_article(), upload_hero=False)

        assert "hero_asset" not in store.articles[article_id]["relations"]
        mock_http.fetch_bytes.assert_not_called()

    @pytest.mark.asyncio
    async def test_prepare_hero_respects_settings(self, settings, store, mock_http):
        publisher = ArticlePublisher(store, mock_http, settings)

        assert await publisher.prepare_hero(make_article()) is None
        mock_http.fetch_bytes.assert_not_called()

"""
Article Publisher
=================

Persistence sequence for one normalized article: resolve taxonomy ids
(category, author, tags), optionally upload the hero image, then create the
article. Store failures surface as ``ContentStoreError`` so the orchestrator
can retry them.
"""

import asyncio
from typing import Any, Dict, List, Optional

from .content_store import ContentStore, TaxonomyKind
from ..config.settings import NewsForgeSettings, get_settings
from ..images.analyzer import read_image_header
from ..models.article import NormalizedArticle
from ..utils.exceptions import ContentStoreError, ContentStoreUnavailableError, NewsForgeError
from ..utils.logging import get_logger_for_component


# Transport-level failures mean the store itself is unreachable
UNAVAILABLE_ERRORS = (ConnectionError, asyncio.TimeoutError, OSError)


class ArticlePublisher:
    """Turns a NormalizedArticle into store calls."""

    def __init__(
        self,
        store: ContentStore,
        http=None,
        settings: Optional[NewsForgeSettings] = None,
    ):
        """
        Args:
            store: Content store collaborator
            http: HttpFetcher used to download the hero image for upload
            settings: Application settings (default: global settings)
        """
        self.store = store
        self.http = http
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("publisher")

    async def _call(self, operation: str, source_url: Optional[str], coro) -> Any:
        try:
            return await coro
        except NewsForgeError:
            raise
        except UNAVAILABLE_ERRORS as e:
            raise ContentStoreUnavailableError(
                f"Content store unreachable during {operation}: {e}",
                source_url=source_url,
                operation=operation,
            ) from e
        except Exception as e:
            raise ContentStoreError(
                f"Content store {operation} failed: {e}",
                source_url=source_url,
                operation=operation,
            ) from e

    async def exists(self, source_url: str) -> bool:
        """Duplicate check by exact source URL.

        Raises:
            ContentStoreError: If the store call fails
        """
        return bool(await self._call("exists", source_url, self.store.exists(source_url)))

    async def publish(
        self,
        article: NormalizedArticle,
        hero_asset_id: Optional[str] = None,
        upload_hero: bool = True,
    ) -> str:
        """
        Persist an article with its taxonomy links.

        Args:
            article: Article to persist
            hero_asset_id: Asset id from an earlier ``prepare_hero`` call
            upload_hero: Upload the hero image here when no asset id is given.
                Callers that retry ``publish`` pass False after preparing the
                hero once.

        Returns:
            Store-assigned article id

        Raises:
            ContentStoreError: If any required store call fails
        """
        relations: Dict[str, Any] = {}
        url = article.source_url

        if article.category:
            relations["category"] = await self._call(
                "get_or_create_taxonomy",
                url,
                self.store.get_or_create_taxonomy(TaxonomyKind.CATEGORY, article.category),
            )

        if article.author:
            relations["author"] = await self._call(
                "get_or_create_taxonomy",
                url,
                self.store.get_or_create_taxonomy(TaxonomyKind.AUTHOR, article.author),
            )

        tag_ids: List[str] = []
        for tag in article.tags:
            tag_ids.append(
                await self._call(
                    "get_or_create_taxonomy", url, self.store.get_or_create_taxonomy(TaxonomyKind.TAG, tag)
                )
            )
        relations["tags"] = tag_ids

        if hero_asset_id is None and upload_hero:
            hero_asset_id = await self.prepare_hero(article)
        if hero_asset_id:
            relations["hero_asset"] = hero_asset_id

        article_id = await self._call("create_article", url, self.store.create_article(article, relations))
        self.logger.info(
            f"Published '{article.title[:60]}' as {article_id}",
            extra={"source_url": url, "category": article.category},
        )
        return article_id

    async def prepare_hero(self, article: NormalizedArticle) -> Optional[str]:
        """Upload the hero image when uploads are enabled; returns the asset id or None."""
        if not (self.settings.images.upload_hero and article.hero_image_url):
            return None
        return await self.upload_hero(article)

    async def upload_hero(self, article: NormalizedArticle) -> Optional[str]:
        """Download and upload the hero image; failures are logged, never raised."""
        if self.http is None:
            return None

        url = article.hero_image_url
        try:
            data = await self.http.fetch_bytes(
                url, self.settings.images.max_image_bytes, timeout=self.settings.images.fetch_timeout
            )
            if not data:
                self.logger.debug(f"Hero image download failed: {url}")
                return None

            header = read_image_header(data)
            content_type = f"image/{header[2]}" if header and header[2] else "image/jpeg"
            alt_text = article.images[0].alt_text if article.images else article.title
            return await self.store.upload_image(data, content_type, alt_text or article.title)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(
                f"Hero image upload failed for '{article.title[:60]}': {e}",
                extra={"source_url": article.source_url},
            )
            return None

"""
Content Store Interface
=======================

The persistent content store is an external collaborator. ``ContentStore``
is the contract the pipeline relies on; ``InMemoryContentStore`` implements
it for dry runs and tests.

Every method may fail; callers treat failures as retryable unless the
store raises a non-recoverable ``ContentStoreError``.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..models.article import NormalizedArticle
from ..utils.exceptions import ContentStoreError, ErrorCode
from ..utils.logging import get_logger_for_component


class TaxonomyKind(str, Enum):
    """Taxonomy collections an article links to."""
    CATEGORY = "category"
    AUTHOR = "author"
    TAG = "tag"


@runtime_checkable
class ContentStore(Protocol):
    """Operations the import pipeline needs from the content store."""

    async def exists(self, source_url: str) -> bool:
        ...

    async def get_or_create_taxonomy(self, kind: TaxonomyKind, name: str) -> str:
        ...

    async def create_article(
        self, article: NormalizedArticle, relations: Optional[Dict[str, Any]] = None
    ) -> str:
        ...

    async def upload_image(self, data: bytes, content_type: str, alt_text: str) -> Optional[str]:
        ...


class InMemoryContentStore:
    """Process-local content store.

    Creating a second article with the same source URL raises a
    non-recoverable ``STORE_DUPLICATE`` error, so the check-then-create
    sequence cannot produce duplicates even under concurrent categories.
    """

    def __init__(self):
        self.articles: Dict[str, Dict[str, Any]] = {}
        self.taxonomy: Dict[tuple, str] = {}
        self.assets: Dict[str, Dict[str, Any]] = {}
        self._by_source_url: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        self.logger = get_logger_for_component("content_store")

    async def exists(self, source_url: str) -> bool:
        return source_url in self._by_source_url

    async def get_or_create_taxonomy(self, kind: TaxonomyKind, name: str) -> str:
        key = (TaxonomyKind(kind).value, name.strip().lower())
        async with self._lock:
            if key not in self.taxonomy:
                self.taxonomy[key] = f"{key[0]}-{len(self.taxonomy) + 1}"
            return self.taxonomy[key]

    async def create_article(
        self, article: NormalizedArticle, relations: Optional[Dict[str, Any]] = None
    ) -> str:
        async with self._lock:
            if article.source_url in self._by_source_url:
                raise ContentStoreError(
                    f"Article already exists for {article.source_url}",
                    source_url=article.source_url,
                    operation="create_article",
                    error_code=ErrorCode.STORE_DUPLICATE,
                    recoverable=False,
                )

            article_id = str(uuid.uuid4())
            self.articles[article_id] = {
                "article": article,
                "relations": dict(relations or {}),
                "created_at": datetime.now(timezone.utc),
            }
            self._by_source_url[article.source_url] = article_id

        self.logger.debug(f"Stored article {article.slug} as {article_id}")
        return article_id

    async def upload_image(self, data: bytes, content_type: str, alt_text: str) -> Optional[str]:
        if not data:
            return None
        asset_id = f"asset-{len(self.assets) + 1}"
        self.assets[asset_id] = {"size": len(data), "content_type": content_type, "alt_text": alt_text}
        return asset_id

    def list_articles(self) -> List[NormalizedArticle]:
        return [record["article"] for record in self.articles.values()]

    def __len__(self) -> int:
        return len(self.articles)

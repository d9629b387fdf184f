"""
Category Feed Reader
====================

Fetches a category's aggregator feed with aiohttp and parses it with
feedparser into immutable ``FeedEntry`` models.
"""

import calendar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import feedparser

from .http_client import HttpFetcher
from ..config.settings import NewsForgeSettings, get_settings
from ..models.article import FeedEntry
from ..utils.exceptions import ErrorCode, FeedError
from ..utils.logging import get_logger_for_component


@runtime_checkable
class FeedSource(Protocol):
    """Anything that can list categories and their entries."""

    def categories(self) -> List[str]:
        ...

    async def fetch_entries(self, category: str, limit: Optional[int] = None) -> List[FeedEntry]:
        ...


class GoogleNewsFeedReader:
    """Feed source backed by the configured category feed table."""

    def __init__(self, http: HttpFetcher, settings: Optional[NewsForgeSettings] = None):
        self.http = http
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("feed_reader")

    def categories(self) -> List[str]:
        return list(self.settings.feeds.categories)

    def feed_url(self, category: str) -> str:
        """
        Raises:
            FeedError: If the category has no configured feed
        """
        try:
            return self.settings.feeds.categories[category]
        except KeyError:
            raise FeedError(
                f"Unknown category: {category}",
                error_code=ErrorCode.FEED_UNKNOWN_CATEGORY,
                recoverable=False,
            )

    async def fetch_entries(self, category: str, limit: Optional[int] = None) -> List[FeedEntry]:
        """Fetch and parse one category feed.

        Args:
            category: Category name from the feed table
            limit: Maximum entries returned (feed order)

        Returns:
            Parsed entries, newest first as delivered by the feed

        Raises:
            FeedError: If the feed cannot be fetched or parsed
        """
        url = self.feed_url(category)
        timeout = self.settings.feeds.feed_timeout

        response = await self.http.fetch_html(url, timeout=timeout)
        if not response.success:
            error_code = ErrorCode.FEED_FETCH_TIMEOUT if "timeout" in (response.error or "") else ErrorCode.FEED_NETWORK_ERROR
            if response.status == 404:
                error_code = ErrorCode.FEED_NOT_FOUND
            elif response.status in (401, 403):
                error_code = ErrorCode.FEED_ACCESS_DENIED
            raise FeedError(
                f"Feed fetch failed for {category}: {response.error}",
                feed_url=url,
                error_code=error_code,
            )

        feed_data = feedparser.parse(response.text)

        if getattr(feed_data, "bozo", False) and not feed_data.entries:
            raise FeedError(
                f"Feed parse error for {category}: {getattr(feed_data, 'bozo_exception', 'invalid XML')}",
                feed_url=url,
                error_code=ErrorCode.FEED_PARSE_ERROR,
            )

        entries = self.parse_entries(feed_data.entries)
        if limit is not None:
            entries = entries[:limit]

        self.logger.info(f"Fetched {len(entries)} entries for {category}", extra={"category": category})
        return entries

    def parse_entries(self, raw_entries: List[Any]) -> List[FeedEntry]:
        entries = []
        for raw in raw_entries:
            try:
                entries.append(self._to_entry(raw))
            except (ValueError, TypeError) as e:
                self.logger.warning(
                    f"Failed to parse feed entry: {e}",
                    extra={"entry_title": raw.get("title", "Unknown")},
                )
        return entries

    def _to_entry(self, raw: Dict[str, Any]) -> FeedEntry:
        source = raw.get("source") or {}
        content = ""
        if raw.get("content"):
            content = max((c.get("value", "") for c in raw["content"]), key=len, default="")

        return FeedEntry(
            title=raw.get("title", "") or "",
            link=raw.get("link", "") or "",
            published_at=self._parse_date(raw),
            raw_content_snippet=raw.get("summary", "") or "",
            source_label=source.get("title", "") if isinstance(source, dict) else "",
            content=content,
            description=raw.get("description", "") or "",
        )

    def _parse_date(self, raw: Dict[str, Any]) -> Optional[datetime]:
        for field in ("published_parsed", "updated_parsed", "created_parsed"):
            parsed = raw.get(field)
            if parsed:
                try:
                    # feedparser normalizes to UTC struct_time
                    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
                except (ValueError, OverflowError):
                    continue
        return None

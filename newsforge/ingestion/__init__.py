"""
NewsForge Ingestion Module
==========================

HTTP fetching, category feed reading, aggregator link resolution and
HTML sanitization.
"""

from .http_client import HttpFetcher, FetchResponse
from .feed_reader import FeedSource, GoogleNewsFeedReader
from .url_resolver import UrlResolver
from .content_sanitizer import ContentSanitizer

__all__ = ["HttpFetcher", "FetchResponse", "FeedSource", "GoogleNewsFeedReader", "UrlResolver", "ContentSanitizer"]

"""
NewsForge Storage Layer
=======================

Content store contract, an in-memory implementation and the publisher
that sequences taxonomy lookups and article creation.
"""

from .content_store import ContentStore, InMemoryContentStore, TaxonomyKind
from .publisher import ArticlePublisher

__all__ = ["ContentStore", "InMemoryContentStore", "TaxonomyKind", "ArticlePublisher"]

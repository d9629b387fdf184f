"""
NewsForge Models
================

Data models shared across the import pipeline.
"""

from .article import (
    FeedEntry,
    ResolvedSource,
    QualityTier,
    ImageCandidate,
    NormalizedArticle,
    ImportOutcome,
)

__all__ = [
    "FeedEntry",
    "ResolvedSource",
    "QualityTier",
    "ImageCandidate",
    "NormalizedArticle",
    "ImportOutcome",
]

"""
NewsForge Data Models
=====================

Pydantic and dataclass models that flow through the import pipeline:
feed entries in, normalized articles out, with resolution results, image
candidates and per-category outcomes in between.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator


class FeedEntry(BaseModel):
    """One syndicated item as read from a category feed. Immutable."""
    title: str = Field(default="", description="Entry headline")
    link: str = Field(default="", description="Entry link, possibly an aggregator redirect")
    published_at: Optional[datetime] = Field(default=None, description="Publication time")
    raw_content_snippet: str = Field(default="", description="Short plain snippet")
    source_label: str = Field(default="", description="Publisher name from the feed")
    content: str = Field(default="", description="Richest embedded content (HTML)")
    description: str = Field(default="", description="Feed description field (HTML)")

    model_config = {"frozen": True}

    @field_validator("title", "link", "raw_content_snippet", "source_label")
    @classmethod
    def strip_text(cls, v):
        return (v or "").strip()

    def is_usable(self) -> bool:
        """Entry has both a title and a link."""
        return bool(self.title) and bool(self.link)

    def embedded_contents(self) -> List[str]:
        """Embedded content fields, richest first."""
        fields = [self.content, self.description, self.raw_content_snippet]
        return sorted((f for f in fields if f and f.strip()), key=len, reverse=True)

    def __str__(self) -> str:
        return f"FeedEntry({self.title[:50]!r}, {self.link})"


@dataclass(frozen=True)
class ResolvedSource:
    """Result of resolving an entry link to its canonical page."""
    original_url: str
    resolved_url: str
    method: str = "unchanged"

    @property
    def changed(self) -> bool:
        return self.original_url != self.resolved_url


class QualityTier(str, Enum):
    """Coarse image quality bucket."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


@dataclass
class ImageCandidate:
    """A scored image.

    ``valid`` is only ever true for non-low images meeting the minimum
    dimensions; ``__post_init__`` enforces it against the given minimums.
    """
    url: str
    width: int = 0
    height: int = 0
    format: Optional[str] = None
    byte_size: Optional[int] = None
    aspect_ratio: float = 0.0
    quality_tier: QualityTier = QualityTier.LOW
    valid: bool = False
    score: int = 0
    alt_text: str = ""
    title: str = ""
    rejection_reason: Optional[str] = None
    min_width: int = field(default=300, repr=False)
    min_height: int = field(default=200, repr=False)

    def __post_init__(self):
        if not self.aspect_ratio and self.width and self.height:
            self.aspect_ratio = self.width / self.height
        if self.valid and (
            self.quality_tier == QualityTier.LOW
            or self.width < self.min_width
            or self.height < self.min_height
        ):
            self.valid = False

    @property
    def area(self) -> int:
        return self.width * self.height

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "width": self.width,
            "height": self.height,
            "format": self.format,
            "byte_size": self.byte_size,
            "aspect_ratio": round(self.aspect_ratio, 3),
            "quality_tier": self.quality_tier.value,
            "valid": self.valid,
            "score": self.score,
            "alt_text": self.alt_text,
            "title": self.title,
        }


class NormalizedArticle(BaseModel):
    """Final pipeline output handed to the content store."""
    title: str = Field(..., min_length=1, description="Cleaned headline")
    slug: str = Field(..., min_length=1, description="URL-safe unique slug")
    excerpt: str = Field(..., min_length=1, description="Bounded summary")
    body_html: str = Field(..., description="Sanitized article body")
    images: List[ImageCandidate] = Field(default_factory=list, description="Valid images, best first")
    tags: List[str] = Field(default_factory=list, description="Lowercase topic tags")
    location: Optional[str] = Field(default=None, description="Best-guess location")
    reading_time_minutes: int = Field(default=1, ge=1, description="Estimated reading time")
    is_breaking: bool = Field(default=False)
    source_url: str = Field(..., min_length=1, description="Resolved source page")
    published_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    seo_title: str = Field(default="", description="Title for search engines")
    seo_description: str = Field(default="", description="Description for search engines")
    category: Optional[str] = Field(default=None, description="Feed category")
    author: Optional[str] = Field(default=None, description="Byline or publisher")
    locale: str = Field(default="en")
    extraction_method: str = Field(default="", description="Strategy or fallback that produced the body")
    word_count: int = Field(default=0, ge=0)
    hero_image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    structured: bool = Field(default=False, description="Fields came from the structuring provider")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v):
        seen = []
        for tag in v:
            tag = (tag or "").strip().lower()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    def __str__(self) -> str:
        return f"NormalizedArticle({self.slug})"


@dataclass
class ImportOutcome:
    """Counters for one category (or a whole run). Only ever incremented."""
    imported: int = 0
    skipped: int = 0
    errors: int = 0

    def merge(self, other: "ImportOutcome") -> None:
        self.imported += other.imported
        self.skipped += other.skipped
        self.errors += other.errors

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.errors

    def to_dict(self) -> Dict[str, int]:
        return {"imported": self.imported, "skipped": self.skipped, "errors": self.errors}

"""
Image Quality Analyzer
======================

Probes candidate image URLs, reads intrinsic width/height/format with
Pillow and scores each image on independent signals:

- resolution tier (+1..+3)
- closeness of aspect ratio to the preferred landscape ratio (+1..+2)
- format (jpeg/webp +2, png +1)
- file size band (+1..+2)

Scores bucket into high (>= 7), medium (>= 4) and low tiers. A companion
classifier assigns hero, thumbnail and gallery roles from valid images only.
"""

import asyncio
import io
import os
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple
from urllib.parse import urlparse, unquote

from bs4 import BeautifulSoup
from PIL import Image, UnidentifiedImageError

from ..config.settings import NewsForgeSettings, get_settings
from ..models.article import ImageCandidate, QualityTier
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator, validate_url

HIGH_TIER_SCORE = 7
MEDIUM_TIER_SCORE = 4

PREFERRED_FORMATS = {"jpeg": 2, "jpg": 2, "webp": 2, "png": 1}

# Near-square width/height range for thumbnails
THUMBNAIL_ASPECT_RANGE = (0.8, 1.25)


@dataclass
class ImageAssignment:
    """Role assignment for a scored image set."""
    hero: Optional[ImageCandidate] = None
    thumbnail: Optional[ImageCandidate] = None
    gallery: List[ImageCandidate] = field(default_factory=list)

    def ordered(self) -> List[ImageCandidate]:
        """Hero, thumbnail, then gallery without repeats."""
        result: List[ImageCandidate] = []
        for candidate in [self.hero, self.thumbnail, *self.gallery]:
            if candidate is not None and candidate not in result:
                result.append(candidate)
        return result


def score_image(
    width: int,
    height: int,
    image_format: Optional[str],
    byte_size: Optional[int],
    preferred_aspect_ratio: float = 16 / 9,
) -> Tuple[int, QualityTier]:
    """Additive quality score and tier for intrinsic image properties."""
    score = 0

    if width >= 800 and height >= 600:
        score += 3
    elif width >= 600 and height >= 400:
        score += 2
    elif width >= 400 and height >= 300:
        score += 1

    if width and height:
        aspect_diff = abs(width / height - preferred_aspect_ratio)
        if aspect_diff < 0.2:
            score += 2
        elif aspect_diff < 0.5:
            score += 1

    score += PREFERRED_FORMATS.get((image_format or "").lower(), 0)

    if byte_size:
        if 50 * 1024 <= byte_size <= 2 * 1024 * 1024:
            score += 2
        elif 20 * 1024 <= byte_size <= 5 * 1024 * 1024:
            score += 1

    if score >= HIGH_TIER_SCORE:
        tier = QualityTier.HIGH
    elif score >= MEDIUM_TIER_SCORE:
        tier = QualityTier.MEDIUM
    else:
        tier = QualityTier.LOW

    return score, tier


def read_image_header(data: bytes) -> Optional[Tuple[int, int, str]]:
    """Width, height and lowercase format name, or None if not an image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            return width, height, (img.format or "").lower()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError):
        return None


class ImageQualityAnalyzer:
    """Scores image candidates and assigns use cases."""

    def __init__(self, http, settings: Optional[NewsForgeSettings] = None):
        """
        Args:
            http: HttpFetcher used for header probes and downloads
            settings: Application settings (default: global settings)
        """
        self.http = http
        self.settings = settings or get_settings()
        self.config = self.settings.images
        self.logger = get_logger_for_component("images")

    def _rejected(self, url: str, reason: str, alt_text: str = "", title: str = "") -> ImageCandidate:
        self.logger.debug(f"Image rejected ({reason}): {url}")
        return ImageCandidate(
            url=url,
            valid=False,
            rejection_reason=reason,
            alt_text=alt_text,
            title=title,
            min_width=self.config.min_width,
            min_height=self.config.min_height,
        )

    async def score(
        self,
        image_url: str,
        context_html: Optional[str] = None,
        alt_text: str = "",
        title: str = "",
    ) -> ImageCandidate:
        """
        Probe and score a single image URL. Never raises.

        Args:
            image_url: Absolute image URL
            context_html: Page markup used to find alt/title text
            alt_text: Known alt text (overrides markup lookup)
            title: Known title text

        Returns:
            Scored ImageCandidate (``valid`` False when rejected)
        """
        if not alt_text and not title:
            alt_text, title = self._describe(image_url, context_html)

        if not validate_url(image_url):
            return self._rejected(image_url, "invalid url", alt_text, title)

        head = await self.http.head(image_url, timeout=self.config.head_timeout)
        if head is not None and head.success:
            content_type = head.content_type
            if content_type and not content_type.startswith("image/"):
                return self._rejected(image_url, f"content type {content_type}", alt_text, title)
            length = head.headers.get("Content-Length") or head.headers.get("content-length")
            if length and length.isdigit() and int(length) > self.config.max_image_bytes:
                return self._rejected(image_url, "too large", alt_text, title)
        elif not URLValidator.looks_like_image_url(image_url):
            return self._rejected(image_url, "unreachable", alt_text, title)

        data = await self.http.fetch_bytes(
            image_url, max_bytes=self.config.max_image_bytes, timeout=self.config.fetch_timeout
        )
        if not data:
            return self._rejected(image_url, "download failed", alt_text, title)

        header = read_image_header(data)
        if header is None:
            return self._rejected(image_url, "not an image", alt_text, title)

        width, height, image_format = header
        score, tier = score_image(
            width, height, image_format, len(data), self.config.preferred_aspect_ratio
        )
        valid = (
            tier != QualityTier.LOW
            and width >= self.config.min_width
            and height >= self.config.min_height
        )

        return ImageCandidate(
            url=image_url,
            width=width,
            height=height,
            format=image_format,
            byte_size=len(data),
            aspect_ratio=width / height if height else 0.0,
            quality_tier=tier,
            valid=valid,
            score=score,
            alt_text=alt_text,
            title=title,
            min_width=self.config.min_width,
            min_height=self.config.min_height,
        )

    async def score_all(
        self, image_refs: List[Dict[str, str]], context_html: Optional[str] = None
    ) -> List[ImageCandidate]:
        """Score up to ``max_candidates`` images concurrently and rank them."""
        refs = image_refs[: self.config.max_candidates]
        if not refs:
            return []

        semaphore = asyncio.Semaphore(3)

        async def score_one(ref: Dict[str, str]) -> ImageCandidate:
            async with semaphore:
                return await self.score(
                    ref["src"], context_html, ref.get("alt", ""), ref.get("title", "")
                )

        candidates = await asyncio.gather(*(score_one(ref) for ref in refs))
        return self.rank(list(candidates))

    def rank(self, candidates: List[ImageCandidate]) -> List[ImageCandidate]:
        """Best first: validity, tier, area, then closeness to preferred ratio."""
        preferred = self.config.preferred_aspect_ratio
        return sorted(
            candidates,
            key=lambda c: (
                not c.valid,
                -c.quality_tier.rank,
                -c.area,
                abs(c.aspect_ratio - preferred),
            ),
        )

    def assign_use_case(self, candidates: List[ImageCandidate]) -> ImageAssignment:
        """
        Partition a scored set into hero, thumbnail and gallery.

        Invalid images are never selected; an empty role is preferred over
        an invalid pick.
        """
        valid = [c for c in self.rank(candidates) if c.valid]
        if not valid:
            return ImageAssignment()

        hero = next(
            (c for c in valid if c.quality_tier == QualityTier.HIGH and c.width >= 800 and c.aspect_ratio > 1.2),
            valid[0],
        )

        thumbnail_options = [
            c for c in valid
            if c.width >= self.config.min_width
            and THUMBNAIL_ASPECT_RANGE[0] <= c.aspect_ratio <= THUMBNAIL_ASPECT_RANGE[1]
        ]
        thumbnail = next((c for c in thumbnail_options if c is not hero), None)
        if thumbnail is None and thumbnail_options:
            thumbnail = thumbnail_options[0]

        gallery = [c for c in valid if c is not hero and c is not thumbnail]
        return ImageAssignment(
            hero=hero,
            thumbnail=thumbnail,
            gallery=gallery[: self.config.gallery_limit],
        )

    def _describe(self, image_url: str, context_html: Optional[str]) -> Tuple[str, str]:
        """Alt and title text from the matching <img> tag, else from the file name."""
        if context_html:
            soup = BeautifulSoup(context_html, "html.parser")
            path = urlparse(image_url).path
            for img in soup.find_all("img"):
                src = img.get("src") or img.get("data-src") or ""
                if src and (src == image_url or (path and src.endswith(path))):
                    alt = (img.get("alt") or "").strip()
                    title = (img.get("title") or "").strip()
                    if alt or title:
                        return alt, title or alt

        filename = os.path.splitext(unquote(urlparse(image_url).path.rsplit("/", 1)[-1]))[0]
        words = filename.replace("-", " ").replace("_", " ").strip()
        described = words.title() if words else "Article image"
        return described, described

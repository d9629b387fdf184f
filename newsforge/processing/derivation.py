"""
Deterministic Field Derivation
==============================

Rule-based derivation of article fields used whenever structuring is
disabled or fails: title cleanup, slug, excerpt, reading time, keyword tags,
location guess, breaking flag and SEO fields.

Publisher suffix stripping is driven by ``TITLE_SUFFIX_PATTERNS`` and is
approximate; titles from unknown publishers may keep their suffix.
"""

import math
import re
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from urllib.parse import urlparse

from ..config.settings import NewsForgeSettings, get_settings


# Applied in order, each at most once
TITLE_SUFFIX_PATTERNS = [
    re.compile(r"\s+[-–—|]\s+[^-–—|]{2,60}$"),
    re.compile(r"\s*\((?:[A-Z][\w&.' ]{1,40})\)$"),
    re.compile(r"\s*:\s*(?:Reuters|AP|AFP|BBC News|CNN|NPR)$", re.IGNORECASE),
    re.compile(r"^(?:BREAKING|UPDATE|LIVE|WATCH|EXCLUSIVE)\s*[:|-]\s*", re.IGNORECASE),
    re.compile(r"\s+by\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2}$"),
]

# tag -> words that imply it
TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "politics": ["election", "senate", "congress", "parliament", "president", "minister", "policy", "government", "vote"],
    "business": ["market", "stocks", "economy", "company", "earnings", "investors", "trade", "inflation", "bank"],
    "technology": ["technology", "software", "artificial intelligence", " ai ", "startup", "chip", "cyber", "app"],
    "science": ["research", "scientists", "study", "space", "nasa", "climate", "physics", "discovery"],
    "health": ["health", "hospital", "vaccine", "disease", "medical", "patients", "drug", "virus"],
    "sports": ["match", "tournament", "championship", "league", "coach", "olympic", "football", "soccer", "tennis"],
    "world": ["international", "united nations", "foreign", "global", "embassy", "border"],
    "security": ["military", "defense", "attack", "troops", "war", "police", "terror"],
    "law": ["court", "judge", "lawsuit", "trial", "ruling", "supreme court", "attorney"],
    "culture": ["film", "music", "museum", "festival", "book", "artist", "theater"],
}

# URL path segment -> tags
URL_TOPIC_HINTS: Dict[str, List[str]] = {
    "politics": ["politics", "government"],
    "business": ["business", "economy"],
    "economy": ["business", "economy"],
    "technology": ["technology"],
    "tech": ["technology"],
    "sport": ["sports"],
    "sports": ["sports"],
    "world": ["world", "international"],
    "science": ["science"],
    "health": ["health"],
}

# Publisher domain -> tags
DOMAIN_HINTS: Dict[str, List[str]] = {
    "bbc": ["international"],
    "reuters": ["global"],
    "bloomberg": ["business", "finance"],
    "cnn": ["us"],
}

COUNTRY_PATTERNS = [
    (re.compile(r"\b(?:usa|united states|u\.s\.)(?=\W|$)", re.IGNORECASE), "USA"),
    (re.compile(r"\b(?:uk|united kingdom|britain|england)\b", re.IGNORECASE), "UK"),
    (re.compile(r"\bindia\b", re.IGNORECASE), "India"),
    (re.compile(r"\bchina\b", re.IGNORECASE), "China"),
    (re.compile(r"\bjapan\b", re.IGNORECASE), "Japan"),
    (re.compile(r"\bgermany\b", re.IGNORECASE), "Germany"),
    (re.compile(r"\bfrance\b", re.IGNORECASE), "France"),
    (re.compile(r"\bcanada\b", re.IGNORECASE), "Canada"),
    (re.compile(r"\baustralia\b", re.IGNORECASE), "Australia"),
    (re.compile(r"\bbrazil\b", re.IGNORECASE), "Brazil"),
]

SLUG_STRIP_PATTERN = re.compile(r"[^a-z0-9\s-]")


def clean_title(title: str, source_label: Optional[str] = None) -> str:
    """Strip publisher and byline decorations from a headline."""
    cleaned = re.sub(r"\s+", " ", title or "").strip()
    if not cleaned:
        return cleaned

    if source_label:
        label = re.escape(source_label.strip())
        cleaned = re.sub(rf"\s*[-–—|:]\s*{label}$", "", cleaned, flags=re.IGNORECASE)

    for pattern in TITLE_SUFFIX_PATTERNS:
        candidate = pattern.sub("", cleaned).strip()
        # Never reduce a headline to a fragment
        if len(candidate) >= 10:
            cleaned = candidate

    return cleaned


def slugify(text: str, max_length: int = 50) -> str:
    """Lowercase, hyphen-separated, punctuation-free slug base."""
    slug = SLUG_STRIP_PATTERN.sub("", (text or "").lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug).strip("-")
    slug = slug[:max_length].strip("-")
    return slug if len(slug) >= 3 else "article"


def build_slug(
    title: str,
    when: Optional[datetime] = None,
    suffix: Optional[str] = None,
    max_length: int = 50,
) -> str:
    """
    Build ``<base>-<YYYYMMDD>-<suffix>``.

    Args:
        title: Article title
        when: Date used in the slug (default: now, UTC)
        suffix: Uniqueness suffix (default: last six digits of the millisecond clock)
        max_length: Length limit for the base part
    """
    when = when or datetime.now(timezone.utc)
    suffix = suffix or str(int(time.time() * 1000))[-6:]
    return f"{slugify(title, max_length)}-{when.strftime('%Y%m%d')}-{suffix}"


def build_excerpt(text: str, max_length: int = 300) -> str:
    """Cut text at a sentence end when one falls late enough, else at a word."""
    text = re.sub(r"\s+", " ", text or "").strip()
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    sentence_end = max(truncated.rfind(". "), truncated.rfind("! "), truncated.rfind("? "))
    if sentence_end > max_length * 0.7:
        return truncated[:sentence_end + 1]

    last_space = truncated[: max_length - 3].rfind(" ")
    if last_space > 0:
        return truncated[:last_space] + "..."
    return truncated[: max_length - 3] + "..."


def count_words(text: str) -> int:
    return len((text or "").split())


def reading_time(text: str, words_per_minute: int = 200) -> int:
    """Whole minutes, never less than one."""
    return max(1, math.ceil(count_words(text) / words_per_minute))


def url_topic_tags(url: Optional[str]) -> List[str]:
    if not url:
        return []
    parsed = urlparse(url)
    tags: List[str] = []

    domain = (parsed.hostname or "").lower()
    for marker, hinted in DOMAIN_HINTS.items():
        if marker in domain:
            tags.extend(hinted)

    segments = [s for s in re.split(r"[/_\-.]", parsed.path.lower()) if s]
    for segment in segments:
        tags.extend(URL_TOPIC_HINTS.get(segment, []))
    return tags


def extract_tags(
    title: str,
    text: str,
    url: Optional[str] = None,
    category: Optional[str] = None,
    max_tags: int = 10,
) -> List[str]:
    """Keyword-based topic tags, most specific sources first."""
    tags: List[str] = []
    if category:
        tags.append(category.lower())

    tags.extend(url_topic_tags(url))

    haystack = f" {title or ''} {(text or '')[:5000]} ".lower()
    scored = []
    for tag, keywords in TOPIC_KEYWORDS.items():
        hits = sum(haystack.count(keyword) for keyword in keywords)
        if hits:
            scored.append((hits, tag))
    tags.extend(tag for _, tag in sorted(scored, key=lambda item: (-item[0], item[1])))

    location = guess_location(title, url)
    if location:
        tags.append(location.lower())

    if not tags:
        tags.append("news")

    unique: List[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in unique:
            unique.append(tag)
    return unique[:max_tags]


def guess_location(text: str, url: Optional[str] = None) -> Optional[str]:
    """First known country named in the URL path, else in the text."""
    sources = []
    if url:
        sources.append(" ".join(re.split(r"[/_\-.]", urlparse(url).path)))
    if text:
        sources.append(text[:5000])

    for source in sources:
        for pattern, name in COUNTRY_PATTERNS:
            if pattern.search(source):
                return name
    return None


def is_breaking(
    title: str,
    text: str,
    category: Optional[str],
    breaking_categories: List[str],
    keywords: List[str],
) -> bool:
    if category and category in breaking_categories:
        return True
    haystack = f"{title or ''} {(text or '')[:1000]}".lower()
    return any(keyword.lower() in haystack for keyword in keywords)


def truncate_words(text: str, limit: int) -> str:
    text = re.sub(r"\s+", " ", text or "").strip()
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return cut or text[:limit]


class FieldDeriver:
    """Settings-bound derivation of every deterministic article field."""

    def __init__(self, settings: Optional[NewsForgeSettings] = None):
        self.settings = settings or get_settings()
        self.config = self.settings.derivation

    def excerpt(self, text: str, fallback: str = "") -> str:
        excerpt = build_excerpt(text, self.config.excerpt_max_length)
        if len(excerpt) < self.config.excerpt_min_length:
            excerpt = build_excerpt(fallback, self.config.excerpt_max_length)
        if not excerpt:
            excerpt = "..."
        return excerpt

    def slug(self, title: str, when: Optional[datetime] = None, suffix: Optional[str] = None) -> str:
        return build_slug(title, when=when, suffix=suffix, max_length=self.config.slug_base_length)

    def derive(
        self,
        title: str,
        text: str,
        url: Optional[str] = None,
        category: Optional[str] = None,
        source_label: Optional[str] = None,
        published_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Derive all fields from a title and plain text.

        The slug carries ``published_at`` as its date (default: now).

        Returns:
            Dictionary with title, slug, excerpt, tags, location, reading_time,
            word_count, is_breaking, seo_title and seo_description
        """
        title = clean_title(title, source_label) or "Untitled"
        excerpt = self.excerpt(text, fallback=title)

        return {
            "title": title,
            "slug": self.slug(title, when=published_at),
            "excerpt": excerpt,
            "tags": extract_tags(title, text, url, category, self.config.max_tags),
            "location": guess_location(f"{title} {text or ''}", url),
            "reading_time": reading_time(text, self.config.words_per_minute),
            "word_count": count_words(text),
            "is_breaking": is_breaking(
                title,
                text,
                category,
                self.settings.feeds.breaking_categories,
                self.config.breaking_keywords,
            ),
            "seo_title": truncate_words(title, self.config.seo_title_length),
            "seo_description": truncate_words(excerpt, self.config.seo_description_length),
        }

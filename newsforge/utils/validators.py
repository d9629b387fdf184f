"""
NewsForge Input Validators
==========================

URL validation and normalization used by the resolver, the image analyzer
and the import orchestrator.
"""

import re
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
from typing import Optional

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {"http", "https"}

    SUSPICIOUS_PATTERNS = [
        r"^javascript:",
        r"^data:",
        r"^file:",
        r"^ftp:",
        r"://localhost[:/]",
        r"://127\.0\.0\.1",
        r"://10\.\d+\.\d+\.\d+",
        r"://192\.168\.\d+\.\d+",
    ]

    TRACKING_PARAMS = {
        "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
        "ref", "referer", "fbclid", "gclid", "dclid", "_ga", "_gl", "ocid", "cmpid",
    }

    IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif", ".bmp")

    @classmethod
    def validate_article_url(cls, url: str) -> str:
        """Validate and normalize an article or image URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL (lowercase scheme and host, fragment removed)

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url",
            )

        url = url.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                "URL scheme must be http or https",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        if cls._has_suspicious_patterns(url):
            raise ValidationError(
                "URL contains suspicious patterns",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url",
            )

        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                path=parsed.path or "/",
                fragment="",
            )
        )

    @classmethod
    def _has_suspicious_patterns(cls, url: str) -> bool:
        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in cls.SUSPICIOUS_PATTERNS)

    @classmethod
    def normalize_source_url(cls, url: str) -> str:
        """Strip tracking parameters and fragment from a source URL."""
        parsed = urlparse(url)
        params = [
            (k, v)
            for k, v in parse_qsl(parsed.query, keep_blank_values=True)
            if k.lower() not in cls.TRACKING_PARAMS and not k.lower().startswith("utm_")
        ]
        return urlunparse(
            parsed._replace(
                scheme=parsed.scheme.lower(),
                netloc=parsed.netloc.lower(),
                query=urlencode(params, doseq=True),
                fragment="",
            )
        )

    @classmethod
    def looks_like_image_url(cls, url: str) -> bool:
        """Syntactic check that a URL plausibly points at an image."""
        if not url:
            return False
        parsed = urlparse(url)
        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES or not parsed.netloc:
            return False

        path = parsed.path.lower()
        query = parsed.query.lower()
        return (
            path.endswith(cls.IMAGE_EXTENSIONS)
            or "format=" in query
            or "type=image" in query
            or "/image/" in path
            or "/images/" in path
        )

    @classmethod
    def is_pdf_link(cls, url: str) -> bool:
        return urlparse(url).path.lower().endswith(".pdf")


def validate_url(url: Optional[str]) -> bool:
    """
    Quick validation function for URLs.

    Returns:
        True if URL is valid, False otherwise
    """
    try:
        URLValidator.validate_article_url(url)
        return True
    except ValidationError:
        return False

"""
NewsForge - News Content Acquisition Pipeline
=============================================

Ingests aggregator feed entries, resolves them to their source pages and
turns raw pages into normalized, publishable articles.

Main Components:
- Ingestion: feed reading, URL resolution, HTML sanitization
- Extraction: readability, selector, pattern and rendered-browser strategies
- Fallback recovery: content reconstruction when every strategy fails
- Images: probing, quality scoring and hero/thumbnail/gallery assignment
- Structuring: optional Gemini/Groq field structuring with deterministic fallback
- Orchestration: per-category imports with duplicate suppression and retries
"""

__version__ = "1.0.0"
__author__ = "NewsForge Development Team"
__description__ = "News content acquisition and normalization pipeline"

from .config.settings import get_settings
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import NewsForgeError

__all__ = [
    "get_settings",
    "configure_application_logging",
    "get_logger_for_component",
    "NewsForgeError",
]

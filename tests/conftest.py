"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for NewsForge tests.

Network access is never used: every test gets a mocked ``HttpFetcher``
whose helpers fail by default, and individual tests override the calls
they care about.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
os.environ["NEWSFORGE_AI__STRUCTURING_ENABLED"] = "false"
os.environ["NEWSFORGE_LOGGING__FILE_PATH"] = ""
os.environ["NEWSFORGE_LOGGING__CONSOLE_LOGGING"] = "false"
os.environ["NEWSFORGE_DEBUG"] = "true"

from newsforge.config.settings import (  # noqa: E402
    AISettings,
    ImportSettings,
    LoggingSettings,
    NewsForgeSettings,
)
from newsforge.ingestion.content_sanitizer import ContentSanitizer  # noqa: E402
from newsforge.ingestion.http_client import FetchResponse  # noqa: E402
from newsforge.models.article import FeedEntry  # noqa: E402
from newsforge.storage.content_store import InMemoryContentStore  # noqa: E402


ARTICLE_PARAGRAPHS = [
    "Researchers at a university hospital announced on Tuesday that a new artificial "
    "intelligence system has shortened the early stages of drug discovery from years to months.",
    "The system screens millions of candidate molecules against protein structures and ranks "
    "them by how likely they are to bind, a task that previously required long laboratory work.",
    "Scientists involved in the study said the first compounds selected by the model have "
    "already shown promising results in cell cultures, although clinical trials are still ahead.",
    "Independent experts cautioned that computational predictions must still be confirmed by "
    "careful experiments, and that regulators will expect the usual evidence of safety.",
    "The team plans to publish its training data and invite other laboratories to test the "
    "approach on diseases that have received little attention from large pharmaceutical companies.",
]


def make_settings(**overrides) -> NewsForgeSettings:
    """Settings with pacing delays removed and structuring disabled."""
    values = {
        "import_": ImportSettings(item_delay=0.0, category_delay=0.0, persist_base_delay=0.0),
        "ai": AISettings(structuring_enabled=False),
        "logging": LoggingSettings(file_path=None, console_logging=False),
    }
    values.update(overrides)
    return NewsForgeSettings(**values)


def article_page(paragraph_repeat: int = 4, title: str = "AI Revolutionizes Drug Discovery") -> str:
    """A news page with boilerplate around a ~500 word article."""
    body = "\n".join(f"<p>{p}</p>" for p in ARTICLE_PARAGRAPHS * paragraph_repeat)
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>{title} - Example News</title>
  <meta property="og:title" content="{title}">
  <meta property="og:description" content="A new system screens candidate molecules in months.">
  <meta property="og:image" content="https://example.com/images/lab-hero.jpg">
  <meta name="author" content="Jane Reporter">
  <meta property="article:published_time" content="2024-03-01T09:30:00Z">
</head>
<body>
  <nav><a href="/">Home</a> <a href="/science">Science</a></nav>
  <header><h1>{title}</h1></header>
  <article class="article-body">
    {body}
    <img src="/images/molecule-render.jpg" alt="Molecule render">
  </article>
  <aside class="newsletter">Sign up for our newsletter</aside>
  <footer>Copyright Example News</footer>
  <script>trackPageView();</script>
</body>
</html>"""


def failed_response(url: str = "", error: str = "Fetch error: offline") -> FetchResponse:
    return FetchResponse(url=url, success=False, error=error)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def sanitizer():
    return ContentSanitizer()


@pytest.fixture
def mock_http():
    """HttpFetcher double whose every call fails like an unreachable network."""
    http = Mock()
    http.fetch_html = AsyncMock(return_value=failed_response())
    http.follow_redirects = AsyncMock(return_value=None)
    http.head = AsyncMock(return_value=None)
    http.fetch_bytes = AsyncMock(return_value=None)
    http.post_form = AsyncMock(return_value=None)
    http.close = AsyncMock()
    return http


@pytest.fixture
def store():
    return InMemoryContentStore()


@pytest.fixture
def sample_page():
    return article_page()


@pytest.fixture
def sample_entry():
    return FeedEntry(
        title="AI Revolutionizes Drug Discovery - Example News",
        link="https://example.com/science/ai-drug-discovery",
        published_at=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
        raw_content_snippet="A new system screens candidate molecules in months.",
        source_label="Example News",
    )


@pytest.fixture
def settings_factory():
    return make_settings

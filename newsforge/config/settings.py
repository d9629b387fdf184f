"""
NewsForge Configuration System
==============================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``NEWSFORGE_``, nested delimiter ``__``)
override Field defaults.
"""

from pathlib import Path
from typing import List, Dict, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


GOOGLE_NEWS_RSS = "https://news.google.com/rss"
_LOCALE_QUERY = "hl=en-US&gl=US&ceid=US:en"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AIProvider(str, Enum):
    """Available structuring providers."""
    GEMINI = "gemini"
    GROQ = "groq"


STRATEGY_NAMES = ("readability", "selector", "pattern", "rendered")


def _topic_feed(topic_id: str) -> str:
    return f"{GOOGLE_NEWS_RSS}/topics/{topic_id}?{_LOCALE_QUERY}"


class FeedSettings(BaseModel):
    """Category feed table."""
    categories: Dict[str, str] = Field(
        default_factory=lambda: {
            "Top Stories": f"{GOOGLE_NEWS_RSS}?{_LOCALE_QUERY}",
            "Politics": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRFZxYUdjU0FtVnVHZ0pWVXlnQVAB"),
            "Economy": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB"),
            "World": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx1YlY4U0FtVnVHZ0pWVXlnQVAB"),
            "Society": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB"),
            "Science": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRFp0Y1RjU0FtVnVHZ0pWVXlnQVAB"),
            "Culture": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNREpxYW5RU0FtVnVHZ0pWVXlnQVAB"),
            "Sport": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRFp1ZEdvU0FtVnVHZ0pWVXlnQVAB"),
            "Security": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB"),
            "Law": _topic_feed("CAAqJggKIiBDQkFTRWdvSUwyMHZNRGx6TVdZU0FtVnVHZ0pWVXlnQVAB"),
        },
        description="Category name to feed URL",
    )
    breaking_categories: List[str] = Field(
        default=["Top Stories"], description="Categories whose articles are always breaking"
    )
    feed_timeout: float = Field(default=20.0, ge=5.0, le=60.0, description="Feed download timeout in seconds")


class HttpSettings(BaseModel):
    """Outbound HTTP client configuration."""
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="Browser-identifying user agent",
    )
    accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        description="Accept header for page requests",
    )
    accept_language: str = Field(default="en-US,en;q=0.5", description="Accept-Language header")
    page_timeout: float = Field(default=15.0, ge=5.0, le=60.0, description="Page download timeout in seconds")
    connect_limit: int = Field(default=10, ge=1, le=100, description="Connection pool size")
    max_page_bytes: int = Field(default=5 * 1024 * 1024, ge=64 * 1024, description="Maximum page size to read")


class ResolverSettings(BaseModel):
    """Aggregator link resolution."""
    max_redirects: int = Field(default=5, ge=1, le=10, description="Redirect hops to follow")
    timeout: float = Field(default=10.0, ge=1.0, le=15.0, description="Resolution timeout in seconds")
    use_batch_decoder: bool = Field(default=True, description="Query the aggregator batch endpoint")
    aggregator_hosts: List[str] = Field(default=["news.google.com"], description="Hosts that wrap article links")
    redirector_hosts: List[str] = Field(
        default=["google.com", "bing.com", "t.co"],
        description="Hosts whose links carry their target in the query or path",
    )


class ExtractionSettings(BaseModel):
    """Extraction cascade configuration."""
    min_content_length: int = Field(default=200, ge=50, le=5000, description="Characters of text needed for success")
    enabled_strategies: List[str] = Field(
        default_factory=lambda: list(STRATEGY_NAMES),
        description="Strategies in the order they are tried",
    )
    browser_first: bool = Field(default=False, description="Try rendered extraction before static strategies")
    content_selectors: List[str] = Field(
        default=[
            "article",
            '[role="main"]',
            ".article-content",
            ".article-body",
            ".post-content",
            ".entry-content",
            ".story-body",
            "main",
            "#content",
            ".main-content",
            ".content",
        ],
        description="Selectors tried in priority order",
    )
    boilerplate_selectors: List[str] = Field(
        default=[
            "script", "style", "noscript", "nav", "header", "footer", "aside", "form",
            ".advertisement", ".ad", ".ads", ".social-share", ".share", ".comments", ".newsletter",
        ],
        description="Elements removed before selector extraction",
    )

    @field_validator("enabled_strategies")
    @classmethod
    def validate_strategies(cls, v):
        unknown = [name for name in v if name not in STRATEGY_NAMES]
        if unknown:
            raise ValueError(f"Unknown extraction strategies: {unknown}")
        if len(set(v)) != len(v):
            raise ValueError("Extraction strategies must not repeat")
        return v


class BrowserSettings(BaseModel):
    """Headless browser pool configuration."""
    pool_size: int = Field(default=2, ge=1, le=8, description="Concurrent browser pages")
    navigation_timeout: float = Field(default=30.0, ge=5.0, le=60.0, description="Page navigation timeout in seconds")
    settle_delay: float = Field(default=2.0, ge=0.0, le=10.0, description="Wait after network idle in seconds")
    headless: bool = Field(default=True, description="Run browser headless")
    launch_args: List[str] = Field(
        default=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
        description="Chromium launch arguments",
    )


class FallbackSettings(BaseModel):
    """Fallback recovery configuration."""
    min_content_length: int = Field(default=100, ge=20, le=2000, description="Characters needed by a recovery strategy")
    min_paragraph_length: int = Field(default=50, ge=10, le=500, description="Pseudo-paragraph minimum length")
    max_images: int = Field(default=5, ge=0, le=20, description="Images collected during recovery")
    page_timeout: float = Field(default=15.0, ge=5.0, le=60.0, description="Page download timeout during recovery")


class ImageSettings(BaseModel):
    """Image discovery and scoring."""
    max_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Largest image accepted")
    min_width: int = Field(default=300, ge=1, description="Minimum width of a valid image")
    min_height: int = Field(default=200, ge=1, description="Minimum height of a valid image")
    preferred_aspect_ratio: float = Field(default=16 / 9, gt=0.0, description="Preferred landscape ratio")
    head_timeout: float = Field(default=5.0, ge=1.0, le=30.0, description="Header probe timeout in seconds")
    fetch_timeout: float = Field(default=10.0, ge=1.0, le=60.0, description="Image download timeout in seconds")
    max_candidates: int = Field(default=8, ge=0, le=50, description="Candidates scored per article")
    gallery_limit: int = Field(default=10, ge=0, le=50, description="Maximum gallery size")
    upload_hero: bool = Field(default=False, description="Upload the hero image to the content store")


class DerivationSettings(BaseModel):
    """Deterministic field derivation."""
    excerpt_min_length: int = Field(default=1, ge=1, le=200, description="Shortest excerpt")
    excerpt_max_length: int = Field(default=300, ge=20, le=2000, description="Longest excerpt")
    words_per_minute: int = Field(default=200, ge=50, le=1000, description="Reading speed")
    max_tags: int = Field(default=10, ge=1, le=50, description="Maximum tags per article")
    slug_base_length: int = Field(default=50, ge=10, le=120, description="Slug length before the date suffix")
    seo_title_length: int = Field(default=60, ge=10, le=200, description="SEO title limit")
    seo_description_length: int = Field(default=160, ge=20, le=500, description="SEO description limit")
    breaking_keywords: List[str] = Field(
        default=[
            "breaking", "urgent", "alert", "developing", "just in",
            "live updates", "emergency", "crisis",
        ],
        description="Keywords that mark an article as breaking",
    )


class ImportSettings(BaseModel):
    """Import run behaviour."""
    max_articles_per_category: int = Field(default=8, ge=1, le=100, description="Entries imported per category")
    item_delay: float = Field(default=1.0, ge=0.0, le=10.0, description="Delay between entries in seconds")
    category_delay: float = Field(default=3.0, ge=0.0, le=60.0, description="Delay between categories in seconds")
    persist_attempts: int = Field(default=3, ge=1, le=10, description="Persistence attempts per article")
    persist_base_delay: float = Field(default=1.0, ge=0.0, le=30.0, description="Linear backoff step in seconds")
    parallel_categories: int = Field(default=1, ge=1, le=8, description="Categories processed at once")
    requests_per_second: float = Field(default=2.0, gt=0.0, le=50.0, description="Shared outbound request rate")
    run_deadline: Optional[float] = Field(default=None, ge=1.0, description="Run deadline in seconds")
    normalize_source_urls: bool = Field(default=False, description="Strip tracking parameters before duplicate checks")
    skip_pdf_links: bool = Field(default=True, description="Skip entries linking to PDF documents")
    abort_on_store_unavailable: bool = Field(default=False, description="Stop the run when the store is unreachable")


class AISettings(BaseModel):
    """Structuring provider configuration."""
    structuring_enabled: bool = Field(default=True, description="Use a structuring provider when configured")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")
    groq_api_key: Optional[str] = Field(default=None, description="Groq API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model")
    groq_model: str = Field(default="llama-3.3-70b-versatile", description="Groq model")
    provider_order: List[AIProvider] = Field(
        default=[AIProvider.GEMINI, AIProvider.GROQ], description="Providers tried in order"
    )
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=4000, ge=256, le=16000, description="Maximum response tokens")
    attempts: int = Field(default=3, ge=1, le=5, description="Structuring attempts before fallback")
    retry_delay: float = Field(default=1.0, ge=0.0, le=30.0, description="Linear retry step in seconds")
    request_timeout: float = Field(default=60.0, ge=5.0, le=120.0, description="Provider timeout in seconds")
    max_input_chars: int = Field(default=15000, ge=1000, le=100000, description="Text sent to the provider")
    min_content_length: int = Field(default=200, ge=50, le=5000, description="Shortest acceptable content field")
    refusal_phrases: List[str] = Field(
        default=[
            "i cannot",
            "i can't",
            "i'm sorry",
            "i am sorry",
            "as an ai",
            "i'm unable",
            "i am unable",
            "cannot assist with",
            "against my guidelines",
            "content policy",
        ],
        description="Phrases that mark a safety refusal",
    )

    def get_api_key(self, provider: AIProvider) -> Optional[str]:
        if provider == AIProvider.GEMINI:
            return self.gemini_api_key
        elif provider == AIProvider.GROQ:
            return self.groq_api_key
        return None

    def configured_providers(self) -> List[AIProvider]:
        """Providers in priority order that have an API key."""
        return [p for p in self.provider_order if self.get_api_key(p)]


class ScheduleJobSettings(BaseModel):
    """One recurring import job."""
    interval_minutes: int = Field(ge=1, description="Minutes between runs")
    max_articles_per_category: int = Field(ge=1, le=100, description="Entries per category")
    initial_delay_minutes: int = Field(default=0, ge=0, description="Offset before the first run")
    enabled: bool = Field(default=True)


class SchedulerSettings(BaseModel):
    """Recurring import jobs."""
    jobs: Dict[str, ScheduleJobSettings] = Field(
        default_factory=lambda: {
            "main": ScheduleJobSettings(interval_minutes=120, max_articles_per_category=8),
            "backup": ScheduleJobSettings(
                interval_minutes=360, max_articles_per_category=5, initial_delay_minutes=30
            ),
        }
    )
    categories: List[str] = Field(default_factory=list, description="Categories to import, empty means all")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/newsforge.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class NewsForgeSettings(BaseSettings):
    """Main application settings."""

    feeds: FeedSettings = Field(default_factory=FeedSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    images: ImageSettings = Field(default_factory=ImageSettings)
    derivation: DerivationSettings = Field(default_factory=DerivationSettings)
    import_: ImportSettings = Field(default_factory=ImportSettings, alias="import")
    ai: AISettings = Field(default_factory=AISettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="NewsForge", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "NEWSFORGE_",
        "populate_by_name": True,
        "extra": "ignore",
    }

    def validate_configuration(self) -> List[str]:
        """Validate cross-section consistency.

        Returns:
            Warnings that do not prevent startup

        Raises:
            ConfigurationError: If the configuration cannot work
        """
        errors = []
        warnings = []

        if self.derivation.excerpt_min_length > self.derivation.excerpt_max_length:
            errors.append("derivation.excerpt_min_length exceeds excerpt_max_length")

        if self.fallback.min_content_length > self.extraction.min_content_length:
            warnings.append("fallback threshold is stricter than extraction threshold")

        for name in self.scheduler.categories:
            if name not in self.feeds.categories:
                errors.append(f"Scheduled category has no feed: {name}")

        if self.ai.structuring_enabled and not self.ai.configured_providers():
            warnings.append("Structuring enabled but no provider API key configured")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

        return warnings

    def get_effective_log_level(self) -> str:
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> NewsForgeSettings:
    """Load settings from environment variables and defaults.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = NewsForgeSettings()
        settings.validate_configuration()
        return settings

    except Exception as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
        )


# Global settings instance
_settings: Optional[NewsForgeSettings] = None


def get_settings(reload: bool = False) -> NewsForgeSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings

"""
Structuring Service
===================

Optional collaborator step that sends cleaned article text to a
text-generation provider and validates the structured response.

A response is rejected when a required field (title, excerpt, content) is
missing, when it contains a known refusal phrase, or when its content is
shorter than ``ai.min_content_length``. Rejections and provider errors are
retried with linear backoff up to ``ai.attempts`` times, after which the
caller falls back to deterministic derivation.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .providers.base import StructuringProvider, StructuringRequest
from ..config.settings import AIProvider, NewsForgeSettings, get_settings
from ..processing.derivation import FieldDeriver, extract_tags, truncate_words, build_excerpt
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..recovery.retry_logic import RetryConfig, RetryManager, RetryStrategy
from ..utils.exceptions import AIError, ErrorCode, NewsForgeError, StructuringRejectedError
from ..utils.logging import get_logger_for_component


TAG_PATTERN = re.compile(r"<[^>]+>")


@dataclass
class StructuredArticle:
    """Validated structuring response with every optional field filled."""
    title: str
    excerpt: str
    content: str
    slug: str
    seo_title: str
    seo_description: str
    tags: List[str] = field(default_factory=list)
    location: Optional[str] = None
    provider: Optional[str] = None
    salvaged: bool = False


def create_provider(provider_type: AIProvider, settings: NewsForgeSettings) -> StructuringProvider:
    """Instantiate a provider from settings.

    Raises:
        AIError: If the provider library or key is missing
    """
    ai = settings.ai
    common = {
        "temperature": ai.temperature,
        "max_tokens": ai.max_tokens,
        "request_timeout": ai.request_timeout,
        "max_input_chars": ai.max_input_chars,
    }
    if provider_type == AIProvider.GEMINI:
        from .providers.gemini_provider import GeminiProvider
        return GeminiProvider(ai.gemini_api_key, ai.gemini_model, **common)
    if provider_type == AIProvider.GROQ:
        from .providers.groq_provider import GroqProvider
        return GroqProvider(ai.groq_api_key, ai.groq_model, **common)
    raise AIError(f"Unknown provider: {provider_type}", error_code=ErrorCode.AI_PROVIDER_UNAVAILABLE)


class StructuringService:
    """Bounded-retry structuring with response validation."""

    def __init__(
        self,
        settings: Optional[NewsForgeSettings] = None,
        providers: Optional[List[StructuringProvider]] = None,
        retry_manager: Optional[RetryManager] = None,
    ):
        """
        Args:
            settings: Application settings (default: global settings)
            providers: Providers in preference order (default: built from settings)
            retry_manager: Retry manager (default: linear, ``ai.attempts`` attempts)
        """
        self.settings = settings or get_settings()
        self.config = self.settings.ai
        self.logger = get_logger_for_component("structuring")
        self.deriver = FieldDeriver(self.settings)

        self.providers = providers if providers is not None else self._build_providers()
        self.retry_config = RetryConfig(
            max_attempts=self.config.attempts,
            strategy=RetryStrategy.LINEAR_BACKOFF,
            base_delay=self.config.retry_delay,
        )
        self.retry_manager = retry_manager or RetryManager(self.retry_config)

    def _build_providers(self) -> List[StructuringProvider]:
        providers = []
        if not self.config.structuring_enabled:
            return providers

        for provider_type in self.config.configured_providers():
            try:
                providers.append(create_provider(provider_type, self.settings))
            except AIError as e:
                self.logger.warning(f"Structuring provider {provider_type.value} unavailable: {e}")
        return providers

    @property
    def available(self) -> bool:
        return self.config.structuring_enabled and bool(self.providers)

    async def structure(
        self,
        request: StructuringRequest,
        error_handler: Optional[ErrorHandler] = None,
        context: Optional[ErrorContext] = None,
    ) -> Optional[StructuredArticle]:
        """
        Structure an article, or return None so the caller derives fields itself.

        Args:
            request: Cleaned text and source metadata
            error_handler: Run error handler that records failed attempts
            context: Attribution for recorded failures
        """
        if not self.available:
            return None

        manager = self.retry_manager
        if error_handler is not None and manager.error_handler is None:
            manager = RetryManager(self.retry_config, error_handler=error_handler, sleep=manager._sleep)

        try:
            return await manager.retry_async(
                self._attempt, request, context=context, config=self.retry_config
            )
        except Exception as e:
            self.logger.warning(
                f"Structuring failed for {request.source_url}, using deterministic fields: {e}",
                extra={"source_url": request.source_url, "entry_title": request.title},
            )
            return None

    async def _attempt(self, request: StructuringRequest) -> StructuredArticle:
        last_error: Optional[NewsForgeError] = None
        for provider in self.providers:
            try:
                data = await provider.structure(request)
                return self.validate(data, request, provider=provider.name)
            except NewsForgeError as e:
                self.logger.debug(f"{provider.name} structuring attempt failed: {e}")
                last_error = e
            except Exception as e:
                self.logger.debug(f"{provider.name} raised {type(e).__name__}: {e}")
                last_error = AIError(f"{type(e).__name__}: {e}", provider=provider.name)

        raise last_error or AIError("No structuring provider", error_code=ErrorCode.AI_PROVIDER_UNAVAILABLE)

    def validate(
        self,
        data: Dict[str, Any],
        request: StructuringRequest,
        provider: Optional[str] = None,
    ) -> StructuredArticle:
        """
        Validate a parsed response and fill missing optional fields.

        Raises:
            StructuringRejectedError: Missing required field, refusal or short content
        """
        if not isinstance(data, dict):
            raise StructuringRejectedError("Response is not an object", provider=provider)

        required = {}
        for name in ("title", "excerpt", "content"):
            value = data.get(name)
            if not isinstance(value, str) or not value.strip():
                raise StructuringRejectedError(f"Missing required field: {name}", provider=provider)
            required[name] = value.strip()

        combined = " ".join(required.values()).lower()
        for phrase in self.config.refusal_phrases:
            if phrase.lower() in combined:
                raise StructuringRejectedError(
                    f"Refusal phrase detected: {phrase!r}",
                    provider=provider,
                    error_code=ErrorCode.AI_SAFETY_REFUSAL,
                )

        content_text = TAG_PATTERN.sub(" ", required["content"])
        content_text = re.sub(r"\s+", " ", content_text).strip()
        if len(content_text) < self.config.min_content_length:
            raise StructuringRejectedError(
                f"Content too short ({len(content_text)} chars)",
                provider=provider,
                error_code=ErrorCode.AI_CONTENT_TOO_SHORT,
            )

        derivation = self.settings.derivation
        title = required["title"]
        excerpt = build_excerpt(required["excerpt"], derivation.excerpt_max_length)

        tags = data.get("tags")
        if not isinstance(tags, list) or not tags:
            tags = extract_tags(title, content_text, request.source_url, request.category, derivation.max_tags)
        tags = [str(t).strip().lower() for t in tags if str(t).strip()]
        tags = list(dict.fromkeys(tags))[: derivation.max_tags]

        location = data.get("location")
        if not isinstance(location, str) or location.strip().lower() in ("", "null", "none", "unknown"):
            location = None

        seo_title = data.get("seoTitle") if isinstance(data.get("seoTitle"), str) else ""
        seo_description = data.get("seoDescription") if isinstance(data.get("seoDescription"), str) else ""

        return StructuredArticle(
            title=title,
            excerpt=excerpt,
            content=required["content"],
            # Provider slugs are never trusted for uniqueness
            slug=self.deriver.slug(title, when=request.published_at),
            seo_title=truncate_words(seo_title or title, derivation.seo_title_length),
            seo_description=truncate_words(seo_description or excerpt, derivation.seo_description_length),
            tags=tags,
            location=location.strip() if location else None,
            provider=provider,
            salvaged=bool(data.get("_salvaged")),
        )

"""
Google Gemini Provider
======================

Gemini structuring provider using the google-generativeai async API.
"""

import asyncio

from .base import StructuringProvider
from ...config.settings import AIProvider
from ...utils.exceptions import AIError, ErrorCode
from ...utils.logging import get_logger_for_component

# Try to import Gemini library
try:
    import google.generativeai as genai
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    genai = None


class GeminiProvider(StructuringProvider):
    """Google Gemini structuring provider."""

    def __init__(self, api_key: str, model_name: str = "gemini-1.5-flash",
                 temperature: float = 0.2, max_tokens: int = 4000,
                 request_timeout: float = 60.0, max_input_chars: int = 15000):
        """Initialize Gemini provider.

        Raises:
            AIError: If Gemini library not available or no API key given
        """
        if not GEMINI_AVAILABLE:
            raise AIError(
                "Google Generative AI library not installed. Run: pip install google-generativeai",
                provider="gemini",
                error_code=ErrorCode.AI_PROVIDER_UNAVAILABLE,
                recoverable=False,
            )

        if not api_key:
            raise AIError(
                "Gemini API key is required",
                provider="gemini",
                error_code=ErrorCode.AI_AUTHENTICATION,
                recoverable=False,
            )

        super().__init__(api_key, model_name, AIProvider.GEMINI, max_input_chars)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout

        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name=model_name)

        self.logger = get_logger_for_component("gemini_provider")
        self.logger.info(f"Gemini provider initialized with model: {model_name}")

    async def complete(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async(
                    prompt,
                    generation_config=genai.types.GenerationConfig(
                        temperature=self.temperature,
                        max_output_tokens=self.max_tokens,
                        response_mime_type="application/json",
                    ),
                ),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            raise AIError(
                f"Gemini request timed out after {self.request_timeout}s",
                provider="gemini",
                error_code=ErrorCode.AI_TIMEOUT,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e).lower()
            if "quota" in message or "rate limit" in message or "429" in message:
                raise AIError(
                    f"Gemini rate limit: {e}",
                    provider="gemini",
                    error_code=ErrorCode.AI_RATE_LIMIT,
                )
            if "api key" in message or "authentication" in message or "permission" in message:
                raise AIError(
                    "Invalid Gemini API key",
                    provider="gemini",
                    error_code=ErrorCode.AI_AUTHENTICATION,
                    recoverable=False,
                )
            raise AIError(f"Gemini API error: {e}", provider="gemini")

        # Blocked or empty candidates raise ValueError on .text
        try:
            return response.text
        except ValueError as e:
            self.logger.warning(f"Gemini response blocked or empty: {e}")
            raise AIError(
                "Content blocked by safety filters",
                provider="gemini",
                error_code=ErrorCode.AI_SAFETY_REFUSAL,
            )

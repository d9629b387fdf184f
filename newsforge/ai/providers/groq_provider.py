"""
Groq Provider
=============

Groq structuring provider using the AsyncGroq chat completions client.
"""

try:
    import groq
    from groq import AsyncGroq
    GROQ_AVAILABLE = True
except ImportError:
    GROQ_AVAILABLE = False
    groq = None
    AsyncGroq = None

from .base import StructuringProvider
from ...config.settings import AIProvider
from ...utils.exceptions import AIError, ErrorCode
from ...utils.logging import get_logger_for_component

SYSTEM_PROMPT = (
    "You are a news editor. You restructure articles faithfully and "
    "respond with a single JSON object and nothing else."
)

class GroqProvider(StructuringProvider):
    """Groq structuring provider."""

    def __init__(self, api_key: str, model_name: str = "llama-3.3-70b-versatile",
                 temperature: float = 0.2, max_tokens: int = 4000,
                 request_timeout: float = 60.0, max_input_chars: int = 15000):
        """Initialize Groq provider.

        Raises:
            AIError: If Groq library not available or no API key given
        """
        if not GROQ_AVAILABLE:
            raise AIError(
                "Groq library not installed. Run: pip install groq",
                provider="groq",
                error_code=ErrorCode.AI_PROVIDER_UNAVAILABLE,
                recoverable=False,
            )

        if not api_key:
            raise AIError(
                "Groq API key is required",
                provider="groq",
                error_code=ErrorCode.AI_AUTHENTICATION,
                recoverable=False,
            )

        super().__init__(api_key, model_name, AIProvider.GROQ, max_input_chars)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.async_client = AsyncGroq(api_key=api_key, timeout=request_timeout)

        self.logger = get_logger_for_component("groq_provider")
        self.logger.info(f"Groq provider initialized with model: {model_name}")

    async def complete(self, prompt: str) -> str:
        try:
            response = await self.async_client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )

        except groq.RateLimitError as e:
            self.logger.warning(f"Groq rate limit exceeded: {e}")
            raise AIError(f"Groq rate limit: {e}", provider="groq", error_code=ErrorCode.AI_RATE_LIMIT)

        except groq.AuthenticationError as e:
            raise AIError(
                f"Groq authentication failed: {e}",
                provider="groq",
                error_code=ErrorCode.AI_AUTHENTICATION,
                recoverable=False,
            )

        except groq.APITimeoutError as e:
            raise AIError(f"Groq request timed out: {e}", provider="groq", error_code=ErrorCode.AI_TIMEOUT)

        except groq.APIConnectionError as e:
            self.logger.error(f"Groq connection error: {e}")
            raise AIError(f"Connection to Groq failed: {e}", provider="groq")

        except groq.APIError as e:
            raise AIError(f"Groq API error: {e}", provider="groq")

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise AIError("Empty Groq response", provider="groq", error_code=ErrorCode.AI_INVALID_RESPONSE)
        return content

"""
NewsForge Custom Exceptions
===========================

Exception hierarchy for the NewsForge import pipeline with error codes,
context information and user-facing messages.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_PARSE_ERROR = "C003"

    # Feed and fetch errors (F001-F099)
    FEED_INVALID_URL = "F001"
    FEED_FETCH_TIMEOUT = "F002"
    FEED_PARSE_ERROR = "F003"
    FEED_NETWORK_ERROR = "F004"
    FEED_ACCESS_DENIED = "F005"
    FEED_NOT_FOUND = "F006"
    FEED_UNKNOWN_CATEGORY = "F007"
    RESOLUTION_FAILED = "F010"

    # Extraction errors (X001-X099)
    EXTRACTION_FAILED = "X001"
    EXTRACTION_INSUFFICIENT = "X002"
    BROWSER_UNAVAILABLE = "X003"
    BROWSER_NAVIGATION = "X004"

    # Image errors (I001-I099)
    IMAGE_INVALID_URL = "I001"
    IMAGE_NOT_AN_IMAGE = "I002"
    IMAGE_TOO_LARGE = "I003"
    IMAGE_UNREADABLE = "I004"

    # AI structuring errors (A001-A099)
    AI_API_ERROR = "A001"
    AI_QUOTA_EXCEEDED = "A002"
    AI_INVALID_RESPONSE = "A003"
    AI_TIMEOUT = "A004"
    AI_AUTHENTICATION = "A005"
    AI_RATE_LIMIT = "A006"
    AI_SAFETY_REFUSAL = "A007"
    AI_PROVIDER_UNAVAILABLE = "A008"
    AI_CONTENT_TOO_SHORT = "A009"

    # Content store errors (S001-S099)
    STORE_UNAVAILABLE = "S001"
    STORE_WRITE_FAILED = "S002"
    STORE_DUPLICATE = "S003"
    STORE_UPLOAD_FAILED = "S004"

    # Validation errors (V001-V099)
    VALIDATION_REQUIRED_FIELD = "V001"
    VALIDATION_INVALID_FORMAT = "V002"
    VALIDATION_OUT_OF_RANGE = "V003"

    # Run control errors (R001-R099)
    RUN_ALREADY_ACTIVE = "R001"
    RUN_CANCELLED = "R002"
    RUN_DEADLINE_EXCEEDED = "R003"


class NewsForgeError(Exception):
    """Base exception for all NewsForge errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize NewsForge error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether the error is worth retrying
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(NewsForgeError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class FeedError(NewsForgeError):
    """Feed reading and page fetching errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed or page URL that caused the error
            **kwargs: Additional arguments for NewsForgeError
        """
        context = kwargs.get("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.FEED_FETCH_TIMEOUT),
            context=context,
            user_message=kwargs.get("user_message", f"Feed processing failed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ResolutionError(FeedError):
    """Aggregator link could not be unwrapped."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.RESOLUTION_FAILED)
        super().__init__(message, feed_url=feed_url, **kwargs)


class ExtractionError(NewsForgeError):
    """Content extraction errors."""

    def __init__(
        self,
        message: str,
        source_url: Optional[str] = None,
        strategy: Optional[str] = None,
        **kwargs,
    ):
        """Initialize extraction error.

        Args:
            message: Error message
            source_url: Page URL being extracted
            strategy: Extraction strategy that failed
            **kwargs: Additional arguments for NewsForgeError
        """
        context = kwargs.get("context", {})
        if source_url:
            context["source_url"] = source_url
        if strategy:
            context["strategy"] = strategy

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.EXTRACTION_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Article extraction failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ImageAnalysisError(NewsForgeError):
    """Image probing and scoring errors."""

    def __init__(self, message: str, image_url: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if image_url:
            context["image_url"] = image_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.IMAGE_UNREADABLE),
            context=context,
            user_message=kwargs.get("user_message", "Image could not be analyzed"),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class AIError(NewsForgeError):
    """Structuring provider and API errors."""

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        """Initialize AI error.

        Args:
            message: Error message
            provider: AI provider name (e.g., 'gemini', 'groq')
            **kwargs: Additional arguments for NewsForgeError
        """
        context = kwargs.get("context", {})
        if provider:
            context["ai_provider"] = provider

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.AI_API_ERROR),
            context=context,
            user_message=kwargs.get("user_message", "AI structuring temporarily unavailable"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class StructuringRejectedError(AIError):
    """Structuring response was refused, malformed or too short."""

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.AI_INVALID_RESPONSE)
        super().__init__(message, provider=provider, **kwargs)


class ContentStoreError(NewsForgeError):
    """Content store operation errors."""

    def __init__(
        self,
        message: str,
        source_url: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        """Initialize content store error.

        Args:
            message: Error message
            source_url: Article source URL involved
            operation: Store operation (exists, create_article, ...)
            **kwargs: Additional arguments for NewsForgeError
        """
        context = kwargs.get("context", {})
        if source_url:
            context["source_url"] = source_url
        if operation:
            context["store_operation"] = operation

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.STORE_WRITE_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Content store operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ContentStoreUnavailableError(ContentStoreError):
    """Content store cannot be reached at all."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.STORE_UNAVAILABLE)
        kwargs.setdefault("user_message", "Content store unreachable")
        super().__init__(message, **kwargs)


class ValidationError(NewsForgeError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class RunCancelledError(NewsForgeError):
    """Import run stopped by deadline or explicit cancellation."""

    def __init__(self, message: str, run_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if run_id:
            context["run_id"] = run_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.RUN_CANCELLED),
            context=context,
            user_message=kwargs.get("user_message", "Import run cancelled"),
            recoverable=False,
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> NewsForgeError:
    """Convert generic exceptions to NewsForge exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        NewsForge exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, NewsForgeError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = NewsForgeError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.FEED_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )

    elif isinstance(exception, ValueError):
        error = ValidationError(
            message=f"Invalid data during {operation}: {str(exception)}",
            context=context,
        )

    elif isinstance(exception, MemoryError):
        error = NewsForgeError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            context=context,
            user_message="System resources exhausted",
            recoverable=False,
        )

    else:
        error = NewsForgeError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error


def is_retryable_error(exception: Exception) -> bool:
    """Check if an error is worth retrying.

    Plain exceptions (not NewsForgeError) are treated as transient.
    """
    if not isinstance(exception, NewsForgeError):
        return True

    if not exception.recoverable:
        return False

    non_retryable_codes = {
        ErrorCode.CONFIG_INVALID,
        ErrorCode.CONFIG_MISSING,
        ErrorCode.FEED_NOT_FOUND,
        ErrorCode.FEED_ACCESS_DENIED,
        ErrorCode.AI_AUTHENTICATION,
        ErrorCode.AI_QUOTA_EXCEEDED,
        ErrorCode.STORE_DUPLICATE,
        ErrorCode.RUN_CANCELLED,
    }

    return exception.error_code not in non_retryable_codes

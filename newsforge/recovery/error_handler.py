"""
NewsForge Error Management
==========================

Error classification and attribution for import runs. Every handled error
is recorded as an ``ErrorEvent`` tied to the feed entry (title and URL) that
caused it, so a run report can say exactly which items failed and why.

An ``ErrorHandler`` is scoped to one run; nothing is shared across runs.
"""

import time
import traceback
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any

from ..utils.logging import get_logger_for_component
from ..utils.exceptions import NewsForgeError, ErrorCode


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"  # Expected per-item condition
    MEDIUM = "medium"  # Item lost, run continues
    HIGH = "high"  # Component misbehaving
    CRITICAL = "critical"  # Run cannot continue


class ErrorCategory(Enum):
    """Categories for error classification."""

    NETWORK = "network"
    FEED = "feed"
    EXTRACTION = "extraction"
    IMAGE = "image"
    STRUCTURING = "structuring"
    STORE = "store"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    RESOURCE = "resource"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Contextual information about an error occurrence."""

    component: str
    operation: str
    entry_title: Optional[str] = None
    entry_url: Optional[str] = None
    category: Optional[str] = None
    run_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ErrorEvent:
    """Structured representation of an error event."""

    id: str
    timestamp: datetime
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    exception_type: str
    context: ErrorContext
    error_code: Optional[str] = None
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        data["category"] = self.category.value
        data["severity"] = self.severity.value
        data.pop("stack_trace", None)
        return data


class ErrorClassifier:
    """Classifies exceptions into categories and severity levels."""

    CATEGORY_MAPPING = {
        "ConnectionError": ErrorCategory.NETWORK,
        "TimeoutError": ErrorCategory.NETWORK,
        "ClientError": ErrorCategory.NETWORK,
        "ClientConnectorError": ErrorCategory.NETWORK,
        "ClientResponseError": ErrorCategory.NETWORK,
        "ServerDisconnectedError": ErrorCategory.NETWORK,
        "FeedError": ErrorCategory.FEED,
        "ResolutionError": ErrorCategory.FEED,
        "ExtractionError": ErrorCategory.EXTRACTION,
        "ImageAnalysisError": ErrorCategory.IMAGE,
        "AIError": ErrorCategory.STRUCTURING,
        "StructuringRejectedError": ErrorCategory.STRUCTURING,
        "ContentStoreError": ErrorCategory.STORE,
        "ContentStoreUnavailableError": ErrorCategory.STORE,
        "ConfigurationError": ErrorCategory.CONFIGURATION,
        "ValidationError": ErrorCategory.VALIDATION,
        "MemoryError": ErrorCategory.RESOURCE,
        "OSError": ErrorCategory.RESOURCE,
        "ValueError": ErrorCategory.VALIDATION,
        "KeyError": ErrorCategory.VALIDATION,
    }

    MESSAGE_PATTERNS = {
        ErrorCategory.NETWORK: [
            "connection",
            "timeout",
            "timed out",
            "network",
            "dns",
            "socket",
            "ssl",
            "certificate",
        ],
        ErrorCategory.STORE: ["store", "persist", "duplicate key", "database"],
        ErrorCategory.EXTRACTION: ["extract", "readability", "selector", "browser"],
        ErrorCategory.STRUCTURING: ["gemini", "groq", "completion", "quota"],
        ErrorCategory.FEED: ["rss", "feed", "xml", "malformed"],
    }

    @classmethod
    def classify(cls, exception: Exception) -> tuple[ErrorCategory, ErrorSeverity]:
        """Classify an exception into (category, severity)."""
        category = cls.CATEGORY_MAPPING.get(type(exception).__name__, ErrorCategory.UNKNOWN)

        if category in (ErrorCategory.UNKNOWN, ErrorCategory.VALIDATION):
            message = str(exception).lower()
            for candidate, patterns in cls.MESSAGE_PATTERNS.items():
                if any(pattern in message for pattern in patterns):
                    category = candidate
                    break

        return category, cls._determine_severity(exception, category)

    @classmethod
    def _determine_severity(
        cls, exception: Exception, category: ErrorCategory
    ) -> ErrorSeverity:
        if isinstance(exception, MemoryError):
            return ErrorSeverity.CRITICAL

        if isinstance(exception, NewsForgeError) and exception.error_code == ErrorCode.STORE_UNAVAILABLE:
            return ErrorSeverity.CRITICAL

        if category == ErrorCategory.CONFIGURATION:
            return ErrorSeverity.HIGH

        if category in (ErrorCategory.STORE, ErrorCategory.UNKNOWN):
            return ErrorSeverity.MEDIUM

        if category == ErrorCategory.NETWORK:
            message = str(exception).lower()
            if "timeout" in message or "timed out" in message:
                return ErrorSeverity.LOW
            return ErrorSeverity.MEDIUM

        return ErrorSeverity.LOW


class ErrorHandler:
    """Collects attributed error events for a single import run."""

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id
        self.logger = get_logger_for_component("error_handler", run_id=run_id)
        self.classifier = ErrorClassifier()
        self.error_events: List[ErrorEvent] = []
        self.error_counts: Dict[str, int] = {}

    def handle_error(self, exception: Exception, context: ErrorContext) -> ErrorEvent:
        """Classify, log and record an error.

        Args:
            exception: The exception that occurred
            context: Where it happened and which feed entry it belongs to

        Returns:
            The recorded ErrorEvent
        """
        if context.run_id is None:
            context.run_id = self.run_id

        category, severity = self.classifier.classify(exception)
        error_code = None
        if isinstance(exception, NewsForgeError) and exception.error_code:
            error_code = exception.error_code.value

        stack = traceback.format_exc()
        event = ErrorEvent(
            id=f"{context.component}_{int(time.time() * 1000)}_{len(self.error_events)}",
            timestamp=datetime.now(timezone.utc),
            category=category,
            severity=severity,
            message=str(exception),
            exception_type=type(exception).__name__,
            context=context,
            error_code=error_code,
            stack_trace=None if stack.startswith("NoneType: None") else stack,
        )

        self._log_error(event)
        self.error_events.append(event)

        for key in (
            f"category_{category.value}",
            f"component_{context.component}",
            f"severity_{severity.value}",
        ):
            self.error_counts[key] = self.error_counts.get(key, 0) + 1

        return event

    def _log_error(self, event: ErrorEvent) -> None:
        log_data = {
            "error_id": event.id,
            "error_category": event.category.value,
            "severity": event.severity.value,
            "operation": event.context.operation,
            "entry_title": event.context.entry_title,
            "source_url": event.context.entry_url,
        }
        if event.context.category:
            log_data["category"] = event.context.category

        message = f"{event.context.operation} failed for '{event.context.entry_title}': {event.message}"

        if event.severity == ErrorSeverity.CRITICAL:
            self.logger.critical(message, extra=log_data)
        elif event.severity == ErrorSeverity.HIGH:
            self.logger.error(message, extra=log_data)
        else:
            self.logger.warning(message, extra=log_data)

        if event.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH) and event.stack_trace:
            self.logger.debug(f"Stack trace for {event.id}:\n{event.stack_trace}")

    def merge(self, other: "ErrorHandler") -> None:
        """Fold events recorded by another handler into this one."""
        self.error_events.extend(other.error_events)
        for key, count in other.error_counts.items():
            self.error_counts[key] = self.error_counts.get(key, 0) + count

    def get_error_summary(self) -> Dict[str, Any]:
        """Summarize recorded events by category, severity and component."""
        by_category: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        by_component: Dict[str, int] = {}
        for event in self.error_events:
            by_category[event.category.value] = by_category.get(event.category.value, 0) + 1
            by_severity[event.severity.value] = by_severity.get(event.severity.value, 0) + 1
            component = event.context.component
            by_component[component] = by_component.get(component, 0) + 1

        return {
            "total_errors": len(self.error_events),
            "by_category": by_category,
            "by_severity": by_severity,
            "by_component": by_component,
            "recent": [e.to_dict() for e in self.error_events[-10:]],
        }

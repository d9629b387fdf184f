#!/usr/bin/env python3
"""
Error Handling Tests for NewsForge
==================================

Tests for error classification, attribution, retry logic and the
exception hierarchy.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from newsforge.recovery.error_handler import (
    ErrorCategory,
    ErrorClassifier,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
)
from newsforge.recovery.retry_logic import RetryConfig, RetryManager, RetryStrategy
from newsforge.utils.exceptions import (
    AIError,
    ContentStoreError,
    ContentStoreUnavailableError,
    ErrorCode,
    FeedError,
    ImageAnalysisError,
    NewsForgeError,
    ResolutionError,
    RunCancelledError,
    ValidationError,
    handle_exception,
    is_retryable_error,
)


class TestErrorClassifier:
    """Test error classification functionality."""

    def test_classify_network_errors(self):
        category, severity = ErrorClassifier.classify(ConnectionError("Connection refused"))
        assert category == ErrorCategory.NETWORK
        assert severity == ErrorSeverity.MEDIUM

        category, severity = ErrorClassifier.classify(TimeoutError("Request timed out"))
        assert category == ErrorCategory.NETWORK
        assert severity == ErrorSeverity.LOW

    def test_classify_pipeline_errors(self):
        assert ErrorClassifier.classify(FeedError("bad feed"))[0] == ErrorCategory.FEED
        assert ErrorClassifier.classify(AIError("quota"))[0] == ErrorCategory.STRUCTURING
        assert ErrorClassifier.classify(ContentStoreError("write failed"))[0] == ErrorCategory.STORE

    def test_store_unavailable_is_critical(self):
        category, severity = ErrorClassifier.classify(ContentStoreUnavailableError("down"))
        assert category == ErrorCategory.STORE
        assert severity == ErrorSeverity.CRITICAL

    def test_classify_by_message_patterns(self):
        category, _ = ErrorClassifier.classify(ValueError("Malformed RSS feed"))
        assert category == ErrorCategory.FEED

        category, _ = ErrorClassifier.classify(Exception("readability could not extract"))
        assert category == ErrorCategory.EXTRACTION

    def test_memory_error_critical(self):
        assert ErrorClassifier.classify(MemoryError())[1] == ErrorSeverity.CRITICAL


class TestErrorHandler:
    """Attribution and summaries."""

    def test_event_attributed_to_entry(self):
        handler = ErrorHandler(run_id="run-1")
        context = ErrorContext(
            component="orchestrator",
            operation="persist",
            entry_title="Storm batters coast",
            entry_url="https://example.com/storm",
            category="World",
        )

        event = handler.handle_error(ContentStoreError("write failed"), context)

        assert event.context.entry_title == "Storm batters coast"
        assert event.context.entry_url == "https://example.com/storm"
        assert event.context.run_id == "run-1"
        assert event.error_code == ErrorCode.STORE_WRITE_FAILED.value

    def test_summary_and_merge(self):
        run = ErrorHandler(run_id="run-1")
        category = ErrorHandler(run_id="run-1")
        category.handle_error(FeedError("feed down"), ErrorContext("feed_reader", "fetch_entries"))
        category.handle_error(ConnectionError("reset"), ErrorContext("transformer", "fetch"))

        run.merge(category)
        summary = run.get_error_summary()

        assert summary["total_errors"] == 2
        assert summary["by_category"] == {"feed": 1, "network": 1}
        assert summary["by_component"] == {"feed_reader": 1, "transformer": 1}

    def test_handlers_are_independent(self):
        first = ErrorHandler(run_id="a")
        second = ErrorHandler(run_id="b")
        first.handle_error(RuntimeError("x"), ErrorContext("c", "o"))
        assert second.error_events == []


class TestRetryManager:
    """Bounded retries with linear backoff."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        sleep = AsyncMock()
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=1.0), sleep=sleep)
        func = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])

        assert await manager.retry_async(func) == "ok"
        assert func.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_last_exception(self):
        manager = RetryManager(RetryConfig(max_attempts=2, base_delay=0.0), sleep=AsyncMock())
        func = AsyncMock(side_effect=[ConnectionError("first"), ConnectionError("second")])

        with pytest.raises(ConnectionError, match="second"):
            await manager.retry_async(func)
        assert manager.statistics.total_failures == 2

    @pytest.mark.asyncio
    async def test_non_retryable_raised_immediately(self):
        manager = RetryManager(RetryConfig(max_attempts=5), sleep=AsyncMock())
        error = ContentStoreError("dup", error_code=ErrorCode.STORE_DUPLICATE, recoverable=False)
        func = AsyncMock(side_effect=error)

        with pytest.raises(ContentStoreError):
            await manager.retry_async(func)
        assert func.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_attempts_recorded(self):
        handler = ErrorHandler(run_id="r")
        manager = RetryManager(RetryConfig(max_attempts=2, base_delay=0.0), error_handler=handler, sleep=AsyncMock())
        func = AsyncMock(side_effect=[ConnectionError("x"), "ok"])
        context = ErrorContext("orchestrator", "persist", entry_title="Title")

        await manager.retry_async(func, context=context)

        assert len(handler.error_events) == 1
        assert handler.error_events[0].context.operation == "persist_attempt_1"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        manager = RetryManager(RetryConfig(max_attempts=3), sleep=AsyncMock())
        func = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await manager.retry_async(func)
        assert func.await_count == 1

    @pytest.mark.parametrize(
        "strategy, expected",
        [
            (RetryStrategy.FIXED_DELAY, [2.0, 2.0, 2.0]),
            (RetryStrategy.LINEAR_BACKOFF, [2.0, 4.0, 6.0]),
            (RetryStrategy.EXPONENTIAL_BACKOFF, [2.0, 4.0, 8.0]),
        ],
    )
    def test_delay_strategies(self, strategy, expected):
        manager = RetryManager(RetryConfig(strategy=strategy, base_delay=2.0))
        assert [manager.calculate_delay(n) for n in (1, 2, 3)] == expected

    def test_delay_capped(self):
        manager = RetryManager(RetryConfig(strategy=RetryStrategy.EXPONENTIAL_BACKOFF, base_delay=10, max_delay=15))
        assert manager.calculate_delay(5) == 15


class TestExceptions:

    def test_retryable_classification(self):
        assert is_retryable_error(ConnectionError())
        assert is_retryable_error(ContentStoreError("temporary"))
        assert not is_retryable_error(AIError("bad key", error_code=ErrorCode.AI_AUTHENTICATION))
        assert not is_retryable_error(NewsForgeError("fatal", recoverable=False))

    def test_to_dict(self):
        error = FeedError("Feed fetch failed", feed_url="https://example.com/rss", error_code=ErrorCode.FEED_NOT_FOUND)
        data = error.to_dict()

        assert data["error_code"] == ErrorCode.FEED_NOT_FOUND.value
        assert data["context"]["feed_url"] == "https://example.com/rss"

    def test_subclass_defaults(self):
        assert ResolutionError("no target").error_code == ErrorCode.RESOLUTION_FAILED
        assert ImageAnalysisError("bad", image_url="https://e.com/a.jpg").context["image_url"] == "https://e.com/a.jpg"
        assert not is_retryable_error(RunCancelledError("deadline", run_id="r1"))
        assert ValidationError("empty", field_name="title").user_message == "Invalid title: empty"


class TestHandleException:

    def test_network_error_wrapped(self):
        logger = Mock()
        error = handle_exception(ConnectionError("reset"), logger, "fetch_entries", {"category": "World"})

        assert error.error_code == ErrorCode.FEED_NETWORK_ERROR
        assert error.recoverable
        assert error.context["operation"] == "fetch_entries"
        assert error.context["original_exception_type"] == "ConnectionError"
        logger.error.assert_called_once()

    def test_value_error_becomes_validation_error(self):
        error = handle_exception(ValueError("bad slug"), Mock(), "derive")
        assert isinstance(error, ValidationError)
        assert not error.recoverable

    def test_newsforge_error_passed_through(self):
        original = AIError("quota", error_code=ErrorCode.AI_QUOTA_EXCEEDED)
        assert handle_exception(original, Mock(), "structure") is original

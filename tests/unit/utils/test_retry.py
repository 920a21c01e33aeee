"""Tests for retry and error classification utilities."""

from unittest.mock import MagicMock

import pytest

from rockcast.utils.errors import CloudAuthError, CloudError
from rockcast.utils.retry import (
    TEST_RETRY_CONFIG,
    RateLimitError,
    RetryableError,
    RetryConfig,
    ServerError,
    TransportError,
    build_wait,
    classify_http_error,
    with_retry,
)


@pytest.fixture(autouse=True)
def fast_retry_config(monkeypatch):
    """Use fast retry configuration for all tests to avoid long delays."""
    monkeypatch.setattr("rockcast.utils.retry.DEFAULT_RETRY_CONFIG", TEST_RETRY_CONFIG)


class TestClassifyHttpError:
    """Test HTTP error classification."""

    def test_rate_limit_429(self):
        """Test 429 is classified as RateLimitError."""
        error = classify_http_error(429, "Too many requests")
        assert isinstance(error, RateLimitError)
        assert "Rate limit exceeded" in str(error)

    def test_server_errors_5xx(self):
        """Test 5xx errors are classified as ServerError."""
        for status_code in [500, 502, 503, 504]:
            assert isinstance(classify_http_error(status_code), ServerError)

    def test_timeout_408(self):
        """Test 408 is classified as TransportError."""
        assert isinstance(classify_http_error(408), TransportError)

    def test_auth_errors_401_403(self):
        """Test 401 and 403 are terminal auth errors."""
        for status_code in [401, 403]:
            error = classify_http_error(status_code, "Unauthorized")
            assert isinstance(error, CloudAuthError)
            assert not isinstance(error, RetryableError)

    def test_client_errors_are_terminal(self):
        """Test other 4xx errors are terminal CloudErrors."""
        for status_code in [400, 404, 422]:
            error = classify_http_error(status_code)
            assert type(error) is CloudError


class TestRetryConfig:
    """Test retry configuration and the wait it produces."""

    def test_default_config(self):
        """Test defaults allow three attempts with a one second jitter bound."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.jitter is True
        assert config.max_jitter_seconds == 1

    def test_default_backoff_is_bounded(self):
        """Test the waits between three default attempts stay bounded."""
        wait = build_wait(RetryConfig())

        for _ in range(50):
            waits = [wait(MagicMock(attempt_number=n)) for n in (1, 2)]
            assert 1 <= waits[0] <= 2
            assert 2 <= waits[1] <= 3

    def test_jitter_disabled(self):
        """Test waits are exactly exponential without jitter."""
        wait = build_wait(RetryConfig(min_wait_seconds=2, max_wait_seconds=5, jitter=False))

        assert [wait(MagicMock(attempt_number=n)) for n in (1, 2, 3)] == [2, 4, 5]

    def test_custom_config(self):
        """Test custom retry configuration."""
        config = RetryConfig(max_attempts=5, max_wait_seconds=10, min_wait_seconds=2, jitter=False)
        assert config.max_attempts == 5
        assert config.max_wait_seconds == 10
        assert config.min_wait_seconds == 2
        assert config.jitter is False


class TestWithRetryDecorator:
    """Test with_retry on sync and async callables."""

    def test_success_no_retry(self):
        """Test successful call does not retry."""
        call_count = 0

        @with_retry()
        def successful_call():
            nonlocal call_count
            call_count += 1
            return "success"

        assert successful_call() == "success"
        assert call_count == 1

    def test_retry_on_retryable_error(self):
        """Test retry happens on retryable errors."""
        call_count = 0

        @with_retry()
        def flaky_call():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ServerError("503")
            return "success"

        assert flaky_call() == "success"
        assert call_count == 3

    def test_no_retry_on_auth_error(self):
        """Test auth errors are not retried."""
        call_count = 0

        @with_retry()
        def rejected_call():
            nonlocal call_count
            call_count += 1
            raise CloudAuthError("bad token")

        with pytest.raises(CloudAuthError):
            rejected_call()

        assert call_count == 1

    def test_max_attempts_reached(self):
        """Test the last error is raised after max attempts."""
        call_count = 0

        @with_retry()
        def always_fails():
            nonlocal call_count
            call_count += 1
            raise RateLimitError("slow down")

        with pytest.raises(RateLimitError):
            always_fails()

        assert call_count == TEST_RETRY_CONFIG.max_attempts

    @pytest.mark.asyncio
    async def test_async_function_is_retried(self):
        """Test async functions are retried."""
        call_count = 0

        @with_retry()
        async def flaky_coroutine():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                raise TransportError("connection reset")
            return 42

        assert await flaky_coroutine() == 42
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_async_function_gives_up(self):
        """Test async functions raise after max attempts."""
        call_count = 0

        @with_retry()
        async def always_fails():
            nonlocal call_count
            call_count += 1
            raise ServerError("500")

        with pytest.raises(ServerError):
            await always_fails()

        assert call_count == 3

    def test_wrapped_name_preserved(self):
        """Test the decorator keeps the function name."""
        @with_retry()
        def named_function():
            return None

        assert named_function.__name__ == "named_function"


class TestRetryOnTransportOnly:
    def test_only_transport_errors_retried(self):
        """Test retry_on limits which errors are retried."""
        call_count = 0

        @with_retry(config=TEST_RETRY_CONFIG, retry_on=(TransportError,))
        def server_error():
            nonlocal call_count
            call_count += 1
            raise ServerError("500")

        with pytest.raises(ServerError):
            server_error()

        assert call_count == 1

    def test_transport_error_retried(self):
        """Test transport errors are retried when listed."""
        call_count = 0

        @with_retry(config=TEST_RETRY_CONFIG, retry_on=(TransportError,))
        def dropped():
            nonlocal call_count
            call_count += 1
            if call_count < 2:
                raise TransportError("timed out")
            return "ok"

        assert dropped() == "ok"
        assert call_count == 2

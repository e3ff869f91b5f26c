"""Unit tests for bounded retries around external calls."""
import asyncio

import pytest

from ragpipe.errors import ConfigurationError, ExternalServiceError
from ragpipe.retry import call_with_retries


class Flaky:
    def __init__(self, failures: int, result="done"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self, *args):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return self.result


@pytest.mark.unit
@pytest.mark.asyncio
class TestCallWithRetries:
    async def test_returns_first_success(self):
        func = Flaky(failures=0)
        assert await call_with_retries(func, operation="op") == "done"
        assert func.calls == 1

    async def test_recovers_after_failures(self):
        func = Flaky(failures=2)
        result = await call_with_retries(func, "x", operation="op", max_retries=2, backoff=0)
        assert result == "done"
        assert func.calls == 3

    async def test_exhaustion_raises_external_service_error(self):
        func = Flaky(failures=10)

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retries(func, operation="embed_chunk", max_retries=2, backoff=0)

        assert func.calls == 3
        assert exc_info.value.operation == "embed_chunk"
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_pipeline_errors_are_not_retried(self):
        calls = []

        async def misconfigured():
            calls.append(1)
            raise ConfigurationError("bad")

        with pytest.raises(ConfigurationError):
            await call_with_retries(misconfigured, operation="op", max_retries=3, backoff=0)
        assert len(calls) == 1

    async def test_sync_callables_are_supported(self):
        assert await call_with_retries(lambda text: text.upper(), "abc", operation="op") == "ABC"

    async def test_timeout_counts_as_failure(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ExternalServiceError) as exc_info:
            await call_with_retries(slow, operation="op", max_retries=1, backoff=0, timeout=0.01)
        assert exc_info.value.attempts == 2

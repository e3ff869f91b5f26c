"""Bounded retries with exponential backoff for external model calls."""
import asyncio
import inspect
from typing import Any, Callable, Optional

import structlog

from ragpipe import config
from ragpipe.errors import ExternalServiceError, RagPipelineError

logger = structlog.get_logger()


async def call_with_retries(
    func: Callable[..., Any],
    *args: Any,
    operation: str,
    max_retries: Optional[int] = None,
    backoff: Optional[float] = None,
    timeout: Optional[float] = None,
) -> Any:
    """Call an external capability, retrying failures with exponential backoff.

    ``func`` may be a plain function or a coroutine function. Pipeline errors
    (``RagPipelineError``) are raised immediately; anything else is retried.

    Args:
        func: Callable to invoke
        *args: Positional arguments for ``func``
        operation: Name used in logs and in the raised error
        max_retries: Retries after the first attempt (default from config)
        backoff: Base delay in seconds, doubled per retry (default from config)
        timeout: Per-attempt timeout in seconds, None to disable

    Returns:
        Whatever ``func`` returns

    Raises:
        ExternalServiceError: If every attempt failed
    """
    max_retries = config.EXTERNAL_MAX_RETRIES if max_retries is None else max_retries
    backoff = config.RETRY_BACKOFF_SECONDS if backoff is None else backoff
    attempts = max_retries + 1

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            result = func(*args)
            if inspect.isawaitable(result):
                if timeout is not None:
                    result = await asyncio.wait_for(result, timeout)
                else:
                    result = await result
            return result

        except RagPipelineError:
            raise

        except Exception as e:
            last_error = e
            if attempt == attempts:
                break

            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                "external_call_retrying",
                operation=operation,
                attempt=attempt,
                max_attempts=attempts,
                delay=delay,
                error=str(e),
                error_type=type(e).__name__,
            )
            await asyncio.sleep(delay)

    logger.error(
        "external_call_failed",
        operation=operation,
        attempts=attempts,
        error=str(last_error),
        error_type=type(last_error).__name__,
    )
    raise ExternalServiceError(operation, attempts, str(last_error)) from last_error

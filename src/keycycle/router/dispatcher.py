"""
Dispatcher: runs operations against the selected backend with failover.

Handles:
- Selecting the current backend for every attempt
- Response health checks
- Excluding rate-limited backends and retrying on the next one
- Streaming with rotation limited to before the first delivered chunk
"""

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, TypeVar

from keycycle.backends.base import Backend, ContentClient
from keycycle.backends.errors import UnhealthyResponseError
from keycycle.router.classifier import ErrorClassifier, HeuristicRateLimitClassifier
from keycycle.router.errors import (
    ExhaustedError,
    NoBackendAvailable,
    NonRetryable,
    RateLimited,
)
from keycycle.router.events import EventHub, RouterEventType
from keycycle.router.registry import BackendRegistry
from keycycle.router.selector import Selector

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[ContentClient], Awaitable[T]]
StreamOperation = Callable[[ContentClient], AsyncIterator[T]]
HealthCheck = Callable[[Any], None]


async def _close_stream(stream: Any) -> None:
    """Close an async iterator if it supports it."""
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()


class Dispatcher:
    """
    Executes logical operations with rate-limit aware failover.

    Only rate-limit shaped failures rotate to another backend. Any other
    failure, including an unhealthy response, is raised as NonRetryable on
    first occurrence and leaves the backend in rotation.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        selector: Selector,
        clients: Mapping[str, ContentClient],
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        classifier: ErrorClassifier | None = None,
        events: EventHub | None = None,
    ):
        """
        Initialize dispatcher.

        Args:
            registry: Backend registry
            selector: Selector over the registry
            clients: Client per backend id
            max_attempts: Attempts per logical operation
            retry_delay: Seconds to wait before retrying on another backend
            classifier: Rate-limit classifier
            events: Event hub for retry/exhaustion notifications

        Raises:
            ValueError: If max_attempts < 1 or retry_delay < 0
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        if retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")

        self._registry = registry
        self._selector = selector
        self._clients = clients
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.classifier = classifier or HeuristicRateLimitClassifier()
        self._events = events or EventHub()

    def _budget(self, max_attempts: int | None, retry_delay: float | None) -> tuple[int, float]:
        attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.retry_delay if retry_delay is None else retry_delay
        if attempts < 1:
            raise ValueError("max_attempts must be a positive integer")
        if delay < 0:
            raise ValueError("retry_delay must be non-negative")
        return attempts, delay

    def _select(self) -> tuple[Backend, ContentClient]:
        backend = self._selector.current()
        if backend is None:
            self._events.emit(RouterEventType.NO_BACKEND)
            raise NoBackendAvailable()
        return backend, self._clients[backend.id]

    def _on_failure(self, backend: Backend, error: Exception) -> RateLimited | NonRetryable:
        """
        Classify a failure and update rotation state.

        Rate-limited backends are excluded and the selector advances.
        """
        try:
            rate_limited = self.classifier.is_rate_limited(error)
        except Exception as e:
            logger.error(f"Rate-limit classifier failed on backend {backend.id}: {e}")
            rate_limited = False

        if not rate_limited:
            logger.info(f"Backend {backend.id} failed with non-retryable error: {error}")
            return NonRetryable(backend.id, error)

        self._registry.exclude(backend.id, reason=str(error))
        self._selector.advance()
        return RateLimited(backend.id, error)

    async def _wait_before_retry(self, attempt: int, max_attempts: int, delay: float) -> None:
        next_backend = self._selector.current()
        self._events.emit(
            RouterEventType.RETRY_SCHEDULED,
            attempt=attempt,
            max_attempts=max_attempts,
            retry_delay=delay,
            next_backend_id=next_backend.id if next_backend else None,
        )
        if delay > 0:
            await asyncio.sleep(delay)

    def _exhausted(self, attempts: int, last_error: RateLimited | None) -> ExhaustedError:
        logger.error(
            f"Giving up after {attempts} attempts; last failure on backend "
            f"{last_error.backend_id if last_error else '-'}"
        )
        self._events.emit(
            RouterEventType.ATTEMPTS_EXHAUSTED,
            attempts=attempts,
            backend_id=last_error.backend_id if last_error else None,
            error=str(last_error.error) if last_error else None,
        )
        return ExhaustedError(attempts, last_error)

    async def invoke(
        self,
        operation: Operation[T],
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        check: HealthCheck | None = None,
    ) -> T:
        """
        Run an operation, rotating backends on rate-limit failures.

        Args:
            operation: Coroutine function taking the backend's client
            max_attempts: Override of the attempt budget
            retry_delay: Override of the delay between attempts
            check: Response health check; raises on an unhealthy result

        Returns:
            The operation's result

        Raises:
            NoBackendAvailable: If nothing is eligible
            NonRetryable: On the first non rate-limit failure
            ExhaustedError: If every attempt was rate limited
        """
        attempts, delay = self._budget(max_attempts, retry_delay)
        last_error: RateLimited | None = None

        for attempt in range(1, attempts + 1):
            backend, client = self._select()
            logger.debug(f"Attempt {attempt}/{attempts} on backend {backend.id}")

            try:
                result = await operation(client)
                if check is not None:
                    check(result)
            except Exception as e:
                failure = self._on_failure(backend, e)
                if isinstance(failure, NonRetryable):
                    raise failure from e
                last_error = failure
                if attempt < attempts:
                    await self._wait_before_retry(attempt, attempts, delay)
                continue

            return result

        raise self._exhausted(attempts, last_error) from (last_error.error if last_error else None)

    async def _open_stream(
        self,
        operation: StreamOperation[T],
        attempts: int,
        delay: float,
        check: HealthCheck | None,
    ) -> tuple[Backend, AsyncIterator[T], T]:
        """Open a stream and fetch its first chunk, rotating on rate limits."""
        last_error: RateLimited | None = None

        for attempt in range(1, attempts + 1):
            backend, client = self._select()
            logger.debug(f"Stream attempt {attempt}/{attempts} on backend {backend.id}")
            stream: Any = None

            try:
                stream = operation(client)
                if inspect.isawaitable(stream):
                    stream = await stream
                first = await anext(stream)
                if check is not None:
                    check(first)
            except Exception as e:
                if stream is not None:
                    await _close_stream(stream)
                error: Exception = e
                if isinstance(e, StopAsyncIteration):
                    error = UnhealthyResponseError(
                        "Stream ended before producing any chunk", backend_id=backend.id
                    )
                failure = self._on_failure(backend, error)
                if isinstance(failure, NonRetryable):
                    raise failure from error
                last_error = failure
                if attempt < attempts:
                    await self._wait_before_retry(attempt, attempts, delay)
                continue

            return backend, stream, first

        raise self._exhausted(attempts, last_error) from (last_error.error if last_error else None)

    async def invoke_stream(
        self,
        operation: StreamOperation[T],
        *,
        max_attempts: int | None = None,
        retry_delay: float | None = None,
        check: HealthCheck | None = None,
    ) -> AsyncIterator[T]:
        """
        Run a streaming operation with failover before the first chunk.

        Opening the stream and producing its first chunk are retried on other
        backends with the same request. Once a chunk has been delivered, a
        failure aborts the stream: a rate-limit failure still excludes the
        backend and is raised as RateLimited; anything else as NonRetryable.
        The stream is never restarted.

        Args:
            operation: Function taking the backend's client, returning an async iterator
            max_attempts: Override of the attempt budget
            retry_delay: Override of the delay between attempts
            check: Health check applied to every chunk

        Yields:
            Response chunks

        Raises:
            NoBackendAvailable: If nothing is eligible
            NonRetryable: On a non rate-limit failure
            RateLimited: On a rate-limit failure after the first chunk
            ExhaustedError: If every opening attempt was rate limited
        """
        attempts, delay = self._budget(max_attempts, retry_delay)

        backend, stream, first = await self._open_stream(operation, attempts, delay, check)
        try:
            yield first
            while True:
                try:
                    chunk = await anext(stream)
                    if check is not None:
                        check(chunk)
                except StopAsyncIteration:
                    return
                except Exception as e:
                    logger.warning(f"Stream from backend {backend.id} aborted mid-stream: {e}")
                    raise self._on_failure(backend, e) from e
                yield chunk
        finally:
            await _close_stream(stream)

"""
Tests for streaming dispatch.

Failover is only possible before the first chunk reaches the caller; after
that a failure aborts the stream.
"""

import pytest

from fakes import FakeClient, FakeClock, auth_error, chunk, make_backends, rate_limit_error
from keycycle.backends import UnhealthyResponseError
from keycycle.router import (
    ExhaustedError,
    MultiBackendRouter,
    NoBackendAvailable,
    NonRetryable,
    RateLimited,
)


def make_router(*clients, max_attempts=3):
    ids = [c.backend.id for c in clients]
    return MultiBackendRouter(
        make_backends(*ids),
        clients={c.backend.id: c for c in clients},
        max_attempts=max_attempts,
        retry_delay=0,
        clock=FakeClock(),
    )


async def collect(stream):
    return [item async for item in stream]


REQUEST = {"model": "gemini-2.5-flash", "contents": [{"role": "user", "parts": [{"text": "hi"}]}]}


class TestStreamSuccess:
    """Tests for streams that complete normally."""

    async def test_yields_every_chunk(self):
        """Should yield every chunk and close the stream."""
        a = FakeClient("a", stream=[chunk("Hel"), chunk("lo"), chunk("!", "STOP")])
        router = make_router(a)

        chunks = await collect(router.generate_stream(REQUEST))

        assert [c["candidates"][0]["content"]["parts"][0]["text"] for c in chunks] == [
            "Hel",
            "lo",
            "!",
        ]
        assert a.streams_opened == 1
        assert a.streams_closed == 1

    async def test_stream_is_lazy(self):
        """Should not open a stream until iterated."""
        a = FakeClient("a")
        router = make_router(a)

        stream = router.generate_stream(REQUEST)

        assert a.streams_opened == 0
        await collect(stream)
        assert a.streams_opened == 1


class TestStreamFailoverBeforeFirstChunk:
    """Tests for rotation while opening the stream."""

    async def test_rotates_on_rate_limit_before_first_chunk(self):
        """Should rotate when the stream fails before its first chunk."""
        a = FakeClient("a", stream=[rate_limit_error()])
        b = FakeClient("b", stream=[chunk("one"), chunk("two", "STOP")])
        router = make_router(a, b)

        chunks = await collect(router.generate_stream(REQUEST))

        assert len(chunks) == 2
        assert router.excluded_backend_ids() == {"a"}
        assert router.current_backend_id() == "b"
        assert a.streams_closed == 1

    async def test_retry_reuses_original_request(self):
        """Should reopen the stream with the original request."""
        a = FakeClient("a", stream=[rate_limit_error()])
        b = FakeClient("b")
        router = make_router(a, b)

        await collect(router.generate_stream(REQUEST))

        assert a.calls == [("stream", REQUEST)]
        assert b.calls == [("stream", REQUEST)]

    async def test_exhausted_before_first_chunk(self):
        """Should raise ExhaustedError when every opening is rate limited."""
        clients = [FakeClient(i, stream=[rate_limit_error()]) for i in ("a", "b", "c")]
        router = make_router(*clients, max_attempts=2)

        with pytest.raises(ExhaustedError):
            await collect(router.generate_stream(REQUEST))

        assert sum(c.streams_opened for c in clients) == 2
        assert router.excluded_backend_ids() == {"a", "b"}

    async def test_non_rate_limit_before_first_chunk(self):
        """Should not rotate on other failures."""
        a = FakeClient("a", stream=[auth_error()])
        b = FakeClient("b")
        router = make_router(a, b)

        with pytest.raises(NonRetryable):
            await collect(router.generate_stream(REQUEST))

        assert b.streams_opened == 0
        assert router.excluded_backend_ids() == set()

    async def test_empty_stream_is_unhealthy(self):
        """Should treat a stream without chunks as unhealthy."""
        a = FakeClient("a")
        a._stream = []
        b = FakeClient("b")
        router = make_router(a, b)

        with pytest.raises(NonRetryable) as exc_info:
            await collect(router.generate_stream(REQUEST))

        assert isinstance(exc_info.value.error, UnhealthyResponseError)
        assert b.streams_opened == 0

    async def test_blocked_first_chunk(self):
        """Should reject a blocked first chunk."""
        a = FakeClient("a", stream=[chunk("", "SAFETY")])
        router = make_router(a)

        with pytest.raises(NonRetryable) as exc_info:
            await collect(router.generate_stream(REQUEST))

        assert exc_info.value.error.finish_reason == "SAFETY"
        assert router.eligible_backend_ids() == {"a"}

    async def test_no_backend_available(self):
        """Should raise NoBackendAvailable when nothing is eligible."""
        a = FakeClient("a")
        router = MultiBackendRouter(
            make_backends("a", disabled=("a",)), clients={"a": a}, retry_delay=0
        )

        with pytest.raises(NoBackendAvailable):
            await collect(router.generate_stream(REQUEST))


class TestStreamFailureAfterFirstChunk:
    """Tests for failures once chunks have been delivered."""

    async def test_mid_stream_rate_limit_aborts(self):
        """Should abort without restarting after a mid-stream rate limit."""
        a = FakeClient("a", stream=[chunk("partial"), rate_limit_error()])
        b = FakeClient("b")
        router = make_router(a, b)
        received = []

        with pytest.raises(RateLimited) as exc_info:
            async for item in router.generate_stream(REQUEST):
                received.append(item)

        assert len(received) == 1
        assert exc_info.value.backend_id == "a"
        # Backend is still excluded, but the stream is not restarted
        assert router.excluded_backend_ids() == {"a"}
        assert router.current_backend_id() == "b"
        assert b.streams_opened == 0
        assert a.streams_closed == 1

    async def test_mid_stream_other_error(self):
        """Should raise NonRetryable for other mid-stream failures."""
        a = FakeClient("a", stream=[chunk("partial"), auth_error()])
        router = make_router(a)

        with pytest.raises(NonRetryable):
            await collect(router.generate_stream(REQUEST))

        assert router.excluded_backend_ids() == set()

    async def test_mid_stream_blocked_chunk(self):
        """Should reject a blocked chunk mid-stream."""
        a = FakeClient("a", stream=[chunk("partial"), chunk("", "RECITATION")])
        router = make_router(a)

        with pytest.raises(NonRetryable) as exc_info:
            await collect(router.generate_stream(REQUEST))

        assert exc_info.value.error.finish_reason == "RECITATION"


class TestStreamCleanup:
    """Tests for releasing the underlying stream."""

    async def test_caller_close_releases_stream(self):
        """Should close the backend stream when the caller closes."""
        a = FakeClient("a", stream=[chunk("1"), chunk("2"), chunk("3", "STOP")])
        router = make_router(a)

        stream = router.generate_stream(REQUEST)
        first = await anext(stream)
        await stream.aclose()

        assert first["candidates"][0]["content"]["parts"][0]["text"] == "1"
        assert a.streams_closed == 1

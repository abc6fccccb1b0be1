"""Tests for request-scoped memoization."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from cachelab.errors import ProducerError, ScopeClosedError
from cachelab.memo import RequestScopeMemoizer


@pytest.fixture()
def memoizer(clock):
    return RequestScopeMemoizer(clock)


class TestMemoize:
    @pytest.mark.asyncio
    async def test_concurrent_calls_invoke_producer_once(self, memoizer):
        calls = 0

        async def producer():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"posts": [calls]}

        async with memoizer.scope() as scope:
            results = await asyncio.gather(
                *(memoizer.memoize(scope, "posts:a", producer) for _ in range(10))
            )
        assert calls == 1
        assert all(r is results[0] for r in results)
        assert scope.producer_calls == 1

    @pytest.mark.asyncio
    async def test_sequential_calls_reuse_result(self, memoizer):
        producer = AsyncMock(return_value={"id": 1})
        async with memoizer.scope() as scope:
            first = await memoizer.memoize(scope, "k", producer)
            second = await memoizer.memoize(scope, "k", producer)
        assert second is first
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_different_keys_are_independent(self, memoizer):
        producer = AsyncMock(side_effect=["a", "b"])
        async with memoizer.scope() as scope:
            a = await memoizer.memoize(scope, "posts:a", producer)
            b = await memoizer.memoize(scope, "posts:b", producer)
            a_again = await memoizer.memoize(scope, "posts:a", producer)
        assert (a, b, a_again) == ("a", "b", "a")
        assert scope.producer_calls == 2

    @pytest.mark.asyncio
    async def test_scopes_do_not_share_entries(self, memoizer):
        producer = AsyncMock(side_effect=["first", "second"])
        async with memoizer.scope() as scope1:
            v1 = await memoizer.memoize(scope1, "k", producer)
        async with memoizer.scope() as scope2:
            v2 = await memoizer.memoize(scope2, "k", producer)
        assert (v1, v2) == ("first", "second")
        assert scope1.id != scope2.id

    @pytest.mark.asyncio
    async def test_failure_is_memoized_for_the_scope(self, memoizer):
        producer = AsyncMock(side_effect=RuntimeError("boom"))
        async with memoizer.scope() as scope:
            with pytest.raises(ProducerError):
                await memoizer.memoize(scope, "k", producer)
            with pytest.raises(ProducerError):
                await memoizer.memoize(scope, "k", producer)
        assert producer.await_count == 1

    @pytest.mark.asyncio
    async def test_producer_error_is_not_double_wrapped(self, memoizer):
        inner = ProducerError("posts", RuntimeError("origin down"))
        async with memoizer.scope() as scope:
            with pytest.raises(ProducerError) as excinfo:
                await memoizer.memoize(scope, "k", AsyncMock(side_effect=inner))
        assert excinfo.value is inner

    @pytest.mark.asyncio
    async def test_closed_scope_rejects_calls(self, memoizer):
        async with memoizer.scope() as scope:
            pass
        assert scope.closed
        with pytest.raises(ScopeClosedError):
            await memoizer.memoize(scope, "k", AsyncMock())


class TestScopeLifecycle:
    @pytest.mark.asyncio
    async def test_with_scope_returns_body_result(self, memoizer):
        producer = AsyncMock(return_value=7)

        async def body(scope):
            x = await memoizer.memoize(scope, "k", producer)
            y = await memoizer.memoize(scope, "k", producer)
            return x + y

        assert await memoizer.with_scope(body) == 14
        assert producer.await_count == 1
        assert memoizer.open_scopes == []

    @pytest.mark.asyncio
    async def test_scope_closed_when_body_raises(self, memoizer):
        captured = []

        async def body(scope):
            captured.append(scope)
            await memoizer.memoize(scope, "k", AsyncMock(return_value=1))
            raise ValueError("handler failed")

        with pytest.raises(ValueError):
            await memoizer.with_scope(body)
        assert captured[0].closed
        assert len(captured[0]) == 0
        assert memoizer.open_scopes == []

    @pytest.mark.asyncio
    async def test_open_scopes_tracked(self, memoizer):
        async with memoizer.scope() as scope:
            await memoizer.memoize(scope, "k", AsyncMock(return_value=1))
            assert memoizer.open_scopes == [scope]
            assert scope.keys() == ["k"]
        assert memoizer.open_scopes == []

    @pytest.mark.asyncio
    async def test_in_flight_call_completes_after_scope_closes(self, memoizer):
        gate = asyncio.Event()
        finished = []

        async def producer():
            await gate.wait()
            finished.append(True)
            return "done"

        async with memoizer.scope() as scope:
            pending = asyncio.ensure_future(memoizer.memoize(scope, "k", producer))
            await asyncio.sleep(0)

        assert scope.closed
        gate.set()
        assert await pending == "done"
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_invalidate_drops_matching_keys(self, memoizer):
        producer = AsyncMock(side_effect=["a1", "b1", "a2"])
        async with memoizer.scope() as scope:
            await memoizer.memoize(scope, "posts:a", producer)
            await memoizer.memoize(scope, "posts:b", producer)
            removed = memoizer.invalidate(lambda key: key == "posts:a")
            assert removed == 1
            assert await memoizer.memoize(scope, "posts:a", producer) == "a2"
            assert await memoizer.memoize(scope, "posts:b", producer) == "b1"

    @pytest.mark.asyncio
    async def test_scope_exposes_its_tasks(self, memoizer, clock):
        async with memoizer.scope() as scope:
            await memoizer.memoize(scope, "posts:a", AsyncMock(return_value="a"))
            task = scope.get("posts:a")
            assert task is not None and task.result() == "a"
            assert scope.get("posts:b") is None
            assert scope.created_at() == [clock.monotonic()]

            scope.drop("posts:a")
            assert scope.get("posts:a") is None
            assert len(scope) == 0
        assert scope.producer_calls == 1

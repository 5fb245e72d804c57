"""
Tests for BatchDispatcher: chunked concurrency, failure isolation, deadlines.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from provider.dispatcher import BatchDispatcher, chunked
from provider.errors import InvalidRequest, ProviderRejected, ProviderUnavailable
from provider.schemas import MessageResult


class FakeGateway:
    """Records concurrency and returns canned outcomes per user key."""

    def __init__(self, delay: float = 0.01, failures: Optional[Dict[int, Exception]] = None,
                 slow: Optional[Dict[int, float]] = None):
        self.delay = delay
        self.failures = failures or {}
        self.slow = slow or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: List[int] = []
        self.started: List[List[int]] = []

    async def send_message(self, user_key, template_set_code, context):
        self.calls.append(user_key)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.slow.get(user_key, self.delay))
            if user_key in self.failures:
                raise self.failures[user_key]
            return MessageResult(msg_count=1, sent_push_count=1)
        finally:
            self.in_flight -= 1


def _by_key(report):
    return {r.user_key: r for r in report.results}


class TestChunked:
    def test_splits_into_fixed_size_chunks(self):
        assert chunked(list(range(25)), 10) == [list(range(10)), list(range(10, 20)), list(range(20, 25))]

    def test_empty_input(self):
        assert chunked([], 10) == []

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            chunked([1], 0)


class TestSendBatch:
    @pytest.mark.asyncio
    async def test_concurrency_is_bounded_by_chunk_size(self, settings):
        gateway = FakeGateway()
        dispatcher = BatchDispatcher(gateway, settings=settings)

        report = await dispatcher.send_batch(list(range(1, 26)), "TEMPLATE_A", {})

        assert gateway.max_in_flight <= 10
        assert len(report.results) == 25
        assert {r.user_key for r in report.results} == set(range(1, 26))
        assert report.summary.model_dump() == {"total": 25, "success": 25, "failed": 0, "skipped": 0}

    @pytest.mark.asyncio
    async def test_chunks_run_sequentially(self, settings):
        # The slow key in chunk one must finish before chunk two starts.
        gateway = FakeGateway(delay=0.0, slow={1: 0.05})
        dispatcher = BatchDispatcher(gateway, chunk_size=2, settings=settings)

        await dispatcher.send_batch([1, 2, 3, 4], "TEMPLATE_A", {})

        assert set(gateway.calls[:2]) == {1, 2}
        assert set(gateway.calls[2:]) == {3, 4}
        assert gateway.max_in_flight <= 2

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, settings):
        gateway = FakeGateway(failures={2: ProviderRejected("template not approved")})
        dispatcher = BatchDispatcher(gateway, settings=settings)

        report = await dispatcher.send_batch([1, 2, 3], "TEMPLATE_A", {"name": "Jane"})

        results = _by_key(report)
        assert results[1].success and results[3].success
        assert results[1].result.msg_count == 1
        assert results[2].success is False
        assert results[2].error.message == "template not approved"
        assert results[2].error.code == "502"
        assert results[2].error.kind == "ProviderRejected"
        assert report.summary.total == 3
        assert report.summary.success == 2
        assert report.summary.failed == 1

    @pytest.mark.asyncio
    async def test_unavailable_provider_marks_entry_failed(self, settings):
        gateway = FakeGateway(failures={1: ProviderUnavailable()})
        report = await BatchDispatcher(gateway, settings=settings).send_batch([1], "T", {})
        assert report.results[0].error.kind == "ProviderUnavailable"
        assert report.results[0].error.code == "503"

    @pytest.mark.asyncio
    async def test_unexpected_exception_gets_generic_message(self, settings):
        gateway = FakeGateway(failures={5: RuntimeError("boom")})
        report = await BatchDispatcher(gateway, settings=settings).send_batch([4, 5], "T", {})

        failed = _by_key(report)[5]
        assert failed.success is False
        assert failed.error.message == "Unexpected error while sending message"
        assert failed.error.code is None
        assert _by_key(report)[4].success

    @pytest.mark.asyncio
    async def test_string_user_keys_are_coerced(self, settings):
        gateway = FakeGateway(delay=0.0)
        report = await BatchDispatcher(gateway, settings=settings).send_batch(["11", 12], "T", {})
        assert sorted(gateway.calls) == [11, 12]
        assert {r.user_key for r in report.results} == {11, 12}


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_keys, code, context",
        [
            ([], "T", {}),
            (None, "T", {}),
            ("123", "T", {}),
            ([1], "", {}),
            ([1], None, {}),
            ([1], "T", None),
            ([1], "T", ["not", "a", "mapping"]),
            ([1, "abc"], "T", {}),
            ([1, 0], "T", {}),
        ],
    )
    async def test_invalid_input_makes_no_calls(self, settings, user_keys, code, context):
        gateway = FakeGateway()
        with pytest.raises(InvalidRequest):
            await BatchDispatcher(gateway, settings=settings).send_batch(user_keys, code, context)
        assert gateway.calls == []

    def test_chunk_size_must_be_positive(self, settings):
        with pytest.raises(ValueError):
            BatchDispatcher(FakeGateway(), chunk_size=0, settings=settings)

    def test_chunk_size_defaults_to_settings(self, make_settings):
        dispatcher = BatchDispatcher(FakeGateway(), settings=make_settings(toss_batch_chunk_size=3))
        assert dispatcher.chunk_size == 3


class TestDeadline:
    @pytest.mark.asyncio
    async def test_pending_sends_are_skipped_after_deadline(self, settings):
        gateway = FakeGateway(delay=0.0, slow={2: 5.0})
        dispatcher = BatchDispatcher(gateway, chunk_size=2, settings=settings)

        report = await dispatcher.send_batch([1, 2, 3], "T", {}, deadline=0.1)

        results = _by_key(report)
        assert len(report.results) == 3
        assert results[1].success is True
        assert results[2].error.kind == "Skipped"
        assert results[3].error.kind == "Skipped"
        assert 3 not in gateway.calls
        assert report.summary.model_dump() == {"total": 3, "success": 1, "failed": 2, "skipped": 2}

    @pytest.mark.asyncio
    async def test_generous_deadline_sends_everything(self, settings):
        gateway = FakeGateway(delay=0.0)
        report = await BatchDispatcher(gateway, settings=settings).send_batch(
            [1, 2, 3], "T", {}, deadline=5.0
        )
        assert report.summary.success == 3
        assert report.summary.skipped == 0

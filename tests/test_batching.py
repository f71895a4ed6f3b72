"""Test coalescing of single calls into batches"""

import asyncio

import pytest

from spot_sync.core.exceptions import NetworkError, SpotifyError
from spot_sync.spotify.batching import BatchCoordinator


class RecordingBatch:
    """Batch function that records every batch and when it was sent"""

    def __init__(self, fail_with=None):
        self.batches = []
        self.times = []
        self.fail_with = fail_with

    async def __call__(self, inputs):
        self.batches.append(list(inputs))
        self.times.append(asyncio.get_running_loop().time())
        if self.fail_with is not None:
            raise self.fail_with
        return [value * 10 for value in inputs]


class TestBatchCoordinator:
    """Test BatchCoordinator"""

    @pytest.mark.asyncio
    async def test_single_call(self):
        """Test a lone call is sent after the idle window"""
        batch = RecordingBatch()
        coordinator = BatchCoordinator(batch, max_size=5, timeout=0.01)

        assert await coordinator(4) == 40
        assert batch.batches == [[4]]

    @pytest.mark.asyncio
    async def test_batch_grouping(self):
        """Test max_size=2 splits three calls into a full batch and a timed out one"""
        batch = RecordingBatch()
        coordinator = BatchCoordinator(batch, max_size=2, timeout=0.05)
        start = asyncio.get_running_loop().time()

        results = await asyncio.gather(coordinator(1), coordinator(2), coordinator(3))

        assert results == [10, 20, 30]
        assert batch.batches == [[1, 2], [3]]
        # The full batch goes out right away, the partial one waits for the window
        assert batch.times[0] - start < 0.05
        assert batch.times[1] - start >= 0.04

    @pytest.mark.asyncio
    async def test_fate_sharing(self):
        """Test every caller of a failed batch gets the same error"""
        error = NetworkError("connection reset")
        batch = RecordingBatch(fail_with=error)
        coordinator = BatchCoordinator(batch, max_size=3, timeout=0.01)

        results = await asyncio.gather(
            coordinator(1), coordinator(2), coordinator(3),
            return_exceptions=True
        )

        assert len(batch.batches) == 1
        assert all(result is error for result in results)

    @pytest.mark.asyncio
    async def test_failure_stays_in_its_batch(self):
        """Test a failing batch does not affect the next one"""
        calls = []

        async def flaky(inputs):
            calls.append(list(inputs))
            if len(calls) == 1:
                raise NetworkError("first batch fails")
            return [str(value) for value in inputs]

        coordinator = BatchCoordinator(flaky, max_size=2, timeout=0.01)
        results = await asyncio.gather(
            coordinator(1), coordinator(2), coordinator(3),
            return_exceptions=True
        )

        assert isinstance(results[0], NetworkError)
        assert results[0] is results[1]
        assert results[2] == "3"

    @pytest.mark.asyncio
    async def test_result_count_mismatch(self):
        """Test a batch answering with the wrong number of results fails as a whole"""
        async def short(inputs):
            return inputs[:-1]

        coordinator = BatchCoordinator(short, max_size=2, timeout=0.01)
        results = await asyncio.gather(coordinator("a"), coordinator("b"), return_exceptions=True)

        assert all(isinstance(result, SpotifyError) for result in results)

    @pytest.mark.asyncio
    async def test_instances_buffer_independently(self):
        """Test two coordinators never mix their inputs"""
        first = RecordingBatch()
        second = RecordingBatch()
        one = BatchCoordinator(first, max_size=10, timeout=0.01)
        two = BatchCoordinator(second, max_size=10, timeout=0.01)

        await asyncio.gather(one(1), two(2), one(3))

        assert first.batches == [[1, 3]]
        assert second.batches == [[2]]

    @pytest.mark.asyncio
    async def test_pending_and_flush(self):
        """Test pending counts buffered inputs and flush sends them early"""
        batch = RecordingBatch()
        coordinator = BatchCoordinator(batch, max_size=10, timeout=10)

        task = asyncio.ensure_future(coordinator(7))
        await asyncio.sleep(0)
        assert coordinator.pending == 1

        coordinator.flush()
        assert coordinator.pending == 0
        assert await asyncio.wait_for(task, 1) == 70

    def test_rejects_empty_batches(self):
        """Test max_size must allow at least one input"""
        with pytest.raises(ValueError):
            BatchCoordinator(RecordingBatch(), max_size=0, timeout=1)

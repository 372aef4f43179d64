"""
Unit tests for ProgressEmitter.
"""

import pytest

from premerge_review.review.events import ProgressEmitter, ProgressEvent, ReviewPhase


class TestProgressEmitter:
    """Tests for progress event delivery."""

    @pytest.mark.asyncio
    async def test_emit_to_subscribers(self):
        received = []

        async def handler(event):
            received.append(event)

        emitter = ProgressEmitter()
        emitter.subscribe(handler)
        await emitter.emit(ProgressEvent(phase=ReviewPhase.RESOLVING, message="Resolving"))

        assert [e.phase for e in received] == [ReviewPhase.RESOLVING]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        received = []

        async def handler(event):
            received.append(event)

        emitter = ProgressEmitter()
        unsubscribe = emitter.subscribe(handler)
        unsubscribe()
        await emitter.emit(ProgressEvent(phase=ReviewPhase.DONE, message="done"))

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        received = []

        async def broken(event):
            raise RuntimeError("handler bug")

        async def handler(event):
            received.append(event)

        emitter = ProgressEmitter([broken, handler])
        await emitter.emit(ProgressEvent(phase=ReviewPhase.MERGING, message="merging"))

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        emitter = ProgressEmitter(max_history=3)
        for i in range(5):
            await emitter.emit(
                ProgressEvent(phase=ReviewPhase.PER_CHUNK_REVIEW, message=f"part {i}", part_number=i)
            )

        assert [e.part_number for e in emitter.history] == [2, 3, 4]

    def test_event_to_dict(self):
        event = ProgressEvent(
            phase=ReviewPhase.PER_CHUNK_REVIEW,
            message="Reviewing part 1 of 3",
            review_id="review_1_abcdef",
            part_number=1,
            total_parts=3,
        )

        data = event.to_dict()
        assert data["phase"] == "per_chunk_review"
        assert data["part_number"] == 1
        assert data["total_parts"] == 3
        assert "timestamp" in data

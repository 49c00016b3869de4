"""
Tests for the trash / undo manager

Timers run on the real event loop with very short windows.
"""

import asyncio

import pytest

from fieldledger.errors import NothingToRestoreError
from fieldledger.models import DeletedJobAggregate, Job
from fieldledger.trash import TrashManager


WINDOW = 0.05


def _aggregate(job_id: str = None) -> DeletedJobAggregate:
    job = Job(customer_id="cust-1") if job_id is None else Job(id=job_id, customer_id="cust-1")
    return DeletedJobAggregate(job=job)


class TestTrashManager:
    """Tests for stash / restore / expire."""

    def test_restore_within_window(self):
        async def scenario():
            trash = TrashManager(WINDOW)
            aggregate = _aggregate()
            trash.stash(aggregate)
            assert trash.is_trashed(aggregate.job_id)

            async def apply(restored):
                return restored.job_id

            assert await trash.restore(aggregate.job_id, apply) == aggregate.job_id
            assert not trash.is_trashed(aggregate.job_id)
            assert len(trash) == 0

        asyncio.run(scenario())

    def test_restore_unknown_job(self):
        async def scenario():
            trash = TrashManager(WINDOW)

            async def apply(restored):
                return restored

            with pytest.raises(NothingToRestoreError):
                await trash.restore("job-1", apply)

        asyncio.run(scenario())

    def test_timer_expires_entry(self):
        async def scenario():
            expired = []
            trash = TrashManager(WINDOW)
            aggregate = _aggregate()
            trash.stash(aggregate, on_expire=expired.append)
            await asyncio.sleep(WINDOW * 4)

            assert not trash.is_trashed(aggregate.job_id)
            assert [a.job_id for a in expired] == [aggregate.job_id]

            async def apply(restored):
                return restored

            with pytest.raises(NothingToRestoreError):
                await trash.restore(aggregate.job_id, apply)

        asyncio.run(scenario())

    def test_restore_wins_over_timer_while_applying(self):
        async def scenario():
            expired = []
            applied = []
            trash = TrashManager(WINDOW)
            aggregate = _aggregate()
            trash.stash(aggregate, on_expire=expired.append)

            async def slow_apply(restored):
                # Outlasts the window; the timer must not fire meanwhile
                await asyncio.sleep(WINDOW * 3)
                applied.append(restored.job_id)
                return restored

            await trash.restore(aggregate.job_id, slow_apply)
            await asyncio.sleep(WINDOW * 2)
            assert applied == [aggregate.job_id]
            assert expired == []

        asyncio.run(scenario())

    def test_expire_after_restore_is_noop(self):
        async def scenario():
            trash = TrashManager(WINDOW)
            aggregate = _aggregate()
            trash.stash(aggregate)

            async def apply(restored):
                return restored

            await trash.restore(aggregate.job_id, apply)
            assert trash.expire(aggregate.job_id) is False

        asyncio.run(scenario())

    def test_restore_after_explicit_expire_fails(self):
        async def scenario():
            applied = []
            trash = TrashManager(WINDOW)
            aggregate = _aggregate()
            trash.stash(aggregate)
            assert trash.expire(aggregate.job_id) is True

            async def apply(restored):
                applied.append(restored)

            with pytest.raises(NothingToRestoreError):
                await trash.restore(aggregate.job_id, apply)
            assert applied == []

        asyncio.run(scenario())

    def test_failed_apply_puts_entry_back(self):
        async def scenario():
            trash = TrashManager(1.0)
            aggregate = _aggregate()
            trash.stash(aggregate)

            async def failing(restored):
                raise ValueError("store unavailable")

            with pytest.raises(ValueError):
                await trash.restore(aggregate.job_id, failing)
            assert trash.is_trashed(aggregate.job_id)

            async def apply(restored):
                return "ok"

            assert await trash.restore(aggregate.job_id, apply) == "ok"

        asyncio.run(scenario())

    def test_second_restore_is_rejected(self):
        async def scenario():
            calls = []
            trash = TrashManager(1.0)
            aggregate = _aggregate()
            trash.stash(aggregate)

            async def apply(restored):
                calls.append(restored.job_id)
                await asyncio.sleep(0.01)

            first = asyncio.create_task(trash.restore(aggregate.job_id, apply))
            await asyncio.sleep(0)
            with pytest.raises(NothingToRestoreError):
                await trash.restore(aggregate.job_id, apply)
            await first
            assert calls == [aggregate.job_id]

        asyncio.run(scenario())

    def test_restash_replaces_timer(self):
        async def scenario():
            expired = []
            trash = TrashManager(WINDOW)
            trash.stash(_aggregate("job-1"), on_expire=expired.append)
            await asyncio.sleep(WINDOW / 2)
            replacement = trash.stash(_aggregate("job-1"), on_expire=expired.append)

            assert len(trash) == 1
            assert trash.pending_ids() == ["job-1"]
            await asyncio.sleep(WINDOW * 4)
            assert len(expired) == 1
            assert expired[0] is replacement.aggregate

        asyncio.run(scenario())

    def test_peek_returns_copy(self):
        async def scenario():
            trash = TrashManager(1.0)
            aggregate = _aggregate()
            trash.stash(aggregate)
            peeked = trash.peek(aggregate.job_id)
            assert peeked == aggregate
            assert peeked is not aggregate
            assert trash.peek("other") is None
            trash.expire_all()

        asyncio.run(scenario())

    def test_expire_all(self):
        async def scenario():
            expired = []
            trash = TrashManager(10.0)
            for job_id in ("job-1", "job-2"):
                trash.stash(_aggregate(job_id), on_expire=expired.append)
            assert trash.expire_all() == 2
            assert len(trash) == 0
            assert sorted(a.job_id for a in expired) == ["job-1", "job-2"]

        asyncio.run(scenario())

    def test_window_must_be_positive(self):
        with pytest.raises(ValueError):
            TrashManager(0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Trash / Undo Manager

Deleted jobs are kept in memory for a short window so the delete can be
undone exactly. The store delete happens at stash time; expiry only
discards the in-memory backup.

STATE MACHINE (per job id):
    TRASHED --restore()--> RESTORING --apply ok--> RESTORED (entry removed)
                              |
                              +--apply failed--> TRASHED (timer re-armed)
    TRASHED --timer/expire()--> EXPIRED (entry removed)

CRITICAL: restore() and the expiry timer race at the window boundary.
Each entry has a single state flag that is flipped synchronously, before
any await, by whichever side gets there first. The loser sees a state
other than TRASHED and does nothing. Each timer also carries the token of
the entry it was scheduled for, so a timer left over from a replaced
entry can never expire its successor.

The trash map is only ever changed through stash / restore / expire.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from fieldledger.errors import NothingToRestoreError
from fieldledger.models import DeletedJobAggregate, utc_now


logger = structlog.get_logger(__name__)

T = TypeVar("T")

ExpireCallback = Callable[[DeletedJobAggregate], None]


class TrashState(str, Enum):
    TRASHED = "trashed"
    RESTORING = "restoring"
    RESTORED = "restored"
    EXPIRED = "expired"


@dataclass
class TrashEntry:
    """One deleted job awaiting restore or expiry."""

    aggregate: DeletedJobAggregate
    deleted_at: datetime
    expires_at: float                   # event loop time
    token: int
    on_expire: Optional[ExpireCallback] = None
    state: TrashState = TrashState.TRASHED
    handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)

    def cancel_timer(self) -> None:
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None


class TrashManager:
    """
    Holds recently deleted job aggregates with a bounded undo window.

    Must be used from inside a running event loop: timers are scheduled on
    it with call_later.
    """

    def __init__(self, window_seconds: float = 30.0):
        if window_seconds <= 0:
            raise ValueError("Undo window must be positive")
        self._window = window_seconds
        self._entries: dict[str, TrashEntry] = {}
        self._tokens = itertools.count(1)

    @property
    def window_seconds(self) -> float:
        return self._window

    def stash(
        self,
        aggregate: DeletedJobAggregate,
        on_expire: Optional[ExpireCallback] = None,
    ) -> TrashEntry:
        """
        Keep a deleted aggregate and start its expiry timer.

        Stashing a job id that is already trashed cancels the old timer and
        replaces the entry.
        """
        loop = asyncio.get_running_loop()
        job_id = aggregate.job_id

        previous = self._entries.pop(job_id, None)
        if previous is not None:
            previous.cancel_timer()
            previous.state = TrashState.EXPIRED
            logger.info("trash_replaced", job_id=job_id, token=previous.token)

        entry = TrashEntry(
            aggregate=aggregate,
            deleted_at=utc_now(),
            expires_at=loop.time() + self._window,
            token=next(self._tokens),
            on_expire=on_expire,
        )
        entry.handle = loop.call_later(self._window, self._fire, job_id, entry.token)
        self._entries[job_id] = entry

        logger.info(
            "trash_stashed",
            job_id=job_id,
            token=entry.token,
            window_seconds=self._window,
        )
        return entry

    async def restore(
        self,
        job_id: str,
        apply: Callable[[DeletedJobAggregate], Awaitable[T]],
    ) -> T:
        """
        Claim a trashed aggregate and hand it to `apply` to write it back.

        The claim (state flip and timer cancel) happens before `apply` is
        awaited, so the expiry timer cannot fire in between. If `apply`
        raises, the entry goes back to TRASHED with a timer for whatever
        was left of its window, and the error propagates.

        Raises:
            NothingToRestoreError: the job is not (or no longer) in the trash
        """
        entry = self._entries.get(job_id)
        if entry is None or entry.state != TrashState.TRASHED:
            raise NothingToRestoreError(job_id)

        entry.state = TrashState.RESTORING
        entry.cancel_timer()

        try:
            result = await apply(entry.aggregate)
        except BaseException:
            self._rearm(job_id, entry)
            raise

        entry.state = TrashState.RESTORED
        if self._entries.get(job_id) is entry:
            del self._entries[job_id]
        logger.info("trash_restored", job_id=job_id, token=entry.token)
        return result

    def expire(self, job_id: str) -> bool:
        """
        Discard a trashed aggregate permanently.

        Called by the timer, or directly to purge early. Returns False (and
        does nothing) if the job is not trashed or a restore owns it.
        """
        entry = self._entries.get(job_id)
        if entry is None or entry.state != TrashState.TRASHED:
            return False

        entry.state = TrashState.EXPIRED
        entry.cancel_timer()
        del self._entries[job_id]
        logger.info("trash_expired", job_id=job_id, token=entry.token)

        if entry.on_expire is not None:
            try:
                entry.on_expire(entry.aggregate)
            except Exception as e:
                logger.error("trash_expire_callback_failed", job_id=job_id, error=str(e))
        return True

    def expire_all(self) -> int:
        """Expire every pending entry. Used on shutdown."""
        return sum(1 for job_id in list(self._entries) if self.expire(job_id))

    def is_trashed(self, job_id: str) -> bool:
        entry = self._entries.get(job_id)
        return entry is not None and entry.state == TrashState.TRASHED

    def peek(self, job_id: str) -> Optional[DeletedJobAggregate]:
        """A copy of a trashed aggregate, for display only."""
        entry = self._entries.get(job_id)
        if entry is None or entry.state != TrashState.TRASHED:
            return None
        return entry.aggregate.model_copy(deep=True)

    def pending_ids(self) -> list[str]:
        return [job_id for job_id, e in self._entries.items() if e.state == TrashState.TRASHED]

    def __len__(self) -> int:
        return len(self._entries)

    def _fire(self, job_id: str, token: int) -> None:
        entry = self._entries.get(job_id)
        if entry is None or entry.token != token:
            return
        entry.handle = None
        self.expire(job_id)

    def _rearm(self, job_id: str, entry: TrashEntry) -> None:
        if self._entries.get(job_id) is not entry:
            # Replaced by a newer stash while restoring
            return
        loop = asyncio.get_running_loop()
        remaining = max(entry.expires_at - loop.time(), 0.0)
        entry.state = TrashState.TRASHED
        entry.handle = loop.call_later(remaining, self._fire, job_id, entry.token)
        logger.warning("trash_restore_failed", job_id=job_id, remaining_seconds=remaining)

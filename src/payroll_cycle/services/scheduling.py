"""Injectable time sources for the payroll cycle.

The only suspension points in the cycle are simulated I/O: the approver
opening an approval request and each payment's processing latency. Both
await a Scheduler, so tests can force exact interleavings instead of
depending on wall-clock delays.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import date, datetime, timedelta, timezone
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Current timezone-aware UTC datetime."""
        ...

    def today(self) -> date:
        """Current date."""
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to an explicit instant. Advance it by hand in tests."""

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        self._at = at

    def now(self) -> datetime:
        return self._at

    def today(self) -> date:
        return self._at.date()

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._at = self._at + timedelta(**kwargs)
        return self._at


@runtime_checkable
class Scheduler(Protocol):
    """Awaitable delay used in place of network round-trips."""

    async def sleep(self, seconds: float) -> None:
        """Suspend the caller for (roughly) the given duration."""
        ...


class AsyncioScheduler:
    """Real delays through asyncio.sleep."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ImmediateScheduler:
    """Yields control to the event loop without waiting."""

    def __init__(self) -> None:
        self.requested: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.requested.append(seconds)
        await asyncio.sleep(0)


class ManualScheduler:
    """Scheduler whose sleeps complete only when released.

    Usage:
        scheduler = ManualScheduler()
        task = asyncio.create_task(sequencer.execute(...))
        await scheduler.wait_for_sleepers(1)
        # observe mid-run state here
        scheduler.release()
    """

    def __init__(self) -> None:
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._changed = asyncio.Event()
        self.requested: list[float] = []

    @property
    def pending(self) -> int:
        """Number of sleeps currently blocked."""
        return len(self._waiters)

    async def sleep(self, seconds: float) -> None:
        self.requested.append(seconds)
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        self._changed.set()
        try:
            await future
        finally:
            # a cancelled sleeper must not count as blocked
            if future in self._waiters:
                self._waiters.remove(future)

    def release(self, count: int = 1) -> int:
        """Complete the oldest `count` blocked sleeps. Returns how many."""
        released = 0
        while self._waiters and released < count:
            future = self._waiters.popleft()
            if not future.done():
                future.set_result(None)
            released += 1
        return released

    def release_all(self) -> int:
        """Complete every blocked sleep."""
        return self.release(len(self._waiters))

    async def wait_for_sleepers(self, count: int = 1) -> None:
        """Wait until at least `count` sleeps are blocked."""
        while len(self._waiters) < count:
            self._changed.clear()
            await self._changed.wait()

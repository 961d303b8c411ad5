"""Debounced autosave primitives used by the wizard controller.

`Debouncer` keeps one trailing-edge timer per key: scheduling again
before the delay elapses replaces the pending action, so only the last
payload is saved. `SaveIndicator` tracks what the worker sees next to
the form (idle, saving, saved).
"""

import asyncio
import enum
import logging
from typing import Awaitable, Callable, Hashable

logger = logging.getLogger(__name__)

SaveAction = Callable[[], Awaitable[None]]


class Debouncer:
    def __init__(self, delay: float):
        self.delay = delay
        self._timers: dict[Hashable, tuple[asyncio.Task, SaveAction]] = {}
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> list[Hashable]:
        return list(self._timers)

    def schedule(self, key: Hashable, action: SaveAction) -> None:
        """(Re)start the timer for `key`; a previously scheduled action is dropped."""
        self.cancel(key)
        task = asyncio.create_task(self._fire_after_delay(key, action))
        self._timers[key] = (task, action)

    def cancel(self, key: Hashable) -> bool:
        entry = self._timers.pop(key, None)
        if entry is None:
            return False
        entry[0].cancel()
        return True

    async def _fire_after_delay(self, key: Hashable, action: SaveAction) -> None:
        await asyncio.sleep(self.delay)
        # No await between the sleep and here, so the entry is still ours
        self._timers.pop(key, None)
        task = asyncio.current_task()
        self._running.add(task)
        try:
            await action()
        finally:
            self._running.discard(task)

    async def flush(self) -> None:
        """Run every pending action now and wait for in-flight ones."""
        timers = list(self._timers.values())
        self._timers.clear()
        for task, _ in timers:
            task.cancel()
        if timers:
            logger.debug(f"Flushing {len(timers)} pending autosave(s)")
            for _, action in timers:
                await action()
        running = [t for t in self._running if t is not asyncio.current_task()]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending timers without running them."""
        for key in list(self._timers):
            self.cancel(key)


class SaveStatus(str, enum.Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"


class SaveIndicator:
    """idle -> saving -> saved, back to idle after `clear_after` seconds."""

    def __init__(self, clear_after: float):
        self.clear_after = clear_after
        self.status = SaveStatus.IDLE
        self._in_flight = 0
        # Set by saved(); shown once nothing is in flight
        self._succeeded = False
        self._clear_task: asyncio.Task | None = None

    def _cancel_clear(self) -> None:
        if self._clear_task is not None:
            self._clear_task.cancel()
            self._clear_task = None

    def saving(self) -> None:
        self._cancel_clear()
        self._in_flight += 1
        self.status = SaveStatus.SAVING

    def saved(self) -> None:
        self._in_flight = max(self._in_flight - 1, 0)
        self._succeeded = True
        self._settle()

    def settled(self) -> None:
        """A save finished without a result to show (failed or superseded)."""
        self._in_flight = max(self._in_flight - 1, 0)
        self._settle()

    def _settle(self) -> None:
        if self._in_flight:
            return
        if self._succeeded:
            self._succeeded = False
            self.status = SaveStatus.SAVED
            self._clear_task = asyncio.create_task(self._clear_later())
        elif self.status is SaveStatus.SAVING:
            self.status = SaveStatus.IDLE

    async def _clear_later(self) -> None:
        await asyncio.sleep(self.clear_after)
        if self.status is SaveStatus.SAVED:
            self.status = SaveStatus.IDLE
        self._clear_task = None

    def close(self) -> None:
        self._cancel_clear()

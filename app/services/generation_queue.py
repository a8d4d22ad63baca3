"""Process-wide FIFO for heavyweight website generation.

At most one item executes at a time; light requests bypass the queue
entirely.  Admission control (one queued-or-active item per user) is the
caller's job via :meth:`GenerationQueue.has_user_in_queue`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from pydantic import BaseModel, ConfigDict

from app.errors import QueueItemError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueItem:
    user_id: str
    username: str
    execute: Callable[[], Awaitable[None]]


class QueueEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int
    username: str


class QueueStatus(BaseModel):
    """Snapshot for display: the running user plus 1-based pending positions."""

    model_config = ConfigDict(frozen=True)

    active: str | None = None
    queue: list[QueueEntry] = []


class GenerationQueue:
    """Single-consumer FIFO of generation jobs."""

    def __init__(self) -> None:
        self._items: deque[QueueItem] = deque()
        self._processing = False
        self._active: QueueItem | None = None
        self._task: asyncio.Task | None = None

    # ── enqueue / drain loop ──────────────────────────────────

    async def enqueue(self, item: QueueItem) -> int:
        """Append *item* and make sure the loop is running.

        Returns the item's 1-based position among pending items.
        """
        self._items.append(item)
        position = len(self._items)
        logger.info(
            "Enqueued generation for %s (%s), position %d",
            item.username, item.user_id, position,
        )
        self._kick()
        return position

    def _kick(self) -> None:
        if self._processing:
            return
        self._processing = True
        self._task = asyncio.create_task(self._process_loop())

    async def _process_loop(self) -> None:
        try:
            while self._items:
                item = self._items.popleft()
                self._active = item
                logger.info("Starting queued generation for %s (%s)", item.username, item.user_id)
                start = time.monotonic()
                try:
                    await item.execute()
                except Exception as exc:
                    duration_ms = int((time.monotonic() - start) * 1000)
                    err = QueueItemError(item.user_id, item.username, duration_ms, exc)
                    logger.error("%s", err, exc_info=exc)
                else:
                    duration_ms = int((time.monotonic() - start) * 1000)
                    logger.info("Queued generation for %s completed in %dms", item.username, duration_ms)
                finally:
                    self._active = None
        finally:
            self._processing = False
            # Items may have arrived between the last check and here
            if self._items:
                self._kick()

    # ── queries ───────────────────────────────────────────────

    def has_user_in_queue(self, user_id: str) -> bool:
        """True if *user_id* has a pending or currently running item."""
        if self._active is not None and self._active.user_id == user_id:
            return True
        return any(item.user_id == user_id for item in self._items)

    def position_of(self, user_id: str) -> int | None:
        """1-based pending position, 0 if running, ``None`` if absent."""
        if self._active is not None and self._active.user_id == user_id:
            return 0
        for index, item in enumerate(self._items):
            if item.user_id == user_id:
                return index + 1
        return None

    def get_status(self) -> QueueStatus:
        return QueueStatus(
            active=self._active.username if self._active else None,
            queue=[
                QueueEntry(position=i + 1, username=item.username)
                for i, item in enumerate(self._items)
            ],
        )

    def __len__(self) -> int:
        return len(self._items)

    @property
    def processing(self) -> bool:
        return self._processing

    # ── lifecycle ─────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait until every pending item has run (call from lifespan shutdown)."""
        while self._task is not None and not self._task.done():
            await self._task

    async def reset(self) -> None:
        """Cancel the loop and forget all items.  For teardown and tests."""
        self._items.clear()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._items.clear()
        self._active = None
        self._processing = False


generation_queue = GenerationQueue()

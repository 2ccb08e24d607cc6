"""Bounded, UID-laned async event queue.

Watchers for different kinds publish concurrently. Each event is routed to
one of N lanes by a stable hash of the resource UID, and every lane has
exactly one worker, so events for the same object are handled one at a
time and in arrival order while unrelated objects proceed in parallel.
"""

from __future__ import annotations

import asyncio
import zlib
from collections.abc import Awaitable, Callable

import structlog

from solskin.models.resources import ChangeEvent
from solskin.observability.metrics import SolskinMetrics

_logger = structlog.get_logger(component="event_queue")

_DEFAULT_LANES: int = 4
_DEFAULT_LANE_SIZE: int = 1000


class QueueNotStartedError(Exception):
    """Raised when events are submitted before :meth:`EventQueue.start`."""


class EventQueue:
    """Single-writer-per-UID worker pool over bounded asyncio queues.

    ``submit`` waits when the target lane is full, pushing back on the
    watcher that produced the event.
    """

    def __init__(
        self,
        handler: Callable[[ChangeEvent], Awaitable[object]],
        lanes: int = _DEFAULT_LANES,
        lane_size: int = _DEFAULT_LANE_SIZE,
        metrics: SolskinMetrics | None = None,
    ) -> None:
        if lanes < 1:
            raise ValueError(f"lanes must be >= 1, got {lanes}")
        self._handler = handler
        self._lane_count = lanes
        self._lane_size = lane_size
        self._metrics = metrics

        # Initialized in start() so the queues bind to the running loop
        self._lanes: list[asyncio.Queue[ChangeEvent | None]] = []
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def depth(self) -> int:
        return sum(lane.qsize() for lane in self._lanes)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._lanes = [asyncio.Queue(maxsize=self._lane_size) for _ in range(self._lane_count)]
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"event_queue_lane_{i}") for i in range(self._lane_count)
        ]
        self._running = True
        _logger.info("event_queue_started", lanes=self._lane_count, lane_size=self._lane_size)

    async def stop(self) -> None:
        """Drain and stop all lanes. Safe to call before start()."""
        if not self._running:
            return
        self._running = False
        for lane in self._lanes:
            await lane.put(None)
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        _logger.info("event_queue_stopped")

    async def submit(self, event: ChangeEvent) -> None:
        if not self._running:
            raise QueueNotStartedError("event queue is not running")
        lane = self._lanes[self.lane_for(event)]
        await lane.put(event)
        self._update_depth()

    async def join(self) -> None:
        """Wait until every submitted event has been handled."""
        for lane in self._lanes:
            await lane.join()

    def lane_for(self, event: ChangeEvent) -> int:
        resource = event.resource
        key = resource.uid or f"{resource.kind.value}/{resource.namespace}/{resource.name}"
        return zlib.crc32(key.encode()) % self._lane_count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _worker(self, lane_id: int) -> None:
        lane = self._lanes[lane_id]
        _logger.debug("lane_worker_started", lane=lane_id)
        while True:
            event = await lane.get()
            if event is None:
                lane.task_done()
                break
            try:
                await self._handler(event)
            except Exception as exc:
                _logger.error(
                    "event_handler_error",
                    lane=lane_id,
                    kind=event.kind.value,
                    uid=event.resource.uid,
                    error=str(exc),
                    exc_info=True,
                )
            finally:
                lane.task_done()
                self._update_depth()
        _logger.debug("lane_worker_stopped", lane=lane_id)

    def _update_depth(self) -> None:
        if self._metrics is not None:
            self._metrics.event_queue_depth.set(self.depth)

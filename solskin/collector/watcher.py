"""Resumable watch loop shared by the per-kind workload watchers.

A watcher keeps one kubernetes_asyncio watch stream open and resumes it
from the last seen resourceVersion. Failures are retried with exponential
back-off; a relist (full list, every object delivered as ``SYNC``) recovers
from an expired resourceVersion, from repeated failures and from bursts of
throttling or server errors, and reports objects that vanished meanwhile as
deleted. A separate resync loop redelivers the full listing on a fixed
period without moving the resume point.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from solskin.observability.logging import get_logger
from solskin.observability.metrics import SolskinMetrics

# Synthetic event type for objects redelivered by a relist or resync
SYNC_EVENT: str = "SYNC"

# Throttling and server-side errors that count towards a burst
_BURST_STATUSES: frozenset[int] = frozenset({429, 500, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    """Reconnect and recovery tuning for a :class:`BaseWatcher`."""

    backoff_min_s: float = 1.0
    backoff_max_s: float = 60.0
    backoff_factor: float = 2.0
    # Failed or empty streams in a row before a relist replaces the back-off
    failure_limit: int = 3
    relist_interval_s: float = 300.0
    relist_budget_s: float = 10.0
    burst_window_s: float = 60.0
    # A relist is due once more burst errors than this fall inside the window
    burst_limit: int = 1


class BaseWatcher(ABC):
    """Async base class for the per-kind workload watchers.

    Subclasses implement :meth:`_list_func` (which API function to call)
    and :meth:`_handle_event` (what to do with each raw object).

    Lifecycle::

        watcher = MyWatcher(apps_v1, name="deployment", metrics=metrics)
        await watcher.start()
        # ... runs until stop() is called
        await watcher.stop()
    """

    def __init__(
        self,
        api: Any,
        name: str,
        metrics: SolskinMetrics,
        resync_s: float = 300.0,
        policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api = api
        self._name = name
        self._metrics = metrics
        self._resync_s = resync_s
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._log = get_logger("watcher").bind(watcher=name)

        self._rv: str = ""
        self._running: bool = False
        self._tasks: list[asyncio.Task[None]] = []

        self._failures: int = 0
        self._delay_s: float = self._policy.backoff_min_s
        self._last_relist: float | None = None
        self._burst: deque[float] = deque()
        # uid -> name/namespace/uid of every object believed to exist
        self._known: dict[str, dict[str, Any]] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def resource_version(self) -> str:
        """The version the next watch resumes from; empty means "from now"."""
        return self._rv

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._tasks = [asyncio.create_task(self._watch_loop(), name=f"watch-{self._name}")]
        if self._resync_s > 0:
            self._tasks.append(asyncio.create_task(self._resync_loop(), name=f"resync-{self._name}"))
        self._log.info("watcher_started", resync_s=self._resync_s)

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self._log.info("watcher_stopped")

    @abstractmethod
    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        """Return the cluster-wide list function to watch and relist with."""

    @abstractmethod
    async def _handle_event(self, event_type: str, raw: dict[str, Any]) -> None:
        """Process one object.

        Args:
            event_type: "ADDED", "MODIFIED", "DELETED" or :data:`SYNC_EVENT`.
            raw: The object as a camelCase dict.
        """

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _watch_loop(self) -> None:
        while self._running:
            try:
                await self._stream_once()
            except asyncio.CancelledError:
                return
            except ApiException as exc:
                await self._on_api_error(exc)
            except Exception as exc:
                if not self._running:
                    return
                self._log.error("watch_crashed", error=str(exc), failures=self._failures + 1, exc_info=True)
                self._metrics.watcher_reconnects_total.labels(self._name, "unexpected").inc()
                await self._recover("unexpected")

    async def _stream_once(self) -> None:
        """Consume one watch stream; a clean close by the server counts as a failure."""
        params: dict[str, Any] = {"allow_watch_bookmarks": True}
        if self._rv:
            params["resource_version"] = self._rv

        stream = watch.Watch()
        try:
            async for event in stream.stream(self._list_func(), **params):
                if not self._running:
                    return
                await self._dispatch(event)
        finally:
            await stream.close()

        self._log.debug("watch_stream_closed", failures=self._failures + 1)
        await self._recover("stream_end")

    async def _dispatch(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("type", ""))
        raw = event.get("raw_object")
        if not isinstance(raw, dict):
            raw = {}

        rv = _resource_version_of(raw)
        if rv:
            self._rv = rv
        if event_type == "BOOKMARK":
            return

        self._failures = 0
        self._delay_s = self._policy.backoff_min_s
        self._remember(event_type, raw)
        self._metrics.watcher_events_total.labels(self._name, event_type).inc()
        await self._handle_event(event_type, raw)

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _on_api_error(self, exc: ApiException) -> None:
        status = exc.status
        self._metrics.watcher_errors_total.labels(self._name, str(status)).inc()
        self._metrics.watcher_reconnects_total.labels(self._name, str(status)).inc()

        if status == 410:
            # Resume point expired
            self._log.warning("watch_expired")
            self._rv = ""
            await self._relist("410", force=True)
            return

        self._log.warning("watch_api_error", status=status, reason=exc.reason, failures=self._failures + 1)
        burst = status in _BURST_STATUSES and self._count_burst_error() > self._policy.burst_limit
        await self._recover(str(status), relist_now=burst)

    async def _recover(self, cause: str, relist_now: bool = False) -> None:
        self._failures += 1
        if relist_now or self._failures >= self._policy.failure_limit:
            await self._relist(cause)
        else:
            await self._backoff(cause)

    def _count_burst_error(self) -> int:
        now = self._clock()
        self._burst.append(now)
        while now - self._burst[0] > self._policy.burst_window_s:
            self._burst.popleft()
        return len(self._burst)

    async def _backoff(self, cause: str) -> None:
        delay = self._delay_s
        self._log.debug("watcher_backoff", cause=cause, delay_s=delay)
        self._metrics.watcher_backoff_seconds.labels(self._name).observe(delay)
        await asyncio.sleep(delay)
        self._delay_s = min(delay * self._policy.backoff_factor, self._policy.backoff_max_s)

    # ------------------------------------------------------------------
    # Relist and resync
    # ------------------------------------------------------------------

    async def _relist(self, cause: str, force: bool = False) -> None:
        """Deliver a fresh listing and resume watching from its resourceVersion.

        At most one relist per ``relist_interval_s`` unless ``force`` is set;
        a throttled relist backs off instead.
        """
        now = self._clock()
        if not force and self._last_relist is not None:
            wait_s = self._policy.relist_interval_s - (now - self._last_relist)
            if wait_s > 0:
                self._log.debug("relist_throttled", cause=cause, next_allowed_in_s=wait_s)
                await self._backoff("relist_throttled")
                return

        self._last_relist = now
        self._metrics.watcher_relistings_total.labels(self._name).inc()
        self._log.info("relist_started", cause=cause)
        try:
            async with asyncio.timeout(self._policy.relist_budget_s):
                count = await self._deliver_snapshot()
        except TimeoutError:
            self._log.warning("relist_timed_out", cause=cause, budget_s=self._policy.relist_budget_s)
        except Exception as exc:
            self._log.error("relist_failed", cause=cause, error=str(exc), exc_info=True)
        else:
            self._log.info("relist_finished", cause=cause, objects=count)

        self._failures = 0
        self._delay_s = self._policy.backoff_min_s

    async def _resync_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._resync_s)
                count = await self._deliver_snapshot(update_rv=False)
                self._log.debug("resync_finished", objects=count)
            except asyncio.CancelledError:
                return
            except Exception as exc:
                self._log.error("resync_failed", error=str(exc), exc_info=True)

    async def _deliver_snapshot(self, update_rv: bool = True) -> int:
        """List every object and pass each one to :meth:`_handle_event` as SYNC.

        With ``update_rv`` set (a relist), known objects missing from the
        listing are then delivered as DELETED. A resync overlaps the live
        watch and never prunes.

        Returns the number of objects delivered.
        """
        listing = await self._list_func()(watch=False)
        to_dict = self._api.api_client.sanitize_for_serialization

        seen: set[str] = set()
        count = 0
        for item in getattr(listing, "items", None) or []:
            raw = item if isinstance(item, dict) else to_dict(item)
            if isinstance(raw, dict):
                seen.add(self._remember(SYNC_EVENT, raw))
                await self._handle_event(SYNC_EVENT, raw)
                count += 1

        if update_rv:
            rv = getattr(getattr(listing, "metadata", None), "resource_version", None)
            if rv:
                self._rv = str(rv)
            else:
                self._log.warning("listing_without_resource_version")
            await self._prune(seen)
        return count

    async def _prune(self, seen: set[str]) -> None:
        """Deliver DELETED for every known object a full listing no longer contains."""
        vanished = [uid for uid in self._known if uid not in seen]
        for uid in vanished:
            tombstone = self._known.pop(uid)
            self._metrics.watcher_events_total.labels(self._name, "DELETED").inc()
            await self._handle_event("DELETED", tombstone)
        if vanished:
            self._log.info("relist_pruned", objects=len(vanished))

    def _remember(self, event_type: str, raw: dict[str, Any]) -> str:
        metadata = raw.get("metadata")
        if not isinstance(metadata, dict):
            return ""
        uid = str(metadata.get("uid") or "")
        if not uid:
            return ""
        if event_type == "DELETED":
            self._known.pop(uid, None)
        else:
            self._known[uid] = {
                "metadata": {"name": metadata.get("name", ""), "namespace": metadata.get("namespace", ""), "uid": uid}
            }
        return uid


def _resource_version_of(raw: dict[str, Any]) -> str:
    metadata = raw.get("metadata")
    if isinstance(metadata, dict):
        return str(metadata.get("resourceVersion") or "")
    return ""

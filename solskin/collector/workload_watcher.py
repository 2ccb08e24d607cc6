"""Workload watcher.

One instance per :class:`ResourceKind`. Every ADDED/MODIFIED/SYNC object is
projected into a :class:`WatchedResource` and published as a CHANGE event;
DELETED objects are published as DELETE events.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

from solskin.collector.watcher import BaseWatcher
from solskin.models.resources import ChangeEvent, EventAction, ResourceKind, WatchedResource
from solskin.observability.metrics import SolskinMetrics

# ---------------------------------------------------------------------------
# Type aliases
# ---------------------------------------------------------------------------

EventSink = Callable[[ChangeEvent], Awaitable[None]]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Cluster-wide list function per kind, resolved against the matching API group
_LIST_FUNCS: dict[ResourceKind, str] = {
    ResourceKind.POD: "list_pod_for_all_namespaces",
    ResourceKind.DEPLOYMENT: "list_deployment_for_all_namespaces",
    ResourceKind.DAEMONSET: "list_daemon_set_for_all_namespaces",
    ResourceKind.STATEFULSET: "list_stateful_set_for_all_namespaces",
    ResourceKind.JOB: "list_job_for_all_namespaces",
}

_CHANGE_TYPES: frozenset[str] = frozenset({"ADDED", "MODIFIED", "SYNC"})


class WorkloadWatcher(BaseWatcher):
    """Watches one workload kind across all namespaces.

    Usage::

        apps_v1 = kubernetes_asyncio.client.AppsV1Api()
        watcher = WorkloadWatcher(apps_v1, ResourceKind.DEPLOYMENT, queue.submit, metrics)
        await watcher.start()
    """

    def __init__(
        self,
        api: Any,
        kind: ResourceKind,
        sink: EventSink,
        metrics: SolskinMetrics,
        resync_s: float = 300.0,
    ) -> None:
        """Initialise the watcher.

        Args:
            api: ``CoreV1Api`` for pods, ``AppsV1Api`` for deployments,
                daemonsets and statefulsets, ``BatchV1Api`` for jobs.
            kind: The kind to watch.
            sink: Coroutine receiving every produced event, usually
                ``EventQueue.submit``.
            metrics: Shared metrics instance.
            resync_s: Seconds between full redeliveries; 0 disables resync.
        """
        super().__init__(api, name=kind.value, metrics=metrics, resync_s=resync_s)
        self._kind = kind
        self._sink = sink

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    def _list_func(self) -> Callable[..., Coroutine[Any, Any, Any]]:
        return getattr(self._api, _LIST_FUNCS[self._kind])  # type: ignore[no-any-return]

    async def _handle_event(self, event_type: str, raw: dict[str, Any]) -> None:
        if event_type in _CHANGE_TYPES:
            action = EventAction.CHANGE
        elif event_type == "DELETED":
            action = EventAction.DELETE
        else:
            self._log.debug("watch_event_ignored", event_type=event_type)
            return

        resource = WatchedResource.from_raw(self._kind, raw)
        if not resource.uid:
            self._log.warning("watch_object_without_uid", name=resource.name)
            return
        await self._sink(ChangeEvent(kind=self._kind, action=action, resource=resource))

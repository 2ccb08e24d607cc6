"""Kubernetes watchers that feed the reconciliation queue."""

from solskin.collector.watcher import SYNC_EVENT, BaseWatcher, RetryPolicy
from solskin.collector.workload_watcher import WorkloadWatcher

__all__ = ["SYNC_EVENT", "BaseWatcher", "RetryPolicy", "WorkloadWatcher"]

"""Prometheus metrics for Solskin.

All metrics hang off a :class:`SolskinMetrics` instance with its own
``CollectorRegistry``. The app builds one at startup and hands it to every
component; tests build their own.
"""

from __future__ import annotations

import contextlib
from collections.abc import Mapping

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from solskin.models.compliance import CheckName
from solskin.models.resources import WatchedResource

_RESOURCE_LABELS = ["name", "namespace", "resource_type"]


class SolskinMetrics:
    """Owns every metric the controller exports."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Compliance gauges, one per check, valued 0/1
        self.compliance: dict[CheckName, Gauge] = {
            check: Gauge(
                f"solskin_{check.value}_resources",
                f"Whether the resource passes the {check.value} check (0 or 1)",
                _RESOURCE_LABELS,
                registry=self.registry,
            )
            for check in CheckName
        }

        # Suppression metrics
        self.suppressed_resources_total = Counter(
            "solskin_suppressed_resources",
            "Total suppression actions applied",
            _RESOURCE_LABELS,
            registry=self.registry,
        )
        self.restored_resources_total = Counter(
            "solskin_restored_resources",
            "Total restoration actions applied",
            _RESOURCE_LABELS,
            registry=self.registry,
        )
        self.action_failures_total = Counter(
            "solskin_action_failures",
            "Total suppression or restoration actions that failed",
            ["resource_type"],
            registry=self.registry,
        )

        # Reconciliation metrics
        self.events_total = Counter(
            "solskin_events",
            "Total change events reconciled",
            ["resource_type", "action"],
            registry=self.registry,
        )
        self.reconcile_outcomes_total = Counter(
            "solskin_reconcile_outcomes",
            "Total reconcile outcomes",
            ["outcome"],
            registry=self.registry,
        )
        self.state_cache_entries = Gauge(
            "solskin_state_cache_entries",
            "Number of live entries in the suppression state cache",
            registry=self.registry,
        )
        self.event_queue_depth = Gauge(
            "solskin_event_queue_depth",
            "Events waiting across all queue lanes",
            registry=self.registry,
        )

        # Watcher metrics
        self.watcher_events_total = Counter(
            "solskin_watcher_events",
            "Total watch events received by type",
            ["watcher", "event_type"],
            registry=self.registry,
        )
        self.watcher_reconnects_total = Counter(
            "solskin_watcher_reconnects",
            "Total watcher reconnection attempts",
            ["watcher", "reason"],
            registry=self.registry,
        )
        self.watcher_relistings_total = Counter(
            "solskin_watcher_relistings",
            "Total watcher relist operations",
            ["watcher"],
            registry=self.registry,
        )
        self.watcher_errors_total = Counter(
            "solskin_watcher_errors",
            "Total watcher errors",
            ["watcher", "status_code"],
            registry=self.registry,
        )
        self.watcher_backoff_seconds = Histogram(
            "solskin_watcher_backoff_seconds",
            "Watcher backoff duration in seconds",
            ["watcher"],
            buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
            registry=self.registry,
        )

    def record_compliance(self, resource: WatchedResource, checks: Mapping[CheckName, bool]) -> None:
        """Set the gauge of every evaluated check for ``resource``."""
        labels = _resource_labels(resource)
        for check, passed in checks.items():
            self.compliance[check].labels(*labels).set(1.0 if passed else 0.0)

    def forget_resource(self, resource: WatchedResource) -> None:
        """Drop every compliance series of a deleted resource."""
        labels = _resource_labels(resource)
        for gauge in self.compliance.values():
            with contextlib.suppress(KeyError):
                gauge.remove(*labels)

    def record_suppressed(self, resource: WatchedResource) -> None:
        self.suppressed_resources_total.labels(*_resource_labels(resource)).inc()

    def record_restored(self, resource: WatchedResource) -> None:
        self.restored_resources_total.labels(*_resource_labels(resource)).inc()


def _resource_labels(resource: WatchedResource) -> tuple[str, str, str]:
    return (resource.name, resource.namespace, resource.kind.value)

"""Unit tests for solskin.engine.reconciler.

Wires the real policy, cache and executor around an in-memory cluster client.
"""

from __future__ import annotations

import copy
import time
from collections.abc import Callable
from typing import Any

from prometheus_client import CollectorRegistry

from solskin.cluster.client import ClusterAPIError, ResourceNotFoundError
from solskin.engine.reconciler import ReconcileOutcome, Reconciler
from solskin.models.config import ActionMode
from solskin.models.resources import ChangeEvent, EventAction, ResourceKind, WatchedResource
from solskin.observability.metrics import SolskinMetrics
from solskin.policy.eligibility import EligibilityFilter
from solskin.policy.evaluator import ComplianceEvaluator
from solskin.suppressor.executor import ActionExecutor
from solskin.suppressor.state_cache import SuppressionStateCache


class _FakeClusterClient:
    def __init__(self) -> None:
        self.deleted_pods: list[tuple[str, str]] = []
        self.deployments: dict[tuple[str, str], dict[str, Any]] = {}
        self.replaced: list[dict[str, Any]] = []
        self.fail = False

    async def delete_pod(self, namespace: str, name: str) -> None:
        if self.fail:
            raise ClusterAPIError("boom", status=500)
        self.deleted_pods.append((namespace, name))

    async def delete_daemon_set(self, namespace: str, name: str) -> None:
        raise ResourceNotFoundError(f"{namespace}/{name}")

    async def read_deployment(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return copy.deepcopy(self.deployments[(namespace, name)])
        except KeyError:
            raise ResourceNotFoundError(f"{namespace}/{name}") from None

    async def replace_deployment(self, namespace: str, name: str, body: dict[str, Any]) -> None:
        self.replaced.append(body)
        self.deployments[(namespace, name)] = copy.deepcopy(body)


def _raw_workload(compliant: bool, name: str = "web-0", namespace: str = "shop") -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": "app",
        "livenessProbe": {"httpGet": {"path": "/", "port": 80}},
        "readinessProbe": {"httpGet": {"path": "/", "port": 80}},
        "resources": {
            "requests": {"cpu": "10m", "memory": "16Mi"},
            "limits": {"cpu": "100m", "memory": "64Mi"},
        },
    }
    if not compliant:
        del container["resources"]["limits"]
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "annotations": {"prometheus.io/scrape": "true"},
        },
        "spec": {"containers": [container]},
    }


def _pod_event(compliant: bool = False, namespace: str = "shop", action: EventAction = EventAction.CHANGE) -> ChangeEvent:
    resource = WatchedResource.from_raw(ResourceKind.POD, _raw_workload(compliant, namespace=namespace))
    return ChangeEvent(kind=ResourceKind.POD, action=action, resource=resource)


def _deployment_event(annotations: dict[str, str]) -> ChangeEvent:
    pod = _raw_workload(compliant=True, name="web")
    raw = {
        "metadata": {"name": "web", "namespace": "shop", "uid": "uid-web", "annotations": annotations},
        "spec": {"replicas": 0, "template": {"metadata": pod["metadata"], "spec": pod["spec"]}},
    }
    resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, raw)
    return ChangeEvent(kind=ResourceKind.DEPLOYMENT, action=EventAction.CHANGE, resource=resource)


def _raw_deployment(compliant: bool, replicas: int, annotations: dict[str, str] | None = None) -> dict[str, Any]:
    pod = _raw_workload(compliant, name="web")
    return {
        "metadata": {"name": "web", "namespace": "shop", "uid": "uid-web", "annotations": dict(annotations or {})},
        "spec": {"replicas": replicas, "template": {"metadata": pod["metadata"], "spec": pod["spec"]}},
    }


def _event_for(kind: ResourceKind, raw: dict[str, Any]) -> ChangeEvent:
    return ChangeEvent(kind=kind, action=EventAction.CHANGE, resource=WatchedResource.from_raw(kind, raw))


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _make_reconciler(
    mode: ActionMode = ActionMode.SUPPRESS,
    clock: Callable[[], float] = time.monotonic,
) -> tuple[Reconciler, _FakeClusterClient, SolskinMetrics]:
    client = _FakeClusterClient()
    metrics = SolskinMetrics(CollectorRegistry())
    reconciler = Reconciler(
        EligibilityFilter(),
        ComplianceEvaluator(),
        SuppressionStateCache(ttl_s=300, clock=clock),
        ActionExecutor(client),
        metrics,
        mode=mode,
    )
    return reconciler, client, metrics


def _gauge(metrics: SolskinMetrics, check: str, name: str = "web-0", kind: str = "pod") -> float | None:
    return metrics.registry.get_sample_value(
        f"solskin_{check}_resources",
        {"name": name, "namespace": "shop", "resource_type": kind},
    )


class TestSuppressMode:
    async def test_non_compliant_pod_deleted_exactly_once_per_window(self) -> None:
        reconciler, client, metrics = _make_reconciler()

        first = await reconciler.handle(_pod_event())
        second = await reconciler.handle(_pod_event())

        assert first is ReconcileOutcome.SUPPRESSED
        assert second is ReconcileOutcome.DEDUPLICATED
        assert client.deleted_pods == [("shop", "web-0")]
        assert (
            metrics.registry.get_sample_value(
                "solskin_suppressed_resources_total",
                {"name": "web-0", "namespace": "shop", "resource_type": "pod"},
            )
            == 1.0
        )

    async def test_compliance_gauges_reflect_evaluation(self) -> None:
        reconciler, _, metrics = _make_reconciler()

        await reconciler.handle(_pod_event())

        assert _gauge(metrics, "limits") == 0.0
        assert _gauge(metrics, "requests") == 1.0
        assert _gauge(metrics, "observability") == 1.0

    async def test_compliant_pod_needs_no_action(self) -> None:
        reconciler, client, _ = _make_reconciler()

        outcome = await reconciler.handle(_pod_event(compliant=True))

        assert outcome is ReconcileOutcome.NOOP
        assert client.deleted_pods == []

    async def test_action_failure_forgets_uid_so_redelivery_retries(self) -> None:
        reconciler, client, metrics = _make_reconciler()
        client.fail = True

        assert await reconciler.handle(_pod_event()) is ReconcileOutcome.FAILED
        assert reconciler.state_cache.get("uid-web-0") is None
        assert metrics.registry.get_sample_value("solskin_action_failures_total", {"resource_type": "pod"}) == 1.0

        client.fail = False
        assert await reconciler.handle(_pod_event()) is ReconcileOutcome.SUPPRESSED
        assert client.deleted_pods == [("shop", "web-0")]

    async def test_restores_scaled_down_deployment(self) -> None:
        reconciler, client, metrics = _make_reconciler()
        annotations = {"solskin.io/suppressor.replicas": "4"}
        client.deployments[("shop", "web")] = {
            "metadata": {"name": "web", "namespace": "shop", "annotations": dict(annotations)},
            "spec": {"replicas": 0},
        }

        outcome = await reconciler.handle(_deployment_event(annotations))

        assert outcome is ReconcileOutcome.RESTORED
        assert client.deployments[("shop", "web")]["spec"]["replicas"] == 4
        assert (
            metrics.registry.get_sample_value(
                "solskin_restored_resources_total",
                {"name": "web", "namespace": "shop", "resource_type": "deployment"},
            )
            == 1.0
        )

    async def test_statefulset_is_evaluated_only(self) -> None:
        reconciler, client, metrics = _make_reconciler()
        pod = _raw_workload(compliant=False, name="db")
        raw = {
            "metadata": {"name": "db", "namespace": "shop", "uid": "uid-db"},
            "spec": {"template": {"metadata": pod["metadata"], "spec": pod["spec"]}},
        }
        resource = WatchedResource.from_raw(ResourceKind.STATEFULSET, raw)

        outcome = await reconciler.on_change(resource)

        assert outcome is ReconcileOutcome.EVALUATED
        assert _gauge(metrics, "limits", name="db", kind="statefulset") == 0.0
        assert len(reconciler.state_cache) == 0


class TestOtherModes:
    async def test_log_mode_never_mutates(self) -> None:
        reconciler, client, _ = _make_reconciler(ActionMode.LOG)

        assert await reconciler.handle(_pod_event()) is ReconcileOutcome.LOGGED
        assert await reconciler.handle(_pod_event()) is ReconcileOutcome.DEDUPLICATED
        assert client.deleted_pods == []

    async def test_none_mode_only_records_metrics(self) -> None:
        reconciler, client, metrics = _make_reconciler(ActionMode.NONE)

        assert await reconciler.handle(_pod_event()) is ReconcileOutcome.EVALUATED
        assert client.deleted_pods == []
        assert len(reconciler.state_cache) == 0
        assert _gauge(metrics, "limits") == 0.0

    def test_mode_property(self) -> None:
        reconciler, _, _ = _make_reconciler(ActionMode.LOG)
        assert reconciler.mode is ActionMode.LOG


class TestIneligibleAndDelete:
    async def test_excluded_namespace_is_ignored(self) -> None:
        reconciler, client, metrics = _make_reconciler()

        outcome = await reconciler.handle(_pod_event(namespace="kube-system"))

        assert outcome is ReconcileOutcome.INELIGIBLE
        assert client.deleted_pods == []
        assert (
            metrics.registry.get_sample_value(
                "solskin_limits_resources",
                {"name": "web-0", "namespace": "kube-system", "resource_type": "pod"},
            )
            is None
        )

    async def test_delete_drops_cache_entry_and_gauges(self) -> None:
        reconciler, _, metrics = _make_reconciler(ActionMode.LOG)
        await reconciler.handle(_pod_event())
        assert reconciler.state_cache.get("uid-web-0") is True

        outcome = await reconciler.handle(_pod_event(action=EventAction.DELETE))

        assert outcome is ReconcileOutcome.DELETED
        assert reconciler.state_cache.get("uid-web-0") is None
        assert _gauge(metrics, "limits") is None

    async def test_outcomes_are_counted(self) -> None:
        reconciler, _, metrics = _make_reconciler(ActionMode.LOG)

        await reconciler.handle(_pod_event())
        await reconciler.handle(_pod_event())

        registry = metrics.registry
        assert registry.get_sample_value("solskin_reconcile_outcomes_total", {"outcome": "logged"}) == 1.0
        assert registry.get_sample_value("solskin_reconcile_outcomes_total", {"outcome": "deduplicated"}) == 1.0
        assert (
            registry.get_sample_value("solskin_events_total", {"resource_type": "pod", "action": "change"}) == 2.0
        )


_REPLICAS = "solskin.io/suppressor.replicas"


class TestPodLifecycle:
    async def test_losing_scrape_annotation_deletes_once_per_window(self) -> None:
        clock = _Clock()
        reconciler, client, _ = _make_reconciler(clock=clock)
        observable = _raw_workload(compliant=True)
        unobservable = copy.deepcopy(observable)
        unobservable["metadata"]["annotations"] = {}

        assert await reconciler.handle(_event_for(ResourceKind.POD, observable)) is ReconcileOutcome.NOOP
        assert client.deleted_pods == []

        assert await reconciler.handle(_event_for(ResourceKind.POD, unobservable)) is ReconcileOutcome.SUPPRESSED
        assert await reconciler.handle(_event_for(ResourceKind.POD, unobservable)) is ReconcileOutcome.DEDUPLICATED
        assert client.deleted_pods == [("shop", "web-0")]

        clock.now += 301
        assert await reconciler.handle(_event_for(ResourceKind.POD, unobservable)) is ReconcileOutcome.SUPPRESSED
        assert client.deleted_pods == [("shop", "web-0"), ("shop", "web-0")]

    async def test_redelivery_inside_window_slides_it(self) -> None:
        clock = _Clock()
        reconciler, client, _ = _make_reconciler(clock=clock)
        event = _pod_event()

        await reconciler.handle(event)
        clock.now += 200
        assert await reconciler.handle(event) is ReconcileOutcome.DEDUPLICATED
        clock.now += 200
        assert await reconciler.handle(event) is ReconcileOutcome.DEDUPLICATED
        assert client.deleted_pods == [("shop", "web-0")]


class TestDeploymentLifecycle:
    async def test_suppress_dedup_then_restore(self) -> None:
        reconciler, client, metrics = _make_reconciler()
        client.deployments[("shop", "web")] = _raw_deployment(compliant=False, replicas=5)

        first = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, _raw_deployment(False, 5)))
        live = client.deployments[("shop", "web")]
        assert first is ReconcileOutcome.SUPPRESSED
        assert live["spec"]["replicas"] == 0
        assert live["metadata"]["annotations"][_REPLICAS] == "5"

        # Our own write comes back as an update
        echo = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, copy.deepcopy(live)))
        assert echo is ReconcileOutcome.DEDUPLICATED
        assert len(client.replaced) == 1

        fixed = _raw_deployment(compliant=True, replicas=0, annotations={_REPLICAS: "5"})
        client.deployments[("shop", "web")] = copy.deepcopy(fixed)
        assert await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, fixed)) is ReconcileOutcome.RESTORED

        live = client.deployments[("shop", "web")]
        assert live["spec"]["replicas"] == 5
        assert live["metadata"]["annotations"][_REPLICAS] == "5"
        assert reconciler.state_cache.get("uid-web") is False

        again = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, copy.deepcopy(live)))
        assert again is ReconcileOutcome.DEDUPLICATED
        assert len(client.replaced) == 2
        assert (
            metrics.registry.get_sample_value(
                "solskin_restored_resources_total",
                {"name": "web", "namespace": "shop", "resource_type": "deployment"},
            )
            == 1.0
        )

    async def test_fix_racing_a_scale_down_is_restored_from_live_state(self) -> None:
        reconciler, client, _ = _make_reconciler()
        # The owner already fixed the template when the stale update is handled
        client.deployments[("shop", "web")] = _raw_deployment(compliant=True, replicas=3)

        stale = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, _raw_deployment(False, 3)))
        assert stale is ReconcileOutcome.SUPPRESSED
        assert client.deployments[("shop", "web")]["spec"]["replicas"] == 0

        # The owner's own update predates our annotation
        fixed = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, _raw_deployment(True, 3)))
        assert fixed is ReconcileOutcome.RESTORED

        echo = copy.deepcopy(client.deployments[("shop", "web")])
        assert await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, echo)) is ReconcileOutcome.DEDUPLICATED

        live = client.deployments[("shop", "web")]
        assert live["spec"]["replicas"] == 3
        assert live["metadata"]["annotations"][_REPLICAS] == "3"

    async def test_compliant_deployment_without_annotation_is_left_alone(self) -> None:
        reconciler, client, _ = _make_reconciler()
        client.deployments[("shop", "web")] = _raw_deployment(compliant=True, replicas=2)

        outcome = await reconciler.handle(_event_for(ResourceKind.DEPLOYMENT, _raw_deployment(True, 2)))

        assert outcome is ReconcileOutcome.NOOP
        assert client.replaced == []

"""Unit tests for solskin.models.resources."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from solskin.models.resources import (
    ChangeEvent,
    Container,
    EventAction,
    PodTemplateSpec,
    Probe,
    ResourceKind,
    WatchedResource,
)


def _make_container(**overrides: Any) -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": "app",
        "livenessProbe": {"httpGet": {"path": "/healthz", "port": 8080}, "periodSeconds": 10},
        "readinessProbe": {"tcpSocket": {"port": 8080}},
        "resources": {
            "requests": {"cpu": "100m", "memory": "128Mi"},
            "limits": {"cpu": "500m", "memory": "256Mi"},
        },
    }
    container.update(overrides)
    return container


def _make_deployment(**spec_overrides: Any) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "replicas": 3,
        "template": {
            "metadata": {"annotations": {"prometheus.io/scrape": "true"}},
            "spec": {"containers": [_make_container()]},
        },
    }
    spec.update(spec_overrides)
    return {
        "kind": "Deployment",
        "metadata": {
            "name": "web",
            "namespace": "shop",
            "uid": "uid-web",
            "resourceVersion": "77",
            "creationTimestamp": "2024-03-01T12:00:00Z",
            "annotations": {"owner": "team-a"},
        },
        "spec": spec,
    }


class TestResourceKind:
    def test_api_kind(self) -> None:
        assert ResourceKind.DAEMONSET.api_kind == "DaemonSet"
        assert ResourceKind.POD.api_kind == "Pod"

    @pytest.mark.parametrize("kind", ["Deployment", "deployment", "DEPLOYMENT"])
    def test_from_api_kind_is_case_insensitive(self, kind: str) -> None:
        assert ResourceKind.from_api_kind(kind) is ResourceKind.DEPLOYMENT

    def test_from_api_kind_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="unsupported resource kind"):
            ResourceKind.from_api_kind("CronJob")


class TestProbeAndContainer:
    def test_probe_collects_declared_handlers(self) -> None:
        probe = Probe.from_raw({"exec": {"command": ["true"]}, "httpGet": None, "periodSeconds": 5})
        assert probe is not None
        assert probe.handlers == frozenset({"exec", "periodSeconds"})

    def test_probe_from_non_dict_is_none(self) -> None:
        assert Probe.from_raw(None) is None
        assert Probe.from_raw("exec") is None

    def test_container_from_raw(self) -> None:
        container = Container.from_raw(_make_container())
        assert container.name == "app"
        assert container.liveness_probe is not None
        assert "httpGet" in container.liveness_probe.handlers
        assert dict(container.requests) == {"cpu": "100m", "memory": "128Mi"}
        assert dict(container.limits) == {"cpu": "500m", "memory": "256Mi"}

    def test_container_without_resources(self) -> None:
        container = Container.from_raw({"name": "bare"})
        assert container.liveness_probe is None
        assert container.readiness_probe is None
        assert dict(container.requests) == {}

    def test_container_from_garbage_is_empty(self) -> None:
        assert Container.from_raw(42) == Container()


class TestWatchedResourceFromRaw:
    def test_deployment_projection(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, _make_deployment())

        assert resource.uid == "uid-web"
        assert resource.name == "web"
        assert resource.namespace == "shop"
        assert resource.resource_version == "77"
        assert resource.replicas == 3
        assert resource.paused is False
        assert resource.creation_timestamp == datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
        assert dict(resource.annotations) == {"owner": "team-a"}
        assert dict(resource.template.annotations) == {"prometheus.io/scrape": "true"}
        assert len(resource.template.containers) == 1

    def test_deployment_replicas_default_to_one(self) -> None:
        raw = _make_deployment()
        del raw["spec"]["replicas"]
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, raw)
        assert resource.replicas == 1

    def test_paused_deployment(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, _make_deployment(paused=True))
        assert resource.paused is True

    def test_non_deployment_has_no_replicas(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.STATEFULSET, _make_deployment())
        assert resource.replicas is None

    def test_pod_uses_its_own_spec_and_annotations(self) -> None:
        raw = {
            "metadata": {
                "name": "web-0",
                "namespace": "shop",
                "uid": "uid-pod",
                "annotations": {"prometheus.io/scrape": "false"},
            },
            "spec": {"containers": [_make_container(), _make_container(name="sidecar")]},
        }
        resource = WatchedResource.from_raw(ResourceKind.POD, raw)

        assert [c.name for c in resource.template.containers] == ["app", "sidecar"]
        assert dict(resource.policy_annotations) == {"prometheus.io/scrape": "false"}

    def test_controller_policy_annotations_come_from_template(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, _make_deployment())
        assert dict(resource.policy_annotations) == {"prometheus.io/scrape": "true"}

    def test_empty_object_is_total(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.JOB, {})
        assert resource.uid == ""
        assert resource.creation_timestamp is None
        assert resource.template.containers == ()

    def test_malformed_timestamp_is_none(self) -> None:
        raw = _make_deployment()
        raw["metadata"]["creationTimestamp"] = "yesterday"
        assert WatchedResource.from_raw(ResourceKind.DEPLOYMENT, raw).creation_timestamp is None

    def test_none_annotation_values_become_empty_strings(self) -> None:
        raw = _make_deployment()
        raw["metadata"]["annotations"] = {"prometheus.io/scrape": None}
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, raw)
        assert dict(resource.annotations) == {"prometheus.io/scrape": ""}

    def test_label(self) -> None:
        resource = WatchedResource.from_raw(ResourceKind.DEPLOYMENT, _make_deployment())
        assert resource.label == "deployment:web.shop"


class TestChangeEvent:
    def test_change_event_fields(self) -> None:
        resource = WatchedResource(kind=ResourceKind.POD, uid="u", name="p", namespace="ns")
        event = ChangeEvent(kind=ResourceKind.POD, action=EventAction.DELETE, resource=resource)
        assert event.action is EventAction.DELETE
        assert event.resource.template == PodTemplateSpec()

"""Projected views of the workload resources the controller watches.

Only the handful of fields the policy engine reads are projected out of the
raw API objects; everything else is ignored. Instances are immutable
snapshots owned by the event source; mutations are always built against the
live object fetched at action time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class ResourceKind(StrEnum):
    """Workload kinds the controller watches.

    Values double as the ``resource_type`` metric label.
    """

    POD = "pod"
    DEPLOYMENT = "deployment"
    DAEMONSET = "daemonset"
    STATEFULSET = "statefulset"
    JOB = "job"

    @property
    def api_kind(self) -> str:
        """The Kubernetes ``kind`` string, e.g. ``DaemonSet``."""
        return _API_KINDS[self]

    @classmethod
    def from_api_kind(cls, kind: str) -> ResourceKind:
        """Resolve a Kubernetes ``kind`` (case-insensitive) into a ResourceKind.

        Raises:
            ValueError: for kinds the controller does not handle.
        """
        try:
            return cls(kind.lower())
        except ValueError:
            raise ValueError(f"unsupported resource kind: {kind!r}") from None


_API_KINDS: dict[ResourceKind, str] = {
    ResourceKind.POD: "Pod",
    ResourceKind.DEPLOYMENT: "Deployment",
    ResourceKind.DAEMONSET: "DaemonSet",
    ResourceKind.STATEFULSET: "StatefulSet",
    ResourceKind.JOB: "Job",
}

# Probe handler keys as they appear in the API schema
PROBE_HANDLERS: frozenset[str] = frozenset({"exec", "httpGet", "tcpSocket"})


@dataclass(frozen=True)
class Probe:
    """A container probe, reduced to the set of handlers it declares."""

    handlers: frozenset[str] = frozenset()

    @classmethod
    def from_raw(cls, raw: object) -> Probe | None:
        if not isinstance(raw, dict):
            return None
        return cls(handlers=frozenset(key for key, value in raw.items() if value is not None))


@dataclass(frozen=True)
class Container:
    """A container descriptor with its probes and resource quantities."""

    name: str = ""
    liveness_probe: Probe | None = None
    readiness_probe: Probe | None = None
    requests: Mapping[str, str] = field(default_factory=dict)
    limits: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: object) -> Container:
        if not isinstance(raw, dict):
            return cls()
        resources = _as_dict(raw.get("resources"))
        return cls(
            name=str(raw.get("name") or ""),
            liveness_probe=Probe.from_raw(raw.get("livenessProbe")),
            readiness_probe=Probe.from_raw(raw.get("readinessProbe")),
            requests=_quantities(resources.get("requests")),
            limits=_quantities(resources.get("limits")),
        )


@dataclass(frozen=True)
class PodTemplateSpec:
    """Pod template: the template's own annotations plus its ordered containers."""

    annotations: Mapping[str, str] = field(default_factory=dict)
    containers: tuple[Container, ...] = ()

    @classmethod
    def from_raw(cls, metadata: object, spec: object) -> PodTemplateSpec:
        raw_containers = _as_dict(spec).get("containers")
        containers = raw_containers if isinstance(raw_containers, list) else []
        return cls(
            annotations=_string_map(_as_dict(metadata).get("annotations")),
            containers=tuple(Container.from_raw(c) for c in containers),
        )


@dataclass(frozen=True)
class WatchedResource:
    """Snapshot of a watched workload resource.

    ``template`` is the pod template for controller kinds and the pod itself
    for ``ResourceKind.POD``. ``replicas`` and ``paused`` are only meaningful
    for deployments.
    """

    kind: ResourceKind
    uid: str
    name: str
    namespace: str
    annotations: Mapping[str, str] = field(default_factory=dict)
    creation_timestamp: datetime | None = None
    template: PodTemplateSpec = field(default_factory=PodTemplateSpec)
    replicas: int | None = None
    paused: bool = False
    resource_version: str = ""

    @property
    def label(self) -> str:
        """Human label used in logs: ``<kind>:<name>.<namespace>``."""
        return f"{self.kind.value}:{self.name}.{self.namespace}"

    @property
    def policy_annotations(self) -> Mapping[str, str]:
        """Annotations the observability check inspects.

        Scrapers discover pods, so controllers are judged by the annotations
        they stamp onto their pod template.
        """
        if self.kind is ResourceKind.POD:
            return self.annotations
        return self.template.annotations

    @classmethod
    def from_raw(cls, kind: ResourceKind, raw: Mapping[str, Any]) -> WatchedResource:
        """Project a raw API object (camelCase dict) into a WatchedResource.

        Total over its input: missing or malformed fields become empty values.
        """
        metadata = _as_dict(raw.get("metadata"))
        spec = _as_dict(raw.get("spec"))

        if kind is ResourceKind.POD:
            template = PodTemplateSpec.from_raw(metadata, spec)
        else:
            raw_template = _as_dict(spec.get("template"))
            template = PodTemplateSpec.from_raw(raw_template.get("metadata"), raw_template.get("spec"))

        replicas: int | None = None
        if kind is ResourceKind.DEPLOYMENT:
            raw_replicas = spec.get("replicas")
            # The API defaults an omitted replica count to one
            replicas = raw_replicas if isinstance(raw_replicas, int) else 1

        return cls(
            kind=kind,
            uid=str(metadata.get("uid") or ""),
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            annotations=_string_map(metadata.get("annotations")),
            creation_timestamp=_parse_timestamp(metadata.get("creationTimestamp")),
            template=template,
            replicas=replicas,
            paused=bool(spec.get("paused", False)),
            resource_version=str(metadata.get("resourceVersion") or ""),
        )


class EventAction(StrEnum):
    """What the event source observed."""

    CHANGE = "change"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A single message on the reconciliation queue."""

    kind: ResourceKind
    action: EventAction
    resource: WatchedResource


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_dict(value: object) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _string_map(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _quantities(value: object) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items() if v is not None}


def _parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

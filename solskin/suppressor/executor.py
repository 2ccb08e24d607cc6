"""Translate suppression decisions into idempotent cluster mutations.

| Kind        | Suppress                                   | Restore                                 |
|-------------|--------------------------------------------|-----------------------------------------|
| Pod         | delete                                     | none (its owner recreates it)           |
| Deployment  | remember replicas in an annotation, scale  | scale back to the remembered count      |
|             | to 0 (or pause, with the pause strategy)   | (or unpause), live positive count wins  |
| DaemonSet   | delete                                     | none                                    |
| StatefulSet | evaluate only                              | none                                    |
| Job         | evaluate only                              | none                                    |

Deployment mutations are read-modify-write against the object fetched at
action time. Deleting an object that is already gone counts as done.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

from solskin.cluster.client import ClusterAPIError, ResourceNotFoundError
from solskin.models.config import DeploymentStrategy
from solskin.models.resources import ResourceKind, WatchedResource
from solskin.observability.logging import get_logger

_logger = get_logger("suppressor.executor")

SUPPRESSIBLE_KINDS: frozenset[ResourceKind] = frozenset(
    {ResourceKind.POD, ResourceKind.DEPLOYMENT, ResourceKind.DAEMONSET}
)


class ClusterClient(Protocol):
    """Minimal mutation surface the executor needs from the cluster."""

    async def delete_pod(self, namespace: str, name: str) -> None: ...

    async def read_deployment(self, namespace: str, name: str) -> dict[str, Any]: ...

    async def replace_deployment(self, namespace: str, name: str, body: dict[str, Any]) -> None: ...

    async def delete_daemon_set(self, namespace: str, name: str) -> None: ...


class MutationVerb(StrEnum):
    DELETE = "delete"
    REPLACE = "replace"


@dataclass(frozen=True)
class MutationRequest:
    """A concrete change to send to the API server."""

    verb: MutationVerb
    kind: ResourceKind
    namespace: str
    name: str
    body: dict[str, Any] | None = None
    reason: str = ""


class ActionError(Exception):
    """Raised when a mutation could not be applied."""

    def __init__(self, message: str, request: MutationRequest) -> None:
        super().__init__(message)
        self.request = request


class ActionExecutor:
    """Applies and restores suppression for individual resources.

    Every method returns the :class:`MutationRequest` that was sent, or
    ``None`` when nothing needed to change.
    """

    def __init__(
        self,
        client: ClusterClient,
        annotation_prefix: str = "solskin.io/suppressor",
        strategy: DeploymentStrategy = DeploymentStrategy.SCALE,
    ) -> None:
        self._client = client
        self._strategy = strategy
        self.replicas_annotation = f"{annotation_prefix}.replicas"
        self.paused_annotation = f"{annotation_prefix}.paused"

    async def apply(self, resource: WatchedResource, suppress: bool) -> MutationRequest | None:
        if suppress:
            return await self.suppress(resource)
        return await self.restore(resource)

    async def suppress(self, resource: WatchedResource) -> MutationRequest | None:
        match resource.kind:
            case ResourceKind.POD | ResourceKind.DAEMONSET:
                request = MutationRequest(
                    verb=MutationVerb.DELETE,
                    kind=resource.kind,
                    namespace=resource.namespace,
                    name=resource.name,
                    reason="suppress",
                )
                return await self._delete(request)
            case ResourceKind.DEPLOYMENT:
                live = await self._read_deployment(resource)
                if live is None:
                    return None
                if self._strategy is DeploymentStrategy.PAUSE:
                    body = plan_pause(live, self.paused_annotation)
                else:
                    body = plan_scale_down(live, self.replicas_annotation)
                return await self._replace(resource, body, "suppress")
            case _:
                return None

    async def restore(self, resource: WatchedResource) -> MutationRequest | None:
        if resource.kind is not ResourceKind.DEPLOYMENT:
            return None
        # Restore annotations come from the live object, never the snapshot
        live = await self._read_deployment(resource)
        if live is None:
            return None
        body = plan_restore(live, self.replicas_annotation, self.paused_annotation)
        return await self._replace(resource, body, "restore")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _delete(self, request: MutationRequest) -> MutationRequest | None:
        try:
            if request.kind is ResourceKind.POD:
                await self._client.delete_pod(request.namespace, request.name)
            else:
                await self._client.delete_daemon_set(request.namespace, request.name)
        except ResourceNotFoundError:
            _logger.debug(
                "delete_target_already_gone",
                kind=request.kind.value,
                namespace=request.namespace,
                name=request.name,
            )
            return None
        except ClusterAPIError as exc:
            raise ActionError(str(exc), request) from exc
        return request

    async def _read_deployment(self, resource: WatchedResource) -> dict[str, Any] | None:
        try:
            return await self._client.read_deployment(resource.namespace, resource.name)
        except ResourceNotFoundError:
            _logger.debug("deployment_already_gone", namespace=resource.namespace, name=resource.name)
            return None
        except ClusterAPIError as exc:
            request = MutationRequest(
                verb=MutationVerb.REPLACE,
                kind=resource.kind,
                namespace=resource.namespace,
                name=resource.name,
            )
            raise ActionError(str(exc), request) from exc

    async def _replace(
        self,
        resource: WatchedResource,
        body: dict[str, Any] | None,
        reason: str,
    ) -> MutationRequest | None:
        if body is None:
            return None
        request = MutationRequest(
            verb=MutationVerb.REPLACE,
            kind=resource.kind,
            namespace=resource.namespace,
            name=resource.name,
            body=body,
            reason=reason,
        )
        try:
            await self._client.replace_deployment(resource.namespace, resource.name, body)
        except ResourceNotFoundError:
            return None
        except ClusterAPIError as exc:
            raise ActionError(str(exc), request) from exc
        return request


# ---------------------------------------------------------------------------
# Deployment planners: live object in, new desired object (or None) out
# ---------------------------------------------------------------------------


def plan_scale_down(live: dict[str, Any], replicas_annotation: str) -> dict[str, Any] | None:
    """Record the current replica count and zero it.

    Returns None for a deployment that is already at zero, which keeps the
    previously recorded count intact.
    """
    replicas = _live_replicas(live)
    if replicas <= 0:
        return None
    body = copy.deepcopy(live)
    _annotations(body)[replicas_annotation] = str(replicas)
    _spec(body)["replicas"] = 0
    return body


def plan_pause(live: dict[str, Any], paused_annotation: str) -> dict[str, Any] | None:
    """Pause a running rollout; an already paused deployment is left alone."""
    if _spec(live).get("paused") is True:
        return None
    body = copy.deepcopy(live)
    _annotations(body)[paused_annotation] = "true"
    _spec(body)["paused"] = True
    return body


def plan_restore(live: dict[str, Any], replicas_annotation: str, paused_annotation: str) -> dict[str, Any] | None:
    """Undo scale-down and pause, whichever this controller applied.

    The remembered replica count is only restored while the live count is
    zero; a positive live count was set by someone else and wins. The
    replicas annotation stays in place.
    """
    body = copy.deepcopy(live)
    changed = False

    annotations = _annotations(body)
    remembered = _parse_replicas(annotations.get(replicas_annotation))
    if remembered is not None and remembered > 0 and _live_replicas(live) <= 0:
        _spec(body)["replicas"] = remembered
        changed = True

    if annotations.get(paused_annotation) == "true" and _spec(body).get("paused") is True:
        _spec(body)["paused"] = False
        del annotations[paused_annotation]
        changed = True

    return body if changed else None


def _spec(obj: dict[str, Any]) -> dict[str, Any]:
    spec = obj.get("spec")
    if not isinstance(spec, dict):
        spec = {}
        obj["spec"] = spec
    return spec


def _annotations(obj: dict[str, Any]) -> dict[str, Any]:
    metadata = obj.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
        obj["metadata"] = metadata
    annotations = metadata.get("annotations")
    if not isinstance(annotations, dict):
        annotations = {}
        metadata["annotations"] = annotations
    return annotations


def _live_replicas(live: dict[str, Any]) -> int:
    spec = live.get("spec")
    replicas = spec.get("replicas") if isinstance(spec, dict) else None
    # Omitted replicas default to one on the API server
    return replicas if isinstance(replicas, int) else 1


def _parse_replicas(value: object) -> int | None:
    if not isinstance(value, str):
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None

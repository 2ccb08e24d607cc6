"""Thin async wrapper over the kubernetes_asyncio calls the suppressor needs.

Objects are exchanged as raw camelCase dicts so the executor can do a
read-modify-write that carries the live ``resourceVersion`` back to the
API server (a conflicting concurrent edit then fails with 409 instead of
being clobbered).
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator
from typing import Any

from kubernetes_asyncio.client.exceptions import ApiException

from solskin.observability.logging import get_logger

_logger = get_logger("cluster.client")


class ClusterAPIError(Exception):
    """Raised when the API server rejects or fails a call."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ResourceNotFoundError(ClusterAPIError):
    """Raised when the target object no longer exists (HTTP 404)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status=404)


@contextlib.asynccontextmanager
async def _translate_errors(verb: str, kind: str, namespace: str, name: str) -> AsyncIterator[None]:
    try:
        yield
    except ApiException as exc:
        target = f"{kind} {namespace}/{name}"
        if exc.status == 404:
            raise ResourceNotFoundError(f"{verb} {target}: not found") from exc
        raise ClusterAPIError(f"{verb} {target}: {exc.status} {exc.reason}", status=exc.status) from exc


class KubernetesClusterClient:
    """Mutation surface backed by ``CoreV1Api`` and ``AppsV1Api``.

    Usage::

        client = KubernetesClusterClient(k8s_client.CoreV1Api(), k8s_client.AppsV1Api())
        await client.delete_pod("default", "web-0")
    """

    def __init__(self, core_v1: Any, apps_v1: Any) -> None:
        self._core_v1 = core_v1
        self._apps_v1 = apps_v1

    async def delete_pod(self, namespace: str, name: str) -> None:
        async with _translate_errors("delete", "Pod", namespace, name):
            await self._core_v1.delete_namespaced_pod(name, namespace)
        _logger.debug("pod_deleted", namespace=namespace, name=name)

    async def read_deployment(self, namespace: str, name: str) -> dict[str, Any]:
        async with _translate_errors("read", "Deployment", namespace, name):
            obj = await self._apps_v1.read_namespaced_deployment(name, namespace)
        raw = self._apps_v1.api_client.sanitize_for_serialization(obj)
        return raw if isinstance(raw, dict) else {}

    async def replace_deployment(self, namespace: str, name: str, body: dict[str, Any]) -> None:
        async with _translate_errors("replace", "Deployment", namespace, name):
            await self._apps_v1.replace_namespaced_deployment(name, namespace, body)
        _logger.debug("deployment_replaced", namespace=namespace, name=name)

    async def delete_daemon_set(self, namespace: str, name: str) -> None:
        async with _translate_errors("delete", "DaemonSet", namespace, name):
            await self._apps_v1.delete_namespaced_daemon_set(name, namespace)
        _logger.debug("daemon_set_deleted", namespace=namespace, name=name)

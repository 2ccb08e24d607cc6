"""Kubernetes API access for suppression actions."""

from solskin.cluster.client import ClusterAPIError, KubernetesClusterClient, ResourceNotFoundError

__all__ = ["ClusterAPIError", "KubernetesClusterClient", "ResourceNotFoundError"]

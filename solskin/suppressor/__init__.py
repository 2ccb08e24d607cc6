"""Suppression state tracking and cluster actions.

Submodules:
    state_cache -- sliding-TTL record of the action last applied per UID.
    executor    -- kind-specific, idempotent suppress/restore mutations.
"""

from solskin.suppressor.executor import (
    SUPPRESSIBLE_KINDS,
    ActionError,
    ActionExecutor,
    ClusterClient,
    MutationRequest,
    MutationVerb,
)
from solskin.suppressor.state_cache import SuppressionStateCache

__all__ = [
    "SUPPRESSIBLE_KINDS",
    "ActionError",
    "ActionExecutor",
    "ClusterClient",
    "MutationRequest",
    "MutationVerb",
    "SuppressionStateCache",
]

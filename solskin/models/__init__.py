"""Core data structures for Solskin."""

from solskin.models.compliance import ALL_CHECKS, CheckName, ComplianceResult
from solskin.models.config import (
    ActionMode,
    DeploymentStrategy,
    EligibilityConfig,
    SolskinConfig,
    SuppressorConfig,
)
from solskin.models.resources import (
    ChangeEvent,
    Container,
    EventAction,
    PodTemplateSpec,
    Probe,
    ResourceKind,
    WatchedResource,
)

__all__ = [
    "ALL_CHECKS",
    "ActionMode",
    "ChangeEvent",
    "CheckName",
    "ComplianceResult",
    "Container",
    "DeploymentStrategy",
    "EligibilityConfig",
    "EventAction",
    "PodTemplateSpec",
    "Probe",
    "ResourceKind",
    "SolskinConfig",
    "SuppressorConfig",
    "WatchedResource",
]

"""Configuration models for Solskin.

All models use Pydantic v2. They are populated by :func:`solskin.config.load_config`
from ``SOLSKIN_*`` environment variables.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from solskin.models.compliance import ALL_CHECKS, CheckName


class ActionMode(StrEnum):
    """What the controller does with a suppression decision."""

    NONE = "none"
    LOG = "log"
    SUPPRESS = "suppress"


class DeploymentStrategy(StrEnum):
    """How deployments are suppressed."""

    SCALE = "scale"
    PAUSE = "pause"


class EligibilityConfig(BaseModel):
    """Which resources are considered at all."""

    exclude_namespace: str = Field(
        default="^kube-",
        description="Regular expression; resources in matching namespaces are ignored.",
    )
    age_limit: str = Field(
        default="off",
        description="Minimum age for non-pod kinds, e.g. ``10m``; ``off`` disables the check.",
    )


class SuppressorConfig(BaseModel):
    """Policy toggles and suppression behaviour."""

    mode: ActionMode = ActionMode.LOG
    checks: frozenset[CheckName] = Field(default=ALL_CHECKS)
    cache_ttl: str = Field(default="5m", description="De-duplication window for applied actions.")
    annotation_prefix: str = Field(default="solskin.io/suppressor")
    deployment_strategy: DeploymentStrategy = DeploymentStrategy.SCALE

    @field_validator("annotation_prefix")
    @classmethod
    def validate_annotation_prefix(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("annotation_prefix must not be empty")
        return value


class InformerConfig(BaseModel):
    """Watch and queue tuning."""

    resync: str = "5m"
    workers: int = Field(default=4, ge=1, le=64)
    queue_size: int = Field(default=1000, ge=10, le=100_000)


class ApiConfig(BaseModel):
    port: int = Field(default=8080, ge=1, le=65535)


class LogConfig(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        value = value.lower()
        if value not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError(f"invalid log level: {value!r}")
        return value


class SolskinConfig(BaseModel):
    """Root configuration object."""

    cluster_id: str = ""
    eligibility: EligibilityConfig = Field(default_factory=EligibilityConfig)
    suppressor: SuppressorConfig = Field(default_factory=SuppressorConfig)
    informers: InformerConfig = Field(default_factory=InformerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    log: LogConfig = Field(default_factory=LogConfig)

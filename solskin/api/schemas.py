"""Pydantic response models for the Solskin REST API.

All models use Pydantic v2 syntax. Field descriptions are also used by
FastAPI to generate the OpenAPI spec.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    """Response body for ``GET /api/v1/health``."""

    status: str = Field(
        ...,
        description="``ok`` while the event queue is running, ``degraded`` otherwise.",
        examples=["ok", "degraded"],
    )
    version: str = Field(
        ...,
        description="Solskin version string.",
        examples=["0.3.0"],
    )


class ControllerStatusResponse(BaseModel):
    """Response body for ``GET /api/v1/status``."""

    version: str = Field(..., description="Solskin version string.")
    cluster_id: str = Field(default="", description="Configured cluster identifier.")
    mode: str = Field(
        ...,
        description="Action mode applied to suppression decisions.",
        examples=["none", "log", "suppress"],
    )
    enabled_checks: list[str] = Field(
        default_factory=list,
        description="Compliance checks evaluated, in declaration order.",
        examples=[["observability", "liveness", "readiness", "requests", "limits"]],
    )
    state_cache_entries: int = Field(
        default=0,
        ge=0,
        description="Live entries in the suppression state cache.",
    )
    queue_depth: int = Field(
        default=0,
        ge=0,
        description="Events waiting across all queue lanes.",
    )
    watchers: list[str] = Field(
        default_factory=list,
        description="Resource kinds currently watched.",
        examples=[["pod", "deployment"]],
    )


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx and 5xx responses."""

    error: str = Field(
        ...,
        description="Machine-readable error code.",
        examples=["NOT_READY", "INTERNAL_ERROR"],
    )
    detail: str = Field(
        ...,
        description="Human-readable description of the error.",
        examples=["controller is still starting"],
    )

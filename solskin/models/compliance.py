"""Compliance check names and evaluation results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum


class CheckName(StrEnum):
    """Operability checks a workload is evaluated against."""

    OBSERVABILITY = "observability"
    LIVENESS = "liveness"
    READINESS = "readiness"
    REQUESTS = "requests"
    LIMITS = "limits"


ALL_CHECKS: frozenset[CheckName] = frozenset(CheckName)


@dataclass(frozen=True)
class ComplianceResult:
    """Outcome of evaluating one resource against a set of checks.

    Recomputed on every event; never cached.
    """

    checks: Mapping[CheckName, bool] = field(default_factory=dict)

    @property
    def suppress(self) -> bool:
        """True unless every evaluated check passed."""
        return not all(self.checks.values())

    @property
    def failing(self) -> list[CheckName]:
        """Failing checks in declaration order."""
        return [name for name in CheckName if self.checks.get(name) is False]

    @property
    def compliant(self) -> bool:
        return not self.suppress

"""Aggregate the operability checks into a single suppression decision."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from solskin.models.compliance import ALL_CHECKS, CheckName, ComplianceResult
from solskin.models.resources import PodTemplateSpec, ResourceKind, WatchedResource
from solskin.observability.logging import get_logger
from solskin.policy.checks import CHECKERS

_logger = get_logger("policy.evaluator")


def resource_label(kind: ResourceKind | str, name: str, namespace: str) -> str:
    """Format ``<kind>:<name>.<namespace>`` for diagnostics."""
    kind_str = kind.value if isinstance(kind, ResourceKind) else kind
    return f"{kind_str}:{name}.{namespace}"


class ComplianceEvaluator:
    """Evaluates resources against the enabled subset of checks.

    Stateless once constructed and safe to share between workers.

    Example::

        evaluator = ComplianceEvaluator(enabled_checks={CheckName.LIVENESS})
        result = evaluator.evaluate_resource(resource)
        if result.suppress:
            ...
    """

    def __init__(self, enabled_checks: Iterable[CheckName] = ALL_CHECKS) -> None:
        self._enabled: frozenset[CheckName] = frozenset(enabled_checks)

    @property
    def enabled_checks(self) -> frozenset[CheckName]:
        return self._enabled

    def evaluate(
        self,
        annotations: Mapping[str, str],
        template: PodTemplateSpec,
        checks: Iterable[CheckName] | None = None,
    ) -> ComplianceResult:
        """Run ``checks`` (default: the enabled set) and return the result."""
        selected = self._enabled if checks is None else frozenset(checks)
        results = {name: CHECKERS[name](annotations, template) for name in CheckName if name in selected}
        return ComplianceResult(checks=results)

    def evaluate_resource(
        self,
        resource: WatchedResource,
        checks: Iterable[CheckName] | None = None,
    ) -> ComplianceResult:
        """Evaluate a watched resource using its policy annotations and template."""
        return self.evaluate(resource.policy_annotations, resource.template, checks)

    def diagnostics(self, resource: WatchedResource, result: ComplianceResult) -> list[tuple[CheckName, str]]:
        """Return ``(check, label)`` for each failing check, logging each one."""
        label = resource.label
        trail = [(check, label) for check in result.failing]
        for check, lbl in trail:
            _logger.info("compliance_check_failed", check=check.value, resource=lbl, uid=resource.uid)
        return trail

"""Operability predicates over a resource's annotations and pod template.

Every predicate is pure and total: missing data evaluates to ``False``,
never to an exception. A template without containers never passes the
probe or resource checks.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from solskin.models.compliance import CheckName
from solskin.models.resources import PROBE_HANDLERS, Container, PodTemplateSpec, Probe

# Presence of this annotation, whatever its value, means the owners have
# made a decision about metrics scraping.
SCRAPE_ANNOTATION = "prometheus.io/scrape"

_REQUIRED_RESOURCES: tuple[str, ...] = ("cpu", "memory")

Checker = Callable[[Mapping[str, str], PodTemplateSpec], bool]


def has_observability(annotations: Mapping[str, str], template: PodTemplateSpec) -> bool:
    """True if the scrape opt-in annotation is present."""
    return SCRAPE_ANNOTATION in annotations


def has_liveness(annotations: Mapping[str, str], template: PodTemplateSpec) -> bool:
    """True if every container declares a well-formed liveness probe."""
    return _all_containers(template, lambda c: _has_single_handler(c.liveness_probe))


def has_readiness(annotations: Mapping[str, str], template: PodTemplateSpec) -> bool:
    """True if every container declares a well-formed readiness probe."""
    return _all_containers(template, lambda c: _has_single_handler(c.readiness_probe))


def has_requests(annotations: Mapping[str, str], template: PodTemplateSpec) -> bool:
    """True if every container requests both CPU and memory."""
    return _all_containers(template, lambda c: _has_all_resources(c.requests))


def has_limits(annotations: Mapping[str, str], template: PodTemplateSpec) -> bool:
    """True if every container is limited in both CPU and memory."""
    return _all_containers(template, lambda c: _has_all_resources(c.limits))


CHECKERS: dict[CheckName, Checker] = {
    CheckName.OBSERVABILITY: has_observability,
    CheckName.LIVENESS: has_liveness,
    CheckName.READINESS: has_readiness,
    CheckName.REQUESTS: has_requests,
    CheckName.LIMITS: has_limits,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _all_containers(template: PodTemplateSpec, predicate: Callable[[Container], bool]) -> bool:
    if not template.containers:
        return False
    return all(predicate(container) for container in template.containers)


def _has_single_handler(probe: Probe | None) -> bool:
    if probe is None:
        return False
    return len(probe.handlers & PROBE_HANDLERS) == 1


def _has_all_resources(quantities: Mapping[str, str]) -> bool:
    return all(name in quantities for name in _REQUIRED_RESOURCES)

"""Environment-variable configuration loading.

Every setting is read from a ``SOLSKIN_*`` variable; unset variables fall
back to the model defaults. Integer settings are clamped to their bounds,
enumerated settings raise ``ValueError`` on unknown values.
"""

from __future__ import annotations

import os
from typing import TypeVar

from solskin.models.compliance import ALL_CHECKS, CheckName
from solskin.models.config import (
    ActionMode,
    ApiConfig,
    DeploymentStrategy,
    EligibilityConfig,
    InformerConfig,
    LogConfig,
    SolskinConfig,
    SuppressorConfig,
)

_PREFIX = "SOLSKIN_"

_E = TypeVar("_E", ActionMode, DeploymentStrategy)


def load_config() -> SolskinConfig:
    """Build a :class:`SolskinConfig` from the process environment."""
    defaults_suppressor = SuppressorConfig()
    defaults_informers = InformerConfig()

    eligibility = EligibilityConfig(
        exclude_namespace=_env("ELIGIBILITY_EXCLUDE_NAMESPACE", EligibilityConfig().exclude_namespace),
        age_limit=_env("ELIGIBILITY_AGE_LIMIT", "off").strip() or "off",
    )

    suppressor = SuppressorConfig(
        mode=_enum("SUPPRESSOR_MODE", ActionMode, defaults_suppressor.mode),
        checks=_checks("SUPPRESSOR_CHECKS"),
        cache_ttl=_env("SUPPRESSOR_CACHE_TTL", defaults_suppressor.cache_ttl),
        annotation_prefix=_env("SUPPRESSOR_ANNOTATION_PREFIX", defaults_suppressor.annotation_prefix),
        deployment_strategy=_enum(
            "SUPPRESSOR_DEPLOYMENT_STRATEGY",
            DeploymentStrategy,
            defaults_suppressor.deployment_strategy,
        ),
    )

    informers = InformerConfig(
        resync=_env("INFORMERS_RESYNC", defaults_informers.resync),
        workers=_int("INFORMERS_WORKERS", defaults_informers.workers, 1, 64),
        queue_size=_int("INFORMERS_QUEUE_SIZE", defaults_informers.queue_size, 10, 100_000),
    )

    return SolskinConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        eligibility=eligibility,
        suppressor=suppressor,
        informers=informers,
        api=ApiConfig(port=_int("API_PORT", 8080, 1, 65535)),
        log=LogConfig(level=_env("LOG_LEVEL", "info")),
    )


def parse_checks(raw: str, source: str = "checks") -> frozenset[CheckName]:
    """Parse a comma-separated list of check names.

    An empty value selects every check. Unknown names, or a value made only
    of separators, raise ``ValueError`` mentioning ``source``.
    """
    if not raw.strip():
        return ALL_CHECKS
    checks: set[CheckName] = set()
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        try:
            checks.add(CheckName(part))
        except ValueError:
            raise ValueError(f"{source} contains unknown check {part!r}") from None
    if not checks:
        raise ValueError(f"{source} names no checks, got: {raw!r}")
    return frozenset(checks)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _env(name: str, default: str) -> str:
    return os.environ.get(_PREFIX + name, default)


def _int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValueError(f"{_PREFIX}{name} must be an integer, got: {raw!r}") from None
    return max(minimum, min(maximum, value))


def _enum(name: str, enum_cls: type[_E], default: _E) -> _E:
    raw = os.environ.get(_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"{_PREFIX}{name} must be one of {allowed}, got: {raw!r}") from None


def _checks(name: str) -> frozenset[CheckName]:
    return parse_checks(os.environ.get(_PREFIX + name, ""), source=_PREFIX + name)

"""Decide whether a resource is in scope for policy evaluation at all.

A resource is eligible when its namespace does not match the exclusion
pattern and, for every kind except pods, it is at least ``age_limit`` old.
An invalid exclusion pattern is a startup error; an invalid or negative age
limit only disables the age check.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from solskin.durations import OFF, parse_duration
from solskin.models.config import EligibilityConfig
from solskin.models.resources import ResourceKind, WatchedResource
from solskin.observability.logging import get_logger

_logger = get_logger("policy.eligibility")


class ConfigurationError(Exception):
    """Raised when a configuration value makes startup impossible."""


class EligibilityFilter:
    """Namespace and age based eligibility.

    ``now`` is injectable so tests can pin the clock.
    """

    def __init__(
        self,
        exclude_namespace: str = "^kube-",
        age_limit: str = OFF,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        try:
            self._exclude = re.compile(exclude_namespace)
        except re.error as exc:
            raise ConfigurationError(f"invalid namespace exclusion pattern {exclude_namespace!r}: {exc}") from exc
        self._min_age = _parse_age_limit(age_limit)
        self._now = now or (lambda: datetime.now(tz=UTC))

    @classmethod
    def from_config(cls, config: EligibilityConfig) -> EligibilityFilter:
        return cls(exclude_namespace=config.exclude_namespace, age_limit=config.age_limit)

    @property
    def min_age(self) -> timedelta | None:
        """The effective minimum age, or None when the age check is off."""
        return self._min_age

    def is_eligible(self, resource: WatchedResource) -> bool:
        if self.is_excluded_namespace(resource.namespace):
            _logger.debug("resource_namespace_excluded", resource=resource.label)
            return False
        if resource.kind is not ResourceKind.POD and not self.is_old_enough(resource):
            _logger.debug("resource_not_old_enough", resource=resource.label)
            return False
        return True

    def is_excluded_namespace(self, namespace: str) -> bool:
        return self._exclude.search(namespace) is not None

    def is_old_enough(self, resource: WatchedResource) -> bool:
        """True if the age check is off or the resource is at least ``min_age`` old.

        A resource without a creation timestamp cannot be aged and is treated
        as old enough.
        """
        if self._min_age is None or resource.creation_timestamp is None:
            return True
        created = resource.creation_timestamp
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return self._now() - created >= self._min_age


def _parse_age_limit(value: str) -> timedelta | None:
    """Return the minimum age, or None when the check should be skipped."""
    text = value.strip()
    if not text or text.lower() == OFF:
        return None
    try:
        limit = parse_duration(text)
    except ValueError:
        _logger.warning("age_limit_unparseable", age_limit=value, fallback=OFF)
        return None
    if limit < timedelta(0):
        _logger.warning("age_limit_negative", age_limit=value, fallback=OFF)
        return None
    return limit

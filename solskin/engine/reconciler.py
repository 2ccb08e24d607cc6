"""Reconciliation: eligibility -> evaluation -> de-duplication -> action.

The reconciler is the single consumer of change events. It is constructed
once with every collaborator injected and holds no module-level state.

Metric values always reflect the latest evaluation, whatever the action
mode. The mode only decides what happens to a suppression decision:

    none      -- nothing beyond metrics and diagnostics
    log       -- log the action that would be taken, once per TTL window
    suppress  -- apply the action through the executor
"""

from __future__ import annotations

from enum import StrEnum

from solskin.models.compliance import ComplianceResult
from solskin.models.config import ActionMode
from solskin.models.resources import ChangeEvent, EventAction, WatchedResource
from solskin.observability.logging import get_logger
from solskin.observability.metrics import SolskinMetrics
from solskin.policy.eligibility import EligibilityFilter
from solskin.policy.evaluator import ComplianceEvaluator
from solskin.suppressor.executor import SUPPRESSIBLE_KINDS, ActionError, ActionExecutor
from solskin.suppressor.state_cache import SuppressionStateCache

_logger = get_logger("engine.reconciler")


class ReconcileOutcome(StrEnum):
    """What one reconcile pass did with an event."""

    INELIGIBLE = "ineligible"
    EVALUATED = "evaluated"
    DEDUPLICATED = "deduplicated"
    LOGGED = "logged"
    SUPPRESSED = "suppressed"
    RESTORED = "restored"
    NOOP = "noop"
    FAILED = "failed"
    DELETED = "deleted"


class Reconciler:
    """Drives every change event through the policy pipeline.

    Example::

        reconciler = Reconciler(eligibility, evaluator, cache, executor, metrics, ActionMode.SUPPRESS)
        await reconciler.handle(event)
    """

    def __init__(
        self,
        eligibility: EligibilityFilter,
        evaluator: ComplianceEvaluator,
        state_cache: SuppressionStateCache,
        executor: ActionExecutor,
        metrics: SolskinMetrics,
        mode: ActionMode = ActionMode.LOG,
    ) -> None:
        self._eligibility = eligibility
        self._evaluator = evaluator
        self._cache = state_cache
        self._executor = executor
        self._metrics = metrics
        self._mode = mode

    @property
    def mode(self) -> ActionMode:
        return self._mode

    @property
    def state_cache(self) -> SuppressionStateCache:
        return self._cache

    async def handle(self, event: ChangeEvent) -> ReconcileOutcome:
        """Dispatch one queued event."""
        self._metrics.events_total.labels(event.kind.value, event.action.value).inc()
        if event.action is EventAction.DELETE:
            outcome = await self.on_delete(event.resource)
        else:
            outcome = await self.on_change(event.resource)
        self._metrics.reconcile_outcomes_total.labels(outcome.value).inc()
        return outcome

    async def on_change(self, resource: WatchedResource) -> ReconcileOutcome:
        if not self._eligibility.is_eligible(resource):
            return ReconcileOutcome.INELIGIBLE

        result = self._evaluator.evaluate_resource(resource)
        self._metrics.record_compliance(resource, result.checks)
        self._evaluator.diagnostics(resource, result)

        if self._mode is ActionMode.NONE or resource.kind not in SUPPRESSIBLE_KINDS:
            return ReconcileOutcome.EVALUATED

        if not self._cache.claim(resource.uid, result.suppress):
            self._metrics.state_cache_entries.set(len(self._cache))
            return ReconcileOutcome.DEDUPLICATED
        self._metrics.state_cache_entries.set(len(self._cache))

        if self._mode is ActionMode.LOG:
            if result.suppress:
                _logger.info(
                    "suppression_would_apply",
                    resource=resource.label,
                    uid=resource.uid,
                    failing=[c.value for c in result.failing],
                )
            return ReconcileOutcome.LOGGED

        return await self._act(resource, result)

    async def on_delete(self, resource: WatchedResource) -> ReconcileOutcome:
        """Forget everything known about a resource that left the cluster."""
        self._cache.forget(resource.uid)
        self._metrics.state_cache_entries.set(len(self._cache))
        self._metrics.forget_resource(resource)
        _logger.debug("resource_forgotten", resource=resource.label, uid=resource.uid)
        return ReconcileOutcome.DELETED

    async def _act(self, resource: WatchedResource, result: ComplianceResult) -> ReconcileOutcome:
        try:
            request = await self._executor.apply(resource, result.suppress)
        except ActionError as exc:
            # Let the next redelivery retry instead of waiting out the TTL
            self._cache.forget(resource.uid)
            self._metrics.action_failures_total.labels(resource.kind.value).inc()
            _logger.error(
                "suppression_action_failed",
                resource=resource.label,
                uid=resource.uid,
                suppress=result.suppress,
                error=str(exc),
            )
            return ReconcileOutcome.FAILED

        if request is None:
            return ReconcileOutcome.NOOP

        if result.suppress:
            self._metrics.record_suppressed(resource)
            _logger.info(
                "resource_suppressed",
                resource=resource.label,
                uid=resource.uid,
                action=request.verb.value,
                failing=[c.value for c in result.failing],
            )
            return ReconcileOutcome.SUPPRESSED

        self._metrics.record_restored(resource)
        _logger.info("resource_restored", resource=resource.label, uid=resource.uid, action=request.verb.value)
        return ReconcileOutcome.RESTORED

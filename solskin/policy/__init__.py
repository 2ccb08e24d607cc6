"""Policy evaluation: eligibility filtering and operability checks.

Submodules:
    checks      -- pure predicates over annotations and pod templates.
    evaluator   -- aggregates the enabled checks into a ComplianceResult.
    eligibility -- namespace exclusion and minimum-age filtering.
"""

from solskin.policy.eligibility import ConfigurationError, EligibilityFilter
from solskin.policy.evaluator import ComplianceEvaluator, resource_label

__all__ = ["ComplianceEvaluator", "ConfigurationError", "EligibilityFilter", "resource_label"]

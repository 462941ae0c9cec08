"""Concrete stage implementations and the wiring of the canonical flow."""

from smartproof.stages.http import ServiceStage
from smartproof.stages.rules import RuleSetError, load_rule_sets

__all__ = ["RuleSetError", "ServiceStage", "load_rule_sets"]

"""
Workflow engine — durable, resumable stage orchestration for document
compliance checking.

A document goes through an ordered StageRegistry; the Orchestrator
persists a WorkflowState around every stage, applies the
required/optional failure policy, and the ReportBuilder turns the
compliance findings into a ComplianceReport.
"""

from smartproof.workflow.aggregator import aggregate
from smartproof.workflow.models import ComplianceIssue, ComplianceReport, ComplianceSummary
from smartproof.workflow.orchestrator import Orchestrator
from smartproof.workflow.registry import StageRegistry, build_default_registry
from smartproof.workflow.report import ReportBuilder
from smartproof.workflow.stage import StageDescriptor, StageOutputs
from smartproof.workflow.state import StageRecord, WorkflowState
from smartproof.workflow.store import BlobStateStore, StateStore

__all__ = [
    "BlobStateStore",
    "ComplianceIssue",
    "ComplianceReport",
    "ComplianceSummary",
    "Orchestrator",
    "ReportBuilder",
    "StageDescriptor",
    "StageOutputs",
    "StageRecord",
    "StageRegistry",
    "StateStore",
    "WorkflowState",
    "aggregate",
    "build_default_registry",
]

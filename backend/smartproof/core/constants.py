"""Shared constants and enums used across the application."""

from enum import StrEnum


class WorkflowStatus(StrEnum):
    """Overall status of a document workflow."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(StrEnum):
    """Status of an individual stage within a workflow."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StageName(StrEnum):
    """Canonical stage names, in registration order."""

    CONTENT_EXTRACTION = "content-extraction"
    VISUAL_ANALYSIS = "visual-analysis"
    REFERENCE_LOOKUP = "reference-lookup"
    COMPLIANCE_CHECK = "compliance-check"
    KNOWLEDGE_INDEXING = "knowledge-indexing"
    REPORT_SYNTHESIS = "report-synthesis"


class Severity(StrEnum):
    """Severity of a compliance issue."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ReportStatus(StrEnum):
    """Overall verdict of a compliance report."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Error taxonomy exposed to observers of a workflow."""

    ALREADY_STARTED = "AlreadyStarted"
    NOT_FOUND = "NotFound"
    MISSING_DEPENDENCY = "MissingDependency"
    STAGE_FAILED = "StageFailed"
    TIMEOUT = "Timeout"
    INCOMPLETE_WORKFLOW = "IncompleteWorkflow"
    STORE_UNAVAILABLE = "StoreUnavailable"
    INVALID_TRANSITION = "InvalidTransition"
    REGISTRY = "Registry"


# Terminal states — a record in one of these is never re-run
TERMINAL_STAGE_STATUSES = frozenset({StageStatus.COMPLETED, StageStatus.FAILED})
TERMINAL_WORKFLOW_STATUSES = frozenset({WorkflowStatus.COMPLETED, WorkflowStatus.FAILED})

# Blob layout (per document prefix)
STATE_BLOB_NAME = "workflow-state.json"
REPORT_BLOB_NAME = "compliance-report.json"

# Rendered artifact name → (blob name, content type)
REPORT_ARTIFACTS: dict[str, tuple[str, str]] = {
    "html": ("report.html", "text/html"),
}

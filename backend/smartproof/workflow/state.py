"""
WorkflowState — the durable per-document record of stage statuses and outputs.

One WorkflowState exists per document.  Only the Orchestrator mutates it,
always through the transition methods below so the lifecycle rules hold:

    StageRecord:    pending → processing → completed | failed
                    processing → processing   (crash resume re-attempt)
    WorkflowState:  pending → processing → completed | failed

Serialised with camelCase keys (documentId, stageResults, ...) so the
persisted JSON matches what dashboards and report consumers read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from smartproof.core.constants import (
    TERMINAL_STAGE_STATUSES,
    TERMINAL_WORKFLOW_STATUSES,
    ErrorKind,
    StageStatus,
    WorkflowStatus,
)
from smartproof.workflow.errors import InvalidTransitionError


def utcnow() -> datetime:
    """UTC-aware now."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime | None:
    """Convert ISO-format string to datetime, passthrough datetime/None."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ═══════════════════════════════════════════════════════════
#  StageRecord
# ═══════════════════════════════════════════════════════════

@dataclass
class StageRecord:
    """Status, timing and output of one stage for one document."""

    status: StageStatus = StageStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    attempts: int = 0
    duration_ms: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STAGE_STATUSES

    def mark_processing(self, stage_name: str, now: datetime | None = None) -> None:
        """Start (or re-attempt after a crash) this stage."""
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Stage '{stage_name}' is {self.status} and cannot be re-run without a reset",
                stage_name=stage_name,
            )
        self.status = StageStatus.PROCESSING
        self.started_at = now or utcnow()
        self.completed_at = None
        self.error = None
        self.error_kind = None
        self.attempts += 1

    def mark_completed(self, stage_name: str, output: Any, now: datetime | None = None) -> None:
        self._require_processing(stage_name, StageStatus.COMPLETED)
        self.status = StageStatus.COMPLETED
        self.output = output
        self._finish(now)

    def mark_failed(
        self,
        stage_name: str,
        error: str,
        kind: ErrorKind = ErrorKind.STAGE_FAILED,
        now: datetime | None = None,
    ) -> None:
        self._require_processing(stage_name, StageStatus.FAILED)
        self.status = StageStatus.FAILED
        self.output = None
        self.error = error
        self.error_kind = kind
        self._finish(now)

    def _require_processing(self, stage_name: str, target: StageStatus) -> None:
        if self.status != StageStatus.PROCESSING:
            raise InvalidTransitionError(
                f"Stage '{stage_name}' cannot move from {self.status} to {target}",
                stage_name=stage_name,
            )

    def _finish(self, now: datetime | None) -> None:
        self.completed_at = now or utcnow()
        if self.started_at:
            self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON storage."""
        return {
            "status": str(self.status),
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
            "output": self.output,
            "error": self.error,
            "errorKind": str(self.error_kind) if self.error_kind else None,
            "attempts": self.attempts,
            "durationMs": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageRecord:
        error_kind = data.get("errorKind")
        return cls(
            status=StageStatus(data.get("status", StageStatus.PENDING)),
            started_at=_parse_dt(data.get("startedAt")),
            completed_at=_parse_dt(data.get("completedAt")),
            output=data.get("output"),
            error=data.get("error"),
            error_kind=ErrorKind(error_kind) if error_kind else None,
            attempts=data.get("attempts", 0),
            duration_ms=data.get("durationMs", 0),
        )


# ═══════════════════════════════════════════════════════════
#  WorkflowState
# ═══════════════════════════════════════════════════════════

@dataclass
class WorkflowState:
    """
    Durable per-document workflow record.

    stage_results keys are fixed to the registered stage set at creation
    time, in registration order.
    """

    document_id: str
    overall_status: WorkflowStatus = WorkflowStatus.PENDING
    current_stage: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    stage_results: dict[str, StageRecord] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def create(
        cls,
        document_id: str,
        stage_names: Iterable[str],
        now: datetime | None = None,
    ) -> WorkflowState:
        """New state with every stage pending."""
        now = now or utcnow()
        return cls(
            document_id=document_id,
            started_at=now,
            updated_at=now,
            stage_results={name: StageRecord() for name in stage_names},
        )

    # ─── Queries ───────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return self.overall_status in TERMINAL_WORKFLOW_STATUSES

    def stage(self, name: str) -> StageRecord:
        """Return the record for `name`; KeyError if not registered."""
        return self.stage_results[name]

    def completed_outputs(self) -> dict[str, Any]:
        """Outputs of every completed stage, keyed by stage name."""
        return {
            name: record.output
            for name, record in self.stage_results.items()
            if record.status == StageStatus.COMPLETED
        }

    def derive_status(self, required: Iterable[str]) -> WorkflowStatus:
        """
        Overall status implied by the required stages alone:
        failed if any failed, completed if all completed, else processing.
        """
        statuses = [self.stage_results[name].status for name in required]
        if any(s == StageStatus.FAILED for s in statuses):
            return WorkflowStatus.FAILED
        if all(s == StageStatus.COMPLETED for s in statuses):
            return WorkflowStatus.COMPLETED
        return WorkflowStatus.PROCESSING

    def order_stages(self, names: Iterable[str]) -> None:
        """
        Put stage_results back in `names` order.

        JSON stores such as Postgres JSONB do not keep object key order, so
        a loaded state may list its stages in any order.  Names that are
        not stored are ignored; stored names missing from `names` go last.
        """
        ordered = {name: self.stage_results[name] for name in names if name in self.stage_results}
        for name, record in self.stage_results.items():
            ordered.setdefault(name, record)
        self.stage_results = ordered

    # ─── Transitions ───────────────────────────────────

    def touch(self, stage_name: str | None = None, now: datetime | None = None) -> None:
        """Bump updated_at (every write) and the advisory current stage."""
        self.updated_at = now or utcnow()
        if stage_name is not None:
            self.current_stage = stage_name

    def begin(self) -> None:
        """pending → processing.  Idempotent while processing."""
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Workflow is already {self.overall_status}",
                document_id=self.document_id,
            )
        self.overall_status = WorkflowStatus.PROCESSING

    def complete(self, now: datetime | None = None) -> None:
        if self.overall_status != WorkflowStatus.PROCESSING:
            raise InvalidTransitionError(
                f"Workflow cannot complete from {self.overall_status}",
                document_id=self.document_id,
            )
        self.overall_status = WorkflowStatus.COMPLETED
        self.completed_at = now or utcnow()

    def fail(self, error: str, now: datetime | None = None) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Workflow cannot fail from {self.overall_status}",
                document_id=self.document_id,
            )
        self.overall_status = WorkflowStatus.FAILED
        self.error = error
        self.completed_at = now or utcnow()

    # ─── Serialisation ─────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON storage and API responses."""
        return {
            "documentId": self.document_id,
            "overallStatus": str(self.overall_status),
            "currentStage": self.current_stage,
            "startedAt": _iso(self.started_at),
            "updatedAt": _iso(self.updated_at),
            "completedAt": _iso(self.completed_at),
            "stageResults": {
                name: record.to_dict() for name, record in self.stage_results.items()
            },
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowState:
        return cls(
            document_id=data["documentId"],
            overall_status=WorkflowStatus(data.get("overallStatus", WorkflowStatus.PENDING)),
            current_stage=data.get("currentStage"),
            started_at=_parse_dt(data.get("startedAt")) or utcnow(),
            updated_at=_parse_dt(data.get("updatedAt")) or utcnow(),
            completed_at=_parse_dt(data.get("completedAt")),
            stage_results={
                name: StageRecord.from_dict(record)
                for name, record in (data.get("stageResults") or {}).items()
            },
            error=data.get("error"),
        )

"""
WorkflowStateRecord — one row per document workflow.

The full WorkflowState document lives in `data`; status and timing
are duplicated into indexed columns for dashboards and filtering.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, Text

from smartproof.db.models.base import Base, JSONDocument, utcnow


class WorkflowStateRecord(Base):
    """Persisted WorkflowState for one document."""

    __tablename__ = "workflow_states"

    document_id = Column(String(255), primary_key=True)

    # ── Status ────────────────────────────────
    overall_status = Column(String(20), nullable=False, default="pending", index=True)
    current_stage = Column(String(100), nullable=True)

    # ── Timing (UTC) ─────────────────────────
    started_at = Column(DateTime(timezone=True), nullable=True, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # ── Error ─────────────────────────────────
    error_message = Column(Text, nullable=True)

    # ── Full state document ──────────────────
    data = Column(JSONDocument, nullable=False, default=dict)

    # ── Audit timestamps ─────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowStateRecord {self.document_id} status={self.overall_status} stage={self.current_stage}>"

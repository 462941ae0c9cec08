"""
ComplianceReportRecord — the write-once report of a document, plus
its rendered artifacts (HTML).
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, LargeBinary, String

from smartproof.db.models.base import Base, JSONDocument, utcnow


class ComplianceReportRecord(Base):
    """One row per document once report-synthesis has run."""

    __tablename__ = "compliance_reports"

    document_id = Column(
        String(255),
        ForeignKey("workflow_states.document_id", ondelete="CASCADE"),
        primary_key=True,
    )
    overall_status = Column(String(20), nullable=False, index=True)
    generated_at = Column(DateTime(timezone=True), nullable=False)
    data = Column(JSONDocument, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ComplianceReportRecord {self.document_id} status={self.overall_status}>"


class ReportArtifactRecord(Base):
    """A rendered report artifact, keyed by (document_id, name)."""

    __tablename__ = "report_artifacts"

    document_id = Column(
        String(255),
        ForeignKey("workflow_states.document_id", ondelete="CASCADE"),
        primary_key=True,
    )
    name = Column(String(50), primary_key=True)
    content_type = Column(String(100), nullable=False)
    content = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ReportArtifactRecord {self.document_id}/{self.name} type={self.content_type}>"

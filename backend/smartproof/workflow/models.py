"""Compliance issue / summary / report schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from smartproof.core.constants import ReportStatus, Severity


class _CamelModel(BaseModel):
    """Accepts and emits camelCase keys (documentId, ruleId, ...)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        """JSON-safe dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ComplianceIssue(_CamelModel):
    """One finding surfaced by compliance-check or visual-analysis."""

    id: str
    severity: Severity
    category: str
    message: str
    location: str | None = None
    suggestion: str | None = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    rule_id: str | None = None
    source: str | None = None


class ComplianceSummary(_CamelModel):
    """Issue counts per severity."""

    total_issues: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    images_analyzed: int = 0


class ComplianceReport(_CamelModel):
    """Final, write-once verdict for a document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    document_id: str
    generated_at: datetime
    overall_status: ReportStatus
    issues: list[ComplianceIssue] = Field(default_factory=list)
    summary: ComplianceSummary
    # artifact name → store key, e.g. {"html": "doc-1/report.html"}
    artifacts: dict[str, str] = Field(default_factory=dict)

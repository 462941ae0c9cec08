"""
ReportBuilder — assembles, persists and renders the ComplianceReport.

Input is the WorkflowState of a document:
    - compliance-check output (required):  {"issues": [ComplianceIssue, ...], ...}
    - visual-analysis output (optional):   {"results": [{"imageId", "pageNumber",
                                              "issues": [...]}, ...], ...}

All issues are flattened into one list, the Compliance Aggregator derives
the verdict, and the report + its HTML rendering are written to the
State Store.  A report is write-once: building it again returns the
stored report unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from html import escape
from typing import Any

from pydantic import ValidationError

from smartproof.core.constants import REPORT_ARTIFACTS, StageName, StageStatus
from smartproof.core.logging import get_logger
from smartproof.workflow.aggregator import aggregate
from smartproof.workflow.errors import IncompleteWorkflowError, NotFoundError, StageFailedError
from smartproof.workflow.models import ComplianceIssue, ComplianceReport
from smartproof.workflow.stage import StageFn, StageOutputs
from smartproof.workflow.state import WorkflowState
from smartproof.workflow.store import StateStore

logger = get_logger(__name__)


class ReportBuilder:
    """Builds the final ComplianceReport for a document."""

    def __init__(self, store: StateStore) -> None:
        self.store = store

    async def build(self, document_id: str, state: WorkflowState) -> ComplianceReport:
        """
        Build (or return the already stored) report for `document_id`.

        Raises:
            IncompleteWorkflowError: compliance-check has not completed.
            StageFailedError: an upstream output carries malformed issues.
        """
        compliance = state.stage_results.get(StageName.COMPLIANCE_CHECK)
        if compliance is None or compliance.status != StageStatus.COMPLETED:
            raise IncompleteWorkflowError(
                "Compliance check has not completed",
                document_id=document_id,
                stage_name=StageName.COMPLIANCE_CHECK,
                details={"status": str(compliance.status) if compliance else None},
            )

        existing = await self.store.get_report(document_id)
        if existing is not None:
            logger.info("Compliance report already exists", document_id=document_id)
            return existing

        issues = _parse_issues(
            compliance.output,
            document_id=document_id,
            stage_name=StageName.COMPLIANCE_CHECK,
            default_source="text",
        )

        images: list[Mapping[str, Any]] = []
        visual = state.stage_results.get(StageName.VISUAL_ANALYSIS)
        if visual is not None and visual.status == StageStatus.COMPLETED:
            images = _image_results(visual.output, document_id)
            for image in images:
                issues.extend(
                    _parse_issues(
                        image,
                        document_id=document_id,
                        stage_name=StageName.VISUAL_ANALYSIS,
                        default_source=f"image:{image.get('imageId', 'unknown')}",
                    )
                )

        overall_status, summary = aggregate(issues, images_analyzed=len(images))

        report = ComplianceReport(
            document_id=document_id,
            generated_at=datetime.now(timezone.utc),
            overall_status=overall_status,
            issues=issues,
            summary=summary,
        )

        _, content_type = REPORT_ARTIFACTS["html"]
        html_key = await self.store.put_artifact(
            document_id, "html", render_html(report), content_type
        )
        report = report.model_copy(update={"artifacts": {"html": html_key}})
        await self.store.put_report(document_id, report)

        logger.info(
            "Compliance report generated",
            document_id=document_id,
            overall_status=str(overall_status),
            total_issues=summary.total_issues,
            critical_issues=summary.critical_issues,
            images_analyzed=summary.images_analyzed,
        )
        return report

    def as_stage(self) -> StageFn:
        """
        The report-synthesis stage: reads the state (never writes it),
        builds the report and returns a compact summary as stage output.
        """

        async def synthesize_report(
            document_id: str,
            outputs: StageOutputs,
            config: Mapping[str, Any],
        ) -> dict[str, Any]:
            outputs.require(StageName.COMPLIANCE_CHECK)

            state = await self.store.get(document_id)
            if state is None:
                raise NotFoundError("Workflow state not found", document_id=document_id)

            report = await self.build(document_id, state)
            return {
                "overallStatus": str(report.overall_status),
                "generatedAt": report.generated_at.isoformat(),
                "summary": report.summary.to_dict(),
                "artifacts": dict(report.artifacts),
            }

        return synthesize_report


# ═══════════════════════════════════════════════════════════
#  Output parsing
# ═══════════════════════════════════════════════════════════

def _image_results(output: Any, document_id: str) -> list[Mapping[str, Any]]:
    results = output.get("results", []) if isinstance(output, Mapping) else None
    if not isinstance(results, list) or not all(isinstance(r, Mapping) for r in results):
        raise StageFailedError(
            "Visual analysis output has no valid 'results' list",
            document_id=document_id,
            stage_name=StageName.VISUAL_ANALYSIS,
        )
    return results


def _parse_issues(
    payload: Any,
    *,
    document_id: str,
    stage_name: str,
    default_source: str,
) -> list[ComplianceIssue]:
    """Validate payload["issues"] into ComplianceIssue models."""
    raw = payload.get("issues", []) if isinstance(payload, Mapping) else None
    if not isinstance(raw, list):
        raise StageFailedError(
            f"Output of '{stage_name}' has no valid 'issues' list",
            document_id=document_id,
            stage_name=stage_name,
        )

    issues = []
    for index, item in enumerate(raw):
        try:
            issue = ComplianceIssue.model_validate(item)
        except ValidationError as exc:
            raise StageFailedError(
                f"Malformed issue #{index} in '{stage_name}' output",
                document_id=document_id,
                stage_name=stage_name,
                details={"errors": exc.errors(include_url=False, include_input=False)},
            ) from exc
        if issue.source is None:
            issue = issue.model_copy(update={"source": default_source})
        issues.append(issue)
    return issues


# ═══════════════════════════════════════════════════════════
#  HTML rendering
# ═══════════════════════════════════════════════════════════

_STYLE = """
    body { font-family: Arial, sans-serif; margin: 40px; color: #2C3E50; }
    .header { background: #2C3E50; color: white; padding: 20px; border-radius: 8px; }
    .status { padding: 20px; margin: 20px 0; border-radius: 8px; }
    .status.passed { background: #d4edda; color: #155724; }
    .status.failed { background: #f8d7da; color: #721c24; }
    .status.warning { background: #fff3cd; color: #856404; }
    .issue { padding: 15px; margin: 10px 0; border-left: 4px solid; border-radius: 4px; }
    .issue.critical { border-color: #E74C3C; background: #FADBD8; }
    .issue.high { border-color: #F39C12; background: #FCF3CF; }
    .issue.medium { border-color: #3498DB; background: #D6EAF8; }
    .issue.low { border-color: #95A5A6; background: #EAECEE; }
    .summary { display: grid; grid-template-columns: repeat(6, 1fr); gap: 20px; margin: 20px 0; }
    .stat-value { font-size: 32px; font-weight: bold; }
    .stat-label { color: #7F8C8D; font-size: 14px; }
"""


def _render_issue(issue: ComplianceIssue) -> str:
    rows = [
        f"<h3>{escape(issue.message)}</h3>",
        f"<p><strong>Category:</strong> {escape(issue.category)}</p>",
        f"<p><strong>Severity:</strong> {escape(str(issue.severity))}</p>",
    ]
    if issue.location:
        rows.append(f"<p><strong>Location:</strong> {escape(issue.location)}</p>")
    rows.append(f"<p><strong>Suggestion:</strong> {escape(issue.suggestion or 'N/A')}</p>")
    rows.append(f"<p><strong>Confidence:</strong> {round(issue.confidence * 100)}%</p>")
    if issue.rule_id:
        rows.append(f"<p><strong>Rule:</strong> {escape(issue.rule_id)}</p>")
    return f'<div class="issue {escape(str(issue.severity))}">{"".join(rows)}</div>'


def render_html(report: ComplianceReport) -> str:
    """Render a standalone HTML page for the report."""
    summary = report.summary
    stats = [
        ("Total Issues", summary.total_issues),
        ("Critical", summary.critical_issues),
        ("High", summary.high_issues),
        ("Medium", summary.medium_issues),
        ("Low", summary.low_issues),
        ("Images Analyzed", summary.images_analyzed),
    ]
    stat_cards = "".join(
        f'<div><div class="stat-value">{value}</div><div class="stat-label">{label}</div></div>'
        for label, value in stats
    )

    text_issues = [i for i in report.issues if not (i.source or "").startswith("image:")]
    image_issues = [i for i in report.issues if (i.source or "").startswith("image:")]

    text_html = "".join(_render_issue(i) for i in text_issues) or "<p>No issues found.</p>"
    image_html = "".join(_render_issue(i) for i in image_issues) or "<p>No issues found.</p>"

    status = escape(str(report.overall_status))
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Compliance Report {escape(report.document_id)}</title>
  <style>{_STYLE}</style>
</head>
<body>
  <div class="header">
    <h1>Compliance Report</h1>
    <p>Document ID: {escape(report.document_id)}</p>
    <p>Generated: {report.generated_at.isoformat()}</p>
  </div>
  <div class="status {status}"><h2>Overall Status: {status.upper()}</h2></div>
  <h2>Summary</h2>
  <div class="summary">{stat_cards}</div>
  <h2>Text Compliance Issues</h2>
  {text_html}
  <h2>Image Compliance Issues</h2>
  {image_html}
</body>
</html>
"""

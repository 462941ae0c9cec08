"""
Compliance Aggregator — folds a flat issue list into a verdict.

Policy (order matters):
    any critical issue  → failed
    else any high issue → warning
    else                → passed

A single critical finding fails the whole document regardless of
how many low-severity issues exist.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable

from smartproof.core.constants import ReportStatus, Severity
from smartproof.workflow.models import ComplianceIssue, ComplianceSummary


def aggregate(
    issues: Iterable[ComplianceIssue],
    images_analyzed: int = 0,
) -> tuple[ReportStatus, ComplianceSummary]:
    """Return (overall_status, summary) for the given issues."""
    issues = list(issues)
    counts = Counter(issue.severity for issue in issues)

    if counts[Severity.CRITICAL]:
        status = ReportStatus.FAILED
    elif counts[Severity.HIGH]:
        status = ReportStatus.WARNING
    else:
        status = ReportStatus.PASSED

    summary = ComplianceSummary(
        total_issues=len(issues),
        critical_issues=counts[Severity.CRITICAL],
        high_issues=counts[Severity.HIGH],
        medium_issues=counts[Severity.MEDIUM],
        low_issues=counts[Severity.LOW],
        images_analyzed=images_analyzed,
    )
    return status, summary

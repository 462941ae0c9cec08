from smartproof.core.constants import ReportStatus, Severity
from smartproof.workflow import ComplianceIssue, aggregate


def _issue(severity: str, n: int = 1) -> ComplianceIssue:
    return ComplianceIssue(
        id=f"{severity}-{n}",
        severity=severity,
        category="claims",
        message=f"{severity} finding",
        confidence=0.5,
    )


def test_no_issues_passes():
    status, summary = aggregate([])

    assert status == ReportStatus.PASSED
    assert summary.total_issues == 0
    assert summary.images_analyzed == 0


def test_single_critical_fails_regardless_of_low_count():
    issues = [_issue("critical")] + [_issue("low", n) for n in range(10)]

    status, summary = aggregate(issues)

    assert status == ReportStatus.FAILED
    assert summary.critical_issues == 1
    assert summary.low_issues == 10
    assert summary.total_issues == 11


def test_high_without_critical_is_warning():
    status, summary = aggregate([_issue("high"), _issue("medium"), _issue("low")])

    assert status == ReportStatus.WARNING
    assert (summary.high_issues, summary.medium_issues, summary.low_issues) == (1, 1, 1)


def test_medium_and_low_only_pass():
    status, _ = aggregate([_issue("medium"), _issue("low")])

    assert status == ReportStatus.PASSED


def test_summary_counts_sum_to_total_and_keep_images():
    issues = [_issue(s, n) for n, s in enumerate(["critical", "high", "high", "medium", "low"])]

    _, summary = aggregate(issues, images_analyzed=3)

    assert summary.total_issues == (
        summary.critical_issues + summary.high_issues + summary.medium_issues + summary.low_issues
    )
    assert summary.high_issues == 2
    assert summary.images_analyzed == 3


def test_summary_serialises_camel_case():
    _, summary = aggregate([_issue(Severity.CRITICAL)], images_analyzed=1)

    assert summary.to_dict() == {
        "totalIssues": 1,
        "criticalIssues": 1,
        "highIssues": 0,
        "mediumIssues": 0,
        "lowIssues": 0,
        "imagesAnalyzed": 1,
    }

#!/usr/bin/env python3
"""
Demo script — run the compliance workflow locally without Docker/Celery.

Uses in-memory storage and stub stages in place of the stage services,
so it shows the orchestration itself: the happy path, an optional stage
failing, and a required stage failing.

Usage:
    cd backend
    python -m scripts.demo_workflow
"""

import asyncio


def _stub_stages(store, *, fail: set[str] = frozenset()):
    """Canonical stages backed by canned outputs; names in `fail` raise."""
    from smartproof.core.constants import StageName
    from smartproof.workflow.report import ReportBuilder

    canned = {
        StageName.CONTENT_EXTRACTION: {
            "text": "SmartProof Ultra — the best widget. Results guaranteed.",
            "images": [{"imageId": "img-1", "pageNumber": 1}],
        },
        StageName.VISUAL_ANALYSIS: {
            "results": [
                {
                    "imageId": "img-1",
                    "pageNumber": 1,
                    "issues": [
                        {
                            "id": "V-1",
                            "severity": "medium",
                            "category": "logo",
                            "message": "Logo clear space too small",
                            "confidence": 0.8,
                        }
                    ],
                }
            ],
        },
        StageName.REFERENCE_LOOKUP: {"products": [{"sku": "SP-ULTRA", "name": "SmartProof Ultra"}]},
        StageName.COMPLIANCE_CHECK: {
            "issues": [
                {
                    "id": "C-1",
                    "severity": "high",
                    "category": "claims",
                    "message": "Unsubstantiated superlative 'the best'",
                    "location": "page 1",
                    "suggestion": "Qualify or remove the claim",
                    "confidence": 0.92,
                    "ruleId": "BR-002",
                }
            ],
        },
        StageName.KNOWLEDGE_INDEXING: {"indexed": True, "chunks": 4},
    }

    def make(name):
        async def run(document_id, outputs, config):
            if name in fail:
                raise RuntimeError(f"{name} service unavailable")
            return canned[name]

        return run

    stages = {name: make(name) for name in canned}
    stages[StageName.REPORT_SYNTHESIS] = ReportBuilder(store).as_stage()
    return stages


async def run_demo(title: str, document_id: str, *, fail: set[str] = frozenset()):
    from smartproof.storage import MemoryBlobStore
    from smartproof.workflow import BlobStateStore, Orchestrator, build_default_registry
    from smartproof.workflow.errors import IncompleteWorkflowError

    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)

    store = BlobStateStore(MemoryBlobStore())
    orchestrator = Orchestrator(store, build_default_registry(_stub_stages(store, fail=fail)))
    state = await orchestrator.start(document_id)

    print(f"\n{'─' * 50}")
    print(f"  Document     : {state.document_id}")
    print(f"  Status       : {state.overall_status}")
    if state.error:
        print(f"  Error        : {state.error}")

    print("\n  Stage Results:")
    for name, record in state.stage_results.items():
        icon = {"completed": "✓", "failed": "✗"}.get(str(record.status), "⊘")
        print(f"    {icon} {name} ({record.duration_ms or 0}ms)")
        if record.error:
            print(f"        error: {record.error}")

    try:
        report = await orchestrator.get_report(document_id)
    except IncompleteWorkflowError as exc:
        print(f"\n  Report       : not available ({exc})")
    else:
        summary = report.summary
        print(f"\n  Report       : {report.overall_status}")
        print(
            f"    Issues     : {summary.total_issues} "
            f"(critical {summary.critical_issues}, high {summary.high_issues}, "
            f"medium {summary.medium_issues}, low {summary.low_issues})"
        )
        print(f"    Images     : {summary.images_analyzed}")
        for issue in report.issues:
            print(f"      - [{issue.severity}] {issue.message} ({issue.source})")

    print(f"{'─' * 50}\n")


async def main():
    from smartproof.core.constants import StageName
    from smartproof.core.logging import setup_logging

    setup_logging("WARNING")     # quiet logs, show formatted output only

    print("\n╔" + "═" * 68 + "╗")
    print("║            SMARTPROOF — COMPLIANCE WORKFLOW DEMO                   ║")
    print("╚" + "═" * 68 + "╝")

    await run_demo("DEMO 1: All stages succeed", "demo-doc-001")
    await run_demo(
        "DEMO 2: Optional stage fails (visual-analysis)",
        "demo-doc-002",
        fail={StageName.VISUAL_ANALYSIS},
    )
    await run_demo(
        "DEMO 3: Required stage fails (compliance-check)",
        "demo-doc-003",
        fail={StageName.COMPLIANCE_CHECK},
    )

    print("\n✅ All demos completed.\n")


if __name__ == "__main__":
    asyncio.run(main())

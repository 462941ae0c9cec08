import pytest

from smartproof.core.constants import (
    ErrorKind,
    ReportStatus,
    StageName,
    StageStatus,
    WorkflowStatus,
)
from smartproof.workflow import (
    BlobStateStore,
    Orchestrator,
    ReportBuilder,
    StageDescriptor,
    StageRegistry,
    WorkflowState,
    build_default_registry,
)
from smartproof.workflow.errors import (
    AlreadyStartedError,
    IncompleteWorkflowError,
    NotFoundError,
    RegistryError,
    StoreUnavailableError,
)

from conftest import SpyStage, make_registry


class FlakyStateStore(BlobStateStore):
    """Raises StoreUnavailableError on the Nth put, then behaves."""

    def __init__(self, blobs, fail_on_put: int) -> None:
        super().__init__(blobs)
        self.fail_on_put = fail_on_put
        self.puts = 0

    async def put(self, document_id, state):
        self.puts += 1
        if self.puts == self.fail_on_put:
            raise StoreUnavailableError("store offline", document_id=document_id)
        await super().put(document_id, state)


class UnorderedStateStore(BlobStateStore):
    """Hands back stageResults keys shortest first, as Postgres JSONB does."""

    async def get(self, document_id):
        state = await super().get(document_id)
        if state is not None:
            state.stage_results = dict(
                sorted(state.stage_results.items(), key=lambda kv: (len(kv[0]), kv[0].encode()))
            )
        return state


def _orchestrator(store, *stages) -> Orchestrator:
    return Orchestrator(store, make_registry(*stages), default_timeout=5.0)


# ─── Canonical flow ───────────────────────────────────────

async def test_all_stages_succeed(canonical_orchestrator, canonical_spies, store):
    state = await canonical_orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.COMPLETED
    assert state.completed_at is not None
    assert state.error is None
    assert all(r.status == StageStatus.COMPLETED for r in state.stage_results.values())
    assert all(spy.call_count == 1 for spy in canonical_spies.values())

    report = await canonical_orchestrator.get_report("doc-1")
    assert report.overall_status == ReportStatus.WARNING
    assert report.summary.total_issues == 3
    assert report.summary.images_analyzed == 2

    synthesis = state.stage(StageName.REPORT_SYNTHESIS).output
    assert synthesis["overallStatus"] == "warning"
    assert synthesis["artifacts"] == {"html": "doc-1/report.html"}


async def test_optional_failure_still_completes_and_report_ignores_it(
    canonical_orchestrator, canonical_spies
):
    canonical_spies[StageName.VISUAL_ANALYSIS].error = RuntimeError("vision service down")

    state = await canonical_orchestrator.start("D1")

    assert state.overall_status == WorkflowStatus.COMPLETED
    visual = state.stage(StageName.VISUAL_ANALYSIS)
    assert visual.status == StageStatus.FAILED
    assert visual.error_kind == ErrorKind.STAGE_FAILED
    assert "vision service down" in visual.error

    report = await canonical_orchestrator.get_report("D1")
    assert report.overall_status == ReportStatus.WARNING
    assert {issue.id for issue in report.issues} == {"C-1", "C-2"}
    assert report.summary.images_analyzed == 0


async def test_downstream_sees_only_completed_upstream(canonical_orchestrator, canonical_spies):
    canonical_spies[StageName.VISUAL_ANALYSIS].error = RuntimeError("down")

    await canonical_orchestrator.start("doc-1")

    upstream = canonical_spies[StageName.COMPLIANCE_CHECK].calls[0]["upstream"]
    assert set(upstream) == {StageName.CONTENT_EXTRACTION, StageName.REFERENCE_LOOKUP}


async def test_required_failure_stops_later_stages(canonical_orchestrator, canonical_spies, store):
    canonical_spies[StageName.COMPLIANCE_CHECK].error = RuntimeError("rules engine crashed")

    state = await canonical_orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.FAILED
    assert "compliance-check" in state.error
    assert canonical_spies[StageName.KNOWLEDGE_INDEXING].call_count == 0
    assert state.stage(StageName.KNOWLEDGE_INDEXING).status == StageStatus.PENDING
    assert state.stage(StageName.REPORT_SYNTHESIS).status == StageStatus.PENDING
    assert await store.get_report("doc-1") is None

    with pytest.raises(IncompleteWorkflowError):
        await canonical_orchestrator.get_report("doc-1")


async def test_get_report_before_compliance_completes(canonical_orchestrator):
    await canonical_orchestrator.start("doc-1", execute=False)

    with pytest.raises(IncompleteWorkflowError) as exc_info:
        await canonical_orchestrator.get_report("doc-1")

    assert exc_info.value.kind == ErrorKind.INCOMPLETE_WORKFLOW


async def test_report_artifact_is_html(canonical_orchestrator):
    await canonical_orchestrator.start("doc-1")

    content = await canonical_orchestrator.get_report_artifact("doc-1", "html")

    assert content.startswith(b"<!DOCTYPE html>")
    assert b"Unsubstantiated superlative" in content


# ─── Lifecycle ────────────────────────────────────────────

async def test_start_twice_raises(store):
    orchestrator = _orchestrator(store, ("a", SpyStage(), True))
    await orchestrator.start("doc-1")

    with pytest.raises(AlreadyStartedError):
        await orchestrator.start("doc-1")


async def test_start_without_execute_leaves_pending(store):
    spy = SpyStage()
    orchestrator = _orchestrator(store, ("a", spy, True))

    state = await orchestrator.start("doc-1", execute=False)

    assert state.overall_status == WorkflowStatus.PENDING
    assert spy.call_count == 0
    assert (await orchestrator.get_state("doc-1")).stage("a").status == StageStatus.PENDING


async def test_unknown_document_not_found(store):
    orchestrator = _orchestrator(store, ("a", SpyStage(), True))

    with pytest.raises(NotFoundError):
        await orchestrator.run("nope")
    with pytest.raises(NotFoundError):
        await orchestrator.get_state("nope")
    with pytest.raises(NotFoundError):
        await orchestrator.get_report("nope")


async def test_rerun_of_completed_workflow_is_noop(store):
    a, b = SpyStage(), SpyStage()
    orchestrator = _orchestrator(store, ("a", a, True), ("b", b, False))
    first = await orchestrator.start("doc-1")

    second = await orchestrator.run("doc-1")

    assert (a.call_count, b.call_count) == (1, 1)
    assert second == first


async def test_rerun_of_failed_workflow_is_noop(store):
    a = SpyStage(error=RuntimeError("boom"))
    orchestrator = _orchestrator(store, ("a", a, True))
    await orchestrator.start("doc-1")

    state = await orchestrator.run("doc-1")

    assert state.overall_status == WorkflowStatus.FAILED
    assert a.call_count == 1


# ─── Resume ───────────────────────────────────────────────

async def test_crash_mid_stage_reattempts_only_that_stage(store):
    a, b, c = SpyStage({"a": 1}), SpyStage({"b": 2}), SpyStage({"c": 3})
    orchestrator = _orchestrator(store, ("a", a, True), ("b", b, True), ("c", c, True))

    # State as left by a worker killed while "b" was running
    state = WorkflowState.create("doc-1", ["a", "b", "c"])
    state.begin()
    state.stage("a").mark_processing("a")
    state.stage("a").mark_completed("a", {"a": 1})
    state.stage("b").mark_processing("b")
    state.touch("b")
    await store.put("doc-1", state)

    result = await orchestrator.run("doc-1")

    assert result.overall_status == WorkflowStatus.COMPLETED
    assert (a.call_count, b.call_count, c.call_count) == (0, 1, 1)
    assert result.stage("b").attempts == 2
    assert b.calls[0]["upstream"] == {"a": {"a": 1}}


async def test_resume_skips_previously_failed_optional_stage(store):
    opt, last = SpyStage(), SpyStage()
    orchestrator = _orchestrator(store, ("opt", opt, False), ("last", last, True))

    state = WorkflowState.create("doc-1", ["opt", "last"])
    state.begin()
    state.stage("opt").mark_processing("opt")
    state.stage("opt").mark_failed("opt", "down")
    await store.put("doc-1", state)

    result = await orchestrator.run("doc-1")

    assert result.overall_status == WorkflowStatus.COMPLETED
    assert opt.call_count == 0
    assert result.stage("opt").status == StageStatus.FAILED


async def test_resume_aborts_on_recorded_required_failure(store):
    req, last = SpyStage(), SpyStage()
    orchestrator = _orchestrator(store, ("req", req, True), ("last", last, True))

    # Stage failure persisted but the worker died before failing the workflow
    state = WorkflowState.create("doc-1", ["req", "last"])
    state.begin()
    state.stage("req").mark_processing("req")
    state.stage("req").mark_failed("req", "boom")
    await store.put("doc-1", state)

    result = await orchestrator.run("doc-1")

    assert result.overall_status == WorkflowStatus.FAILED
    assert (req.call_count, last.call_count) == (0, 0)


async def test_store_outage_propagates_and_run_resumes(blobs):
    a, b = SpyStage({"a": 1}), SpyStage({"b": 2})
    registry = make_registry(("a", a, True), ("b", b, True))

    # puts: 1 create, 2 begin, 3 a→processing, 4 a→completed, 5 b→processing
    flaky = FlakyStateStore(blobs, fail_on_put=5)
    with pytest.raises(StoreUnavailableError):
        await Orchestrator(flaky, registry, default_timeout=5.0).start("doc-1")

    stored = await BlobStateStore(blobs).get("doc-1")
    assert stored.overall_status == WorkflowStatus.PROCESSING
    assert stored.stage("a").status == StageStatus.COMPLETED

    result = await Orchestrator(BlobStateStore(blobs), registry, default_timeout=5.0).run("doc-1")

    assert result.overall_status == WorkflowStatus.COMPLETED
    assert (a.call_count, b.call_count) == (1, 1)


async def test_stage_set_mismatch_is_rejected(store):
    await _orchestrator(store, ("a", SpyStage(), True)).start("doc-1", execute=False)

    other = _orchestrator(store, ("a", SpyStage(), True), ("b", SpyStage(), True))
    with pytest.raises(RegistryError):
        await other.run("doc-1")


# ─── Stage errors ─────────────────────────────────────────

async def test_timeout_marks_stage_failed_with_timeout_kind(store):
    slow, last = SpyStage(delay=1.0), SpyStage()
    registry = StageRegistry(
        [
            StageDescriptor(name="slow", run=slow, required=False, timeout=0.05),
            StageDescriptor(name="last", run=last),
        ]
    )
    orchestrator = Orchestrator(store, registry, default_timeout=5.0)

    state = await orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.COMPLETED
    assert state.stage("slow").status == StageStatus.FAILED
    assert state.stage("slow").error_kind == ErrorKind.TIMEOUT
    assert last.call_count == 1


async def test_non_json_output_fails_stage(store):
    orchestrator = _orchestrator(store, ("a", SpyStage({"when": object()}), True))

    state = await orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.FAILED
    assert state.stage("a").error_kind == ErrorKind.STAGE_FAILED
    assert "JSON" in state.stage("a").error


async def test_missing_dependency_is_recorded(store):
    opt = SpyStage(error=RuntimeError("down"))
    needs_opt = SpyStage(reads=("opt",))
    orchestrator = _orchestrator(store, ("opt", opt, False), ("needs-opt", needs_opt, True))

    state = await orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.FAILED
    assert state.stage("needs-opt").error_kind == ErrorKind.MISSING_DEPENDENCY
    assert needs_opt.call_count == 1


async def test_stage_receives_its_config(store):
    spy = SpyStage()
    registry = StageRegistry([StageDescriptor(name="a", run=spy, config={"rules": ["R1"]})])

    await Orchestrator(store, registry, default_timeout=5.0).start("doc-1")

    assert spy.calls[0]["config"] == {"rules": ["R1"]}
    assert spy.calls[0]["document_id"] == "doc-1"


async def test_stage_timeout_raised_by_stage_is_not_a_deadline(store):
    orchestrator = _orchestrator(store, ("a", SpyStage(error=TimeoutError("socket read timed out")), False))

    state = await orchestrator.start("doc-1")

    assert state.overall_status == WorkflowStatus.COMPLETED
    assert state.stage("a").error_kind == ErrorKind.STAGE_FAILED
    assert "socket read timed out" in state.stage("a").error


# ─── Key order from the store ─────────────────────────────

async def test_runs_when_store_reorders_stage_keys(blobs, canonical_spies):
    store = UnorderedStateStore(blobs)
    stages = {**canonical_spies, StageName.REPORT_SYNTHESIS: ReportBuilder(store).as_stage()}
    orchestrator = Orchestrator(
        store,
        build_default_registry(stages),
        default_timeout=5.0,
    )

    state = await orchestrator.start("doc-1")
    observed = await orchestrator.get_state("doc-1")

    assert state.overall_status == WorkflowStatus.COMPLETED
    assert list(observed.stage_results) == [
        StageName.CONTENT_EXTRACTION,
        StageName.VISUAL_ANALYSIS,
        StageName.REFERENCE_LOOKUP,
        StageName.COMPLIANCE_CHECK,
        StageName.KNOWLEDGE_INDEXING,
        StageName.REPORT_SYNTHESIS,
    ]
    assert all(spy.call_count == 1 for spy in canonical_spies.values())

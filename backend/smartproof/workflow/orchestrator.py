"""
Orchestrator — runs the registered stages for one document, in order.

Responsibilities:
    - Create the WorkflowState of a new document (start)
    - Execute each stage with timing, logging, timeout and error handling
    - Persist the state before and after every stage
    - Apply the failure policy: a failed required stage aborts the
      workflow, a failed optional stage is recorded and skipped
    - Expose the state and the final report to observers

`run` is re-entrant.  Completed stages are never re-executed, so after a
crash (or a StoreUnavailableError) the same document can simply be run
again; a stage left `processing` is re-attempted.  Callers must make sure
only one `run` per document is active at a time.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any

from smartproof.core.config import settings
from smartproof.core.constants import StageName, StageStatus, WorkflowStatus
from smartproof.core.logging import get_logger
from smartproof.workflow.errors import (
    AlreadyStartedError,
    IncompleteWorkflowError,
    MissingDependencyError,
    NotFoundError,
    RegistryError,
    StageFailedError,
    StageTimeoutError,
    StoreUnavailableError,
    WorkflowError,
)
from smartproof.workflow.models import ComplianceReport
from smartproof.workflow.registry import StageRegistry
from smartproof.workflow.stage import StageDescriptor, StageOutputs
from smartproof.workflow.state import WorkflowState
from smartproof.workflow.store import StateStore

# Errors a stage may raise that keep their own kind on the stage record
_PASSTHROUGH_ERRORS = (MissingDependencyError, StageFailedError, StageTimeoutError)


class Orchestrator:
    """
    Drives a StageRegistry against documents, persisting to a StateStore.

    Usage::

        orchestrator = Orchestrator(store=BlobStateStore(LocalBlobStore("./data")),
                                    registry=build_default_registry(stages))
        await orchestrator.start("doc-123")          # register + run
        state = await orchestrator.get_state("doc-123")
        report = await orchestrator.get_report("doc-123")
    """

    def __init__(
        self,
        store: StateStore,
        registry: StageRegistry,
        *,
        default_timeout: float | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.default_timeout = (
            default_timeout if default_timeout is not None else settings.STAGE_TIMEOUT_SECONDS
        )
        self.logger = get_logger("workflow.orchestrator")

    # ─── Public API ────────────────────────────────────

    async def start(self, document_id: str, *, execute: bool = True) -> WorkflowState:
        """
        Register a new document and (by default) run its workflow.

        With execute=False the state is only created; a worker is
        expected to call `run` later.

        Raises:
            AlreadyStartedError: A workflow already exists for document_id.
        """
        if await self.store.get(document_id) is not None:
            raise AlreadyStartedError(
                f"Workflow already started for document '{document_id}'",
                document_id=document_id,
            )

        state = WorkflowState.create(document_id, self.registry.names)
        await self.store.put(document_id, state)

        self.logger.info(
            "Workflow registered",
            document_id=document_id,
            stages=self.registry.names,
        )

        if execute:
            return await self.run(document_id)
        return state

    async def run(self, document_id: str) -> WorkflowState:
        """
        Execute (or resume) the workflow of `document_id`.

        Returns the final state.  A failed required stage does not raise:
        the returned state has overall_status == failed.

        Raises:
            NotFoundError: The document was never started.
            StoreUnavailableError: The state could not be persisted;
                re-run later to resume.
        """
        state = await self._load(document_id)
        log = self.logger.bind(document_id=document_id, total_stages=len(self.registry))

        if state.is_terminal:
            log.info("Workflow already finished, nothing to run", status=str(state.overall_status))
            return state

        self._check_stage_set(state)

        if state.overall_status == WorkflowStatus.PENDING:
            state.begin()
            state.touch()
            await self.store.put(document_id, state)
            log.info("Workflow started")
        else:
            log.info("Workflow resumed", current_stage=state.current_stage)

        started = time.monotonic()

        for index, stage in enumerate(self.registry):
            stage_log = log.bind(
                stage_name=stage.name,
                stage_index=index + 1,
                required=stage.required,
            )

            # ── 1. Load the current state ─────────────
            state = await self._load(document_id)
            record = state.stage(stage.name)

            # ── 2. Skip finished stages ───────────────
            if record.status == StageStatus.COMPLETED:
                stage_log.info("Stage already completed, skipping")
                continue

            if record.status == StageStatus.FAILED:
                if stage.required:
                    # Crashed between recording the stage failure and the abort
                    return await self._abort(state, stage, record.error or "unknown error", stage_log)
                stage_log.info("Optional stage previously failed, skipping")
                continue

            if record.status == StageStatus.PROCESSING:
                stage_log.warning("Stage was interrupted, re-attempting", attempts=record.attempts)

            # ── 3. Mark processing ────────────────────
            record.mark_processing(stage.name)
            state.touch(stage.name)
            await self.store.put(document_id, state)

            stage_log.info(f"Stage {index + 1}/{len(self.registry)}: {stage.label}")

            # ── 4. Invoke ─────────────────────────────
            outputs = self._outputs_for(state, stage)
            try:
                output = await self._invoke(stage, document_id, outputs)
            except _PASSTHROUGH_ERRORS as exc:
                # ── 6. Failure ────────────────────────
                record.mark_failed(stage.name, str(exc), exc.kind)
                state.touch(stage.name)
                await self.store.put(document_id, state)

                if stage.required:
                    return await self._abort(state, stage, str(exc), stage_log)

                stage_log.warning(
                    "Optional stage failed, continuing",
                    error=str(exc),
                    error_kind=str(exc.kind),
                    duration_ms=record.duration_ms,
                )
                continue

            # ── 5. Success ────────────────────────────
            record.mark_completed(stage.name, output)
            state.touch(stage.name)
            await self.store.put(document_id, state)

            stage_log.info("Stage completed", duration_ms=record.duration_ms)

        # ── 7. Finalise ───────────────────────────────
        state = await self._load(document_id)
        derived = state.derive_status(self.registry.required_names)
        if derived != WorkflowStatus.COMPLETED:
            # Only reachable if the registry and the stored state disagree
            raise RegistryError(
                f"Workflow loop finished but required stages are {derived}",
                document_id=document_id,
            )

        state.complete()
        state.touch()
        await self.store.put(document_id, state)

        log.info(
            "Workflow finished",
            status=str(state.overall_status),
            failed_optional=[
                name for name, r in state.stage_results.items() if r.status == StageStatus.FAILED
            ],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return state

    async def get_state(self, document_id: str) -> WorkflowState:
        """
        Read-only fetch of the current state, whatever its status.

        Raises:
            NotFoundError: The document was never started.
        """
        return await self._load(document_id)

    async def get_report(self, document_id: str) -> ComplianceReport:
        """
        Return the stored ComplianceReport.

        Raises:
            NotFoundError: The document was never started.
            IncompleteWorkflowError: compliance-check has not completed,
                or the report has not been written yet.
        """
        state = await self._load(document_id)
        report = await self.store.get_report(document_id)
        if report is not None:
            return report

        compliance = state.stage_results.get(StageName.COMPLIANCE_CHECK)
        if compliance is None or compliance.status != StageStatus.COMPLETED:
            raise IncompleteWorkflowError(
                "Compliance check has not completed",
                document_id=document_id,
                stage_name=StageName.COMPLIANCE_CHECK,
                details={"workflowStatus": str(state.overall_status)},
            )
        raise IncompleteWorkflowError(
            "Compliance report has not been generated yet",
            document_id=document_id,
            details={"workflowStatus": str(state.overall_status)},
        )

    async def get_report_artifact(self, document_id: str, name: str = "html") -> bytes:
        """Rendered report artifact (e.g. the HTML page)."""
        await self.get_report(document_id)
        content = await self.store.get_artifact(document_id, name)
        if content is None:
            raise NotFoundError(
                f"Report artifact '{name}' not found",
                document_id=document_id,
            )
        return content

    # ─── Internals ─────────────────────────────────────

    async def _load(self, document_id: str) -> WorkflowState:
        state = await self.store.get(document_id)
        if state is None:
            raise NotFoundError(
                f"No workflow for document '{document_id}'",
                document_id=document_id,
            )
        state.order_stages(self.registry.names)
        return state

    def _check_stage_set(self, state: WorkflowState) -> None:
        if set(state.stage_results) != set(self.registry.names):
            raise RegistryError(
                "Stored stages do not match the registry",
                document_id=state.document_id,
                details={
                    "stored": list(state.stage_results),
                    "registered": self.registry.names,
                },
            )

    def _outputs_for(self, state: WorkflowState, stage: StageDescriptor) -> StageOutputs:
        """Read view over completed outputs of the stages upstream of `stage`."""
        upstream = self.registry.upstream_of(stage.name)
        completed = state.completed_outputs()
        return StageOutputs(
            state.document_id,
            {name: completed[name] for name in upstream if name in completed},
            {name: state.stage(name).status for name in upstream},
        )

    async def _invoke(
        self,
        stage: StageDescriptor,
        document_id: str,
        outputs: StageOutputs,
    ) -> Any:
        """Call the stage under its timeout and normalise its errors."""
        timeout = stage.timeout if stage.timeout is not None else self.default_timeout
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                output = await stage.run(document_id, outputs, stage.config)
        except TimeoutError as exc:
            if not deadline.expired():
                # Raised by the stage itself (e.g. a socket timeout)
                raise StageFailedError(
                    f"TimeoutError: {exc}",
                    document_id=document_id,
                    stage_name=stage.name,
                ) from exc
            raise StageTimeoutError(
                f"Stage '{stage.name}' timed out after {timeout}s",
                timeout=timeout,
                document_id=document_id,
                stage_name=stage.name,
            ) from exc
        except (*_PASSTHROUGH_ERRORS, StoreUnavailableError):
            raise
        except WorkflowError as exc:
            raise StageFailedError(
                str(exc),
                document_id=document_id,
                stage_name=stage.name,
                details={"kind": str(exc.kind), **exc.details},
            ) from exc
        except Exception as exc:
            raise StageFailedError(
                f"{type(exc).__name__}: {exc}",
                document_id=document_id,
                stage_name=stage.name,
            ) from exc

        try:
            json.dumps(output)
        except (TypeError, ValueError) as exc:
            raise StageFailedError(
                f"Stage '{stage.name}' returned a non JSON-serialisable output: {exc}",
                document_id=document_id,
                stage_name=stage.name,
            ) from exc
        return output

    async def _abort(
        self,
        state: WorkflowState,
        stage: StageDescriptor,
        error: str,
        log,
    ) -> WorkflowState:
        """Required stage failed: mark the workflow failed and stop."""
        state.fail(f"Stage '{stage.name}' failed: {error}")
        state.touch(stage.name)
        await self.store.put(state.document_id, state)
        log.error("Required stage failed, workflow stopping", error=error)
        return state

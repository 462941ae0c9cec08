"""
Celery tasks — compliance workflow execution.

Wires the Orchestrator into the Celery task system.  The API registers a
document (Orchestrator.start with execute=False) and dispatches
`run_workflow`; the worker runs or resumes it.  Since `run` skips
completed stages, a redelivered task after a worker crash simply resumes.
"""

import asyncio

import structlog
from celery.signals import worker_init

from smartproof.stages.factory import init_state_store, open_orchestrator
from smartproof.tasks import celery_app
from smartproof.workflow.errors import NotFoundError, StoreUnavailableError
from smartproof.workflow.state import WorkflowState

logger = structlog.get_logger("tasks.workflow")


@worker_init.connect
def bootstrap_state_store(**kwargs) -> None:
    """Create the state tables once, before the worker takes tasks."""
    asyncio.run(init_state_store())


async def _run(document_id: str) -> WorkflowState:
    # Fresh engine / client per task: asyncio.run() gives each task its own loop
    async with open_orchestrator() as orchestrator:
        return await orchestrator.run(document_id)


def _summarise(state: WorkflowState) -> dict:
    return {
        "document_id": state.document_id,
        "status": str(state.overall_status),
        "current_stage": state.current_stage,
        "stages": {name: str(record.status) for name, record in state.stage_results.items()},
        "error": state.error,
    }


@celery_app.task(bind=True, name="smartproof.tasks.workflow_tasks.run_workflow")
def run_workflow(self, document_id: str):
    """
    Run (or resume) the compliance workflow of a registered document.

    StoreUnavailableError is retried with the configured delay; a failed
    required stage is a normal outcome and is returned, not raised.
    """
    task_log = logger.bind(task_id=self.request.id, document_id=document_id)
    task_log.info("Workflow task started")

    try:
        state = asyncio.run(_run(document_id))
    except NotFoundError as exc:
        task_log.error("Workflow task for unknown document", error=str(exc))
        return {"document_id": document_id, "status": "not_found", "error": str(exc)}
    except StoreUnavailableError as exc:
        task_log.warning(
            "State store unavailable, retrying",
            error=str(exc),
            retries=self.request.retries,
        )
        raise self.retry(exc=exc)

    task_log.info(
        "Workflow task finished",
        status=str(state.overall_status),
        current_stage=state.current_stage,
    )
    return _summarise(state)

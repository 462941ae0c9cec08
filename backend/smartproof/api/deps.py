"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import AsyncGenerator, Callable

from fastapi import HTTPException, status

from smartproof.core.constants import ErrorKind
from smartproof.stages.factory import open_orchestrator
from smartproof.workflow.errors import WorkflowError
from smartproof.workflow.orchestrator import Orchestrator

# Hands a registered document to a worker; returns the task ID
Dispatcher = Callable[[str], str | None]

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_STARTED: status.HTTP_409_CONFLICT,
    ErrorKind.INCOMPLETE_WORKFLOW: status.HTTP_409_CONFLICT,
    ErrorKind.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def get_orchestrator() -> AsyncGenerator[Orchestrator, None]:
    """Yield an Orchestrator for registering and reading workflows (no rule files needed)."""
    async with open_orchestrator(load_rules=False) as orchestrator:
        yield orchestrator


def celery_dispatcher(document_id: str) -> str | None:
    from smartproof.tasks.workflow_tasks import run_workflow

    return run_workflow.delay(document_id).id


def get_dispatcher() -> Dispatcher:
    return celery_dispatcher


def http_error(exc: WorkflowError) -> HTTPException:
    """Map a workflow error to the HTTP status its kind implies."""
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.to_dict(),
    )

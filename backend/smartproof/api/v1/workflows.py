"""
Workflow endpoints — register a document, observe its state, fetch the report.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import HTMLResponse

from smartproof.api.deps import Dispatcher, get_dispatcher, get_orchestrator, http_error
from smartproof.core.logging import get_logger
from smartproof.workflow.errors import WorkflowError
from smartproof.workflow.orchestrator import Orchestrator

logger = get_logger("api.workflows")

router = APIRouter(prefix="/workflows", tags=["Workflows"])


# ─── Start ────────────────────────────────────────────────
@router.post("/{document_id}", status_code=status.HTTP_202_ACCEPTED)
async def start_workflow(
    document_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    dispatch: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """
    Register a document and queue its workflow.

    1. Creates the WorkflowState (all stages pending), visible immediately
    2. Dispatches the Celery task that runs the stages
    """
    try:
        state = await orchestrator.start(document_id, execute=False)
    except WorkflowError as exc:
        raise http_error(exc) from exc

    task_id = dispatch(document_id)
    logger.info("Workflow queued", document_id=document_id, task_id=task_id)

    return {
        "documentId": document_id,
        "status": str(state.overall_status),
        "taskId": task_id,
    }


# ─── Resume ───────────────────────────────────────────────
@router.post("/{document_id}/resume", status_code=status.HTTP_202_ACCEPTED)
async def resume_workflow(
    document_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    dispatch: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Re-dispatch `run` for an interrupted workflow (no-op if finished)."""
    try:
        state = await orchestrator.get_state(document_id)
    except WorkflowError as exc:
        raise http_error(exc) from exc

    task_id = dispatch(document_id)
    logger.info(
        "Workflow resume queued",
        document_id=document_id,
        task_id=task_id,
        status=str(state.overall_status),
    )
    return {
        "documentId": document_id,
        "status": str(state.overall_status),
        "taskId": task_id,
    }


# ─── State ────────────────────────────────────────────────
@router.get("/{document_id}")
async def get_workflow_state(
    document_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Current WorkflowState, whatever its status."""
    try:
        state = await orchestrator.get_state(document_id)
    except WorkflowError as exc:
        raise http_error(exc) from exc
    return state.to_dict()


# ─── Report ───────────────────────────────────────────────
@router.get("/{document_id}/report")
async def get_compliance_report(
    document_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """The ComplianceReport; 409 until it has been generated."""
    try:
        report = await orchestrator.get_report(document_id)
    except WorkflowError as exc:
        raise http_error(exc) from exc
    return report.to_dict()


@router.get("/{document_id}/report.html", response_class=HTMLResponse)
async def get_compliance_report_html(
    document_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> HTMLResponse:
    try:
        content = await orchestrator.get_report_artifact(document_id, "html")
    except WorkflowError as exc:
        raise http_error(exc) from exc
    return HTMLResponse(content.decode("utf-8"))

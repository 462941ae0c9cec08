"""
Domain-specific exception hierarchy for the workflow engine.

All workflow exceptions inherit from WorkflowError so callers can
catch broadly or narrowly as needed.  Each exception carries an
ErrorKind plus structured context (document ID, stage name, etc.)
for logging and for the error recorded on the workflow state.
"""

from __future__ import annotations

from typing import Any

from smartproof.core.constants import ErrorKind


class WorkflowError(Exception):
    """Base exception for all workflow errors."""

    kind: ErrorKind = ErrorKind.STAGE_FAILED

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        stage_name: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.document_id = document_id
        self.stage_name = stage_name
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for API responses and log fields."""
        return {
            "kind": str(self.kind),
            "message": self.message,
            "documentId": self.document_id,
            "stage": self.stage_name,
            "details": self.details,
        }


class AlreadyStartedError(WorkflowError):
    """A workflow already exists for this document."""

    kind = ErrorKind.ALREADY_STARTED


class NotFoundError(WorkflowError):
    """No workflow state exists for this document."""

    kind = ErrorKind.NOT_FOUND


class MissingDependencyError(WorkflowError):
    """A stage asked for the output of a stage that has not completed."""

    kind = ErrorKind.MISSING_DEPENDENCY


class StageFailedError(WorkflowError):
    """A stage raised during execution.  Wraps the stage's own error."""

    kind = ErrorKind.STAGE_FAILED


class StageTimeoutError(WorkflowError):
    """A stage exceeded its timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        timeout: float | None = None,
        **kwargs,
    ) -> None:
        self.timeout = timeout
        super().__init__(message, **kwargs)


class IncompleteWorkflowError(WorkflowError):
    """The requested report cannot be produced yet."""

    kind = ErrorKind.INCOMPLETE_WORKFLOW


class StoreUnavailableError(WorkflowError):
    """The backing state store could not be read or written."""

    kind = ErrorKind.STORE_UNAVAILABLE


class InvalidTransitionError(WorkflowError):
    """A state transition would break the stage/workflow lifecycle."""

    kind = ErrorKind.INVALID_TRANSITION


class RegistryError(WorkflowError):
    """The stage registry is malformed (duplicate or unknown names)."""

    kind = ErrorKind.REGISTRY


class ServiceRequestError(StageFailedError):
    """A stage's backing service returned an error or could not be reached."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)

"""
Stage contract — the single function-shaped interface every stage implements.

A stage is an async callable::

    async def run(document_id: str, outputs: StageOutputs, config: Mapping) -> Any

    - `outputs` exposes the outputs of every COMPLETED upstream stage.
    - `config` is the stage's explicit configuration (rule sets, endpoints),
      passed on every invocation rather than captured at construction.
    - Failure is signalled by raising.

Stages never touch WorkflowState; the Orchestrator is the only writer.
Side effects (writing artifacts, indexing) must be safe to repeat, since a
stage left `processing` by a crash is re-attempted on resume.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator

from smartproof.core.constants import StageStatus
from smartproof.workflow.errors import MissingDependencyError

StageFn = Callable[[str, "StageOutputs", Mapping[str, Any]], Awaitable[Any]]

_MISSING = object()


class StageOutputs(Mapping):
    """
    Read-only view of completed upstream outputs, addressed by stage name.

    ``outputs["content-extraction"]`` (or ``require``) fails fast with
    MissingDependencyError when that stage has not completed.
    ``outputs.get(name, default)`` is the explicit way to read an
    optional upstream stage whose output may be absent.
    """

    def __init__(
        self,
        document_id: str,
        outputs: Mapping[str, Any],
        statuses: Mapping[str, StageStatus] | None = None,
    ) -> None:
        self._document_id = document_id
        # Deep copy so a stage cannot reach back into the persisted state
        self._outputs = copy.deepcopy(dict(outputs))
        self._statuses = dict(statuses or {})

    def __getitem__(self, name: str) -> Any:
        if name not in self._outputs:
            status = self._statuses.get(name)
            raise MissingDependencyError(
                f"Output of stage '{name}' is not available "
                f"(status: {status or 'not registered upstream'})",
                document_id=self._document_id,
                stage_name=name,
                details={"status": str(status) if status else None},
            )
        return self._outputs[name]

    def __contains__(self, name: object) -> bool:
        return name in self._outputs

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def get(self, name: str, default: Any = None) -> Any:
        return self._outputs.get(name, default)

    def require(self, name: str) -> Any:
        """Same as ``outputs[name]``; reads better at call sites."""
        return self[name]

    def status(self, name: str) -> StageStatus | None:
        """Status of an upstream stage (None if it is not upstream)."""
        return self._statuses.get(name)

    @property
    def document_id(self) -> str:
        return self._document_id


@dataclass(frozen=True)
class StageDescriptor:
    """
    One entry in the Stage Registry.

    Args:
        name: Unique stage name, e.g. "compliance-check".
        run: The stage callable (see StageFn).
        required: A failed required stage aborts the workflow;
                  a failed optional stage is recorded and skipped.
        description: Human-readable label for logs/UI.
        timeout: Seconds before the invocation is abandoned
                 (None → the orchestrator's default).
        config: Explicit configuration passed to every invocation.
    """

    name: str
    run: StageFn
    required: bool = True
    description: str = ""
    timeout: float | None = None
    config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.description or self.name

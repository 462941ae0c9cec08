"""
StageRegistry — the ordered, immutable list of stages a document goes through.

Order defines both execution order and dependency availability: a stage
can only read outputs of stages registered before it.

Canonical compliance flow:
    content-extraction (required)
    → visual-analysis (optional)
    → reference-lookup (optional)
    → compliance-check (required)
    → knowledge-indexing (optional)
    → report-synthesis (required)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Iterable, Iterator

from smartproof.core.constants import StageName
from smartproof.core.logging import get_logger
from smartproof.workflow.errors import RegistryError
from smartproof.workflow.stage import StageDescriptor, StageFn

logger = get_logger(__name__)


class StageRegistry:
    """Immutable ordered collection of StageDescriptor."""

    def __init__(self, stages: Iterable[StageDescriptor]) -> None:
        stages = tuple(stages)
        if not stages:
            raise RegistryError("A stage registry needs at least one stage")

        seen: set[str] = set()
        for stage in stages:
            if stage.name in seen:
                raise RegistryError(
                    f"Duplicate stage name '{stage.name}'",
                    stage_name=stage.name,
                )
            seen.add(stage.name)

        self._stages = stages
        self._index = {stage.name: i for i, stage in enumerate(stages)}

    def __iter__(self) -> Iterator[StageDescriptor]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str) -> StageDescriptor:
        return self._stages[self.index_of(name)]

    def index_of(self, name: str) -> int:
        if name not in self._index:
            raise RegistryError(f"Unknown stage '{name}'", stage_name=name)
        return self._index[name]

    @property
    def names(self) -> list[str]:
        return [stage.name for stage in self._stages]

    @property
    def required_names(self) -> list[str]:
        return [stage.name for stage in self._stages if stage.required]

    def upstream_of(self, name: str) -> list[str]:
        """Names of stages registered before `name`."""
        return self.names[: self.index_of(name)]


# ═══════════════════════════════════════════════════════════
#  Canonical compliance flow
# ═══════════════════════════════════════════════════════════

# name → (required, description)
DEFAULT_FLOW: dict[str, tuple[bool, str]] = {
    StageName.CONTENT_EXTRACTION: (True, "Extract text, tables and images from the document"),
    StageName.VISUAL_ANALYSIS: (False, "Analyze images for logo usage and quality"),
    StageName.REFERENCE_LOOKUP: (False, "Look up reference product information"),
    StageName.COMPLIANCE_CHECK: (True, "Check content against compliance rule sets"),
    StageName.KNOWLEDGE_INDEXING: (False, "Index the document in the knowledge base"),
    StageName.REPORT_SYNTHESIS: (True, "Aggregate issues and write the compliance report"),
}


def build_default_registry(
    stages: Mapping[str, StageFn],
    *,
    configs: Mapping[str, Mapping[str, Any]] | None = None,
    timeouts: Mapping[str, float] | None = None,
) -> StageRegistry:
    """
    Build the canonical registry from a name → StageFn mapping.

    Raises:
        RegistryError: If any canonical stage has no implementation.
    """
    configs = configs or {}
    timeouts = timeouts or {}

    missing = [name for name in DEFAULT_FLOW if name not in stages]
    if missing:
        raise RegistryError(
            f"No implementation for stage(s): {', '.join(missing)}",
            details={"missing": missing},
        )

    unknown = [name for name in stages if name not in DEFAULT_FLOW]
    if unknown:
        logger.warning("Ignoring non-canonical stages", stages=unknown)

    return StageRegistry(
        StageDescriptor(
            name=str(name),
            run=stages[name],
            required=required,
            description=description,
            timeout=timeouts.get(name),
            config=configs.get(name, {}),
        )
        for name, (required, description) in DEFAULT_FLOW.items()
    )

"""
Stage wiring — builds the canonical compliance workflow from settings.

    content-extraction ──► visual-analysis ──► reference-lookup
            │                                         │
            └────────────► compliance-check ◄─────────┘
                                 │
                     knowledge-indexing ──► report-synthesis

Every service stage is a ServiceStage pointed at the URL configured for
it; report-synthesis is the in-process ReportBuilder.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import httpx

from smartproof.core.config import settings
from smartproof.core.constants import StageName
from smartproof.core.logging import get_logger
from smartproof.stages.http import ServiceStage
from smartproof.stages.rules import load_rule_sets
from smartproof.storage.blob import LocalBlobStore
from smartproof.workflow.orchestrator import Orchestrator
from smartproof.workflow.registry import StageRegistry, build_default_registry
from smartproof.workflow.report import ReportBuilder
from smartproof.workflow.stage import StageFn
from smartproof.workflow.store import BlobStateStore, StateStore

logger = get_logger(__name__)


def build_stages(
    store: StateStore,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, StageFn]:
    """Stage name → implementation for the canonical flow."""
    common: dict[str, Any] = {
        "timeout": settings.STAGE_SERVICE_TIMEOUT,
        "api_key": settings.STAGE_SERVICE_API_KEY or None,
        "transport": transport,
    }
    return {
        StageName.CONTENT_EXTRACTION: ServiceStage(
            StageName.CONTENT_EXTRACTION,
            settings.CONTENT_EXTRACTION_URL,
            **common,
        ),
        StageName.VISUAL_ANALYSIS: ServiceStage(
            StageName.VISUAL_ANALYSIS,
            settings.VISUAL_ANALYSIS_URL,
            requires=[StageName.CONTENT_EXTRACTION],
            **common,
        ),
        StageName.REFERENCE_LOOKUP: ServiceStage(
            StageName.REFERENCE_LOOKUP,
            settings.REFERENCE_LOOKUP_URL,
            requires=[StageName.CONTENT_EXTRACTION],
            **common,
        ),
        StageName.COMPLIANCE_CHECK: ServiceStage(
            StageName.COMPLIANCE_CHECK,
            settings.COMPLIANCE_CHECK_URL,
            requires=[StageName.CONTENT_EXTRACTION],
            uses=[StageName.VISUAL_ANALYSIS, StageName.REFERENCE_LOOKUP],
            **common,
        ),
        StageName.KNOWLEDGE_INDEXING: ServiceStage(
            StageName.KNOWLEDGE_INDEXING,
            settings.KNOWLEDGE_INDEXING_URL,
            requires=[StageName.CONTENT_EXTRACTION],
            uses=[StageName.COMPLIANCE_CHECK],
            **common,
        ),
        StageName.REPORT_SYNTHESIS: ReportBuilder(store).as_stage(),
    }


def build_stage_configs(rules_dir: str | Path | None = None) -> dict[str, dict[str, Any]]:
    """Explicit per-stage configuration (compliance-check gets the rule sets)."""
    return {
        StageName.COMPLIANCE_CHECK: {
            "rules": load_rule_sets(rules_dir or settings.RULES_DIR),
        },
    }


def build_registry(
    store: StateStore,
    *,
    rules_dir: str | Path | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    load_rules: bool = True,
) -> StageRegistry:
    """
    Canonical registry.  With load_rules=False no rule files are read and
    compliance-check has no configuration: enough to register and observe
    workflows, not to run them.
    """
    return build_default_registry(
        build_stages(store, transport=transport),
        configs=build_stage_configs(rules_dir) if load_rules else None,
    )


@asynccontextmanager
async def open_state_store(backend: str | None = None) -> AsyncIterator[StateStore]:
    """
    StateStore for the configured backend.

    "blob" stores JSON documents under BLOB_STORAGE_ROOT; "sql" uses the
    Postgres tables and disposes its engine on exit.
    """
    backend = backend or settings.STATE_BACKEND

    if backend == "blob":
        yield BlobStateStore(LocalBlobStore(settings.BLOB_STORAGE_ROOT))
        return

    if backend == "sql":
        from smartproof.db.session import make_engine, make_session_factory
        from smartproof.workflow.sql_store import SqlStateStore

        engine = make_engine()
        try:
            yield SqlStateStore(make_session_factory(engine))
        finally:
            await engine.dispose()
        return

    raise ValueError(f"Unknown STATE_BACKEND '{backend}' (expected 'blob' or 'sql')")


async def init_state_store(backend: str | None = None) -> None:
    """Create the state tables when the backend is "sql"; no-op for "blob"."""
    backend = backend or settings.STATE_BACKEND
    if backend != "sql":
        return

    from smartproof.db.session import create_all, make_engine

    engine = make_engine()
    try:
        await create_all(engine)
    finally:
        await engine.dispose()
    logger.info("State tables ready", backend=backend)


@asynccontextmanager
async def open_orchestrator(
    *,
    backend: str | None = None,
    rules_dir: str | Path | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    load_rules: bool = True,
) -> AsyncIterator[Orchestrator]:
    """
    Wired Orchestrator.  Workers need the rules (load_rules=True); the API
    only registers and reads workflows and passes load_rules=False.
    """
    async with open_state_store(backend) as store:
        registry = build_registry(
            store,
            rules_dir=rules_dir,
            transport=transport,
            load_rules=load_rules,
        )
        logger.debug(
            "Orchestrator built",
            backend=backend or settings.STATE_BACKEND,
            stages=registry.names,
        )
        yield Orchestrator(store, registry)

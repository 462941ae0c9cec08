from __future__ import annotations

import asyncio
from typing import Any

import pytest
from sqlalchemy import inspect

from smartproof.core.config import settings
from smartproof.core.constants import StageName
from smartproof.db import session as db_session
from smartproof.db.session import make_engine
from smartproof.storage import MemoryBlobStore
from smartproof.workflow import (
    BlobStateStore,
    Orchestrator,
    ReportBuilder,
    StageDescriptor,
    StageRegistry,
    build_default_registry,
)


class SpyStage:
    """Stage callable that records invocations and returns (or raises) a canned result."""

    def __init__(
        self,
        output: Any = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        reads: tuple[str, ...] = (),
    ) -> None:
        self.output = {"ok": True} if output is None else output
        self.error = error
        self.delay = delay
        self.reads = reads
        self.calls: list[dict[str, Any]] = []

    async def __call__(self, document_id, outputs, config):
        self.calls.append(
            {
                "document_id": document_id,
                "upstream": dict(outputs),
                "config": dict(config),
            }
        )
        for name in self.reads:
            outputs.require(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output

    @property
    def call_count(self) -> int:
        return len(self.calls)


COMPLIANCE_OUTPUT = {
    "issues": [
        {
            "id": "C-1",
            "severity": "high",
            "category": "claims",
            "message": "Unsubstantiated superlative",
            "location": "page 1",
            "suggestion": "Cite a source",
            "confidence": 0.9,
            "ruleId": "BR-002",
        },
        {
            "id": "C-2",
            "severity": "low",
            "category": "style",
            "message": "Missing trademark symbol",
            "confidence": 0.6,
        },
    ]
}

VISUAL_OUTPUT = {
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
                    "confidence": 0.7,
                }
            ],
        },
        {"imageId": "img-2", "pageNumber": 2, "issues": []},
    ]
}


@pytest.fixture()
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
def store(blobs) -> BlobStateStore:
    return BlobStateStore(blobs)


@pytest.fixture()
def sql_backend(tmp_path, monkeypatch) -> str:
    """STATE_BACKEND=sql against a fresh sqlite file; returns its URL."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"
    monkeypatch.setattr(settings, "STATE_BACKEND", "sql")
    monkeypatch.setattr(db_session, "make_engine", lambda: make_engine(url))
    return url


async def sql_table_names(url: str) -> set[str]:
    engine = make_engine(url)
    try:
        async with engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()
    return set(names)


def make_registry(*stages: tuple[str, Any, bool]) -> StageRegistry:
    """Registry from (name, callable, required) triples."""
    return StageRegistry(
        StageDescriptor(name=name, run=run, required=required) for name, run, required in stages
    )


@pytest.fixture()
def canonical_spies() -> dict[str, SpyStage]:
    """Spy stages for every canonical stage except report-synthesis."""
    return {
        StageName.CONTENT_EXTRACTION: SpyStage({"text": "Hello", "images": ["img-1", "img-2"]}),
        StageName.VISUAL_ANALYSIS: SpyStage(VISUAL_OUTPUT),
        StageName.REFERENCE_LOOKUP: SpyStage({"products": []}),
        StageName.COMPLIANCE_CHECK: SpyStage(COMPLIANCE_OUTPUT, reads=(StageName.CONTENT_EXTRACTION,)),
        StageName.KNOWLEDGE_INDEXING: SpyStage({"indexed": True}),
    }


@pytest.fixture()
def canonical_orchestrator(store, canonical_spies) -> Orchestrator:
    stages = dict(canonical_spies)
    stages[StageName.REPORT_SYNTHESIS] = ReportBuilder(store).as_stage()
    return Orchestrator(store, build_default_registry(stages), default_timeout=5.0)

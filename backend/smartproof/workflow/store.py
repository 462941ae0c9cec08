"""
State Store — durable persistence of WorkflowState and ComplianceReport.

Semantics:
    - get/put are last-writer-wins.  There is no compare-and-swap: callers
      must guarantee a single writer per document (one Celery task / one
      orchestrator call at a time for a given document_id).
    - Every backend failure surfaces as StoreUnavailableError.  Anything
      persisted before the failure stays valid for a resumed run.

BlobStateStore layout (one prefix per document):

    {document_id}/workflow-state.json
    {document_id}/compliance-report.json
    {document_id}/report.html
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from smartproof.core.constants import REPORT_ARTIFACTS, REPORT_BLOB_NAME, STATE_BLOB_NAME
from smartproof.core.logging import get_logger
from smartproof.storage.blob import BlobNotFoundError, BlobStore
from smartproof.workflow.errors import StoreUnavailableError
from smartproof.workflow.models import ComplianceReport
from smartproof.workflow.state import WorkflowState

logger = get_logger(__name__)


def artifact_blob_name(name: str) -> str:
    """Blob name of a rendered artifact within a document's prefix."""
    if name in REPORT_ARTIFACTS:
        return REPORT_ARTIFACTS[name][0]
    return f"artifacts/{name}"


class StateStore(ABC):
    """Async persistence boundary consumed by the Orchestrator and Report Builder."""

    @abstractmethod
    async def get(self, document_id: str) -> WorkflowState | None:
        ...

    @abstractmethod
    async def put(self, document_id: str, state: WorkflowState) -> None:
        ...

    @abstractmethod
    async def get_report(self, document_id: str) -> ComplianceReport | None:
        ...

    @abstractmethod
    async def put_report(self, document_id: str, report: ComplianceReport) -> None:
        ...

    @abstractmethod
    async def put_artifact(
        self,
        document_id: str,
        name: str,
        content: bytes | str,
        content_type: str,
    ) -> str:
        """Store a rendered report artifact; return its storage key."""
        ...

    @abstractmethod
    async def get_artifact(self, document_id: str, name: str) -> bytes | None:
        ...


class BlobStateStore(StateStore):
    """StateStore persisting JSON documents in a BlobStore."""

    def __init__(self, blobs: BlobStore) -> None:
        self.blobs = blobs

    @staticmethod
    def _key(document_id: str, blob_name: str) -> str:
        return f"{document_id}/{blob_name}"

    async def _read_json(self, key: str) -> dict | None:
        try:
            raw = await self.blobs.read(key)
        except BlobNotFoundError:
            return None
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to read '{key}': {exc}") from exc
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise StoreUnavailableError(f"Corrupt JSON in '{key}': {exc}") from exc

    async def _write(self, key: str, content: bytes | str, content_type: str) -> None:
        try:
            await self.blobs.write(key, content, content_type)
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to write '{key}': {exc}") from exc

    async def get(self, document_id: str) -> WorkflowState | None:
        data = await self._read_json(self._key(document_id, STATE_BLOB_NAME))
        return WorkflowState.from_dict(data) if data is not None else None

    async def put(self, document_id: str, state: WorkflowState) -> None:
        await self._write(
            self._key(document_id, STATE_BLOB_NAME),
            json.dumps(state.to_dict(), indent=2),
            "application/json",
        )

    async def get_report(self, document_id: str) -> ComplianceReport | None:
        data = await self._read_json(self._key(document_id, REPORT_BLOB_NAME))
        return ComplianceReport.model_validate(data) if data is not None else None

    async def put_report(self, document_id: str, report: ComplianceReport) -> None:
        await self._write(
            self._key(document_id, REPORT_BLOB_NAME),
            json.dumps(report.to_dict(), indent=2),
            "application/json",
        )
        logger.info("Compliance report stored", document_id=document_id)

    async def put_artifact(
        self,
        document_id: str,
        name: str,
        content: bytes | str,
        content_type: str,
    ) -> str:
        key = self._key(document_id, artifact_blob_name(name))
        await self._write(key, content, content_type)
        return key

    async def get_artifact(self, document_id: str, name: str) -> bytes | None:
        key = self._key(document_id, artifact_blob_name(name))
        try:
            return await self.blobs.read(key)
        except BlobNotFoundError:
            return None
        except Exception as exc:
            raise StoreUnavailableError(f"Failed to read '{key}': {exc}") from exc

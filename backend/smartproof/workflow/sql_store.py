"""
SqlStateStore — StateStore backed by SQLAlchemy async sessions.

Each call opens its own session + transaction, so the store is safe to
share between concurrently running documents.  Writes are upserts
(session.merge); last writer wins, same as the blob store.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smartproof.core.logging import get_logger
from smartproof.db.models import ComplianceReportRecord, ReportArtifactRecord, WorkflowStateRecord
from smartproof.workflow.errors import StoreUnavailableError
from smartproof.workflow.models import ComplianceReport
from smartproof.workflow.state import WorkflowState
from smartproof.workflow.store import StateStore

logger = get_logger(__name__)

# Driver-level connection errors (asyncpg raises OSError subclasses)
_STORE_ERRORS = (SQLAlchemyError, OSError)


class SqlStateStore(StateStore):
    """StateStore over the workflow_states / compliance_reports tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, document_id: str) -> WorkflowState | None:
        try:
            async with self.session_factory() as session:
                record = await session.get(WorkflowStateRecord, document_id)
                data = record.data if record else None
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to load workflow state: {exc}",
                document_id=document_id,
            ) from exc
        return WorkflowState.from_dict(data) if data is not None else None

    async def put(self, document_id: str, state: WorkflowState) -> None:
        record = WorkflowStateRecord(
            document_id=document_id,
            overall_status=str(state.overall_status),
            current_stage=state.current_stage,
            started_at=state.started_at,
            completed_at=state.completed_at,
            error_message=state.error,
            data=state.to_dict(),
            updated_at=state.updated_at,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.merge(record)
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to save workflow state: {exc}",
                document_id=document_id,
            ) from exc

    async def get_report(self, document_id: str) -> ComplianceReport | None:
        try:
            async with self.session_factory() as session:
                record = await session.get(ComplianceReportRecord, document_id)
                data = record.data if record else None
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to load compliance report: {exc}",
                document_id=document_id,
            ) from exc
        return ComplianceReport.model_validate(data) if data is not None else None

    async def put_report(self, document_id: str, report: ComplianceReport) -> None:
        record = ComplianceReportRecord(
            document_id=document_id,
            overall_status=str(report.overall_status),
            generated_at=report.generated_at,
            data=report.to_dict(),
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.merge(record)
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to save compliance report: {exc}",
                document_id=document_id,
            ) from exc
        logger.info("Compliance report stored", document_id=document_id)

    async def put_artifact(
        self,
        document_id: str,
        name: str,
        content: bytes | str,
        content_type: str,
    ) -> str:
        record = ReportArtifactRecord(
            document_id=document_id,
            name=name,
            content_type=content_type,
            content=content.encode("utf-8") if isinstance(content, str) else content,
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.merge(record)
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to save report artifact '{name}': {exc}",
                document_id=document_id,
            ) from exc
        return f"{ReportArtifactRecord.__tablename__}/{document_id}/{name}"

    async def get_artifact(self, document_id: str, name: str) -> bytes | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(ReportArtifactRecord.content).where(
                        ReportArtifactRecord.document_id == document_id,
                        ReportArtifactRecord.name == name,
                    )
                )
                return result.scalar_one_or_none()
        except _STORE_ERRORS as exc:
            raise StoreUnavailableError(
                f"Failed to load report artifact '{name}': {exc}",
                document_id=document_id,
            ) from exc

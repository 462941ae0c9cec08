"""
Models package — re-exports Base and all models.

Import models here so `Base.metadata.create_all` picks up every table.

When adding a new model:
    1. Create `smartproof/db/models/<table_name>.py`
    2. Import it here
"""

from smartproof.db.models.base import Base
from smartproof.db.models.compliance_report import ComplianceReportRecord, ReportArtifactRecord
from smartproof.db.models.workflow_state import WorkflowStateRecord

__all__ = [
    "Base",
    "ComplianceReportRecord",
    "ReportArtifactRecord",
    "WorkflowStateRecord",
]

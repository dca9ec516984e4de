"""
Upload job domain models.
Represents one bulk-upload submission and the audit record of each of its rows.
"""
from datetime import datetime
from enum import Enum
from typing import Optional


class EntityKind(str, Enum):
    STUDENT = "STUDENT"
    TRAINER = "TRAINER"


class JobStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RowOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class UploadJob:
    """Domain model for a bulk-upload job summary."""

    def __init__(
        self,
        job_id: str,
        tenant_id: str,
        uploader_id: str,
        entity_kind: EntityKind,
        file_name: str,
        created_at: datetime,
        status: JobStatus = JobStatus.PROCESSING,
        total_rows: int = 0,
        succeeded_rows: int = 0,
        failed_rows: int = 0,
        skipped_rows: int = 0,
        completed_at: Optional[datetime] = None,
        error_report: Optional[str] = None,
        source_job_id: Optional[str] = None
    ):
        self.job_id = job_id
        self.tenant_id = tenant_id
        self.uploader_id = uploader_id
        self.entity_kind = EntityKind(entity_kind)
        self.file_name = file_name
        self.created_at = created_at
        self.status = JobStatus(status)
        self.total_rows = total_rows
        self.succeeded_rows = succeeded_rows
        self.failed_rows = failed_rows
        self.skipped_rows = skipped_rows
        self.completed_at = completed_at
        self.error_report = error_report
        self.source_job_id = source_job_id

    @property
    def is_finalized(self) -> bool:
        return self.status != JobStatus.PROCESSING

    def __repr__(self):
        return f"UploadJob(job_id={self.job_id}, tenant_id={self.tenant_id}, status={self.status.value})"


class UploadRowResult:
    """Immutable audit record for one input row of an upload job."""

    def __init__(
        self,
        job_id: str,
        row_number: int,
        outcome: RowOutcome,
        raw_data: Optional[dict] = None,
        entity_id: Optional[str] = None,
        error_message: Optional[str] = None
    ):
        self.job_id = job_id
        self.row_number = row_number
        self.outcome = RowOutcome(outcome)
        self.raw_data = raw_data or {}
        self.entity_id = entity_id
        self.error_message = error_message

    def __repr__(self):
        return f"UploadRowResult(job_id={self.job_id}, row_number={self.row_number}, outcome={self.outcome.value})"

"""
Data Transfer Objects for the bulk upload API.
Defines response schemas for upload submission, history and audit queries.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from provisioning.models.upload_job import UploadJob, UploadRowResult


class RowErrorResponse(BaseModel):
    """One row that did not produce an account."""
    row_number: int = Field(..., description="1-based row number, header excluded")
    outcome: str = Field(..., description="FAILED or SKIPPED")
    error_message: Optional[str] = None
    row_data: Dict[str, str] = Field(default_factory=dict, description="Email and name of the row")

    @classmethod
    def from_result(cls, result: UploadRowResult) -> "RowErrorResponse":
        return cls(
            row_number=result.row_number,
            outcome=result.outcome.value,
            error_message=result.error_message,
            row_data={
                "email": result.raw_data.get("Email", ""),
                "name": result.raw_data.get("Full Name", ""),
            }
        )


class BulkUploadResponse(BaseModel):
    """Response schema for an upload submission; row failures are data."""
    job_id: str = Field(..., description="Unique identifier of the upload job")
    status: str = Field(..., description="COMPLETED or FAILED")
    entity_kind: str
    file_name: str
    total_rows: int = 0
    succeeded_rows: int = 0
    failed_rows: int = 0
    skipped_rows: int = 0
    error_report: Optional[str] = None
    errors: List[RowErrorResponse] = Field(default_factory=list)


class UploadJobResponse(BaseModel):
    """Response schema for an upload job summary."""
    job_id: str
    tenant_id: str
    uploader_id: str
    entity_kind: str
    file_name: str
    status: str
    total_rows: int
    succeeded_rows: int
    failed_rows: int
    skipped_rows: int
    created_at: datetime
    completed_at: Optional[datetime] = None
    error_report: Optional[str] = None
    source_job_id: Optional[str] = None

    @classmethod
    def from_job(cls, job: UploadJob) -> "UploadJobResponse":
        return cls(
            job_id=job.job_id,
            tenant_id=job.tenant_id,
            uploader_id=job.uploader_id,
            entity_kind=job.entity_kind.value,
            file_name=job.file_name,
            status=job.status.value,
            total_rows=job.total_rows,
            succeeded_rows=job.succeeded_rows,
            failed_rows=job.failed_rows,
            skipped_rows=job.skipped_rows,
            created_at=job.created_at,
            completed_at=job.completed_at,
            error_report=job.error_report,
            source_job_id=job.source_job_id
        )


class UploadHistoryResponse(BaseModel):
    """Response schema for a tenant's upload history, most recent first."""
    jobs: List[UploadJobResponse]
    count: int
    next_token: Optional[str] = None


class RowResultResponse(BaseModel):
    """Response schema for one ledger entry."""
    row_number: int
    outcome: str
    entity_id: Optional[str] = None
    error_message: Optional[str] = None
    raw_data: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: UploadRowResult) -> "RowResultResponse":
        return cls(
            row_number=result.row_number,
            outcome=result.outcome.value,
            entity_id=result.entity_id,
            error_message=result.error_message,
            raw_data={key: str(value) for key, value in result.raw_data.items()}
        )


class UploadJobDetailResponse(BaseModel):
    """Response schema for a job together with its row results."""
    job: UploadJobResponse
    results: List[RowResultResponse]

"""
Upload Service for business logic.
Orchestrates bulk roster uploads between the API, the provisioning pipeline
and the upload ledger.
"""
import csv
import io
import logging
import uuid
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional, Tuple

from provisioning.core import config
from provisioning.core.exceptions import (
    CSVProcessingException,
    LedgerException,
    NotificationException,
    UploadJobNotFoundException,
    ValidationException,
)
from provisioning.models.dto.upload_dto import (
    BulkUploadResponse,
    RowErrorResponse,
    RowResultResponse,
    UploadHistoryResponse,
    UploadJobDetailResponse,
    UploadJobResponse,
)
from provisioning.models.upload_job import EntityKind, JobStatus, RowOutcome, UploadJob
from provisioning.repositories.account_repository import AccountRepository
from provisioning.repositories.email_repository import EmailRepository
from provisioning.repositories.upload_ledger_repository import UploadLedgerRepository
from provisioning.services.invitation_service import InvitationService
from provisioning.services.provisioning_executor import ExecutionReport, ProvisioningExecutor
from provisioning.services.row_decoder import RowDecoder, generate_template, schema_for
from provisioning.services.row_validator import RowValidator

logger = logging.getLogger(__name__)


class UploadService:
    """Service for bulk upload operations."""

    def __init__(
        self,
        account_repository: AccountRepository = None,
        ledger_repository: UploadLedgerRepository = None,
        invitation_service: InvitationService = None,
        email_repository: EmailRepository = None
    ):
        self.account_repository = account_repository or AccountRepository()
        self.ledger_repository = ledger_repository or UploadLedgerRepository()
        self.email_repository = email_repository or EmailRepository()
        self.invitation_service = invitation_service or InvitationService(
            account_repository=self.account_repository,
            email_repository=self.email_repository
        )

    def submit_upload(
        self,
        file: BinaryIO,
        filename: str,
        tenant_id: str,
        uploader_id: str,
        kind: EntityKind,
        enqueue_invitation: Optional[Callable[[str], None]] = None,
        uploader_email: Optional[str] = None,
        source_job_id: Optional[str] = None
    ) -> BulkUploadResponse:
        """
        Handle the bulk upload workflow for one roster file.

        Row-level problems never raise: they are recorded in the ledger and
        returned in the summary. A file that cannot be decoded at all yields a
        FAILED job with an error report.

        Args:
            file: CSV byte stream
            filename: Original filename
            tenant_id: Tenant the accounts are created for
            uploader_id: Administrator submitting the file
            kind: STUDENT or TRAINER
            enqueue_invitation: Schedules an invitation for a new account id.
                When omitted, invitations are sent after the job is finalized.
            uploader_email: Where to send the upload report, if anywhere
            source_job_id: Job this upload replays, for retries

        Returns:
            BulkUploadResponse with counts and per-row errors

        Raises:
            LedgerException: If the upload job cannot be created
        """
        kind = EntityKind(kind)
        job = UploadJob(
            job_id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            uploader_id=uploader_id,
            entity_kind=kind,
            file_name=filename,
            created_at=datetime.now(timezone.utc),
            source_job_id=source_job_id
        )
        self.ledger_repository.create_job(job)
        logger.info("Upload job %s started: %s %s upload for tenant %s", job.job_id, filename, kind.value, tenant_id)

        decoder = RowDecoder(file, kind)
        try:
            decoder.open()
        except CSVProcessingException as e:
            logger.warning("Upload job %s rejected: %s", job.job_id, e.message)
            finalized = self._finalize(job, f"Structural error: {e.message}")
            return self._summary(finalized, ExecutionReport())

        validator = RowValidator(kind, tenant_id, self.account_repository)
        executor = ProvisioningExecutor(self.account_repository, self.ledger_repository)
        report = ExecutionReport()
        try:
            executor.run(job, decoder.rows(), validator, enqueue_invitation=enqueue_invitation, report=report)
        except LedgerException as e:
            logger.error("Upload job %s: ledger write failed, stopping: %s", job.job_id, e.message)
            summary = self._degraded_summary(job, report, f"Upload ledger failure: {e.message}")
            self._send_pending_invitations(report, enqueue_invitation)
            return summary

        finalized = self._finalize(job, report.abort_reason)
        logger.info(
            "Upload job %s %s: %s rows, %s succeeded, %s failed",
            job.job_id, finalized.status.value, finalized.total_rows,
            finalized.succeeded_rows, finalized.failed_rows
        )
        self._send_pending_invitations(report, enqueue_invitation)
        self._send_upload_report(finalized, uploader_email)
        return self._summary(finalized, report)

    def get_upload_history(
        self,
        tenant_id: str,
        limit: int = 10,
        next_token: Optional[str] = None
    ) -> Tuple[UploadHistoryResponse, Optional[str]]:
        """
        Retrieve a tenant's upload jobs, most recent first.

        Raises:
            ValidationException: If limit or next_token is invalid
            LedgerException: If the query fails
        """
        if limit < 1 or limit > config.settings.pagination_max_limit:
            raise ValidationException(f"limit must be between 1 and {config.settings.pagination_max_limit}")

        jobs, token = self.ledger_repository.list_jobs_by_tenant(tenant_id, limit, next_token)
        responses = [UploadJobResponse.from_job(job) for job in jobs]
        return UploadHistoryResponse(jobs=responses, count=len(responses)), token

    def get_upload_job(self, tenant_id: str, job_id: str) -> UploadJobDetailResponse:
        """
        Retrieve one job of the caller's tenant with its row results.

        Raises:
            UploadJobNotFoundException: If the job does not exist for this tenant
        """
        job = self._get_tenant_job(tenant_id, job_id)
        results = self.ledger_repository.list_results(job_id)
        return UploadJobDetailResponse(
            job=UploadJobResponse.from_job(job),
            results=[RowResultResponse.from_result(result) for result in results]
        )

    def retry_failed_rows(
        self,
        tenant_id: str,
        job_id: str,
        uploader_id: str,
        enqueue_invitation: Optional[Callable[[str], None]] = None,
        uploader_email: Optional[str] = None
    ) -> BulkUploadResponse:
        """
        Replay the rows a finalized job did not provision as a new job.

        The raw snapshots of FAILED and SKIPPED rows are rebuilt into a CSV of
        the job's kind and submitted again, so the new job gets its own
        contiguous row numbers and its own ledger entries.

        Raises:
            UploadJobNotFoundException: If the job does not exist for this tenant
            ValidationException: If the job is still processing or has nothing to retry
        """
        job = self._get_tenant_job(tenant_id, job_id)
        if not job.is_finalized:
            raise ValidationException(f"Upload job '{job_id}' is still processing")

        retryable = [
            result for result in self.ledger_repository.list_results(job_id)
            if result.outcome != RowOutcome.SUCCESS
        ]
        if not retryable:
            raise ValidationException(f"Upload job '{job_id}' has no failed rows to retry")

        columns = schema_for(job.entity_kind).columns
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(columns)
        for result in retryable:
            writer.writerow([result.raw_data.get(column, "") for column in columns])

        logger.info("Retrying %s rows of upload job %s", len(retryable), job_id)
        return self.submit_upload(
            io.BytesIO(buffer.getvalue().encode("utf-8")),
            f"retry-{job.file_name}",
            tenant_id,
            uploader_id,
            job.entity_kind,
            enqueue_invitation=enqueue_invitation,
            uploader_email=uploader_email,
            source_job_id=job_id
        )

    def get_template(self, kind: EntityKind) -> bytes:
        return generate_template(kind)

    def _get_tenant_job(self, tenant_id: str, job_id: str) -> UploadJob:
        job = self.ledger_repository.get_job(job_id)
        if job is None or job.tenant_id != tenant_id:
            raise UploadJobNotFoundException(f"Upload job '{job_id}' not found")
        return job

    def _finalize(self, job: UploadJob, abort_reason: Optional[str]) -> UploadJob:
        return self.ledger_repository.finalize_job(job.job_id, datetime.now(timezone.utc), abort_reason)

    def _degraded_summary(self, job: UploadJob, report: ExecutionReport, reason: str) -> BulkUploadResponse:
        try:
            finalized = self._finalize(job, reason)
            return self._summary(finalized, report)
        except LedgerException as e:
            logger.error("Upload job %s could not be marked FAILED: %s", job.job_id, e.message)

        skipped = sum(1 for result in report.results if result.outcome == RowOutcome.SKIPPED)
        return BulkUploadResponse(
            job_id=job.job_id,
            status=JobStatus.FAILED.value,
            entity_kind=job.entity_kind.value,
            file_name=job.file_name,
            total_rows=len(report.results),
            succeeded_rows=report.succeeded,
            failed_rows=report.failed,
            skipped_rows=skipped,
            error_report=reason,
            errors=self._row_errors(report)
        )

    def _summary(self, job: UploadJob, report: ExecutionReport) -> BulkUploadResponse:
        return BulkUploadResponse(
            job_id=job.job_id,
            status=job.status.value,
            entity_kind=job.entity_kind.value,
            file_name=job.file_name,
            total_rows=job.total_rows,
            succeeded_rows=job.succeeded_rows,
            failed_rows=job.failed_rows,
            skipped_rows=job.skipped_rows,
            error_report=job.error_report,
            errors=self._row_errors(report)
        )

    def _row_errors(self, report: ExecutionReport):
        return [
            RowErrorResponse.from_result(result)
            for result in report.results
            if result.outcome != RowOutcome.SUCCESS
        ]

    def _send_pending_invitations(
        self,
        report: ExecutionReport,
        enqueue_invitation: Optional[Callable[[str], None]]
    ) -> None:
        if enqueue_invitation is not None:
            return
        for account_id in report.provisioned_account_ids:
            self.invitation_service.dispatch(account_id)

    def _send_upload_report(self, job: UploadJob, uploader_email: Optional[str]) -> None:
        if not uploader_email or not config.settings.send_upload_reports:
            return

        body = (
            f"Your {job.entity_kind.value.lower()} upload '{job.file_name}' has finished.\n\n"
            f"Status: {job.status.value}\n"
            f"Total rows: {job.total_rows}\n"
            f"Succeeded: {job.succeeded_rows}\n"
            f"Failed: {job.failed_rows}\n"
        )
        if job.skipped_rows:
            body += f"Not attempted: {job.skipped_rows}\n"
        if job.error_report:
            body += f"\n{job.error_report}\n"
        body += f"\nUpload job id: {job.job_id}\n"

        try:
            self.email_repository.send_email(uploader_email, f"Upload report: {job.file_name}", body)
        except NotificationException as e:
            logger.warning("Upload report for job %s not sent: %s", job.job_id, e.message)

"""
Provisioning executor for bulk uploads.

Walks the decoded rows of one upload job in file order. Each admitted row is
provisioned as its own unit of work (credential + profile + uniqueness claims in
one DynamoDB transaction); every row, whatever its fate, gets exactly one
ledger entry. A row's failure never stops the job. The only early stop is the
systemic one: after ``systemic_failure_threshold`` consecutive rows end in
storage errors, the rest of the file is recorded as SKIPPED without touching
account storage.
"""
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from provisioning.core import config
from provisioning.core.exceptions import (
    DynamoDBException,
    TransientStorageException,
    UniquenessViolationException,
)
from provisioning.models.tenant_member import MemberProfile, TenantMember
from provisioning.models.upload_job import RowOutcome, UploadJob, UploadRowResult
from provisioning.repositories.member_store import MemberStore
from provisioning.repositories.upload_ledger_repository import UploadLedgerRepository
from provisioning.services.credentials import generate_temporary_secret, hash_secret
from provisioning.services.row_decoder import DecodedRow
from provisioning.services.row_validator import AdmittedRecord, RowValidator

logger = logging.getLogger(__name__)

SKIPPED_MESSAGE = "Not attempted: upload aborted after repeated storage failures"


class ExecutionReport:
    """In-memory account of what one executor run recorded."""

    def __init__(self):
        self.results: List[UploadRowResult] = []
        self.provisioned_account_ids: List[str] = []
        self.abort_reason: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.abort_reason is not None

    @property
    def succeeded(self) -> int:
        return len(self.provisioned_account_ids)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


class ProvisioningExecutor:
    """Provisions validated rows one isolated unit of work at a time."""

    def __init__(
        self,
        member_store: MemberStore,
        ledger: UploadLedgerRepository,
        max_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
        systemic_failure_threshold: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        settings = config.settings
        self.member_store = member_store
        self.ledger = ledger
        self.max_attempts = max(1, max_attempts or settings.provisioning_max_attempts)
        self.retry_backoff_seconds = (
            settings.provisioning_retry_backoff_seconds if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self.systemic_failure_threshold = systemic_failure_threshold or settings.systemic_failure_threshold
        self.sleep = sleep

    def run(
        self,
        job: UploadJob,
        rows: Iterable[DecodedRow],
        validator: RowValidator,
        enqueue_invitation: Optional[Callable[[str], None]] = None,
        report: Optional[ExecutionReport] = None
    ) -> ExecutionReport:
        """
        Process every row of the job and append its result to the ledger.

        Args:
            job: PROCESSING upload job the rows belong to
            rows: Decoded rows in file order
            validator: Validator bound to the job's tenant and kind
            enqueue_invitation: Called with each new account id; must not block
            report: Report to fill in; lets callers see partial progress if a ledger write fails

        Returns:
            ExecutionReport of the recorded results

        Raises:
            LedgerException: If a result cannot be recorded
        """
        report = report if report is not None else ExecutionReport()
        consecutive_storage_failures = 0

        for row in rows:
            if report.aborted:
                self._record(report, job, row.row_number, RowOutcome.SKIPPED, row.fields, error=SKIPPED_MESSAGE)
                continue

            try:
                outcome = validator.validate(row)
            except DynamoDBException as e:
                logger.warning("Row %s of job %s: uniqueness lookup failed: %s", row.row_number, job.job_id, e.message)
                self._record(report, job, row.row_number, RowOutcome.FAILED, row.fields, error=e.message)
                consecutive_storage_failures += 1
                self._check_systemic(report, job, row.row_number, consecutive_storage_failures)
                continue

            if not outcome.admitted:
                logger.info("Row %s of job %s rejected: %s", row.row_number, job.job_id, outcome.reason)
                self._record(report, job, row.row_number, RowOutcome.FAILED, row.fields, error=outcome.reason)
                continue

            try:
                account_id = self._provision_with_retry(job, outcome.record)
            except UniquenessViolationException as e:
                logger.warning("Row %s of job %s: %s", row.row_number, job.job_id, e.message)
                self._record(report, job, row.row_number, RowOutcome.FAILED, row.fields, error=e.message)
                consecutive_storage_failures = 0
                continue
            except DynamoDBException as e:
                logger.warning("Row %s of job %s failed in storage: %s", row.row_number, job.job_id, e.message)
                self._record(report, job, row.row_number, RowOutcome.FAILED, row.fields, error=e.message)
                consecutive_storage_failures += 1
                self._check_systemic(report, job, row.row_number, consecutive_storage_failures)
                continue

            consecutive_storage_failures = 0
            self._record(report, job, row.row_number, RowOutcome.SUCCESS, row.fields, entity_id=account_id)
            report.provisioned_account_ids.append(account_id)
            if enqueue_invitation is not None:
                enqueue_invitation(account_id)

        return report

    def _provision_with_retry(self, job: UploadJob, record: AdmittedRecord) -> str:
        member, profile = self._build_member(job, record)

        for attempt in range(1, self.max_attempts + 1):
            try:
                self.member_store.create_member(member, profile)
                return member.account_id
            except TransientStorageException as e:
                # A lost response may hide a committed write
                if self._already_created(member.account_id):
                    return member.account_id
                if attempt == self.max_attempts:
                    raise TransientStorageException(
                        f"{e.message} (gave up after {self.max_attempts} attempts)"
                    ) from e
                logger.info(
                    "Transient storage error on row %s of job %s, attempt %s/%s: %s",
                    record.row_number, job.job_id, attempt, self.max_attempts, e.message
                )
                self.sleep(self.retry_backoff_seconds * attempt)

        raise TransientStorageException("Provisioning retries exhausted")

    def _already_created(self, account_id: str) -> bool:
        try:
            return self.member_store.get_account(account_id) is not None
        except DynamoDBException:
            return False

    def _build_member(self, job: UploadJob, record: AdmittedRecord):
        account_id = str(uuid.uuid4())
        member = TenantMember(
            account_id=account_id,
            tenant_id=job.tenant_id,
            email=record.email,
            full_name=record.full_name,
            role=record.kind,
            password_hash=hash_secret(generate_temporary_secret(), config.settings.placeholder_bcrypt_rounds),
            created_at=datetime.now(timezone.utc)
        )
        profile = MemberProfile(
            profile_id=str(uuid.uuid4()),
            account_id=account_id,
            tenant_id=job.tenant_id,
            kind=record.kind,
            attributes=record.attributes,
            roll_number=record.roll_number
        )
        return member, profile

    def _check_systemic(self, report: ExecutionReport, job: UploadJob, row_number: int, consecutive: int) -> None:
        if consecutive < self.systemic_failure_threshold:
            return
        report.abort_reason = (
            f"Aborted at row {row_number} after {consecutive} consecutive storage failures; "
            f"remaining rows were not attempted"
        )
        logger.error("Upload job %s: %s", job.job_id, report.abort_reason)

    def _record(
        self,
        report: ExecutionReport,
        job: UploadJob,
        row_number: int,
        outcome: RowOutcome,
        raw_data: dict,
        entity_id: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        result = UploadRowResult(
            job_id=job.job_id,
            row_number=row_number,
            outcome=outcome,
            raw_data=dict(raw_data),
            entity_id=entity_id,
            error_message=error
        )
        self.ledger.append_result(result)
        report.results.append(result)

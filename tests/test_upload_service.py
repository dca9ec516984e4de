"""
Tests for UploadService.
End-to-end upload workflow against moto DynamoDB and SES.
"""
from datetime import datetime, timezone
import io
from unittest.mock import Mock
import pytest
from conftest import OTHER_TENANT_ID, TENANT_ID, sent_emails, student_csv, valid_student_rows
from provisioning.core.exceptions import (
    DynamoDBException,
    LedgerException,
    UploadJobNotFoundException,
    ValidationException,
)
from provisioning.models.upload_job import EntityKind, RowOutcome, UploadJob
from provisioning.repositories.account_repository import AccountRepository
from provisioning.repositories.upload_ledger_repository import UploadLedgerRepository
from provisioning.services.provisioning_executor import ProvisioningExecutor
from provisioning.services.row_decoder import DecodedRow
from provisioning.services.row_validator import RowValidator
from provisioning.services.upload_service import UploadService


def submit(service, content, tenant_id=TENANT_ID, kind=EntityKind.STUDENT, **kwargs):
    return service.submit_upload(io.BytesIO(content), "roster.csv", tenant_id, "admin-1", kind, **kwargs)


def failing_store():
    store = Mock()
    store.email_exists.return_value = False
    store.roll_number_exists.return_value = False
    store.get_account.return_value = None
    store.create_member.side_effect = DynamoDBException("Failed to create account: AccessDenied")
    return store


class TestSubmitUpload:
    """Test suite for UploadService.submit_upload."""

    def test_valid_rows_and_one_missing_email(self, aws):
        rows = valid_student_rows(10)
        rows.insert(4, "No Email,,R9999,B.Tech,Civil,1")
        service = UploadService()

        summary = submit(service, student_csv(rows))

        assert summary.status == "COMPLETED"
        assert (summary.total_rows, summary.succeeded_rows, summary.failed_rows) == (11, 10, 1)
        assert len(summary.errors) == 1
        assert summary.errors[0].row_number == 5
        assert summary.errors[0].error_message == "Email is required"
        assert summary.errors[0].row_data == {"email": "", "name": "No Email"}

        repo = AccountRepository()
        assert repo.email_exists("student1@college.test")
        assert not repo.roll_number_exists(TENANT_ID, "R9999")

    def test_ledger_has_contiguous_rows_and_consistent_counts(self, aws):
        rows = valid_student_rows(4) + ["Bad Year,bad@college.test,R0100,B.Tech,CSE,zero", "short,row"]
        service = UploadService()

        summary = submit(service, student_csv(rows))

        ledger = UploadLedgerRepository()
        results = ledger.list_results(summary.job_id)
        job = ledger.get_job(summary.job_id)
        assert [result.row_number for result in results] == list(range(1, 7))
        assert job.succeeded_rows + job.failed_rows == job.total_rows == 6
        assert all(result.entity_id for result in results if result.outcome == RowOutcome.SUCCESS)
        assert job.completed_at is not None

    def test_duplicate_roll_number_within_file(self, aws):
        rows = [
            "Asha Rao,asha@college.test,CS001,B.Tech,CSE,1",
            "Ravi Kumar,ravi@college.test,CS001,B.Tech,CSE,1",
        ]

        summary = submit(UploadService(), student_csv(rows))

        assert summary.succeeded_rows == 1
        assert summary.errors[0].row_number == 2
        assert summary.errors[0].error_message == "Duplicate within file: roll number CS001 already appears in row 1"

    def test_reupload_fails_every_row_as_existing_email(self, aws):
        content = student_csv(valid_student_rows(3))
        service = UploadService()
        submit(service, content)

        summary = submit(service, content)

        assert summary.status == "COMPLETED"
        assert summary.succeeded_rows == 0
        assert summary.failed_rows == 3
        assert all(error.error_message.startswith("Email already exists") for error in summary.errors)

    def test_missing_required_column_fails_job(self, aws):
        summary = submit(UploadService(), b"Full Name,Email\nAsha,asha@college.test\n")

        assert summary.status == "FAILED"
        assert summary.total_rows == 0
        assert summary.error_report.startswith("Structural error: Missing required columns: Roll Number")
        assert UploadLedgerRepository().list_results(summary.job_id) == []

    def test_header_only_file_fails_job(self, aws):
        summary = submit(UploadService(), student_csv([]))

        assert summary.status == "FAILED"
        assert summary.error_report == "File contains no data rows"

    def test_trainer_upload(self, aws):
        content = b"Full Name,Email,Department,Specialization\nDr. Meera Iyer,meera@college.test,Physics,Optics\n"

        summary = submit(UploadService(), content, kind=EntityKind.TRAINER)

        assert summary.status == "COMPLETED"
        assert summary.entity_kind == "TRAINER"
        assert summary.succeeded_rows == 1

    def test_invitations_sent_after_job_without_callback(self, aws):
        summary = submit(UploadService(), student_csv(valid_student_rows(3)))

        recipients = [message.destinations["ToAddresses"][0] for message in sent_emails()]
        assert sorted(recipients) == ["student1@college.test", "student2@college.test", "student3@college.test"]
        assert summary.succeeded_rows == 3

    def test_invitations_handed_to_callback(self, aws):
        enqueue = Mock()

        submit(UploadService(), student_csv(valid_student_rows(2)), enqueue_invitation=enqueue)

        assert enqueue.call_count == 2
        assert sent_emails() == []

    def test_upload_report_emailed_to_uploader(self, aws):
        enqueue = Mock()

        summary = submit(
            UploadService(), student_csv(valid_student_rows(2)),
            enqueue_invitation=enqueue, uploader_email="admin@college.test"
        )

        messages = sent_emails()
        assert len(messages) == 1
        assert messages[0].destinations["ToAddresses"] == ["admin@college.test"]
        assert summary.job_id in messages[0].body
        assert "Succeeded: 2" in messages[0].body

    def test_systemic_failure_aborts_and_skips_rest(self, aws):
        service = UploadService(account_repository=failing_store())

        summary = submit(service, student_csv(valid_student_rows(8)))

        assert summary.status == "FAILED"
        assert summary.succeeded_rows == 0
        assert summary.failed_rows == 8
        assert summary.skipped_rows == 3
        assert "5 consecutive storage failures" in summary.error_report
        outcomes = [error.outcome for error in summary.errors]
        assert outcomes == ["FAILED"] * 5 + ["SKIPPED"] * 3

    def test_ledger_failure_returns_degraded_summary(self):
        store = Mock()
        store.email_exists.return_value = False
        store.roll_number_exists.return_value = False
        ledger = Mock()
        ledger.append_result.side_effect = [None, LedgerException("Failed to append upload result")]
        ledger.finalize_job.side_effect = LedgerException("Failed to finalize upload job")
        service = UploadService(
            account_repository=store,
            ledger_repository=ledger,
            invitation_service=Mock(),
            email_repository=Mock()
        )

        summary = submit(service, student_csv(valid_student_rows(3)))

        assert summary.status == "FAILED"
        assert summary.error_report.startswith("Upload ledger failure")
        assert summary.total_rows == 1
        assert summary.succeeded_rows == 1


class TestConcurrentUploads:
    """Two jobs racing for the same email."""

    def test_exactly_one_account_wins(self, aws):
        repo = AccountRepository()
        ledger = UploadLedgerRepository()
        row = DecodedRow(1, {"Full Name": "Asha Rao", "Email": "asha@college.test", "Roll Number": "CS001"})
        jobs = []
        for job_id in ("job-a", "job-b"):
            job = UploadJob(job_id, TENANT_ID, "admin-1", EntityKind.STUDENT, "roster.csv", datetime.now(timezone.utc))
            ledger.create_job(job)
            jobs.append(job)

        # Job B validated its row before job A committed
        stale_lookup = Mock()
        stale_lookup.email_exists.return_value = False
        stale_lookup.roll_number_exists.return_value = False

        executor = ProvisioningExecutor(repo, ledger)
        first = executor.run(jobs[0], [row], RowValidator(EntityKind.STUDENT, TENANT_ID, repo))
        second = executor.run(jobs[1], [row], RowValidator(EntityKind.STUDENT, TENANT_ID, stale_lookup))

        assert first.succeeded == 1
        assert second.succeeded == 0
        assert "Uniqueness violation" in second.results[0].error_message
        assert second.results[0].entity_id is None
        assert repo.get_account(first.provisioned_account_ids[0]).email == "asha@college.test"


class TestUploadQueries:
    """Test suite for history, job detail, retry and templates."""

    def test_history_is_tenant_scoped_and_newest_first(self, aws):
        service = UploadService()
        first = submit(service, student_csv(valid_student_rows(1)))
        second = submit(service, student_csv(valid_student_rows(1, start=2)))
        submit(service, student_csv(valid_student_rows(1, start=3)), tenant_id=OTHER_TENANT_ID)

        history, token = service.get_upload_history(TENANT_ID, limit=10)

        assert [job.job_id for job in history.jobs] == [second.job_id, first.job_id]
        assert history.count == 2
        assert token is None

    def test_history_limit_is_bounded(self, aws):
        with pytest.raises(ValidationException):
            UploadService().get_upload_history(TENANT_ID, limit=1000)

    def test_job_detail_includes_results(self, aws):
        service = UploadService()
        summary = submit(service, student_csv(valid_student_rows(2)))

        detail = service.get_upload_job(TENANT_ID, summary.job_id)

        assert detail.job.job_id == summary.job_id
        assert [result.row_number for result in detail.results] == [1, 2]

    def test_job_of_other_tenant_is_not_found(self, aws):
        service = UploadService()
        summary = submit(service, student_csv(valid_student_rows(1)))

        with pytest.raises(UploadJobNotFoundException):
            service.get_upload_job(OTHER_TENANT_ID, summary.job_id)

    def test_retry_failed_rows_creates_linked_job(self, aws):
        repo = AccountRepository()
        service = UploadService(account_repository=repo)
        create_member = repo.create_member
        repo.create_member = Mock(side_effect=DynamoDBException("Failed to create account: AccessDenied"))
        failed = submit(service, student_csv(valid_student_rows(3)))
        repo.create_member = create_member

        retried = service.retry_failed_rows(TENANT_ID, failed.job_id, "admin-1")

        assert failed.failed_rows == 3
        assert retried.status == "COMPLETED"
        assert retried.succeeded_rows == 3
        assert UploadLedgerRepository().get_job(retried.job_id).source_job_id == failed.job_id

    def test_retry_without_failures_is_rejected(self, aws):
        service = UploadService()
        summary = submit(service, student_csv(valid_student_rows(1)))

        with pytest.raises(ValidationException):
            service.retry_failed_rows(TENANT_ID, summary.job_id, "admin-1")

    def test_template(self):
        service = UploadService(
            account_repository=Mock(), ledger_repository=Mock(), invitation_service=Mock(), email_repository=Mock()
        )

        assert service.get_template(EntityKind.TRAINER).startswith(b"Full Name,Email,Department")

"""
Upload Ledger Repository for DynamoDB operations.
Persists upload job summaries and their append-only per-row results.
"""
import base64
import json
from datetime import datetime
from typing import List, Optional, Tuple
import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from provisioning.core import config
from provisioning.core.exceptions import LedgerException, ValidationException
from provisioning.models.upload_job import JobStatus, RowOutcome, UploadJob, UploadRowResult
from provisioning.repositories.dynamo_errors import CONNECTION_ERRORS, error_code

TENANT_INDEX_NAME = 'TenantCreatedIndex'


class UploadLedgerRepository:
    """Repository for upload job and row result DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.jobs_table = self.dynamodb.Table(config.settings.upload_jobs_table_name)
        self.results_table = self.dynamodb.Table(config.settings.upload_results_table_name)

    def create_job(self, job: UploadJob) -> None:
        """
        Create new upload job record.

        Args:
            job: UploadJob domain model in PROCESSING state

        Raises:
            LedgerException: If create operation fails
        """
        try:
            self.jobs_table.put_item(
                Item=self._job_to_item(job),
                ConditionExpression='attribute_not_exists(job_id)'
            )
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise LedgerException(f"Failed to create upload job: {str(e)}") from e

    def append_result(self, result: UploadRowResult) -> None:
        """
        Append one row result. A row number can be recorded once per job.

        Raises:
            LedgerException: If the row is already recorded or the write fails
        """
        item = {
            'job_id': result.job_id,
            'row_number': result.row_number,
            'outcome': result.outcome.value,
            'raw_data': result.raw_data,
        }
        if result.entity_id:
            item['entity_id'] = result.entity_id
        if result.error_message:
            item['error_message'] = result.error_message

        try:
            self.results_table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(row_number)'
            )
        except ClientError as e:
            if error_code(e) == 'ConditionalCheckFailedException':
                raise LedgerException(
                    f"Row {result.row_number} is already recorded for upload job {result.job_id}"
                ) from e
            raise LedgerException(f"Failed to append upload result: {str(e)}") from e
        except CONNECTION_ERRORS as e:
            raise LedgerException(f"Failed to append upload result: {str(e)}") from e

    def list_results(self, job_id: str) -> List[UploadRowResult]:
        """
        Retrieve all row results of a job ordered by row number.

        Raises:
            LedgerException: If the query fails
        """
        results = []
        query_kwargs = {
            'KeyConditionExpression': Key('job_id').eq(job_id),
            'ConsistentRead': True,
        }
        try:
            while True:
                response = self.results_table.query(**query_kwargs)
                results.extend(self._item_to_result(item) for item in response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                query_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise LedgerException(f"Failed to query upload results: {str(e)}") from e
        return results

    def finalize_job(
        self,
        job_id: str,
        completed_at: datetime,
        abort_reason: Optional[str] = None
    ) -> UploadJob:
        """
        Close a PROCESSING job with counts recomputed from its stored results.

        The job is COMPLETED when rows were processed without an abort, FAILED
        otherwise. Counts are never taken from the caller.

        Args:
            job_id: Upload job identifier
            completed_at: Completion timestamp
            abort_reason: Why the job stopped early, if it did

        Returns:
            The finalized UploadJob

        Raises:
            LedgerException: If the job is not PROCESSING or the update fails
        """
        results = self.list_results(job_id)
        succeeded = sum(1 for result in results if result.outcome == RowOutcome.SUCCESS)
        skipped = sum(1 for result in results if result.outcome == RowOutcome.SKIPPED)
        failed = len(results) - succeeded

        error_report = abort_reason
        if abort_reason is None and not results:
            error_report = "File contains no data rows"
        status = JobStatus.FAILED if error_report else JobStatus.COMPLETED

        update_expression = (
            "SET #status = :status, completed_at = :completed_at, total_rows = :total, "
            "succeeded_rows = :succeeded, failed_rows = :failed, skipped_rows = :skipped"
        )
        values = {
            ':status': status.value,
            ':processing': JobStatus.PROCESSING.value,
            ':completed_at': completed_at.isoformat(),
            ':total': len(results),
            ':succeeded': succeeded,
            ':failed': failed,
            ':skipped': skipped,
        }
        if error_report:
            update_expression += ", error_report = :error_report"
            values[':error_report'] = error_report

        try:
            response = self.jobs_table.update_item(
                Key={'job_id': job_id},
                UpdateExpression=update_expression,
                ConditionExpression='#status = :processing',
                ExpressionAttributeNames={'#status': 'status'},
                ExpressionAttributeValues=values,
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if error_code(e) == 'ConditionalCheckFailedException':
                raise LedgerException(f"Upload job {job_id} is not in PROCESSING state") from e
            raise LedgerException(f"Failed to finalize upload job: {str(e)}") from e
        except CONNECTION_ERRORS as e:
            raise LedgerException(f"Failed to finalize upload job: {str(e)}") from e

        return self._item_to_job(response['Attributes'])

    def get_job(self, job_id: str) -> Optional[UploadJob]:
        """
        Retrieve upload job by ID.

        Returns:
            UploadJob or None if not found

        Raises:
            LedgerException: If query fails
        """
        try:
            response = self.jobs_table.get_item(Key={'job_id': job_id}, ConsistentRead=True)
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise LedgerException(f"Failed to get upload job: {str(e)}") from e

        if 'Item' not in response:
            return None
        return self._item_to_job(response['Item'])

    def list_jobs_by_tenant(
        self,
        tenant_id: str,
        limit: int = 10,
        next_token: Optional[str] = None
    ) -> Tuple[List[UploadJob], Optional[str]]:
        """
        Retrieve a tenant's upload jobs, most recent first, with pagination.

        Args:
            tenant_id: Tenant identifier
            limit: Maximum number of jobs to return
            next_token: Base64-encoded pagination token from previous request

        Returns:
            Tuple of (list of UploadJob objects, next_token or None)

        Raises:
            LedgerException: If query fails
            ValidationException: If next_token is invalid
        """
        query_kwargs = {
            'IndexName': TENANT_INDEX_NAME,
            'KeyConditionExpression': Key('tenant_id').eq(tenant_id),
            'Limit': limit,
            'ScanIndexForward': False
        }

        if next_token:
            try:
                query_kwargs['ExclusiveStartKey'] = json.loads(base64.b64decode(next_token))
            except Exception:
                raise ValidationException("Invalid pagination token")

        try:
            response = self.jobs_table.query(**query_kwargs)
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise LedgerException(f"Failed to query upload jobs: {str(e)}") from e

        jobs = [self._item_to_job(item) for item in response.get('Items', [])]

        token = None
        if 'LastEvaluatedKey' in response:
            token = base64.b64encode(json.dumps(response['LastEvaluatedKey']).encode()).decode()

        return jobs, token

    def delete_job(self, job_id: str) -> None:
        """
        Delete a job together with all of its row results.

        Raises:
            LedgerException: If a delete fails
        """
        results = self.list_results(job_id)
        try:
            with self.results_table.batch_writer() as batch:
                for result in results:
                    batch.delete_item(Key={'job_id': job_id, 'row_number': result.row_number})
            self.jobs_table.delete_item(Key={'job_id': job_id})
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise LedgerException(f"Failed to delete upload job: {str(e)}") from e

    def _job_to_item(self, job: UploadJob) -> dict:
        item = {
            'job_id': job.job_id,
            'tenant_id': job.tenant_id,
            'uploader_id': job.uploader_id,
            'entity_kind': job.entity_kind.value,
            'file_name': job.file_name,
            'status': job.status.value,
            'created_at': job.created_at.isoformat(),
            'total_rows': job.total_rows,
            'succeeded_rows': job.succeeded_rows,
            'failed_rows': job.failed_rows,
            'skipped_rows': job.skipped_rows,
        }
        if job.source_job_id:
            item['source_job_id'] = job.source_job_id
        return item

    def _item_to_job(self, item: dict) -> UploadJob:
        """Convert DynamoDB item to UploadJob domain model."""
        return UploadJob(
            job_id=item['job_id'],
            tenant_id=item['tenant_id'],
            uploader_id=item['uploader_id'],
            entity_kind=item['entity_kind'],
            file_name=item['file_name'],
            created_at=datetime.fromisoformat(item['created_at']),
            status=item['status'],
            total_rows=int(item.get('total_rows', 0)),
            succeeded_rows=int(item.get('succeeded_rows', 0)),
            failed_rows=int(item.get('failed_rows', 0)),
            skipped_rows=int(item.get('skipped_rows', 0)),
            completed_at=datetime.fromisoformat(item['completed_at']) if item.get('completed_at') else None,
            error_report=item.get('error_report'),
            source_job_id=item.get('source_job_id')
        )

    def _item_to_result(self, item: dict) -> UploadRowResult:
        """Convert DynamoDB item to UploadRowResult domain model."""
        return UploadRowResult(
            job_id=item['job_id'],
            row_number=int(item['row_number']),
            outcome=item['outcome'],
            raw_data=dict(item.get('raw_data', {})),
            entity_id=item.get('entity_id'),
            error_message=item.get('error_message')
        )

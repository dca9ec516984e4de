"""
Bulk upload API routes.
Handles roster CSV uploads, templates and the upload audit trail.
"""
from enum import Enum
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from provisioning.core import config
from provisioning.core.auth_dependencies import COLLEGE_ADMIN, Principal, require_role
from provisioning.core.dependencies import get_invitation_service, get_upload_service
from provisioning.models.dto.upload_dto import (
    BulkUploadResponse,
    UploadHistoryResponse,
    UploadJobDetailResponse,
)
from provisioning.models.upload_job import EntityKind
from provisioning.services.invitation_service import InvitationService
from provisioning.services.upload_service import UploadService

router = APIRouter(prefix="/v1/api")

require_admin = require_role(COLLEGE_ADMIN)


class UploadKind(str, Enum):
    students = "students"
    trainers = "trainers"

    @property
    def entity_kind(self) -> EntityKind:
        return EntityKind.STUDENT if self == UploadKind.students else EntityKind.TRAINER


def _background_enqueue(background_tasks: BackgroundTasks, invitation_service: InvitationService):
    def enqueue(account_id: str) -> None:
        background_tasks.add_task(invitation_service.dispatch, account_id)
    return enqueue


@router.post("/uploads/{kind}", tags=["Uploads"], response_model=BulkUploadResponse)
async def upload_roster(
    kind: UploadKind,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(..., description="CSV roster of students or trainers"),
    upload_service: UploadService = Depends(get_upload_service),
    invitation_service: InvitationService = Depends(get_invitation_service),
    principal: Principal = Depends(require_admin)
):
    """
    Upload a roster CSV and provision one account per valid row.

    Rows that fail are reported in the response; invitations for the created
    accounts are sent after the response is returned.
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files are allowed"
        )

    content = await file.read()
    file_size = len(content)
    max_size_bytes = config.settings.max_file_size_mb * 1024 * 1024

    if file_size > max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / (1024 * 1024):.2f}MB) exceeds maximum allowed size of {config.settings.max_file_size_mb}MB"
        )

    await file.seek(0)

    # Provisioning blocks on boto3 and bcrypt; run it off the event loop
    return await run_in_threadpool(
        upload_service.submit_upload,
        file.file,
        file.filename,
        tenant_id=principal.tenant_id,
        uploader_id=principal.user_id,
        kind=kind.entity_kind,
        enqueue_invitation=_background_enqueue(background_tasks, invitation_service),
        uploader_email=principal.email
    )


@router.get("/uploads", tags=["Uploads"], response_model=UploadHistoryResponse)
async def get_upload_history(
    limit: Optional[int] = Query(default=None, ge=1, description="Maximum number of jobs to return"),
    next_token: Optional[str] = Query(default=None, description="Pagination token from previous response"),
    upload_service: UploadService = Depends(get_upload_service),
    principal: Principal = Depends(require_admin)
):
    """
    Retrieve the tenant's upload jobs, most recent first.

    - **limit**: Number of jobs per page
    - **next_token**: Token from previous response to get next page
    """
    response, token = upload_service.get_upload_history(
        principal.tenant_id,
        limit or config.settings.pagination_default_limit,
        next_token
    )
    response.next_token = token
    return response


@router.get("/uploads/jobs/{job_id}", tags=["Uploads"], response_model=UploadJobDetailResponse)
async def get_upload_job(
    job_id: str,
    upload_service: UploadService = Depends(get_upload_service),
    principal: Principal = Depends(require_admin)
):
    """Retrieve one upload job with the result of every row."""
    return upload_service.get_upload_job(principal.tenant_id, job_id)


@router.post("/uploads/jobs/{job_id}/retry", tags=["Uploads"], response_model=BulkUploadResponse)
async def retry_upload_job(
    job_id: str,
    background_tasks: BackgroundTasks,
    upload_service: UploadService = Depends(get_upload_service),
    invitation_service: InvitationService = Depends(get_invitation_service),
    principal: Principal = Depends(require_admin)
):
    """Replay the failed and skipped rows of a job as a new upload job."""
    return await run_in_threadpool(
        upload_service.retry_failed_rows,
        principal.tenant_id,
        job_id,
        uploader_id=principal.user_id,
        enqueue_invitation=_background_enqueue(background_tasks, invitation_service),
        uploader_email=principal.email
    )


@router.get("/uploads/{kind}/template", tags=["Uploads"])
async def download_template(
    kind: UploadKind,
    upload_service: UploadService = Depends(get_upload_service),
    principal: Principal = Depends(require_admin)
):
    """Download a CSV template with the expected headers and one example row."""
    return Response(
        content=upload_service.get_template(kind.entity_kind),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{kind.value}_template.csv"'}
    )

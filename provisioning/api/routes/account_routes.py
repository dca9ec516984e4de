"""
Account lifecycle API routes.
"""
from fastapi import APIRouter, Depends

from provisioning.core.auth_dependencies import COLLEGE_ADMIN, SYSTEM, Principal, require_role
from provisioning.core.dependencies import get_account_service, get_invitation_service
from provisioning.core.exceptions import AccountNotFoundException
from provisioning.models.dto.account_dto import AccountResponse, InvitationResponse
from provisioning.services.account_service import AccountService
from provisioning.services.invitation_service import InvitationService

router = APIRouter(prefix="/v1/api", tags=["Accounts"])

require_admin = require_role(COLLEGE_ADMIN)
require_system = require_role(SYSTEM)


def _check_tenant(account_service: AccountService, account_id: str, principal: Principal) -> None:
    # Accounts of other tenants are reported as missing
    if account_service.get_account(account_id).tenant_id != principal.tenant_id:
        raise AccountNotFoundException(f"Account '{account_id}' not found")


@router.post("/accounts/{account_id}/resend-invitation", response_model=InvitationResponse)
async def resend_invitation(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
    invitation_service: InvitationService = Depends(get_invitation_service),
    principal: Principal = Depends(require_admin)
):
    """Issue a new setup link for an account and email it."""
    _check_tenant(account_service, account_id, principal)
    sent_at = invitation_service.send_invitation(account_id)
    return InvitationResponse(
        account_id=account_id,
        invitation_sent_at=sent_at,
        message="Invitation sent"
    )


@router.post("/accounts/{account_id}/suspend", response_model=AccountResponse)
async def suspend_account(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(require_admin)
):
    _check_tenant(account_service, account_id, principal)
    return AccountResponse.from_member(account_service.suspend_account(account_id))


@router.post("/accounts/{account_id}/reinstate", response_model=AccountResponse)
async def reinstate_account(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(require_admin)
):
    _check_tenant(account_service, account_id, principal)
    return AccountResponse.from_member(account_service.reinstate_account(account_id))


@router.post("/accounts/{account_id}/first-login", response_model=AccountResponse)
async def record_first_login(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(require_system)
):
    """Record that the account holder signed in for the first time. Repeat calls are no-ops."""
    return AccountResponse.from_member(account_service.record_first_login(account_id))


@router.post("/accounts/{account_id}/profile-completion", response_model=AccountResponse)
async def record_profile_completion(
    account_id: str,
    account_service: AccountService = Depends(get_account_service),
    principal: Principal = Depends(require_system)
):
    """Record that the account holder finished filling in their profile."""
    return AccountResponse.from_member(account_service.record_profile_completion(account_id))

"""
Data Transfer Objects for account lifecycle endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from provisioning.models.tenant_member import TenantMember


class AccountResponse(BaseModel):
    """Response schema for a provisioned account's lifecycle state."""
    account_id: str
    tenant_id: str
    email: str
    role: str
    account_status: str = Field(..., description="PENDING_SETUP, ACTIVE, INCOMPLETE or SUSPENDED")
    must_change_password: bool
    profile_completed: bool
    invitation_sent_at: Optional[datetime] = None
    first_login_at: Optional[datetime] = None

    @classmethod
    def from_member(cls, member: TenantMember) -> "AccountResponse":
        return cls(
            account_id=member.account_id,
            tenant_id=member.tenant_id,
            email=member.email,
            role=member.role.value,
            account_status=member.account_status.value,
            must_change_password=member.must_change_password,
            profile_completed=member.profile_completed,
            invitation_sent_at=member.invitation_sent_at,
            first_login_at=member.first_login_at
        )


class InvitationResponse(BaseModel):
    """Response schema for a (re)sent invitation."""
    account_id: str
    invitation_sent_at: datetime
    message: str

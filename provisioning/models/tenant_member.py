"""
Domain models for provisioned tenant members.
A member is a credential record plus one student or trainer profile.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from provisioning.models.upload_job import EntityKind


class AccountStatus(str, Enum):
    PENDING_SETUP = "PENDING_SETUP"
    ACTIVE = "ACTIVE"
    INCOMPLETE = "INCOMPLETE"
    SUSPENDED = "SUSPENDED"


class TenantMember:
    """Credential record of a provisioned account."""

    def __init__(
        self,
        account_id: str,
        tenant_id: str,
        email: str,
        full_name: str,
        role: EntityKind,
        password_hash: str,
        created_at: datetime,
        must_change_password: bool = True,
        account_status: AccountStatus = AccountStatus.PENDING_SETUP,
        invitation_sent_at: Optional[datetime] = None,
        first_login_at: Optional[datetime] = None,
        profile_completed: bool = False,
        setup_token_hash: Optional[str] = None,
        setup_token_expires_at: Optional[datetime] = None
    ):
        self.account_id = account_id
        self.tenant_id = tenant_id
        self.email = email
        self.full_name = full_name
        self.role = EntityKind(role)
        self.password_hash = password_hash
        self.created_at = created_at
        self.must_change_password = must_change_password
        self.account_status = AccountStatus(account_status)
        self.invitation_sent_at = invitation_sent_at
        self.first_login_at = first_login_at
        self.profile_completed = profile_completed
        self.setup_token_hash = setup_token_hash
        self.setup_token_expires_at = setup_token_expires_at

    def __repr__(self):
        return f"TenantMember(account_id={self.account_id}, email={self.email}, status={self.account_status.value})"


class MemberProfile:
    """Student or trainer profile linked to a credential and to its tenant."""

    def __init__(
        self,
        profile_id: str,
        account_id: str,
        tenant_id: str,
        kind: EntityKind,
        attributes: Optional[dict] = None,
        roll_number: Optional[str] = None
    ):
        self.profile_id = profile_id
        self.account_id = account_id
        self.tenant_id = tenant_id
        self.kind = EntityKind(kind)
        self.attributes = attributes or {}
        self.roll_number = roll_number

    def __repr__(self):
        return f"MemberProfile(profile_id={self.profile_id}, kind={self.kind.value}, account_id={self.account_id})"

"""
Abstract base class for tenant member storage.
Defines the contract the validator and provisioning executor rely on.
"""
from abc import ABC, abstractmethod
from typing import Optional
from provisioning.models.tenant_member import MemberProfile, TenantMember


class MemberStore(ABC):
    """Abstract repository interface for provisioned accounts."""

    @abstractmethod
    def email_exists(self, email: str) -> bool:
        """Whether any account in any tenant uses this email."""
        pass

    @abstractmethod
    def roll_number_exists(self, tenant_id: str, roll_number: str) -> bool:
        """Whether a student of this tenant already has this roll number."""
        pass

    @abstractmethod
    def create_member(self, member: TenantMember, profile: MemberProfile) -> None:
        """Create credential and profile as one atomic unit."""
        pass

    @abstractmethod
    def get_account(self, account_id: str) -> Optional[TenantMember]:
        """Retrieve a credential record."""
        pass

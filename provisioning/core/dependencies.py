"""
Dependency injection container for FastAPI.
Provides singleton-like behavior for services and repositories.
"""
from functools import lru_cache
from provisioning.repositories.account_repository import AccountRepository
from provisioning.repositories.email_repository import EmailRepository
from provisioning.repositories.upload_ledger_repository import UploadLedgerRepository
from provisioning.services.account_service import AccountService
from provisioning.services.invitation_service import InvitationService
from provisioning.services.upload_service import UploadService


@lru_cache()
def get_account_repository() -> AccountRepository:
    """Get AccountRepository singleton instance."""
    return AccountRepository()


@lru_cache()
def get_upload_ledger_repository() -> UploadLedgerRepository:
    """Get UploadLedgerRepository singleton instance."""
    return UploadLedgerRepository()


@lru_cache()
def get_email_repository() -> EmailRepository:
    return EmailRepository()


@lru_cache()
def get_invitation_service() -> InvitationService:
    """Get InvitationService singleton instance with injected dependencies."""
    return InvitationService(
        account_repository=get_account_repository(),
        email_repository=get_email_repository()
    )


@lru_cache()
def get_account_service() -> AccountService:
    return AccountService(account_repository=get_account_repository())


@lru_cache()
def get_upload_service() -> UploadService:
    """Get UploadService singleton instance with injected dependencies."""
    return UploadService(
        account_repository=get_account_repository(),
        ledger_repository=get_upload_ledger_repository(),
        invitation_service=get_invitation_service(),
        email_repository=get_email_repository()
    )


def clear_caches() -> None:
    """Drop cached instances so the next request builds fresh clients."""
    for getter in (
        get_account_repository,
        get_upload_ledger_repository,
        get_email_repository,
        get_invitation_service,
        get_account_service,
        get_upload_service,
    ):
        getter.cache_clear()

"""
Account Service.
Applies lifecycle events to provisioned accounts through the state machine.
"""
import logging
from datetime import datetime, timezone

from provisioning.core.exceptions import AccountNotFoundException, AccountStateException
from provisioning.models.tenant_member import TenantMember
from provisioning.repositories.account_repository import AccountRepository
from provisioning.services.account_lifecycle import AccountEvent, transition

logger = logging.getLogger(__name__)

MAX_STATUS_UPDATE_ATTEMPTS = 5


class AccountService:
    """Service for account lifecycle operations."""

    def __init__(self, account_repository: AccountRepository = None):
        self.account_repository = account_repository or AccountRepository()

    def get_account(self, account_id: str) -> TenantMember:
        """
        Retrieve an account or fail.

        Raises:
            AccountNotFoundException: If the account does not exist
        """
        member = self.account_repository.get_account(account_id)
        if member is None:
            raise AccountNotFoundException(f"Account '{account_id}' not found")
        return member

    def record_first_login(self, account_id: str) -> TenantMember:
        """
        Record the account's first login and recompute its status.

        Only the first call sets first_login_at; later calls return the
        account unchanged.

        Raises:
            AccountNotFoundException: If the account does not exist
            AccountStateException: If concurrent updates keep winning
        """
        for _ in range(MAX_STATUS_UPDATE_ATTEMPTS):
            member = self.get_account(account_id)
            if member.first_login_at is not None:
                return member

            new_status = transition(
                member.account_status,
                AccountEvent.FIRST_LOGIN,
                has_logged_in=True,
                profile_completed=member.profile_completed
            )
            if self.account_repository.record_first_login(
                account_id, datetime.now(timezone.utc), member.account_status, new_status, member.profile_completed
            ):
                logger.info("First login recorded for account %s (%s)", account_id, new_status.value)
                return self.get_account(account_id)

        raise AccountStateException(f"Account '{account_id}' changed concurrently; try again")

    def record_profile_completion(self, account_id: str) -> TenantMember:
        """Mark the profile complete and recompute the status."""
        return self._apply(account_id, AccountEvent.PROFILE_COMPLETED, profile_completed=True)

    def suspend_account(self, account_id: str) -> TenantMember:
        return self._apply(account_id, AccountEvent.SUSPEND)

    def reinstate_account(self, account_id: str) -> TenantMember:
        return self._apply(account_id, AccountEvent.REINSTATE)

    def _apply(self, account_id: str, event: AccountEvent, profile_completed: bool = None) -> TenantMember:
        for _ in range(MAX_STATUS_UPDATE_ATTEMPTS):
            member = self.get_account(account_id)
            completed = member.profile_completed if profile_completed is None else profile_completed
            new_status = transition(
                member.account_status,
                event,
                has_logged_in=member.first_login_at is not None,
                profile_completed=completed
            )
            if new_status == member.account_status and completed == member.profile_completed:
                return member

            if self.account_repository.update_lifecycle(
                account_id,
                member.account_status,
                new_status,
                profile_completed=profile_completed
            ):
                logger.info(
                    "Account %s: %s -> %s on %s",
                    account_id, member.account_status.value, new_status.value, event.value
                )
                return self.get_account(account_id)

        raise AccountStateException(f"Account '{account_id}' changed concurrently; try again")

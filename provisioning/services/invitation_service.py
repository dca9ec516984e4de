"""
Invitation Service.
Delivers account setup invitations for provisioned members.
"""
import logging
from datetime import datetime, timedelta, timezone

from provisioning.core import config
from provisioning.core.exceptions import (
    AccountNotFoundException,
    AccountStateException,
    ProvisioningException,
)
from provisioning.models.tenant_member import AccountStatus
from provisioning.repositories.account_repository import AccountRepository
from provisioning.repositories.email_repository import EmailRepository
from provisioning.services.credentials import new_setup_token

logger = logging.getLogger(__name__)

INVITATION_SUBJECT = "Set up your account"


class InvitationService:
    """Service for sending and resending setup invitations."""

    def __init__(
        self,
        account_repository: AccountRepository = None,
        email_repository: EmailRepository = None
    ):
        self.account_repository = account_repository or AccountRepository()
        self.email_repository = email_repository or EmailRepository()

    def send_invitation(self, account_id: str) -> datetime:
        """
        Issue a fresh setup reference and email it to the account holder.

        Any previously issued reference is replaced. The account status is
        not changed.

        Args:
            account_id: Account to invite

        Returns:
            datetime: When the invitation was sent

        Raises:
            AccountNotFoundException: If the account does not exist
            AccountStateException: If the account is suspended
            NotificationException: If the email cannot be delivered
            DynamoDBException: If the account cannot be read or updated
        """
        member = self.account_repository.get_account(account_id)
        if member is None:
            raise AccountNotFoundException(f"Account '{account_id}' not found")
        if member.account_status == AccountStatus.SUSPENDED:
            raise AccountStateException(f"Account '{account_id}' is suspended")

        token, token_hash = new_setup_token()
        self.email_repository.send_email(
            member.email,
            INVITATION_SUBJECT,
            self._invitation_body(member.full_name, token)
        )

        sent_at = datetime.now(timezone.utc)
        expires_at = sent_at + timedelta(hours=config.settings.setup_token_ttl_hours)
        self.account_repository.record_invitation(account_id, sent_at, token_hash, expires_at)
        logger.info("Invitation sent for account %s", account_id)
        return sent_at

    def dispatch(self, account_id: str) -> None:
        """Send an invitation in the background; failures are logged, not raised."""
        try:
            self.send_invitation(account_id)
        except ProvisioningException as e:
            logger.warning("Invitation for account %s not sent: %s", account_id, e.message)

    def _invitation_body(self, full_name: str, token: str) -> str:
        link = f"{config.settings.setup_url_base}?token={token}"
        hours = config.settings.setup_token_ttl_hours
        return (
            f"Hello {full_name},\n\n"
            f"An account has been created for you. Use the link below to set your password "
            f"and finish setting up your profile:\n\n"
            f"{link}\n\n"
            f"This link expires in {hours} hours. If it expires, ask your administrator "
            f"to resend the invitation.\n"
        )

"""
Account Repository for DynamoDB operations.
Stores credentials, profiles and the uniqueness claims that guard them.

Single-table layout (PK / SK):
    ACCOUNT#<account_id> / CREDENTIAL        credential record
    ACCOUNT#<account_id> / PROFILE           student or trainer profile
    EMAIL#<email>        / CLAIM             global email claim
    ROLL#<tenant>#<roll> / CLAIM             tenant-scoped roll number claim
"""
from datetime import datetime
from typing import Optional
import boto3
from botocore.exceptions import ClientError
from provisioning.core import config
from provisioning.core.exceptions import (
    AccountNotFoundException,
    DynamoDBException,
    UniquenessViolationException,
)
from provisioning.models.tenant_member import AccountStatus, MemberProfile, TenantMember
from provisioning.repositories.dynamo_errors import (
    CONNECTION_ERRORS,
    cancellation_reasons,
    error_code,
    is_transient,
    storage_error,
)
from provisioning.repositories.member_store import MemberStore

CREDENTIAL_SK = 'CREDENTIAL'
PROFILE_SK = 'PROFILE'
CLAIM_SK = 'CLAIM'


class AccountRepository(MemberStore):
    """Repository for tenant member DynamoDB operations."""

    def __init__(self):
        self.dynamodb = boto3.resource('dynamodb', region_name=config.settings.aws_region)
        self.table = self.dynamodb.Table(config.settings.accounts_table_name)
        self.client = self.dynamodb.meta.client

    def email_exists(self, email: str) -> bool:
        return self._claim_exists(self._email_pk(email))

    def roll_number_exists(self, tenant_id: str, roll_number: str) -> bool:
        return self._claim_exists(self._roll_pk(tenant_id, roll_number))

    def create_member(self, member: TenantMember, profile: MemberProfile) -> None:
        """
        Atomically write a credential, its profile and their uniqueness claims.

        Either every item is written or none is.

        Args:
            member: Credential record to create
            profile: Profile linked to the credential and tenant

        Raises:
            UniquenessViolationException: If the email or roll number is already claimed
            TransientStorageException: If the write may succeed on retry
            DynamoDBException: If the write fails otherwise
        """
        items = [
            self._member_to_item(member),
            self._profile_to_item(profile),
            {
                'PK': self._email_pk(member.email),
                'SK': CLAIM_SK,
                'account_id': member.account_id,
                'tenant_id': member.tenant_id,
            },
        ]
        if profile.roll_number is not None:
            items.append({
                'PK': self._roll_pk(profile.tenant_id, profile.roll_number),
                'SK': CLAIM_SK,
                'account_id': member.account_id,
                'tenant_id': profile.tenant_id,
            })

        try:
            self.client.transact_write_items(
                TransactItems=[
                    {
                        'Put': {
                            'TableName': config.settings.accounts_table_name,
                            'Item': item,
                            'ConditionExpression': 'attribute_not_exists(PK)',
                        }
                    }
                    for item in items
                ]
            )
        except ClientError as e:
            if error_code(e) == 'TransactionCanceledException' and not is_transient(e):
                raise self._uniqueness_error(e, member, profile) from e
            raise storage_error("create account", e) from e
        except CONNECTION_ERRORS as e:
            raise storage_error("create account", e) from e

    def get_account(self, account_id: str) -> Optional[TenantMember]:
        """
        Retrieve a credential record by account id.

        Returns:
            TenantMember or None if not found

        Raises:
            DynamoDBException: If the read fails
        """
        try:
            response = self.table.get_item(
                Key={'PK': self._account_pk(account_id), 'SK': CREDENTIAL_SK},
                ConsistentRead=True
            )
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise storage_error("get account", e) from e

        if 'Item' not in response:
            return None
        return self._item_to_member(response['Item'])

    def get_profile(self, account_id: str) -> Optional[MemberProfile]:
        try:
            response = self.table.get_item(Key={'PK': self._account_pk(account_id), 'SK': PROFILE_SK})
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise storage_error("get profile", e) from e

        if 'Item' not in response:
            return None
        return self._item_to_profile(response['Item'])

    def record_invitation(
        self,
        account_id: str,
        sent_at: datetime,
        token_hash: str,
        token_expires_at: datetime
    ) -> None:
        """
        Store a newly issued setup reference and the time it was sent.

        Raises:
            AccountNotFoundException: If the account does not exist
            DynamoDBException: If the update fails
        """
        try:
            self.table.update_item(
                Key={'PK': self._account_pk(account_id), 'SK': CREDENTIAL_SK},
                UpdateExpression=(
                    "SET invitation_sent_at = :sent, setup_token_hash = :token, "
                    "setup_token_expires_at = :expires"
                ),
                ConditionExpression='attribute_exists(PK)',
                ExpressionAttributeValues={
                    ':sent': sent_at.isoformat(),
                    ':token': token_hash,
                    ':expires': token_expires_at.isoformat(),
                }
            )
        except ClientError as e:
            if error_code(e) == 'ConditionalCheckFailedException':
                raise AccountNotFoundException(f"Account '{account_id}' not found") from e
            raise storage_error("record invitation", e) from e
        except CONNECTION_ERRORS as e:
            raise storage_error("record invitation", e) from e

    def record_first_login(
        self,
        account_id: str,
        logged_in_at: datetime,
        expected_status: AccountStatus,
        new_status: AccountStatus,
        expected_profile_completed: bool
    ) -> bool:
        """
        Set first_login_at and the recomputed status, only if first_login_at is unset
        and both the status and profile_completed still match what new_status was derived from.

        Returns:
            True if applied, False if a first login was already recorded or the status moved

        Raises:
            DynamoDBException: If the update fails
        """
        try:
            self.table.update_item(
                Key={'PK': self._account_pk(account_id), 'SK': CREDENTIAL_SK},
                UpdateExpression="SET first_login_at = :at, account_status = :status",
                ConditionExpression=(
                    'attribute_not_exists(first_login_at) AND account_status = :expected '
                    'AND profile_completed = :completed'
                ),
                ExpressionAttributeValues={
                    ':at': logged_in_at.isoformat(),
                    ':status': new_status.value,
                    ':expected': expected_status.value,
                    ':completed': expected_profile_completed,
                }
            )
            return True
        except ClientError as e:
            if error_code(e) == 'ConditionalCheckFailedException':
                return False
            raise storage_error("record first login", e) from e
        except CONNECTION_ERRORS as e:
            raise storage_error("record first login", e) from e

    def update_lifecycle(
        self,
        account_id: str,
        expected_status: AccountStatus,
        new_status: AccountStatus,
        profile_completed: Optional[bool] = None
    ) -> bool:
        """
        Compare-and-set the account status (and optionally profile_completed).

        Returns:
            True if applied, False if the stored status no longer matches expected_status

        Raises:
            DynamoDBException: If the update fails
        """
        update_expression = "SET account_status = :status"
        values = {':status': new_status.value, ':expected': expected_status.value}
        if profile_completed is not None:
            update_expression += ", profile_completed = :completed"
            values[':completed'] = profile_completed

        try:
            self.table.update_item(
                Key={'PK': self._account_pk(account_id), 'SK': CREDENTIAL_SK},
                UpdateExpression=update_expression,
                ConditionExpression='account_status = :expected',
                ExpressionAttributeValues=values
            )
            return True
        except ClientError as e:
            if error_code(e) == 'ConditionalCheckFailedException':
                return False
            raise storage_error("update account status", e) from e
        except CONNECTION_ERRORS as e:
            raise storage_error("update account status", e) from e

    def _claim_exists(self, pk: str) -> bool:
        try:
            response = self.table.get_item(Key={'PK': pk, 'SK': CLAIM_SK}, ConsistentRead=True)
        except (ClientError, *CONNECTION_ERRORS) as e:
            raise storage_error("look up uniqueness claim", e) from e
        return 'Item' in response

    def _uniqueness_error(self, error: ClientError, member: TenantMember, profile: MemberProfile) -> DynamoDBException:
        reasons = cancellation_reasons(error)
        failed = [index for index, reason in enumerate(reasons) if reason == 'ConditionalCheckFailed']
        other = [reason for reason in reasons if reason not in (None, 'ConditionalCheckFailed')]
        if not failed or other:
            return storage_error("create account", error)
        if failed == [2]:
            return UniquenessViolationException(f"Uniqueness violation: email {member.email} is already in use")
        if failed == [3]:
            return UniquenessViolationException(
                f"Uniqueness violation: roll number {profile.roll_number} is already in use"
            )
        if min(failed) >= 2:
            return UniquenessViolationException(
                f"Uniqueness violation: email {member.email} and roll number {profile.roll_number} are already in use"
            )
        return DynamoDBException(f"Account id collision for {member.account_id}")

    def _account_pk(self, account_id: str) -> str:
        return f"ACCOUNT#{account_id}"

    def _email_pk(self, email: str) -> str:
        return f"EMAIL#{email.strip().lower()}"

    def _roll_pk(self, tenant_id: str, roll_number: str) -> str:
        return f"ROLL#{tenant_id}#{roll_number}"

    def _member_to_item(self, member: TenantMember) -> dict:
        item = {
            'PK': self._account_pk(member.account_id),
            'SK': CREDENTIAL_SK,
            'account_id': member.account_id,
            'tenant_id': member.tenant_id,
            'email': member.email,
            'full_name': member.full_name,
            'role': member.role.value,
            'password_hash': member.password_hash,
            'must_change_password': member.must_change_password,
            'account_status': member.account_status.value,
            'profile_completed': member.profile_completed,
            'created_at': member.created_at.isoformat(),
        }
        for name in ('invitation_sent_at', 'first_login_at', 'setup_token_expires_at'):
            value = getattr(member, name)
            if value is not None:
                item[name] = value.isoformat()
        if member.setup_token_hash:
            item['setup_token_hash'] = member.setup_token_hash
        return item

    def _profile_to_item(self, profile: MemberProfile) -> dict:
        item = {
            'PK': self._account_pk(profile.account_id),
            'SK': PROFILE_SK,
            'profile_id': profile.profile_id,
            'account_id': profile.account_id,
            'tenant_id': profile.tenant_id,
            'kind': profile.kind.value,
            'attributes': profile.attributes,
        }
        if profile.roll_number is not None:
            item['roll_number'] = profile.roll_number
        return item

    def _item_to_member(self, item: dict) -> TenantMember:
        """Convert DynamoDB item to TenantMember domain model."""
        return TenantMember(
            account_id=item['account_id'],
            tenant_id=item['tenant_id'],
            email=item['email'],
            full_name=item['full_name'],
            role=item['role'],
            password_hash=item['password_hash'],
            created_at=datetime.fromisoformat(item['created_at']),
            must_change_password=bool(item.get('must_change_password', True)),
            account_status=AccountStatus(item['account_status']),
            invitation_sent_at=_parse_optional(item.get('invitation_sent_at')),
            first_login_at=_parse_optional(item.get('first_login_at')),
            profile_completed=bool(item.get('profile_completed', False)),
            setup_token_hash=item.get('setup_token_hash'),
            setup_token_expires_at=_parse_optional(item.get('setup_token_expires_at'))
        )

    def _item_to_profile(self, item: dict) -> MemberProfile:
        """Convert DynamoDB item to MemberProfile domain model."""
        attributes = {
            key: int(value) if key == 'year' else value
            for key, value in item.get('attributes', {}).items()
        }
        return MemberProfile(
            profile_id=item['profile_id'],
            account_id=item['account_id'],
            tenant_id=item['tenant_id'],
            kind=item['kind'],
            attributes=attributes,
            roll_number=item.get('roll_number')
        )


def _parse_optional(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None

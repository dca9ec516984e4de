"""
Shared test fixtures and utilities.
"""
import uuid
from datetime import datetime, timedelta, timezone

import boto3
import jwt
import pytest
from moto import mock_aws

JWT_SECRET = "test-jwt-secret"
ACCOUNTS_TABLE = "Accounts-test"
UPLOAD_JOBS_TABLE = "UploadJobs-test"
UPLOAD_RESULTS_TABLE = "UploadResults-test"
SENDER_EMAIL = "no-reply@college.test"
TENANT_ID = "tenant-1"
OTHER_TENANT_ID = "tenant-2"


@pytest.fixture(autouse=True)
def test_environment(monkeypatch):
    """Point settings at test tables and fake AWS credentials."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    monkeypatch.setenv('AWS_REGION', 'us-east-1')
    monkeypatch.setenv('ACCOUNTS_TABLE_NAME', ACCOUNTS_TABLE)
    monkeypatch.setenv('UPLOAD_JOBS_TABLE_NAME', UPLOAD_JOBS_TABLE)
    monkeypatch.setenv('UPLOAD_RESULTS_TABLE_NAME', UPLOAD_RESULTS_TABLE)
    monkeypatch.setenv('SES_SENDER_EMAIL', SENDER_EMAIL)
    monkeypatch.setenv('JWT_SECRET', JWT_SECRET)
    monkeypatch.setenv('PROVISIONING_RETRY_BACKOFF_SECONDS', '0')
    monkeypatch.setenv('ENVIRONMENT', 'test')

    from provisioning.core import config, dependencies
    config.settings = config.Settings()
    dependencies.clear_caches()

    yield

    dependencies.clear_caches()


def create_tables():
    """Create the accounts and upload ledger tables in the mocked account."""
    dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
    dynamodb.create_table(
        TableName=ACCOUNTS_TABLE,
        KeySchema=[
            {'AttributeName': 'PK', 'KeyType': 'HASH'},
            {'AttributeName': 'SK', 'KeyType': 'RANGE'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'PK', 'AttributeType': 'S'},
            {'AttributeName': 'SK', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    dynamodb.create_table(
        TableName=UPLOAD_JOBS_TABLE,
        KeySchema=[{'AttributeName': 'job_id', 'KeyType': 'HASH'}],
        AttributeDefinitions=[
            {'AttributeName': 'job_id', 'AttributeType': 'S'},
            {'AttributeName': 'tenant_id', 'AttributeType': 'S'},
            {'AttributeName': 'created_at', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'TenantCreatedIndex',
                'KeySchema': [
                    {'AttributeName': 'tenant_id', 'KeyType': 'HASH'},
                    {'AttributeName': 'created_at', 'KeyType': 'RANGE'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    dynamodb.create_table(
        TableName=UPLOAD_RESULTS_TABLE,
        KeySchema=[
            {'AttributeName': 'job_id', 'KeyType': 'HASH'},
            {'AttributeName': 'row_number', 'KeyType': 'RANGE'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'job_id', 'AttributeType': 'S'},
            {'AttributeName': 'row_number', 'AttributeType': 'N'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )


def verify_sender():
    ses = boto3.client('ses', region_name='us-east-1')
    ses.verify_email_identity(EmailAddress=SENDER_EMAIL)


def sent_emails():
    """Messages recorded by the mocked SES backend."""
    from moto.core import DEFAULT_ACCOUNT_ID
    from moto.ses.models import ses_backends
    return ses_backends[DEFAULT_ACCOUNT_ID]['us-east-1'].sent_messages


@pytest.fixture
def aws():
    """Mocked DynamoDB tables and a verified SES sender."""
    with mock_aws():
        create_tables()
        verify_sender()
        yield


def make_token(role="COLLEGE_ADMIN", tenant_id=TENANT_ID, sub="admin-1", email=None, expires_in=timedelta(hours=1)):
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "role": role,
        "exp": now + expires_in,
        "iat": now
    }
    if tenant_id is not None:
        payload["tenant_id"] = tenant_id
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


@pytest.fixture
def admin_headers():
    """Authorization headers of a college administrator of TENANT_ID."""
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def other_admin_headers():
    return {"Authorization": f"Bearer {make_token(tenant_id=OTHER_TENANT_ID, sub='admin-2')}"}


@pytest.fixture
def system_headers():
    """Authorization headers of the internal auth service."""
    return {"Authorization": f"Bearer {make_token(role='SYSTEM', tenant_id=None, sub='auth-service')}"}


def student_csv(rows, header="Full Name,Email,Roll Number,Degree,Branch,Year"):
    """Build a student roster CSV from row strings."""
    return ("\n".join([header] + list(rows)) + "\n").encode("utf-8")


def valid_student_rows(count, start=1, domain="college.test"):
    return [
        f"Student {n},student{n}@{domain},R{n:04d},B.Tech,Computer Science,{(n % 4) + 1}"
        for n in range(start, start + count)
    ]


def new_member(email="asha@college.test", tenant_id=TENANT_ID, roll_number="CS001", kind=None):
    """Build an unsaved credential and profile pair."""
    from provisioning.models.tenant_member import MemberProfile, TenantMember
    from provisioning.models.upload_job import EntityKind
    kind = kind or EntityKind.STUDENT
    account_id = str(uuid.uuid4())
    member = TenantMember(
        account_id=account_id,
        tenant_id=tenant_id,
        email=email,
        full_name="Asha Rao",
        role=kind,
        password_hash="$2b$04$hash",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
    )
    profile = MemberProfile(
        profile_id=str(uuid.uuid4()),
        account_id=account_id,
        tenant_id=tenant_id,
        kind=kind,
        attributes={"degree": "B.Tech", "year": 2} if kind == EntityKind.STUDENT else {"department": "Physics"},
        roll_number=roll_number if kind == EntityKind.STUDENT else None
    )
    return member, profile

"""
Core configuration for the Bulk Provisioning API.
Manages environment variables and AWS service settings.
"""
import logging
import os
from functools import lru_cache

import boto3
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


@lru_cache(maxsize=10)
def get_ssm_parameter(parameter_name: str, region: str) -> str:
    """Fetch a (decrypted) Parameter Store value, cached per process."""
    ssm = boto3.client('ssm', region_name=region)
    response = ssm.get_parameter(Name=parameter_name, WithDecryption=True)
    return response['Parameter']['Value']


class Settings(BaseSettings):
    """Application settings loaded from environment variables or .env file."""

    # AWS Configuration
    aws_region: str = os.getenv("AWS_REGION", "us-east-1")
    accounts_table_name: str = os.getenv("ACCOUNTS_TABLE_NAME", "")
    upload_jobs_table_name: str = os.getenv("UPLOAD_JOBS_TABLE_NAME", "")
    upload_results_table_name: str = os.getenv("UPLOAD_RESULTS_TABLE_NAME", "")

    # Notifications
    ses_sender_email: str = os.getenv("SES_SENDER_EMAIL", "no-reply@skillbridge.local")
    setup_url_base: str = os.getenv("SETUP_URL_BASE", "http://localhost:5173/setup-account")
    setup_token_ttl_hours: int = int(os.getenv("SETUP_TOKEN_TTL_HOURS", "72"))
    send_upload_reports: bool = os.getenv("SEND_UPLOAD_REPORTS", "true").lower() == "true"

    # API Configuration
    api_title: str = os.getenv("API_TITLE", "Bulk Provisioning API")
    api_version: str = os.getenv("API_VERSION", "1.0.0")

    # File Upload Limits
    max_file_size_mb: int = int(os.getenv("MAX_FILE_SIZE_MB", "10"))

    # Pagination Configuration
    pagination_default_limit: int = int(os.getenv("PAGINATION_DEFAULT_LIMIT", "10"))
    pagination_max_limit: int = int(os.getenv("PAGINATION_MAX_LIMIT", "100"))

    # Provisioning
    # Cost for the unusable placeholder password; the real one is chosen at setup
    placeholder_bcrypt_rounds: int = int(os.getenv("PLACEHOLDER_BCRYPT_ROUNDS", "4"))
    provisioning_max_attempts: int = int(os.getenv("PROVISIONING_MAX_ATTEMPTS", "3"))
    provisioning_retry_backoff_seconds: float = float(os.getenv("PROVISIONING_RETRY_BACKOFF_SECONDS", "0.2"))
    systemic_failure_threshold: int = int(os.getenv("SYSTEMIC_FAILURE_THRESHOLD", "5"))

    # Authentication
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    @property
    def jwt_secret(self) -> str:
        """Get JWT secret from JWT_SECRET, else from Parameter Store."""
        explicit = os.getenv("JWT_SECRET")
        if explicit:
            return explicit
        try:
            return get_ssm_parameter(f"/bulk-provisioning-api/{self.environment}/jwt-secret", self.aws_region)
        except Exception as e:
            # Fallback for local dev or if parameter doesn't exist
            logger.warning("Using fallback JWT secret. Error: %s", e)
            return "dev-secret-change-in-production"

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)


# Global settings instance
settings = Settings()

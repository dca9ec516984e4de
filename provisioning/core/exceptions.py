"""
Custom exceptions for the Bulk Provisioning API.
Provides specific error types for different failure scenarios.
"""


class ProvisioningException(Exception):
    """Base exception for all application errors."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationException(ProvisioningException):
    """Raised when row or request data validation fails."""
    pass


class CSVProcessingException(ProvisioningException):
    """Raised when an uploaded file cannot be decoded as a whole (bad header, encoding)."""
    pass


class DynamoDBException(ProvisioningException):
    """Raised when a DynamoDB operation fails."""
    pass


class TransientStorageException(DynamoDBException):
    """Raised when a DynamoDB operation fails in a way that may succeed on retry."""
    pass


class UniquenessViolationException(DynamoDBException):
    """Raised when a conditional write loses to an existing email or roll number claim."""
    pass


class LedgerException(DynamoDBException):
    """Raised when an upload job or row result cannot be recorded."""
    pass


class AccountNotFoundException(ProvisioningException):
    """Raised when a provisioned account does not exist."""
    pass


class UploadJobNotFoundException(ProvisioningException):
    """Raised when an upload job does not exist for the caller's tenant."""
    pass


class AccountStateException(ProvisioningException):
    """Raised when an account lifecycle action is not allowed in the current state."""
    pass


class NotificationException(ProvisioningException):
    """Raised when an email cannot be delivered through SES."""
    pass

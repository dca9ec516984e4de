"""
Translation of botocore failures into application storage exceptions.
"""
import re
from typing import List, Optional

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from provisioning.core.exceptions import DynamoDBException, TransientStorageException

TRANSIENT_ERROR_CODES = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
    'TransactionInProgressException',
}

TRANSIENT_CANCELLATION_CODES = {
    'TransactionConflict',
    'ThrottlingError',
    'ProvisionedThroughputExceeded',
    'InternalServerError',
}

CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectionClosedError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

_REASONS_IN_MESSAGE = re.compile(r"\[([^\]]*)\]\s*$")


def error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def cancellation_reasons(error: ClientError) -> List[Optional[str]]:
    """
    Per-item outcome codes of a cancelled transaction, in request order.

    Uses the structured CancellationReasons when the service returns them and
    falls back to the bracketed list at the end of the error message.
    """
    reasons = error.response.get('CancellationReasons')
    if reasons:
        return [reason.get('Code') if reason.get('Code') not in (None, 'None') else None for reason in reasons]

    message = error.response.get('Error', {}).get('Message', '')
    match = _REASONS_IN_MESSAGE.search(message)
    if not match:
        return []
    return [None if code.strip() in ('', 'None') else code.strip() for code in match.group(1).split(',')]


def is_transient(error: ClientError) -> bool:
    code = error_code(error)
    if code in TRANSIENT_ERROR_CODES:
        return True
    if code == 'TransactionCanceledException':
        return any(reason in TRANSIENT_CANCELLATION_CODES for reason in cancellation_reasons(error))
    return False


def storage_error(action: str, error: Exception) -> DynamoDBException:
    """Wrap a boto failure, marking retryable ones as transient."""
    if isinstance(error, CONNECTION_ERRORS):
        return TransientStorageException(f"Failed to {action}: {str(error)}")
    if isinstance(error, ClientError) and is_transient(error):
        return TransientStorageException(f"Failed to {action}: {str(error)}")
    return DynamoDBException(f"Failed to {action}: {str(error)}")

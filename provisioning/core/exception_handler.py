"""
Global exception handler for the Bulk Provisioning API.
Provides centralized error handling for all API exceptions.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from .exceptions import (
    AccountNotFoundException,
    AccountStateException,
    CSVProcessingException,
    DynamoDBException,
    NotificationException,
    UploadJobNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    @app.exception_handler(AccountNotFoundException)
    async def handle_account_not_found(request: Request, exc: AccountNotFoundException):
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "message": exc.message}
        )

    @app.exception_handler(UploadJobNotFoundException)
    async def handle_job_not_found(request: Request, exc: UploadJobNotFoundException):
        return JSONResponse(
            status_code=404,
            content={"error": "Not Found", "message": exc.message}
        )

    @app.exception_handler(ValidationException)
    async def handle_validation_error(request: Request, exc: ValidationException):
        return JSONResponse(
            status_code=400,
            content={"error": "Validation Error", "message": exc.message}
        )

    @app.exception_handler(CSVProcessingException)
    async def handle_csv_error(request: Request, exc: CSVProcessingException):
        return JSONResponse(
            status_code=400,
            content={"error": "CSV Processing Failed", "message": exc.message}
        )

    @app.exception_handler(AccountStateException)
    async def handle_state_error(request: Request, exc: AccountStateException):
        return JSONResponse(
            status_code=409,
            content={"error": "Conflict", "message": exc.message}
        )

    @app.exception_handler(NotificationException)
    async def handle_notification_error(request: Request, exc: NotificationException):
        return JSONResponse(
            status_code=502,
            content={"error": "Email Delivery Failed", "message": exc.message}
        )

    @app.exception_handler(DynamoDBException)
    async def handle_dynamodb_error(request: Request, exc: DynamoDBException):
        logger.error("Storage error on %s: %s", request.url.path, exc.message)
        return JSONResponse(
            status_code=500,
            content={"error": "Database Error", "message": exc.message}
        )

    @app.exception_handler(Exception)
    async def handle_generic_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "message": "An unexpected error occurred"}
        )

"""
Main FastAPI application entry point.
Configures and initializes the Bulk Provisioning API.
"""
import logging

from fastapi import FastAPI, Request
from mangum import Mangum
from provisioning.core.config import settings
from provisioning.core.exception_handler import register_exception_handlers
from provisioning.core.logging_config import configure_logging
from provisioning.api.routes import account_routes, health_routes, upload_routes

configure_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description="Bulk provisioning of student and trainer accounts from CSV rosters",
    root_path=f"/{settings.environment}"
)

# Register exception handlers
register_exception_handlers(app)

# Register routes
app.include_router(health_routes.router)
app.include_router(upload_routes.router)
app.include_router(account_routes.router)


# Middleware to log request paths
@app.middleware("http")
async def log_request(request: Request, call_next):
    response = await call_next(request)
    logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
    return response

# Lambda handler for AWS
handler = Mangum(app, lifespan="off")


# For local development
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

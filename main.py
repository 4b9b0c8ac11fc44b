from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

# Internal imports
from config import config
from data.database import create_tables
from api.experiment_routes import experiment_router
from api.feature_routes import feature_router
from services.errors import (
    ExperimentServiceError, NotFoundError, InvalidExperimentError, DuplicateExperimentError, StoreError
)

import contextlib
import logging
import middleware

logger = logging.getLogger(__name__)

# Engine errors and the HTTP status they map to
ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidExperimentError: status.HTTP_400_BAD_REQUEST,
    DuplicateExperimentError: status.HTTP_409_CONFLICT,
    StoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handles startup and shutdown events for the application.
    Code before 'yield' runs on startup.
    Code after 'yield' runs on shutdown.
    """
    logger.info("Application starting up with %s", config)
    create_tables()
    logger.info("Database tables initialized successfully.")

    yield

    logger.info("Application shutting down: Closing resources...")

# --- FastAPI App Initialization ---
app = FastAPI(
    lifespan=lifespan,
    title="Coloring Game Experiment API",
    version="1.0.0",
    description="A/B test assignment, gradual rollout feature flags and experiment metrics."
)

app.add_middleware(middleware.RequestIDMiddleware)

app.include_router(experiment_router)
app.include_router(feature_router)


@app.exception_handler(ExperimentServiceError)
async def experiment_error_handler(request: Request, exc: ExperimentServiceError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(content={"status": "failed", "error": str(exc)}, status_code=status_code)


@app.get("/health")
def health_check():
    return JSONResponse(content={"status": "healthy"}, status_code=200)

"""FastAPI application main module.

This module defines the main FastAPI application instance and core API
endpoints for the Akin recommendation service. It provides health check
and metrics endpoints, registers the error handlers and serves as the entry
point for the API server.
"""

import logging
import os
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from akin.api.logging_config import RequestLoggingMiddleware, setup_logging
from akin.api.metrics import metrics_service
from akin.api.routes import pipeline, recommend
from akin.recommender.exceptions import AkinException

logger = logging.getLogger(__name__)

setup_logging(
    os.environ.get("AKIN_LOG_LEVEL", "INFO"),
    json_format=os.environ.get("AKIN_LOG_FORMAT", "json") != "plain",
)

# Create FastAPI application instance
app = FastAPI(
    title="Akin API",
    description="Batch collaborative-filtering recommendation service",
    version="0.1.0",
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(pipeline.router)
app.include_router(recommend.router)


@app.exception_handler(AkinException)
async def akin_exception_handler(request: Request, exc: AkinException) -> JSONResponse:
    """Render engine errors with their carried status code."""
    if exc.status_code >= 500:
        logger.error(
            f"Request failed: {exc.message}",
            extra={"path": str(request.url.path), "error_type": type(exc).__name__},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.get("/ping")
def ping() -> Dict[str, str]:
    """Health check endpoint.

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/metrics")
def metrics() -> Dict:
    """Return pipeline stage and sampling metrics."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "akin.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

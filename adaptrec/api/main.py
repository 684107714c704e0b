"""FastAPI application main module.

This module defines the FastAPI application instance, its exception
handlers and the health/status endpoints of the AdaptRec service.
"""

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from adaptrec import __version__
from adaptrec.api.logging_config import RequestLoggingMiddleware
from adaptrec.api.metrics import metrics_service
from adaptrec.api.registry import get_registry
from adaptrec.api.routes import recommend, sessions
from adaptrec.exceptions import AdaptRecException

logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title="AdaptRec API",
    description="Adaptive, diversity-balanced product recommendation service",
    version=__version__,
)

app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(recommend.router)
app.include_router(sessions.router)


@app.exception_handler(AdaptRecException)
async def adaptrec_exception_handler(request: Request, exc: AdaptRecException) -> JSONResponse:
    """Turn AdaptRec errors into JSON responses with their status code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        exc.message,
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "path": str(request.url.path),
            "status_code": exc.status_code,
            "error_type": type(exc).__name__,
        },
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

    Returns:
        Dictionary with status key set to "ok".

    Example:
        >>> response = client.get("/ping")
        >>> assert response.json() == {"status": "ok"}
    """
    return {"status": "ok"}


@app.get("/status")
def get_status() -> Dict[str, Any]:
    """Report whether a catalog is loaded and how many sessions are open.

    Never fails on a missing catalog, so it can be used as a readiness probe.
    """
    try:
        registry = get_registry()
    except AdaptRecException as e:
        logger.warning(f"Catalog unavailable: {e.message}")
        registry = None

    return {
        "catalog_loaded": registry is not None,
        "num_products": len(registry.catalog) if registry else 0,
        "num_categories": len(registry.catalog.categories) if registry else 0,
        "active_sessions": registry.active_sessions if registry else 0,
        "scorer": registry.training_config.scorer if registry else None,
    }


@app.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Training and recommendation pass counters and latencies."""
    return metrics_service.get_metrics()


if __name__ == "__main__":
    import uvicorn

    from adaptrec.api.logging_config import setup_logging

    setup_logging()

    uvicorn.run(
        "adaptrec.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

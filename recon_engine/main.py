"""Main FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .api import anomalies, reconcile
from .config import settings
from .errors import ConcurrencyConflictError, InvalidStateError, NotFoundError, ValidationError
from .health import get_health_status

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Reconciliation Engine", version="1.0.0")

app.include_router(reconcile.router)
app.include_router(anomalies.router)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConcurrencyConflictError)
async def conflict_handler(request: Request, exc: ConcurrencyConflictError):
    logger.warning(f"Concurrent write conflict on {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"message": "Reconciliation engine running"}


@app.get("/health")
async def health():
    """Liveness probe - always returns OK if app is running."""
    return {"status": "ok"}


@app.get("/health/ready")
async def health_ready():
    """Readiness probe - checks the database."""
    status = await get_health_status()
    code = 200 if status["status"] == "healthy" else 503
    return JSONResponse(content=status, status_code=code)


@app.get("/health/full")
async def health_full():
    """Full health check with details."""
    return await get_health_status()

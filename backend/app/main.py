"""
DMN Evaluator API
FastAPI application that routes inbound emails through a Camunda DMN decision.
"""

import logging
import time

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import Settings, get_settings
from app.routers import evaluate
from app.services.decision_engine import (
    DecisionEngine,
    RemoteEvaluationError,
    get_decision_engine,
)
from app.services.evaluation import utc_timestamp

settings = get_settings()

# Configure logging to output to console
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

_STARTED_AT = time.monotonic()

app = FastAPI(
    title="DMN Evaluator",
    description="Evaluates inbound emails against a Camunda DMN routing decision",
    version="0.1.0",
)

# CORS configuration: origins come from CORS_ORIGINS (comma-separated)
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(evaluate.router, tags=["evaluate"])


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler so no fault reaches the client as a bare 500 page."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": str(exc) or "Internal Server Error"},
    )


@app.on_event("startup")
async def log_startup() -> None:
    logger.info(
        "DMN evaluator running at http://localhost:%s (decisionId=%s)",
        settings.port,
        settings.dmn_decision_id,
    )


@app.get("/")
async def root(settings: Settings = Depends(get_settings)):
    """Wake-up / liveness probe."""
    return {
        "status": "ok",
        "message": "DMN evaluator is awake",
        "evaluatedDecisionId": settings.dmn_decision_id,
        "timestamp": utc_timestamp(),
        "uptime_seconds": round(time.monotonic() - _STARTED_AT, 3),
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/engine")
def health_engine(engine: DecisionEngine = Depends(get_decision_engine)):
    """
    Test the decision engine connection.

    Returns 503 when the engine cannot be reached.
    """
    try:
        status = engine.check_connection()
    except RemoteEvaluationError as exc:
        logger.error("Decision engine health check failed: %s", exc.message)
        raise HTTPException(
            status_code=503,
            detail=f"Decision engine unreachable: {exc.message}",
        )
    return {"status": "ok", **status}

"""
Evaluate router.

Endpoints:
  POST /evaluate : extract emails / route labels from the body and evaluate
                    each one against the configured DMN decision

Responses:
  200  {evaluated_at, results: [...]} : even when individual records failed
  400  {error}                        : body is not JSON, or nothing to evaluate
  500  {error}                        : unexpected failure anywhere in the pipeline
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from app.config import Settings, get_settings
from app.models.evaluation import ErrorResponse, EvaluationResponse
from app.services.decision_engine import DecisionEngine, get_decision_engine
from app.services.decision_relay import DecisionRelay
from app.services.evaluation import ExtractionEmpty, evaluate_payload

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_JSON_MESSAGE = "Request body is not valid JSON"


def get_decision_relay(
    engine: DecisionEngine = Depends(get_decision_engine),
    settings: Settings = Depends(get_settings),
) -> DecisionRelay:
    return DecisionRelay(
        engine=engine,
        decision_id=settings.dmn_decision_id,
        decision_requirements_id=settings.dmn_requirements_id,
    )


def _reject_constant(name: str):
    """NaN and Infinity are accepted by the json module but are not valid JSON."""
    raise ValueError(f"Invalid JSON constant {name}")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@router.post(
    "/evaluate",
    response_model=EvaluationResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def evaluate(
    request: Request,
    relay: DecisionRelay = Depends(get_decision_relay),
    settings: Settings = Depends(get_settings),
):
    """
    Evaluate every email (or route label) in the request body.

    The body is read manually rather than through a pydantic model because
    several unrelated shapes are accepted; see payload_normalizer.
    """
    raw_body = await request.body()
    if raw_body.strip():
        try:
            payload = json.loads(raw_body, parse_constant=_reject_constant)
        except (ValueError, RecursionError):
            logger.warning("Rejected /evaluate request with a malformed JSON body")
            return _error(400, INVALID_JSON_MESSAGE)
    else:
        payload = None

    logger.info("Incoming request at /evaluate (%d bytes)", len(raw_body))
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Request body: %s", json.dumps(payload, indent=2))

    try:
        return await run_in_threadpool(
            evaluate_payload, payload, relay, settings.max_workers
        )
    except ExtractionEmpty as exc:
        logger.warning(exc.message)
        return _error(400, exc.message)
    except Exception as exc:
        logger.exception("Unhandled error while evaluating request")
        return _error(500, str(exc) or "Internal Server Error")

"""
Evaluation pipeline: payload -> candidates -> decision relay -> response.

Public API:
  evaluate_payload(payload, relay, max_workers=1) -> EvaluationResponse

Only ExtractionEmpty aborts a request here. Per-record problems (validation,
remote evaluation, output parsing) become failure envelopes so sibling
records are still processed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

from app.models.evaluation import (
    EnvelopeError,
    ErrorType,
    EvaluationResponse,
    FailureEnvelope,
    ResultEnvelope,
)
from app.services.decision_relay import DecisionRelay
from app.services.payload_normalizer import Candidate, extract_candidates

logger = logging.getLogger(__name__)

NO_EMAILS_MESSAGE = "No emails found in request body"


class ExtractionEmpty(Exception):
    """Raised when a request body yields no candidate records."""
    def __init__(self, message: str = NO_EMAILS_MESSAGE):
        super().__init__(message)
        self.message = message


def utc_timestamp() -> str:
    """Current UTC time as ISO 8601 with millisecond precision, e.g. 2025-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _preview(candidate: Candidate) -> dict:
    raw = candidate.raw if isinstance(candidate.raw, dict) else {}
    return {
        "subject": raw.get("subject"),
        "message_id": raw.get("message_id"),
        "valid": candidate.valid,
    }


def _process_candidate(index: int, candidate: Candidate, relay: DecisionRelay) -> ResultEnvelope:
    logger.info(f"Processing candidate #{index + 1}: {_preview(candidate)}")

    if not candidate.valid:
        logger.warning(f"Skipping invalid candidate #{index + 1}: {candidate.error}")
        return FailureEnvelope(
            input=candidate.raw,
            error=EnvelopeError(type=ErrorType.VALIDATION, message=candidate.error),
        )

    return relay.evaluate(candidate.record.to_variables())


def evaluate_payload(
    payload: Any,
    relay: DecisionRelay,
    max_workers: int = 1,
) -> EvaluationResponse:
    """
    Run every candidate in the payload through the relay.

    Args:
        payload: Raw JSON request body.
        relay: Configured DecisionRelay.
        max_workers: Above 1, records are evaluated concurrently on a thread
            pool. Results keep input order either way.

    Raises:
        ExtractionEmpty: no candidates were found (no remote calls are made).
    """
    candidates = extract_candidates(payload)
    if not candidates:
        raise ExtractionEmpty()

    logger.info(f"Extracted {len(candidates)} candidate(s)")

    if max_workers > 1 and len(candidates) > 1:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(candidates))) as pool:
            results = list(
                pool.map(
                    lambda pair: _process_candidate(pair[0], pair[1], relay),
                    enumerate(candidates),
                )
            )
    else:
        results = [
            _process_candidate(i, candidate, relay)
            for i, candidate in enumerate(candidates)
        ]

    succeeded = sum(1 for r in results if r.ok)
    logger.info(f"Evaluation finished: {succeeded} succeeded, {len(results) - succeeded} failed")

    return EvaluationResponse(evaluated_at=utc_timestamp(), results=results)

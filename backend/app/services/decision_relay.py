"""
Decision relay service.

Sends one canonical record to the decision engine and turns whatever comes
back into a ResultEnvelope.

Output handling:
  - no output / empty string / JSON null   -> no-match sentinel, matched=False
  - JSON string                             -> decoded
  - structured value                        -> used as-is
  - empty list                              -> no-match sentinel, matched=False
  - non-empty list                          -> first entry only
  - undecodable string                      -> OutputParseError envelope with the raw text

Collect-style hit policies can return several matching rows; only the first
one is surfaced.
"""

import json
import logging
from typing import Any

from app.models.evaluation import (
    DecisionMeta,
    EnvelopeError,
    ErrorType,
    FailureEnvelope,
    ResultEnvelope,
    SuccessEnvelope,
)
from app.services.decision_engine import DecisionEngine, RemoteEvaluationError

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No matching rule"


def no_match_output() -> dict:
    return {"dmn_evaluation": NO_MATCH_MESSAGE}


class OutputParseError(Exception):
    """Raised when the engine's decision output is not valid JSON."""
    def __init__(self, message: str, raw: str):
        super().__init__(message)
        self.message = message
        self.raw = raw


def parse_decision_output(raw_output: Any) -> tuple[Any, bool]:
    """
    Decode the engine's decision output.

    Returns:
        (output, matched): matched is False when no rule matched, in which
        case output is the no-match sentinel.

    Raises:
        OutputParseError: raw_output is a string that is not valid JSON.
    """
    if raw_output is None or raw_output == "":
        return no_match_output(), False

    if isinstance(raw_output, str):
        try:
            parsed = json.loads(raw_output)
        except json.JSONDecodeError as exc:
            raise OutputParseError(f"Failed to parse DMN output: {exc.msg}", raw=raw_output) from exc
    else:
        parsed = raw_output

    if parsed is None:
        return no_match_output(), False

    if isinstance(parsed, list):
        if not parsed:
            return no_match_output(), False
        if len(parsed) > 1:
            logger.debug("DMN returned %d matches; keeping the first", len(parsed))
        return parsed[0], True

    return parsed, True


class DecisionRelay:
    """
    Relays canonical records to a fixed decision.

    decision_id and decision_requirements_id come from deployment settings and
    are the same for every call.
    """

    def __init__(
        self,
        engine: DecisionEngine,
        decision_id: str,
        decision_requirements_id: str,
    ):
        self.engine = engine
        self.decision_id = decision_id
        self.decision_requirements_id = decision_requirements_id

    def evaluate(self, variables: dict) -> ResultEnvelope:
        """
        Evaluate one record. Remote and parse failures come back as failure
        envelopes; any other exception propagates.
        """
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("DMN evaluation input variables: %s", json.dumps(variables, default=str))

        try:
            result = self.engine.evaluate_decision(
                self.decision_id,
                self.decision_requirements_id,
                variables,
            )
        except RemoteEvaluationError as exc:
            logger.warning("DMN evaluation failed: %s", exc.message)
            return FailureEnvelope(
                input=variables,
                error=EnvelopeError(
                    type=ErrorType.REMOTE_EVALUATION,
                    message=exc.message or "DMN evaluation failed",
                    detail=exc.to_detail(),
                ),
            )

        try:
            output, matched = parse_decision_output(result.decision_output)
        except OutputParseError as exc:
            logger.warning("Could not parse DMN output: %r", exc.raw)
            return FailureEnvelope(
                input=variables,
                error=EnvelopeError(
                    type=ErrorType.OUTPUT_PARSE,
                    message=exc.message,
                    detail={"raw": exc.raw},
                ),
            )

        return SuccessEnvelope(
            input=variables,
            output=output,
            matched=matched,
            meta=DecisionMeta.from_result(result),
        )

"""
Pydantic models for the decision evaluation pipeline.

Models:
  EmailRecord         : canonical email input sent to the decision engine
  ClassificationRecord: canonical route/classification input
  DecisionResult      : raw result returned by the decision engine client
  DecisionMeta        : passthrough metadata attached to successful results
  EnvelopeError       : per-record failure description
  SuccessEnvelope     : {ok: true, input, output, matched, meta}
  FailureEnvelope     : {ok: false, input, error}
  EvaluationResponse  : body of a processed POST /evaluate
  ErrorResponse       : body of a request-level failure
"""

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


# Reported for any metadata field the engine leaves out
META_PLACEHOLDER = "N/A"


# ---------------------------------------------------------------------------
# Canonical input records
# ---------------------------------------------------------------------------

class EmailRecord(BaseModel):
    """
    Canonical email form.

    ``from`` is a Python keyword, so the field is named ``from_`` and
    serialized under its alias.
    """
    model_config = {"populate_by_name": True}

    from_: str = Field(alias="from")
    subject: str
    body_text: str = ""
    attachments: list = []
    headers: dict = {}
    to: list = []
    cc: list = []
    bcc: list = []
    message_id: Optional[str] = None
    internet_message_id: Optional[str] = None

    def to_variables(self) -> dict:
        """Input variables for the decision engine (keyed ``from``, not ``from_``)."""
        return self.model_dump(by_alias=True)


class ClassificationRecord(BaseModel):
    """A single route/classification label. ``key`` is either "route" or "classification"."""
    key: Literal["route", "classification"]
    value: str

    def to_variables(self) -> dict:
        return {self.key: self.value}


CanonicalRecord = Union[EmailRecord, ClassificationRecord]


# ---------------------------------------------------------------------------
# Decision engine result
# ---------------------------------------------------------------------------

class DecisionResult(BaseModel):
    """
    What the decision engine returned for one evaluation.

    decision_output may be None (no output), a JSON-encoded string, or an
    already structured value depending on the engine client.
    """
    decision_output: Any = None
    decision_id: Optional[str] = None
    decision_name: Optional[str] = None
    decision_definition_id: Optional[str] = None
    decision_requirements_id: Optional[str] = None
    tenant_id: Optional[str] = None


class DecisionMeta(BaseModel):
    decision_id: str = META_PLACEHOLDER
    decision_name: str = META_PLACEHOLDER
    decision_definition_id: str = META_PLACEHOLDER
    decision_requirements_id: str = META_PLACEHOLDER
    tenant_id: str = META_PLACEHOLDER

    @classmethod
    def from_result(cls, result: DecisionResult) -> "DecisionMeta":
        """Copy metadata from a DecisionResult, keeping the placeholder for empty fields."""
        values = {
            name: getattr(result, name)
            for name in cls.model_fields
            if getattr(result, name)
        }
        return cls(**values)


# ---------------------------------------------------------------------------
# Result envelopes
# ---------------------------------------------------------------------------

class ErrorType(str, Enum):
    VALIDATION = "ValidationError"
    REMOTE_EVALUATION = "RemoteEvaluationError"
    OUTPUT_PARSE = "OutputParseError"


class EnvelopeError(BaseModel):
    type: ErrorType
    message: str
    detail: Optional[dict] = None


class SuccessEnvelope(BaseModel):
    """
    A record the engine evaluated.

    matched is False when no rule matched; output then holds the
    no-match sentinel rather than an error.
    """
    ok: Literal[True] = True
    input: dict
    output: Any
    matched: bool = True
    meta: DecisionMeta


class FailureEnvelope(BaseModel):
    """A record that failed validation, remote evaluation, or output parsing."""
    ok: Literal[False] = False
    input: Any
    error: EnvelopeError


ResultEnvelope = Union[SuccessEnvelope, FailureEnvelope]


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------

class EvaluationResponse(BaseModel):
    evaluated_at: str
    results: list[ResultEnvelope]


class ErrorResponse(BaseModel):
    error: str

"""
Payload normalizer service.

Turns an arbitrary JSON request body into an ordered list of candidate
records for the decision engine.

Supported body shapes (first match wins):
  [ {...}, {...} ]                  SEQUENCE       : each element, unwrapping
                                                      a nested email/body object
  {"emails": [ ... ]}               EMAILS_WRAPPER : each element as-is
  {"email": {...}}                  EMAIL_WRAPPER  : the nested object
  {"route": "billing"}              SCALAR_ROUTE   : one classification record;
  {"variables": {"classification":                    route/classification may sit
      {"value": "billing"}}}                          under "variables" and be
                                                      wrapped as {"value": ...}
  {"subject": ..., "from": {...}}   BARE_EMAIL     : the body itself
  anything else                     UNRECOGNIZED   : no candidates

Invalid candidates are kept and flagged so the caller can report them
individually. Everything here is a pure function of the payload.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from app.models.evaluation import CanonicalRecord, ClassificationRecord, EmailRecord

EMAIL_VALIDATION_ERROR = (
    "Missing required fields: email.from.email / email.from_ / email.fromEmail "
    "or email.subject"
)
CLASSIFICATION_VALIDATION_ERROR = (
    "Missing required field: route or classification must be a non-empty string"
)
NOT_AN_OBJECT_ERROR = "Email entry must be a JSON object"

# Checked in this order; route wins when both are present
_CLASSIFICATION_KEYS = ("route", "classification")


class PayloadShape(str, Enum):
    SEQUENCE = "sequence"
    EMAILS_WRAPPER = "emails_wrapper"
    EMAIL_WRAPPER = "email_wrapper"
    SCALAR_ROUTE = "scalar_route"
    BARE_EMAIL = "bare_email"
    UNRECOGNIZED = "unrecognized"


@dataclass
class Candidate:
    """One extracted candidate: the raw object plus either a record or an error."""
    raw: Any
    record: Optional[CanonicalRecord] = None
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.record is not None


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def resolve_sender(candidate: Any) -> Optional[str]:
    """
    Return the sender address of an email-like mapping, or None.

    Priority: from.email, then from_.email, then fromEmail.
    """
    if not isinstance(candidate, dict):
        return None
    for key in ("from", "from_"):
        nested = candidate.get(key)
        if isinstance(nested, dict):
            sender = _non_empty_str(nested.get("email"))
            if sender:
                return sender
    return _non_empty_str(candidate.get("fromEmail"))


def _as_list(value: Any) -> list:
    """Lists pass through; a lone address string becomes a one-item list."""
    if isinstance(value, list):
        return value
    if _non_empty_str(value):
        return [value]
    return []


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None or value == "" or isinstance(value, (dict, list)):
        return None
    return str(value)


def _looks_like_email(payload: dict) -> bool:
    return bool(_non_empty_str(payload.get("subject")) and resolve_sender(payload))


def _is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (dict, list))


def _unwrap_value(value: Any) -> Any:
    """{"value": x} -> x; anything else unchanged."""
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _find_classification(payload: dict) -> Optional[tuple[str, Any]]:
    """
    Locate a scalar route/classification label at the top level or under
    "variables". Returns (key, value) or None.
    """
    scopes = [payload]
    variables = payload.get("variables")
    if isinstance(variables, dict):
        scopes.append(variables)

    for scope in scopes:
        for key in _CLASSIFICATION_KEYS:
            if key not in scope:
                continue
            value = _unwrap_value(scope[key])
            if _is_scalar(value):
                return key, value
    return None


# ---------------------------------------------------------------------------
# Shape classification
# ---------------------------------------------------------------------------

def classify_payload(payload: Any) -> PayloadShape:
    """Match a raw payload against the supported shapes, in priority order."""
    if isinstance(payload, list):
        return PayloadShape.SEQUENCE
    if not isinstance(payload, dict):
        return PayloadShape.UNRECOGNIZED
    if isinstance(payload.get("emails"), list):
        return PayloadShape.EMAILS_WRAPPER
    if isinstance(payload.get("email"), dict):
        return PayloadShape.EMAIL_WRAPPER
    if _find_classification(payload) is not None:
        return PayloadShape.SCALAR_ROUTE
    if _looks_like_email(payload):
        return PayloadShape.BARE_EMAIL
    return PayloadShape.UNRECOGNIZED


# ---------------------------------------------------------------------------
# Candidate builders
# ---------------------------------------------------------------------------

def build_email_candidate(raw: Any) -> Candidate:
    """Validate an email-like object and map it onto EmailRecord."""
    if not isinstance(raw, dict):
        return Candidate(raw=raw, error=NOT_AN_OBJECT_ERROR)

    sender = resolve_sender(raw)
    subject = _non_empty_str(raw.get("subject"))
    if not sender or not subject:
        return Candidate(raw=raw, error=EMAIL_VALIDATION_ERROR)

    body_text = raw.get("body_text") or raw.get("body") or ""
    if not isinstance(body_text, str):
        body_text = ""

    headers = raw.get("headers")

    record = EmailRecord(
        from_=sender,
        subject=subject,
        body_text=body_text,
        attachments=_as_list(raw.get("attachments")),
        headers=headers if isinstance(headers, dict) else {},
        to=_as_list(raw.get("to")),
        cc=_as_list(raw.get("cc")),
        bcc=_as_list(raw.get("bcc")),
        message_id=_as_optional_str(raw.get("message_id")),
        internet_message_id=_as_optional_str(raw.get("internet_message_id")),
    )
    return Candidate(raw=raw, record=record)


def build_classification_candidate(payload: dict) -> Candidate:
    found = _find_classification(payload)
    if found is None:
        return Candidate(raw=payload, error=CLASSIFICATION_VALIDATION_ERROR)
    key, value = found
    if not _non_empty_str(value):
        return Candidate(raw=payload, error=CLASSIFICATION_VALIDATION_ERROR)
    return Candidate(raw=payload, record=ClassificationRecord(key=key, value=value))


def _unwrap_element(element: Any) -> Any:
    """Sequence elements may nest the email under "email" or "body"."""
    if isinstance(element, dict):
        for key in ("email", "body"):
            nested = element.get(key)
            if isinstance(nested, dict):
                return nested
    return element


def _from_sequence(payload: list) -> list[Candidate]:
    return [build_email_candidate(_unwrap_element(el)) for el in payload]


def _from_emails_wrapper(payload: dict) -> list[Candidate]:
    return [build_email_candidate(el) for el in payload["emails"]]


def _from_email_wrapper(payload: dict) -> list[Candidate]:
    return [build_email_candidate(payload["email"])]


def _from_scalar_route(payload: dict) -> list[Candidate]:
    return [build_classification_candidate(payload)]


def _from_bare_email(payload: dict) -> list[Candidate]:
    return [build_email_candidate(payload)]


def _from_unrecognized(payload: Any) -> list[Candidate]:
    return []


_EXTRACTORS: dict[PayloadShape, Callable[[Any], list[Candidate]]] = {
    PayloadShape.SEQUENCE: _from_sequence,
    PayloadShape.EMAILS_WRAPPER: _from_emails_wrapper,
    PayloadShape.EMAIL_WRAPPER: _from_email_wrapper,
    PayloadShape.SCALAR_ROUTE: _from_scalar_route,
    PayloadShape.BARE_EMAIL: _from_bare_email,
    PayloadShape.UNRECOGNIZED: _from_unrecognized,
}


def extract_candidates(payload: Any) -> list[Candidate]:
    """
    Extract and validate candidate records from a raw request body.

    Returns candidates in input order. Invalid ones carry an error message
    instead of a record.
    """
    shape = classify_payload(payload)
    return _EXTRACTORS[shape](payload)

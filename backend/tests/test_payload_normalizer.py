"""
Unit tests for the payload normalizer.

Covers every accepted body shape, sender resolution priority, field defaults,
and validation flags on invalid candidates.
"""

import pytest

from app.models.evaluation import ClassificationRecord, EmailRecord
from app.services.payload_normalizer import (
    CLASSIFICATION_VALIDATION_ERROR,
    EMAIL_VALIDATION_ERROR,
    NOT_AN_OBJECT_ERROR,
    PayloadShape,
    classify_payload,
    extract_candidates,
    resolve_sender,
)


def _email(subject: str = "Hi", sender: str = "a@x.com", **extra) -> dict:
    return {"subject": subject, "from": {"email": sender}, **extra}


# ---------------------------------------------------------------------------
# resolve_sender
# ---------------------------------------------------------------------------

class TestResolveSender:

    def test_from_email(self):
        assert resolve_sender({"from": {"email": "a@x.com"}}) == "a@x.com"

    def test_from_underscore_email(self):
        assert resolve_sender({"from_": {"email": "b@x.com"}}) == "b@x.com"

    def test_from_email_camel_case(self):
        assert resolve_sender({"fromEmail": "c@x.com"}) == "c@x.com"

    def test_priority_order(self):
        candidate = {
            "from": {"email": "first@x.com"},
            "from_": {"email": "second@x.com"},
            "fromEmail": "third@x.com",
        }
        assert resolve_sender(candidate) == "first@x.com"

    def test_falls_through_empty_from(self):
        candidate = {"from": {"email": ""}, "from_": {"email": "second@x.com"}}
        assert resolve_sender(candidate) == "second@x.com"

    def test_plain_string_from_is_not_resolved(self):
        assert resolve_sender({"from": "a@x.com"}) is None

    def test_non_mapping_returns_none(self):
        assert resolve_sender("a@x.com") is None
        assert resolve_sender(None) is None


# ---------------------------------------------------------------------------
# classify_payload
# ---------------------------------------------------------------------------

class TestClassifyPayload:

    @pytest.mark.parametrize(
        "payload, shape",
        [
            ([], PayloadShape.SEQUENCE),
            ([_email()], PayloadShape.SEQUENCE),
            ({"emails": []}, PayloadShape.EMAILS_WRAPPER),
            ({"email": _email()}, PayloadShape.EMAIL_WRAPPER),
            ({"route": "billing"}, PayloadShape.SCALAR_ROUTE),
            ({"classification": "sales"}, PayloadShape.SCALAR_ROUTE),
            ({"variables": {"route": {"value": "billing"}}}, PayloadShape.SCALAR_ROUTE),
            (_email(), PayloadShape.BARE_EMAIL),
            ({}, PayloadShape.UNRECOGNIZED),
            (None, PayloadShape.UNRECOGNIZED),
            ("hello", PayloadShape.UNRECOGNIZED),
            (42, PayloadShape.UNRECOGNIZED),
        ],
    )
    def test_shapes(self, payload, shape):
        assert classify_payload(payload) == shape

    def test_emails_wins_over_email(self):
        payload = {"emails": [_email()], "email": _email(subject="other")}
        assert classify_payload(payload) == PayloadShape.EMAILS_WRAPPER

    def test_emails_must_be_a_list(self):
        payload = {"emails": "nope", **_email()}
        assert classify_payload(payload) == PayloadShape.BARE_EMAIL

    def test_email_must_be_an_object(self):
        assert classify_payload({"email": "a@x.com"}) == PayloadShape.UNRECOGNIZED

    def test_route_wins_over_bare_email(self):
        assert classify_payload({"route": "billing", **_email()}) == PayloadShape.SCALAR_ROUTE

    def test_non_scalar_route_is_ignored(self):
        assert classify_payload({"route": ["billing"]}) == PayloadShape.UNRECOGNIZED

    def test_subject_without_sender_is_unrecognized(self):
        assert classify_payload({"subject": "Hi"}) == PayloadShape.UNRECOGNIZED


# ---------------------------------------------------------------------------
# extract_candidates: email shapes
# ---------------------------------------------------------------------------

class TestExtractEmails:

    def test_bare_email(self):
        candidates = extract_candidates({"subject": "Hi", "from": {"email": "a@x.com"}})

        assert len(candidates) == 1
        assert candidates[0].valid
        assert isinstance(candidates[0].record, EmailRecord)
        assert candidates[0].record.to_variables()["from"] == "a@x.com"

    def test_email_wrapper(self):
        candidates = extract_candidates({"email": _email(subject="Wrapped")})

        assert len(candidates) == 1
        assert candidates[0].record.subject == "Wrapped"

    def test_emails_wrapper_preserves_order(self):
        payload = {"emails": [_email(subject=s) for s in ("one", "two", "three")]}

        candidates = extract_candidates(payload)

        assert [c.record.subject for c in candidates] == ["one", "two", "three"]

    def test_sequence_unwraps_email_field(self):
        payload = [
            {"email": {"subject": "A", "from": {"email": "b@x.com"}}},
            {"email": {"subject": "B"}},
        ]

        candidates = extract_candidates(payload)

        assert len(candidates) == 2
        assert candidates[0].valid
        assert candidates[0].record.from_ == "b@x.com"
        assert not candidates[1].valid
        assert candidates[1].error == EMAIL_VALIDATION_ERROR
        assert candidates[1].raw == {"subject": "B"}

    def test_sequence_unwraps_body_field(self):
        candidates = extract_candidates([{"body": _email(subject="In body")}])

        assert candidates[0].record.subject == "In body"

    def test_sequence_keeps_string_body_as_text(self):
        """A string "body" is email text, not a nested email."""
        candidates = extract_candidates([_email(body="plain text")])

        assert candidates[0].record.body_text == "plain text"

    def test_sequence_uses_element_itself(self):
        candidates = extract_candidates([_email(subject="Direct")])

        assert candidates[0].record.subject == "Direct"

    def test_non_object_element_is_flagged(self):
        candidates = extract_candidates(["not an email", _email()])

        assert not candidates[0].valid
        assert candidates[0].error == NOT_AN_OBJECT_ERROR
        assert candidates[1].valid

    def test_invalid_candidates_are_kept(self):
        payload = {"emails": [{"subject": "no sender"}, {"from": {"email": "a@x.com"}}]}

        candidates = extract_candidates(payload)

        assert len(candidates) == 2
        assert all(not c.valid for c in candidates)

    def test_empty_sequence_yields_no_candidates(self):
        assert extract_candidates([]) == []

    @pytest.mark.parametrize("payload", [{}, None, "text", 3, {"foo": "bar"}])
    def test_unrecognized_yields_no_candidates(self, payload):
        assert extract_candidates(payload) == []

    def test_deterministic(self):
        payload = [{"email": _email(subject="A")}, {"email": {"subject": "B"}}]

        first = extract_candidates(payload)
        second = extract_candidates(payload)

        assert [(c.valid, c.record, c.error) for c in first] == [
            (c.valid, c.record, c.error) for c in second
        ]


# ---------------------------------------------------------------------------
# EmailRecord field mapping
# ---------------------------------------------------------------------------

class TestEmailRecordMapping:

    def test_defaults(self):
        record = extract_candidates(_email())[0].record

        assert record.to_variables() == {
            "from": "a@x.com",
            "subject": "Hi",
            "body_text": "",
            "attachments": [],
            "headers": {},
            "to": [],
            "cc": [],
            "bcc": [],
            "message_id": None,
            "internet_message_id": None,
        }

    def test_all_fields_copied(self):
        payload = _email(
            body_text="Hello",
            attachments=[{"filename": "a.pdf"}],
            headers={"X-Priority": "1"},
            to=["t@x.com"],
            cc=["c@x.com"],
            bcc=["b@x.com"],
            message_id="m-1",
            internet_message_id="<m-1@x.com>",
        )

        variables = extract_candidates(payload)[0].record.to_variables()

        assert variables["body_text"] == "Hello"
        assert variables["attachments"] == [{"filename": "a.pdf"}]
        assert variables["headers"] == {"X-Priority": "1"}
        assert variables["to"] == ["t@x.com"]
        assert variables["cc"] == ["c@x.com"]
        assert variables["bcc"] == ["b@x.com"]
        assert variables["message_id"] == "m-1"
        assert variables["internet_message_id"] == "<m-1@x.com>"

    def test_body_used_when_body_text_missing(self):
        record = extract_candidates(_email(body="fallback"))[0].record
        assert record.body_text == "fallback"

    def test_body_text_preferred_over_body(self):
        record = extract_candidates(_email(body_text="primary", body="fallback"))[0].record
        assert record.body_text == "primary"

    def test_lone_recipient_string_becomes_list(self):
        record = extract_candidates(_email(to="t@x.com"))[0].record
        assert record.to == ["t@x.com"]

    def test_numeric_message_id_is_stringified(self):
        record = extract_candidates(_email(message_id=123))[0].record
        assert record.message_id == "123"

    def test_from_underscore_sender(self):
        payload = {"subject": "Hi", "from_": {"email": "u@x.com"}}
        assert extract_candidates(payload)[0].record.from_ == "u@x.com"

    def test_from_email_camel_case_sender(self):
        payload = {"subject": "Hi", "fromEmail": "camel@x.com"}
        assert extract_candidates(payload)[0].record.from_ == "camel@x.com"


# ---------------------------------------------------------------------------
# extract_candidates: classification shape
# ---------------------------------------------------------------------------

class TestExtractClassification:

    def test_route(self):
        candidates = extract_candidates({"route": "billing"})

        assert len(candidates) == 1
        assert isinstance(candidates[0].record, ClassificationRecord)
        assert candidates[0].record.to_variables() == {"route": "billing"}

    def test_classification(self):
        record = extract_candidates({"classification": "sales"})[0].record
        assert record.to_variables() == {"classification": "sales"}

    def test_route_preferred_over_classification(self):
        record = extract_candidates({"route": "billing", "classification": "sales"})[0].record
        assert record.to_variables() == {"route": "billing"}

    def test_nested_under_variables(self):
        record = extract_candidates({"variables": {"route": "support"}})[0].record
        assert record.to_variables() == {"route": "support"}

    def test_value_wrapper(self):
        payload = {"variables": {"classification": {"value": "legal"}}}
        record = extract_candidates(payload)[0].record
        assert record.to_variables() == {"classification": "legal"}

    def test_top_level_value_wrapper(self):
        record = extract_candidates({"route": {"value": "billing"}})[0].record
        assert record.to_variables() == {"route": "billing"}

    def test_empty_route_is_flagged(self):
        candidates = extract_candidates({"route": ""})

        assert len(candidates) == 1
        assert not candidates[0].valid
        assert candidates[0].error == CLASSIFICATION_VALIDATION_ERROR

    def test_numeric_route_is_flagged(self):
        candidates = extract_candidates({"route": 7})

        assert not candidates[0].valid
        assert candidates[0].raw == {"route": 7}

"""
Tests for envelope parsing and the closed event catalogue.
"""

import pytest
from pydantic import ValidationError

from mission_control.gateway.events import (
    DOMAIN_EVENTS,
    LOCAL_EVENT_NAMES,
    PAYLOAD_TYPES,
    DomainEvent,
    EventType,
    UnknownEvent,
    decode_event,
    decode_payload,
    parse_envelope,
)
from mission_control.models.schemas import (
    CronTriggeredPayload,
    Envelope,
    TaskCreatedPayload,
)

from fixtures import sample_task


class TestParseEnvelope:

    def test_valid_frame(self):
        envelope = parse_envelope('{"type": "log.entry", "payload": {"a": 1}, "timestamp": "t"}')
        assert envelope == Envelope(type="log.entry", payload={"a": 1}, timestamp="t")

    def test_bytes_frame(self):
        assert parse_envelope(b'{"type": "pong"}').type == "pong"

    @pytest.mark.parametrize("frame", [
        "not json",
        "[]",
        "42",
        '{"payload": {}}',
        '{"type": 7}',
        b"\xff\xfe",
    ])
    def test_rejected_frames(self, frame):
        assert parse_envelope(frame) is None

    def test_non_string_timestamp_dropped(self):
        assert parse_envelope('{"type": "x", "timestamp": 5}').timestamp is None


class TestCatalogue:

    def test_every_event_has_a_payload_model(self):
        assert set(PAYLOAD_TYPES) == set(EventType)

    def test_domain_and_local_names_are_disjoint(self):
        domain_names = {kind.value for kind in DOMAIN_EVENTS}
        assert len(DOMAIN_EVENTS) == 8
        assert not domain_names & LOCAL_EVENT_NAMES
        assert "disconnect" in LOCAL_EVENT_NAMES

    def test_decode_payload_accepts_camel_case(self):
        payload = decode_payload(EventType.CRON_TRIGGERED, {"jobId": "c1", "triggeredAt": "t"})
        assert isinstance(payload, CronTriggeredPayload)
        assert payload.job_id == "c1"

    def test_decoded_payload_is_immutable(self):
        payload = decode_payload(EventType.TASK_CREATED, {"task": sample_task()})
        with pytest.raises(ValidationError):
            payload.task = None

    def test_decode_payload_rejects_bad_shape(self):
        with pytest.raises(ValidationError):
            decode_payload(EventType.SESSION_START, {"sessionId": "s"})


class TestDecodeEvent:

    def test_known_event(self):
        event = decode_event(Envelope(type="task.created", payload={"task": sample_task()}, timestamp="t"))
        assert isinstance(event, DomainEvent)
        assert event.kind is EventType.TASK_CREATED
        assert isinstance(event.payload, TaskCreatedPayload)
        assert event.timestamp == "t"

    def test_unknown_event_keeps_raw_payload(self):
        event = decode_event(Envelope(type="gateway.shiny", payload={"x": 1}))
        assert event == UnknownEvent(type="gateway.shiny", payload={"x": 1})

"""Tests for the trace event data model and its wire form."""

from __future__ import annotations

import dataclasses

import pytest

from trace_profiler import (
    PHASES,
    Argument,
    Complete,
    DurationBegin,
    DurationEnd,
    FlowBegin,
    FlowEnd,
    Metadata,
    TraceEvent,
    TraceFormatError,
    decode_event,
    encode_event,
)
from trace_profiler.trace_event import ClockSync, Counter, Instant


IMPLEMENTED_EVENTS = [
    DurationBegin(name="Task A", process_id=1, timestamp=10, thread_id=3),
    DurationEnd(process_id=1, timestamp=20),
    Complete(name="task B", process_id=1, timestamp=30, duration=5, thread_id=3),
    Metadata(name="thread_name", process_id=1, argument=Argument("worker"), thread_id=3),
    FlowBegin(name="Spawn", process_id=1, thread_id=3, timestamp=40, category="main_to_spawn", id=0),
    FlowEnd(name="End", process_id=1, thread_id=4, timestamp=50, category="main_to_spawn", id=0),
]


def test_duration_begin_wire_form() -> None:
    event = DurationBegin(name="Task A", process_id=1, timestamp=10)

    assert encode_event(event) == '{"ph":"B","name":"Task A","pid":1,"ts":10}'
    assert encode_event(event, indent=2) == '{\n  "ph": "B",\n  "name": "Task A",\n  "pid": 1,\n  "ts": 10\n}'


def test_flow_events_use_declared_key_order() -> None:
    event = FlowBegin(name="Spawn", process_id=1, thread_id=2, timestamp=3, category="link", id=9)

    assert list(event.to_dict()) == ["ph", "name", "pid", "tid", "ts", "cat", "id"]


@pytest.mark.parametrize(
    "event",
    [
        DurationBegin(name="a", process_id=0, timestamp=1),
        DurationEnd(process_id=0, timestamp=1),
        Complete(name="a", process_id=0, timestamp=1, duration=2),
        Metadata(name="process_name", process_id=0, argument=Argument("main")),
    ],
)
def test_thread_id_omitted_when_absent(event: TraceEvent) -> None:
    encoded = event.to_dict()

    assert "tid" not in encoded
    assert "null" not in encode_event(event)

    with_thread = dataclasses.replace(event, thread_id=77)
    assert with_thread.to_dict()["tid"] == 77


@pytest.mark.parametrize("event", IMPLEMENTED_EVENTS, ids=lambda e: e.phase)
def test_round_trip(event: TraceEvent) -> None:
    text = encode_event(event)

    assert decode_event(text) == event
    assert encode_event(decode_event(text)) == text


def test_metadata_args_payload() -> None:
    event = Metadata(name="thread_name", process_id=5, argument=Argument("io"), thread_id=6)

    assert event.to_dict() == {
        "ph": "M",
        "name": "thread_name",
        "pid": 5,
        "args": {"name": "io"},
        "tid": 6,
    }


def test_placeholder_phases_have_empty_payload() -> None:
    assert Instant().to_dict() == {"ph": "I"}
    assert TraceEvent.from_dict({"ph": "C"}) == Counter()
    assert TraceEvent.from_dict({"ph": "c", "ts": 12}) == ClockSync()
    assert Instant() != Counter()


def test_phase_registry_covers_format_vocabulary() -> None:
    assert set(PHASES) == set("BEXMsfICbnetPNODVvRc")
    for code, event_cls in PHASES.items():
        assert event_cls.phase == code


def test_events_are_immutable_and_compare_by_value() -> None:
    event = DurationEnd(process_id=1, timestamp=2, thread_id=3)

    with pytest.raises(dataclasses.FrozenInstanceError):
        event.timestamp = 5  # type: ignore[misc]

    assert event == DurationEnd(process_id=1, timestamp=2, thread_id=3)
    assert event != DurationEnd(process_id=1, timestamp=2)
    assert len({event, DurationEnd(process_id=1, timestamp=2, thread_id=3)}) == 1


def test_null_tid_decodes_as_absent() -> None:
    event = TraceEvent.from_dict({"ph": "E", "pid": 1, "ts": 2, "tid": None})

    assert event == DurationEnd(process_id=1, timestamp=2)


def test_unknown_keys_are_ignored() -> None:
    event = TraceEvent.from_dict({"ph": "B", "name": "a", "pid": 1, "ts": 2, "cat": "x", "args": {}})

    assert event == DurationBegin(name="a", process_id=1, timestamp=2)


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"name": "a", "pid": 1, "ts": 2},
        {"ph": "Z"},
        {"ph": 1},
        {"ph": "B", "pid": 1, "ts": 2},
        {"ph": "s", "name": "a", "pid": 1, "ts": 2, "cat": "c", "id": 0},
        {"ph": "B", "name": "a", "pid": -1, "ts": 2},
        {"ph": "B", "name": "a", "pid": 1, "ts": 2.5},
        {"ph": "B", "name": "a", "pid": True, "ts": 2},
        {"ph": "B", "name": 3, "pid": 1, "ts": 2},
        {"ph": "M", "name": "thread_name", "pid": 1, "args": "main"},
        {"ph": "M", "name": "thread_name", "pid": 1, "args": {"label": "main"}},
    ],
)
def test_malformed_events_raise(data) -> None:
    with pytest.raises(TraceFormatError):
        TraceEvent.from_dict(data)


def test_from_dict_on_concrete_class_checks_phase() -> None:
    data = {"ph": "E", "pid": 1, "ts": 2}

    assert DurationEnd.from_dict(data) == DurationEnd(process_id=1, timestamp=2)
    with pytest.raises(TraceFormatError):
        DurationBegin.from_dict(data)


def test_base_class_cannot_be_encoded() -> None:
    with pytest.raises(TypeError):
        TraceEvent().to_dict()


def test_decode_event_rejects_invalid_json() -> None:
    with pytest.raises(TraceFormatError):
        decode_event("{not json")

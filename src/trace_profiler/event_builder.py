"""
Staging builder that validates fields per phase before producing a TraceEvent.
"""

from __future__ import annotations
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from .errors import MissingField
from .trace_event import (
    Argument,
    Complete,
    DurationBegin,
    DurationEnd,
    FlowBegin,
    FlowEnd,
    Metadata,
    TraceEvent,
)


class Phase(Enum):
    """Event kinds the builder can finalize. The value is the kind name used in errors."""
    DURATION_BEGIN = "DurationBegin"
    DURATION_END = "DurationEnd"
    COMPLETE = "Complete"
    METADATA = "Metadata"
    FLOW_BEGIN = "FlowBegin"
    FLOW_END = "FlowEnd"

    @classmethod
    def _missing_(cls, value: object) -> Optional[Phase]:
        # also accept the one-character wire codes, e.g. Phase("B")
        if isinstance(value, str):
            return _PHASE_CODES.get(value)
        return None

    @property
    def code(self) -> str:
        """The ``ph`` value written for this kind."""
        return _CODES_BY_PHASE[self]


_PHASE_CODES: Dict[str, Phase] = {
    "B": Phase.DURATION_BEGIN,
    "E": Phase.DURATION_END,
    "X": Phase.COMPLETE,
    "M": Phase.METADATA,
    "s": Phase.FLOW_BEGIN,
    "f": Phase.FLOW_END,
}
_CODES_BY_PHASE: Dict[Phase, str] = {phase: code for code, phase in _PHASE_CODES.items()}

_STRING_FIELDS = ("name", "category")


_STAGEABLE: Tuple[str, ...] = (
    "phase",
    "name",
    "category",
    "id",
    "process_id",
    "timestamp",
    "thread_id",
    "duration",
    "argument",
)


def _check_value(field_name: str, value: Any) -> Any:
    """Reject values that could not be read back from the encoded event."""
    if field_name == "phase":
        if isinstance(value, Phase):
            return value
        try:
            return Phase(value)
        except ValueError:
            choices = [p.value for p in Phase] + list(_PHASE_CODES)
            raise ValueError(f"Unknown phase {value!r}; expected a Phase or one of {choices}") from None

    if field_name == "argument":
        if not isinstance(value, Argument):
            value = Argument(value)
        if not isinstance(value.name, str):
            raise TypeError(f"Argument name must be a string, got {value.name!r}")
        return value

    if field_name in _STRING_FIELDS:
        if not isinstance(value, str):
            raise TypeError(f"Event field '{field_name}' must be a string, got {value!r}")
        return value

    # bool is a subclass of int, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"Event field '{field_name}' must be an integer, got {value!r}")
    if value < 0:
        if field_name == "duration":
            raise ValueError("Duration is negative; check start/end timestamps.")
        raise ValueError(f"Event field '{field_name}' must be non-negative, got {value}")
    return value


class EventBuilder:
    """
    Collects optional field values and turns them into exactly one TraceEvent.

    Fields can be staged as keyword arguments or through the fluent setters::

        event = (EventBuilder()
                 .phase(Phase.DURATION_BEGIN)
                 .name("Task A")
                 .timestamp(10)
                 .process_id(0)
                 .build_for_trace_event())

    说明:
    - 每个 build_* 调用 (不论成功或抛出 MissingField) 都会消耗这个 builder,
      之后再调用 setter 或 build_* 会抛出 RuntimeError, 需要重新创建一个 builder.
    """

    def __init__(self, **staged: Any) -> None:
        self._values: Dict[str, Any] = {}
        self._consumed = False
        for field_name, value in staged.items():
            self._stage(field_name, value)

    # ---- staging ----

    def _stage(self, field_name: str, value: Any) -> EventBuilder:
        if self._consumed:
            raise RuntimeError("EventBuilder has already been consumed; create a new one")
        if field_name not in _STAGEABLE:
            raise TypeError(f"Unknown event field '{field_name}'")

        if value is not None:
            value = _check_value(field_name, value)

        self._values[field_name] = value
        return self

    def phase(self, value: Union[Phase, str]) -> EventBuilder:
        return self._stage("phase", value)

    def name(self, value: str) -> EventBuilder:
        return self._stage("name", value)

    def category(self, value: str) -> EventBuilder:
        return self._stage("category", value)

    def id(self, value: int) -> EventBuilder:
        return self._stage("id", value)

    def process_id(self, value: int) -> EventBuilder:
        return self._stage("process_id", value)

    def timestamp(self, value: int) -> EventBuilder:
        return self._stage("timestamp", value)

    def thread_id(self, value: int) -> EventBuilder:
        return self._stage("thread_id", value)

    def duration(self, value: int) -> EventBuilder:
        return self._stage("duration", value)

    def argument(self, value: Union[Argument, str]) -> EventBuilder:
        return self._stage("argument", value)

    @property
    def consumed(self) -> bool:
        return self._consumed

    # ---- finalizing ----

    def _take(self, kind: Phase, *required: str) -> Dict[str, Any]:
        """Consume the builder and return the staged values, checking ``required`` in order."""
        if self._consumed:
            raise RuntimeError("EventBuilder has already been consumed; create a new one")
        self._consumed = True

        values = self._values
        self._values = {}
        for field_name in required:
            if values.get(field_name) is None:
                raise MissingField(kind.value, field_name)
        return values

    def build_duration_begin(self) -> TraceEvent:
        values = self._take(Phase.DURATION_BEGIN, "name", "process_id", "timestamp")
        return DurationBegin(
            name=values["name"],
            process_id=values["process_id"],
            timestamp=values["timestamp"],
            thread_id=values.get("thread_id"),
        )

    def build_duration_end(self) -> TraceEvent:
        values = self._take(Phase.DURATION_END, "process_id", "timestamp")
        return DurationEnd(
            process_id=values["process_id"],
            timestamp=values["timestamp"],
            thread_id=values.get("thread_id"),
        )

    def build_complete(self) -> TraceEvent:
        values = self._take(Phase.COMPLETE, "name", "process_id", "timestamp", "duration")
        return Complete(
            name=values["name"],
            process_id=values["process_id"],
            timestamp=values["timestamp"],
            duration=values["duration"],
            thread_id=values.get("thread_id"),
        )

    def build_metadata(self) -> TraceEvent:
        values = self._take(Phase.METADATA, "name", "process_id", "argument")
        return Metadata(
            name=values["name"],
            process_id=values["process_id"],
            argument=values["argument"],
            thread_id=values.get("thread_id"),
        )

    def build_flow_begin(self) -> TraceEvent:
        values = self._take(
            Phase.FLOW_BEGIN, "name", "category", "process_id", "thread_id", "timestamp", "id"
        )
        return FlowBegin(
            name=values["name"],
            process_id=values["process_id"],
            thread_id=values["thread_id"],
            timestamp=values["timestamp"],
            category=values["category"],
            id=values["id"],
        )

    def build_flow_end(self) -> TraceEvent:
        values = self._take(
            Phase.FLOW_END, "name", "category", "process_id", "thread_id", "timestamp", "id"
        )
        return FlowEnd(
            name=values["name"],
            process_id=values["process_id"],
            thread_id=values["thread_id"],
            timestamp=values["timestamp"],
            category=values["category"],
            id=values["id"],
        )

    def build_for_trace_event(self) -> TraceEvent:
        """Finalize according to the staged phase."""
        phase: Optional[Phase] = self._values.get("phase")
        if phase is None:
            if self._consumed:
                raise RuntimeError("EventBuilder has already been consumed; create a new one")
            self._consumed = True
            self._values = {}
            raise MissingField(None, "phase")

        return _DISPATCH[phase](self)


_DISPATCH: Dict[Phase, Callable[[EventBuilder], TraceEvent]] = {
    Phase.DURATION_BEGIN: EventBuilder.build_duration_begin,
    Phase.DURATION_END: EventBuilder.build_duration_end,
    Phase.COMPLETE: EventBuilder.build_complete,
    Phase.METADATA: EventBuilder.build_metadata,
    Phase.FLOW_BEGIN: EventBuilder.build_flow_begin,
    Phase.FLOW_END: EventBuilder.build_flow_end,
}

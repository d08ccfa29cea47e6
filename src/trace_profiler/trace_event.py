"""
Event data model for the Chrome Trace Event Format.

Every event class is a frozen dataclass tagged with a one-character phase code
that is written verbatim as the ``"ph"`` key. Attribute names are Pythonic;
``WIRE_KEYS`` maps them onto the fixed key names of the format.
"""

from __future__ import annotations
from dataclasses import dataclass, fields, MISSING
from typing import Any, ClassVar, Dict, Mapping, Optional, Type

from .errors import TraceFormatError


WIRE_KEYS: Dict[str, str] = {
    "name": "name",
    "process_id": "pid",
    "timestamp": "ts",
    "thread_id": "tid",
    "duration": "dur",
    "category": "cat",
    "id": "id",
    "argument": "args",
}


@dataclass(frozen=True, eq=True)
class Argument:
    """Payload of a metadata event, e.g. the display name of a thread."""
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, data: Any) -> Argument:
        if not isinstance(data, Mapping) or not isinstance(data.get("name"), str):
            raise TraceFormatError(f"'args' must be an object with a string 'name', got {data!r}")
        return cls(name=data["name"])


@dataclass(frozen=True, eq=True)
class TraceEvent:
    """
    Base of all trace events.

    说明:
    - 子类的 ``phase`` 即 JSON 中的 "ph" 字段
    - 值为 None 的可选字段 (目前只有 thread_id) 在编码时直接省略, 不会写成 null
    """

    phase: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        """Encode to a JSON-ready dict: ``ph`` first, then fields in definition order."""
        if not self.phase:
            raise TypeError("TraceEvent is abstract; use one of its phase classes")

        result: Dict[str, Any] = {"ph": self.phase}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Argument):
                value = value.to_dict()
            result[WIRE_KEYS[f.name]] = value
        return result

    @classmethod
    def from_dict(cls, data: Any) -> TraceEvent:
        """
        Decode one event object. The concrete class is chosen by ``ph``;
        called on a concrete class, ``ph`` must name that class.
        """
        if not isinstance(data, Mapping):
            raise TraceFormatError(f"Trace event must be a JSON object, got {type(data).__name__}")

        phase = data.get("ph")
        event_cls = PHASES.get(phase) if isinstance(phase, str) else None
        if event_cls is None:
            raise TraceFormatError(f"Unknown phase {phase!r}")
        if cls is not TraceEvent and event_cls is not cls:
            raise TraceFormatError(f"Expected phase {cls.phase!r}, got {phase!r}")

        kwargs: Dict[str, Any] = {}
        for f in fields(event_cls):
            key = WIRE_KEYS[f.name]
            value = data.get(key)
            if value is None:
                if f.default is MISSING:
                    raise TraceFormatError(f"Phase {phase!r} event is missing {key!r}")
                continue
            kwargs[f.name] = _decode_value(phase, key, f.name, value)
        return event_cls(**kwargs)


def _decode_value(phase: str, key: str, attr: str, value: Any) -> Any:
    if attr == "argument":
        return Argument.from_dict(value)
    if attr in ("name", "category"):
        if not isinstance(value, str):
            raise TraceFormatError(f"Phase {phase!r} field {key!r} must be a string, got {value!r}")
        return value
    # bool is a subclass of int, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TraceFormatError(f"Phase {phase!r} field {key!r} must be a non-negative integer, got {value!r}")
    return value


# ---- implemented phases ----

@dataclass(frozen=True, eq=True)
class DurationBegin(TraceEvent):
    phase: ClassVar[str] = "B"
    name: str
    process_id: int
    timestamp: int
    thread_id: Optional[int] = None


@dataclass(frozen=True, eq=True)
class DurationEnd(TraceEvent):
    phase: ClassVar[str] = "E"
    process_id: int
    timestamp: int
    thread_id: Optional[int] = None


@dataclass(frozen=True, eq=True)
class Complete(TraceEvent):
    """Begin and end in one record; ``duration`` is in microseconds."""
    phase: ClassVar[str] = "X"
    name: str
    process_id: int
    timestamp: int
    duration: int
    thread_id: Optional[int] = None


@dataclass(frozen=True, eq=True)
class Metadata(TraceEvent):
    """``name`` is the metadata kind, e.g. "thread_name" or "process_name"."""
    phase: ClassVar[str] = "M"
    name: str
    process_id: int
    argument: Argument
    thread_id: Optional[int] = None


@dataclass(frozen=True, eq=True)
class FlowBegin(TraceEvent):
    phase: ClassVar[str] = "s"
    name: str
    process_id: int
    thread_id: int
    timestamp: int
    category: str
    id: int


@dataclass(frozen=True, eq=True)
class FlowEnd(TraceEvent):
    phase: ClassVar[str] = "f"
    name: str
    process_id: int
    thread_id: int
    timestamp: int
    category: str
    id: int


# ---- reserved phases, kept as empty payloads ----

@dataclass(frozen=True, eq=True)
class Instant(TraceEvent):
    phase: ClassVar[str] = "I"


@dataclass(frozen=True, eq=True)
class Counter(TraceEvent):
    phase: ClassVar[str] = "C"


@dataclass(frozen=True, eq=True)
class AsyncBegin(TraceEvent):
    phase: ClassVar[str] = "b"


@dataclass(frozen=True, eq=True)
class AsyncInstant(TraceEvent):
    phase: ClassVar[str] = "n"


@dataclass(frozen=True, eq=True)
class AsyncEnd(TraceEvent):
    phase: ClassVar[str] = "e"


@dataclass(frozen=True, eq=True)
class FlowStep(TraceEvent):
    phase: ClassVar[str] = "t"


@dataclass(frozen=True, eq=True)
class Sample(TraceEvent):
    phase: ClassVar[str] = "P"


@dataclass(frozen=True, eq=True)
class ObjectCreated(TraceEvent):
    phase: ClassVar[str] = "N"


@dataclass(frozen=True, eq=True)
class ObjectSnapshot(TraceEvent):
    phase: ClassVar[str] = "O"


@dataclass(frozen=True, eq=True)
class ObjectDestroyed(TraceEvent):
    phase: ClassVar[str] = "D"


@dataclass(frozen=True, eq=True)
class MemoryDumpGlobal(TraceEvent):
    phase: ClassVar[str] = "V"


@dataclass(frozen=True, eq=True)
class MemoryDumpProcess(TraceEvent):
    phase: ClassVar[str] = "v"


@dataclass(frozen=True, eq=True)
class Mark(TraceEvent):
    phase: ClassVar[str] = "R"


@dataclass(frozen=True, eq=True)
class ClockSync(TraceEvent):
    phase: ClassVar[str] = "c"


PHASES: Dict[str, Type[TraceEvent]] = {
    event_cls.phase: event_cls
    for event_cls in (
        DurationBegin, DurationEnd, Complete, Metadata, FlowBegin, FlowEnd,
        Instant, Counter, AsyncBegin, AsyncInstant, AsyncEnd, FlowStep, Sample,
        ObjectCreated, ObjectSnapshot, ObjectDestroyed,
        MemoryDumpGlobal, MemoryDumpProcess, Mark, ClockSync,
    )
}

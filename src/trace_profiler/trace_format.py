"""
The ``{"traceEvents": [...]}`` envelope and its JSON encoding.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import json
import logging

from .errors import TraceFormatError
from .trace_event import TraceEvent

logger = logging.getLogger(__name__)

TRACE_EVENTS_KEY = "traceEvents"

PathLike = Union[str, Path]


def _dumps(obj: Any, indent: Optional[int]) -> str:
    if indent is None:
        return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(obj, ensure_ascii=False, indent=indent)


def _loads(text: Union[str, bytes]) -> Any:
    try:
        return json.loads(text)
    except ValueError as exc:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors
        raise TraceFormatError(f"Invalid JSON: {exc}") from exc


@dataclass(eq=True)
class TraceEventFormat:
    """Root document of a trace: an ordered list of events under ``traceEvents``."""
    trace_events: List[TraceEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {TRACE_EVENTS_KEY: [event.to_dict() for event in self.trace_events]}

    @classmethod
    def from_dict(cls, data: Any) -> TraceEventFormat:
        if not isinstance(data, Mapping):
            raise TraceFormatError(f"Trace document must be a JSON object, got {type(data).__name__}")
        if TRACE_EVENTS_KEY not in data:
            raise TraceFormatError(f"Trace document is missing '{TRACE_EVENTS_KEY}'")

        raw_events = data[TRACE_EVENTS_KEY]
        if not isinstance(raw_events, list):
            raise TraceFormatError(f"'{TRACE_EVENTS_KEY}' must be a list, got {type(raw_events).__name__}")

        trace_events = []
        for index, raw_event in enumerate(raw_events):
            try:
                trace_events.append(TraceEvent.from_dict(raw_event))
            except TraceFormatError as exc:
                raise TraceFormatError(f"{TRACE_EVENTS_KEY}[{index}]: {exc}") from exc
        return cls(trace_events)

    def encode(self, indent: Optional[int] = None) -> str:
        """Serialize to JSON text; compact unless ``indent`` is given."""
        return _dumps(self.to_dict(), indent)

    @classmethod
    def decode(cls, text: Union[str, bytes]) -> TraceEventFormat:
        return cls.from_dict(_loads(text))


def encode_event(event: TraceEvent, indent: Optional[int] = None) -> str:
    return _dumps(event.to_dict(), indent)


def decode_event(text: Union[str, bytes]) -> TraceEvent:
    return TraceEvent.from_dict(_loads(text))


def save_file(path: PathLike, trace_events: Iterable[TraceEvent], indent: Optional[int] = None) -> None:
    """
    写出 Chrome Trace Event JSON, 可直接导入 chrome://tracing 或 ui.perfetto.dev.
    文件写入失败时抛出的 OSError 原样传给调用方.
    """
    document = TraceEventFormat(list(trace_events))
    serialized = document.encode(indent=indent)
    with open(path, "w", encoding="utf-8") as f:
        f.write(serialized)
    logger.debug("Wrote %d trace events to %s", len(document.trace_events), path)


def load_file(path: PathLike) -> TraceEventFormat:
    with open(path, "r", encoding="utf-8") as f:
        return TraceEventFormat.decode(f.read())

"""
trace-profiler: record explicit performance events and emit them as a
Chrome Trace Event Format JSON document.

The output can be loaded in chrome://tracing or Perfetto (ui.perfetto.dev).
"""

from .errors import MissingField, TraceFormatError
from .event_builder import EventBuilder, Phase
from .profiler import FlowIdCounter, Profiler, StrictProfiler, SynchronizedProfiler
from .trace_event import (
    Argument,
    Complete,
    DurationBegin,
    DurationEnd,
    FlowBegin,
    FlowEnd,
    Metadata,
    PHASES,
    TraceEvent,
)
from .trace_format import TraceEventFormat, decode_event, encode_event, load_file, save_file

__version__ = "0.1.0"
__all__ = [
    "Argument",
    "Complete",
    "DurationBegin",
    "DurationEnd",
    "EventBuilder",
    "FlowBegin",
    "FlowEnd",
    "FlowIdCounter",
    "Metadata",
    "MissingField",
    "PHASES",
    "Phase",
    "Profiler",
    "StrictProfiler",
    "SynchronizedProfiler",
    "TraceEvent",
    "TraceEventFormat",
    "TraceFormatError",
    "decode_event",
    "encode_event",
    "load_file",
    "save_file",
]

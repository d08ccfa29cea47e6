"""
Profiler: an append-only log of trace events anchored to a capture start time.
"""

from __future__ import annotations
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, TypeVar, Union, cast
import functools
import logging
import os
import threading
import time

from .errors import MissingField
from .event_builder import EventBuilder, Phase
from .trace_event import Argument, TraceEvent
from .trace_format import TraceEventFormat, save_file

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ts/dur are unsigned 64-bit on the wire
MAX_TIMESTAMP = 2 ** 64 - 1


class FlowIdCounter:
    """
    Thread-safe source of flow ids.

    Profilers created with ``Profiler.fork()`` share their parent's counter, so ids
    minted on different threads never collide.
    """

    def __init__(self, start: int = 0) -> None:
        if start < 0:
            raise ValueError("Flow ids are unsigned; start must be >= 0")
        self._lock = threading.Lock()
        self._next = start

    def allocate(self) -> int:
        with self._lock:
            flow_id = self._next
            self._next += 1
        return flow_id

    @property
    def next_id(self) -> int:
        """The id the next ``allocate()`` call will return."""
        with self._lock:
            return self._next


class Profiler:
    """
    Records Chrome Trace Event Format events with timestamps relative to the moment
    the profiler was created.

    说明:
    - clock 返回单调递增的纳秒值 (默认 time.perf_counter_ns), 事件中的 ts/dur 单位为微秒(us)
    - process_id / thread_id 返回当前进程号 / 线程号, 测试时可注入固定值
    - Profiler 本身不加锁: 每个线程使用 fork() 出来的实例, 结束后用 extend() 合并;
      或者使用 SynchronizedProfiler 包装后在多个线程间共享
    - 可使用 get_global_profiler() 获取全局实例，使用 init_global_profiler() 初始化全局实例
    """

    _global_instance: Optional[Profiler] = None

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        process_id: Optional[Callable[[], int]] = None,
        thread_id: Optional[Callable[[], int]] = None,
        flow_ids: Optional[FlowIdCounter] = None,
        anchor: Optional[int] = None,
    ) -> None:
        """
        Args:
            clock: 返回单调时钟纳秒值的函数.
            process_id: 返回当前进程 ID 的函数.
            thread_id: 返回当前线程 ID 的函数.
            flow_ids: flow id 计数器, 不传则新建一个.
            anchor: 时间原点 (clock 的读数), 不传则取构造时刻.
        """
        self._clock = clock if clock is not None else time.perf_counter_ns
        self._process_id = process_id if process_id is not None else os.getpid
        self._thread_id = thread_id if thread_id is not None else threading.get_ident
        self._flow_ids = flow_ids if flow_ids is not None else FlowIdCounter()
        self._anchor = anchor if anchor is not None else self._clock()

        self._events: List[TraceEvent] = []

    # ---- log access ----

    @property
    def events(self) -> List[TraceEvent]:
        """A copy of the recorded events, in insertion order."""
        return list(self._events)

    @property
    def flow_ids(self) -> FlowIdCounter:
        return self._flow_ids

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(list(self._events))

    def push(self, event: TraceEvent) -> None:
        if not isinstance(event, TraceEvent):
            raise TypeError(f"Expected a TraceEvent, got {type(event).__name__}")
        self._events.append(event)

    def extend(self, events: Union[Profiler, Iterable[TraceEvent]]) -> None:
        """Append events recorded elsewhere, e.g. the log of a forked profiler."""
        if isinstance(events, Profiler):
            events = events.events
        new_events = list(events)
        for event in new_events:
            if not isinstance(event, TraceEvent):
                raise TypeError(f"Expected a TraceEvent, got {type(event).__name__}")
        self._events.extend(new_events)
        logger.debug("Merged %d trace events", len(new_events))

    def clear(self) -> None:
        self._events.clear()

    def fork(self) -> Profiler:
        """
        Create an empty profiler for another thread. It shares this profiler's
        time anchor, clock, identity sources and flow id counter.
        """
        child = type(self)(
            clock=self._clock,
            process_id=self._process_id,
            thread_id=self._thread_id,
            flow_ids=self._flow_ids,
            anchor=self._anchor,
        )
        logger.debug("Forked profiler (next flow id %d)", self._flow_ids.next_id)
        return child

    # ---- timestamps ----

    def current_timestamp(self) -> int:
        """Microseconds elapsed since the capture anchor."""
        elapsed_us = (self._clock() - self._anchor) // 1000
        return min(max(elapsed_us, 0), MAX_TIMESTAMP)

    # ---- event construction ----

    def _builder(self, phase: Phase, timestamp: Optional[int] = None, with_thread: bool = True) -> EventBuilder:
        builder = EventBuilder(phase=phase, process_id=self._process_id())
        if timestamp is not None:
            builder.timestamp(timestamp)
        if with_thread:
            builder.thread_id(self._thread_id())
        return builder

    @staticmethod
    def _finalize(builder: EventBuilder) -> TraceEvent:
        try:
            return builder.build_for_trace_event()
        except MissingField as exc:
            # Profiler always stages every required field; reaching this is a bug.
            raise RuntimeError(f"Profiler built an incomplete event: {exc}") from exc

    def _duration_begin(self, name: str, timestamp: int) -> TraceEvent:
        return self._finalize(self._builder(Phase.DURATION_BEGIN, timestamp).name(name))

    def _duration_end(self, timestamp: int) -> TraceEvent:
        return self._finalize(self._builder(Phase.DURATION_END, timestamp))

    def _flow_marker(self, phase: Phase, name: str, category: str, flow_id: int, timestamp: int) -> TraceEvent:
        builder = self._builder(phase, timestamp).name(name).category(category).id(flow_id)
        return self._finalize(builder)

    # ---- duration events ----

    def begin_duration(self, name: str) -> None:
        """
        开始一个 duration 事件 (B). 必须与 end_duration() 配对, Profiler 不做检查.
        """
        self._events.append(self._duration_begin(name, self.current_timestamp()))

    def end_duration(self) -> None:
        """结束当前线程最近打开的 duration 事件 (E)."""
        self._events.append(self._duration_end(self.current_timestamp()))

    def complete_event(
        self,
        name: str,
        start_ts: int,
        end_ts: Optional[int] = None,
        dur: Optional[int] = None,
    ) -> None:
        """
        插入一个完整事件 (X). 时间参数均为相对时间原点的微秒数.
        传 (start_ts + end_ts) 或 (start_ts + dur) 二选一.
        """
        if (end_ts is None) == (dur is None):
            raise ValueError("Provide exactly one of end_ts or dur")

        if dur is None:
            dur = end_ts - start_ts  # type: ignore[operator]

        if dur < 0:
            raise ValueError("Duration is negative; check start/end timestamps.")

        builder = self._builder(Phase.COMPLETE, start_ts).name(name).duration(dur)
        self._events.append(self._finalize(builder))

    def begin_and_end_duration(self, name: str, computation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run ``computation(*args, **kwargs)`` on the calling thread and record it as
        one complete (X) event. Returns whatever ``computation`` returns. If it
        raises, nothing is recorded and the exception propagates.
        """
        begin = self.current_timestamp()
        result = computation(*args, **kwargs)
        end = self.current_timestamp()

        self.complete_event(name, begin, end_ts=end)
        return result

    @contextmanager
    def record_duration(self, name: str):
        """
        Context manager for recording a scoped duration (B/E).
        The end event is recorded even if the block raises.
        """
        self.begin_duration(name)
        try:
            yield None
        finally:
            self.end_duration()

    def traced(self, name: Optional[str] = None):
        """Decorator recording every call of the wrapped function as a complete event."""

        def decorator(fn: Callable[..., T]) -> Callable[..., T]:
            event_name = name if name is not None else fn.__qualname__

            @functools.wraps(fn)
            def wrapper(*args: Any, **kwargs: Any) -> T:
                return self.begin_and_end_duration(event_name, functools.partial(fn, *args, **kwargs))

            return wrapper

        return decorator

    # ---- metadata events ----

    def metadata(self, kind: str, name: str, with_thread: bool = True) -> None:
        """
        插入一个元数据事件 (M), kind 为元数据名称 (如 "thread_name"), name 放在 args 中.
        with_thread=False 时不写 tid.
        """
        builder = self._builder(Phase.METADATA, with_thread=with_thread).name(kind).argument(Argument(name))
        self._events.append(self._finalize(builder))

    def current_thread_name(self, name: str) -> None:
        """为当前线程设置显示名称 (M thread_name)."""
        self.metadata("thread_name", name)

    def current_process_name(self, name: str) -> None:
        """为当前进程设置显示名称 (M process_name), 不带 tid."""
        self.metadata("process_name", name, with_thread=False)

    # ---- flow events ----

    def begin_flow(self, name: str, category: str) -> int:
        """
        Record the start of a flow arrow wrapped in a short ``name`` duration,
        i.e. ``[B, s, E]``, and return the new flow id. Pass the id to
        ``end_flow()`` wherever the arrow should land.
        """
        flow_id = self._flow_ids.allocate()

        begin = self.current_timestamp()
        bracket_begin = self._duration_begin(name, begin)

        end = self.current_timestamp()
        marker = self._flow_marker(Phase.FLOW_BEGIN, name, category, flow_id, end)
        bracket_end = self._duration_end(end)

        self._events.extend((bracket_begin, marker, bracket_end))
        logger.debug("Flow %d (%s) begins at %d us", flow_id, category, begin)
        return flow_id

    def end_flow(self, name: str, category: str, flow_id: int) -> None:
        """
        Record the end of flow ``flow_id`` as ``[f, B, E]``. The id must come from
        a matching ``begin_flow()``; it is not checked here.
        """
        begin = self.current_timestamp()
        marker = self._flow_marker(Phase.FLOW_END, name, category, flow_id, begin)
        bracket_begin = self._duration_begin(name, begin)
        bracket_end = self._duration_end(self.current_timestamp())

        self._events.extend((marker, bracket_begin, bracket_end))
        logger.debug("Flow %d (%s) ends at %d us", flow_id, category, begin)

    # ---- output ----

    def to_format(self) -> TraceEventFormat:
        return TraceEventFormat(list(self._events))

    def save(self, path: Union[str, Path], indent: Optional[int] = None) -> None:
        """写出 Chrome Trace Event JSON. 写入失败的 OSError 直接抛给调用方."""
        save_file(path, self._events, indent=indent)

    # ---- global instance ----

    @classmethod
    def init_global_profiler(cls, **kwargs: Any) -> Profiler:
        """
        初始化全局 Profiler 实例, 参数与构造函数相同.

        Returns:
            初始化的 Profiler 实例
        """
        Profiler._global_instance = cls(**kwargs)
        return Profiler._global_instance

    @classmethod
    def get_global_profiler(cls) -> Profiler:
        """
        获取全局 Profiler 实例。

        Raises:
            RuntimeError: 如果全局实例尚未初始化
        """
        if Profiler._global_instance is None:
            raise RuntimeError("Global Profiler instance has not been initialized. Call init_global_profiler() first.")
        return Profiler._global_instance


class StrictProfiler(Profiler):
    """
    A Profiler that rejects unbalanced brackets instead of recording them.

    - end_duration() without an open duration on the current thread raises ValueError
    - end_flow() with an id that was never begun, or was already ended, raises ValueError
    - check_balanced() raises ValueError if anything is still open

    Forks share the set of open flows, so a flow begun on one thread may end on another.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._open_durations: Dict[int, List[str]] = {}
        self._open_flows: Dict[int, str] = {}
        self._flows_lock = threading.Lock()

    def fork(self) -> StrictProfiler:
        child = super().fork()
        child = cast(StrictProfiler, child)
        child._open_flows = self._open_flows
        child._flows_lock = self._flows_lock
        return child

    def begin_duration(self, name: str) -> None:
        super().begin_duration(name)
        self._open_durations.setdefault(self._thread_id(), []).append(name)

    def end_duration(self, name: Optional[str] = None) -> None:
        """
        结束当前线程最近打开的 duration 事件 (E).
        如果提供 name 参数, 会检查和栈顶事件的 name 是否一致
        """
        tid = self._thread_id()
        stack = self._open_durations.get(tid)
        if not stack:
            raise ValueError(f"No open duration on thread {tid}")

        if name is not None and stack[-1] != name:
            raise ValueError(f"Expected to close duration '{stack[-1]}', but got '{name}'")

        super().end_duration()
        stack.pop()

    def begin_flow(self, name: str, category: str) -> int:
        flow_id = super().begin_flow(name, category)
        with self._flows_lock:
            self._open_flows[flow_id] = category
        return flow_id

    def end_flow(self, name: str, category: str, flow_id: int) -> None:
        with self._flows_lock:
            if flow_id not in self._open_flows:
                raise ValueError(f"Flow {flow_id} was never begun or has already ended")
            del self._open_flows[flow_id]
        super().end_flow(name, category, flow_id)

    def check_balanced(self) -> None:
        """Raise ValueError if any duration or flow is still open."""
        open_durations = {tid: list(names) for tid, names in self._open_durations.items() if names}
        with self._flows_lock:
            open_flows = sorted(self._open_flows)

        if open_durations or open_flows:
            logger.warning("Unbalanced trace: open durations %s, open flows %s", open_durations, open_flows)
            raise ValueError(f"Unbalanced trace: open durations {open_durations}, open flows {open_flows}")


class SynchronizedProfiler:
    """
    Wraps a Profiler behind a re-entrant lock so several threads can record into
    one log. The computation passed to begin_and_end_duration() runs outside the
    lock; only the resulting event is appended under it.
    """

    def __init__(self, profiler: Optional[Profiler] = None) -> None:
        self._profiler = profiler if profiler is not None else Profiler()
        self._lock = threading.RLock()

    @property
    def profiler(self) -> Profiler:
        return self._profiler

    @property
    def events(self) -> List[TraceEvent]:
        with self._lock:
            return self._profiler.events

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiler)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self.events)

    def current_timestamp(self) -> int:
        return self._profiler.current_timestamp()

    def begin_duration(self, name: str) -> None:
        with self._lock:
            self._profiler.begin_duration(name)

    def end_duration(self, *args: Any) -> None:
        with self._lock:
            self._profiler.end_duration(*args)

    def complete_event(self, name: str, start_ts: int, end_ts: Optional[int] = None, dur: Optional[int] = None) -> None:
        with self._lock:
            self._profiler.complete_event(name, start_ts, end_ts=end_ts, dur=dur)

    def begin_and_end_duration(self, name: str, computation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        begin = self._profiler.current_timestamp()
        result = computation(*args, **kwargs)
        end = self._profiler.current_timestamp()

        self.complete_event(name, begin, end_ts=end)
        return result

    @contextmanager
    def record_duration(self, name: str):
        self.begin_duration(name)
        try:
            yield None
        finally:
            self.end_duration()

    def metadata(self, kind: str, name: str, with_thread: bool = True) -> None:
        with self._lock:
            self._profiler.metadata(kind, name, with_thread=with_thread)

    def current_thread_name(self, name: str) -> None:
        with self._lock:
            self._profiler.current_thread_name(name)

    def current_process_name(self, name: str) -> None:
        with self._lock:
            self._profiler.current_process_name(name)

    def begin_flow(self, name: str, category: str) -> int:
        with self._lock:
            return self._profiler.begin_flow(name, category)

    def end_flow(self, name: str, category: str, flow_id: int) -> None:
        with self._lock:
            self._profiler.end_flow(name, category, flow_id)

    def push(self, event: TraceEvent) -> None:
        with self._lock:
            self._profiler.push(event)

    def extend(self, events: Union[Profiler, SynchronizedProfiler, Iterable[TraceEvent]]) -> None:
        if isinstance(events, SynchronizedProfiler):
            events = events.events
        with self._lock:
            self._profiler.extend(events)

    def clear(self) -> None:
        with self._lock:
            self._profiler.clear()

    def to_format(self) -> TraceEventFormat:
        with self._lock:
            return self._profiler.to_format()

    def save(self, path: Union[str, Path], indent: Optional[int] = None) -> None:
        document = self.to_format()
        save_file(path, document.trace_events, indent=indent)

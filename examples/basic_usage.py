"""Basic usage for generating a Chrome trace with Profiler."""

from __future__ import annotations

from pathlib import Path

from trace_profiler import Profiler


def busy_loop(n: int) -> int:
    return sum(i * i for i in range(n))


def main() -> None:
    profiler = Profiler()
    profiler.current_process_name("basic-usage")
    profiler.current_thread_name("main")

    profiler.begin_duration("Task A")
    profiler.begin_and_end_duration("Task B", lambda: busy_loop(200_000))
    profiler.begin_and_end_duration("Task C", lambda: busy_loop(400_000))
    profiler.end_duration()

    trace_path = Path(__file__).with_name("basic_trace.json")
    profiler.save(trace_path)
    print(f"Trace saved to {trace_path}. Open it in chrome://tracing or https://ui.perfetto.dev")


if __name__ == "__main__":
    main()

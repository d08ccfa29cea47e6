#!/usr/bin/env python3
"""Demonstrate the record_duration context manager and the traced decorator with real time data."""

from __future__ import annotations

import time
from pathlib import Path

from trace_profiler import Profiler


def main() -> None:
    profiler = Profiler.init_global_profiler()
    profiler.current_thread_name("sleep-demo")

    @profiler.traced()
    def nap(seconds: float) -> None:
        time.sleep(seconds)

    print("Recording sleeps with record_duration() ...")

    with profiler.record_duration("sleep_500ms"):
        time.sleep(0.5)

    with profiler.record_duration("sleep_100ms"):
        nap(0.05)
        nap(0.05)

    output_path = Path(__file__).with_name("record_event_trace.json")
    Profiler.get_global_profiler().save(output_path, indent=2)

    print(f"Trace saved to {output_path}. Load it in https://ui.perfetto.dev to inspect the spans.")


if __name__ == "__main__":
    main()

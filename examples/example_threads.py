#!/usr/bin/env python3
"""
Link work done on worker threads back to the main thread with flow events.

Each worker records into its own forked Profiler; the main thread merges the
logs with extend() once the workers are done.
"""

from __future__ import annotations

import queue
import threading
import time
from pathlib import Path
from typing import List, Tuple

from trace_profiler import Profiler, TraceEvent


def main() -> None:
    profiler = Profiler()
    profiler.current_process_name("flow-demo")
    profiler.current_thread_name("main")

    results: "queue.Queue[Tuple[List[TraceEvent], int]]" = queue.Queue()
    workers = []

    for task_name in ("Task B", "Task C"):
        link_id = profiler.begin_flow("Spawn", "main_to_spawn")
        worker_profiler = profiler.fork()

        def work(worker: Profiler = worker_profiler, name: str = task_name, flow_id: int = link_id) -> None:
            worker.current_thread_name(name)
            worker.end_flow("Start", "main_to_spawn", flow_id)
            worker.begin_and_end_duration(name, lambda: time.sleep(0.02))
            unlink_id = worker.begin_flow("Finish", "spawn_to_main")
            results.put((worker.events, unlink_id))

        thread = threading.Thread(target=work)
        thread.start()
        workers.append(thread)

    for _ in workers:
        events, unlink_id = profiler.begin_and_end_duration("Wait for response", results.get)
        profiler.extend(events)
        profiler.end_flow("Joined", "spawn_to_main", unlink_id)

    for thread in workers:
        thread.join()

    output_path = Path(__file__).with_name("flow_trace.json")
    profiler.save(output_path)
    print(f"Trace saved to {output_path}. Flow arrows connect main and worker threads.")


if __name__ == "__main__":
    main()

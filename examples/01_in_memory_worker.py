#!/usr/bin/env python3
"""In-memory worker - enqueue, process and inspect without a Redis server.

This example builds an engine on ``memory://``, queues a few jobs, lets the
worker drain them and prints the monitoring dashboard once.

Run: python examples/01_in_memory_worker.py
"""
import time

from rich.console import Console

from jobspine import JobEngine, configure_logging
from jobspine.monitoring import render

from jobs import configuration


def main():
    configure_logging(level="INFO", format="console")

    with JobEngine(name="bgjobs", connection="memory://", jobs=configuration) as engine:
        # === 1. Queue work by name ===
        engine.add("hackerman", {"target": "Mainframe"})
        engine.add("hackerman", {"target": "Pentagon"})
        engine.add("send-email")
        print(f"Queued: {[job.name for job in engine.list()]}")

        # === 2. Drain the queue ===
        engine.process()
        while engine.list():
            time.sleep(0.1)

        # === 3. Inspect monitoring data ===
        Console().print(render(engine.monitoring.snapshot()))


if __name__ == "__main__":
    main()

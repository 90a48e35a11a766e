#!/usr/bin/env python3
"""Redis producer - queue jobs for workers running in other processes.

Start a worker first::

    PYTHONPATH=examples jobspine worker start jobs:configuration --name bgjobs

Run: python examples/02_redis_producer.py Mainframe Pentagon
"""
import sys

from jobspine import JobEngine

from jobs import configuration


def main(targets):
    with JobEngine(name="bgjobs", connection="redis://127.0.0.1:6379/0", jobs=configuration) as engine:
        for target in targets or ["Mainframe"]:
            job = engine.add("hackerman", {"target": target})
            print(f"Job {job.id} queued for {target}")


if __name__ == "__main__":
    main(sys.argv[1:])

"""Example job definitions.

Run a worker for them from the repository root::

    PYTHONPATH=examples jobspine worker start jobs:configuration --name bgjobs

and watch it with ``jobspine monitor`` in a second terminal.
"""

import asyncio

from jobspine import JobContext, Priority


async def send_mail(name: str) -> None:
    await asyncio.sleep(0.1)


async def send_email(job: JobContext) -> None:
    users = ["Harald", "David"]

    for user in users:
        await send_mail(user)

    job.error("send_reminder_errored")

    # Handlers can queue follow-up jobs
    job.add("hackerman", {"target": "Mainframe"})

    # Raising marks the attempt failed
    raise RuntimeError("Stuff is broke")


def hackerman(job: JobContext) -> None:
    target = job.data.get("target", "Gibson")
    job.info(f"Hackerman is off to hack the {target}")


configuration = [
    {
        "name": "send-email",
        "handler": send_email,
        "options": {"priority": Priority.MEDIUM, "timeout_ms": 5 * 60 * 1000},
        "schedule": "every minute",
    },
    {
        "name": "hackerman",
        "handler": hackerman,
        "options": {"priority": Priority.HIGH, "timeout_ms": 1000},
    },
]

"""Background job queue for scan cycles triggered through the API.

POST starts a background task and returns a job_id immediately; the client
polls for completion. Jobs are kept in memory and move through
queued → running → completed/failed.
"""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Callable, Coroutine

logger = logging.getLogger(__name__)

ACTIVE_STATES = ("queued", "running")

_jobs: Dict[str, dict] = {}
_tasks: Dict[str, asyncio.Task] = {}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def enqueue(coro_factory: Callable[[], Coroutine]) -> str:
    """Queue a coroutine for background execution. Returns job_id."""
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "queued",
        "created_at": _now(),
        "started_at": None,
        "completed_at": None,
        "error": None,
        "result": None,
    }
    # Hold a reference so the task isn't garbage collected mid-run
    _tasks[job_id] = asyncio.create_task(_run(job_id, coro_factory))
    logger.info("Job %s queued", job_id)
    return job_id


async def _run(job_id: str, coro_factory: Callable[[], Coroutine]):
    """Execute the job and update its state."""
    _jobs[job_id]["status"] = "running"
    _jobs[job_id]["started_at"] = _now()
    logger.info("Job %s running", job_id)

    try:
        result = await coro_factory()
        _jobs[job_id]["status"] = "completed"
        _jobs[job_id]["result"] = result
        _jobs[job_id]["completed_at"] = _now()
        logger.info("Job %s completed", job_id)
    except Exception as e:
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)
        _jobs[job_id]["completed_at"] = _now()
        logger.error("Job %s failed: %s", job_id, e, exc_info=True)
    finally:
        _tasks.pop(job_id, None)


def get_status(job_id: str) -> Optional[dict]:
    """Get the current status of a job."""
    return _jobs.get(job_id)


def active_job() -> Optional[dict]:
    """The queued or running job, if any."""
    for job in _jobs.values():
        if job["status"] in ACTIVE_STATES:
            return job
    return None


def list_recent(limit: int = 50) -> list:
    """List the most recent jobs."""
    jobs = sorted(_jobs.values(), key=lambda j: j["created_at"], reverse=True)
    return jobs[:limit]


def clear():
    """Forget all finished jobs."""
    for job_id in [j for j, job in _jobs.items() if job["status"] not in ACTIVE_STATES]:
        del _jobs[job_id]

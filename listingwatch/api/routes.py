"""API routes for ListingWatch.

Provides endpoints for triggering scans, polling their results, and
inspecting the tracked listing state.
"""

import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Request

from listingwatch.api.schemas import ScanRequest, ScanStatusResponse, StatsResponse, TopicState
from listingwatch.config import manual_override_from_env
from listingwatch.jobs import queue
from listingwatch.pipeline.cycle import run_cycle

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


@router.post("/scan")
async def start_scan(request: Request, scan: Optional[ScanRequest] = None):
    """Start a background scan cycle. Returns job_id for polling."""
    scan = scan or ScanRequest()
    active = queue.active_job()
    if active:
        raise HTTPException(
            status_code=409, detail=f"Scan {active['job_id']} is already {active['status']}",
        )

    state = request.app.state
    job_id = await queue.enqueue(lambda: run_cycle(
        state.config,
        state.store,
        state.strategy,
        state.notifier,
        manual_override=scan.force_notify or manual_override_from_env(),
        topics=scan.topics,
        require_credentials=not state.dry_run,
    ))
    return {
        "job_id": job_id,
        "status": "queued",
        "poll_url": f"/api/scan/{job_id}",
    }


@router.get("/scan/{job_id}", response_model=ScanStatusResponse)
async def get_scan_status(job_id: str):
    """Poll scan job status."""
    status = queue.get_status(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@router.get("/stats", response_model=StatsResponse)
async def get_stats(request: Request):
    """Last update time and number of tracked listings per topic."""
    return await request.app.state.store.get_stats()


@router.get("/topics/{topic}", response_model=TopicState)
async def get_topic(request: Request, topic: str):
    """Listing IDs currently tracked for a topic."""
    doc = await request.app.state.store.load()
    if topic not in doc.topics:
        raise HTTPException(status_code=404, detail=f"Topic '{topic}' is not tracked")
    return TopicState(topic=topic, seen_ids=doc.get_topic(topic))


@router.get("/health")
async def health():
    recent_jobs = queue.list_recent(limit=10)
    active = sum(1 for j in recent_jobs if j["status"] in queue.ACTIVE_STATES)
    return {"ok": True, "active_jobs": active}

"""
Router for render job endpoints.
Handles job submission, status polling, listing, download and deletion.
"""

import os
import logging
from typing import Any, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import FileResponse

from dependencies import get_scheduler
from exceptions import NotFound, ValidationError
from scheduler import JobScheduler
from schemas import JobResponse, JobSnapshot, MessageResponse


# Create the router
router = APIRouter(prefix="/jobs", tags=["jobs"])


def _get_job(scheduler: JobScheduler, job_id: str) -> JobSnapshot:
    try:
        return scheduler.status(job_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found.")


@router.post("", response_model=JobResponse)
def create_job(payload: Any = Body(None), scheduler: JobScheduler = Depends(get_scheduler)):
    """
    Validates the render request, records a queued job and immediately
    returns its ID. Rendering happens in the background.
    """
    try:
        job_id = scheduler.submit(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logging.error(f"Failed to submit render job: {e}")
        raise HTTPException(status_code=500, detail="Failed to start the video render job.")
    return {"job_id": job_id, "status": "queued", "message": "Video is being processed"}


@router.get("", response_model=List[JobSnapshot])
def list_jobs(scheduler: JobScheduler = Depends(get_scheduler)):
    return scheduler.list()


@router.get("/{job_id}", response_model=JobSnapshot)
def get_job(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """Returns the current state of a job."""
    return _get_job(scheduler, job_id)


@router.get("/{job_id}/output")
def download_output(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """
    Streams the rendered MP4. 400 while the job is not completed,
    404 when the job or its file is gone.
    """
    job = _get_job(scheduler, job_id)
    if job.status != "completed":
        raise HTTPException(status_code=400, detail=f"Video is not ready yet. Status: {job.status}")

    if not job.output_path or not os.path.exists(job.output_path):
        logging.warning(f"Output for job {job_id} missing on disk: {job.output_path}")
        raise HTTPException(status_code=404, detail="Video file not found.")

    return FileResponse(job.output_path, media_type="video/mp4", filename=f"video_{job_id}.mp4")


@router.delete("/{job_id}", response_model=MessageResponse)
def delete_job(job_id: str, scheduler: JobScheduler = Depends(get_scheduler)):
    """Deletes the job record and its output file."""
    try:
        scheduler.remove(job_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Job not found.")
    return {"message": "Job deleted successfully"}

import asyncio
import logging

from fastapi import APIRouter, HTTPException

from backend import config
from backend.jobs import job_manager
from backend.models import BuildRequest, JobResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/build", tags=["build"])

PROJECTIONS = ("equirectangular", "utm")

# Running builds, held so the event loop does not drop them
_tasks: set = set()


@router.post("", response_model=JobResponse)
async def start_build(request: BuildRequest):
    """Queue a model build around ``(lat, lon)``.

    Returns at once with a job ID; poll ``/status/{job_id}`` until the
    status is ``completed`` (the result then carries ``model_url``) or
    ``failed``.
    """
    output_format = request.output_format.lower()
    if output_format not in config.OUTPUT_FORMATS:
        raise HTTPException(status_code=400,
                            detail=f"Unsupported output format: {request.output_format}. "
                                   f"Use one of: {', '.join(config.OUTPUT_FORMATS)}")
    if request.projection not in PROJECTIONS:
        raise HTTPException(status_code=400, detail=f"Unknown projection: {request.projection}")

    job = job_manager.create_job()
    name = request.name or f"area-{request.lat:.4f}-{request.lon:.4f}"
    logger.info(f"Job {job.id}: {name} r={request.radius:.0f}m types={request.types}")

    task = asyncio.create_task(job_manager.run_build(
        job, request.lat, request.lon, request.radius, request.types, name,
        output_format=output_format,
        projection=request.projection,
        height_scale=request.height_scale,
        surfaces=request.surfaces))
    _tasks.add(task)
    task.add_done_callback(_tasks.discard)

    return JobResponse(**job.snapshot())


@router.get("/status/{job_id}", response_model=JobResponse)
async def get_build_status(job_id: str):
    job = job_manager.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse(**job.snapshot())

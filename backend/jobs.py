"""In-memory build jobs: download, synthesize and export off the event loop."""

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from geodata.builder import GeoDataBuilder
from geodata.cache import ResultCache
from geodata.export import collect_layers, export_layers

from backend import config

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"


@dataclass
class Job:
    id: str
    status: JobStatus = JobStatus.queued
    progress: float = 0.0
    message: str = "Queued"
    result: Optional[dict] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def advance(self, progress: float, message: str) -> None:
        self.status = JobStatus.running
        self.progress = progress
        self.message = message

    def complete(self, result: dict) -> None:
        self.status = JobStatus.completed
        self.progress = 100.0
        self.message = "Build complete"
        self.result = result

    def fail(self, exc: Exception) -> None:
        self.status = JobStatus.failed
        self.progress = 0.0
        self.message = f"Build failed: {exc}"

    def snapshot(self) -> dict:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "result": self.result,
        }


def default_builder() -> GeoDataBuilder:
    return GeoDataBuilder(cache=ResultCache(enabled=config.USE_CACHE))


def safe_filename(name: str) -> str:
    """``"Central Park, NYC"`` -> ``"central-park-nyc"``."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "model"


def _sync_build(builder: GeoDataBuilder, lat: float, lon: float, radius: float,
                types: list, output_filename: str, output_format: str = "glb",
                projection: str = "equirectangular", height_scale: float = 1.0,
                surfaces: bool = True, progress_callback=None) -> dict:
    """Download, synthesize and export; runs on a worker thread.

    The builder gets its own event loop here so its download timeout
    behaves as it does from the CLI.
    """
    dataset = asyncio.run(builder.download_all(lat, lon, radius, types))
    if progress_callback:
        progress_callback(30.0, f"Downloaded {len(dataset.features)} features")

    layers = collect_layers(dataset, projection=projection, height_scale=height_scale,
                            surfaces=surfaces, progress_callback=progress_callback)
    path = export_layers(layers, output_filename, file_type=output_format)
    return {
        "format": output_format,
        "path": str(path),
        "model_url": f"/output/{path.name}",
        "feature_count": len(dataset.features),
        "layers": {name: {"meshes": len(layer.meshes), "curves": len(layer.curves)}
                   for name, layer in layers.items()},
        "warnings": list(dataset.warnings),
    }


class JobManager:
    """Creates jobs and runs their builds; one fresh builder per job."""

    def __init__(self, builder_factory: Callable[[], GeoDataBuilder] = default_builder) -> None:
        self.jobs: dict[str, Job] = {}
        self.builder_factory = builder_factory

    def create_job(self) -> Job:
        job = Job(id=str(uuid.uuid4()))
        self.jobs[job.id] = job
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    async def run_build(self, job: Job, lat: float, lon: float, radius: float,
                        types: list, name: str, output_format: str = "glb",
                        projection: str = "equirectangular", height_scale: float = 1.0,
                        surfaces: bool = True) -> None:
        job.advance(5.0, "Downloading map data...")
        output_filename = f"{safe_filename(name)}.{output_format}"
        try:
            result = await asyncio.to_thread(
                _sync_build, self.builder_factory(), lat, lon, radius, types,
                output_filename,
                output_format=output_format,
                projection=projection,
                height_scale=height_scale,
                surfaces=surfaces,
                progress_callback=job.advance,
            )
        except Exception as exc:
            logger.exception(f"Build failed for job {job.id}")
            job.fail(exc)
            return
        job.complete(result)
        logger.info(f"Job {job.id} wrote {result['path']}")


job_manager = JobManager()

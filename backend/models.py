from typing import List, Optional

from pydantic import BaseModel, Field


class BuildRequest(BaseModel):
    """Center point, radius and export options for one build."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius: float = Field(200.0, gt=0, description="Meters around the center")
    types: List[str] = Field(default_factory=lambda: ["All"],
                             description="Feature classes, e.g. Buildings, Water")
    name: Optional[str] = None
    output_format: str = "glb"
    projection: str = "equirectangular"
    height_scale: float = Field(1.0, gt=0)
    surfaces: bool = True


class JobResponse(BaseModel):
    job_id: str
    status: str
    progress: float
    message: str
    result: Optional[dict] = None


class ModelInfo(BaseModel):
    name: str
    filename: str
    size_bytes: int = 0

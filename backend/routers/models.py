import logging
from pathlib import Path
from typing import List

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from backend import config
from backend.models import ModelInfo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/models", tags=["models"])


def _is_model(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in config.MEDIA_TYPES


def _display_name(path: Path) -> str:
    """``central-park-nyc.glb`` -> ``Central Park Nyc``."""
    return path.stem.replace("-", " ").replace("_", " ").title()


@router.get("", response_model=List[ModelInfo])
async def list_models():
    """Every exported model in the output directory, by filename."""
    if not config.OUTPUT_DIR.exists():
        return []
    return [
        ModelInfo(name=_display_name(p), filename=p.name, size_bytes=p.stat().st_size)
        for p in sorted(config.OUTPUT_DIR.iterdir())
        if _is_model(p)
    ]


@router.get("/{filename}")
async def get_model(filename: str):
    # Only bare names inside the output directory
    file_path = config.OUTPUT_DIR / Path(filename).name
    if Path(filename).name != filename or not _is_model(file_path):
        logger.info(f"Model not found: {filename}")
        raise HTTPException(status_code=404, detail="Model file not found")

    return FileResponse(
        path=str(file_path),
        media_type=config.MEDIA_TYPES[file_path.suffix.lower()],
        filename=filename,
    )

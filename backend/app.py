"""FastAPI application: build jobs, the model listing, and exported files."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from backend import config
from backend.routers import build, models


def create_app() -> FastAPI:
    api = FastAPI(
        title="geodata API",
        description="Build 3-D models of OpenStreetMap features around a point",
        version="0.1.0",
    )
    api.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    api.include_router(build.router)
    api.include_router(models.router)

    # Exported models are served as plain files next to the API
    config.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    api.mount("/output", StaticFiles(directory=str(config.OUTPUT_DIR)), name="output")

    @api.get("/")
    async def health():
        return {"status": "ok", "service": api.title}

    return api


app = create_app()

import os

from geodata.constants import BASE_DIR, OUTPUT_DIR  # noqa: F401

# Set GEODATA_NO_CACHE=1 to bypass the download cache
USE_CACHE = os.environ.get("GEODATA_NO_CACHE", "").strip() not in ("1", "true", "yes")

# Comma-separated origins allowed to call the API (the Vite dev server by default)
CORS_ORIGINS = [o.strip() for o in os.environ.get(
    "GEODATA_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if o.strip()]

# Formats the build endpoint accepts
OUTPUT_FORMATS = ("glb", "stl", "ply", "obj")
MEDIA_TYPES = {
    ".glb": "model/gltf-binary",
    ".stl": "model/stl",
    ".ply": "application/octet-stream",
    ".obj": "model/obj",
}

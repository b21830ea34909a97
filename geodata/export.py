"""Scene assembly and file export for generated geometry."""

import logging
import pathlib
from dataclasses import dataclass, field

import numpy as np
import trimesh

from .constants import LAYER_COLORS, LAYER_OFFSETS, OUTPUT_DIR
from .errors import GeoDataError, ValidationError
from .models import OSMDataCollection
from .processors import (
    AmenitiesUnit, BuildingUnit, LanduseUnit, ParksUnit, RailwaysUnit, StreetUnit, WaterUnit,
)
from .units import run_unit

logger = logging.getLogger(__name__)

FILE_TYPES = ("glb", "stl", "ply", "obj")

# glTF is Y-up; everything upstream is Z-up
Y_UP = trimesh.transformations.rotation_matrix(-np.pi / 2.0, [1.0, 0.0, 0.0])


@dataclass
class Layer:
    name: str
    meshes: list = field(default_factory=list)
    curves: list = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.meshes and not self.curves

    def mesh(self) -> trimesh.Trimesh | None:
        """All meshes of the layer merged into one, or None."""
        if not self.meshes:
            return None
        if len(self.meshes) == 1:
            return self.meshes[0].copy()
        return trimesh.util.concatenate(self.meshes)

    def path(self):
        curves = [np.asarray(c, dtype=np.float64) for c in self.curves if len(c) >= 2]
        if not curves:
            return None
        return trimesh.load_path(curves)


def _layer(layers: dict, name: str) -> Layer:
    if name not in layers:
        layers[name] = Layer(name)
    return layers[name]


def _run(unit, inputs: dict) -> dict:
    outputs = run_unit(unit, inputs)
    if outputs.get("status") == "error":
        logger.warning(f"{unit.name}: {outputs['info']}")
    return outputs


def collect_layers(data, projection: str = "equirectangular", height_scale: float = 1.0,
                   surfaces: bool = True, progress_callback=None) -> dict:
    """Run every geometry unit that applies to ``data`` and group the results.

    A collection yields buildings and streets; a dataset yields every
    feature class it holds. Units that fail are logged and skipped.
    """
    def _progress(pct, msg):
        logger.info(msg)
        if progress_callback:
            progress_callback(pct, msg)

    common = {"projection": projection}
    layers: dict = {}

    _progress(10, "Building volumes...")
    out = _run(BuildingUnit(), {**common, "data": data, "height_scale": height_scale})
    _layer(layers, "buildings").meshes.extend(out["solids"])

    _progress(40, "Laying out streets...")
    out = _run(StreetUnit(), {**common, "data": data, "surfaces": surfaces})
    _layer(layers, "streets").meshes.extend(out["surfaces"])
    _layer(layers, "centerlines").curves.extend(out["centerlines"])

    if not isinstance(data, OSMDataCollection):
        _progress(60, "Water, parks and landuse...")
        out = _run(WaterUnit(), {**common, "features": data, "surfaces": surfaces,
                                 "water_level": LAYER_OFFSETS["water"]})
        _layer(layers, "water").meshes.extend(out["surfaces"])
        _layer(layers, "water").curves.extend(out["boundaries"])

        out = _run(ParksUnit(), {**common, "features": data, "surfaces": surfaces,
                                 "offset_height": LAYER_OFFSETS["parks"]})
        _layer(layers, "parks").meshes.extend(out["surfaces"])
        _layer(layers, "parks").curves.extend(out["boundaries"])

        out = _run(LanduseUnit(), {**common, "features": data, "surfaces": surfaces,
                                   "height": LAYER_OFFSETS["landuse"]})
        _layer(layers, "landuse").meshes.extend(out["surfaces"])

        _progress(80, "Railways and amenities...")
        out = _run(RailwaysUnit(), {**common, "features": data, "rails": True,
                                    "track_height": LAYER_OFFSETS["railways"]})
        _layer(layers, "railways").curves.extend(out["rails"] or out["centerlines"])

        out = _run(AmenitiesUnit(), {**common, "features": data, "points": False,
                                     "markers": True,
                                     "base_height": LAYER_OFFSETS["amenities"]})
        _layer(layers, "amenities").curves.extend(out["markers"])

    layers = {name: layer for name, layer in layers.items() if not layer.is_empty}
    _progress(90, f"Collected {len(layers)} layers")
    return layers


def _material(name: str):
    rgba = LAYER_COLORS.get(name, [200, 200, 200, 255])
    return trimesh.visual.material.PBRMaterial(
        baseColorFactor=[c / 255.0 for c in rgba],
        doubleSided=True,
    )


def build_scene(layers: dict, y_up: bool = True, include_curves: bool = True) -> trimesh.Scene:
    """One named node per layer; meshes get a solid PBR material."""
    scene = trimesh.Scene()
    for name, layer in layers.items():
        mesh = layer.mesh()
        if mesh is not None:
            mesh.visual = trimesh.visual.TextureVisuals(material=_material(name))
            if y_up:
                mesh.apply_transform(Y_UP)
            scene.add_geometry(mesh, geom_name=name)
        if include_curves:
            path = layer.path()
            if path is not None:
                if y_up:
                    path.apply_transform(Y_UP)
                scene.add_geometry(path, geom_name=f"{name}_lines")
    return scene


def resolve_output_path(output: str | pathlib.Path) -> pathlib.Path:
    """Relative paths land in ``OUTPUT_DIR``."""
    path = pathlib.Path(output)
    if not path.is_absolute():
        path = OUTPUT_DIR / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def export_layers(layers: dict, output: str | pathlib.Path,
                  file_type: str | None = None) -> pathlib.Path:
    """Write ``layers`` to ``output`` and return the absolute path.

    GLB keeps one node per layer plus line geometry. STL, PLY and OBJ get
    a single merged, face-colored mesh in Z-up coordinates.
    """
    path = resolve_output_path(output)
    file_type = (file_type or path.suffix.lstrip(".")).lower()
    if file_type not in FILE_TYPES:
        raise ValidationError(f"Unsupported export format: {file_type or '(none)'}. "
                              f"Use one of: {', '.join(FILE_TYPES)}")

    meshes = []
    for name, layer in layers.items():
        mesh = layer.mesh()
        if mesh is None:
            continue
        mesh.visual.face_colors = LAYER_COLORS.get(name, [200, 200, 200, 255])
        meshes.append(mesh)
    if not meshes and (file_type != "glb" or all(not l.curves for l in layers.values())):
        raise GeoDataError("No valid geometry to export")

    if file_type == "glb":
        build_scene(layers).export(str(path), file_type="glb")
    else:
        combined = meshes[0] if len(meshes) == 1 else trimesh.util.concatenate(meshes)
        combined.export(str(path), file_type=file_type)

    logger.info(f"{file_type.upper()} file generated successfully: {path}")
    return path

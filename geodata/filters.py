"""Attribute filters over typed building and street lists."""

import logging
import re

from .constants import MAJOR_ROAD_TYPES, RESIDENTIAL_ROAD_TYPES
from .models import OSMDataCollection

logger = logging.getLogger(__name__)


def split_types(text: str | None) -> list[str]:
    """``"house, apartments;retail"`` -> ``["house", "apartments", "retail"]``."""
    if not text or not text.strip():
        return []
    return [t.strip().lower() for t in re.split(r"[,;]", text) if t.strip()]


def filter_buildings(buildings, type_filter: str = "", min_height: float = 0.0,
                     max_height: float = 0.0, min_levels: int = 0) -> list:
    """Buildings matching every active criterion.

    ``max_height <= 0`` means no upper bound; ``min_levels > 0`` excludes
    buildings without a levels tag.
    """
    result = list(buildings)

    types = split_types(type_filter)
    if types:
        result = [b for b in result
                  if any(t in (b.building_type or "yes").lower() for t in types)]

    if min_height > 0 or max_height > 0:
        result = [b for b in result
                  if b.get_height() >= min_height
                  and (max_height <= 0 or b.get_height() <= max_height)]

    if min_levels > 0:
        result = [b for b in result if b.levels is not None and b.levels >= min_levels]

    return result


def filter_streets(streets, type_filter: str = "", major_only: bool = False,
                   residential_only: bool = False) -> list:
    result = list(streets)

    types = split_types(type_filter)
    if types:
        result = [s for s in result
                  if any(t in (s.type or "unknown").lower() for t in types)]
    if major_only:
        result = [s for s in result if (s.type or "").lower() in MAJOR_ROAD_TYPES]
    if residential_only:
        result = [s for s in result if (s.type or "").lower() in RESIDENTIAL_ROAD_TYPES]
    return result


def filter_collection(collection: OSMDataCollection, building_types: str = "",
                      min_height: float = 0.0, max_height: float = 0.0,
                      min_levels: int = 0, street_types: str = "",
                      major_only: bool = False,
                      residential_only: bool = False) -> OSMDataCollection:
    """New collection holding only the matching features."""
    buildings = filter_buildings(collection.buildings, building_types,
                                 min_height, max_height, min_levels)
    streets = filter_streets(collection.streets, street_types, major_only, residential_only)
    logger.info(f"Filter kept {len(buildings)}/{len(collection.buildings)} buildings, "
                f"{len(streets)}/{len(collection.streets)} streets")
    return collection.with_features(buildings, streets)


def filter_report(original: OSMDataCollection, filtered: OSMDataCollection,
                  building_types: str = "", min_height: float = 0.0,
                  max_height: float = 0.0, min_levels: int = 0,
                  street_types: str = "", major_only: bool = False,
                  residential_only: bool = False) -> str:
    lines = [
        "Filter Results:",
        "━━━━━━━━━━━━━━━━━━",
        "",
        "Buildings:",
        f"  Input: {len(original.buildings)}",
        f"  Output: {len(filtered.buildings)}",
        f"  Removed: {len(original.buildings) - len(filtered.buildings)}",
    ]
    if building_types.strip():
        lines.append(f"  Type filter: {building_types}")
    if min_height > 0:
        lines.append(f"  Min height: {min_height}m")
    if max_height > 0:
        lines.append(f"  Max height: {max_height}m")
    if min_levels > 0:
        lines.append(f"  Min levels: {min_levels}")
    lines += [
        "",
        "Streets:",
        f"  Input: {len(original.streets)}",
        f"  Output: {len(filtered.streets)}",
        f"  Removed: {len(original.streets) - len(filtered.streets)}",
    ]
    if street_types.strip():
        lines.append(f"  Type filter: {street_types}")
    if major_only:
        lines.append("  Filter: Major roads only")
    if residential_only:
        lines.append("  Filter: Residential only")
    return "\n".join(lines) + "\n"

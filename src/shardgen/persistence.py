"""World persistence: save generated worlds and load them back as snapshots."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import structlog
from numpy.typing import NDArray

from .biomes import BiomeId
from .civilization import (
    PoiKind,
    PointOfInterest,
    RoadKind,
    RoadSegment,
    SettlementKind,
    SettlementSite,
)
from .pipeline import WorldGenResult
from .resources import ResourceKind, ResourceNode

logger = structlog.get_logger()

FORMAT_VERSION = 1


@dataclass
class WorldSnapshot:
    """A saved world: grid fields, entities and metadata."""

    arrays: dict[str, NDArray]
    settlements: list[SettlementSite] = field(default_factory=list)
    roads: list[RoadSegment] = field(default_factory=list)
    points_of_interest: list[PointOfInterest] = field(default_factory=list)
    resource_nodes: list[ResourceNode] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)


def _grid_arrays(world: WorldGenResult) -> dict[str, NDArray]:
    land = world.landform
    erosion = world.erosion
    arrays = {
        "elevation": land.elevation,
        "plate_id": land.tectonics.plate_id,
        "compression": land.tectonics.compression,
        "uplift": land.tectonics.uplift,
        "biome_hints": land.biome_hints,
        "eroded_elevation": erosion.elevation,
        "water": erosion.water,
        "sediment": erosion.sediment,
        "flow_dir": erosion.flow_dir,
        "flow_accum": erosion.flow_accum,
        "rivers": erosion.rivers,
        "lakes": erosion.lakes,
        "temperature": world.climate.temperature,
        "moisture": world.climate.moisture,
        "zones": world.climate.zones,
        "biome_map": world.biomes.biome_map,
        "clusters": world.biomes.clusters,
    }
    for kind, mask in world.resources.masks.items():
        arrays[f"{kind.value}_mask"] = mask
    return arrays


def _encode(data) -> bytes:
    return json.dumps(data).encode("utf-8")


def _decode(data: np.ndarray):
    return json.loads(data.tobytes().decode("utf-8"))


def save_world(path: Path, world: WorldGenResult) -> None:
    """Save a generated world to disk.

    Uses numpy's compressed .npz format; entities and metadata are stored
    as JSON byte strings alongside the grid fields.

    Args:
        path: Output path (should end with .npz).
        world: Pipeline output.
    """
    civ = world.civilization
    settlements = [
        {
            "id": s.id,
            "x": s.x,
            "y": s.y,
            "kind": s.kind.value,
            "biome": int(s.biome),
            "score": s.score,
        }
        for s in civ.settlements
    ]
    roads = [
        {
            "id": r.id,
            "from_id": r.from_id,
            "to_id": r.to_id,
            "kind": r.kind.value,
            "path": [list(p) for p in r.path],
        }
        for r in civ.roads
    ]
    pois = [
        {"id": p.id, "kind": p.kind.value, "x": p.x, "y": p.y, "biome": int(p.biome)}
        for p in civ.points_of_interest
    ]
    nodes = [
        {
            "id": n.id,
            "kind": n.kind.value,
            "subtype": n.subtype,
            "x": n.x,
            "y": n.y,
            "biome": int(n.biome),
            "near_settlement_id": n.near_settlement_id,
        }
        for n in world.resources.nodes
    ]

    seed_input = world.seed_input
    metadata = {
        "version": FORMAT_VERSION,
        "shard_id": seed_input.shard_id,
        "seed": seed_input.seed,
        "profile": seed_input.profile.value,
        "width": world.width,
        "height": world.height,
        "plate_count": world.landform.metadata.plate_count,
        "continent_count": world.landform.metadata.continent_count,
        "cluster_count": world.biomes.cluster_count,
        "poi_attempts": civ.poi_attempts,
        "config": world.config.model_dump(),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }

    np.savez_compressed(
        path,
        **_grid_arrays(world),
        settlements=_encode(settlements),
        roads=_encode(roads),
        points_of_interest=_encode(pois),
        resource_nodes=_encode(nodes),
        metadata=_encode(metadata),
    )

    file_size = path.stat().st_size / (1024 * 1024)
    logger.info("world_saved", path=str(path), size_mb=round(file_size, 2))


def load_world_arrays(path: Path) -> WorldSnapshot:
    """Load a world saved by ``save_world``.

    Args:
        path: Path to .npz file.

    Returns:
        WorldSnapshot with grid fields and rebuilt entities.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If file format is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"World file not found: {path}")

    entity_keys = {"settlements", "roads", "points_of_interest", "resource_nodes", "metadata"}
    with np.load(path) as data:
        if "elevation" not in data or "metadata" not in data:
            raise ValueError("Invalid world file: missing elevation or metadata")

        arrays = {key: data[key] for key in data.files if key not in entity_keys}
        metadata = _decode(data["metadata"])
        settlements_data = _decode(data["settlements"]) if "settlements" in data else []
        roads_data = _decode(data["roads"]) if "roads" in data else []
        pois_data = _decode(data["points_of_interest"]) if "points_of_interest" in data else []
        nodes_data = _decode(data["resource_nodes"]) if "resource_nodes" in data else []

    if metadata.get("version") != FORMAT_VERSION:
        raise ValueError(f"Unsupported world file version: {metadata.get('version')}")

    snapshot = WorldSnapshot(
        arrays=arrays,
        settlements=[
            SettlementSite(
                id=s["id"],
                x=s["x"],
                y=s["y"],
                kind=SettlementKind(s["kind"]),
                biome=BiomeId(s["biome"]),
                score=s["score"],
            )
            for s in settlements_data
        ],
        roads=[
            RoadSegment(
                id=r["id"],
                from_id=r["from_id"],
                to_id=r["to_id"],
                kind=RoadKind(r["kind"]),
                path=tuple((x, y) for x, y in r["path"]),
            )
            for r in roads_data
        ],
        points_of_interest=[
            PointOfInterest(
                id=p["id"],
                kind=PoiKind(p["kind"]),
                x=p["x"],
                y=p["y"],
                biome=BiomeId(p["biome"]),
            )
            for p in pois_data
        ],
        resource_nodes=[
            ResourceNode(
                id=n["id"],
                kind=ResourceKind(n["kind"]),
                subtype=n["subtype"],
                x=n["x"],
                y=n["y"],
                biome=BiomeId(n["biome"]),
                near_settlement_id=n["near_settlement_id"],
            )
            for n in nodes_data
        ],
        metadata=metadata,
    )

    logger.info(
        "world_loaded",
        path=str(path),
        width=metadata.get("width"),
        height=metadata.get("height"),
    )
    return snapshot

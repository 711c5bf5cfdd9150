"""Post-generation validation of a world's structural guarantees."""

import numpy as np
import structlog

from .biomes import BiomeId
from .civilization import RoadKind
from .pipeline import WorldGenResult
from .resources import ResourceKind

logger = structlog.get_logger()


class ValidationResult:
    """Result of world validation."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.passed = True

    def add_error(self, message: str) -> None:
        """Add validation error."""
        self.errors.append(message)
        self.passed = False

    def add_warning(self, message: str) -> None:
        """Add validation warning."""
        self.warnings.append(message)


def validate_world(world: WorldGenResult) -> ValidationResult:
    """Validate a generated world against its invariants.

    Hard failures (non-finite terrain, broken clusters, spacing
    violations, disconnected roads) are errors. Soft degradation such as
    POI under-fill or an empty settlement list is reported as a warning.

    Args:
        world: Pipeline output.

    Returns:
        ValidationResult with any errors/warnings.
    """
    result = ValidationResult()

    _check_elevation(world, result)
    _check_biome_totality(world, result)
    _check_settlement_spacing(world, result)
    _check_road_network(world, result)
    _check_points_of_interest(world, result)
    _check_resource_spacing(world, result)

    if result.passed:
        logger.info("world_validation_passed", shard_id=world.seed_input.shard_id)
    else:
        logger.warning(
            "world_validation_failed",
            shard_id=world.seed_input.shard_id,
            errors=len(result.errors),
        )
        for error in result.errors:
            logger.error("validation_error", detail=error)

    for warning in result.warnings:
        logger.warning("validation_warning", detail=warning)

    return result


def _check_elevation(world: WorldGenResult, result: ValidationResult) -> None:
    """Elevation must be finite; landform elevation spans exactly [-1, 1]."""
    land = world.landform.elevation
    for name, field in (("landform", land), ("eroded", world.erosion.elevation)):
        bad = int(np.count_nonzero(~np.isfinite(field)))
        if bad:
            result.add_error(f"{name} elevation has {bad} non-finite cells")

    if land.size and float(land.min()) != float(land.max()):
        if float(land.min()) != -1.0 or float(land.max()) != 1.0:
            result.add_error(
                f"Landform elevation spans [{land.min()}, {land.max()}], expected [-1, 1]"
            )


def _check_biome_totality(world: WorldGenResult, result: ValidationResult) -> None:
    """Every cell has one valid biome and one cluster; clusters are dense."""
    biomes = world.biomes
    size = world.width * world.height

    if biomes.biome_map.size != size or biomes.clusters.size != size:
        result.add_error("Biome or cluster map size does not match the grid")
        return

    if int(biomes.biome_map.max(initial=0)) >= len(BiomeId):
        result.add_error("Biome map contains unknown biome ids")

    clusters = biomes.clusters
    if clusters.size and (int(clusters.min()) < 0 or int(clusters.max()) >= biomes.cluster_count):
        result.add_error("Cluster ids outside [0, cluster_count)")
        return

    if np.unique(clusters).size != biomes.cluster_count:
        result.add_error("Cluster ids are not dense")

    if sum(biomes.biome_counts.values()) != size:
        result.add_error("Biome counts do not cover every cell")

    # A cluster never mixes biomes
    cluster_biome = np.full(biomes.cluster_count, -1, dtype=np.int64)
    cluster_biome[clusters] = biomes.biome_map
    if np.any(cluster_biome[clusters] != biomes.biome_map):
        result.add_error("A cluster spans more than one biome")


def _check_settlement_spacing(world: WorldGenResult, result: ValidationResult) -> None:
    settlements = world.civilization.settlements
    if not settlements:
        result.add_warning("No settlements were placed")
        return

    min_dist_sq = world.config.civilization.min_distance_between_settlements**2
    for i, a in enumerate(settlements):
        for b in settlements[i + 1 :]:
            if (a.x - b.x) ** 2 + (a.y - b.y) ** 2 < min_dist_sq:
                result.add_error(f"Settlements {a.id} and {b.id} are too close")


def _check_road_network(world: WorldGenResult, result: ValidationResult) -> None:
    """Primary roads form a spanning tree over the settlements."""
    settlements = world.civilization.settlements
    primary = [r for r in world.civilization.roads if r.kind == RoadKind.PRIMARY]
    expected = max(len(settlements) - 1, 0)

    if len(primary) != expected:
        result.add_error(f"Expected {expected} primary roads, found {len(primary)}")

    parent = {s.id: s.id for s in settlements}

    def find(node: str) -> str:
        while parent[node] != node:
            parent[node] = parent[parent[node]]
            node = parent[node]
        return node

    for road in world.civilization.roads:
        if road.from_id not in parent or road.to_id not in parent:
            result.add_error(f"Road {road.id} references an unknown settlement")
            continue
        parent[find(road.from_id)] = find(road.to_id)

    roots = {find(s.id) for s in settlements}
    if len(roots) > 1:
        result.add_error(f"Road network has {len(roots)} disconnected groups")


def _check_points_of_interest(world: WorldGenResult, result: ValidationResult) -> None:
    requested = world.config.civilization.poi_count
    placed = len(world.civilization.points_of_interest)
    if placed < requested:
        result.add_warning(
            f"Placed {placed} of {requested} points of interest "
            f"in {world.civilization.poi_attempts} attempts"
        )


def _check_resource_spacing(world: WorldGenResult, result: ValidationResult) -> None:
    min_dist_sq = world.config.resources.min_distance**2
    for kind in ResourceKind:
        nodes = world.resources.nodes_of(kind)
        for i, a in enumerate(nodes):
            for b in nodes[i + 1 :]:
                if (a.x - b.x) ** 2 + (a.y - b.y) ** 2 < min_dist_sq:
                    result.add_error(f"Resource nodes {a.id} and {b.id} are too close")

"""Resource stage: ore, herb, wood, fish and rare nodes with natural spacing.

Spawn chances are computed for the whole grid at once. Every (cell, kind)
pair then gets exactly one roll from the resource stream, cells in
row-major order and kinds in ``ResourceKind`` order, so adding or removing
nodes never shifts the rolls of other cells.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .biomes import VOLCANIC_BIOMES, BiomeId, BiomeResult, biome_mask
from .civilization import CivilizationResult, SettlementSite
from .climate import ClimateResult
from .config import ResourceParams, merge_params
from .context import StageLog, WorldGenContext
from .erosion import ErosionResult
from .grid import distance_field, require_matching, validate_dimensions
from .landform import SEA_LEVEL, LandformResult
from .rng import RESOURCE_SALT, Mulberry32, derive_seed


class ResourceKind(str, Enum):
    """Kinds of harvestable nodes, in roll order."""

    ORE = "ore"
    HERB = "herb"
    WOOD = "wood"
    FISH = "fish"
    RARE = "rare"


@dataclass(frozen=True)
class ResourceNode:
    id: str
    kind: ResourceKind
    subtype: str
    x: int
    y: int
    biome: BiomeId
    near_settlement_id: str | None = None


@dataclass
class ResourceInput:
    landforms: LandformResult
    erosion: ErosionResult
    climate: ClimateResult
    biomes: BiomeResult
    civilization: CivilizationResult
    shard_seed: int
    params: ResourceParams | Mapping[str, Any] | None = None


@dataclass(frozen=True, eq=False)
class ResourceResult:
    width: int
    height: int
    nodes: tuple[ResourceNode, ...]
    masks: dict[ResourceKind, NDArray[np.bool_]]

    def nodes_of(self, kind: ResourceKind) -> list[ResourceNode]:
        return [node for node in self.nodes if node.kind == kind]


# Biome multipliers per kind; biomes not listed use the default
ORE_BIOME_FACTORS = {
    **{biome: 4.0 for biome in VOLCANIC_BIOMES},
    BiomeId.ALPINE: 2.5,
    BiomeId.SNOW: 2.5,
    BiomeId.DESERT: 1.8,
    BiomeId.FOREST: 1.0,
    BiomeId.BOREAL_FOREST: 1.0,
    BiomeId.GRASSLAND: 1.0,
    BiomeId.SAVANNA: 1.0,
}
HERB_BIOME_FACTORS = {
    BiomeId.GRASSLAND: 2.0,
    BiomeId.FOREST: 2.0,
    BiomeId.SAVANNA: 2.0,
    BiomeId.WETLANDS: 2.0,
    BiomeId.BOREAL_FOREST: 1.6,
    BiomeId.JUNGLE: 1.6,
    BiomeId.DESERT: 0.4,
    BiomeId.VOLCANIC_PLAIN: 0.2,
    BiomeId.LAVA_FIELD: 0.2,
}
WOOD_BIOME_FACTORS = {
    BiomeId.FOREST: 3.0,
    BiomeId.BOREAL_FOREST: 3.0,
    BiomeId.JUNGLE: 3.0,
    BiomeId.SAVANNA: 1.8,
    BiomeId.WETLANDS: 1.8,
    BiomeId.GRASSLAND: 0.6,
    BiomeId.DESERT: 0.2,
    BiomeId.VOLCANIC_PLAIN: 0.2,
    BiomeId.LAVA_FIELD: 0.2,
}
RARE_BIOME_FACTORS = {
    **{biome: 4.0 for biome in VOLCANIC_BIOMES},
    BiomeId.JUNGLE: 2.0,
    BiomeId.DESERT: 2.0,
    BiomeId.ALPINE: 2.0,
    BiomeId.SNOW: 2.0,
}


def _factor_table(factors: dict[BiomeId, float], default: float) -> NDArray[np.float64]:
    table = np.full(len(BiomeId), default)
    for biome, value in factors.items():
        table[int(biome)] = value
    return table


def spawn_chances(
    biome_map: NDArray[np.uint16],
    elevation: NDArray[np.floating],
    temperature: NDArray[np.floating],
    moisture: NDArray[np.floating],
    uplift: NDArray[np.floating],
    rivers: NDArray[np.bool_],
    lakes: NDArray[np.bool_],
    params: ResourceParams,
) -> dict[ResourceKind, NDArray[np.float64]]:
    """Base per-cell spawn chance for every kind, before density scaling."""
    biome_idx = biome_map.astype(np.int64)
    sea = elevation < SEA_LEVEL
    fresh_water = rivers | lakes
    t = temperature.astype(np.float64)
    m = moisture.astype(np.float64)

    ore = params.ore_density * _factor_table(ORE_BIOME_FACTORS, 0.8)[biome_idx]
    ore = ore * np.where(fresh_water, 1.3, 1.0)
    ore = ore * np.where((t < -15) | (t > 45), 0.4, 1.0)
    ore = np.where(sea, 0.0, ore)

    herb = params.herb_density * _factor_table(HERB_BIOME_FACTORS, 0.8)[biome_idx]
    herb = herb * np.where((m < 0.2) | (m > 0.9), 0.4, 1.0)
    herb = herb * np.where(fresh_water, 1.8, 1.0)
    herb = np.where(sea, 0.0, herb)

    wood = params.wood_density * _factor_table(WOOD_BIOME_FACTORS, 0.5)[biome_idx]
    wood = np.where(sea, 0.0, wood)

    fish = np.full(biome_map.shape, params.fish_density)
    fish = fish * np.where(sea, 2.5, 1.0)
    fish = fish * np.where(rivers, 2.0, 1.0)
    fish = fish * np.where(lakes, 1.6, 1.0)
    fish = fish * np.where((t < -5) | (t > 35), 0.7, 1.0)
    fish = np.where(sea | fresh_water, fish, 0.0)

    rare = params.rare_density * _factor_table(RARE_BIOME_FACTORS, 0.7)[biome_idx]
    rare = rare * np.where(uplift > 0.6, 1.8, 1.0)
    rare = rare * np.where(uplift > 0.9, 2.5, 1.0)
    rare = rare * np.where(sea, 0.3, 1.0)

    return {
        ResourceKind.ORE: ore,
        ResourceKind.HERB: herb,
        ResourceKind.WOOD: wood,
        ResourceKind.FISH: fish,
        ResourceKind.RARE: rare,
    }


def settlement_damping(distance: NDArray[np.int32], params: ResourceParams) -> NDArray[np.float64]:
    """Density multiplier that thins out nodes inside settlements."""
    ratio = distance / params.settlement_avoid_radius
    damped = np.maximum(params.settlement_avoid_floor, ratio)
    return np.where(distance < params.settlement_avoid_radius, damped, 1.0)


def pick_ore_subtype(biome: BiomeId, elevation: float, rng: Mulberry32) -> str:
    if biome in VOLCANIC_BIOMES:
        roll = rng.random()
        if roll < 0.4:
            return "obsidian_ore"
        if roll < 0.7:
            return "fire_crystal_ore"
        return "basalt_fragment"
    if biome == BiomeId.DESERT:
        return "copper_ore" if rng.random() < 0.5 else "silver_ore"
    if elevation > 0.6:
        return "iron_ore" if rng.random() < 0.6 else "mithril_ore"
    return "iron_ore" if rng.random() < 0.5 else "copper_ore"


def pick_herb_subtype(biome: BiomeId, rng: Mulberry32) -> str:
    if biome == BiomeId.JUNGLE:
        return "jungle_spice" if rng.random() < 0.5 else "bloodvine"
    if biome == BiomeId.WETLANDS:
        return "swamp_reed" if rng.random() < 0.5 else "marsh_bloom"
    if biome in (BiomeId.FOREST, BiomeId.BOREAL_FOREST):
        return "forest_mint" if rng.random() < 0.5 else "silverleaf"
    if biome == BiomeId.DESERT:
        return "cactus_bloom" if rng.random() < 0.6 else "sun_thistle"
    return "plain_wort" if rng.random() < 0.5 else "meadow_rose"


def pick_wood_subtype(biome: BiomeId, rng: Mulberry32) -> str:
    if biome == BiomeId.JUNGLE:
        return "jungle_wood" if rng.random() < 0.5 else "darkheart_wood"
    if biome in (BiomeId.BOREAL_FOREST, BiomeId.SNOW):
        return "pine_log" if rng.random() < 0.5 else "spruce_log"
    if biome == BiomeId.FOREST:
        return "oak_log" if rng.random() < 0.5 else "birch_log"
    if biome == BiomeId.SAVANNA:
        return "acacia_log"
    return "scrub_wood"


def pick_fish_subtype(
    is_sea: bool,
    is_river: bool,
    is_lake: bool,
    temperature: float,
    rng: Mulberry32,
) -> str:
    if is_sea:
        return "sea_bass" if rng.random() < 0.5 else "tide_sardine"
    if is_river:
        if temperature < 5:
            return "cold_trout"
        return "river_trout" if rng.random() < 0.5 else "silver_carp"
    if is_lake:
        return "lake_perch" if rng.random() < 0.5 else "mud_catfish"
    return "mystery_fish"


def pick_rare_subtype(biome: BiomeId, elevation: float, rng: Mulberry32) -> str:
    if biome in VOLCANIC_BIOMES:
        return "ember_core" if rng.random() < 0.5 else "molten_heart"
    if biome == BiomeId.JUNGLE:
        return "ancient_idol" if rng.random() < 0.5 else "glowing_orchid"
    if biome == BiomeId.DESERT:
        return "sunstone" if rng.random() < 0.5 else "buried_relic"
    if elevation > 0.7:
        return "sky_crystal" if rng.random() < 0.5 else "frost_gem"
    return "ley_fragment" if rng.random() < 0.5 else "forgotten_totem"


def nearest_settlement_id(x: int, y: int, settlements: tuple[SettlementSite, ...]) -> str | None:
    """Id of the closest settlement by squared distance; first wins ties."""
    best_id = None
    best_d2 = None
    for s in settlements:
        d2 = (s.x - x) ** 2 + (s.y - y) ** 2
        if best_d2 is None or d2 < best_d2:
            best_d2 = d2
            best_id = s.id
    return best_id


def _too_close(x: int, y: int, existing: list[ResourceNode], min_dist_sq: float) -> bool:
    return any((n.x - x) ** 2 + (n.y - y) ** 2 < min_dist_sq for n in existing)


def run_resources(
    resource_input: ResourceInput,
    context: WorldGenContext | None = None,
) -> ResourceResult:
    """Place resource nodes for a shard.

    Raises:
        ConfigurationError: On invalid or mismatched dimensions.
    """
    land = resource_input.landforms
    erosion = resource_input.erosion
    climate = resource_input.climate
    biomes = resource_input.biomes
    civ = resource_input.civilization
    width, height = land.width, land.height
    validate_dimensions("resources", width, height)
    require_matching(
        "resources",
        width,
        height,
        erosion=(erosion.width, erosion.height),
        climate=(climate.width, climate.height),
        biomes=(biomes.width, biomes.height),
        civilization=(civ.width, civ.height),
    )

    params = merge_params(ResourceParams(), resource_input.params)
    rng = Mulberry32(derive_seed(resource_input.shard_seed, RESOURCE_SALT))

    log = StageLog(context, "resources")
    log.info(
        "resources_started",
        width=width,
        height=height,
        global_density=params.global_density,
    )

    size = width * height
    settlement_cells = np.zeros(size, dtype=bool)
    for s in civ.settlements:
        settlement_cells[s.y * width + s.x] = True
    settlement_distance = distance_field(
        settlement_cells, width, height, params.settlement_search_distance
    )

    chances = spawn_chances(
        biomes.biome_map,
        erosion.elevation,
        climate.temperature,
        climate.moisture,
        land.tectonics.uplift,
        erosion.rivers,
        erosion.lakes,
        params,
    )
    scale = params.global_density * settlement_damping(settlement_distance, params)
    kinds = list(ResourceKind)
    probabilities = np.stack([chances[kind] * scale for kind in kinds], axis=1)

    rolls = rng.random_array(size * len(kinds)).reshape(size, len(kinds))
    hits = (probabilities > 0) & (rolls < probabilities)

    min_dist_sq = params.min_distance**2
    nodes: list[ResourceNode] = []
    by_kind: dict[ResourceKind, list[ResourceNode]] = {kind: [] for kind in kinds}
    masks = {kind: np.zeros(size, dtype=bool) for kind in kinds}
    sea = erosion.elevation < SEA_LEVEL

    for idx, k in np.argwhere(hits).tolist():
        kind = kinds[k]
        x = idx % width
        y = idx // width
        if _too_close(x, y, by_kind[kind], min_dist_sq):
            continue

        biome = BiomeId(int(biomes.biome_map[idx]))
        elev = float(erosion.elevation[idx])
        if kind == ResourceKind.ORE:
            subtype = pick_ore_subtype(biome, elev, rng)
        elif kind == ResourceKind.HERB:
            subtype = pick_herb_subtype(biome, rng)
        elif kind == ResourceKind.WOOD:
            subtype = pick_wood_subtype(biome, rng)
        elif kind == ResourceKind.FISH:
            subtype = pick_fish_subtype(
                bool(sea[idx]),
                bool(erosion.rivers[idx]),
                bool(erosion.lakes[idx]),
                float(climate.temperature[idx]),
                rng,
            )
        else:
            subtype = pick_rare_subtype(biome, elev, rng)

        near = None
        if settlement_distance[idx] <= params.settlement_near_radius:
            near = nearest_settlement_id(x, y, civ.settlements)

        node = ResourceNode(
            id=f"{kind.value}_{subtype}_{len(nodes)}_{x}_{y}",
            kind=kind,
            subtype=subtype,
            x=x,
            y=y,
            biome=biome,
            near_settlement_id=near,
        )
        nodes.append(node)
        by_kind[kind].append(node)
        masks[kind][idx] = True

    log.success(
        "resources_complete",
        nodes=len(nodes),
        **{kind.value: len(by_kind[kind]) for kind in kinds},
    )

    return ResourceResult(width=width, height=height, nodes=tuple(nodes), masks=masks)

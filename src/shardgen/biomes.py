"""Biome stage: per-cell biome classification and connected biome clusters."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .climate import ClimateResult, ClimateZone
from .config import BiomeParams, merge_params
from .context import StageLog, WorldGenContext
from .erosion import ErosionResult
from .grid import CARDINAL, require_matching, validate_dimensions
from .landform import SEA_LEVEL, LandformResult
from .rng import BIOME_SALT, Mulberry32, derive_seed


class BiomeId(IntEnum):
    OCEAN = 0
    COAST = 1
    BEACH = 2
    RIVER = 3
    LAKE = 4
    WETLANDS = 5
    GRASSLAND = 6
    FOREST = 7
    BOREAL_FOREST = 8
    JUNGLE = 9
    DESERT = 10
    SAVANNA = 11
    SNOW = 12
    ALPINE = 13
    VOLCANIC_PLAIN = 14
    LAVA_FIELD = 15
    BASALT_PLATEAU = 16
    MAGMA_LAKE = 17


WATER_BIOMES = frozenset({BiomeId.OCEAN, BiomeId.RIVER, BiomeId.LAKE, BiomeId.MAGMA_LAKE})
VOLCANIC_BIOMES = frozenset({BiomeId.VOLCANIC_PLAIN, BiomeId.LAVA_FIELD, BiomeId.BASALT_PLATEAU})
FERTILE_BIOMES = frozenset(
    {
        BiomeId.GRASSLAND,
        BiomeId.FOREST,
        BiomeId.SAVANNA,
        BiomeId.WETLANDS,
        BiomeId.BOREAL_FOREST,
    }
)


@dataclass
class BiomeInput:
    landforms: LandformResult
    erosion: ErosionResult
    climate: ClimateResult
    shard_seed: int
    params: BiomeParams | Mapping[str, Any] | None = None


@dataclass(frozen=True, eq=False)
class ClusterResult:
    clusters: NDArray[np.int32]
    cluster_count: int
    visited: int


@dataclass(frozen=True, eq=False)
class BiomeResult:
    width: int
    height: int
    biome_map: NDArray[np.uint16]
    clusters: NDArray[np.int32]
    cluster_count: int
    biome_counts: dict[BiomeId, int]


def biome_mask(biome_map: NDArray, biomes) -> NDArray[np.bool_]:
    """Boolean mask of cells whose biome is in ``biomes``."""
    return np.isin(biome_map, [int(b) for b in biomes])


def classify_biomes(
    elevation: NDArray[np.floating],
    uplift: NDArray[np.floating],
    temperature: NDArray[np.floating],
    moisture: NDArray[np.floating],
    zones: NDArray[np.uint8],
    rivers: NDArray[np.bool_],
    lakes: NDArray[np.bool_],
    magma_rolls: NDArray[np.float64],
    params: BiomeParams,
) -> NDArray[np.uint16]:
    """Apply the ordered biome decision list to every cell.

    The first matching rule wins: water, coastal bands, volcanic tiers,
    then terrestrial rules by temperature and moisture.
    """
    h = elevation.astype(np.float64)
    above_sea = h - SEA_LEVEL
    volcanic = uplift > params.volcanic_uplift_threshold
    magma = volcanic & (magma_rolls < params.magma_lake_chance)

    rules = [
        (h < SEA_LEVEL, BiomeId.OCEAN),
        (lakes & magma, BiomeId.MAGMA_LAKE),
        (lakes, BiomeId.LAKE),
        (rivers, BiomeId.RIVER),
        (above_sea < params.coast_threshold, BiomeId.COAST),
        (above_sea < params.beach_threshold, BiomeId.BEACH),
        (
            uplift > params.volcanic_uplift_threshold * params.lava_uplift_multiplier,
            BiomeId.LAVA_FIELD,
        ),
        (volcanic, BiomeId.VOLCANIC_PLAIN),
        (
            (h > params.mountain_threshold) & (temperature < params.alpine_temperature),
            BiomeId.ALPINE,
        ),
        (temperature <= params.snow_temperature, BiomeId.SNOW),
        (
            (moisture < params.desert_moisture) & (temperature > params.desert_temperature),
            BiomeId.DESERT,
        ),
        (
            (moisture < params.savanna_moisture) & (temperature > params.savanna_temperature),
            BiomeId.SAVANNA,
        ),
        (zones <= ClimateZone.BOREAL, BiomeId.BOREAL_FOREST),
        (
            (temperature > params.jungle_temperature) & (moisture > params.jungle_moisture),
            BiomeId.JUNGLE,
        ),
        (moisture > params.wetlands_moisture, BiomeId.WETLANDS),
        (moisture > params.forest_moisture, BiomeId.FOREST),
    ]
    return np.select(
        [condition for condition, _ in rules],
        [int(biome) for _, biome in rules],
        default=int(BiomeId.GRASSLAND),
    ).astype(np.uint16)


def cluster_biomes(biome_map: NDArray, width: int, height: int) -> ClusterResult:
    """Group connected same-biome cells with a stack-based 4-neighbour fill.

    Cluster ids are dense from 0 in row-major order of each cluster's
    first cell. Every cell is visited exactly once. The scan and push order
    fix the ids, so a labeling library that numbers regions differently is
    not a drop-in replacement.
    """
    biomes = biome_map.tolist()
    clusters = [-1] * (width * height)
    cluster_id = 0
    visited = 0

    for start in range(width * height):
        if clusters[start] != -1:
            continue

        biome = biomes[start]
        clusters[start] = cluster_id
        stack = [start]
        while stack:
            idx = stack.pop()
            visited += 1
            x = idx % width
            y = idx // width
            for dx, dy in CARDINAL:
                nx = x + dx
                ny = y + dy
                if nx < 0 or nx >= width or ny < 0 or ny >= height:
                    continue
                n_idx = ny * width + nx
                if clusters[n_idx] != -1 or biomes[n_idx] != biome:
                    continue
                clusters[n_idx] = cluster_id
                stack.append(n_idx)

        cluster_id += 1

    return ClusterResult(
        clusters=np.array(clusters, dtype=np.int32),
        cluster_count=cluster_id,
        visited=visited,
    )


def count_biomes(biome_map: NDArray) -> dict[BiomeId, int]:
    """Cell count per biome present on the map."""
    counts = np.bincount(biome_map.astype(np.int64), minlength=len(BiomeId))
    return {BiomeId(i): int(c) for i, c in enumerate(counts) if c > 0}


def run_biomes(
    biome_input: BiomeInput,
    context: WorldGenContext | None = None,
) -> BiomeResult:
    """Classify biomes and build clusters.

    Magma lakes use one roll per cell, in row-major order, from the biome
    stream.

    Raises:
        ConfigurationError: On invalid or mismatched dimensions.
    """
    land = biome_input.landforms
    erosion = biome_input.erosion
    climate = biome_input.climate
    width, height = land.width, land.height
    validate_dimensions("biomes", width, height)
    require_matching(
        "biomes",
        width,
        height,
        erosion=(erosion.width, erosion.height),
        climate=(climate.width, climate.height),
    )

    params = merge_params(BiomeParams(), biome_input.params)
    log = StageLog(context, "biomes")
    log.info("biomes_started", width=width, height=height)

    rng = Mulberry32(derive_seed(biome_input.shard_seed, BIOME_SALT))
    magma_rolls = rng.random_array(width * height)

    biome_map = classify_biomes(
        erosion.elevation,
        land.tectonics.uplift,
        climate.temperature,
        climate.moisture,
        climate.zones,
        erosion.rivers,
        erosion.lakes,
        magma_rolls,
        params,
    )

    log.debug("biome_clustering")
    clustered = cluster_biomes(biome_map, width, height)
    counts = count_biomes(biome_map)

    log.success(
        "biomes_complete",
        clusters=clustered.cluster_count,
        distinct_biomes=len(counts),
        visited=clustered.visited,
    )

    return BiomeResult(
        width=width,
        height=height,
        biome_map=biome_map,
        clusters=clustered.clusters,
        cluster_count=clustered.cluster_count,
        biome_counts=counts,
    )

"""Civilization stage: settlements, road network and points of interest."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .biomes import FERTILE_BIOMES, WATER_BIOMES, BiomeId, BiomeResult, biome_mask
from .climate import ClimateResult
from .config import CivilizationParams, merge_params
from .context import StageLog, WorldGenContext
from .erosion import ErosionResult
from .grid import bresenham_line, require_matching, validate_dimensions
from .landform import SEA_LEVEL, LandformResult
from .rng import CIVILIZATION_SALT, Mulberry32, derive_seed


class SettlementKind(str, Enum):
    VILLAGE = "village"
    TOWN = "town"
    CITY = "city"


class RoadKind(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class PoiKind(str, Enum):
    RUIN = "ruin"
    SHRINE = "shrine"
    FORT = "fort"
    MINE = "mine"
    LAIR = "lair"


@dataclass(frozen=True)
class SettlementSite:
    id: str
    x: int
    y: int
    kind: SettlementKind
    biome: BiomeId
    score: float


@dataclass(frozen=True)
class RoadSegment:
    """A road between two settlements; ``path`` is a Bresenham cell line."""

    id: str
    from_id: str
    to_id: str
    kind: RoadKind
    path: tuple[tuple[int, int], ...]


@dataclass(frozen=True)
class PointOfInterest:
    id: str
    kind: PoiKind
    x: int
    y: int
    biome: BiomeId


@dataclass
class CivilizationInput:
    landforms: LandformResult
    erosion: ErosionResult
    climate: ClimateResult
    biomes: BiomeResult
    shard_seed: int
    params: CivilizationParams | Mapping[str, Any] | None = None


@dataclass(frozen=True, eq=False)
class CivilizationResult:
    width: int
    height: int
    settlements: tuple[SettlementSite, ...]
    roads: tuple[RoadSegment, ...]
    points_of_interest: tuple[PointOfInterest, ...]
    poi_attempts: int


# Biome suitability for settling; anything not listed scores 0.5
BIOME_SUITABILITY = {
    **{biome: 1.0 for biome in FERTILE_BIOMES},
    BiomeId.COAST: 0.85,
    BiomeId.BEACH: 0.85,
    BiomeId.JUNGLE: 0.65,
    BiomeId.DESERT: 0.35,
    BiomeId.SNOW: 0.35,
    BiomeId.ALPINE: 0.35,
}

UNINHABITABLE = (BiomeId.LAVA_FIELD, BiomeId.MAGMA_LAKE, BiomeId.BASALT_PLATEAU)

POI_KIND_BY_BIOME = {
    BiomeId.VOLCANIC_PLAIN: PoiKind.SHRINE,
    BiomeId.LAVA_FIELD: PoiKind.SHRINE,
    BiomeId.BASALT_PLATEAU: PoiKind.SHRINE,
    BiomeId.DESERT: PoiKind.RUIN,
    BiomeId.JUNGLE: PoiKind.SHRINE,
    BiomeId.ALPINE: PoiKind.FORT,
    BiomeId.SNOW: PoiKind.FORT,
    BiomeId.WETLANDS: PoiKind.LAIR,
}


def _suitability_table() -> NDArray[np.float64]:
    table = np.full(len(BiomeId), 0.5)
    for biome, value in BIOME_SUITABILITY.items():
        table[int(biome)] = value
    return table


def score_settlement_candidates(
    elevation: NDArray[np.floating],
    temperature: NDArray[np.floating],
    moisture: NDArray[np.floating],
    biome_map: NDArray[np.uint16],
    rivers: NDArray[np.bool_],
    lakes: NDArray[np.bool_],
    params: CivilizationParams,
) -> NDArray[np.float32]:
    """Score how attractive each cell is for a settlement.

    Weighted sum of biome suitability (0.4), the fertile moisture band
    (0.3), water access (0.2) and gentle elevation (0.1). Ocean, lava and
    magma biomes and cells outside the temperature bounds score zero.
    """
    h = elevation.astype(np.float64)
    m = moisture.astype(np.float64)
    t = temperature.astype(np.float64)

    biome_score = _suitability_table()[biome_map.astype(np.int64)]

    below = np.maximum(0.0, 1.0 - (params.fertile_moisture_min - m) * 4.0)
    above = np.maximum(0.0, 1.0 - (m - params.fertile_moisture_max) * 4.0)
    moisture_score = np.where(
        m < params.fertile_moisture_min,
        below,
        np.where(m > params.fertile_moisture_max, above, 1.0),
    )

    coast = biome_mask(biome_map, (BiomeId.COAST, BiomeId.BEACH))
    water_score = (
        np.where(rivers, params.river_bias, 0.0)
        + np.where(lakes, params.lake_bias, 0.0)
        + np.where(coast, params.coast_bias, 0.0)
    )

    elevation_score = np.select([h > 0.8, h > 0.5], [0.1, 0.4], default=1.0)

    combined = biome_score * 0.4 + moisture_score * 0.3 + water_score * 0.2 + elevation_score * 0.1

    excluded = (
        (h < SEA_LEVEL)
        | biome_mask(biome_map, UNINHABITABLE)
        | (t < params.avoid_extreme_temp_below)
        | (t > params.avoid_extreme_temp_above)
    )
    return np.where(excluded, 0.0, combined).astype(np.float32)


def settlement_kind(score: float, params: CivilizationParams) -> SettlementKind:
    if score >= params.city_score_threshold:
        return SettlementKind.CITY
    if score >= params.town_score_threshold:
        return SettlementKind.TOWN
    return SettlementKind.VILLAGE


def pick_settlement_sites(
    scores: NDArray[np.float32],
    biome_map: NDArray[np.uint16],
    width: int,
    params: CivilizationParams,
    rng: Mulberry32,
) -> list[SettlementSite]:
    """Greedily pick the best-scoring cells subject to minimum spacing.

    Candidates are visited in descending score order (ties by cell index).
    The chosen list is then shuffled with the stage stream; the shuffle
    never changes which sites were chosen.
    """
    candidates = np.nonzero(scores > params.min_candidate_score)[0]
    order = np.argsort(-scores[candidates], kind="stable")
    min_dist_sq = params.min_distance_between_settlements**2

    chosen: list[SettlementSite] = []
    for idx in candidates[order].tolist():
        if len(chosen) >= params.max_settlements:
            break

        x = idx % width
        y = idx // width
        if any((s.x - x) ** 2 + (s.y - y) ** 2 < min_dist_sq for s in chosen):
            continue

        score = float(scores[idx])
        chosen.append(
            SettlementSite(
                id=f"settlement_{len(chosen)}_{x}_{y}",
                x=x,
                y=y,
                kind=settlement_kind(score, params),
                biome=BiomeId(int(biome_map[idx])),
                score=score,
            )
        )

    rng.shuffle(chosen)
    return chosen


def _distance_sq(a: SettlementSite, b: SettlementSite) -> int:
    return (a.x - b.x) ** 2 + (a.y - b.y) ** 2


def _road(a: SettlementSite, b: SettlementSite, kind: RoadKind) -> RoadSegment:
    prefix = "road" if kind == RoadKind.PRIMARY else "road_secondary"
    return RoadSegment(
        id=f"{prefix}_{a.id}_{b.id}",
        from_id=a.id,
        to_id=b.id,
        kind=kind,
        path=tuple(bresenham_line(a.x, a.y, b.x, b.y)),
    )


def minimum_spanning_parents(settlements: list[SettlementSite]) -> list[int]:
    """Prim's algorithm over squared distance, rooted at settlement 0.

    Ties go to the lowest index; that order decides which roads exist.

    Returns:
        Parent index per settlement; -1 for the root.
    """
    n = len(settlements)
    in_tree = [False] * n
    best = [float("inf")] * n
    parent = [-1] * n
    if n == 0:
        return parent
    best[0] = 0

    for _ in range(n):
        u = -1
        u_best = float("inf")
        for j in range(n):
            if not in_tree[j] and best[j] < u_best:
                u_best = best[j]
                u = j
        if u == -1:
            break
        in_tree[u] = True

        for v in range(n):
            if in_tree[v]:
                continue
            d = _distance_sq(settlements[u], settlements[v])
            if d < best[v]:
                best[v] = d
                parent[v] = u

    return parent


def nearest_settlements(settlements: list[SettlementSite], index: int, count: int) -> list[int]:
    """Indices of the ``count`` nearest other settlements, closest first."""
    origin = settlements[index]
    others = [i for i in range(len(settlements)) if i != index]
    others.sort(key=lambda i: _distance_sq(origin, settlements[i]))
    return others[:count]


def build_road_network(
    settlements: list[SettlementSite],
    params: CivilizationParams,
) -> list[RoadSegment]:
    """Primary roads along the MST, then secondary roads to near neighbours."""
    roads: list[RoadSegment] = []
    if len(settlements) <= 1:
        return roads

    linked: set[frozenset[str]] = set()
    for i, p in enumerate(minimum_spanning_parents(settlements)):
        if p == -1:
            continue
        a, b = settlements[i], settlements[p]
        roads.append(_road(a, b, RoadKind.PRIMARY))
        linked.add(frozenset((a.id, b.id)))

    limit = min(params.max_secondary_roads_per_settlement, len(settlements))
    for i, a in enumerate(settlements):
        added = 0
        for j in nearest_settlements(settlements, i, params.road_neighbor_candidates):
            if added >= limit:
                break
            b = settlements[j]
            pair = frozenset((a.id, b.id))
            if a.id > b.id or pair in linked:
                continue
            roads.append(_road(a, b, RoadKind.SECONDARY))
            linked.add(pair)
            added += 1

    return roads


def place_points_of_interest(
    elevation: NDArray[np.floating],
    biome_map: NDArray[np.uint16],
    width: int,
    height: int,
    params: CivilizationParams,
    rng: Mulberry32,
) -> tuple[list[PointOfInterest], int]:
    """Scatter points of interest by rejection sampling.

    Each attempt draws x then y. Underwater cells and river, lake and
    magma lake biomes are rejected. Stops at ``poi_count`` placements or
    when the attempt budget runs out.

    Returns:
        (points of interest, attempts used).
    """
    pois: list[PointOfInterest] = []
    max_attempts = params.poi_count * params.poi_attempt_multiplier
    attempts = 0

    while len(pois) < params.poi_count and attempts < max_attempts:
        attempts += 1
        x = rng.randint(width)
        y = rng.randint(height)
        idx = y * width + x

        biome = BiomeId(int(biome_map[idx]))
        if elevation[idx] < SEA_LEVEL or biome in WATER_BIOMES:
            continue

        kind = POI_KIND_BY_BIOME.get(biome)
        if kind is None:
            kind = PoiKind.RUIN if rng.random() < 0.5 else PoiKind.MINE

        pois.append(
            PointOfInterest(
                id=f"poi_{kind.value}_{len(pois)}_{x}_{y}",
                kind=kind,
                x=x,
                y=y,
                biome=biome,
            )
        )

    return pois, attempts


def run_civilization(
    civ_input: CivilizationInput,
    context: WorldGenContext | None = None,
) -> CivilizationResult:
    """Place settlements, connect them with roads and scatter POIs.

    Raises:
        ConfigurationError: On invalid or mismatched dimensions.
    """
    land = civ_input.landforms
    erosion = civ_input.erosion
    climate = civ_input.climate
    biomes = civ_input.biomes
    width, height = land.width, land.height
    validate_dimensions("civilization", width, height)
    require_matching(
        "civilization",
        width,
        height,
        erosion=(erosion.width, erosion.height),
        climate=(climate.width, climate.height),
        biomes=(biomes.width, biomes.height),
    )

    params = merge_params(CivilizationParams(), civ_input.params)
    rng = Mulberry32(derive_seed(civ_input.shard_seed, CIVILIZATION_SALT))

    log = StageLog(context, "civilization")
    log.info(
        "civilization_started",
        width=width,
        height=height,
        max_settlements=params.max_settlements,
    )

    scores = score_settlement_candidates(
        erosion.elevation,
        climate.temperature,
        climate.moisture,
        biomes.biome_map,
        erosion.rivers,
        erosion.lakes,
        params,
    )
    settlements = pick_settlement_sites(scores, biomes.biome_map, width, params, rng)
    log.info("settlements_selected", count=len(settlements))
    if not settlements:
        log.warning("no_settlement_sites", max_settlements=params.max_settlements)

    roads = build_road_network(settlements, params)

    pois, attempts = place_points_of_interest(
        erosion.elevation, biomes.biome_map, width, height, params, rng
    )
    if len(pois) < params.poi_count:
        log.warning(
            "points_of_interest_underfilled",
            placed=len(pois),
            requested=params.poi_count,
            attempts=attempts,
        )

    log.success(
        "civilization_complete",
        settlements=len(settlements),
        roads=len(roads),
        pois=len(pois),
    )

    return CivilizationResult(
        width=width,
        height=height,
        settlements=tuple(settlements),
        roads=tuple(roads),
        points_of_interest=tuple(pois),
        poi_attempts=attempts,
    )

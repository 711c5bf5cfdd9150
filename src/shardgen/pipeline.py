"""Main world generation orchestration."""

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from .biomes import BiomeInput, BiomeResult, run_biomes
from .civilization import CivilizationInput, CivilizationResult, run_civilization
from .climate import ClimateInput, ClimateResult, run_climate
from .config import ShardSeedInput, WorldGenConfig
from .context import StageLog, WorldGenContext
from .erosion import ErosionInput, ErosionResult, run_erosion
from .landform import LandformResult, run_landform
from .resources import ResourceInput, ResourceResult, run_resources

STAGES = ("landform", "erosion", "climate", "biomes", "civilization", "resources")

R = TypeVar("R")


@dataclass(frozen=True, eq=False)
class WorldGenResult:
    """Outputs of every stage for one shard."""

    seed_input: ShardSeedInput
    config: WorldGenConfig
    landform: LandformResult
    erosion: ErosionResult
    climate: ClimateResult
    biomes: BiomeResult
    civilization: CivilizationResult
    resources: ResourceResult
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def width(self) -> int:
        return self.landform.width

    @property
    def height(self) -> int:
        return self.landform.height


def _timed(timings: dict[str, float], stage: str, fn: Callable[[], R]) -> R:
    start = time.perf_counter()
    result = fn()
    timings[stage] = time.perf_counter() - start
    return result


def generate_world(
    seed_input: ShardSeedInput,
    config: WorldGenConfig | None = None,
    context: WorldGenContext | None = None,
) -> WorldGenResult:
    """Run all six stages in order for one shard.

    Each call builds its own buffers and random streams, so concurrent
    calls only share the optional logger.

    Args:
        seed_input: Shard id, dimensions, seed and profile.
        config: Per-stage parameters; defaults when omitted.
        context: Optional logger holder.

    Returns:
        WorldGenResult with every stage's output and per-stage timings.

    Raises:
        ConfigurationError: If any stage is misconfigured. No partial
            result is returned.
    """
    config = config or WorldGenConfig()
    seed = seed_input.seed
    timings: dict[str, float] = {}
    log = StageLog(context, "pipeline")

    log.info(
        "world_generation_started",
        shard_id=seed_input.shard_id,
        width=seed_input.width,
        height=seed_input.height,
        seed=seed,
        profile=seed_input.profile.value,
    )

    landform = _timed(
        timings, "landform", lambda: run_landform(seed_input, context, params=config.landform)
    )
    erosion = _timed(
        timings,
        "erosion",
        lambda: run_erosion(ErosionInput(landform, config.erosion), context),
    )
    climate = _timed(
        timings,
        "climate",
        lambda: run_climate(
            ClimateInput(landform, seed, erosion=erosion, params=config.climate), context
        ),
    )
    biomes = _timed(
        timings,
        "biomes",
        lambda: run_biomes(BiomeInput(landform, erosion, climate, seed, config.biomes), context),
    )
    civilization = _timed(
        timings,
        "civilization",
        lambda: run_civilization(
            CivilizationInput(landform, erosion, climate, biomes, seed, config.civilization),
            context,
        ),
    )
    resources = _timed(
        timings,
        "resources",
        lambda: run_resources(
            ResourceInput(
                landform, erosion, climate, biomes, civilization, seed, config.resources
            ),
            context,
        ),
    )

    log.info(
        "world_generation_complete",
        shard_id=seed_input.shard_id,
        plate_count=landform.metadata.plate_count,
        river_cells=int(erosion.rivers.sum()),
        clusters=biomes.cluster_count,
        settlements=len(civilization.settlements),
        roads=len(civilization.roads),
        pois=len(civilization.points_of_interest),
        resource_nodes=len(resources.nodes),
        total_seconds=round(sum(timings.values()), 3),
    )

    return WorldGenResult(
        seed_input=seed_input,
        config=config,
        landform=landform,
        erosion=erosion,
        climate=climate,
        biomes=biomes,
        civilization=civilization,
        resources=resources,
        timings=timings,
    )

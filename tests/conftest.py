"""Shared test fixtures for world generation tests."""

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np
import pytest

from shardgen.biomes import BiomeId, BiomeResult, cluster_biomes, count_biomes
from shardgen.climate import ClimateResult, classify_climate_field
from shardgen.config import ShardSeedInput, WorldProfile
from shardgen.erosion import ErosionResult
from shardgen.grid import FLOW_NODATA
from shardgen.landform import LandformMetadata, LandformResult, TectonicField
from shardgen.pipeline import WorldGenResult, generate_world


class RecordingLogger:
    """Logger double that records (level, event, meta) tuples."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def debug(self, event: str, **meta: Any) -> None:
        self.records.append(("debug", event, meta))

    def info(self, event: str, **meta: Any) -> None:
        self.records.append(("info", event, meta))

    def warning(self, event: str, **meta: Any) -> None:
        self.records.append(("warning", event, meta))

    def error(self, event: str, **meta: Any) -> None:
        self.records.append(("error", event, meta))

    def events(self) -> list[str]:
        return [event for _, event, _ in self.records]


@dataclass
class SyntheticWorld:
    """Hand-built stage outputs for exercising later stages in isolation."""

    landform: LandformResult
    erosion: ErosionResult
    climate: ClimateResult
    biomes: BiomeResult

    @property
    def width(self) -> int:
        return self.landform.width

    @property
    def height(self) -> int:
        return self.landform.height


def _field(value: Any, width: int, height: int, dtype) -> np.ndarray:
    arr = np.asarray(value, dtype=dtype)
    if arr.ndim == 1:
        arr = arr.reshape(height, width)
    return np.broadcast_to(arr, (height, width)).ravel().copy()


def build_synthetic_world(
    width: int,
    height: int,
    elevation: Any = 0.3,
    temperature: Any = 15.0,
    moisture: Any = 0.5,
    biome: Any = BiomeId.GRASSLAND,
    uplift: Any = 0.0,
    rivers: Any = False,
    lakes: Any = False,
) -> SyntheticWorld:
    """Build consistent stage outputs from scalar or per-cell values."""
    elev = _field(elevation, width, height, np.float32)
    temp = _field(temperature, width, height, np.float32)
    moist = _field(moisture, width, height, np.float32)
    biome_map = _field(np.asarray(biome, dtype=np.int64), width, height, np.uint16)
    size = width * height

    landform = LandformResult(
        shard_id="synthetic",
        width=width,
        height=height,
        elevation=elev,
        tectonics=TectonicField(
            plate_id=np.zeros(size, dtype=np.uint8),
            compression=np.zeros(size, dtype=np.float32),
            uplift=_field(uplift, width, height, np.float32),
        ),
        biome_hints=np.zeros(size, dtype=np.uint8),
        metadata=LandformMetadata(plate_count=1, continent_count=1),
    )
    erosion = ErosionResult(
        width=width,
        height=height,
        elevation=elev.copy(),
        water=np.zeros(size, dtype=np.float32),
        sediment=np.zeros(size, dtype=np.float32),
        flow_dir=np.full(size, FLOW_NODATA, dtype=np.uint8),
        flow_accum=np.ones(size, dtype=np.float32),
        rivers=_field(rivers, width, height, bool),
        lakes=_field(lakes, width, height, bool),
        flow_passes=1,
        lake_fill_passes=0,
    )
    climate = ClimateResult(
        width=width,
        height=height,
        temperature=temp,
        moisture=moist,
        zones=classify_climate_field(temp, moist),
    )
    clustered = cluster_biomes(biome_map, width, height)
    biomes = BiomeResult(
        width=width,
        height=height,
        biome_map=biome_map,
        clusters=clustered.clusters,
        cluster_count=clustered.cluster_count,
        biome_counts=count_biomes(biome_map),
    )
    return SyntheticWorld(landform=landform, erosion=erosion, climate=climate, biomes=biomes)


@pytest.fixture
def synthetic_world() -> Callable[..., SyntheticWorld]:
    """Factory for hand-built stage outputs."""
    return build_synthetic_world


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture(scope="session")
def small_seed_input() -> ShardSeedInput:
    """48x40 shard that runs the whole pipeline quickly."""
    return ShardSeedInput(
        shard_id="test-shard",
        width=48,
        height=40,
        seed=0x1234,
        profile=WorldProfile.STABLE_PRIME,
    )


@pytest.fixture(scope="session")
def small_world(small_seed_input: ShardSeedInput) -> WorldGenResult:
    """Full pipeline output for the small shard. Do not mutate."""
    return generate_world(small_seed_input)

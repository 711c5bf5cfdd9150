"""Climate stage: temperature, moisture and climate zone fields."""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Mapping

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .config import ClimateParams, merge_params
from .context import StageLog, WorldGenContext
from .erosion import ErosionResult
from .grid import distance_field, require_matching, validate_dimensions
from .landform import SEA_LEVEL, LandformResult
from .noise import ValueNoise2D, lerp
from .rng import CLIMATE_SALT, derive_seed


class ClimateZone(IntEnum):
    POLAR = 0
    TUNDRA = 1
    BOREAL = 2
    TEMPERATE = 3
    MEDITERRANEAN = 4
    SUBTROPICAL = 5
    RAINFOREST = 6
    ARID = 7
    STEPPE = 8


@dataclass
class ClimateInput:
    landforms: LandformResult
    shard_seed: int
    erosion: ErosionResult | None = None
    params: ClimateParams | Mapping[str, Any] | None = None


@dataclass(frozen=True, eq=False)
class ClimateResult:
    width: int
    height: int
    temperature: NDArray[np.float32]
    moisture: NDArray[np.float32]
    zones: NDArray[np.uint8]


def classify_climate(temperature: float, moisture: float) -> ClimateZone:
    """Classify one cell into a climate zone.

    Temperature is in abstract game units, moisture in [0, 1].
    """
    if temperature <= -5:
        return ClimateZone.POLAR if moisture < 0.4 else ClimateZone.TUNDRA
    if temperature <= 5:
        return ClimateZone.STEPPE if moisture < 0.25 else ClimateZone.BOREAL
    if temperature <= 15:
        return ClimateZone.STEPPE if moisture < 0.2 else ClimateZone.TEMPERATE
    if temperature <= 22:
        if moisture < 0.18:
            return ClimateZone.ARID
        if moisture < 0.35:
            return ClimateZone.STEPPE
        if moisture < 0.6:
            return ClimateZone.MEDITERRANEAN
        return ClimateZone.SUBTROPICAL
    if moisture < 0.15:
        return ClimateZone.ARID
    if moisture < 0.35:
        return ClimateZone.STEPPE
    if moisture < 0.65:
        return ClimateZone.SUBTROPICAL
    return ClimateZone.RAINFOREST


def classify_climate_field(temperature: ArrayLike, moisture: ArrayLike) -> NDArray[np.uint8]:
    """Vectorized ``classify_climate`` over whole fields."""
    t = np.asarray(temperature, dtype=np.float64)
    m = np.asarray(moisture, dtype=np.float64)

    conditions = [
        (t <= -5) & (m < 0.4),
        t <= -5,
        (t <= 5) & (m < 0.25),
        t <= 5,
        (t <= 15) & (m < 0.2),
        t <= 15,
        (t <= 22) & (m < 0.18),
        (t <= 22) & (m < 0.35),
        (t <= 22) & (m < 0.6),
        t <= 22,
        m < 0.15,
        m < 0.35,
        m < 0.65,
    ]
    choices = [
        ClimateZone.POLAR,
        ClimateZone.TUNDRA,
        ClimateZone.STEPPE,
        ClimateZone.BOREAL,
        ClimateZone.STEPPE,
        ClimateZone.TEMPERATE,
        ClimateZone.ARID,
        ClimateZone.STEPPE,
        ClimateZone.MEDITERRANEAN,
        ClimateZone.SUBTROPICAL,
        ClimateZone.ARID,
        ClimateZone.STEPPE,
        ClimateZone.SUBTROPICAL,
    ]
    return np.select(conditions, [int(c) for c in choices], default=int(ClimateZone.RAINFOREST)).astype(
        np.uint8
    )


def latitude_rows(height: int) -> NDArray[np.float64]:
    """Latitude per row in [-1, 1]; a single row sits on the equator."""
    if height <= 1:
        return np.zeros(height, dtype=np.float64)
    return np.arange(height, dtype=np.float64) / (height - 1) * 2.0 - 1.0


def run_climate(
    climate_input: ClimateInput,
    context: WorldGenContext | None = None,
) -> ClimateResult:
    """Compute temperature, moisture and zones for a shard.

    When erosion output is given, its eroded elevation and river/lake
    masks are used; otherwise the landform elevation alone.

    Raises:
        ConfigurationError: On invalid or mismatched dimensions.
    """
    land = climate_input.landforms
    erosion = climate_input.erosion
    width, height = land.width, land.height
    validate_dimensions("climate", width, height)
    if erosion is not None:
        require_matching("climate", width, height, erosion=(erosion.width, erosion.height))

    params = merge_params(ClimateParams(), climate_input.params)
    seed = climate_input.shard_seed & 0xFFFFFFFF

    log = StageLog(context, "climate")
    log.info("climate_started", width=width, height=height, seed=seed)

    elevation = (erosion.elevation if erosion is not None else land.elevation).astype(np.float64)
    elevation = elevation.reshape(height, width)

    lat_abs = np.abs(latitude_rows(height))[:, np.newaxis]

    # Temperature: latitude plus altitude lapse
    base_temp = lerp(params.equator_temperature, params.pole_temperature, lat_abs)
    temperature = base_temp - np.maximum(elevation, 0.0) * params.lapse_rate

    # Moisture: latitude, water proximity, rivers/lakes and noise
    water_sources = (elevation < SEA_LEVEL).ravel()
    if erosion is not None:
        water_sources = water_sources | erosion.rivers | erosion.lakes
    water_distance = distance_field(
        water_sources, width, height, params.water_search_distance
    ).reshape(height, width)

    moisture = params.humidity_base + params.humidity_latitude_factor * (1.0 - lat_abs)
    inland = np.minimum(1.0, water_distance / params.inland_falloff_distance)
    moisture = moisture + lerp(params.coastal_bonus, params.inland_penalty, inland)

    if erosion is not None:
        moisture = moisture + np.where(erosion.rivers, params.river_moisture_boost, 0.0).reshape(
            height, width
        )
        moisture = moisture + np.where(erosion.lakes, params.lake_moisture_boost, 0.0).reshape(
            height, width
        )

    noise = ValueNoise2D(derive_seed(seed, CLIMATE_SALT))
    xs = (np.arange(width, dtype=np.float64) / width)[np.newaxis, :]
    ys = (np.arange(height, dtype=np.float64) / height)[:, np.newaxis]
    moisture = moisture + noise.sample(xs, ys, params.noise_frequency) * params.humidity_noise_factor
    moisture = np.clip(moisture, 0.0, 1.0)

    temperature = temperature.astype(np.float32).ravel()
    moisture = moisture.astype(np.float32).ravel()
    zones = classify_climate_field(temperature, moisture)

    log.info(
        "climate_complete",
        min_temperature=float(temperature.min()),
        max_temperature=float(temperature.max()),
        mean_moisture=float(moisture.mean()),
    )

    return ClimateResult(
        width=width,
        height=height,
        temperature=temperature,
        moisture=moisture,
        zones=zones,
    )

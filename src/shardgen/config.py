"""World generation configuration models."""

import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .exceptions import ConfigurationError

SEED_MASK = 0xFFFFFFFF


class WorldProfile(str, Enum):
    """Stylistic preset that shapes macro terrain behavior."""

    STABLE_PRIME = "STABLE_PRIME"
    CHAOTIC_PRIME = "CHAOTIC_PRIME"
    BROKEN_SHARD = "BROKEN_SHARD"
    ELEMENTAL_TILT = "ELEMENTAL_TILT"
    ARCANE_DISTORTED = "ARCANE_DISTORTED"


class StageParams(BaseModel):
    """Base for per-stage tunables. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class LandformParams(StageParams):
    """Landform (tectonics + macro noise) parameters."""

    continent_count_min: int = Field(default=1, ge=1, description="Minimum continents")
    continent_count_max: int = Field(default=4, ge=1, description="Maximum continents")
    plate_count_min: int = Field(default=3, ge=1, le=250, description="Minimum tectonic plates")
    plate_count_max: int = Field(default=7, ge=1, le=250, description="Maximum tectonic plates")
    mountain_uplift_strength: float = Field(
        default=1.2, description="Uplift per unit of boundary compression"
    )
    rift_strength: float = Field(default=0.8, description="Subsidence at diverging boundaries")
    folding_frequency: float = Field(default=1.2, description="Fold noise frequency")
    erosion_bias: float = Field(default=1.0, description="Detail noise amplitude multiplier")
    base_elevation_scale: float = Field(
        default=1.0, description="Vertical scale of the continent pass"
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> "LandformParams":
        if self.continent_count_min > self.continent_count_max:
            raise ValueError("continent_count_min must not exceed continent_count_max")
        if self.plate_count_min > self.plate_count_max:
            raise ValueError("plate_count_min must not exceed plate_count_max")
        return self


class ErosionParams(StageParams):
    """Hydrology and hydraulic erosion parameters."""

    iterations: int = Field(default=45, ge=0, description="Hydraulic erosion passes")
    rain_amount: float = Field(default=0.01, description="Water added per cell per pass")
    evaporate_rate: float = Field(default=0.015, description="Water removed per cell per pass")
    sediment_capacity: float = Field(default=0.05, description="Sediment carried per unit slope")
    min_slope: float = Field(default=0.0005, description="Slope needed to pick up sediment")
    lake_fill_iterations: int = Field(default=8, ge=0, description="Max lake filling passes")
    river_threshold: float = Field(default=8.0, description="Flow accumulation marking a river")
    flow_pass_cap: int = Field(default=64, ge=1, description="Max flow accumulation passes")
    water_transfer_fraction: float = Field(
        default=0.6, description="Fraction of water moved downhill per pass"
    )
    lake_fill_factor: float = Field(
        default=0.45, description="Fraction of the gap to the lowest neighbor filled per pass"
    )
    erosion_rate: float = Field(
        default=0.002, description="Max fraction of elevation removed per pass"
    )
    deposit_fraction: float = Field(
        default=0.4, description="Fraction of sediment dropped on gentle slopes"
    )
    lake_min_water: float = Field(default=0.005, description="Water depth to keep a lake")


class ClimateParams(StageParams):
    """Temperature and moisture parameters, in abstract game units."""

    equator_temperature: float = Field(default=28.0, description="Sea-level temperature at equator")
    pole_temperature: float = Field(default=-8.0, description="Sea-level temperature at poles")
    lapse_rate: float = Field(default=12.0, description="Temperature drop per unit elevation")
    humidity_base: float = Field(default=0.55, description="Base humidity")
    humidity_latitude_factor: float = Field(default=0.25, description="Weight of latitude")
    humidity_noise_factor: float = Field(default=0.15, description="Amplitude of noise variation")
    coastal_bonus: float = Field(default=0.25, description="Moisture bonus next to water")
    inland_penalty: float = Field(default=-0.2, description="Moisture change far inland")
    river_moisture_boost: float = Field(default=0.2, description="Boost on river cells")
    lake_moisture_boost: float = Field(default=0.3, description="Boost on lake cells")
    water_search_distance: int = Field(default=64, ge=0, description="Water distance cap (cells)")
    inland_falloff_distance: float = Field(
        default=32.0, gt=0, description="Distance at which the inland penalty is full"
    )
    noise_frequency: float = Field(default=3.0, description="Moisture noise frequency")


class BiomeParams(StageParams):
    """Biome decision list thresholds."""

    coast_threshold: float = Field(default=0.05, description="Height above sea for coast")
    beach_threshold: float = Field(default=0.1, description="Height above sea for beach")
    mountain_threshold: float = Field(default=0.65, description="Height for alpine biomes")
    volcanic_uplift_threshold: float = Field(default=0.55, description="Uplift for volcanic biomes")
    lava_uplift_multiplier: float = Field(
        default=1.3, description="Multiple of the volcanic threshold for lava fields"
    )
    magma_lake_chance: float = Field(
        default=0.02, ge=0.0, le=1.0, description="Chance a high-uplift lake is magma"
    )
    alpine_temperature: float = Field(default=5.0, description="Alpine below this temperature")
    snow_temperature: float = Field(default=-5.0, description="Snow at or below this temperature")
    desert_moisture: float = Field(default=0.18, description="Desert below this moisture")
    desert_temperature: float = Field(default=18.0, description="Desert above this temperature")
    savanna_moisture: float = Field(default=0.35, description="Savanna below this moisture")
    savanna_temperature: float = Field(default=16.0, description="Savanna above this temperature")
    jungle_temperature: float = Field(default=22.0, description="Jungle above this temperature")
    jungle_moisture: float = Field(default=0.6, description="Jungle above this moisture")
    wetlands_moisture: float = Field(default=0.75, description="Wetlands above this moisture")
    forest_moisture: float = Field(default=0.45, description="Forest above this moisture")


class CivilizationParams(StageParams):
    """Settlement, road and point-of-interest parameters."""

    max_settlements: int = Field(default=14, ge=0, description="Upper bound on settlements")
    min_distance_between_settlements: float = Field(
        default=32.0, ge=0, description="Minimum spacing in cells"
    )
    river_bias: float = Field(default=0.35, description="Water score on river cells")
    lake_bias: float = Field(default=0.3, description="Water score on lake cells")
    coast_bias: float = Field(default=0.25, description="Water score on coast/beach cells")
    fertile_moisture_min: float = Field(default=0.35, description="Lower edge of fertile band")
    fertile_moisture_max: float = Field(default=0.75, description="Upper edge of fertile band")
    avoid_extreme_temp_below: float = Field(default=-10.0, description="Coldest habitable temp")
    avoid_extreme_temp_above: float = Field(default=35.0, description="Hottest habitable temp")
    city_score_threshold: float = Field(default=0.8, description="Score for a city")
    town_score_threshold: float = Field(default=0.55, description="Score for a town")
    min_candidate_score: float = Field(default=0.1, description="Score floor for candidates")
    road_neighbor_candidates: int = Field(
        default=3, ge=0, description="Nearest settlements considered for secondary roads"
    )
    max_secondary_roads_per_settlement: int = Field(
        default=4, ge=0, description="Secondary roads added per settlement"
    )
    poi_count: int = Field(default=24, ge=0, description="Target points of interest")
    poi_attempt_multiplier: int = Field(
        default=10, ge=1, description="Sampling attempts per requested point of interest"
    )


class ResourceParams(StageParams):
    """Resource node density and spacing parameters."""

    global_density: float = Field(default=1.0, ge=0.0, description="Global density multiplier")
    ore_density: float = Field(default=0.0008, ge=0.0, description="Per-cell ore chance")
    herb_density: float = Field(default=0.0012, ge=0.0, description="Per-cell herb chance")
    wood_density: float = Field(default=0.0014, ge=0.0, description="Per-cell wood chance")
    fish_density: float = Field(default=0.0015, ge=0.0, description="Per-cell fish chance")
    rare_density: float = Field(default=0.0002, ge=0.0, description="Per-cell rare chance")
    min_distance: float = Field(
        default=6.0, ge=0.0, description="Minimum spacing between same-kind nodes"
    )
    settlement_avoid_radius: float = Field(
        default=16.0, gt=0, description="Radius where density is damped near settlements"
    )
    settlement_avoid_floor: float = Field(
        default=0.2, ge=0.0, le=1.0, description="Density multiplier at a settlement center"
    )
    settlement_near_radius: float = Field(
        default=32.0, ge=0.0, description="Radius for near-settlement tagging"
    )
    settlement_search_distance: int = Field(
        default=255, ge=0, description="Settlement distance cap (cells)"
    )

    @model_validator(mode="after")
    def _check_search_distance(self) -> "ResourceParams":
        # Cells beyond the cap read the cap, so it must clear both radii
        if self.settlement_search_distance <= self.settlement_near_radius:
            raise ValueError("settlement_search_distance must exceed settlement_near_radius")
        if self.settlement_search_distance < self.settlement_avoid_radius:
            raise ValueError(
                "settlement_search_distance must not be below settlement_avoid_radius"
            )
        return self


class ShardSeedInput(BaseModel, frozen=True):
    """Immutable input for one world generation run."""

    shard_id: str
    width: int
    height: int
    seed: int
    profile: WorldProfile = WorldProfile.STABLE_PRIME
    params: dict[str, Any] | None = None

    @field_validator("seed")
    @classmethod
    def _mask_seed(cls, value: int) -> int:
        return value & SEED_MASK


class WorldGenConfig(BaseModel):
    """Complete per-stage configuration for a pipeline run."""

    model_config = ConfigDict(extra="forbid")

    landform: LandformParams = Field(default_factory=LandformParams)
    erosion: ErosionParams = Field(default_factory=ErosionParams)
    climate: ClimateParams = Field(default_factory=ClimateParams)
    biomes: BiomeParams = Field(default_factory=BiomeParams)
    civilization: CivilizationParams = Field(default_factory=CivilizationParams)
    resources: ResourceParams = Field(default_factory=ResourceParams)


ParamsT = TypeVar("ParamsT", bound=StageParams)


def merge_params(
    base: ParamsT,
    overrides: Mapping[str, Any] | StageParams | None,
) -> ParamsT:
    """Shallow-merge overrides over an existing parameter set.

    Args:
        base: Parameters to start from.
        overrides: Partial mapping or parameter model; ``None`` keeps base.

    Returns:
        New parameter model of the same type as ``base``.

    Raises:
        ConfigurationError: If the merged values fail validation.
    """
    if overrides is None:
        return base

    model = type(base)
    if isinstance(overrides, model):
        return overrides
    if isinstance(overrides, BaseModel):
        overrides = overrides.model_dump(exclude_unset=True)

    merged = {**base.model_dump(), **dict(overrides)}
    try:
        return model.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model.__name__} overrides: {e}") from e


def resolve_params(
    model: type[ParamsT],
    overrides: Mapping[str, Any] | StageParams | None,
) -> ParamsT:
    """Build a stage's parameters from built-in defaults plus overrides."""
    return merge_params(model(), overrides)


def load_config(config_path: Path) -> WorldGenConfig:
    """Load pipeline configuration from a TOML file.

    Each stage reads its own table (``[landform]``, ``[erosion]``, ...);
    missing tables and keys fall back to defaults.

    Args:
        config_path: Path to the TOML config file.

    Returns:
        Parsed WorldGenConfig.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        tomllib.TOMLDecodeError: If TOML is malformed.
        ConfigurationError: If values fail validation.
    """
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    try:
        return WorldGenConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config {config_path}: {e}") from e

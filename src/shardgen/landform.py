"""Landform stage: tectonic plates and macro noise into a base heightmap.

Produces a deterministic elevation field normalized to [-1, 1] with sea
level at 0, the tectonic fields behind it, and coarse biome hint codes
for the later passes.
"""

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .config import LandformParams, ShardSeedInput, WorldProfile, merge_params
from .context import StageLog, WorldGenContext
from .grid import CARDINAL, as_grid, neighbor_values, normalized_axis, validate_dimensions
from .noise import ValueNoise2D, fbm
from .rng import (
    DETAIL_NOISE_SALT,
    FOLD_NOISE_SALT,
    LANDFORM_SALT,
    MACRO_NOISE_SALT,
    Mulberry32,
    derive_seed,
)

SEA_LEVEL = 0.0

# Biome hint codes
HINT_DEEP_SEA = 0
HINT_SHELF = 1
HINT_LOWLAND = 2
HINT_HIGHLAND = 3
HINT_MOUNTAIN = 4
HINT_VOLCANIC = 5


@dataclass
class Plate:
    """A transient tectonic plate in normalized [0, 1] coordinates."""

    id: int
    center_x: float
    center_y: float
    drift_x: float
    drift_y: float
    compression: float
    elemental_bias: float = 0.0


@dataclass(frozen=True, eq=False)
class TectonicField:
    plate_id: NDArray[np.uint8]
    compression: NDArray[np.float32]
    uplift: NDArray[np.float32]


@dataclass(frozen=True)
class LandformMetadata:
    plate_count: int
    continent_count: int
    sea_level: float = SEA_LEVEL
    min_height: float = -1.0
    max_height: float = 1.0


@dataclass(frozen=True, eq=False)
class LandformResult:
    """Output of the landform stage."""

    shard_id: str
    width: int
    height: int
    elevation: NDArray[np.float32]
    tectonics: TectonicField
    biome_hints: NDArray[np.uint8]
    metadata: LandformMetadata


def plate_count_range(profile: WorldProfile, params: LandformParams) -> tuple[int, int]:
    """Effective (min, max) plate count after the profile adjustment."""
    low = params.plate_count_min
    high = params.plate_count_max

    if profile == WorldProfile.STABLE_PRIME:
        high = max(low + 1, 4)
    elif profile in (WorldProfile.CHAOTIC_PRIME, WorldProfile.BROKEN_SHARD):
        low = max(low + 1, 5)

    return low, high


def _draw_count(rng: Mulberry32, low: int, high: int) -> int:
    return low + rng.randint(max(high - low + 1, 1))


def generate_plates(
    rng: Mulberry32,
    profile: WorldProfile,
    params: LandformParams,
) -> list[Plate]:
    """Draw plate count and per-plate motion from the landform stream.

    Each plate consumes, in order: angle, speed, compression (redrawn for
    chaotic profiles), elemental bias (elemental tilt only), center x and
    center y.
    """
    low, high = plate_count_range(profile, params)
    count = _draw_count(rng, low, high)

    plates = []
    for i in range(count):
        angle = rng.random() * math.pi * 2
        speed = 0.1 + rng.random() * 0.3

        compression = rng.random()
        if profile == WorldProfile.STABLE_PRIME:
            compression *= 0.6
        if profile in (WorldProfile.CHAOTIC_PRIME, WorldProfile.BROKEN_SHARD):
            compression = 0.4 + rng.random() * 0.6

        elemental_bias = rng.random() * 2 - 1 if profile == WorldProfile.ELEMENTAL_TILT else 0.0

        plates.append(
            Plate(
                id=i,
                center_x=rng.random(),
                center_y=rng.random(),
                drift_x=math.cos(angle) * speed,
                drift_y=math.sin(angle) * speed,
                compression=compression,
                elemental_bias=elemental_bias,
            )
        )

    return plates


def assign_plates(
    plates: list[Plate],
    nx: NDArray[np.float64],
    ny: NDArray[np.float64],
) -> NDArray[np.uint8]:
    """Voronoi-assign every cell to its nearest plate center.

    Ties go to the lowest plate id.

    Returns:
        2-D ``(height, width)`` plate id grid.
    """
    shape = (ny.size, nx.size)
    best = np.zeros(shape, dtype=np.uint8)
    best_d2 = np.full(shape, np.inf)

    for plate in plates:
        d2 = (nx[np.newaxis, :] - plate.center_x) ** 2 + (ny[:, np.newaxis] - plate.center_y) ** 2
        closer = d2 < best_d2
        best[closer] = plate.id
        best_d2 = np.where(closer, d2, best_d2)

    return best


def _plate_interactions(plates: list[Plate]) -> tuple[NDArray, NDArray]:
    """Pairwise relative drift along the center normal and summed compression."""
    cx = np.array([p.center_x for p in plates])
    cy = np.array([p.center_y for p in plates])
    vx = np.array([p.drift_x for p in plates])
    vy = np.array([p.drift_y for p in plates])
    comp = np.array([p.compression for p in plates])

    dx = cx[np.newaxis, :] - cx[:, np.newaxis]
    dy = cy[np.newaxis, :] - cy[:, np.newaxis]
    length = np.hypot(dx, dy)
    length[length == 0] = 1.0

    rel_vx = vx[np.newaxis, :] - vx[:, np.newaxis]
    rel_vy = vy[np.newaxis, :] - vy[:, np.newaxis]
    along_normal = (rel_vx * dx + rel_vy * dy) / length
    compression_sum = comp[:, np.newaxis] + comp[np.newaxis, :]
    return along_normal, compression_sum


def tectonic_pass(
    plates: list[Plate],
    plate_grid: NDArray[np.uint8],
    fold: NDArray[np.float64],
    params: LandformParams,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Accumulate boundary compression, uplift and rifting.

    Only 4-neighbours on a different plate contribute. Converging
    boundaries add compression and uplift; diverging ones add rift
    subsidence. Uplift is modulated by the fold noise.

    Returns:
        (compression, uplift, rift) grids.
    """
    along_normal, compression_sum = _plate_interactions(plates)
    plates_here = plate_grid.astype(np.int16)

    compression = np.zeros(plate_grid.shape)
    uplift = np.zeros(plate_grid.shape)
    rift = np.zeros(plate_grid.shape)

    for dx, dy in CARDINAL:
        other = neighbor_values(plates_here, dx, dy, -1)
        boundary = (other >= 0) & (other != plates_here)
        other = np.where(boundary, other, plates_here)

        rel = along_normal[plates_here, other]
        converging = boundary & (rel < 0)
        diverging = boundary & (rel >= 0)

        comp = np.where(converging, compression_sum[plates_here, other] * -rel, 0.0)
        compression += comp
        uplift += comp * params.mountain_uplift_strength
        rift += np.where(diverging, rel * params.rift_strength, 0.0)

    uplift *= 0.6 + 0.4 * (fold * 0.5 + 0.5)
    return compression, uplift, rift


def _ocean_bias(profile: WorldProfile) -> float:
    if profile == WorldProfile.BROKEN_SHARD:
        return 0.7
    if profile == WorldProfile.CHAOTIC_PRIME:
        return 0.4
    return 0.3


def _crater_count(profile: WorldProfile) -> int:
    if profile == WorldProfile.BROKEN_SHARD:
        return 8
    if profile in (WorldProfile.CHAOTIC_PRIME, WorldProfile.ARCANE_DISTORTED):
        return 4
    return 0


def normalize_elevation(elevation: NDArray[np.float64]) -> NDArray[np.float32]:
    """Min-max normalize into [-1, 1]. A flat field maps to -1."""
    low = float(elevation.min())
    high = float(elevation.max())
    span = (high - low) or 1.0
    return (((elevation - low) / span) * 2.0 - 1.0).astype(np.float32)


def classify_hints(
    elevation: NDArray[np.float32],
    uplift: NDArray[np.float32],
) -> NDArray[np.uint8]:
    h = elevation.astype(np.float64)
    hints = np.select(
        [
            h < SEA_LEVEL - 0.4,
            h < SEA_LEVEL + 0.05,
            h < SEA_LEVEL + 0.35,
            h < SEA_LEVEL + 0.65,
        ],
        [HINT_DEEP_SEA, HINT_SHELF, HINT_LOWLAND, HINT_HIGHLAND],
        default=HINT_MOUNTAIN,
    ).astype(np.uint8)
    volcanic = (np.abs(uplift) > 0.6) & (h > SEA_LEVEL + 0.2)
    hints[volcanic] = HINT_VOLCANIC
    return hints


def run_landform(
    seed_input: ShardSeedInput,
    context: WorldGenContext | None = None,
    params: LandformParams | None = None,
) -> LandformResult:
    """Generate the base landform for one shard.

    Args:
        seed_input: Shard id, dimensions, seed, profile and optional
            landform parameter overrides.
        context: Optional logger holder.
        params: Base parameters; ``seed_input.params`` is merged on top.

    Returns:
        LandformResult with normalized elevation.

    Raises:
        ConfigurationError: On non-positive dimensions or invalid overrides.
    """
    width, height = seed_input.width, seed_input.height
    validate_dimensions("landform", width, height)

    params = merge_params(params or LandformParams(), seed_input.params)
    profile = seed_input.profile
    seed = seed_input.seed

    log = StageLog(context, "landform")
    log.info(
        "landform_started",
        shard_id=seed_input.shard_id,
        width=width,
        height=height,
        seed=seed,
        profile=profile.value,
    )

    rng = Mulberry32(derive_seed(seed, LANDFORM_SALT))
    macro_noise = ValueNoise2D(derive_seed(seed, MACRO_NOISE_SALT))
    fold_noise = ValueNoise2D(derive_seed(seed, FOLD_NOISE_SALT))
    detail_noise = ValueNoise2D(derive_seed(seed, DETAIL_NOISE_SALT))

    nx = normalized_axis(width)
    ny = normalized_axis(height)
    xs = nx[np.newaxis, :]
    ys = ny[:, np.newaxis]

    plates = generate_plates(rng, profile, params)
    plate_grid = assign_plates(plates, nx, ny)

    continent_count = _draw_count(rng, params.continent_count_min, params.continent_count_max)

    # Macro continent shapes
    macro = fbm(macro_noise, xs, ys, 3, 0.5, 2.0, 0.7 + (continent_count - 1) * 0.3)
    continent_mask = np.clip((macro + 1.0) * 0.5, 0.0, None) ** 1.2
    elevation = (continent_mask - _ocean_bias(profile)) * params.base_elevation_scale

    # Tectonic uplift and rifts
    fold = fold_noise.sample(xs, ys, params.folding_frequency)
    compression, uplift, rift = tectonic_pass(plates, plate_grid, fold, params)
    elevation = elevation + uplift - rift

    # Detail noise
    detail = fbm(detail_noise, xs, ys, 4, 0.55, 2.3, 4.0)
    elevation = elevation + detail * 0.25 * params.erosion_bias

    for _ in range(_crater_count(profile)):
        cx = rng.random()
        cy = rng.random()
        radius = 0.05 + rng.random() * 0.1
        depth = 0.2 + rng.random() * 0.4

        dist = np.hypot(xs - cx, ys - cy)
        t = 1.0 - dist / radius
        elevation = elevation - np.where(dist < radius, depth * t * t, 0.0)

    raw_min = float(elevation.min())
    raw_max = float(elevation.max())
    normalized = normalize_elevation(elevation).ravel()
    uplift_field = uplift.astype(np.float32).ravel()

    metadata = LandformMetadata(plate_count=len(plates), continent_count=continent_count)
    result = LandformResult(
        shard_id=seed_input.shard_id,
        width=width,
        height=height,
        elevation=normalized,
        tectonics=TectonicField(
            plate_id=plate_grid.ravel(),
            compression=compression.astype(np.float32).ravel(),
            uplift=uplift_field,
        ),
        biome_hints=classify_hints(normalized, uplift_field),
        metadata=metadata,
    )

    log.info(
        "landform_generated",
        shard_id=seed_input.shard_id,
        plate_count=metadata.plate_count,
        continent_count=continent_count,
        min_height=raw_min,
        max_height=raw_max,
    )
    return result


def sample_elevation_bilinear(result: LandformResult, x_norm: float, y_norm: float) -> float:
    """Bilinearly sample elevation at normalized [0, 1] coordinates."""
    width, height = result.width, result.height
    x = min(max(x_norm, 0.0), 1.0) * (width - 1)
    y = min(max(y_norm, 0.0), 1.0) * (height - 1)

    x0, y0 = int(math.floor(x)), int(math.floor(y))
    x1 = min(x0 + 1, width - 1)
    y1 = min(y0 + 1, height - 1)
    tx, ty = x - x0, y - y0

    grid = as_grid(result.elevation, width, height)
    top = grid[y0, x0] + (grid[y0, x1] - grid[y0, x0]) * tx
    bottom = grid[y1, x0] + (grid[y1, x1] - grid[y1, x0]) * tx
    return float(top + (bottom - top) * ty)


def extract_elevation_chunk(
    result: LandformResult,
    origin_x: int,
    origin_y: int,
    size: int,
) -> NDArray[np.float32]:
    """Copy a ``size x size`` window of elevation, clamping at the edges.

    Returns:
        Flat row-major float32 array of ``size * size`` cells.
    """
    width, height = result.width, result.height
    offsets = np.arange(size)
    ys = np.clip(origin_y + offsets, 0, height - 1)
    xs = np.clip(origin_x + offsets, 0, width - 1)
    grid = as_grid(result.elevation, width, height)
    return grid[ys[:, np.newaxis], xs[np.newaxis, :]].ravel().copy()

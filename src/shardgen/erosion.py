"""Erosion stage: D8 flow, flow accumulation, lake basins, hydraulic erosion.

Works on a clone of the landform elevation and never touches the
landform result. All passes are whole-grid numpy updates: every cell in a
pass reads the values from the end of the previous pass.
"""

from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np
from numpy.typing import NDArray

from .config import ErosionParams, merge_params
from .context import StageLog, WorldGenContext
from .exceptions import ConfigurationError
from .grid import DIR_X, DIR_Y, FLOW_NODATA, as_grid, neighbor_values, validate_dimensions
from .landform import LandformResult


@dataclass
class ErosionInput:
    landforms: LandformResult
    params: ErosionParams | Mapping[str, Any] | None = None


@dataclass(frozen=True, eq=False)
class ErosionResult:
    """Output of the erosion stage.

    ``elevation`` is the eroded terrain that later stages read.
    """

    width: int
    height: int
    elevation: NDArray[np.float32]
    water: NDArray[np.float32]
    sediment: NDArray[np.float32]
    flow_dir: NDArray[np.uint8]
    flow_accum: NDArray[np.float32]
    rivers: NDArray[np.bool_]
    lakes: NDArray[np.bool_]
    flow_passes: int
    lake_fill_passes: int


def compute_flow_direction(
    elevation: NDArray[np.floating],
    width: int,
    height: int,
) -> NDArray[np.uint8]:
    """Steepest-descent D8 direction for every cell.

    Directions are tried in the order E, NE, N, NW, W, SW, S, SE and the
    first strictly largest drop wins. Cells without a strictly lower
    neighbour get ``FLOW_NODATA``.
    """
    grid = as_grid(elevation.astype(np.float64), width, height)

    drops = np.empty((8, height, width), dtype=np.float64)
    for d in range(8):
        neighbor = neighbor_values(grid, DIR_X[d], DIR_Y[d], np.inf)
        drops[d] = grid - neighbor

    flow_dir = np.argmax(drops, axis=0).astype(np.uint8)
    flow_dir[drops.max(axis=0) <= 0] = FLOW_NODATA
    return flow_dir.ravel()


def downstream_index(flow_dir: NDArray[np.uint8], width: int) -> NDArray[np.int64]:
    """Flat index each cell drains into; -1 for pits."""
    dir_x = np.array(DIR_X + (0,), dtype=np.int64)
    dir_y = np.array(DIR_Y + (0,), dtype=np.int64)

    draining = flow_dir != FLOW_NODATA
    lookup = np.where(draining, flow_dir, 8).astype(np.int64)
    target = np.arange(flow_dir.size, dtype=np.int64) + dir_y[lookup] * width + dir_x[lookup]
    return np.where(draining, target, -1)


def compute_flow_accumulation(
    downstream: NDArray[np.int64],
    max_passes: int,
) -> tuple[NDArray[np.float32], int]:
    """Iteratively relax ``acc = 1 + sum(acc of upstream cells)``.

    Pits never propagate. Stops when a pass changes nothing or after
    ``max_passes`` passes.

    Returns:
        (accumulation, passes run).
    """
    size = downstream.size
    draining = downstream >= 0
    sources = np.nonzero(draining)[0]
    targets = downstream[draining]

    accum = np.ones(size, dtype=np.float64)
    passes = 0
    while passes < max_passes:
        passes += 1
        updated = 1.0 + np.bincount(targets, weights=accum[sources], minlength=size)
        if np.array_equal(updated, accum):
            break
        accum = updated

    return accum.astype(np.float32), passes


def lowest_neighbor(elevation: NDArray[np.float64], width: int, height: int) -> NDArray[np.float64]:
    """Lowest of the 8 neighbours per cell; +inf where a cell has none."""
    grid = as_grid(elevation, width, height)
    lowest = np.full_like(grid, np.inf)
    for d in range(8):
        lowest = np.minimum(lowest, neighbor_values(grid, DIR_X[d], DIR_Y[d], np.inf))
    return lowest.ravel()


def fill_lakes(
    elevation: NDArray[np.float64],
    candidates: NDArray[np.bool_],
    width: int,
    height: int,
    params: ErosionParams,
) -> int:
    """Raise lake candidates part way toward their lowest neighbour, in place.

    Returns:
        Number of passes run.
    """
    passes = 0
    for _ in range(params.lake_fill_iterations):
        passes += 1
        lowest = lowest_neighbor(elevation, width, height)
        raise_mask = candidates & np.isfinite(lowest) & (elevation < lowest)
        if not raise_mask.any():
            break
        elevation[raise_mask] += (lowest[raise_mask] - elevation[raise_mask]) * params.lake_fill_factor
    return passes


def hydraulic_erosion(
    elevation: NDArray[np.float64],
    downstream: NDArray[np.int64],
    params: ErosionParams,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Run the rain, transfer, erode/deposit, evaporate cycle in place.

    Only draining cells move water and sediment. Amounts are clamped so
    water and sediment never go negative and erosion never digs below
    sea level.

    Returns:
        (water, sediment).
    """
    size = elevation.size
    water = np.zeros(size, dtype=np.float64)
    sediment = np.zeros(size, dtype=np.float64)

    draining = downstream >= 0
    sources = np.nonzero(draining)[0]
    targets = downstream[draining]

    for _ in range(params.iterations):
        water += params.rain_amount

        slope = elevation[sources] - elevation[targets]

        transferred = water[sources] * params.water_transfer_fraction
        water[sources] -= transferred
        water += np.bincount(targets, weights=transferred, minlength=size)

        steep = slope > params.min_slope
        erode_cells = sources[steep]
        capacity = slope[steep] * params.sediment_capacity
        take = np.minimum(
            capacity - sediment[erode_cells],
            np.maximum(elevation[erode_cells], 0.0) * params.erosion_rate,
        )
        take = np.maximum(take, 0.0)
        sediment[erode_cells] += take
        elevation[erode_cells] -= take

        deposit_cells = sources[~steep]
        deposit = sediment[deposit_cells] * params.deposit_fraction
        sediment[deposit_cells] -= deposit
        elevation[deposit_cells] += deposit

        np.maximum(water - params.evaporate_rate, 0.0, out=water)

    return water, sediment


def run_erosion(
    erosion_input: ErosionInput,
    context: WorldGenContext | None = None,
) -> ErosionResult:
    """Apply hydrology and hydraulic erosion to a landform.

    Raises:
        ConfigurationError: On invalid dimensions, an elevation buffer of
            the wrong length, or invalid parameter overrides.
    """
    land = erosion_input.landforms
    width, height = land.width, land.height
    validate_dimensions("erosion", width, height)
    if land.elevation.size != width * height:
        raise ConfigurationError(
            f"erosion: elevation has {land.elevation.size} cells, expected {width * height}"
        )

    params = merge_params(ErosionParams(), erosion_input.params)
    log = StageLog(context, "erosion")
    log.info("erosion_started", width=width, height=height, iterations=params.iterations)

    elevation = land.elevation.astype(np.float64)

    flow_dir = compute_flow_direction(elevation, width, height)
    downstream = downstream_index(flow_dir, width)

    flow_accum, flow_passes = compute_flow_accumulation(downstream, params.flow_pass_cap)
    log.debug("flow_accumulation_computed", passes=flow_passes)

    lake_candidates = flow_dir == FLOW_NODATA
    lake_fill_passes = fill_lakes(elevation, lake_candidates, width, height, params)
    log.debug(
        "lake_basins_filled",
        candidates=int(lake_candidates.sum()),
        passes=lake_fill_passes,
    )

    water, sediment = hydraulic_erosion(elevation, downstream, params)

    rivers = flow_accum > params.river_threshold
    lakes = lake_candidates & (water >= params.lake_min_water)

    log.success(
        "erosion_complete",
        river_cells=int(rivers.sum()),
        lake_cells=int(lakes.sum()),
        flow_passes=flow_passes,
        lake_fill_passes=lake_fill_passes,
    )

    return ErosionResult(
        width=width,
        height=height,
        elevation=elevation.astype(np.float32),
        water=water.astype(np.float32),
        sediment=sediment.astype(np.float32),
        flow_dir=flow_dir,
        flow_accum=flow_accum,
        rivers=rivers,
        lakes=lakes,
        flow_passes=flow_passes,
        lake_fill_passes=lake_fill_passes,
    )

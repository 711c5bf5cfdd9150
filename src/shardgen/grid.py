"""Grid helpers shared by all stages.

Per-cell fields are flat row-major arrays of length ``width * height``
indexed ``y * width + x``. Neighbour passes reshape them into
``(height, width)`` views and shift whole arrays instead of looping.
"""

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

from .exceptions import ConfigurationError

# D8 direction order: E, NE, N, NW, W, SW, S, SE (y grows downward)
DIR_X = (1, 1, 0, -1, -1, -1, 0, 1)
DIR_Y = (0, -1, -1, -1, 0, 1, 1, 1)

# 4-neighbour order: E, W, S, N
CARDINAL = ((1, 0), (-1, 0), (0, 1), (0, -1))

FLOW_NODATA = 255


def validate_dimensions(stage: str, width: int, height: int) -> None:
    """Raise ConfigurationError unless both dimensions are positive."""
    if width <= 0 or height <= 0:
        raise ConfigurationError(
            f"{stage}: invalid dimensions width={width}, height={height}"
        )


def require_matching(stage: str, width: int, height: int, **others: tuple[int, int]) -> None:
    """Raise ConfigurationError if any named input's grid differs in size.

    Args:
        stage: Stage name for the error message.
        width: Reference width.
        height: Reference height.
        **others: ``name=(width, height)`` for every other input.
    """
    for name, (other_w, other_h) in others.items():
        if other_w != width or other_h != height:
            raise ConfigurationError(
                f"{stage}: {name} is {other_w}x{other_h}, expected {width}x{height}"
            )


def as_grid(field: NDArray, width: int, height: int) -> NDArray:
    """Return a ``(height, width)`` view of a flat field."""
    return field.reshape(height, width)


def normalized_axis(n: int) -> NDArray[np.float64]:
    """Cell coordinates ``i / (n - 1)`` in [0, 1]; a single cell maps to 0."""
    if n <= 1:
        return np.zeros(max(n, 0), dtype=np.float64)
    return np.arange(n, dtype=np.float64) / (n - 1)


def neighbor_values(grid: NDArray, dx: int, dy: int, fill) -> NDArray:
    """Shift a 2-D grid so ``out[y, x] == grid[y + dy, x + dx]``.

    Cells whose neighbour falls outside the grid get ``fill``.
    """
    height, width = grid.shape
    out = np.full_like(grid, fill)
    ys_dst = slice(max(0, -dy), min(height, height - dy))
    xs_dst = slice(max(0, -dx), min(width, width - dx))
    ys_src = slice(max(0, dy), min(height, height + dy))
    xs_src = slice(max(0, dx), min(width, width + dx))
    if ys_dst.start < ys_dst.stop and xs_dst.start < xs_dst.stop:
        out[ys_dst, xs_dst] = grid[ys_src, xs_src]
    return out


def distance_field(
    sources: NDArray[np.bool_],
    width: int,
    height: int,
    max_distance: int,
) -> NDArray[np.int32]:
    """Multi-source 4-neighbour step distance, capped at ``max_distance``.

    Equivalent to a breadth-first search seeded from every source cell.
    With no sources every cell holds ``max_distance``.

    Args:
        sources: Flat boolean mask of seed cells.
        width: Grid width.
        height: Grid height.
        max_distance: Distance cap.

    Returns:
        Flat int32 distance array.
    """
    if not sources.any():
        return np.full(width * height, max_distance, dtype=np.int32)

    grid = as_grid(sources, width, height)
    distance = ndimage.distance_transform_cdt(~grid, metric="taxicab")
    return np.minimum(distance, max_distance).astype(np.int32).ravel()


def bresenham_line(x0: int, y0: int, x1: int, y1: int) -> list[tuple[int, int]]:
    """Integer cells on the line from (x0, y0) to (x1, y1), both inclusive."""
    points = []
    dx = abs(x1 - x0)
    dy = abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx - dy
    x, y = x0, y0

    while True:
        points.append((x, y))
        if x == x1 and y == y1:
            break
        e2 = 2 * err
        if e2 > -dy:
            err -= dy
            x += sx
        if e2 < dx:
            err += dx
            y += sy

    return points

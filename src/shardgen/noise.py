"""Value noise and fractal sums used by the landform and climate stages.

Provides a seeded lattice value noise and fBm (fractal Brownian motion)
over it. Sampling is vectorized over coordinate arrays.
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .rng import Mulberry32


def smoothstep(t: ArrayLike) -> NDArray[np.float64]:
    t = np.asarray(t, dtype=np.float64)
    return t * t * (3.0 - 2.0 * t)


def lerp(a: ArrayLike, b: ArrayLike, t: ArrayLike) -> NDArray[np.float64]:
    return a + (b - a) * t


class ValueNoise2D:
    """Smoothly interpolated lattice noise in [-1, 1].

    The lattice is ``grid_size x grid_size`` values drawn from Mulberry32
    and wraps in both axes.

    Args:
        seed: 32-bit seed for the lattice values.
        grid_size: Lattice side length.
    """

    def __init__(self, seed: int, grid_size: int = 256):
        self.grid_size = grid_size
        rng = Mulberry32(seed)
        values = rng.random_array(grid_size * grid_size) * 2.0 - 1.0
        self.grid = values.astype(np.float32).reshape(grid_size, grid_size)
        self._lattice = self.grid.astype(np.float64)

    def sample(
        self,
        x: ArrayLike,
        y: ArrayLike,
        frequency: float = 1.0,
    ) -> NDArray[np.float64]:
        """Sample noise at (x, y) scaled by frequency.

        ``x`` and ``y`` broadcast against each other, so passing a column of
        y coordinates and a row of x coordinates yields a full 2-D field.
        """
        fx = np.asarray(x, dtype=np.float64) * frequency
        fy = np.asarray(y, dtype=np.float64) * frequency

        x0f = np.floor(fx)
        y0f = np.floor(fy)
        tx = smoothstep(fx - x0f)
        ty = smoothstep(fy - y0f)

        size = self.grid_size
        x0 = np.mod(x0f.astype(np.int64), size)
        y0 = np.mod(y0f.astype(np.int64), size)
        x1 = np.mod(x0 + 1, size)
        y1 = np.mod(y0 + 1, size)

        grid = self._lattice
        v00 = grid[y0, x0]
        v10 = grid[y0, x1]
        v01 = grid[y1, x0]
        v11 = grid[y1, x1]

        ix0 = lerp(v00, v10, tx)
        ix1 = lerp(v01, v11, tx)
        return lerp(ix0, ix1, ty)


def fbm(
    noise: ValueNoise2D,
    x: ArrayLike,
    y: ArrayLike,
    octaves: int,
    gain: float,
    lacunarity: float,
    base_frequency: float,
) -> NDArray[np.float64]:
    """Fractal Brownian motion over a value noise field.

    Sums octaves of increasing frequency and decreasing amplitude, then
    divides by the total amplitude so the result stays roughly in [-1, 1].

    Args:
        noise: Noise field to sample.
        x: X coordinates.
        y: Y coordinates.
        octaves: Number of noise layers to sum.
        gain: Amplitude multiplier between octaves.
        lacunarity: Frequency multiplier between octaves.
        base_frequency: Frequency of the first octave.

    Returns:
        Array of noise values broadcast from ``x`` and ``y``.
    """
    amplitude = 1.0
    frequency = base_frequency
    total = None
    total_amplitude = 0.0

    for _ in range(octaves):
        layer = noise.sample(x, y, frequency) * amplitude
        total = layer if total is None else total + layer
        total_amplitude += amplitude
        amplitude *= gain
        frequency *= lacunarity

    if total is None:
        return np.zeros(np.broadcast(np.asarray(x), np.asarray(y)).shape)
    return total / total_amplitude

"""Tests for the landform stage."""

import numpy as np
import pytest

from shardgen.config import LandformParams, ShardSeedInput, WorldProfile
from shardgen.context import WorldGenContext
from shardgen.exceptions import ConfigurationError
from shardgen.landform import (
    HINT_DEEP_SEA,
    HINT_MOUNTAIN,
    HINT_SHELF,
    HINT_VOLCANIC,
    Plate,
    assign_plates,
    classify_hints,
    extract_elevation_chunk,
    generate_plates,
    normalize_elevation,
    plate_count_range,
    run_landform,
    sample_elevation_bilinear,
)
from shardgen.rng import Mulberry32


def _seed_input(**overrides) -> ShardSeedInput:
    values = dict(shard_id="land", width=64, height=48, seed=0x1234)
    values.update(overrides)
    return ShardSeedInput(**values)


@pytest.fixture(scope="module")
def prime_landform():
    """256x256 stable prime landform."""
    return run_landform(
        ShardSeedInput(
            shard_id="prime",
            width=256,
            height=256,
            seed=0x1234,
            profile=WorldProfile.STABLE_PRIME,
        )
    )


class TestRunLandform:
    """Tests for full landform generation."""

    def test_stable_prime_plate_count(self, prime_landform) -> None:
        low, high = plate_count_range(WorldProfile.STABLE_PRIME, LandformParams())
        assert low <= prime_landform.metadata.plate_count <= high

    def test_elevation_normalized(self, prime_landform) -> None:
        """Elevation is finite and spans exactly [-1, 1]."""
        elevation = prime_landform.elevation
        assert elevation.dtype == np.float32
        assert elevation.size == 256 * 256
        assert np.isfinite(elevation).all()
        assert float(elevation.min()) == -1.0
        assert float(elevation.max()) == 1.0

    def test_field_lengths(self, prime_landform) -> None:
        size = 256 * 256
        assert prime_landform.tectonics.plate_id.size == size
        assert prime_landform.tectonics.compression.size == size
        assert prime_landform.tectonics.uplift.size == size
        assert prime_landform.biome_hints.size == size

    def test_plate_ids_in_range(self, prime_landform) -> None:
        assert int(prime_landform.tectonics.plate_id.max()) < prime_landform.metadata.plate_count

    def test_metadata(self, prime_landform) -> None:
        meta = prime_landform.metadata
        assert meta.sea_level == 0.0
        assert meta.min_height == -1.0
        assert meta.max_height == 1.0
        assert 1 <= meta.continent_count <= 4

    def test_deterministic(self) -> None:
        a = run_landform(_seed_input())
        b = run_landform(_seed_input())
        np.testing.assert_array_equal(a.elevation, b.elevation)
        np.testing.assert_array_equal(a.tectonics.plate_id, b.tectonics.plate_id)
        np.testing.assert_array_equal(a.biome_hints, b.biome_hints)

    def test_seed_changes_terrain(self) -> None:
        a = run_landform(_seed_input(seed=1))
        b = run_landform(_seed_input(seed=2))
        assert not np.array_equal(a.elevation, b.elevation)

    @pytest.mark.parametrize("profile", list(WorldProfile))
    def test_every_profile_normalizes(self, profile: WorldProfile) -> None:
        result = run_landform(_seed_input(profile=profile))
        low, high = plate_count_range(profile, LandformParams())
        assert low <= result.metadata.plate_count <= high
        assert float(result.elevation.min()) == -1.0
        assert float(result.elevation.max()) == 1.0

    def test_chaotic_profiles_have_more_plates(self) -> None:
        result = run_landform(_seed_input(profile=WorldProfile.CHAOTIC_PRIME))
        assert result.metadata.plate_count >= 5

    def test_seed_params_override(self) -> None:
        """Per-shard params override the landform defaults."""
        result = run_landform(
            _seed_input(
                profile=WorldProfile.ELEMENTAL_TILT,
                params={"plate_count_min": 6, "plate_count_max": 6},
            )
        )
        assert result.metadata.plate_count == 6

    def test_invalid_override_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            run_landform(_seed_input(params={"plate_count_min": 5, "plate_count_max": 2}))

    def test_unknown_override_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            run_landform(_seed_input(params={"mountain_height": 3.0}))

    @pytest.mark.parametrize("width,height", [(0, 10), (10, 0), (-4, 4)])
    def test_invalid_dimensions(self, width: int, height: int) -> None:
        with pytest.raises(ConfigurationError):
            run_landform(_seed_input(width=width, height=height))

    def test_single_cell(self) -> None:
        """A 1x1 shard is flat and maps to -1."""
        result = run_landform(_seed_input(width=1, height=1))
        assert result.elevation.tolist() == [-1.0]

    def test_logs_stage_events(self, recording_logger) -> None:
        run_landform(_seed_input(), WorldGenContext(logger=recording_logger))
        assert recording_logger.events() == ["landform_started", "landform_generated"]
        assert all(meta["stage"] == "landform" for _, _, meta in recording_logger.records)


class TestPlates:
    """Tests for plate layout helpers."""

    def test_stable_prime_caps_plates(self) -> None:
        assert plate_count_range(WorldProfile.STABLE_PRIME, LandformParams()) == (3, 4)

    def test_chaotic_raises_minimum(self) -> None:
        assert plate_count_range(WorldProfile.BROKEN_SHARD, LandformParams()) == (5, 7)

    def test_other_profiles_use_params(self) -> None:
        assert plate_count_range(WorldProfile.ARCANE_DISTORTED, LandformParams()) == (3, 7)

    def test_assign_nearest_center(self) -> None:
        plates = [
            Plate(id=0, center_x=0.0, center_y=0.0, drift_x=0, drift_y=0, compression=0),
            Plate(id=1, center_x=1.0, center_y=1.0, drift_x=0, drift_y=0, compression=0),
        ]
        axis = np.linspace(0, 1, 5)
        grid = assign_plates(plates, axis, axis)
        assert grid[0, 0] == 0
        assert grid[4, 4] == 1
        # Equidistant cells go to the lower id
        assert grid[0, 4] == 0

    def test_generate_plates_deterministic(self) -> None:
        a = generate_plates(Mulberry32(1), WorldProfile.ELEMENTAL_TILT, LandformParams())
        b = generate_plates(Mulberry32(1), WorldProfile.ELEMENTAL_TILT, LandformParams())
        assert a == b
        assert all(-1.0 <= p.elemental_bias <= 1.0 for p in a)


class TestNormalizeAndHints:
    def test_normalize_bounds(self) -> None:
        out = normalize_elevation(np.array([[2.0, 5.0], [3.5, 8.0]]))
        assert out.min() == -1.0
        assert out.max() == 1.0

    def test_normalize_flat(self) -> None:
        out = normalize_elevation(np.full((2, 2), 0.7))
        assert (out == -1.0).all()

    def test_hint_bands(self) -> None:
        elevation = np.array([-0.8, 0.0, 0.9, 0.5], dtype=np.float32)
        uplift = np.array([0.0, 0.0, 0.0, 0.8], dtype=np.float32)
        hints = classify_hints(elevation, uplift)
        assert hints.tolist()[:3] == [HINT_DEEP_SEA, HINT_SHELF, HINT_MOUNTAIN]
        assert hints[3] == HINT_VOLCANIC


class TestSampling:
    """Tests for elevation sampling helpers."""

    def test_bilinear_corners(self, prime_landform) -> None:
        grid = prime_landform.elevation.reshape(256, 256)
        assert sample_elevation_bilinear(prime_landform, 0.0, 0.0) == pytest.approx(grid[0, 0])
        assert sample_elevation_bilinear(prime_landform, 1.0, 1.0) == pytest.approx(grid[-1, -1])

    def test_bilinear_clamps(self, prime_landform) -> None:
        inside = sample_elevation_bilinear(prime_landform, 1.0, 0.0)
        outside = sample_elevation_bilinear(prime_landform, 3.0, -2.0)
        assert inside == outside

    def test_chunk_copies_window(self, prime_landform) -> None:
        grid = prime_landform.elevation.reshape(256, 256)
        chunk = extract_elevation_chunk(prime_landform, 10, 20, 8)
        np.testing.assert_array_equal(chunk.reshape(8, 8), grid[20:28, 10:18])

    def test_chunk_clamps_edges(self, prime_landform) -> None:
        grid = prime_landform.elevation.reshape(256, 256)
        chunk = extract_elevation_chunk(prime_landform, 250, 250, 16).reshape(16, 16)
        assert chunk[15, 15] == grid[255, 255]
        assert chunk[0, 0] == grid[250, 250]

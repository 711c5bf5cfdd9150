"""Tests for world save/load."""

from pathlib import Path

import numpy as np
import pytest

from shardgen.persistence import FORMAT_VERSION, load_world_arrays, save_world
from shardgen.resources import ResourceKind


class TestSaveLoad:
    """Tests for the .npz round trip of a generated world."""

    def test_fields_restored(self, tmp_path: Path, small_world) -> None:
        path = tmp_path / "world.npz"
        save_world(path, small_world)
        snapshot = load_world_arrays(path)

        np.testing.assert_array_equal(snapshot.arrays["elevation"], small_world.landform.elevation)
        np.testing.assert_array_equal(
            snapshot.arrays["eroded_elevation"], small_world.erosion.elevation
        )
        np.testing.assert_array_equal(snapshot.arrays["biome_map"], small_world.biomes.biome_map)
        np.testing.assert_array_equal(snapshot.arrays["rivers"], small_world.erosion.rivers)
        for kind in ResourceKind:
            np.testing.assert_array_equal(
                snapshot.arrays[f"{kind.value}_mask"], small_world.resources.masks[kind]
            )

    def test_entities_restored(self, tmp_path: Path, small_world) -> None:
        path = tmp_path / "world.npz"
        save_world(path, small_world)
        snapshot = load_world_arrays(path)

        assert tuple(snapshot.settlements) == small_world.civilization.settlements
        assert tuple(snapshot.roads) == small_world.civilization.roads
        assert tuple(snapshot.points_of_interest) == small_world.civilization.points_of_interest
        assert tuple(snapshot.resource_nodes) == small_world.resources.nodes

    def test_metadata(self, tmp_path: Path, small_world) -> None:
        path = tmp_path / "world.npz"
        save_world(path, small_world)
        metadata = load_world_arrays(path).metadata

        assert metadata["version"] == FORMAT_VERSION
        assert metadata["shard_id"] == "test-shard"
        assert metadata["seed"] == 0x1234
        assert metadata["width"] == 48
        assert metadata["height"] == 40
        assert metadata["profile"] == "STABLE_PRIME"
        assert metadata["config"]["erosion"]["iterations"] == 45

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_world_arrays(tmp_path / "nope.npz")

    def test_invalid_file(self, tmp_path: Path) -> None:
        path = tmp_path / "other.npz"
        np.savez_compressed(path, something=np.zeros(3))
        with pytest.raises(ValueError):
            load_world_arrays(path)

"""Tests for biome classification and clustering."""

import numpy as np
import pytest

from shardgen.biomes import (
    BiomeId,
    BiomeInput,
    biome_mask,
    classify_biomes,
    cluster_biomes,
    count_biomes,
    run_biomes,
)
from shardgen.climate import ClimateInput, classify_climate_field, run_climate
from shardgen.config import BiomeParams, ShardSeedInput
from shardgen.context import WorldGenContext
from shardgen.erosion import ErosionInput, run_erosion
from shardgen.exceptions import ConfigurationError
from shardgen.landform import run_landform


def classify_cell(
    elevation: float = 0.3,
    uplift: float = 0.0,
    temperature: float = 12.0,
    moisture: float = 0.4,
    river: bool = False,
    lake: bool = False,
    magma_roll: float = 0.5,
    params: BiomeParams | None = None,
) -> BiomeId:
    temp = np.array([temperature], dtype=np.float32)
    moist = np.array([moisture], dtype=np.float32)
    result = classify_biomes(
        np.array([elevation], dtype=np.float32),
        np.array([uplift], dtype=np.float32),
        temp,
        moist,
        classify_climate_field(temp, moist),
        np.array([river]),
        np.array([lake]),
        np.array([magma_roll]),
        params or BiomeParams(),
    )
    return BiomeId(int(result[0]))


@pytest.fixture(scope="module")
def stages():
    seed_input = ShardSeedInput(shard_id="biomes", width=56, height=40, seed=0x1234)
    landform = run_landform(seed_input)
    erosion = run_erosion(ErosionInput(landform))
    climate = run_climate(ClimateInput(landform, seed_input.seed, erosion=erosion))
    return landform, erosion, climate


class TestClassifyBiomes:
    """Tests for the ordered biome decision list."""

    def test_below_sea_is_ocean(self) -> None:
        assert classify_cell(elevation=-0.2) == BiomeId.OCEAN

    def test_ocean_beats_lake(self) -> None:
        assert classify_cell(elevation=-0.2, lake=True) == BiomeId.OCEAN

    def test_lake_and_river(self) -> None:
        assert classify_cell(lake=True) == BiomeId.LAKE
        assert classify_cell(river=True) == BiomeId.RIVER
        assert classify_cell(lake=True, river=True) == BiomeId.LAKE

    def test_magma_lake_needs_uplift_and_roll(self) -> None:
        assert classify_cell(lake=True, uplift=0.6, magma_roll=0.01) == BiomeId.MAGMA_LAKE
        assert classify_cell(lake=True, uplift=0.6, magma_roll=0.5) == BiomeId.LAKE
        assert classify_cell(lake=True, uplift=0.1, magma_roll=0.0) == BiomeId.LAKE

    def test_coastal_bands(self) -> None:
        assert classify_cell(elevation=0.02) == BiomeId.COAST
        assert classify_cell(elevation=0.07) == BiomeId.BEACH

    def test_volcanic_tiers(self) -> None:
        assert classify_cell(uplift=0.6) == BiomeId.VOLCANIC_PLAIN
        assert classify_cell(uplift=0.8) == BiomeId.LAVA_FIELD

    def test_alpine_and_snow(self) -> None:
        assert classify_cell(elevation=0.8, temperature=0.0) == BiomeId.ALPINE
        assert classify_cell(elevation=0.3, temperature=-8.0) == BiomeId.SNOW

    def test_dry_biomes(self) -> None:
        assert classify_cell(temperature=25.0, moisture=0.1) == BiomeId.DESERT
        assert classify_cell(temperature=25.0, moisture=0.3) == BiomeId.SAVANNA

    def test_boreal_from_zone(self) -> None:
        assert classify_cell(temperature=2.0, moisture=0.5) == BiomeId.BOREAL_FOREST

    def test_wet_biomes(self) -> None:
        assert classify_cell(temperature=25.0, moisture=0.7) == BiomeId.JUNGLE
        assert classify_cell(temperature=12.0, moisture=0.8) == BiomeId.WETLANDS
        assert classify_cell(temperature=12.0, moisture=0.5) == BiomeId.FOREST

    def test_grassland_default(self) -> None:
        assert classify_cell(temperature=12.0, moisture=0.4) == BiomeId.GRASSLAND


class TestClusterBiomes:
    """Tests for connected biome clustering."""

    def test_uniform_map_is_one_cluster(self) -> None:
        biome_map = np.full(200 * 150, BiomeId.GRASSLAND, dtype=np.uint16)
        result = cluster_biomes(biome_map, 200, 150)

        assert result.cluster_count == 1
        assert (result.clusters == 0).all()
        assert result.visited == 200 * 150

    def test_checkerboard_every_cell_alone(self) -> None:
        """Diagonal neighbours never join a cluster."""
        grid = (np.indices((6, 6)).sum(axis=0) % 2).astype(np.uint16)
        result = cluster_biomes(grid.ravel(), 6, 6)
        assert result.cluster_count == 36

    def test_ids_dense_in_row_major_order(self) -> None:
        biome_map = np.array(
            [
                [1, 1, 2, 2],
                [3, 1, 2, 4],
                [3, 3, 3, 4],
            ],
            dtype=np.uint16,
        ).ravel()
        result = cluster_biomes(biome_map, 4, 3)

        assert result.cluster_count == 4
        assert result.clusters.reshape(3, 4).tolist() == [
            [0, 0, 1, 1],
            [2, 0, 1, 3],
            [2, 2, 2, 3],
        ]

    def test_same_biome_split_regions(self) -> None:
        biome_map = np.array([6, 0, 6], dtype=np.uint16)
        result = cluster_biomes(biome_map, 3, 1)
        assert result.clusters.tolist() == [0, 1, 2]


class TestBiomeHelpers:
    def test_count_biomes(self) -> None:
        counts = count_biomes(np.array([0, 0, 6, 17], dtype=np.uint16))
        assert counts == {BiomeId.OCEAN: 2, BiomeId.GRASSLAND: 1, BiomeId.MAGMA_LAKE: 1}

    def test_biome_mask(self) -> None:
        mask = biome_mask(np.array([0, 3, 4, 6], dtype=np.uint16), (BiomeId.RIVER, BiomeId.LAKE))
        assert mask.tolist() == [False, True, True, False]


class TestRunBiomes:
    """Tests for the full biome stage."""

    def test_totality(self, stages) -> None:
        landform, erosion, climate = stages
        result = run_biomes(BiomeInput(landform, erosion, climate, 0x1234))
        size = landform.width * landform.height

        assert result.biome_map.size == size
        assert int(result.biome_map.max()) < len(BiomeId)
        assert sum(result.biome_counts.values()) == size
        assert result.clusters.min() == 0
        assert result.clusters.max() == result.cluster_count - 1

    def test_clusters_never_mix_biomes(self, stages) -> None:
        landform, erosion, climate = stages
        result = run_biomes(BiomeInput(landform, erosion, climate, 0x1234))
        for cluster in range(result.cluster_count):
            assert np.unique(result.biome_map[result.clusters == cluster]).size == 1

    def test_reclustering_is_stable(self, stages) -> None:
        landform, erosion, climate = stages
        result = run_biomes(BiomeInput(landform, erosion, climate, 0x1234))
        again = cluster_biomes(result.biome_map, landform.width, landform.height)
        np.testing.assert_array_equal(again.clusters, result.clusters)

    def test_magma_chance_extremes(self, synthetic_world) -> None:
        """Chance 1 turns every high-uplift lake to magma; chance 0 none."""
        world = synthetic_world(8, 8, uplift=0.9, lakes=True)

        always = run_biomes(
            BiomeInput(world.landform, world.erosion, world.climate, 3, {"magma_lake_chance": 1.0})
        )
        never = run_biomes(
            BiomeInput(world.landform, world.erosion, world.climate, 3, {"magma_lake_chance": 0.0})
        )

        assert (always.biome_map == BiomeId.MAGMA_LAKE).all()
        assert (never.biome_map == BiomeId.LAKE).all()

    def test_deterministic(self, stages) -> None:
        landform, erosion, climate = stages
        a = run_biomes(BiomeInput(landform, erosion, climate, 9))
        b = run_biomes(BiomeInput(landform, erosion, climate, 9))
        np.testing.assert_array_equal(a.biome_map, b.biome_map)

    def test_size_mismatch_raises(self, stages, synthetic_world) -> None:
        landform, erosion, _ = stages
        other = synthetic_world(4, 4)
        with pytest.raises(ConfigurationError):
            run_biomes(BiomeInput(landform, erosion, other.climate, 1))

    def test_invalid_chance_raises(self, stages) -> None:
        landform, erosion, climate = stages
        with pytest.raises(ConfigurationError):
            run_biomes(BiomeInput(landform, erosion, climate, 1, {"magma_lake_chance": 1.5}))

    def test_logs_one_started_event(self, stages, recording_logger) -> None:
        """Only the stage itself logs a ``*_started`` event."""
        landform, erosion, climate = stages
        run_biomes(
            BiomeInput(landform, erosion, climate, 1), WorldGenContext(logger=recording_logger)
        )

        assert recording_logger.events() == [
            "biomes_started",
            "biome_clustering",
            "biomes_complete",
        ]
        assert all(meta["stage"] == "biomes" for _, _, meta in recording_logger.records)

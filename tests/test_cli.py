"""Tests for the command-line entry point."""

from pathlib import Path

import pytest
import structlog

from shardgen.cli import build_parser, main
from shardgen.persistence import load_world_arrays


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo the CLI's global logging configuration after each test."""
    yield
    structlog.reset_defaults()


class TestParser:
    def test_defaults(self) -> None:
        args = build_parser().parse_args([])
        assert args.width == 256
        assert args.height == 256
        assert args.profile == "STABLE_PRIME"
        assert args.output is None


class TestMain:
    """Tests for running generation from the command line."""

    def test_writes_world(self, tmp_path: Path) -> None:
        output = tmp_path / "out" / "world.npz"
        main(
            [
                "--shard-id",
                "cli-shard",
                "--width",
                "32",
                "--height",
                "24",
                "--seed",
                "7",
                "--output",
                str(output),
            ]
        )

        snapshot = load_world_arrays(output)
        assert snapshot.metadata["shard_id"] == "cli-shard"
        assert snapshot.metadata["width"] == 32

    def test_profile_is_case_insensitive(self, tmp_path: Path) -> None:
        output = tmp_path / "world.npz"
        main(["--width", "24", "--height", "24", "--profile", "broken_shard", "-o", str(output)])
        assert load_world_arrays(output).metadata["profile"] == "BROKEN_SHARD"

    def test_unknown_profile_exits(self) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--width", "8", "--height", "8", "--profile", "NOPE"])
        assert exc.value.code == 2

    def test_invalid_dimensions_exit(self) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--width", "0", "--height", "8"])
        assert exc.value.code == 1

    def test_config_file(self, tmp_path: Path) -> None:
        config = tmp_path / "world.toml"
        config.write_text("[erosion]\niterations = 2\n")
        output = tmp_path / "world.npz"

        main(["--width", "24", "--height", "24", "--config", str(config), "-o", str(output)])

        metadata = load_world_arrays(output).metadata
        assert metadata["config"]["erosion"]["iterations"] == 2

    def test_missing_config_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--width", "8", "--height", "8", "--config", str(tmp_path / "none.toml")])
        assert exc.value.code == 1

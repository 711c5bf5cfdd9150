"""Command-line interface for shard world generation."""

import argparse
import logging
import sys
import time
from pathlib import Path

import structlog


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate a deterministic shard world"
    )
    parser.add_argument("--shard-id", type=str, default="shard-0", help="Shard identifier")
    parser.add_argument("--width", type=int, default=256, help="World width (default: 256)")
    parser.add_argument("--height", type=int, default=256, help="World height (default: 256)")
    parser.add_argument("--seed", type=int, default=12345, help="Shard seed (default: 12345)")
    parser.add_argument(
        "--profile",
        type=str,
        default="STABLE_PRIME",
        help="World profile (default: STABLE_PRIME)",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="TOML file with per-stage parameters (optional)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Save the world to this .npz path (optional)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for world generation."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    logger = structlog.get_logger()

    # Import here to avoid slow startup for --help
    from .config import ShardSeedInput, WorldGenConfig, WorldProfile, load_config
    from .context import WorldGenContext
    from .exceptions import WorldGenError
    from .persistence import save_world
    from .pipeline import generate_world
    from .validation import validate_world

    try:
        profile = WorldProfile(args.profile.upper())
    except ValueError:
        choices = ", ".join(p.value for p in WorldProfile)
        logger.error("unknown_profile", profile=args.profile, choices=choices)
        sys.exit(2)

    try:
        config = load_config(Path(args.config)) if args.config else WorldGenConfig()
        seed_input = ShardSeedInput(
            shard_id=args.shard_id,
            width=args.width,
            height=args.height,
            seed=args.seed,
            profile=profile,
        )

        start_time = time.time()
        world = generate_world(seed_input, config, WorldGenContext(logger=logger))
        gen_time = time.time() - start_time
    except (WorldGenError, FileNotFoundError) as e:
        logger.error("world_generation_failed", error=str(e))
        sys.exit(1)

    logger.info("generation_timing", seconds=round(gen_time, 2), stages=world.timings)

    validation = validate_world(world)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        save_world(output_path, world)

    if not validation.passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
